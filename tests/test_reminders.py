"""
Reminder tests - reminder decision, reminder text and the reminder tick
"""

import pytest
from datetime import timedelta

from conftest import MONDAY, FixedClock, at, make_recipient, make_session
from models import DayTimes, NOTIFICATION_TYPE_REMINDER
from notify.dedup import DedupLedger
from notify.dispatcher import NotificationDispatcher
from notify.reminders import ReminderJob, build_reminder_intent, is_reminder_due, sound_payload_value


class TestReminderDecision:
    """Lead-time threshold and imminent-class windows"""

    @pytest.mark.reminder
    def test_threshold_just_crossed(self):
        # Class 09:00, lead 15: reminder instant 08:45, now one minute past it
        assert is_reminder_due(at(MONDAY, 9, 0), 15, at(MONDAY, 8, 46)) is True

    @pytest.mark.reminder
    def test_window_edges_past_threshold(self):
        # Lead 30: reminder instant 08:30, class not yet imminent
        assert is_reminder_due(at(MONDAY, 9, 0), 30, at(MONDAY, 8, 35)) is True
        assert is_reminder_due(at(MONDAY, 9, 0), 30, at(MONDAY, 8, 36)) is False

    @pytest.mark.reminder
    def test_threshold_approaching(self):
        assert is_reminder_due(at(MONDAY, 9, 0), 15, at(MONDAY, 8, 42)) is True

    @pytest.mark.reminder
    def test_too_early(self):
        assert is_reminder_due(at(MONDAY, 9, 0), 15, at(MONDAY, 8, 30)) is False

    @pytest.mark.reminder
    def test_class_imminent(self):
        assert is_reminder_due(at(MONDAY, 9, 0), 60, at(MONDAY, 8, 52)) is True

    @pytest.mark.reminder
    def test_class_already_started(self):
        assert is_reminder_due(at(MONDAY, 9, 0), 15, at(MONDAY, 9, 5)) is False

    @pytest.mark.reminder
    def test_no_occurrence(self):
        assert is_reminder_due(None, 15, at(MONDAY, 8, 45)) is False

    @pytest.mark.reminder
    def test_not_due_an_hour_after_being_due(self):
        occurrence = at(MONDAY, 9, 0)
        now = at(MONDAY, 7, 0)
        while now < occurrence:
            if is_reminder_due(occurrence, 15, now):
                assert is_reminder_due(occurrence, 15, now + timedelta(hours=1)) is False
            now += timedelta(minutes=1)


class TestReminderIntent:
    """Reminder wording and payload"""

    @pytest.mark.reminder
    def test_body_uses_occurrence_day_venue_and_index(self):
        session = make_session(
            days=['Monday'],
            day_venues={'Monday': 'Lab 3'},
            index_from='10',
            index_to='20',
        )
        recipient = make_recipient(sound='r2')
        intent = build_reminder_intent(session, recipient, at(MONDAY, 9, 0))

        assert intent.title == 'Class Reminder'
        assert intent.type == NOTIFICATION_TYPE_REMINDER
        assert intent.in_app_text(recipient) == (
            "Hi Ama, your Data Structures class starts in 15 minutes at Lab 3. "
            "Time: 9:00 AM Index: 10 - 20."
        )
        assert intent.payload == {
            'courseId': 'course-1',
            'courseName': 'Data Structures',
            'type': NOTIFICATION_TYPE_REMINDER,
            'sound': 'r2.wav',
        }
        assert intent.sms_eligible is False

    @pytest.mark.reminder
    def test_body_without_venue_or_index(self):
        session = make_session(venue=None)
        recipient = make_recipient(name='')
        intent = build_reminder_intent(session, recipient, at(MONDAY, 14, 5), lead_minutes=30)
        assert intent.in_app_text(recipient) == (
            "Hi Student, your Data Structures class starts in 30 minutes. Time: 2:05 PM"
        )

    @pytest.mark.reminder
    def test_sound_payload_value(self):
        assert sound_payload_value(None) == 'default'
        assert sound_payload_value('default') == 'default'
        assert sound_payload_value('r1') == 'r1.wav'
        assert sound_payload_value('r3.wav') == 'r3.wav'


def _reminder_job(reader, dispatcher, now):
    clock = FixedClock(now)
    return ReminderJob(reader, dispatcher, DedupLedger(clock=clock), clock=clock), clock


class TestReminderJob:
    """One evaluation pass over sessions and enrolled users"""

    @pytest.mark.reminder
    def test_sends_due_reminder_once_per_day(self, reader, writer, push, dispatcher):
        reader.sessions = [make_session()]
        reader.recipients = {'course-1': [make_recipient()]}
        reader.enabled_users = ['user-1']
        job, clock = _reminder_job(reader, dispatcher, at(MONDAY, 8, 46))

        first = job.run()
        assert first['sent'] == 1
        assert len(push.sent) == 1
        assert len(writer.notifications) == 1

        clock.now = at(MONDAY, 8, 51)
        second = job.run()
        assert second['sent'] == 0
        assert second['already_sent'] == 1
        assert len(push.sent) == 1

    @pytest.mark.reminder
    def test_reminds_again_next_week(self, reader, push, dispatcher):
        reader.sessions = [make_session()]
        reader.recipients = {'course-1': [make_recipient()]}
        reader.enabled_users = ['user-1']
        job, clock = _reminder_job(reader, dispatcher, at(MONDAY, 8, 46))

        job.run()
        clock.now = at(MONDAY + timedelta(days=7), 8, 46)
        result = job.run()

        assert result['sent'] == 1
        assert len(push.sent) == 2

    @pytest.mark.reminder
    def test_not_due_yet(self, reader, push, dispatcher):
        reader.sessions = [make_session()]
        reader.recipients = {'course-1': [make_recipient()]}
        reader.enabled_users = ['user-1']
        job, _ = _reminder_job(reader, dispatcher, at(MONDAY, 7, 0))

        result = job.run()
        assert result['not_due'] == 1
        assert push.sent == []

    @pytest.mark.reminder
    def test_skips_users_not_opted_in(self, reader, push, dispatcher):
        reader.sessions = [make_session()]
        reader.recipients = {'course-1': [make_recipient('user-1'), make_recipient('user-2')]}
        reader.enabled_users = ['user-2']
        job, _ = _reminder_job(reader, dispatcher, at(MONDAY, 8, 46))

        result = job.run()
        assert result['processed'] == 1
        assert [p['token'] for p in push.sent] == ['token-user-2']

    @pytest.mark.reminder
    def test_no_opted_in_users_stops_early(self, reader, push, dispatcher):
        reader.sessions = [make_session()]
        reader.recipients = {'course-1': [make_recipient()]}
        job, _ = _reminder_job(reader, dispatcher, at(MONDAY, 8, 46))

        assert job.run()['processed'] == 0
        assert push.sent == []

    @pytest.mark.reminder
    def test_skips_users_without_access(self, reader, writer, push, dispatcher):
        reader.sessions = [make_session()]
        reader.recipients = {'course-1': [make_recipient(has_active_access=False)]}
        reader.enabled_users = ['user-1']
        job, _ = _reminder_job(reader, dispatcher, at(MONDAY, 8, 46))

        result = job.run()
        assert result['sent'] == 0
        assert push.sent == []
        assert writer.notifications == []

    @pytest.mark.reminder
    def test_undelivered_reminder_is_retried(self, reader, writer, push, dispatcher):
        reader.sessions = [make_session()]
        reader.recipients = {'course-1': [make_recipient(devices=[])]}
        reader.enabled_users = ['user-1']
        writer.fail_in_app = True
        job, clock = _reminder_job(reader, dispatcher, at(MONDAY, 8, 46))

        assert job.run()['failed'] == 1

        writer.fail_in_app = False
        clock.now = at(MONDAY, 8, 51)
        assert job.run()['sent'] == 1
        assert len(writer.notifications) == 1

    @pytest.mark.reminder
    def test_lead_time_per_user(self, reader, push, dispatcher):
        reader.sessions = [make_session()]
        reader.recipients = {'course-1': [
            make_recipient('early', lead_minutes=60),
            make_recipient('late', lead_minutes=15),
        ]}
        reader.enabled_users = ['early', 'late']
        job, _ = _reminder_job(reader, dispatcher, at(MONDAY, 8, 0))

        result = job.run()
        assert result['sent'] == 1
        assert result['not_due'] == 1
        assert push.sent[0]['token'] == 'token-early'
        assert 'starts in 60 minutes' in push.sent[0]['body']

    @pytest.mark.reminder
    def test_failing_session_does_not_stop_others(self, reader, push, writer, sms):
        class BrokenReader(type(reader)):
            def find_enrolled_recipients(self, session_id):
                if session_id == 'broken':
                    raise RuntimeError("query failed")
                return super().find_enrolled_recipients(session_id)

        broken_reader = BrokenReader()
        broken_reader.sessions = [make_session(id='broken'), make_session()]
        broken_reader.recipients = {'course-1': [make_recipient()]}
        broken_reader.enabled_users = ['user-1']
        dispatcher = NotificationDispatcher(broken_reader, writer, push, sms)
        job, _ = _reminder_job(broken_reader, dispatcher, at(MONDAY, 8, 46))

        result = job.run()
        assert result['failed'] == 1
        assert result['sent'] == 1

    @pytest.mark.reminder
    def test_uses_per_day_start_time(self, reader, push, dispatcher):
        reader.sessions = [make_session(day_times={'Monday': DayTimes('11:00 AM', '12:00 PM')})]
        reader.recipients = {'course-1': [make_recipient()]}
        reader.enabled_users = ['user-1']
        job, _ = _reminder_job(reader, dispatcher, at(MONDAY, 10, 45))

        assert job.run()['sent'] == 1
        assert 'Time: 11:00 AM' in push.sent[0]['body']
