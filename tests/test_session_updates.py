"""
Session update tests - temporary/permanent edits and change notifications
"""

import pytest
from datetime import timedelta

from conftest import MONDAY, TUESDAY, at, make_recipient, make_session
from models import ChangeEntry, ChangeSet, DayTimes, EditKind, NOTIFICATION_TYPE_COURSE_UPDATE
from notify.change_detector import detect_changes
from notify.session_updates import SessionUpdateNotifier, build_change_intent, change_title, prepare_edit


class TestPrepareEdit:
    """Post-edit session state"""

    @pytest.mark.changes
    def test_temporary_edit_snapshots_and_expires(self):
        current = make_session()
        saved_at = at(MONDAY, 7, 0)
        edited = prepare_edit(current, {'venue': 'Hall B'}, EditKind.TEMPORARY, saved_at)

        assert edited.venue == 'Hall B'
        assert edited.original_values == current.snapshot()
        assert edited.temporary_edit_expiry == saved_at + timedelta(hours=24)
        assert edited.has_temporary_edit

    @pytest.mark.changes
    def test_second_temporary_edit_keeps_first_snapshot(self):
        current = make_session()
        first = prepare_edit(current, {'venue': 'Hall B'}, EditKind.TEMPORARY, at(MONDAY, 7, 0))
        second = prepare_edit(first, {'venue': 'Hall C'}, EditKind.TEMPORARY, at(MONDAY, 12, 0))

        assert second.venue == 'Hall C'
        assert second.original_values['venue'] == 'Hall A'
        assert second.temporary_edit_expiry == at(TUESDAY, 12, 0)

    @pytest.mark.changes
    def test_permanent_edit_clears_temporary_state(self):
        temporary = prepare_edit(make_session(), {'venue': 'Hall B'}, EditKind.TEMPORARY, at(MONDAY, 7, 0))
        permanent = prepare_edit(temporary, {'name': 'Algorithms'}, EditKind.PERMANENT, at(MONDAY, 8, 0))

        assert permanent.name == 'Algorithms'
        assert permanent.venue == 'Hall B'
        assert permanent.original_values is None
        assert permanent.temporary_edit_expiry is None

    @pytest.mark.changes
    def test_per_day_values_mirror_first_day(self):
        edited = prepare_edit(
            make_session(),
            {
                'days': ['Tuesday', 'Thursday'],
                'day_times': {'Tuesday': DayTimes('1:00 PM', '2:00 PM'), 'Thursday': DayTimes('3:00 PM', '4:00 PM')},
                'day_venues': {'Tuesday': 'Lab 1', 'Thursday': 'Lab 2'},
            },
            EditKind.PERMANENT,
        )
        assert (edited.start_time, edited.end_time) == ('1:00 PM', '2:00 PM')
        assert edited.venue == 'Lab 1'

    @pytest.mark.changes
    def test_unknown_field_is_rejected(self):
        with pytest.raises(ValueError):
            prepare_edit(make_session(), {'instructor': 'Dr. Mensah'}, EditKind.PERMANENT)

    @pytest.mark.changes
    def test_revert_restores_snapshot(self):
        current = make_session()
        edited = prepare_edit(current, {'venue': 'Hall B', 'start_time': '11:00 AM'},
                              EditKind.TEMPORARY, at(MONDAY, 7, 0))
        restored = edited.reverted()

        assert restored.snapshot() == current.snapshot()
        assert restored.original_values is None
        assert restored.temporary_edit_expiry is None


class TestChangeIntent:
    """Titles and channel texts for change notifications"""

    @pytest.mark.changes
    def test_titles(self):
        def entry(message):
            return ChangeSet(entries=[ChangeEntry('x', None, None, message)])

        assert change_title(ChangeSet(is_cancelled=True)) == 'Class Cancelled'
        assert change_title(entry('Time changed to 1:00 PM - 2:00 PM')) == 'Time Changed'
        assert change_title(entry('Venue changed to Hall B')) == 'Venue Changed'
        assert change_title(entry('Days changed to Monday')) == 'Days Changed'
        assert change_title(entry('Course name changed to X')) == 'Course Name Changed'
        assert change_title(entry('Credit hours changed to 2')) == 'Credit Hours Changed'
        assert change_title(entry('Course rep changed to Esi')) == 'Course Updated'

    @pytest.mark.changes
    def test_texts_for_regular_change(self):
        session = make_session(name='Algorithms', venue='Hall B')
        changes = detect_changes(make_session(), session, at(MONDAY, 7, 0))
        intent = build_change_intent(session, changes)
        recipient = make_recipient()

        assert intent.type == NOTIFICATION_TYPE_COURSE_UPDATE
        assert intent.title == 'Course Name Changed'
        assert intent.in_app_text(recipient) == (
            "Hi Ama, Algorithms has been updated:\n\n"
            "• Course name changed to Algorithms\n"
            "• Venue changed to Hall B"
        )
        assert intent.push_text(recipient) == (
            "Hi Ama, Algorithms has been updated. Name changed to Algorithms, Venue changed to Hall B"
        )
        assert intent.sms_eligible is False
        assert intent.payload == {
            'type': NOTIFICATION_TYPE_COURSE_UPDATE,
            'courseId': 'course-1',
            'courseName': 'Algorithms',
        }

    @pytest.mark.changes
    def test_urgent_change_sms(self):
        new = make_session(venue='Hall B')
        changes = detect_changes(make_session(), new, at(MONDAY, 8, 50))
        intent = build_change_intent(new, changes)

        assert intent.sms_eligible is True
        assert intent.sms_text(make_recipient()) == "Hi Ama, URGENT: Data Structures - Venue changed to Hall B."

    @pytest.mark.changes
    def test_cancellation_sms(self):
        new = make_session(venue='')
        changes = detect_changes(make_session(), new, at(MONDAY, 8, 50))
        intent = build_change_intent(new, changes)

        assert intent.title == 'Class Cancelled'
        assert intent.sms_text(make_recipient()) == "Hi Ama, URGENT: Data Structures class CANCELLED."

    @pytest.mark.changes
    def test_long_sms_is_truncated(self):
        new = make_session(name='Advanced Topics in ' + 'Distributed Systems ' * 8, venue='Hall B')
        changes = detect_changes(make_session(name=new.name), new, at(MONDAY, 8, 50))
        sms = build_change_intent(new, changes).sms_body

        assert len(sms) == 160
        assert sms.endswith('...')


class TestSessionUpdateNotifier:
    """Detect, then dispatch to enrolled students"""

    @pytest.mark.changes
    def test_edit_notifies_enrolled_students(self, reader, writer, push, sms, dispatcher):
        reader.recipients = {'course-1': [make_recipient('user-1'), make_recipient('user-2')]}
        notifier = SessionUpdateNotifier(reader, dispatcher)

        edited, changes, report = notifier.apply_edit(
            make_session(), {'venue': 'Hall B'}, EditKind.PERMANENT, at(MONDAY, 7, 0)
        )

        assert edited.venue == 'Hall B'
        assert changes.messages == ['Venue changed to Hall B']
        assert report.in_app_written == 2
        assert report.push_sent == 2
        assert sms.sent == []

    @pytest.mark.changes
    def test_urgent_edit_sends_sms(self, reader, writer, sms, dispatcher):
        reader.recipients = {'course-1': [make_recipient()]}
        notifier = SessionUpdateNotifier(reader, dispatcher)

        _, changes, report = notifier.apply_edit(
            make_session(), {'venue': 'Hall B'}, EditKind.TEMPORARY, at(MONDAY, 8, 45)
        )

        assert changes.is_urgent is True
        assert report.sms_sent == 1
        assert sms.sent[0][0] == '+233 24-123-4567'
        assert writer.sms_logs[0]['type'] == NOTIFICATION_TYPE_COURSE_UPDATE

    @pytest.mark.changes
    def test_no_changes_sends_nothing(self, reader, writer, dispatcher):
        reader.recipients = {'course-1': [make_recipient()]}
        notifier = SessionUpdateNotifier(reader, dispatcher)

        changes, report = notifier.notify_change(make_session(), make_session(), at(MONDAY, 7, 0))

        assert changes.is_empty
        assert report is None
        assert writer.notifications == []

    @pytest.mark.changes
    def test_no_enrolled_students(self, reader, dispatcher):
        notifier = SessionUpdateNotifier(reader, dispatcher)
        changes, report = notifier.notify_change(make_session(), make_session(venue='Hall B'), at(MONDAY, 7, 0))
        assert changes.fields == ['venue']
        assert report is None
