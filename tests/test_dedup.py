"""
Dedup ledger tests - one reminder per user, session and local day
"""

import pytest
from datetime import timedelta

from conftest import MONDAY, TUESDAY, FixedClock, at
from notify.dedup import DedupLedger


class TestDedupLedger:
    """Keys are scoped to the current local calendar day"""

    @pytest.mark.dedup
    def test_mark_then_check(self):
        ledger = DedupLedger(clock=FixedClock(at(MONDAY, 8, 45)))
        assert ledger.was_sent('user-1', 'course-1') is False

        ledger.mark_sent('user-1', 'course-1')
        assert ledger.was_sent('user-1', 'course-1') is True
        assert ledger.was_sent('user-2', 'course-1') is False
        assert ledger.was_sent('user-1', 'course-2') is False

    @pytest.mark.dedup
    def test_marking_twice_keeps_one_key(self):
        ledger = DedupLedger(clock=FixedClock(at(MONDAY, 8, 45)))
        ledger.mark_sent('user-1', 'course-1')
        ledger.mark_sent('user-1', 'course-1')
        assert len(ledger) == 1

    @pytest.mark.dedup
    def test_new_day_is_not_sent(self):
        clock = FixedClock(at(MONDAY, 23, 50))
        ledger = DedupLedger(clock=clock)
        ledger.mark_sent('user-1', 'course-1')

        clock.now = at(TUESDAY, 0, 5)
        assert ledger.was_sent('user-1', 'course-1') is False

    @pytest.mark.dedup
    def test_purge_drops_previous_days_only(self):
        clock = FixedClock(at(MONDAY, 9, 0))
        ledger = DedupLedger(clock=clock)
        ledger.mark_sent('user-1', 'course-1')
        ledger.mark_sent('user-2', 'course-1')

        clock.now = at(TUESDAY, 9, 0)
        ledger.mark_sent('user-1', 'course-1')

        assert ledger.purge_stale() == 2
        assert len(ledger) == 1
        assert ledger.was_sent('user-1', 'course-1') is True

    @pytest.mark.dedup
    def test_purge_on_same_day_keeps_everything(self):
        clock = FixedClock(at(MONDAY, 9, 0))
        ledger = DedupLedger(clock=clock)
        ledger.mark_sent('user-1', 'course-1')

        clock.now = at(MONDAY, 9, 0) + timedelta(hours=10)
        assert ledger.purge_stale() == 0
        assert ledger.was_sent('user-1', 'course-1') is True
