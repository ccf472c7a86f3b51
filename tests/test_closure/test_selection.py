"""
Tests for offer ranking, selection and the backup queue
"""

from datetime import timedelta

import pytest

from order_lifecycle.closure.models import BackupQueue
from order_lifecycle.closure.pool import FixedBuyerPool
from order_lifecycle.closure.selection import rank_offers, select_offers
from tests.helpers import NOW, PHONE, build_offer


def scenario_pool():
    """A..E registered one second apart, listed out of price order"""
    return [
        build_offer("D", "1099", NOW + timedelta(seconds=3)),
        build_offer("B", "1049", NOW + timedelta(seconds=1)),
        build_offer("E", "1129", NOW + timedelta(seconds=4)),
        build_offer("A", "999", NOW),
        build_offer("C", "1079", NOW + timedelta(seconds=2)),
    ]


class TestRanking:
    def test_lowest_price_first(self) -> None:
        ranked = rank_offers(scenario_pool())

        assert [o.offer_id for o in ranked] == ["A", "B", "C", "D", "E"]

    def test_price_tie_goes_to_earliest_offer(self) -> None:
        later = build_offer("late", "999", NOW + timedelta(minutes=5))
        earlier = build_offer("early", "999", NOW)

        assert [o.offer_id for o in rank_offers([later, earlier])] == ["early", "late"]

    def test_full_tie_broken_by_offer_id(self) -> None:
        pool = [build_offer("y", "999"), build_offer("x", "999")]

        assert [o.offer_id for o in rank_offers(pool)] == ["x", "y"]


class TestSelectOffers:
    def test_scenario_selection(self) -> None:
        selection = select_offers(scenario_pool(), backup_limit=3)

        assert selection.selected.offer_id == "A"
        assert selection.backups.offer_ids == ("B", "C", "D")
        assert [o.offer_id for o in selection.not_selected] == ["E"]

    def test_selected_never_in_backups(self) -> None:
        selection = select_offers(scenario_pool(), backup_limit=3)

        assert selection.selected.offer_id not in selection.backups

    def test_small_pool_has_short_queue(self) -> None:
        pool = [build_offer("B", "1049"), build_offer("A", "999")]

        selection = select_offers(pool, backup_limit=3)

        assert selection.selected.offer_id == "A"
        assert selection.backups.offer_ids == ("B",)
        assert selection.not_selected == []

    def test_single_offer_has_empty_queue(self) -> None:
        selection = select_offers([build_offer("A", "999")], backup_limit=3)

        assert selection.selected.offer_id == "A"
        assert not selection.backups

    def test_empty_pool_selects_nothing(self) -> None:
        selection = select_offers([], backup_limit=3)

        assert selection.selected is None
        assert len(selection.backups) == 0

    def test_backup_limit_is_configurable(self) -> None:
        selection = select_offers(scenario_pool(), backup_limit=1)

        assert selection.backups.offer_ids == ("B",)
        assert [o.offer_id for o in selection.not_selected] == ["C", "D", "E"]

    def test_selection_ignores_input_order(self) -> None:
        pool = scenario_pool()

        forward = select_offers(pool, backup_limit=3)
        backward = select_offers(list(reversed(pool)), backup_limit=3)

        assert forward.selected.offer_id == backward.selected.offer_id
        assert forward.backups == backward.backups


class TestBackupQueue:
    def test_pop_front_returns_new_queue(self) -> None:
        queue = BackupQueue(offer_ids=("B", "C", "D"))

        promoted, rest = queue.pop_front()

        assert promoted == "B"
        assert rest.offer_ids == ("C", "D")
        assert queue.offer_ids == ("B", "C", "D")

    def test_peek_and_contains(self) -> None:
        queue = BackupQueue(offer_ids=("C", "D"))

        assert queue.peek() == "C"
        assert "D" in queue
        assert "A" not in queue
        assert BackupQueue().peek() is None

    def test_pop_from_empty_raises(self) -> None:
        with pytest.raises(IndexError):
            BackupQueue().pop_front()


class TestBuyerPool:
    def test_fixed_pool(self) -> None:
        assert FixedBuyerPool(42).pool_size(PHONE) == 42

    def test_negative_pool_rejected(self) -> None:
        with pytest.raises(ValueError):
            FixedBuyerPool(-1)
