"""Tests for trade history records and ratings."""
from uuid import uuid4

import pytest

from core.exceptions import AlreadyRated, HistoryNotFound, InvalidRating, NotParticipant
from services.history import count_pending_ratings
from trade_helpers import ACCEPTOR, BYSTANDER, OWNER, stack


@pytest.fixture
def settled(engine, give, water_for_iron):
    """History id of OWNER's water traded to ACCEPTOR for iron."""
    give(ACCEPTOR, "iron_ore", 10)
    return engine.accept_offer(water_for_iron.id, ACCEPTOR, [stack("iron_ore", 10)])


class TestGetHistory:

    def test_settled_exchange_is_recorded(self, history, clock, water_for_iron, settled):
        record = history.get_history(settled)

        assert record.offer_id == water_for_iron.id
        assert record.seller_id == OWNER
        assert record.buyer_id == ACCEPTOR
        assert record.completed_at == clock.now()
        assert record.items_exchanged.seller_items[0].item_name == "Purified Water"
        assert record.items_exchanged.buyer_items[0].item_id == "iron_ore"
        assert record.seller_rating is None
        assert record.buyer_rating is None

    def test_get_history_not_found(self, history):
        with pytest.raises(HistoryNotFound):
            history.get_history(uuid4())


class TestListHistory:

    def test_both_participants_see_the_record(self, history, settled):
        assert [r.id for r in history.list_history(OWNER)] == [settled]
        assert [r.id for r in history.list_history(ACCEPTOR)] == [settled]
        assert history.list_history(BYSTANDER) == []

    def test_newest_first(self, history, engine, offers, give, clock, settled):
        give(BYSTANDER, "bandage", 1)
        clock.advance(hours=1)
        offer = offers.create_offer(owner_id=BYSTANDER, offering_items=[stack("bandage", 1)])
        later = engine.accept_offer(offer.id, OWNER)

        assert [r.id for r in history.list_history(OWNER)] == [later, settled]


class TestRateTrade:

    def test_seller_rates_buyer(self, history, settled):
        history.rate_trade(settled, OWNER, 5, "Smooth trade")

        record = history.get_history(settled)
        assert record.buyer_rating == 5
        assert record.buyer_comment == "Smooth trade"
        assert record.seller_rating is None

    def test_buyer_rates_seller(self, history, settled):
        history.rate_trade(settled, ACCEPTOR, 2)

        record = history.get_history(settled)
        assert record.seller_rating == 2
        assert record.seller_comment is None
        assert record.buyer_rating is None

    def test_both_sides_rate(self, history, settled):
        history.rate_trade(settled, OWNER, 4)
        history.rate_trade(settled, ACCEPTOR, 3)

        record = history.get_history(settled)
        assert (record.buyer_rating, record.seller_rating) == (4, 3)

    def test_already_rated_keeps_first_value(self, history, settled):
        history.rate_trade(settled, OWNER, 5, "Great")

        with pytest.raises(AlreadyRated):
            history.rate_trade(settled, OWNER, 1, "Changed my mind")

        record = history.get_history(settled)
        assert record.buyer_rating == 5
        assert record.buyer_comment == "Great"

    def test_non_participant(self, history, settled):
        with pytest.raises(NotParticipant):
            history.rate_trade(settled, BYSTANDER, 4)

    @pytest.mark.parametrize("rating", [0, 6, -1, True])
    def test_invalid_rating(self, history, settled, rating):
        with pytest.raises(InvalidRating):
            history.rate_trade(settled, OWNER, rating)

        assert history.get_history(settled).buyer_rating is None

    def test_invalid_rating_checked_before_lookup(self, history):
        with pytest.raises(InvalidRating):
            history.rate_trade(uuid4(), OWNER, 9)

    def test_rate_unknown_history(self, history):
        with pytest.raises(HistoryNotFound):
            history.rate_trade(uuid4(), OWNER, 3)

    def test_empty_comment_is_stored_as_null(self, history, settled):
        history.rate_trade(settled, ACCEPTOR, 4, "")

        assert history.get_history(settled).seller_comment is None

    def test_concurrent_rating_loses(self, history, fake_db, settled):
        """The slot is only written while still empty."""
        def rate_elsewhere():
            for row in fake_db.tables["trade_history"]:
                row["buyer_rating"] = 3

        fake_db.on_next_execute(
            lambda q: q.table_name == "trade_history" and q.action == "update",
            rate_elsewhere,
        )

        with pytest.raises(AlreadyRated):
            history.rate_trade(settled, OWNER, 5)

        assert history.get_history(settled).buyer_rating == 3


class TestPendingRatings:

    def test_pending_until_rated(self, history, settled):
        assert history.pending_rating_count(OWNER) == 1
        assert history.pending_rating_count(ACCEPTOR) == 1

        history.rate_trade(settled, OWNER, 5)

        assert history.pending_rating_count(OWNER) == 0
        assert history.pending_rating_count(ACCEPTOR) == 1

    def test_no_trades(self, history):
        assert history.pending_rating_count(BYSTANDER) == 0

    def test_count_pending_ratings(self, history, settled):
        records = history.list_history(ACCEPTOR)

        assert count_pending_ratings(records, ACCEPTOR) == 1
        assert count_pending_ratings(records, BYSTANDER) == 0
