# backend/services/history.py
from typing import Optional
from uuid import UUID

from supabase import Client

from core.database import database_errors
from core.exceptions import AlreadyRated, HistoryNotFound, InvalidRating, NotParticipant
from core.logger import get_logger
from models.trade import TradeHistoryResponse

logger = get_logger(__name__)

HISTORY_TABLE = "trade_history"

MIN_RATING = 1
MAX_RATING = 5


def count_pending_ratings(records: list[TradeHistoryResponse], user_id: str) -> int:
    """Records where user_id has not yet rated the other side."""
    return sum(
        1 for record in records
        if (record.seller_id == user_id and record.buyer_rating is None)
        or (record.buyer_id == user_id and record.seller_rating is None)
    )


class HistoryStore:
    """Completed exchanges and the ratings participants leave on them."""

    def __init__(self, client: Client):
        self.client = client

    def get_history(self, history_id: UUID) -> TradeHistoryResponse:
        with database_errors("get_history"):
            result = self.client.table(HISTORY_TABLE).select("*").eq(
                "id", str(history_id)
            ).execute()

        if not result.data:
            raise HistoryNotFound(history_id=str(history_id))

        return TradeHistoryResponse.model_validate(result.data[0])

    def list_history(self, user_id: str) -> list[TradeHistoryResponse]:
        """Every exchange user_id took part in, as seller or buyer, newest first."""
        with database_errors("list_history"):
            result = self.client.table(HISTORY_TABLE).select("*").or_(
                f"seller_id.eq.{user_id},buyer_id.eq.{user_id}"
            ).order("completed_at", desc=True).execute()

        return [TradeHistoryResponse.model_validate(row) for row in result.data]

    def pending_rating_count(self, user_id: str) -> int:
        """How many of user_id's trades still wait for user_id to rate the counterpart."""
        return count_pending_ratings(self.list_history(user_id), user_id)

    def rate_trade(
        self,
        history_id: UUID,
        rater_id: str,
        rating: int,
        comment: Optional[str] = None,
    ) -> None:
        """
        Rate the counterpart of a completed trade.

        The seller fills buyer_rating/buyer_comment, the buyer fills
        seller_rating/seller_comment. Each slot is written at most once; a
        second attempt fails with AlreadyRated and leaves the first value.
        """
        if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
            raise InvalidRating(rating=rating)

        history = self.get_history(history_id)

        if rater_id == history.seller_id:
            rating_column, comment_column = "buyer_rating", "buyer_comment"
        elif rater_id == history.buyer_id:
            rating_column, comment_column = "seller_rating", "seller_comment"
        else:
            raise NotParticipant(history_id=str(history_id))

        if getattr(history, rating_column) is not None:
            raise AlreadyRated(history_id=str(history_id))

        with database_errors("rate_trade"):
            result = self.client.table(HISTORY_TABLE).update({
                rating_column: rating,
                comment_column: comment or None,
            }).eq("id", str(history_id)).is_(rating_column, "null").execute()

        if not result.data:
            logger.warning("Rating of history %s by %s lost to a concurrent rating", history_id, rater_id)
            raise AlreadyRated(history_id=str(history_id))

        logger.info("History %s rated %d by %s", history_id, rating, rater_id)
