# backend/services/expiry.py
import asyncio

from core.exceptions import DatabaseError
from core.logger import get_logger
from services.offers import OfferStore

logger = get_logger(__name__)


class OfferExpirySweeper:
    """
    Moves active offers past their expiry to expired.

    Uses the same status compare-and-swap as settlement, so an offer that is
    being accepted concurrently is either settled or expired, never both.
    """

    def __init__(self, offers: OfferStore):
        self.offers = offers

    def sweep(self) -> int:
        return self.offers.expire_stale()

    async def run(self, interval_seconds: int) -> None:
        """Sweep every interval_seconds until cancelled."""
        logger.info("Offer expiry sweeper started (every %ss)", interval_seconds)
        try:
            while True:
                try:
                    await asyncio.to_thread(self.sweep)
                except DatabaseError as e:
                    # Next tick retries; expiry is also enforced lazily on reads.
                    logger.error("Offer expiry sweep failed: %s", e.message)
                await asyncio.sleep(interval_seconds)
        except asyncio.CancelledError:
            logger.info("Offer expiry sweeper stopped")
            raise
