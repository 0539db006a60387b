"""
Offer store: trade offers and their lifecycle.

Cancellation and expiry go through compare_and_set, a single conditional
UPDATE on (id, status). An empty result means another transition got there
first. Completion only happens inside the settle_offer database function,
which takes the same row lock.
"""
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

from supabase import Client

from core.config import ALLOWED_EXPIRES_HOURS
from core.database import database_errors
from core.exceptions import (
    NotOwner,
    OfferNotActive,
    OfferNotFound,
    OfferingItemsRequired,
    TradeError,
    ValidationError,
)
from core.logger import get_logger
from models.inventory import TransferLeg
from models.trade import (
    ItemsExchanged,
    TradeItem,
    TradeItemType,
    TradeOfferResponse,
    TradeStatus,
)
from services.clock import Clock
from services.ledger import InventoryLedger

logger = get_logger(__name__)

OFFERS_TABLE = "trade_offers"


class OfferStore:

    def __init__(
        self,
        client: Client,
        ledger: InventoryLedger,
        clock: Clock,
        default_expires_hours: int = 24,
    ):
        self.client = client
        self.ledger = ledger
        self.clock = clock
        self.default_expires_hours = default_expires_hours

    # ============== Create ==============

    def create_offer(
        self,
        owner_id: str,
        offering_items: list[TradeItem],
        requesting_items: Optional[list[TradeItem]] = None,
        expires_hours: Optional[int] = None,
        message: Optional[str] = None,
    ) -> TradeOfferResponse:
        """
        Publish a new active offer.

        The owner's stock is only checked here, never debited; settlement checks
        it again at acceptance time.
        """
        if not offering_items:
            raise OfferingItemsRequired()

        if expires_hours is None:
            expires_hours = self.default_expires_hours
        if expires_hours not in ALLOWED_EXPIRES_HOURS:
            raise ValidationError(
                f"expires_hours must be one of {list(ALLOWED_EXPIRES_HOURS)}",
                expires_hours=expires_hours,
            )

        self._check_requested(requesting_items or [])
        offering_snapshot = self.ledger.cover(owner_id, offering_items)

        now = self.clock.now()
        data = {
            "owner_id": owner_id,
            "offering_items": [stack.model_dump(mode="json") for stack in offering_snapshot],
            "requesting_items": (
                [stack.model_dump(mode="json") for stack in requesting_items]
                if requesting_items else None
            ),
            "status": TradeStatus.ACTIVE.value,
            "expires_at": (now + timedelta(hours=expires_hours)).isoformat(),
            "created_at": now.isoformat(),
            "updated_at": now.isoformat(),
            "message": message or None,
        }

        with database_errors("create_offer"):
            result = self.client.table(OFFERS_TABLE).insert(data).execute()

        offer = self._offer(result.data[0])
        logger.info(
            "Offer %s created by %s (%d stack(s), expires in %dh)",
            offer.id, owner_id, len(offer.offering_items), expires_hours,
        )
        return offer

    def _check_requested(self, requesting_items: list[TradeItem]) -> None:
        """Requested normal items must exist in the catalogue; AI items are named by instance id."""
        normal_ids = []
        for stack in requesting_items:
            if stack.item_type == TradeItemType.AI:
                try:
                    UUID(stack.item_id)
                except ValueError:
                    raise ValidationError(
                        "AI items are requested by instance id",
                        item_id=stack.item_id,
                        item_type=stack.item_type.value,
                    )
            else:
                normal_ids.append(stack.item_id)

        known = self.ledger.item_definitions(normal_ids)
        for item_id in normal_ids:
            if item_id not in known:
                raise ValidationError(
                    "Requested item does not exist",
                    item_id=item_id,
                    item_type=TradeItemType.NORMAL.value,
                )

    def _offer(self, row: dict) -> TradeOfferResponse:
        return TradeOfferResponse.from_row(row, self.clock.now())

    # ============== Reads ==============

    def get_offer(self, offer_id: UUID) -> TradeOfferResponse:
        with database_errors("get_offer"):
            result = self.client.table(OFFERS_TABLE).select("*").eq(
                "id", str(offer_id)
            ).execute()

        if not result.data:
            raise OfferNotFound(offer_id=str(offer_id))

        return self._offer(result.data[0])

    def list_market(self, caller_id: str) -> list[TradeOfferResponse]:
        """Active, unexpired offers owned by anyone but the caller, newest first."""
        now = self.clock.now()
        with database_errors("list_market"):
            result = self.client.table(OFFERS_TABLE).select("*").eq(
                "status", TradeStatus.ACTIVE.value
            ).gte("expires_at", now.isoformat()).neq(
                "owner_id", caller_id
            ).order("created_at", desc=True).execute()

        return [self._offer(row) for row in result.data]

    def list_mine(self, owner_id: str) -> list[TradeOfferResponse]:
        """All of the owner's offers in any status, newest first."""
        self.expire_stale(owner_id=owner_id)

        with database_errors("list_mine"):
            result = self.client.table(OFFERS_TABLE).select("*").eq(
                "owner_id", owner_id
            ).order("created_at", desc=True).execute()

        return [self._offer(row) for row in result.data]

    # ============== Transitions ==============

    def cancel_offer(self, offer_id: UUID, caller_id: str) -> None:
        offer = self.get_offer(offer_id)

        if offer.owner_id != caller_id:
            raise NotOwner(offer_id=str(offer_id))

        if offer.status != TradeStatus.ACTIVE:
            raise OfferNotActive(offer_id=str(offer_id), status=offer.status.value)

        now = self.clock.now()
        if offer.is_expired_at(now):
            self.expire_offer(offer_id)
            raise OfferNotActive(offer_id=str(offer_id), status=TradeStatus.EXPIRED.value)

        row = self.compare_and_set(offer_id, {
            "status": TradeStatus.CANCELLED.value,
            "updated_at": now.isoformat(),
        })

        if row is None:
            current = self.get_offer(offer_id)
            logger.warning("Cancel of offer %s lost to a concurrent %s", offer_id, current.status.value)
            raise OfferNotActive(offer_id=str(offer_id), status=current.status.value)

        logger.info("Offer %s cancelled by owner", offer_id)

    def expire_offer(self, offer_id: UUID) -> bool:
        """Move one active offer past its expiry to expired. False if it was not."""
        now = self.clock.now()
        row = self.compare_and_set(
            offer_id,
            {"status": TradeStatus.EXPIRED.value, "updated_at": now.isoformat()},
            expired_before=now,
        )
        if row is not None:
            logger.info("Offer %s expired", offer_id)
        return row is not None

    def expire_stale(self, owner_id: Optional[str] = None) -> int:
        """Expire every active offer whose expiry has passed. Returns how many."""
        now = self.clock.now()
        with database_errors("expire_stale"):
            query = self.client.table(OFFERS_TABLE).update({
                "status": TradeStatus.EXPIRED.value,
                "updated_at": now.isoformat(),
            }).eq("status", TradeStatus.ACTIVE.value).lt("expires_at", now.isoformat())

            if owner_id is not None:
                query = query.eq("owner_id", owner_id)

            result = query.execute()

        expired = len(result.data or [])
        if expired:
            logger.info("Expired %d stale offer(s)", expired)
        return expired

    def settle_offer(
        self,
        offer_id: UUID,
        acceptor_id: str,
        legs: list[TransferLeg],
        items_exchanged: ItemsExchanged,
        completed_at: datetime,
    ) -> UUID:
        """
        Complete an active offer in one database transaction.

        The settle_offer function locks the offer row, re-checks it is active and
        unexpired at completed_at, applies every leg, writes the history record
        and marks the offer completed. Any failure leaves all four untouched and
        comes back as the matching TradeError. Returns the history record id.
        """
        with database_errors("settle_offer"):
            result = self.client.rpc("settle_offer", {
                "p_offer_id": str(offer_id),
                "p_acceptor_id": acceptor_id,
                "p_legs": [leg.model_dump(mode="json") for leg in legs],
                "p_items_exchanged": items_exchanged.model_dump(mode="json"),
                "p_completed_at": completed_at.isoformat(),
            }).execute()

        outcome = result.data or {}
        if not outcome.get("success"):
            raise TradeError.from_code(
                outcome.get("error", "transfer_failed"),
                offer_id=str(offer_id),
                status=outcome.get("status"),
                user_id=outcome.get("user_id"),
                item_id=outcome.get("item_id"),
                available=outcome.get("available"),
            )

        logger.info("Offer %s completed by %s", offer_id, acceptor_id)
        return UUID(outcome["history_id"])

    def compare_and_set(
        self,
        offer_id: UUID,
        updates: dict[str, Any],
        expected: TradeStatus = TradeStatus.ACTIVE,
        expired_before: Optional[datetime] = None,
    ) -> Optional[dict]:
        """
        Apply updates only while the offer is still in the expected status.

        expired_before additionally requires expires_at < the given time.
        Returns the updated row, or None when the swap lost.
        """
        with database_errors("offer_compare_and_set"):
            query = self.client.table(OFFERS_TABLE).update(updates).eq(
                "id", str(offer_id)
            ).eq("status", expected.value)

            if expired_before is not None:
                query = query.lt("expires_at", expired_before.isoformat())

            result = query.execute()

        return result.data[0] if result.data else None
