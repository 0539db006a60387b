"""
Settlement engine: accepting an offer as one atomic exchange.

Order of operations:

1. Load and validate the offer, the acceptor and both sides' live stock.
2. Hand the whole exchange to the settle_offer database function. Under a
   lock on the offer row it re-checks the offer is active and unexpired,
   moves both sides' items, writes the history record and marks the offer
   completed, all in one transaction.

A failure at step 2 rolls every part back, so the offer is either completed
with its items moved and its history written, or untouched.
"""
from typing import Optional
from uuid import UUID

from core.exceptions import (
    BuyerInsufficientQuantity,
    BuyerItemNotFound,
    BuyerItemsRequired,
    CannotAcceptOwnOffer,
    InsufficientQuantity,
    ItemNotFound,
    OfferExpired,
    OfferNotActive,
    TradeError,
)
from core.logger import get_logger
from models.inventory import TransferLeg
from models.trade import ItemsExchanged, TradeItem, TradeOfferResponse, TradeStatus
from services.clock import Clock
from services.ledger import InventoryLedger, combine_stacks
from services.offers import OfferStore

logger = get_logger(__name__)


class SettlementEngine:

    def __init__(
        self,
        offers: OfferStore,
        ledger: InventoryLedger,
        clock: Clock,
    ):
        self.offers = offers
        self.ledger = ledger
        self.clock = clock

    def accept_offer(
        self,
        offer_id: UUID,
        acceptor_id: str,
        buyer_items: Optional[list[TradeItem]] = None,
    ) -> UUID:
        """Settle offer_id in favour of acceptor_id and return the history record id."""
        offer = self.offers.get_offer(offer_id)

        if offer.owner_id == acceptor_id:
            raise CannotAcceptOwnOffer(offer_id=str(offer_id))

        now = self.clock.now()
        if offer.is_expired_at(now):
            if offer.status == TradeStatus.ACTIVE:
                self.offers.expire_offer(offer_id)
            raise OfferExpired(offer_id=str(offer_id), expires_at=offer.expires_at.isoformat())

        if offer.status != TradeStatus.ACTIVE:
            raise OfferNotActive(offer_id=str(offer_id), status=offer.status.value)

        buyer_stacks = self._resolve_buyer_items(offer, acceptor_id, buyer_items)

        # The owner's stock may have changed since the offer was published.
        self.ledger.cover(
            offer.owner_id,
            offer.offering_items,
            not_found=InsufficientQuantity,
            short=InsufficientQuantity,
        )

        legs = [
            TransferLeg.for_stack(stack, offer.owner_id, acceptor_id)
            for stack in offer.offering_items
        ] + [
            TransferLeg.for_stack(stack, acceptor_id, offer.owner_id)
            for stack in buyer_stacks
        ]
        exchanged = ItemsExchanged(seller_items=list(offer.offering_items), buyer_items=buyer_stacks)

        try:
            history_id = self.offers.settle_offer(offer_id, acceptor_id, legs, exchanged, now)
        except (ItemNotFound, InsufficientQuantity) as e:
            logger.warning("Settlement of offer %s refused: %s", offer_id, e.code)
            raise self._shortfall(e, acceptor_id) from e
        except (OfferNotActive, OfferExpired) as e:
            raise self._lost_race(offer_id) from e

        logger.info(
            "Offer %s settled: %s -> %s (history %s)",
            offer_id, offer.owner_id, acceptor_id, history_id,
        )
        return history_id

    def _resolve_buyer_items(
        self,
        offer: TradeOfferResponse,
        acceptor_id: str,
        buyer_items: Optional[list[TradeItem]],
    ) -> list[TradeItem]:
        """
        Server-side snapshot of what the acceptor hands over.

        buyer_items only has to name every requested identity; quantities and
        descriptions come from the acceptor's own inventory rows.
        """
        requested = offer.requesting_items or []
        if not requested:
            return []

        if not buyer_items:
            raise BuyerItemsRequired(offer_id=str(offer.id))

        supplied = {stack.identity for stack in buyer_items}
        for item_type, item_id in combine_stacks(requested):
            if (item_type, item_id) not in supplied:
                raise BuyerItemNotFound(item_id=item_id, item_type=item_type.value)

        return self.ledger.cover(
            acceptor_id,
            requested,
            not_found=BuyerItemNotFound,
            short=BuyerInsufficientQuantity,
        )

    def _lost_race(self, offer_id: UUID) -> TradeError:
        """The error for an offer that left active while it was being settled."""
        current = self.offers.get_offer(offer_id)
        logger.warning("Offer %s changed to %s before it could settle", offer_id, current.status.value)
        if current.is_expired_at(self.clock.now()) or current.status == TradeStatus.EXPIRED:
            return OfferExpired(offer_id=str(offer_id), expires_at=current.expires_at.isoformat())
        return OfferNotActive(offer_id=str(offer_id), status=current.status.value)

    @staticmethod
    def _shortfall(error: TradeError, acceptor_id: str) -> TradeError:
        """Name the side whose stock fell short during the transfer."""
        details = dict(error.details)
        details.pop("offer_id", None)
        if details.get("user_id") == acceptor_id:
            if isinstance(error, ItemNotFound):
                return BuyerItemNotFound(**details)
            return BuyerInsufficientQuantity(**details)
        details.setdefault("available", 0)
        return InsufficientQuantity(**details)
