"""
Inventory ledger backed by the Supabase inventory tables.

Reads resolve a user's own rows: normal stacks by item-definition id in
inventory_items, AI stacks by instance id in ai_inventory_items. Writes go
through the transfer_items database function, which applies a batch of
transfer legs in one transaction or not at all.
"""
from typing import Iterable, Optional
from uuid import UUID

from supabase import Client

from core.database import database_errors
from core.exceptions import InsufficientQuantity, ItemNotFound, TradeError
from core.logger import get_logger
from models.inventory import (
    AIInventoryItemRow,
    Holding,
    InventoryItemRow,
    ItemDefinition,
    TransferLeg,
)
from models.trade import TradeItem, TradeItemType

logger = get_logger(__name__)


def combine_stacks(stacks: Iterable[TradeItem]) -> dict[tuple[TradeItemType, str], int]:
    """Total quantity per stack identity, in first-seen order."""
    totals: dict[tuple[TradeItemType, str], int] = {}
    for stack in stacks:
        totals[stack.identity] = totals.get(stack.identity, 0) + stack.quantity
    return totals


class InventoryLedger:

    def __init__(self, client: Client):
        self.client = client

    def cover(
        self,
        user_id: str,
        stacks: Iterable[TradeItem],
        not_found: type[TradeError] = ItemNotFound,
        short: type[TradeError] = InsufficientQuantity,
    ) -> list[TradeItem]:
        """
        Check that user_id currently holds every stack.

        Returns one server-side snapshot per identity (duplicates summed). Raises
        not_found for an identity the user holds none of, short when the held
        quantity is below what is needed.
        """
        snapshots = []
        for (item_type, item_id), needed in combine_stacks(stacks).items():
            holding = self.holding(user_id, item_type, item_id)
            if holding is None:
                raise not_found(
                    item_id=item_id,
                    item_type=item_type.value,
                    requested=needed,
                    available=0,
                )
            if holding.available < needed:
                raise short(
                    item_id=item_id,
                    item_type=item_type.value,
                    item_name=holding.item_name,
                    requested=needed,
                    available=holding.available,
                )
            snapshots.append(holding.as_stack(needed))
        return snapshots

    # ============== Reads ==============

    def holding(self, user_id: str, item_type: TradeItemType, item_id: str) -> Optional[Holding]:
        """What user_id holds of one stack identity, or None if nothing."""
        if item_type == TradeItemType.AI:
            return self._ai_holding(user_id, item_id)
        return self._normal_holding(user_id, item_id)

    def get_quantity(self, user_id: str, item_type: TradeItemType, item_id: str) -> int:
        holding = self.holding(user_id, item_type, item_id)
        return holding.available if holding else 0

    def list_holdings(self, user_id: str) -> list[Holding]:
        """Everything user_id holds, normal stacks first."""
        with database_errors("list_holdings"):
            normal_result = self.client.table("inventory_items").select("*").eq(
                "user_id", user_id
            ).execute()
            ai_result = self.client.table("ai_inventory_items").select("*").eq(
                "user_id", user_id
            ).execute()

        totals: dict[str, int] = {}
        for row in (InventoryItemRow.model_validate(r) for r in normal_result.data):
            totals[row.item_id] = totals.get(row.item_id, 0) + row.quantity

        definitions = self.item_definitions(totals.keys())
        holdings = [
            self._normal_from_definition(user_id, item_id, quantity, definitions.get(item_id))
            for item_id, quantity in sorted(totals.items())
            if quantity > 0
        ]

        for row in (AIInventoryItemRow.model_validate(r) for r in ai_result.data):
            if row.quantity > 0:
                holdings.append(self._ai_from_row(row))

        return holdings

    # ============== Writes ==============

    def transfer(self, legs: list[TransferLeg]) -> None:
        """
        Apply every leg atomically.

        Raises the typed shortfall (ItemNotFound / InsufficientQuantity) reported
        by the database function, with the user_id whose stock fell short.
        """
        if not legs:
            return

        payload = [leg.model_dump(mode="json") for leg in legs]
        with database_errors("transfer_items"):
            result = self.client.rpc("transfer_items", {"p_legs": payload}).execute()

        outcome = result.data or {}
        if not outcome.get("success"):
            error = TradeError.from_code(
                outcome.get("error"),
                user_id=outcome.get("user_id"),
                item_id=outcome.get("item_id"),
                available=outcome.get("available"),
            )
            logger.warning("Ledger transfer rejected: %r", error)
            raise error

        logger.info("Ledger transferred %d leg(s)", len(legs))

    # ============== Helpers ==============

    def _normal_holding(self, user_id: str, item_id: str) -> Optional[Holding]:
        with database_errors("inventory_lookup"):
            result = self.client.table("inventory_items").select("*").eq(
                "user_id", user_id
            ).eq("item_id", item_id).execute()

        available = sum(InventoryItemRow.model_validate(r).quantity for r in result.data)
        if available <= 0:
            return None

        definition = self.item_definitions([item_id]).get(item_id)
        return self._normal_from_definition(user_id, item_id, available, definition)

    def _ai_holding(self, user_id: str, item_id: str) -> Optional[Holding]:
        try:
            UUID(item_id)
        except ValueError:
            return None

        with database_errors("ai_inventory_lookup"):
            result = self.client.table("ai_inventory_items").select("*").eq(
                "id", item_id
            ).eq("user_id", user_id).execute()

        if not result.data:
            return None

        row = AIInventoryItemRow.model_validate(result.data[0])
        if row.quantity <= 0:
            return None
        return self._ai_from_row(row)

    def item_definitions(self, item_ids: Iterable[str]) -> dict[str, ItemDefinition]:
        """Catalogue entries for the given normal item ids, keyed by id. Unknown ids are absent."""
        ids = list(item_ids)
        if not ids:
            return {}

        with database_errors("item_definitions_lookup"):
            result = self.client.table("item_definitions").select("*").in_("id", ids).execute()

        return {row["id"]: ItemDefinition.model_validate(row) for row in result.data}

    @staticmethod
    def _normal_from_definition(
        user_id: str,
        item_id: str,
        available: int,
        definition: Optional[ItemDefinition],
    ) -> Holding:
        return Holding(
            user_id=user_id,
            item_type=TradeItemType.NORMAL,
            item_id=item_id,
            item_name=definition.name if definition else item_id,
            available=available,
            category=definition.category if definition else None,
            rarity=definition.rarity if definition else None,
            icon=definition.icon if definition else None,
        )

    @staticmethod
    def _ai_from_row(row: AIInventoryItemRow) -> Holding:
        return Holding(
            user_id=row.user_id,
            item_type=TradeItemType.AI,
            item_id=str(row.id),
            item_name=row.name,
            available=row.quantity,
            category=row.category,
            rarity=row.rarity,
            icon=row.icon,
        )
