# backend/models/inventory.py
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional

from models.trade import TradeItem, TradeItemType


# ============== Row Schemas ==============

class ItemDefinition(BaseModel):
    """A row of item_definitions: the catalogue entry behind normal stacks."""
    id: str
    name: str
    category: Optional[str] = None
    rarity: Optional[str] = None
    icon: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class InventoryItemRow(BaseModel):
    """A row of inventory_items: a user's quantity of one item definition."""
    id: UUID
    user_id: str
    item_id: str
    quantity: int = Field(ge=0)

    model_config = ConfigDict(from_attributes=True)


class AIInventoryItemRow(BaseModel):
    """A row of ai_inventory_items: one unique generated item owned by a user."""
    id: UUID
    user_id: str
    name: str
    quantity: int = Field(default=1, ge=0)
    category: Optional[str] = None
    rarity: Optional[str] = None
    icon: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ============== Ledger Schemas ==============

class Holding(BaseModel):
    """What a user currently holds of one stack identity."""
    user_id: str
    item_type: TradeItemType
    item_id: str
    item_name: Optional[str] = None
    available: int = Field(default=0, ge=0)
    category: Optional[str] = None
    rarity: Optional[str] = None
    icon: Optional[str] = None

    def as_stack(self, quantity: int) -> TradeItem:
        """Server-side snapshot of this holding, sized to quantity."""
        return TradeItem(
            item_id=self.item_id,
            item_type=self.item_type,
            item_name=self.item_name,
            quantity=quantity,
            category=self.category,
            rarity=self.rarity,
            icon=self.icon,
        )


class TransferLeg(BaseModel):
    """One directed movement of a stack between two users."""
    from_user_id: str
    to_user_id: str
    item_type: TradeItemType
    item_id: str
    quantity: int = Field(ge=1)

    @classmethod
    def for_stack(cls, stack: TradeItem, from_user_id: str, to_user_id: str) -> "TransferLeg":
        return cls(
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            item_type=stack.item_type,
            item_id=stack.item_id,
            quantity=stack.quantity,
        )
