# backend/models/trade.py
from datetime import datetime
from enum import Enum
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict, computed_field
from typing import Optional


# ============== Enums ==============

class TradeStatus(str, Enum):
    """Trade offer lifecycle states. Only ACTIVE can transition."""
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class TradeItemType(str, Enum):
    """Normal stacks are fungible by item definition, AI stacks are unique instances."""
    NORMAL = "normal"
    AI = "ai"


# ============== Base Schemas ==============

class TradeItem(BaseModel):
    """
    A stack of items inside an offer or a history record.

    For normal stacks item_id is the item-definition id (e.g. "water_bottle"),
    for AI stacks it is the id of the unique generated instance.
    """
    item_id: str = Field(min_length=1)
    item_type: TradeItemType = TradeItemType.NORMAL
    item_name: Optional[str] = None
    quantity: int = Field(ge=1, description="Number of units in the stack")
    category: Optional[str] = None
    rarity: Optional[str] = None
    icon: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def identity(self) -> tuple[TradeItemType, str]:
        return (self.item_type, self.item_id)


class ItemsExchanged(BaseModel):
    """Snapshot of both sides of a completed trade."""
    seller_items: list[TradeItem] = []
    buyer_items: list[TradeItem] = []


# ============== Create Schemas ==============

class TradeOfferCreate(BaseModel):
    """Schema for publishing a new offer on the market."""
    offering_items: list[TradeItem] = Field(
        default=[],
        description="Items the owner stakes"
    )
    requesting_items: Optional[list[TradeItem]] = Field(
        default=None,
        description="Items wanted in return; empty or missing makes an open offer"
    )
    expires_hours: Optional[int] = Field(
        default=None,
        description="Offer lifetime in hours (6, 12, 24, 48 or 72)"
    )
    message: Optional[str] = Field(
        default=None,
        max_length=500,
        description="Optional note shown with the offer"
    )


# ============== Action Schemas ==============

class AcceptOfferRequest(BaseModel):
    """Schema for accepting an offer."""
    buyer_items: Optional[list[TradeItem]] = Field(
        default=None,
        description="Items the acceptor hands over; ignored for open offers"
    )


class AcceptOfferResponse(BaseModel):
    history_id: UUID


class RateTradeRequest(BaseModel):
    """Schema for rating the counterpart of a completed trade."""
    # Range is checked by the history store so the error is InvalidRating, not a 422.
    rating: int
    comment: Optional[str] = Field(default=None, max_length=500)


# ============== Response Schemas ==============

class TradeOfferResponse(BaseModel):
    """Full trade offer response."""
    id: UUID
    owner_id: str
    offering_items: list[TradeItem]
    requesting_items: Optional[list[TradeItem]] = None
    status: TradeStatus
    expires_at: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completed_by_user_id: Optional[str] = None
    message: Optional[str] = None
    remaining_seconds: int = Field(default=0, ge=0, description="Seconds until expiry at read time")

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_row(cls, row: dict, now: datetime) -> "TradeOfferResponse":
        offer = cls.model_validate(row)
        offer.remaining_seconds = max(0, int((offer.expires_at - now).total_seconds()))
        return offer

    @computed_field
    @property
    def is_open_offer(self) -> bool:
        """Open offers can be accepted without giving anything."""
        return not self.requesting_items

    @computed_field
    @property
    def total_offering_quantity(self) -> int:
        return sum(item.quantity for item in self.offering_items)

    @computed_field
    @property
    def total_requesting_quantity(self) -> int:
        return sum(item.quantity for item in self.requesting_items or [])

    def is_expired_at(self, now: datetime) -> bool:
        return now > self.expires_at


class TradeHistoryResponse(BaseModel):
    """A completed exchange with the ratings both sides left."""
    id: UUID
    offer_id: UUID
    seller_id: str
    buyer_id: str
    items_exchanged: ItemsExchanged
    completed_at: Optional[datetime] = None

    # buyer_rating is the seller's rating of the buyer, and vice versa
    seller_rating: Optional[int] = None
    buyer_rating: Optional[int] = None
    seller_comment: Optional[str] = None
    buyer_comment: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PendingRatingResponse(BaseModel):
    user_id: str
    pending_count: int


# ============== Statistics Schemas ==============

class TradeSummary(BaseModel):
    """Summary statistics for a user's trading activity."""
    user_id: str
    active_offers: int
    completed_sales: int
    total_trades: int
    pending_ratings: int


# ============== Admin Schemas ==============

class OfferExpiryResponse(BaseModel):
    """Response from an on-demand expiry sweep."""
    expired_count: int = Field(description="Number of active offers moved to expired")
    swept_at: datetime
