"""
Typed failures for the trading service.

Every business-rule violation is a TradeError subclass with a stable snake_case
code, a message and a details dict carrying the ids and quantities a client needs
to render a precise message. The codes match the ones returned by the database
RPC functions, so TradeError.from_code can rebuild a typed error from an RPC
failure payload.
"""
from typing import Any, Optional


class TradeError(Exception):
    """Base class for all trading failures."""

    code = "unknown_error"
    status_code = 400
    default_message = "Trade operation failed"

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details = {k: v for k, v in details.items() if v is not None}
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, details={self.details!r})"

    @classmethod
    def from_code(cls, code: Optional[str], message: Optional[str] = None, **details: Any) -> "TradeError":
        """Build the typed error matching an RPC error code."""
        error_cls = _ERRORS_BY_CODE.get(code or "")
        if error_cls is None:
            return UnknownError(message or f"Unrecognised error code: {code}", code=code, **details)
        return error_cls(message, **details)


class NotAuthenticated(TradeError):
    code = "not_authenticated"
    status_code = 401
    default_message = "Missing caller identity"


class ValidationError(TradeError):
    code = "validation_error"
    status_code = 400
    default_message = "Invalid request"


class OfferingItemsRequired(ValidationError):
    code = "offering_items_required"
    default_message = "An offer must stake at least one item"


class InvalidItemType(ValidationError):
    code = "invalid_item_type"
    default_message = "Unknown item type"


class ItemNotFound(TradeError):
    code = "item_not_found"
    status_code = 404
    default_message = "Item not found in inventory"


class InsufficientQuantity(TradeError):
    code = "insufficient_quantity"
    status_code = 422
    default_message = "Not enough items in inventory"


class OfferNotFound(TradeError):
    code = "offer_not_found"
    status_code = 404
    default_message = "Trade offer not found"


class OfferNotActive(TradeError):
    code = "offer_not_active"
    status_code = 409
    default_message = "Trade offer is no longer active"


class OfferExpired(TradeError):
    code = "offer_expired"
    status_code = 410
    default_message = "Trade offer has expired"


class CannotAcceptOwnOffer(TradeError):
    code = "cannot_accept_own_offer"
    status_code = 403
    default_message = "You cannot accept your own offer"


class NotOwner(TradeError):
    code = "not_owner"
    status_code = 403
    default_message = "Only the offer owner can do this"


class BuyerItemsRequired(TradeError):
    code = "buyer_items_required"
    status_code = 400
    default_message = "This offer requires items in exchange"


class BuyerItemNotFound(TradeError):
    code = "buyer_item_not_found"
    status_code = 404
    default_message = "Requested item not found in your inventory"


class BuyerInsufficientQuantity(TradeError):
    code = "buyer_insufficient_quantity"
    status_code = 422
    default_message = "You do not hold enough of a requested item"


class HistoryNotFound(TradeError):
    code = "history_not_found"
    status_code = 404
    default_message = "Trade history record not found"


class NotParticipant(TradeError):
    code = "not_participant"
    status_code = 403
    default_message = "Only trade participants can rate a trade"


class AlreadyRated(TradeError):
    code = "already_rated"
    status_code = 409
    default_message = "You have already rated this trade"


class InvalidRating(TradeError):
    code = "invalid_rating"
    status_code = 400
    default_message = "Rating must be between 1 and 5"


class DatabaseError(TradeError):
    code = "database_error"
    status_code = 502
    default_message = "Database request failed"


class UnknownError(TradeError):
    code = "unknown_error"
    status_code = 500
    default_message = "Unknown error"


_ERRORS_BY_CODE = {
    error_cls.code: error_cls
    for error_cls in (
        NotAuthenticated,
        ValidationError,
        OfferingItemsRequired,
        InvalidItemType,
        ItemNotFound,
        InsufficientQuantity,
        OfferNotFound,
        OfferNotActive,
        OfferExpired,
        CannotAcceptOwnOffer,
        NotOwner,
        BuyerItemsRequired,
        BuyerItemNotFound,
        BuyerInsufficientQuantity,
        HistoryNotFound,
        NotParticipant,
        AlreadyRated,
        InvalidRating,
        DatabaseError,
        UnknownError,
    )
}
