import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from fastapi import Depends, FastAPI, Header, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from supabase import Client

from core.config import get_settings
from core.database import get_supabase
from core.exceptions import NotAuthenticated, TradeError
from core.logger import get_logger, setup_logging
from models.inventory import Holding
from models.trade import (
    AcceptOfferRequest,
    AcceptOfferResponse,
    OfferExpiryResponse,
    PendingRatingResponse,
    RateTradeRequest,
    TradeHistoryResponse,
    TradeOfferCreate,
    TradeOfferResponse,
    TradeStatus,
    TradeSummary,
)
from services.clock import Clock, get_clock
from services.expiry import OfferExpirySweeper
from services.history import HistoryStore, count_pending_ratings
from services.ledger import InventoryLedger
from services.offers import OfferStore
from services.settlement import SettlementEngine

settings = get_settings()
setup_logging(settings)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the background expiry sweeper for the lifetime of the app."""
    sweeper_task = None
    if settings.OFFER_EXPIRY_SWEEP_SECONDS and settings.SUPABASE_URL:
        client = get_supabase()
        offers = OfferStore(client, InventoryLedger(client), Clock())
        sweeper = OfferExpirySweeper(offers)
        sweeper_task = asyncio.create_task(sweeper.run(settings.OFFER_EXPIRY_SWEEP_SECONDS))

    logger.info("Starting %s v%s", settings.APP_NAME, settings.APP_VERSION)
    yield

    if sweeper_task is not None:
        sweeper_task.cancel()
        try:
            await sweeper_task
        except asyncio.CancelledError:
            pass
    logger.info("Shutting down %s", settings.APP_NAME)


app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============== Error Handlers ==============

def _error_body(code: str, message: str, details) -> dict:
    return {
        "error": code,
        "message": message,
        "details": details,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.exception_handler(TradeError)
async def trade_error_handler(request: Request, exc: TradeError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s - %s", request.method, request.url.path, exc.code, exc.message)
    else:
        logger.warning("%s %s rejected: %s - %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.code, exc.message, exc.details),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    logger.warning("%s %s invalid payload: %s", request.method, request.url.path, errors)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body("validation_error", "Request validation failed", {"errors": errors}),
    )


# ============== Dependencies ==============

def get_caller_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Identity of the calling user, from the X-User-Id header."""
    if not x_user_id:
        raise NotAuthenticated()
    return x_user_id


def get_ledger(client: Client = Depends(get_supabase)) -> InventoryLedger:
    return InventoryLedger(client)


def get_offer_store(
    client: Client = Depends(get_supabase),
    ledger: InventoryLedger = Depends(get_ledger),
    clock: Clock = Depends(get_clock),
) -> OfferStore:
    return OfferStore(client, ledger, clock, default_expires_hours=settings.DEFAULT_EXPIRES_HOURS)


def get_history_store(client: Client = Depends(get_supabase)) -> HistoryStore:
    return HistoryStore(client)


def get_settlement_engine(
    offers: OfferStore = Depends(get_offer_store),
    ledger: InventoryLedger = Depends(get_ledger),
    clock: Clock = Depends(get_clock),
) -> SettlementEngine:
    return SettlementEngine(offers, ledger, clock)


@app.get("/")
def read_root():
    return {"message": settings.APP_NAME}


@app.get("/health")
def health_check():
    return {"status": "healthy"}


# ============== Inventory Endpoints ==============

@app.get("/inventory", response_model=list[Holding])
def get_my_inventory(
    caller_id: str = Depends(get_caller_id),
    ledger: InventoryLedger = Depends(get_ledger),
):
    """List everything the caller can put up for trade."""
    return ledger.list_holdings(caller_id)


# ============== Offer Endpoints ==============

@app.post("/offers", response_model=TradeOfferResponse, status_code=201)
def create_offer(
    offer: TradeOfferCreate,
    caller_id: str = Depends(get_caller_id),
    offers: OfferStore = Depends(get_offer_store),
):
    """Publish a new trade offer."""
    return offers.create_offer(
        owner_id=caller_id,
        offering_items=offer.offering_items,
        requesting_items=offer.requesting_items,
        expires_hours=offer.expires_hours,
        message=offer.message,
    )


@app.get("/offers/market", response_model=list[TradeOfferResponse])
def list_market_offers(
    caller_id: str = Depends(get_caller_id),
    offers: OfferStore = Depends(get_offer_store),
):
    """Active offers from other users."""
    return offers.list_market(caller_id)


@app.get("/offers/mine", response_model=list[TradeOfferResponse])
def list_my_offers(
    caller_id: str = Depends(get_caller_id),
    offers: OfferStore = Depends(get_offer_store),
):
    """All of the caller's offers, whatever their status."""
    return offers.list_mine(caller_id)


@app.get(
    "/offers/{offer_id}",
    response_model=TradeOfferResponse,
    dependencies=[Depends(get_caller_id)],
)
def get_offer(offer_id: UUID, offers: OfferStore = Depends(get_offer_store)):
    return offers.get_offer(offer_id)


@app.post("/offers/{offer_id}/cancel", status_code=204)
def cancel_offer(
    offer_id: UUID,
    caller_id: str = Depends(get_caller_id),
    offers: OfferStore = Depends(get_offer_store),
):
    """Withdraw one of the caller's active offers."""
    offers.cancel_offer(offer_id, caller_id)
    return None


@app.post("/offers/{offer_id}/accept", response_model=AcceptOfferResponse)
def accept_offer(
    offer_id: UUID,
    body: Optional[AcceptOfferRequest] = None,
    caller_id: str = Depends(get_caller_id),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    """Accept an offer and settle the exchange."""
    buyer_items = body.buyer_items if body else None
    history_id = engine.accept_offer(offer_id, caller_id, buyer_items)
    return {"history_id": history_id}


# ============== History Endpoints ==============

@app.get("/history", response_model=list[TradeHistoryResponse])
def list_history(
    caller_id: str = Depends(get_caller_id),
    history: HistoryStore = Depends(get_history_store),
):
    return history.list_history(caller_id)


@app.get("/history/pending-ratings", response_model=PendingRatingResponse)
def pending_ratings(
    caller_id: str = Depends(get_caller_id),
    history: HistoryStore = Depends(get_history_store),
):
    """How many completed trades the caller has not rated yet."""
    return {"user_id": caller_id, "pending_count": history.pending_rating_count(caller_id)}


@app.post("/history/{history_id}/rate", status_code=204)
def rate_trade(
    history_id: UUID,
    body: RateTradeRequest,
    caller_id: str = Depends(get_caller_id),
    history: HistoryStore = Depends(get_history_store),
):
    """Rate the counterpart of a completed trade."""
    history.rate_trade(history_id, caller_id, body.rating, body.comment)
    return None


# ============== Statistics Endpoints ==============

@app.get("/trades/summary", response_model=TradeSummary)
def get_trade_summary(
    caller_id: str = Depends(get_caller_id),
    offers: OfferStore = Depends(get_offer_store),
    history: HistoryStore = Depends(get_history_store),
):
    """Aggregated trading statistics for the caller."""
    my_offers = offers.list_mine(caller_id)
    records = history.list_history(caller_id)

    return {
        "user_id": caller_id,
        "active_offers": sum(1 for offer in my_offers if offer.status == TradeStatus.ACTIVE),
        "completed_sales": sum(1 for offer in my_offers if offer.status == TradeStatus.COMPLETED),
        "total_trades": len(records),
        "pending_ratings": count_pending_ratings(records, caller_id),
    }


# ============== Admin Endpoints ==============

@app.post("/admin/offers/expire", response_model=OfferExpiryResponse)
def expire_offers(
    caller_id: str = Depends(get_caller_id),
    offers: OfferStore = Depends(get_offer_store),
    clock: Clock = Depends(get_clock),
):
    """Run one expiry sweep now."""
    swept_at = clock.now()
    expired = OfferExpirySweeper(offers).sweep()
    logger.info("Expiry sweep requested by %s expired %d offer(s)", caller_id, expired)
    return {"expired_count": expired, "swept_at": swept_at}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
