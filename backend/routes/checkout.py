"""
Checkout endpoints.

Endpoints:
    POST /checkout/create-charge  — cart → pending order + hosted charge
    POST /checkout/webhook        — payment processor event intake
"""
import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config import settings
from deps import get_catalog, get_order_store, get_payment_processor
from domain.responses import success_response
from middleware.auth import Caller, require_caller
from middleware.rate_limit import rate_limit
from services import checkout_service, webhook_service
from services.catalog_service import SqlCatalog
from services.order_store import OrderStore
from services.payment_processor import PaymentProcessor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/checkout", tags=["checkout"])


# ════════════════════════════════════════════════════════════════════
# Request Models
# ════════════════════════════════════════════════════════════════════


class CheckoutItem(BaseModel):
    product_id: str = Field(..., alias="productId", min_length=1, max_length=36)
    # Quantity is checked by the cart aggregator so a bad value maps to InvalidQuantity
    quantity: int = 1

    model_config = {"populate_by_name": True}


class CreateChargeRequest(BaseModel):
    items: list[CheckoutItem]
    delivery_address: str = Field(..., alias="deliveryAddress", max_length=500)
    delivery_fee: Optional[Decimal] = Field(None, alias="deliveryFee")
    user_name: Optional[str] = Field(None, alias="userName", max_length=200)
    redirect_url: Optional[str] = Field(None, alias="redirectUrl", max_length=2000)
    cancel_url: Optional[str] = Field(None, alias="cancelUrl", max_length=2000)

    model_config = {"populate_by_name": True}


# ════════════════════════════════════════════════════════════════════
# Checkout
# ════════════════════════════════════════════════════════════════════


@router.post("/create-charge")
async def create_charge(
    req: CreateChargeRequest,
    caller: Caller = Depends(require_caller),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=128),
    store: OrderStore = Depends(get_order_store),
    catalog: SqlCatalog = Depends(get_catalog),
    processor: PaymentProcessor = Depends(get_payment_processor),
    _rate=Depends(rate_limit(settings.checkout_rate_limit, settings.checkout_rate_window_seconds)),
):
    """
    Create a pending order and its hosted charge.

    Send the same Idempotency-Key when retrying; the original order is
    returned instead of a new one.
    """
    result = await checkout_service.create_order_and_charge(
        store,
        processor,
        catalog,
        items=[{"product_id": i.product_id, "quantity": i.quantity} for i in req.items],
        user_id=caller.user_id,
        user_name=req.user_name or caller.name,
        delivery_address=req.delivery_address,
        delivery_fee=req.delivery_fee,
        idempotency_key=idempotency_key,
        redirect_url=req.redirect_url,
        cancel_url=req.cancel_url,
    )
    return success_response(data=result.as_dict())


# ════════════════════════════════════════════════════════════════════
# Webhook
# ════════════════════════════════════════════════════════════════════


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    store: OrderStore = Depends(get_order_store),
):
    """
    Payment processor webhook callback.

    The signature covers the raw bytes, so the body is read unparsed.
    400 on bad signature or shape, 503 on store failure (redelivered later),
    200 otherwise — including duplicates and stale events.
    """
    body = await request.body()
    signature = request.headers.get(settings.webhook_signature_header, "")

    await webhook_service.handle_event(store, body, signature)
    return JSONResponse(status_code=200, content={"received": True})
