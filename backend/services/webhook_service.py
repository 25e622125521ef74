"""
Payment webhook intake.

Handles:
    1. Signature verification over the raw request body (HMAC-SHA256, hex)
    2. Event parsing (bare {type, data} or the {"event": {...}} envelope)
    3. Event type → target status mapping
    4. Idempotent application through the order state machine

Deliveries are at-least-once and may arrive duplicated or out of order.
A transition the guard rejects is acknowledged as a no-op so the
processor does not retry it; only store failures surface as errors.
"""
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass

from config import settings
from domain.constants import METADATA_ORDER_ID
from domain.enums import ChargeEventType, OrderStatus
from domain.errors import InvalidSignature, MalformedEvent, PersistenceError
from services.order_service import transition_order
from services.order_store import OrderStore

logger = logging.getLogger(__name__)


EVENT_TARGETS: dict[ChargeEventType, OrderStatus] = {
    ChargeEventType.CONFIRMED: OrderStatus.ACCEPTED,
    ChargeEventType.FAILED: OrderStatus.CANCELLED,
}

OUTCOME_APPLIED = "applied"
OUTCOME_NOOP = "noop"
OUTCOME_IGNORED = "ignored"
OUTCOME_DUPLICATE = "duplicate"


@dataclass(frozen=True)
class ChargeEvent:
    type: str
    order_id: str
    event_id: str | None = None
    data: dict | None = None


@dataclass(frozen=True)
class WebhookOutcome:
    event_type: str
    order_id: str
    outcome: str
    status: str | None = None


def target_for(event_type: str) -> OrderStatus | None:
    """Target status for an event type; None for types the engine ignores."""
    try:
        return EVENT_TARGETS[ChargeEventType(event_type)]
    except ValueError:
        return None


# ════════════════════════════════════════════════════════════════════
# Signature Verification
# ════════════════════════════════════════════════════════════════════


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature: str | None, secret: str | None = None) -> bool:
    """
    Verify the processor's HMAC-SHA256 signature of the raw body.

    Fails closed when no shared secret is configured.
    """
    secret = settings.webhook_secret if secret is None else secret
    if not secret:
        logger.error(
            "WEBHOOK_SECRET not configured — rejecting webhook. "
            "Set WEBHOOK_SECRET in .env to accept payment webhooks."
        )
        return False

    if not signature:
        logger.warning("Webhook received without signature header")
        return False

    expected = compute_signature(raw_body, secret)
    return hmac.compare_digest(expected, signature.strip().lower())


# ════════════════════════════════════════════════════════════════════
# Parsing
# ════════════════════════════════════════════════════════════════════


def parse_event(raw_body: bytes) -> ChargeEvent:
    try:
        body = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError):
        raise MalformedEvent("Invalid JSON payload")
    if not isinstance(body, dict):
        raise MalformedEvent("Webhook payload must be a JSON object")

    event = body["event"] if isinstance(body.get("event"), dict) else body

    event_type = event.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise MalformedEvent("Missing event type")

    data = event.get("data")
    metadata = data.get("metadata") if isinstance(data, dict) else None
    order_id = metadata.get(METADATA_ORDER_ID) if isinstance(metadata, dict) else None
    if not order_id:
        raise MalformedEvent(
            "Missing order_id in metadata",
            details={"event_type": event_type},
        )

    event_id = event.get("id")
    return ChargeEvent(
        type=event_type,
        order_id=str(order_id),
        event_id=str(event_id) if event_id is not None else None,
        data=data,
    )


# ════════════════════════════════════════════════════════════════════
# Processing
# ════════════════════════════════════════════════════════════════════


async def handle_event(
    store: OrderStore,
    raw_body: bytes,
    signature: str | None,
    *,
    secret: str | None = None,
) -> WebhookOutcome:
    """
    Verify, parse and apply one webhook delivery.

    Raises:
        InvalidSignature / MalformedEvent — reject with a client error
        PersistenceError — reject with a server error so the event is redelivered
    """
    if not verify_signature(raw_body, signature, secret):
        logger.warning("Webhook rejected: invalid signature")
        raise InvalidSignature()

    try:
        event = parse_event(raw_body)
    except MalformedEvent as e:
        logger.warning(f"Webhook rejected: {e.message}")
        raise

    try:
        return await _apply_event(store, event)
    except PersistenceError:
        logger.error(
            f"Webhook {event.type} for order {event.order_id}: "
            f"store failure, redelivery expected"
        )
        raise


async def _apply_event(store: OrderStore, event: ChargeEvent) -> WebhookOutcome:
    if event.event_id and await store.has_processed_event(event.event_id):
        logger.info(
            f"Webhook {event.type} for order {event.order_id}: "
            f"event {event.event_id} already processed, no-op"
        )
        return WebhookOutcome(event.type, event.order_id, OUTCOME_DUPLICATE)

    target = target_for(event.type)
    if target is None:
        logger.info(f"Webhook {event.type} for order {event.order_id}: unhandled type, acknowledged")
        outcome = WebhookOutcome(event.type, event.order_id, OUTCOME_IGNORED)
    else:
        result = await transition_order(
            store, event.order_id, target, reason=f"webhook {event.type}"
        )
        outcome = WebhookOutcome(
            event.type,
            event.order_id,
            OUTCOME_APPLIED if result.applied else OUTCOME_NOOP,
            status=result.current.value if result.current else None,
        )
        if result.applied:
            logger.info(f"Webhook {event.type} for order {event.order_id}: applied → {target.value}")
        else:
            logger.info(
                f"Webhook {event.type} for order {event.order_id}: no-op "
                f"(current={outcome.status})"
            )

    if event.event_id:
        await store.record_event(
            event_id=event.event_id,
            event_type=event.type,
            order_id=event.order_id,
            outcome=outcome.outcome,
        )

    return outcome
