"""
Tests for payment webhook intake.

Tests: signature verification, event parsing, idempotent and
order-independent application, concurrent deliveries, store failures.
"""
import asyncio
import json
import logging

import pytest

from config import settings
from db_models import new_order_id
from domain.errors import InvalidSignature, MalformedEvent, PersistenceError
from services import webhook_service
from services.order_store import SqlOrderStore
from services.webhook_service import (
    OUTCOME_APPLIED,
    OUTCOME_DUPLICATE,
    OUTCOME_IGNORED,
    OUTCOME_NOOP,
    handle_event,
    parse_event,
    target_for,
    verify_signature,
)
from tests.fakes import (
    WEBHOOK_SECRET,
    BrokenOrderStore,
    InMemoryOrderStore,
    charge_event,
    pending_order,
    sign,
)

CONFIRMED = "charge:confirmed"
FAILED = "charge:failed"


@pytest.fixture
def store():
    return InMemoryOrderStore()


@pytest.fixture
def order_id(store):
    oid = new_order_id()
    store.orders[oid] = pending_order(oid)
    return oid


async def deliver(store, body, signature=None):
    return await handle_event(
        store, body, sign(body) if signature is None else signature, secret=WEBHOOK_SECRET
    )


class TestSignature:

    @pytest.mark.unit
    def test_valid_signature(self):
        body = charge_event(CONFIRMED, "o1")
        assert verify_signature(body, sign(body), WEBHOOK_SECRET) is True

    @pytest.mark.unit
    def test_uppercase_hex_accepted(self):
        body = charge_event(CONFIRMED, "o1")
        assert verify_signature(body, sign(body).upper(), WEBHOOK_SECRET) is True

    @pytest.mark.unit
    def test_tampered_body_rejected(self):
        body = charge_event(CONFIRMED, "o1")
        signature = sign(body)
        tampered = body.replace(b"o1", b"o2")
        assert verify_signature(tampered, signature, WEBHOOK_SECRET) is False

    @pytest.mark.unit
    def test_wrong_secret_rejected(self):
        body = charge_event(CONFIRMED, "o1")
        assert verify_signature(body, sign(body, "other-secret"), WEBHOOK_SECRET) is False

    @pytest.mark.unit
    def test_missing_signature_rejected(self):
        body = charge_event(CONFIRMED, "o1")
        assert verify_signature(body, None, WEBHOOK_SECRET) is False
        assert verify_signature(body, "", WEBHOOK_SECRET) is False

    @pytest.mark.unit
    def test_no_secret_fails_closed(self, monkeypatch):
        monkeypatch.setattr(settings, "webhook_secret", "")
        body = charge_event(CONFIRMED, "o1")
        assert verify_signature(body, sign(body, ""), None) is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_invalid_signature_leaves_order_untouched(self, store, order_id):
        body = charge_event(CONFIRMED, order_id)
        with pytest.raises(InvalidSignature) as exc_info:
            await deliver(store, body, signature="deadbeef")
        assert exc_info.value.status_code == 400
        assert store.orders[order_id].status == "pending"
        assert store.status_writes == 0


class TestParseEvent:

    @pytest.mark.unit
    def test_envelope_shape(self):
        event = parse_event(charge_event(CONFIRMED, "o1", event_id="evt_1"))
        assert event.type == CONFIRMED
        assert event.order_id == "o1"
        assert event.event_id == "evt_1"

    @pytest.mark.unit
    def test_bare_shape(self):
        event = parse_event(charge_event(FAILED, "o1", envelope=False))
        assert event.type == FAILED
        assert event.order_id == "o1"
        assert event.event_id is None

    @pytest.mark.unit
    def test_missing_order_id(self):
        with pytest.raises(MalformedEvent):
            parse_event(charge_event(CONFIRMED, None))

    @pytest.mark.unit
    def test_missing_type(self):
        body = json.dumps({"event": {"data": {"metadata": {"order_id": "o1"}}}}).encode()
        with pytest.raises(MalformedEvent):
            parse_event(body)

    @pytest.mark.unit
    @pytest.mark.parametrize("body", [b"not json", b"[1, 2]", b"", b'"text"'])
    def test_not_an_object(self, body):
        with pytest.raises(MalformedEvent):
            parse_event(body)

    @pytest.mark.unit
    def test_target_mapping(self):
        assert target_for(CONFIRMED).value == "accepted"
        assert target_for(FAILED).value == "cancelled"
        assert target_for("charge:pending") is None


class TestHandleEvent:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_confirmed_accepts_pending_order(self, store, order_id):
        outcome = await deliver(store, charge_event(CONFIRMED, order_id))
        assert outcome.outcome == OUTCOME_APPLIED
        assert outcome.status == "accepted"
        assert store.orders[order_id].status == "accepted"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_cancels_pending_order(self, store, order_id):
        outcome = await deliver(store, charge_event(FAILED, order_id))
        assert outcome.outcome == OUTCOME_APPLIED
        assert store.orders[order_id].status == "cancelled"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_confirmed_twice_is_idempotent(self, store, order_id):
        body = charge_event(CONFIRMED, order_id)
        first = await deliver(store, body)
        second = await deliver(store, body)

        assert first.outcome == OUTCOME_APPLIED
        assert second.outcome == OUTCOME_NOOP
        assert store.orders[order_id].status == "accepted"
        assert store.status_writes == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_then_confirmed_stays_cancelled(self, store, order_id):
        await deliver(store, charge_event(FAILED, order_id))
        outcome = await deliver(store, charge_event(CONFIRMED, order_id))
        assert outcome.outcome == OUTCOME_NOOP
        assert store.orders[order_id].status == "cancelled"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_late_failure_cannot_cancel_delivered_order(self, store):
        oid = new_order_id()
        store.orders[oid] = pending_order(oid, status="delivered")
        outcome = await deliver(store, charge_event(FAILED, oid))
        assert outcome.outcome == OUTCOME_NOOP
        assert store.orders[oid].status == "delivered"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_confirmed_after_fulfilment_started_is_noop(self, store):
        oid = new_order_id()
        store.orders[oid] = pending_order(oid, status="preparing")
        outcome = await deliver(store, charge_event(CONFIRMED, oid))
        assert outcome.outcome == OUTCOME_NOOP
        assert store.orders[oid].status == "preparing"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_type_acknowledged(self, store, order_id):
        outcome = await deliver(store, charge_event("charge:pending", order_id))
        assert outcome.outcome == OUTCOME_IGNORED
        assert store.orders[order_id].status == "pending"
        assert store.status_writes == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_order_is_noop(self, store):
        outcome = await deliver(store, charge_event(CONFIRMED, new_order_id()))
        assert outcome.outcome == OUTCOME_NOOP
        assert outcome.status is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_malformed_event_rejected(self, store):
        with pytest.raises(MalformedEvent) as exc_info:
            await deliver(store, charge_event(CONFIRMED, None))
        assert exc_info.value.status_code == 400

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_ledger_short_circuits_redelivery(self, store, order_id):
        body = charge_event(CONFIRMED, order_id, event_id="evt_1")
        first = await deliver(store, body)
        second = await deliver(store, body)

        assert first.outcome == OUTCOME_APPLIED
        assert second.outcome == OUTCOME_DUPLICATE
        assert store.events["evt_1"].outcome == OUTCOME_APPLIED
        assert store.status_writes == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, caplog):
        store = BrokenOrderStore()
        oid = new_order_id()
        store.orders[oid] = pending_order(oid)
        body = charge_event(CONFIRMED, oid, event_id="evt_1")

        with caplog.at_level(logging.ERROR, logger=webhook_service.logger.name):
            with pytest.raises(PersistenceError) as exc_info:
                await deliver(store, body)

        assert exc_info.value.status_code == 503
        assert store.orders[oid].status == "pending"
        # Not recorded, so the redelivery is processed again
        assert "evt_1" not in store.events
        errors = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR]
        assert any(CONFIRMED in m and oid in m for m in errors)


class TestConcurrentDeliveries:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_many_confirmations_one_transition(self, store, order_id):
        body = charge_event(CONFIRMED, order_id)
        outcomes = await asyncio.gather(*(deliver(store, body) for _ in range(10)))

        assert [o.outcome for o in outcomes].count(OUTCOME_APPLIED) == 1
        assert store.orders[order_id].status == "accepted"
        assert store.status_writes == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_confirmed_and_failed_race_has_one_winner(self, store, order_id):
        bodies = [charge_event(CONFIRMED, order_id), charge_event(FAILED, order_id)] * 5
        outcomes = await asyncio.gather(*(deliver(store, b) for b in bodies))

        applied = [o for o in outcomes if o.outcome == OUTCOME_APPLIED]
        # Either failed wins outright, or confirmed wins and a later failure
        # still cancels the accepted order. Never more than one of each.
        assert store.orders[order_id].status == "cancelled"
        assert [o.event_type for o in applied].count(FAILED) == 1
        assert [o.event_type for o in applied].count(CONFIRMED) <= 1
        assert store.status_writes == len(applied)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_handle_event_reads_secret_from_settings(self, store, order_id, monkeypatch):
        monkeypatch.setattr(settings, "webhook_secret", WEBHOOK_SECRET)
        body = charge_event(CONFIRMED, order_id)
        outcome = await webhook_service.handle_event(store, body, sign(body))
        assert outcome.outcome == OUTCOME_APPLIED


@pytest.mark.integration
@pytest.mark.asyncio
async def test_redelivery_against_sqlite(db_session):
    store = SqlOrderStore(db_session)
    oid = new_order_id()
    await store.insert_order_if_absent(pending_order(oid), [])

    body = charge_event(CONFIRMED, oid)
    first = await deliver(store, body)
    second = await deliver(store, body)

    assert (first.outcome, second.outcome) == (OUTCOME_APPLIED, OUTCOME_NOOP)
    assert (await store.get(oid)).status == "accepted"
