"""
Payment processor adapters — hosted charge creation.

PaymentProcessor is the port used by checkout. Two adapters:
    - HostedChargeProcessor: the hosted-checkout REST API (POST /charges)
    - SimulatedProcessor: in-process charges for development and tests

get_processor() / set_processor() pick the active adapter; simulation mode
selects the simulated one.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

import httpx

from config import settings
from domain.errors import ChargeCreationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChargeRequest:
    name: str
    description: str
    amount: Decimal
    currency: str
    metadata: dict
    redirect_url: str
    cancel_url: str
    pricing_type: str = "fixed_price"

    def to_payload(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "local_price": {
                "amount": f"{self.amount:.2f}",
                "currency": self.currency,
            },
            "pricing_type": self.pricing_type,
            "metadata": dict(self.metadata),
            "redirect_url": self.redirect_url,
            "cancel_url": self.cancel_url,
        }


@dataclass(frozen=True)
class ChargeHandle:
    """Processor-issued charge, correlated to the order via metadata."""
    charge_id: str
    hosted_url: str
    code: str | None = None


class PaymentProcessor(ABC):
    """Abstract payment processor interface."""

    @abstractmethod
    async def create_charge(self, request: ChargeRequest) -> ChargeHandle:
        """Create a hosted charge; raise ChargeCreationError on failure."""
        ...


class HostedChargeProcessor(PaymentProcessor):
    """Hosted-checkout API adapter (charges resource)."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.commerce.coinbase.com",
        api_version: str = "2018-03-22",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> dict:
        if not self.api_key:
            raise ChargeCreationError("Payment processor API key not configured")
        return {
            "X-CC-Api-Key": self.api_key,
            "X-CC-Version": self.api_version,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def create_charge(self, request: ChargeRequest) -> ChargeHandle:
        headers = self._headers()
        order_id = request.metadata.get("order_id")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/charges",
                    headers=headers,
                    json=request.to_payload(),
                )
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Charge creation rejected for order {order_id}: "
                f"HTTP {e.response.status_code}"
            )
            raise ChargeCreationError(
                "Payment processor rejected the charge",
                details={"status_code": e.response.status_code},
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Charge creation failed for order {order_id}: {e}")
            raise ChargeCreationError("Payment processor unavailable")

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict) or not data.get("id") or not data.get("hosted_url"):
            logger.error(f"Charge response for order {order_id} is missing id/hosted_url")
            raise ChargeCreationError("Payment processor returned an incomplete charge")

        return ChargeHandle(
            charge_id=str(data["id"]),
            hosted_url=str(data["hosted_url"]),
            code=data.get("code"),
        )


class SimulatedProcessor(PaymentProcessor):
    """
    Configurable in-process processor.

    Issues charges without any external call; configure() makes it fail so
    the pending-order-without-charge path can be exercised.
    """

    def __init__(self, hosted_base_url: str = "https://pay.example.test/charges") -> None:
        self.hosted_base_url = hosted_base_url.rstrip("/")
        self.should_succeed: bool = True
        self.failure_reason: str = "Simulated processor failure"
        self.calls: list[ChargeRequest] = []

    def configure(self, should_succeed: bool, failure_reason: str = "Simulated processor failure") -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    async def create_charge(self, request: ChargeRequest) -> ChargeHandle:
        self.calls.append(request)
        if not self.should_succeed:
            raise ChargeCreationError(self.failure_reason)

        code = uuid.uuid4().hex[:8].upper()
        return ChargeHandle(
            charge_id=str(uuid.uuid4()),
            hosted_url=f"{self.hosted_base_url}/{code}",
            code=code,
        )


_current_processor: PaymentProcessor | None = None


def get_processor() -> PaymentProcessor:
    """Return the active processor, building it from settings on first use."""
    global _current_processor
    if _current_processor is None:
        if settings.simulation_mode:
            _current_processor = SimulatedProcessor()
        else:
            _current_processor = HostedChargeProcessor(
                settings.payment_api_key,
                base_url=settings.payment_api_url,
                api_version=settings.payment_api_version,
                timeout=settings.payment_timeout_seconds,
            )
    return _current_processor


def set_processor(processor: PaymentProcessor) -> None:
    """Override the active processor (useful for tests)."""
    global _current_processor
    _current_processor = processor


def reset_processor() -> None:
    global _current_processor
    _current_processor = None
