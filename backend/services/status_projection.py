"""
Status projection — read-side rendering of an order status for the tracker.

Pure and stateless: a status maps to a label, a step index, and flags.
Unknown values raise UnknownStatus instead of defaulting to step 0.
"""

from dataclasses import dataclass

from domain.constants import CANCELLED_STEP, PROGRESS_PER_STEP, TRACKER_STEP_LABELS
from domain.enums import OrderStatus
from domain.state_machine import is_terminal, parse_status

STEP_INDEX: dict[OrderStatus, int] = {
    OrderStatus.PENDING: 0,
    OrderStatus.ACCEPTED: 1,
    OrderStatus.PREPARING: 2,
    OrderStatus.READY: 3,
    OrderStatus.PICKED_UP: 4,
    OrderStatus.DELIVERED: 5,
    OrderStatus.CANCELLED: CANCELLED_STEP,
}


@dataclass(frozen=True)
class StatusView:
    status: OrderStatus
    label: str
    step: int
    is_terminal: bool
    is_cancelled: bool

    @property
    def progress_percent(self) -> int | None:
        if self.is_cancelled:
            return None
        return min(100, max(0, self.step * PROGRESS_PER_STEP))

    def as_dict(self) -> dict:
        return {
            "status": self.status.value,
            "label": self.label,
            "step": self.step,
            "is_terminal": self.is_terminal,
            "is_cancelled": self.is_cancelled,
            "progress_percent": self.progress_percent,
            "steps": [
                {"label": label, "completed": not self.is_cancelled and self.step >= index}
                for index, label in enumerate(TRACKER_STEP_LABELS)
            ],
        }


def humanize(status: str) -> str:
    """picked_up → Picked Up"""
    return " ".join(word[:1].upper() + word[1:] for word in status.split("_"))


def step_index(status) -> int:
    return STEP_INDEX[parse_status(status)]


def project_status(status) -> StatusView:
    s = parse_status(status)
    return StatusView(
        status=s,
        label=humanize(s.value),
        step=STEP_INDEX[s],
        is_terminal=is_terminal(s),
        is_cancelled=s is OrderStatus.CANCELLED,
    )
