"""
Visibility rules for pastes.

A paste is visible at a reference time while it has not expired and still
has views left. Consuming a visible paste spends one view when the paste
tracks a view budget. Nothing here touches storage or the clock.
"""
import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class ViewState:
    """The mutable-over-time part of a paste that gates its visibility."""
    expires_at: Optional[datetime] = None
    remaining_views: Optional[int] = None


class Availability(enum.Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class Decision:
    availability: Availability
    # State to persist when available; None when nothing may change.
    next_state: Optional[ViewState] = None

    @property
    def available(self) -> bool:
        return self.availability is Availability.AVAILABLE


def is_visible(state: ViewState, reference_time: datetime) -> bool:
    """Return True if the paste may be shown at reference_time."""
    if state.expires_at is not None and state.expires_at <= reference_time:
        return False
    if state.remaining_views is not None and state.remaining_views <= 0:
        return False
    return True


def is_inert(state: ViewState, reference_time: datetime) -> bool:
    """Return True if the paste can never be shown again."""
    return not is_visible(state, reference_time)


def decide(state: ViewState, reference_time: datetime) -> Decision:
    """
    Decide whether a read is allowed and how it changes the paste.

    Args:
        state: Current expiry and remaining views, before this read
        reference_time: Timezone-aware instant the read happens at

    Returns:
        UNAVAILABLE with no transition, or AVAILABLE with the state after
        one view has been spent
    """
    if not is_visible(state, reference_time):
        return Decision(Availability.UNAVAILABLE)

    remaining = state.remaining_views
    if remaining is not None:
        remaining -= 1
    return Decision(
        Availability.AVAILABLE,
        ViewState(expires_at=state.expires_at, remaining_views=remaining),
    )
