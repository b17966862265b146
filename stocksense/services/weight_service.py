import logging
import math
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from stocksense.core.constants import MOVEMENT_ENTRY, MOVEMENT_EXIT, QUANTITY_PLACES, REASON_WEIGHT
from stocksense.services.movement_service import MovementRecorder

logger = logging.getLogger(__name__)

IDLE = "IDLE"
SETTLING = "SETTLING"


@dataclass
class WeightChannelState:
    state: str = IDLE
    last_weight: Optional[float] = None
    stable_weight: Optional[float] = None
    pending_weight: Optional[float] = None
    counter: int = 0
    last_ts: Optional[float] = None


@dataclass(frozen=True)
class WeightTransition:
    channel: str
    previous: float
    final: float

    @property
    def type_id(self) -> int:
        return MOVEMENT_ENTRY if self.final > self.previous else MOVEMENT_EXIT

    @property
    def quantity(self) -> Decimal:
        return Decimal(str(abs(self.final - self.previous))).quantize(QUANTITY_PLACES)


class WeightStabilizer:
    """Turns a noisy stream of scale readings into settled weight changes.

    A reading that moves more than ``jump_threshold`` away from the previous one
    starts a settling run. Once ``stable_count`` consecutive readings (the jump
    included) stay within the threshold of each other, a transition from the
    stable weight to the last value is emitted if they differ.

    The stable weight only moves when the caller confirms the transition with
    ``commit``. Until then the settled value stays pending and every further
    reading near it emits the transition again, so a failed write is retried
    on the next reading.
    """

    def __init__(self, *, jump_threshold: float = 10.0, stable_count: int = 5):
        self.jump_threshold = float(jump_threshold)
        self.stable_count = max(1, int(stable_count))
        self._states: dict[str, WeightChannelState] = {}
        self._guard = threading.Lock()

    def state_for(self, channel: str) -> WeightChannelState:
        with self._guard:
            state = self._states.get(channel)
            if state is None:
                state = WeightChannelState()
                self._states[channel] = state
            return state

    def feed(self, channel: str, value: float, ts: Optional[float] = None) -> Optional[WeightTransition]:
        value = float(value)
        if not math.isfinite(value):
            raise ValueError("Weight reading must be a finite number, got {!r}".format(value))

        state = self.state_for(channel)

        if ts is not None:
            if state.last_ts is not None and ts <= state.last_ts:
                logger.warning(
                    "Discarding late weight reading on %s (ts=%s, last=%s)",
                    channel,
                    ts,
                    state.last_ts,
                )
                return None
            state.last_ts = ts

        if state.last_weight is None:
            state.last_weight = value
            state.stable_weight = value
            return None

        transition = None
        diff = abs(value - state.last_weight)

        if state.state == IDLE:
            if diff > self.jump_threshold:
                state.state = SETTLING
                state.counter = 1
            elif state.pending_weight is not None:
                transition = self._settle(channel, state, value)
        elif diff > self.jump_threshold:
            state.counter = 1
        else:
            state.counter += 1

        if state.state == SETTLING and state.counter >= self.stable_count:
            transition = self._settle(channel, state, value)
            state.state = IDLE
            state.counter = 0

        state.last_weight = value
        return transition

    @staticmethod
    def _settle(channel: str, state: WeightChannelState, value: float) -> Optional[WeightTransition]:
        if value == state.stable_weight:
            state.pending_weight = None
            return None
        state.pending_weight = value
        return WeightTransition(channel, state.stable_weight, value)

    def commit(self, transition: WeightTransition) -> None:
        """Accept ``transition.final`` as the channel's stable weight."""
        state = self.state_for(transition.channel)
        state.stable_weight = transition.final
        state.pending_weight = None


class WeightReconciler:
    """Applies settled weight changes to the product bound to each channel."""

    def __init__(
        self,
        recorder: MovementRecorder,
        stabilizer: WeightStabilizer,
        channels: dict[str, int],
        *,
        company_id: Optional[int] = None,
    ):
        self.recorder = recorder
        self.stabilizer = stabilizer
        self.channels = dict(channels)
        self.company_id = company_id

    def on_reading(self, db: Session, channel: str, value: float, ts: Optional[float] = None):
        product_id = self.channels.get(channel)
        if product_id is None:
            logger.warning("Weight reading on unbound channel %s ignored", channel)
            return None

        transition = self.stabilizer.feed(channel, value, ts)
        if transition is None:
            return None

        logger.info(
            "Weight on %s settled %s -> %s",
            channel,
            transition.previous,
            transition.final,
        )
        if transition.quantity <= 0:
            self.stabilizer.commit(transition)
            return None

        # A failure below leaves the transition pending for the next reading.
        product = self.recorder.load_product(db, product_id, company_id=self.company_id)
        movement = self.recorder.record_movement(
            db,
            product,
            transition.type_id,
            transition.quantity,
            REASON_WEIGHT.format(channel=channel),
        )
        self.stabilizer.commit(transition)
        return movement


__all__ = [
    "IDLE",
    "SETTLING",
    "WeightChannelState",
    "WeightReconciler",
    "WeightStabilizer",
    "WeightTransition",
]
