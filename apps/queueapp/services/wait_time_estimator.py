import logging
import math
from numbers import Real
from typing import Optional

logger = logging.getLogger(__name__)

# Nobody is ever told they will be seen in under five minutes
MIN_WAIT_MINUTES = 5
DEFAULT_AVG_SERVICE_MINUTES = 15

# Weights of the blended estimate
EXTERNAL_SIGNAL_WEIGHT = 0.7
QUEUE_LENGTH_WEIGHT = 0.3


class WaitTimeEstimator:
    """
    Wait time estimate for a customer with ``queue_length`` people ahead.

    Two models are combined:
    - a deterministic one: every customer ahead takes ``avg_service_minutes``
    - an optional external signal (minutes predicted by the occupancy
      prediction service for the whole establishment)

    When the signal is present the result is 70% signal and 30% deterministic
    estimate. In both cases the estimate never drops below five minutes.
    """

    @staticmethod
    def traditional_estimate(queue_length: int, avg_service_minutes: float) -> float:
        return max(0, queue_length) * avg_service_minutes

    @staticmethod
    def is_usable_signal(signal) -> bool:
        """A signal is usable when it is a finite, non-negative number"""
        if signal is None or isinstance(signal, bool) or not isinstance(signal, Real):
            return False
        return math.isfinite(signal) and signal >= 0

    @classmethod
    def estimate(
        cls,
        queue_length: int,
        external_signal_minutes: Optional[float] = None,
        avg_service_minutes: float = DEFAULT_AVG_SERVICE_MINUTES,
    ) -> int:
        queue_based = cls.traditional_estimate(queue_length, avg_service_minutes)

        if not cls.is_usable_signal(external_signal_minutes):
            if external_signal_minutes is not None:
                logger.warning(
                    f"Ignoring unusable wait time signal {external_signal_minutes!r}, "
                    f"falling back to queue length estimate"
                )
            return max(MIN_WAIT_MINUTES, round_half_up(queue_based))

        blended = (
            external_signal_minutes * EXTERNAL_SIGNAL_WEIGHT + queue_based * QUEUE_LENGTH_WEIGHT
        )
        return max(MIN_WAIT_MINUTES, round_half_up(blended))


def round_half_up(value: float) -> int:
    # Half-way values round up (12.5 -> 13), unlike round()
    return int(math.floor(value + 0.5))
