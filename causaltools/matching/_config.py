from __future__ import annotations

import enum
import math
import numbers
from dataclasses import dataclass

from .._exceptions import InvalidConfiguration
from .._validation import is_bool, is_integer

DEFAULT_SEED = 1234


class Distance(str, enum.Enum):
    """Distance metric used to rank candidate controls."""

    PROBABILITY = "probability"
    LOGIT       = "logit"
    MAHALANOBIS = "mahalanobis"

    @property
    def uses_scores(self) -> bool:
        """Whether the metric is built on a per-unit propensity score."""
        return self is not Distance.MAHALANOBIS


class Order(str, enum.Enum):
    """Order in which treated units pick their controls."""

    LARGEST  = "largest"
    SMALLEST = "smallest"
    RANDOM   = "random"


@dataclass(frozen=True)
class MatchingConfig:
    """Validated matching options. Build with ``validate_config``."""

    distance: Distance = Distance.PROBABILITY
    ratio: int = 1
    replacement: bool = False
    caliper: float = math.inf
    order: Order = Order.LARGEST
    seed: int = DEFAULT_SEED
    discard: bool = False

    @property
    def caliper_active(self) -> bool:
        """A finite caliper on a score metric; Mahalanobis ignores calipers."""
        return self.distance.uses_scores and math.isfinite(self.caliper)


def _coerce(enum_cls, name: str, value):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.lower())
        except ValueError:
            pass
    raise InvalidConfiguration(
        f"{name} must be one of {[m.value for m in enum_cls]}. Got: {value!r}"
    )


def validate_config(
    distance="probability",
    ratio=1,
    replacement=False,
    caliper=math.inf,
    order="largest",
    seed=DEFAULT_SEED,
    discard=False,
) -> MatchingConfig:
    """
    Check every matching option and return them as a ``MatchingConfig``.

    Raises ``InvalidConfiguration`` naming the first offending argument.
    Nothing is computed before all options have passed.
    """
    if not is_integer(ratio) or ratio < 1:
        raise InvalidConfiguration(f"ratio must be a positive integer. Got: {ratio!r}")
    if not is_bool(replacement):
        raise InvalidConfiguration(f"replacement must be a bool. Got: {replacement!r}")
    if not is_bool(discard):
        raise InvalidConfiguration(f"discard must be a bool. Got: {discard!r}")

    distance = _coerce(Distance, "distance", distance)

    if (
        not isinstance(caliper, numbers.Real)
        or is_bool(caliper)
        or math.isnan(caliper)
        or caliper < 0
    ):
        raise InvalidConfiguration(
            f"caliper must be a non-negative number (use math.inf for no caliper). Got: {caliper!r}"
        )

    order = _coerce(Order, "order", order)

    if not is_integer(seed):
        raise InvalidConfiguration(f"seed must be an integer. Got: {seed!r}")

    return MatchingConfig(
        distance=distance,
        ratio=int(ratio),
        replacement=bool(replacement),
        caliper=float(caliper),
        order=order,
        seed=int(seed),
        discard=bool(discard),
    )
