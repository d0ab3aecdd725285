"""Minimum-amount gate for donations of the gated asset."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GatekeeperDecision:
    """Result of threshold evaluation."""

    suppressed: bool
    reason: str | None = None


def parse_threshold(raw: Any) -> Optional[int]:
    """Return ``raw`` as a non-negative integer, or ``None`` when it is not one.

    Accepts ints and string-encoded ints. Booleans, floats and anything
    negative are rejected.
    """

    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str):
        try:
            value = int(raw.strip(), 10)
        except ValueError:
            return None
    else:
        return None
    return value if value >= 0 else None


class Gatekeeper:
    """Holds the process-wide announcement threshold.

    Only assets whose name starts with ``gated_prefix`` (case-insensitive)
    are subject to the threshold; every other asset passes.
    """

    def __init__(self, gated_prefix: str = "diamond", threshold: int = 0) -> None:
        if threshold < 0:
            raise ValueError("Threshold must be non-negative")
        self._prefix = gated_prefix.strip().lower()
        self._threshold = threshold

    @property
    def threshold(self) -> int:
        return self._threshold

    def is_gated(self, asset_name: str | None) -> bool:
        return bool(asset_name) and asset_name.strip().lower().startswith(self._prefix)

    def evaluate(self, asset_name: str | None, amount: Decimal | int | float) -> GatekeeperDecision:
        """Suppress iff the asset is gated and ``amount`` is strictly below the threshold."""

        if self.is_gated(asset_name) and amount < self._threshold:
            return GatekeeperDecision(
                suppressed=True,
                reason=f"{amount} {asset_name} is below threshold {self._threshold}",
            )
        return GatekeeperDecision(suppressed=False)

    def update(self, raw: Any) -> bool:
        """Apply a client-supplied threshold; return whether it was accepted."""

        value = parse_threshold(raw)
        if value is None:
            logger.warning("threshold.invalid", extra={"value": repr(raw)})
            return False
        self._threshold = value
        logger.info("threshold.updated", extra={"threshold": value})
        return True
