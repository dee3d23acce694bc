"""
Vehicle-type fee schedule for driver-initiated cancellations.

The tables are read-only configuration. Callers that need different numbers
(regional pricing, experiments) build their own ``FeeSchedule`` and hand it
to the engine instead of patching module state.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

FREE_CANCEL_WINDOW_SECONDS = 45
LOW_MOVEMENT_METERS = 300
MODERATE_MOVEMENT_METERS = 1500
NOSHOW_WAIT_RADIUS_METERS = 120

DEFAULT_BUCKET = "sedan"
FALLBACK_FEE = 50
FALLBACK_NOSHOW_WAIT_MINUTES = 5

# Substring aliases, checked in order. First hit wins.
_VEHICLE_ALIASES = (
    ("bike", ("bike", "bikes", "two_wheeler", "2w")),
    ("auto", ("auto", "autorickshaw", "3w")),
    ("xl", ("xl", "suv", "xuv")),
    ("mini", ("mini", "hatchback", "hatch")),
)


def normalize_vehicle_type(value: Optional[str]) -> str:
    """Map a free-text vehicle type onto one of bike/auto/xl/mini/sedan."""
    if not value:
        return DEFAULT_BUCKET
    text = value.strip().lower()
    for bucket, aliases in _VEHICLE_ALIASES:
        if any(alias in text for alias in aliases):
            return bucket
    return DEFAULT_BUCKET


def _frozen(table: Mapping[str, int]) -> Mapping[str, int]:
    return MappingProxyType(dict(table))


@dataclass(frozen=True)
class FeeSchedule:
    """Per-vehicle amounts and waits used by the cancellation engine."""

    partial_fee: Mapping[str, int] = field(default_factory=lambda: _frozen({
        "bike": 15, "auto": 20,
        "mini": 30, "sedan": 30, "hatchback": 30, "cab": 30,
        "xl": 40, "suv": 40,
    }))
    full_fee: Mapping[str, int] = field(default_factory=lambda: _frozen({
        "bike": 25, "auto": 30,
        "mini": 50, "sedan": 50, "hatchback": 50, "cab": 50,
        "xl": 70, "suv": 70,
    }))
    noshow_fee: Mapping[str, int] = field(default_factory=lambda: _frozen({
        "bike": 25, "auto": 30,
        "mini": 50, "sedan": 50, "hatchback": 50, "cab": 50,
        "xl": 80, "suv": 80,
    }))
    noshow_wait_minutes: Mapping[str, int] = field(default_factory=lambda: _frozen({
        "bike": 3, "auto": 4,
        "mini": 5, "sedan": 5, "hatchback": 5, "cab": 5,
        "xl": 5, "suv": 5,
    }))

    def __post_init__(self):
        # Accept plain dicts from callers but never keep a mutable reference.
        for name in ("partial_fee", "full_fee", "noshow_fee", "noshow_wait_minutes"):
            object.__setattr__(self, name, _frozen(getattr(self, name)))

    @staticmethod
    def fee(table: Mapping[str, int], vehicle_type: Optional[str]) -> int:
        """Look up ``vehicle_type`` in ``table``, falling back to sedan, then 50."""
        bucket = normalize_vehicle_type(vehicle_type)
        if bucket in table:
            return table[bucket]
        return table.get(DEFAULT_BUCKET, FALLBACK_FEE)

    def partial(self, vehicle_type: Optional[str]) -> int:
        return self.fee(self.partial_fee, vehicle_type)

    def full(self, vehicle_type: Optional[str]) -> int:
        return self.fee(self.full_fee, vehicle_type)

    def noshow(self, vehicle_type: Optional[str]) -> int:
        return self.fee(self.noshow_fee, vehicle_type)

    def noshow_wait(self, vehicle_type: Optional[str]) -> int:
        bucket = normalize_vehicle_type(vehicle_type)
        return self.noshow_wait_minutes.get(bucket, FALLBACK_NOSHOW_WAIT_MINUTES)


DEFAULT_FEE_SCHEDULE = FeeSchedule()
