"""Area masks, filter profiles, cost overlays and the filter registry."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, ClassVar, Iterable

if TYPE_CHECKING:
    from hpagrid.grid import GridAabb

_U64 = (1 << 64) - 1
_FNV_OFFSET = 0xCBF29CE484222325
_FNV_PRIME = 0x00000100000001B3


@dataclass(frozen=True)
class AreaMask:
    """A 64-bit set of traversal flags."""

    bits: int = 0

    ALL: ClassVar[AreaMask]
    EMPTY: ClassVar[AreaMask]

    @classmethod
    def from_bit(cls, bit: int) -> AreaMask:
        return cls((1 << bit) & _U64)

    def contains(self, other: AreaMask) -> bool:
        return (self.bits & other.bits) == other.bits

    def intersects(self, other: AreaMask) -> bool:
        return (self.bits & other.bits) != 0

    def __or__(self, other: AreaMask) -> AreaMask:
        return AreaMask(self.bits | other.bits)


AreaMask.ALL = AreaMask(_U64)
AreaMask.EMPTY = AreaMask(0)


@dataclass(frozen=True)
class PathFilterProfile:
    """Rules an agent applies when deciding where it may walk and at what cost."""

    filter_id: int = 0
    name: str = "default"
    allowed_mask: AreaMask = AreaMask.ALL
    blocked_mask: AreaMask = AreaMask.EMPTY
    clearance: int = 0
    area_cost_multipliers: dict[int, float] = field(default_factory=dict)

    @classmethod
    def named(cls, name: str) -> PathFilterProfile:
        return cls(name=name)

    def with_id(self, filter_id: int) -> PathFilterProfile:
        return replace(self, filter_id=filter_id)

    def with_blocked_mask(self, blocked_mask: AreaMask) -> PathFilterProfile:
        return replace(self, blocked_mask=blocked_mask)

    def with_allowed_mask(self, allowed_mask: AreaMask) -> PathFilterProfile:
        return replace(self, allowed_mask=allowed_mask)

    def with_clearance(self, clearance: int) -> PathFilterProfile:
        return replace(self, clearance=clearance)

    def with_area_cost(self, area: int, multiplier: float) -> PathFilterProfile:
        costs = dict(self.area_cost_multipliers)
        costs[area] = multiplier
        return replace(self, area_cost_multipliers=costs)

    def multiplier_for(self, area: int) -> float:
        return self.area_cost_multipliers.get(area, 1.0)


@dataclass(frozen=True)
class PathCostOverlay:
    """Extra cost added to every cell of a region; infinite cost blocks it."""

    region: GridAabb
    added_cost: float


def _f32_bits(value: float) -> int:
    return struct.unpack("<I", struct.pack("<f", value))[0]


def overlay_signature(overlays: Iterable[PathCostOverlay]) -> int:
    """Return a 64-bit FNV-style hash of a list of overlays."""
    digest = _FNV_OFFSET
    for overlay in overlays:
        for coord in (overlay.region.min, overlay.region.max):
            for axis in (coord.x, coord.y, coord.z):
                digest ^= axis & _U64
                digest = (digest * _FNV_PRIME) & _U64
        digest ^= _f32_bits(overlay.added_cost)
        digest = (digest * _FNV_PRIME) & _U64
    return digest


@dataclass
class PathFilterLibrary:
    """Registry of filter profiles keyed by id."""

    next_id: int = 0
    profiles: dict[int, PathFilterProfile] = field(default_factory=dict)

    def register(self, profile: PathFilterProfile) -> int:
        if profile.filter_id == 0 and 0 in self.profiles:
            self.next_id = max(self.next_id, 1)
            filter_id = self.next_id
            self.next_id += 1
        elif profile.filter_id == 0 and not self.profiles:
            filter_id = 0
        else:
            filter_id = profile.filter_id
        self.profiles[filter_id] = profile.with_id(filter_id)
        return filter_id

    def get(self, filter_id: int) -> PathFilterProfile | None:
        return self.profiles.get(filter_id)