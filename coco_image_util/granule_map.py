"""
Granule map codec and accessor.

The granule map is one byte per granule in sector 2 of the directory
track. It works much like a FAT:

    0x00 - 0x43   link to the next granule of the file
    0xC0 - 0xC9   last granule of the file; low nibble = sectors used
    0xFF          free
    anything else invalid (corruption)
"""

from dataclasses import dataclass
from enum import Enum

from .constants import (
    GMAP_ALLOCATED,
    GMAP_FREE,
    GMAP_LAST,
    GMAP_NSEC_MASK,
    SECTORS_PER_GRANULE,
    TOTAL_GRANULES,
)
from .exceptions import DiskError, DiskFullError
from .image import GMAP_OFFSET, DiskImage
from .logging_config import get_logger

log = get_logger(__name__)


class GranuleState(Enum):
    FREE = 'free'
    LINK = 'link'
    TERMINAL = 'terminal'
    INVALID = 'invalid'


@dataclass(frozen=True)
class GranuleEntry:
    """A decoded granule map byte."""
    raw: int
    state: GranuleState
    next_granule: int | None = None
    sectors_used: int | None = None

    @property
    def is_free(self) -> bool:
        return self.state is GranuleState.FREE

    @property
    def is_link(self) -> bool:
        return self.state is GranuleState.LINK

    @property
    def is_terminal(self) -> bool:
        return self.state is GranuleState.TERMINAL

    @property
    def is_valid(self) -> bool:
        return self.state is not GranuleState.INVALID


def decode(value: int) -> GranuleEntry:
    """Decode one granule map byte."""
    if value == GMAP_FREE:
        return GranuleEntry(value, GranuleState.FREE)
    if value < TOTAL_GRANULES:
        return GranuleEntry(value, GranuleState.LINK, next_granule=value)
    if GMAP_LAST <= value <= (GMAP_LAST | SECTORS_PER_GRANULE):
        return GranuleEntry(value, GranuleState.TERMINAL, sectors_used=value & GMAP_NSEC_MASK)
    return GranuleEntry(value, GranuleState.INVALID)


def is_valid(value: int) -> bool:
    """True for a free, terminal, or in-range link entry."""
    return decode(value).is_valid


def encode_link(next_granule: int) -> int:
    if not 0 <= next_granule < TOTAL_GRANULES:
        raise ValueError(f"Granule out of range: {next_granule}")
    return next_granule


def encode_terminal(sectors_used: int) -> int:
    if not 0 <= sectors_used <= SECTORS_PER_GRANULE:
        raise ValueError(f"Sector count out of range: {sectors_used}")
    return GMAP_LAST | sectors_used


class GranuleMap:
    """
    Read/write view of the granule map inside a DiskImage.

    Mutators keep ``image.free_granules`` in step with the map.
    """

    def __init__(self, image: DiskImage):
        self.image = image

    def __len__(self) -> int:
        return TOTAL_GRANULES

    def _check(self, granule: int) -> None:
        if not 0 <= granule < TOTAL_GRANULES:
            raise IndexError(f"Granule out of range: {granule}")

    def __getitem__(self, granule: int) -> int:
        self._check(granule)
        return self.image.data[GMAP_OFFSET + granule]

    def __setitem__(self, granule: int, value: int) -> None:
        self._check(granule)
        self.image.data[GMAP_OFFSET + granule] = value

    def entry(self, granule: int) -> GranuleEntry:
        return decode(self[granule])

    @property
    def free_granules(self) -> int:
        return self.image.free_granules

    def snapshot(self) -> tuple[bytes, int]:
        """Copy of the raw map plus the free counter."""
        return bytes(self.image.data[GMAP_OFFSET:GMAP_OFFSET + TOTAL_GRANULES]), self.image.free_granules

    def restore(self, snapshot: tuple[bytes, int]) -> None:
        raw, free_granules = snapshot
        if len(raw) != TOTAL_GRANULES:
            raise DiskError(f"Invalid granule map snapshot size: {len(raw)}")
        self.image.data[GMAP_OFFSET:GMAP_OFFSET + TOTAL_GRANULES] = raw
        self.image.free_granules = free_granules

    def set_link(self, granule: int, next_granule: int) -> None:
        self[granule] = encode_link(next_granule)

    def set_terminal(self, granule: int, sectors_used: int) -> None:
        self[granule] = encode_terminal(sectors_used)

    def free(self, granule: int) -> None:
        """Mark a used granule free and count it."""
        if self[granule] == GMAP_FREE:
            return
        self[granule] = GMAP_FREE
        self.image.free_granules += 1

    def claim(self, start: int) -> int:
        """
        Claim the first free granule at or after ``start``, wrapping.

        The granule is marked with the provisional ALLOCATED value until
        the caller links it into a chain.
        """
        granule = start % TOTAL_GRANULES
        for _ in range(TOTAL_GRANULES):
            if self[granule] == GMAP_FREE:
                self[granule] = GMAP_ALLOCATED
                self.image.free_granules -= 1
                log.debug("claimed granule %d", granule)
                return granule
            granule = (granule + 1) % TOTAL_GRANULES
        raise DiskFullError("No free granules on disk")
