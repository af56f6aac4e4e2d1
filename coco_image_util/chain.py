"""
Granule chain traversal.

Every walk is bounded: a chain can never be longer than the number of
granules on the disk, so after TOTAL_GRANULES + 1 steps the chain must
loop and the walk stops with a cycle fault.
"""

from typing import BinaryIO, Iterator

from .constants import GRANULE_SIZE, SECTOR_SIZE, TOTAL_GRANULES
from .exceptions import (
    ChainCycleError,
    CorruptedDiskError,
    DiskError,
    InvalidGranuleEntryError,
    InvalidGranuleError,
)
from .granule_map import GranuleMap, decode
from .image import DiskImage
from .logging_config import get_logger
from .models import ChainFault, ChainStep, DirectoryEntry

log = get_logger(__name__)

MAX_CHAIN_STEPS = TOTAL_GRANULES + 1


def clamp_last_bytes(last_bytes: int) -> int:
    """Limit a last-sector byte count to one sector."""
    if last_bytes > SECTOR_SIZE:
        log.warning("unexpected last-sector byte count %d, clamping to %d", last_bytes, SECTOR_SIZE)
        return SECTOR_SIZE
    return last_bytes


def terminal_bytes(sectors_used: int, last_bytes: int) -> int:
    """Bytes of data held by a file's last granule."""
    if sectors_used == 0:
        return 0
    return sectors_used * SECTOR_SIZE - (SECTOR_SIZE - clamp_last_bytes(last_bytes))


def fault_error(step: ChainStep) -> CorruptedDiskError:
    """Exception describing a faulted step."""
    if step.fault is ChainFault.OUT_OF_RANGE:
        return InvalidGranuleError(f"invalid granule #{step.position}: {step.granule}")
    if step.fault is ChainFault.CYCLE:
        return ChainCycleError(f"granule list cycle detected after {step.position} granules")
    return InvalidGranuleEntryError(
        f"invalid granule map entry {step.position}: {step.granule} -> 0x{step.value:02x}"
    )


class ChainWalker:
    """Traverses granule chains of a DiskImage."""

    def __init__(self, image: DiskImage):
        self.image = image
        self.granule_map = GranuleMap(image)

    def trace(self, head: int) -> Iterator[ChainStep]:
        """
        Yield every step of the chain starting at ``head``.

        Never raises on corruption: the final step either carries
        ``last_sectors`` (a proper end) or a ``fault``.
        """
        granule = head
        for position in range(MAX_CHAIN_STEPS):
            if not 0 <= granule < TOTAL_GRANULES:
                yield ChainStep(position, granule, fault=ChainFault.OUT_OF_RANGE)
                return

            entry = decode(self.granule_map[granule])
            if entry.is_link:
                yield ChainStep(position, granule, entry.raw, next_granule=entry.next_granule)
                granule = entry.next_granule
            elif entry.is_terminal:
                yield ChainStep(position, granule, entry.raw, last_sectors=entry.sectors_used)
                return
            elif entry.is_free:
                yield ChainStep(position, granule, entry.raw, fault=ChainFault.UNEXPECTED_FREE)
                return
            else:
                yield ChainStep(position, granule, entry.raw, fault=ChainFault.INVALID_ENTRY)
                return

        yield ChainStep(MAX_CHAIN_STEPS, granule, fault=ChainFault.CYCLE)

    def walk(self, head: int) -> Iterator[ChainStep]:
        """Yield the steps of a well-formed chain; raise on the first fault."""
        for step in self.trace(head):
            if step.fault is not None:
                raise fault_error(step)
            yield step

    def granules(self, head: int) -> list[int]:
        """All granules of a chain, in order. Raises CorruptedDiskError."""
        return [step.granule for step in self.walk(head)]

    def compute_size(self, entry: DirectoryEntry, strict: bool = True) -> tuple[int, bool]:
        """
        Return (size, truncated) for a directory entry.

        With ``strict`` a corrupt chain raises CorruptedDiskError;
        otherwise the size of the readable part is returned and
        ``truncated`` is True.
        """
        size = 0
        try:
            for step in self.walk(entry.first_granule):
                if step.is_last:
                    size += terminal_bytes(step.last_sectors, entry.last_bytes)
                else:
                    size += GRANULE_SIZE
        except CorruptedDiskError as e:
            if strict:
                raise
            log.warning("%s: %s; size truncated to %d", entry.full_name, e, size)
            return size, True
        return size, False

    def stream_out(self, entry: DirectoryEntry, sink: BinaryIO) -> int:
        """
        Copy a file's data to ``sink``. Returns bytes written.

        Any chain fault aborts the copy; whatever was already written to
        the sink stays there.
        """
        written = 0
        for step in self.walk(entry.first_granule):
            if step.is_last:
                length = terminal_bytes(step.last_sectors, entry.last_bytes)
            else:
                length = GRANULE_SIZE
            written += self._write(sink, self.image.read_granule(step.granule, length))
        return written

    def read_file(self, entry: DirectoryEntry) -> bytes:
        """Return a file's data. Raises CorruptedDiskError."""
        data = bytearray()
        for step in self.walk(entry.first_granule):
            if step.is_last:
                data.extend(self.image.read_granule(step.granule,
                                                    terminal_bytes(step.last_sectors, entry.last_bytes)))
            else:
                data.extend(self.image.read_granule(step.granule))
        return bytes(data)

    @staticmethod
    def _write(sink: BinaryIO, data: bytes) -> int:
        try:
            count = sink.write(data)
        except OSError as e:
            raise DiskError(f"error writing output: {e}") from e
        if count is not None and count != len(data):
            raise DiskError(f"error writing output: wrote {count} of {len(data)} bytes")
        return len(data)
