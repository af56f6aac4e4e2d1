"""
Granule allocation for new files.

Adding a file is a transaction over the in-memory image: the granule map,
the free counter, the claimed directory slot and the data bytes of every
granule written are recorded before they change, and restored if anything
fails before commit.
"""

from typing import BinaryIO

from .constants import GRANULE_SIZE, SECTOR_SIZE, TOTAL_GRANULES
from .directory import Directory
from .exceptions import DiskError, DiskFullError
from .granule_map import GranuleMap
from .image import DiskImage
from .logging_config import get_logger
from .models import DirectoryEntry

log = get_logger(__name__)

# Allocation starts next to the directory track so reads seek less
ALLOCATION_START = TOTAL_GRANULES // 2


def granules_needed(length: int) -> int:
    """Granules for a file of ``length`` bytes; an empty file still takes one."""
    return max(1, -(-length // GRANULE_SIZE))


def last_granule_layout(remaining: int) -> tuple[int, int]:
    """(sectors used, bytes used in last sector) for the final granule."""
    sectors = -(-remaining // SECTOR_SIZE)
    last_bytes = remaining % SECTOR_SIZE
    if last_bytes == 0 and remaining:
        last_bytes = SECTOR_SIZE
    return sectors, last_bytes


class AllocationTransaction:
    """
    Begin/commit/rollback over the granule map and one directory slot.

    Used as a context manager; leaving the block without ``commit()``
    (normally because of an exception) rolls back.
    """

    def __init__(self, image: DiskImage, slot: int):
        self.image = image
        self.slot = slot
        self.granule_map = GranuleMap(image)
        self.directory = Directory(image)
        self._map_snapshot: tuple[bytes, int] | None = None
        self._slot_snapshot: bytes | None = None
        self._granule_data: dict[int, bytes] = {}
        self.active = False

    def begin(self) -> 'AllocationTransaction':
        self._map_snapshot = self.granule_map.snapshot()
        self._slot_snapshot = self.directory.read_raw(self.slot)
        self._granule_data.clear()
        self.active = True
        return self

    def write_granule(self, granule: int, data: bytes) -> None:
        """Write granule data, keeping its old contents for rollback."""
        if granule not in self._granule_data:
            self._granule_data[granule] = self.image.read_granule(granule)
        self.image.write_granule(granule, data)

    def commit(self) -> None:
        self.active = False
        self._granule_data.clear()

    def rollback(self) -> None:
        if not self.active:
            return
        for granule, data in self._granule_data.items():
            self.image.write_granule(granule, data)
        self.granule_map.restore(self._map_snapshot)
        self.directory.write_raw(self.slot, self._slot_snapshot)
        self._granule_data.clear()
        self.active = False
        log.debug("rolled back allocation for slot %d", self.slot)

    def __enter__(self):
        return self.begin()

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.active:
            self.rollback()
        return False


class Allocator:
    """Places new files on a DiskImage."""

    def __init__(self, image: DiskImage):
        self.image = image
        self.granule_map = GranuleMap(image)
        self.directory = Directory(image)

    def claim_granules(self, count: int) -> list[int]:
        """
        Claim ``count`` granules, scanning forward from the middle of the
        disk and resuming after each granule taken.
        """
        claimed = []
        start = ALLOCATION_START
        for _ in range(count):
            granule = self.granule_map.claim(start)
            claimed.append(granule)
            start = granule + 1
        return claimed

    def add_file(
        self,
        source: BinaryIO,
        length: int,
        name: str,
        extension: str,
        file_type: int,
        encoding: int,
    ) -> DirectoryEntry:
        """
        Copy ``length`` bytes from ``source`` into a new file.

        ``name`` and ``extension`` must already be normalized. Raises
        DiskFullError or DirectoryFullError before touching anything, and
        DiskError if the source comes up short; on any failure the image
        is left as it was.
        """
        needed = granules_needed(length)
        if needed > self.image.free_granules:
            raise DiskFullError(
                f"{name.rstrip()}: need {needed} granules, only {self.image.free_granules} free"
            )

        slot = self.directory.find_free_slot()

        with AllocationTransaction(self.image, slot) as txn:
            granules = self.claim_granules(needed)
            log.debug("%s: granules %s", name.rstrip(), granules)

            remaining = length
            sectors, last_bytes = 0, 0
            for index, granule in enumerate(granules):
                chunk_size = min(remaining, GRANULE_SIZE)
                chunk = self._read_exact(source, chunk_size, name)
                txn.write_granule(granule, chunk)

                if index + 1 < len(granules):
                    self.granule_map.set_link(granule, granules[index + 1])
                else:
                    sectors, last_bytes = last_granule_layout(chunk_size)
                    self.granule_map.set_terminal(granule, sectors)
                remaining -= chunk_size

            entry = DirectoryEntry(
                name=name,
                extension=extension,
                file_type=file_type,
                encoding=encoding,
                first_granule=granules[0],
                last_bytes=last_bytes,
                slot=slot,
            )
            self.directory.write_entry(slot, entry)
            txn.commit()

        return entry

    @staticmethod
    def _read_exact(source: BinaryIO, size: int, name: str) -> bytes:
        data = bytearray()
        try:
            while len(data) < size:
                chunk = source.read(size - len(data))
                if not chunk:
                    break
                data.extend(chunk)
        except OSError as e:
            raise DiskError(f"failed to read {name.rstrip()}: {e}") from e
        if len(data) != size:
            raise DiskError(f"failed to read {name.rstrip()}: short read ({len(data)} of {size} bytes)")
        return bytes(data)
