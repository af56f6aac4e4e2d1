"""
Directory accessor for CoCo DOS disk images.

The directory is a fixed array of 72 32-byte slots in sectors 3-11 of
the directory track. A slot is free when its type byte is 0xFF; freeing a
slot resets all 32 bytes to 0xFF, the same pattern a fresh format leaves.
"""

from typing import Iterator

from .constants import DIR_ENTRIES, DIR_ENTRY_SIZE, DIRENT_TYPE, FORMAT_FILL, TYPE_FREE
from .exceptions import DirectoryFullError
from .image import DIRECTORY_OFFSET, DiskImage
from .models import DirectoryEntry
from .utils import normalize_name


class Directory:
    """Slot-indexed view of the directory inside a DiskImage."""

    def __init__(self, image: DiskImage):
        self.image = image

    def __len__(self) -> int:
        return DIR_ENTRIES

    def _slot_offset(self, slot: int) -> int:
        if not 0 <= slot < DIR_ENTRIES:
            raise IndexError(f"Directory slot out of range: {slot}")
        return DIRECTORY_OFFSET + slot * DIR_ENTRY_SIZE

    def read_raw(self, slot: int) -> bytes:
        offset = self._slot_offset(slot)
        return bytes(self.image.data[offset:offset + DIR_ENTRY_SIZE])

    def write_raw(self, slot: int, data: bytes) -> None:
        if len(data) != DIR_ENTRY_SIZE:
            raise ValueError(f"Directory entry must be {DIR_ENTRY_SIZE} bytes")
        offset = self._slot_offset(slot)
        self.image.data[offset:offset + DIR_ENTRY_SIZE] = data

    def read_entry(self, slot: int) -> DirectoryEntry:
        return DirectoryEntry.from_bytes(self.read_raw(slot), slot=slot)

    def write_entry(self, slot: int, entry: DirectoryEntry) -> None:
        self.write_raw(slot, entry.to_bytes())

    def is_slot_free(self, slot: int) -> bool:
        return self.image.data[self._slot_offset(slot) + DIRENT_TYPE] == TYPE_FREE

    def entries(self) -> Iterator[DirectoryEntry]:
        """Every slot, free or not, in slot order."""
        for slot in range(DIR_ENTRIES):
            yield self.read_entry(slot)

    def files(self) -> list[DirectoryEntry]:
        """Slots holding a file of a known type, in slot order."""
        return [entry for entry in self.entries() if entry.is_file]

    def lookup(self, name: str, extension: str) -> DirectoryEntry | None:
        """
        Find a file by padded name and extension.

        Free slots are skipped. The first match in slot order wins; a
        corrupt directory may hold duplicates and the rest are ignored.
        """
        for entry in self.entries():
            if entry.is_free:
                continue
            if entry.name == name and entry.extension == extension:
                return entry
        return None

    def find(self, filename: str) -> DirectoryEntry | None:
        """Look up a 'NAME.EXT' string. Raises InvalidFilenameError."""
        name, ext = normalize_name(filename)
        return self.lookup(name, ext)

    def find_free_slot(self) -> int:
        for slot in range(DIR_ENTRIES):
            if self.is_slot_free(slot):
                return slot
        raise DirectoryFullError("No directory entries available")

    def free_slot(self, slot: int) -> None:
        self.write_raw(slot, bytes([FORMAT_FILL]) * DIR_ENTRY_SIZE)
