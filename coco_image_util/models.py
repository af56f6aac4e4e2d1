"""
Data model classes for the CoCo Disk Image Utility.
"""

import struct
from dataclasses import dataclass, field
from enum import Enum

from .constants import (
    DIR_ENTRY_SIZE,
    DIRENT_ENCODING,
    DIRENT_EXT,
    DIRENT_FIRST_GRANULE,
    DIRENT_LAST_BYTES,
    DIRENT_NAME,
    DIRENT_RESERVED,
    DIRENT_TYPE,
    ENCODING_NAMES,
    EXT_LEN,
    FILE_TYPE_NAMES,
    FORMAT_FILL,
    NAME_LEN,
    TYPE_FREE,
    TYPE_TEXT,
)
from .exceptions import DiskError


def file_type_name(file_type: int) -> str:
    """Return 'Basic', 'Data', ... or '<type 0xNN>' for unknown values."""
    return FILE_TYPE_NAMES.get(file_type, f"<type 0x{file_type:02x}>")


def encoding_name(encoding: int) -> str:
    """Return 'Binary', 'ASCII' or '<encoding 0xNN>' for unknown values."""
    return ENCODING_NAMES.get(encoding, f"<encoding 0x{encoding:02x}>")


def join_name(name: str, extension: str) -> str:
    """Return 'NAME.EXT', or 'NAME' when the extension is blank."""
    name = name.rstrip()
    ext = extension.rstrip()
    if ext:
        return f"{name}.{ext}"
    return name


@dataclass
class DirectoryEntry:
    """Represents a 32-byte CoCo DOS directory entry."""
    name: str           # 8 chars, space-padded
    extension: str      # 3 chars, space-padded
    file_type: int      # 0x00-0x03, 0xFF when free
    encoding: int       # 0x00 binary, 0xFF ASCII
    first_granule: int  # Head of the granule chain
    last_bytes: int     # Bytes used in the last sector (big-endian on disk)

    # Bytes 16-31 are unused; carried through unchanged
    reserved: bytes = bytes([FORMAT_FILL]) * (DIR_ENTRY_SIZE - DIRENT_RESERVED)
    slot: int | None = None

    @classmethod
    def from_bytes(cls, data: bytes, slot: int | None = None) -> 'DirectoryEntry':
        """Parse a 32-byte directory entry."""
        if len(data) != DIR_ENTRY_SIZE:
            raise DiskError(f"Invalid directory entry size: {len(data)}")

        # latin-1 maps every byte value, so corrupt names still decode
        return cls(
            name=data[DIRENT_NAME:DIRENT_NAME + NAME_LEN].decode('latin-1'),
            extension=data[DIRENT_EXT:DIRENT_EXT + EXT_LEN].decode('latin-1'),
            file_type=data[DIRENT_TYPE],
            encoding=data[DIRENT_ENCODING],
            first_granule=data[DIRENT_FIRST_GRANULE],
            last_bytes=struct.unpack_from('>H', data, DIRENT_LAST_BYTES)[0],
            reserved=bytes(data[DIRENT_RESERVED:DIR_ENTRY_SIZE]),
            slot=slot,
        )

    def to_bytes(self) -> bytes:
        """Serialize to a 32-byte directory entry."""
        data = bytearray(DIR_ENTRY_SIZE)
        data[DIRENT_NAME:DIRENT_NAME + NAME_LEN] = self.name.encode('latin-1')[:NAME_LEN].ljust(NAME_LEN)
        data[DIRENT_EXT:DIRENT_EXT + EXT_LEN] = self.extension.encode('latin-1')[:EXT_LEN].ljust(EXT_LEN)
        data[DIRENT_TYPE] = self.file_type
        data[DIRENT_ENCODING] = self.encoding
        data[DIRENT_FIRST_GRANULE] = self.first_granule
        struct.pack_into('>H', data, DIRENT_LAST_BYTES, self.last_bytes)
        reserved_len = DIR_ENTRY_SIZE - DIRENT_RESERVED
        data[DIRENT_RESERVED:DIR_ENTRY_SIZE] = self.reserved[:reserved_len].ljust(reserved_len, bytes([FORMAT_FILL]))
        return bytes(data)

    @property
    def full_name(self) -> str:
        """Return 'NAME.EXT' format."""
        return join_name(self.name, self.extension)

    @property
    def is_free(self) -> bool:
        """Slot is free (type byte holds the free sentinel)."""
        return self.file_type == TYPE_FREE

    @property
    def is_file(self) -> bool:
        """Slot holds a file with a known type (Basic/Data/Code/Text)."""
        return self.file_type <= TYPE_TEXT

    @property
    def raw_last_bytes(self) -> tuple[int, int]:
        """The two on-disk bytes of the last-sector count."""
        return (self.last_bytes >> 8) & 0xFF, self.last_bytes & 0xFF


@dataclass
class FileStat:
    """stat()-like summary of one file."""
    name: str           # Trailing spaces removed
    extension: str      # Trailing spaces removed
    size: int
    file_type: int
    encoding: int
    slot: int | None = None
    truncated: bool = False  # Size stopped early on a corrupt chain

    @property
    def full_name(self) -> str:
        return join_name(self.name, self.extension)

    @property
    def type_name(self) -> str:
        return file_type_name(self.file_type)

    @property
    def encoding_name(self) -> str:
        return encoding_name(self.encoding)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "extension": self.extension,
            "size": self.size,
            "type": self.type_name,
            "encoding": self.encoding_name,
            "slot": self.slot,
            "truncated": self.truncated,
        }


class ChainFault(Enum):
    """Why a granule chain walk stopped early."""
    OUT_OF_RANGE = 'invalid granule'
    INVALID_ENTRY = 'invalid granule map entry'
    UNEXPECTED_FREE = 'free granule in chain'
    CYCLE = 'granule list cycle detected'


@dataclass
class ChainStep:
    """
    One visited position of a granule chain.

    ``value`` is the raw map byte of ``granule`` (None when the index is
    out of range or the walk hit its bound). A step with a fault is always
    the last one produced.
    """
    position: int
    granule: int
    value: int | None = None
    fault: ChainFault | None = None
    next_granule: int | None = None
    last_sectors: int | None = None

    @property
    def is_last(self) -> bool:
        return self.last_sectors is not None


@dataclass
class FileTrace:
    """Per-file record produced by the consistency checker."""
    stat: FileStat
    last_bytes: int
    raw_last_bytes: tuple[int, int]
    steps: list[ChainStep] = field(default_factory=list)
    double_allocated: list[tuple[int, int]] = field(default_factory=list)  # (granule, owner slot)
