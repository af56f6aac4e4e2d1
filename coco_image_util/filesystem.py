"""
CoCo DOS file system operations over a DiskImage.

Ties together the directory, granule map, chain walker and allocator
into the file-level operations used by the commands: stat, lookup,
read/copy out, add and remove.
"""

import io
from typing import BinaryIO

from .allocator import Allocator
from .chain import ChainWalker
from .constants import DEFAULT_ENCODING, DEFAULT_TYPE, GRANULE_SIZE, TOTAL_GRANULES
from .directory import Directory
from .exceptions import FileExistsError, FileNotFoundError
from .granule_map import GranuleMap
from .image import DiskImage
from .logging_config import get_logger
from .models import DirectoryEntry, FileStat, join_name
from .utils import normalize_name

log = get_logger(__name__)


class CoCoFileSystem:
    """File-level view of a CoCo DOS disk image."""

    def __init__(self, image: DiskImage):
        self.image = image
        self.granule_map = GranuleMap(image)
        self.directory = Directory(image)
        self.walker = ChainWalker(image)
        self.allocator = Allocator(image)

    @property
    def free_granules(self) -> int:
        return self.image.free_granules

    @property
    def free_bytes(self) -> int:
        return self.image.free_granules * GRANULE_SIZE

    @property
    def total_granules(self) -> int:
        return TOTAL_GRANULES

    # -------------------------------------------------------------------------
    # Lookup and stat
    # -------------------------------------------------------------------------

    def find_file(self, filename: str) -> DirectoryEntry | None:
        """Find a file by 'NAME.EXT'. Raises InvalidFilenameError."""
        return self.directory.find(filename)

    def get_file(self, filename: str) -> DirectoryEntry:
        """Like find_file, but raises FileNotFoundError when absent."""
        entry = self.find_file(filename)
        if entry is None:
            raise FileNotFoundError(f"{filename}: No such file or directory")
        return entry

    def stat(self, entry: DirectoryEntry) -> FileStat:
        """
        Size and attributes of a file.

        A corrupt chain does not fail the stat; the size counts what can
        be read and ``truncated`` is set.
        """
        size, truncated = self.walker.compute_size(entry, strict=False)
        return FileStat(
            name=entry.name.rstrip(' '),
            extension=entry.extension.rstrip(' '),
            size=size,
            file_type=entry.file_type,
            encoding=entry.encoding,
            slot=entry.slot,
            truncated=truncated,
        )

    def list_files(self) -> list[FileStat]:
        """Stat every file, in directory slot order."""
        return [self.stat(entry) for entry in self.directory.files()]

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def read_file(self, filename: str) -> bytes:
        """Return a file's contents. Raises CorruptedDiskError on a bad chain."""
        return self.walker.read_file(self.get_file(filename))

    def copy_out(self, entry: DirectoryEntry, sink: BinaryIO) -> int:
        """Stream a file's contents to ``sink``. Returns bytes written."""
        return self.walker.stream_out(entry, sink)

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def add_file(
        self,
        name: str,
        extension: str,
        source: BinaryIO,
        length: int,
        file_type: int,
        encoding: int,
    ) -> DirectoryEntry:
        """
        Add a new file from a stream of known length.

        ``name`` and ``extension`` are the padded on-disk forms. Raises
        FileExistsError if the name is taken.
        """
        if self.directory.lookup(name, extension) is not None:
            raise FileExistsError(f"{join_name(name, extension)}: File exists")
        entry = self.allocator.add_file(source, length, name, extension, file_type, encoding)
        log.debug("added %s in slot %d, head granule %d", entry.full_name, entry.slot, entry.first_granule)
        return entry

    def write_file(
        self,
        filename: str,
        data: bytes,
        file_type: int = DEFAULT_TYPE,
        encoding: int = DEFAULT_ENCODING,
    ) -> DirectoryEntry:
        """Add a new file from bytes."""
        name, ext = normalize_name(filename)
        return self.add_file(name, ext, io.BytesIO(data), len(data), file_type, encoding)

    def remove(self, entry: DirectoryEntry) -> None:
        """
        Free a file's granules and its directory slot.

        The chain is validated in full first, so a corrupt chain raises
        CorruptedDiskError without freeing anything.
        """
        granules = self.walker.granules(entry.first_granule)
        for granule in granules:
            self.granule_map.free(granule)
        self.directory.free_slot(entry.slot)
        log.debug("removed %s: freed granules %s", entry.full_name, granules)

    def delete_file(self, filename: str) -> None:
        """Remove a file by name."""
        self.remove(self.get_file(filename))
