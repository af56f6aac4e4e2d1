"""
Image store for TRS-80 Color Computer floppy disk images.

The whole 161280-byte image is held in one bytearray. The granule map
and the directory are addressed by offset into that buffer, never copied,
so there is exactly one writable copy of the file system at a time.
"""

from typing import BinaryIO

from .constants import (
    DIR_FIRST_SECTOR,
    DIR_TRACK,
    FORMAT_FILL,
    GMAP_FREE,
    GMAP_SECTOR,
    GRANULE_SIZE,
    GRANULES_PER_TRACK,
    IMAGE_SIZE,
    SECTOR_SIZE,
    SECTORS_PER_TRACK,
    TOTAL_GRANULES,
    TRACKS,
)
from .exceptions import DiskError
from .logging_config import get_logger

log = get_logger(__name__)


def track_offset(track: int) -> int:
    """Byte offset of the first sector of a track."""
    return track * SECTORS_PER_TRACK * SECTOR_SIZE


def sector_offset(sector: int) -> int:
    """Byte offset of a sector within its track (sectors are 1-based)."""
    return (sector - 1) * SECTOR_SIZE


def granule_to_track(granule: int) -> int:
    """Track holding a granule; the directory track is skipped."""
    track = granule // GRANULES_PER_TRACK
    if track >= DIR_TRACK:
        track += 1
    return track


def granule_offset(granule: int) -> int:
    """Byte offset of the first byte of a granule."""
    offset = track_offset(granule_to_track(granule))
    if granule % GRANULES_PER_TRACK:
        # Second half of the track
        offset += GRANULE_SIZE
    return offset


GMAP_OFFSET = track_offset(DIR_TRACK) + sector_offset(GMAP_SECTOR)
DIRECTORY_OFFSET = track_offset(DIR_TRACK) + sector_offset(DIR_FIRST_SECTOR)


class DiskImage:
    """
    In-memory CoCo DOS disk image.

    Holds the raw buffer and the free-granule counter. Everything else
    (granule map, directory, chains) is an accessor over ``data``.
    """

    def __init__(self):
        self.data = bytearray(IMAGE_SIZE)
        self.free_granules = 0
        self.bytes_loaded = 0

    @classmethod
    def load(cls, source: BinaryIO) -> 'DiskImage':
        """
        Read an image from a binary stream.

        A short image is not an error: the missing tail stays zero and
        a warning is logged.
        """
        image = cls()
        view = memoryview(image.data)
        total = 0
        try:
            while total < IMAGE_SIZE:
                chunk = source.read(IMAGE_SIZE - total)
                if not chunk:
                    break
                view[total:total + len(chunk)] = chunk
                total += len(chunk)
        except OSError as e:
            raise DiskError(f"Unable to read image: {e}") from e

        image.bytes_loaded = total
        if total < IMAGE_SIZE:
            log.warning("read only %d byte%s of image data", total, '' if total == 1 else 's')

        image.free_granules = image.count_free_granules()
        log.debug("loaded image: %d free granules", image.free_granules)
        return image

    @classmethod
    def format(cls) -> 'DiskImage':
        """
        Create a blank image.

        Every byte is 0xFF, which marks every granule map entry free and
        is what an unused directory entry looks like.
        """
        image = cls()
        image.data[:] = bytes([FORMAT_FILL]) * IMAGE_SIZE
        image.free_granules = TOTAL_GRANULES
        image.bytes_loaded = IMAGE_SIZE
        return image

    def save(self, sink: BinaryIO) -> None:
        """Write the full image to a binary stream in one write."""
        try:
            written = sink.write(self.data)
            sink.flush()
        except OSError as e:
            raise DiskError(f"Unable to write image data: {e}") from e
        if written is not None and written != IMAGE_SIZE:
            raise DiskError(f"Unable to write image data: wrote {written} of {IMAGE_SIZE} bytes")

    def count_free_granules(self) -> int:
        """Scan the granule map for free entries."""
        gmap = self.data[GMAP_OFFSET:GMAP_OFFSET + TOTAL_GRANULES]
        return gmap.count(GMAP_FREE)

    # -------------------------------------------------------------------------
    # Raw access
    # -------------------------------------------------------------------------

    def read_sector(self, track: int, sector: int) -> bytes:
        """Read one 256-byte sector (track 0-34, sector 1-18)."""
        if not 0 <= track < TRACKS or not 1 <= sector <= SECTORS_PER_TRACK:
            raise DiskError(f"Invalid track/sector: {track}/{sector}")
        offset = track_offset(track) + sector_offset(sector)
        return bytes(self.data[offset:offset + SECTOR_SIZE])

    def read_granule(self, granule: int, length: int = GRANULE_SIZE) -> bytes:
        """Read the first ``length`` bytes of a granule."""
        offset = granule_offset(granule)
        return bytes(self.data[offset:offset + min(length, GRANULE_SIZE)])

    def write_granule(self, granule: int, data: bytes) -> None:
        """Write a full granule; short data is zero-padded."""
        if len(data) > GRANULE_SIZE:
            raise DiskError(f"Granule data must be at most {GRANULE_SIZE} bytes")
        offset = granule_offset(granule)
        self.data[offset:offset + GRANULE_SIZE] = bytes(data).ljust(GRANULE_SIZE, b'\x00')


class DiskImageFile:
    """
    A disk image backed by a host file.

    The file stays open for the life of the object; ``save`` rewrites the
    whole image from offset 0.
    """

    def __init__(self, image_path: str, readonly: bool = True, create: bool = False):
        """Open (or create and format) the disk image file."""
        self.image_path = image_path
        self.readonly = readonly and not create
        self._file: BinaryIO | None = None

        if create:
            mode = 'w+b'
        else:
            mode = 'rb' if readonly else 'r+b'
        try:
            self._file = open(image_path, mode)
        except OSError as e:
            raise DiskError(f"Failed to open '{image_path}': {e}") from e

        try:
            self.image = DiskImage.format() if create else DiskImage.load(self._file)
        except DiskError:
            self.close()
            raise

    def save(self) -> None:
        """Persist the in-memory image."""
        if self._file is None:
            raise DiskError("Disk image not open")
        if self.readonly:
            raise DiskError("Disk image opened in read-only mode")
        try:
            self._file.seek(0)
        except OSError as e:
            raise DiskError(f"Unable to write image data: {e}") from e
        self.image.save(self._file)

    def close(self) -> None:
        """Close the backing file. Unsaved changes are discarded."""
        if self._file:
            self._file.close()
            self._file = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
