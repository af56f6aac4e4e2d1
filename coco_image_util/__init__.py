"""
CoCo Disk Image Utility

A Python package for reading, writing, and checking TRS-80 Color
Computer DOS floppy disk images (35 tracks, 18 sectors, 68 granules).
"""

from .constants import (
    DIR_ENTRIES,
    DIR_ENTRY_SIZE,
    ENC_ASCII,
    ENC_BINARY,
    GRANULE_SIZE,
    IMAGE_SIZE,
    SECTOR_SIZE,
    TOTAL_GRANULES,
    TYPE_BASIC,
    TYPE_CODE,
    TYPE_DATA,
    TYPE_TEXT,
)
from .exceptions import (
    ChainCycleError,
    CoCoError,
    CorruptedDiskError,
    DirectoryFullError,
    DiskError,
    DiskFullError,
    FileExistsError,
    FileNotFoundError,
    InvalidFilenameError,
    InvalidGranuleEntryError,
    InvalidGranuleError,
    QualifierError,
)
from .chain import ChainWalker
from .filesystem import CoCoFileSystem
from .formatter import OutputFormatter
from .granule_map import GranuleMap
from .image import DiskImage, DiskImageFile
from .models import DirectoryEntry, FileStat
from .utils import normalize_name, parse_host_filename
from .verify import VerificationResult, check_filesystem
from .commands import cmd_copyin, cmd_copyout, cmd_dump, cmd_format, cmd_ls, cmd_rm

__version__ = "1.0.0"
