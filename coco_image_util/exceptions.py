"""
Custom exceptions for the TRS-80 Color Computer disk image utility.
"""


class CoCoError(Exception):
    """Base exception for all CoCo disk errors."""
    pass


class DiskError(CoCoError):
    """Error reading/writing disk image or a host file."""
    pass


class DiskFullError(CoCoError):
    """Not enough free granules on disk."""
    pass


class DirectoryFullError(CoCoError):
    """No free directory entries available."""
    pass


class InvalidFilenameError(CoCoError):
    """Filename does not conform to 8.3 format."""
    pass


class QualifierError(InvalidFilenameError):
    """Bad or conflicting [type,encoding] qualifier."""
    pass


class FileExistsError(CoCoError):
    """File already present in disk image."""
    pass


class FileNotFoundError(CoCoError):
    """File not found in disk image."""
    pass


class CorruptedDiskError(CoCoError):
    """Disk structure is corrupted."""
    pass


class InvalidGranuleError(CorruptedDiskError):
    """Granule chain references a granule index out of range."""
    pass


class InvalidGranuleEntryError(CorruptedDiskError):
    """Granule map entry is invalid or unexpectedly free."""
    pass


class ChainCycleError(CorruptedDiskError):
    """Granule chain is longer than the disk, so it must loop."""
    pass
