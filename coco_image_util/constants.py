"""
Constants for the TRS-80 Color Computer disk image utility.
"""

# Disk geometry (fixed: single head, 35 tracks, 18 sectors of 256 bytes)
TRACKS = 35
SECTORS_PER_TRACK = 18          # Sectors are numbered 1 - 18
SECTOR_SIZE = 256
TRACK_SIZE = SECTORS_PER_TRACK * SECTOR_SIZE  # 4608 bytes
IMAGE_SIZE = TRACKS * TRACK_SIZE              # 161280 bytes

# Granules: 2 per track, 9 sectors each
SECTORS_PER_GRANULE = 9
GRANULES_PER_TRACK = SECTORS_PER_TRACK // SECTORS_PER_GRANULE
GRANULE_SIZE = SECTORS_PER_GRANULE * SECTOR_SIZE  # 2304 bytes

# Directory track holds the granule map and directory, no file data
DIR_TRACK = 17
TOTAL_GRANULES = (TRACKS - 1) * GRANULES_PER_TRACK  # 68
DATA_CAPACITY = TOTAL_GRANULES * GRANULE_SIZE       # 156672 bytes

# Directory track layout
GMAP_SECTOR = 2
DIR_FIRST_SECTOR = 3
DIR_LAST_SECTOR = 11
DIR_SECTORS = DIR_LAST_SECTOR - DIR_FIRST_SECTOR + 1
DIR_ENTRY_SIZE = 32
DIR_ENTRIES = (DIR_SECTORS * SECTOR_SIZE) // DIR_ENTRY_SIZE  # 72

# Granule map entry values
GMAP_FREE = 0xFF
GMAP_ALLOCATED = 0xFE       # Provisional marker used only while allocating
GMAP_LAST = 0xC0
GMAP_NSEC_MASK = 0x0F

# Fill byte for a freshly formatted image (free granule, free directory slot)
FORMAT_FILL = 0xFF

# Directory entry field offsets
DIRENT_NAME = 0
DIRENT_EXT = 8
DIRENT_TYPE = 11
DIRENT_ENCODING = 12
DIRENT_FIRST_GRANULE = 13
DIRENT_LAST_BYTES = 14      # Big-endian 16-bit
DIRENT_RESERVED = 16
NAME_LEN = 8
EXT_LEN = 3

# File types
TYPE_BASIC = 0x00
TYPE_DATA = 0x01
TYPE_CODE = 0x02
TYPE_TEXT = 0x03
TYPE_FREE = 0xFF

# File encodings
ENC_BINARY = 0x00
ENC_ASCII = 0xFF

FILE_TYPE_NAMES = {
    TYPE_BASIC: 'Basic',
    TYPE_DATA: 'Data',
    TYPE_CODE: 'Code',
    TYPE_TEXT: 'Text',
}

ENCODING_NAMES = {
    ENC_BINARY: 'Binary',
    ENC_ASCII: 'ASCII',
}

# Guessed (type, encoding) by file name extension
DEFAULT_TYPES_BY_EXTENSION = {
    'ASM': (TYPE_DATA, ENC_ASCII),
    'BAS': (TYPE_BASIC, ENC_BINARY),
    'BIN': (TYPE_CODE, ENC_BINARY),
    'DAT': (TYPE_DATA, ENC_BINARY),
    'TXT': (TYPE_TEXT, ENC_ASCII),
    'C': (TYPE_DATA, ENC_ASCII),
    'H': (TYPE_DATA, ENC_ASCII),
}
DEFAULT_TYPE = TYPE_DATA
DEFAULT_ENCODING = ENC_BINARY
