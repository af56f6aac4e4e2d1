"""
Command handlers for the CoCo Disk Image Utility.
"""

import os
import tempfile
from pathlib import Path

from .exceptions import CoCoError, CorruptedDiskError
from .filesystem import CoCoFileSystem
from .formatter import OutputFormatter
from .image import DiskImageFile
from .models import DirectoryEntry
from .utils import parse_host_filename
from .verify import check_filesystem, format_dump_result


def cmd_dump(args, formatter: OutputFormatter) -> int:
    """Handle the 'dump' command."""
    try:
        with DiskImageFile(args.image, readonly=True) as disk:
            result = check_filesystem(CoCoFileSystem(disk.image))

        if formatter.json_mode:
            formatter.success("Dump complete", image=args.image, **result.to_dict())
        else:
            print(format_dump_result(result))

        # Corruption is reported, not fatal
        return 0

    except CoCoError as e:
        formatter.error(str(e))
        return 1


def cmd_format(args, formatter: OutputFormatter) -> int:
    """Handle the 'format' command."""
    try:
        with DiskImageFile(args.image, create=True) as disk:
            disk.save()
            free_granules = disk.image.free_granules

        formatter.success(
            f"Formatted {args.image}",
            image=args.image,
            free_granules=free_granules
        )
        return 0

    except CoCoError as e:
        formatter.error(str(e))
        return 1


def cmd_ls(args, formatter: OutputFormatter) -> int:
    """Handle the 'ls' command."""
    names = getattr(args, 'names', None) or []
    status = 0

    try:
        with DiskImageFile(args.image, readonly=True) as disk:
            fs = CoCoFileSystem(disk.image)

            if not names:
                formatter.list_files(fs.list_files(), fs.free_granules, args.image)
                return 0

            for name in names:
                try:
                    formatter.stat_file(fs.stat(fs.get_file(name)))
                except CoCoError as e:
                    formatter.error(str(e))
                    status = 1

        return status

    except CoCoError as e:
        formatter.error(str(e))
        return 1


def cmd_rm(args, formatter: OutputFormatter) -> int:
    """
    Handle the 'rm' command.

    A missing name is reported and the rest are still removed. A corrupt
    chain or a failed write stops the batch.
    """
    status = 0

    try:
        with DiskImageFile(args.image, readonly=False) as disk:
            fs = CoCoFileSystem(disk.image)

            for name in args.names:
                try:
                    entry = fs.get_file(name)
                except CoCoError as e:
                    formatter.error(str(e))
                    status = 1
                    continue

                try:
                    fs.remove(entry)
                except CorruptedDiskError as e:
                    formatter.error(f"{name}: {e}")
                    return 1

                disk.save()
                formatter.success(
                    f"Removed {entry.full_name}",
                    image=args.image,
                    removed=entry.full_name
                )

        return status

    except CoCoError as e:
        formatter.error(str(e))
        return 1


def cmd_copyin(args, formatter: OutputFormatter) -> int:
    """
    Handle the 'copyin' command.

    A bad name, a duplicate, or a failed add is reported and the next
    file is tried; the image is unchanged by a failed add. A failed write
    of the image stops the batch.
    """
    status = 0

    try:
        with DiskImageFile(args.image, readonly=False) as disk:
            fs = CoCoFileSystem(disk.image)

            for operand in args.files:
                try:
                    host = parse_host_filename(operand)
                    with open(host.source_path, 'rb') as source:
                        length = os.fstat(source.fileno()).st_size
                        entry = fs.add_file(host.name, host.extension, source, length,
                                            host.file_type, host.encoding)
                except CoCoError as e:
                    formatter.error(str(e))
                    status = 1
                    continue
                except OSError as e:
                    formatter.error(f"Filesystem error: {e}")
                    status = 1
                    continue

                disk.save()
                formatter.success(
                    f"Copied {length:,} bytes to {entry.full_name}",
                    source=host.source_path,
                    dest=entry.full_name,
                    bytes=length
                )

        return status

    except CoCoError as e:
        formatter.error(str(e))
        return 1


def _copy_out_file(fs: CoCoFileSystem, entry: DirectoryEntry, dest: Path) -> int:
    """
    Stream a file to ``dest`` through a temporary file beside it.

    ``dest`` is only replaced once the whole file has been written, so a
    failed copy leaves an existing host file untouched.
    """
    fd, temp_name = tempfile.mkstemp(dir=dest.parent, prefix=f".{dest.name}.", suffix='.tmp')
    try:
        with os.fdopen(fd, 'wb') as sink:
            written = fs.copy_out(entry, sink)
        os.replace(temp_name, dest)
    except (CoCoError, OSError):
        Path(temp_name).unlink(missing_ok=True)
        raise
    return written


def cmd_copyout(args, formatter: OutputFormatter) -> int:
    """
    Handle the 'copyout' command.

    Each file is written as NAME.EXT in the output directory. If the copy
    fails partway nothing is left behind and an existing file of the same
    name is kept.
    """
    dest_dir = Path(getattr(args, 'directory', None) or '.')
    status = 0

    try:
        with DiskImageFile(args.image, readonly=True) as disk:
            fs = CoCoFileSystem(disk.image)

            for name in args.names:
                try:
                    entry = fs.get_file(name)
                except CoCoError as e:
                    formatter.error(str(e))
                    status = 1
                    continue

                dest = dest_dir / entry.full_name
                try:
                    written = _copy_out_file(fs, entry, dest)
                except CoCoError as e:
                    formatter.error(f"{entry.full_name}: {e}")
                    status = 1
                    continue
                except OSError as e:
                    formatter.error(f"Filesystem error: {e}")
                    status = 1
                    continue

                formatter.success(
                    f"Copied {written:,} bytes",
                    source=entry.full_name,
                    dest=str(dest),
                    bytes=written
                )

        return status

    except CoCoError as e:
        formatter.error(str(e))
        return 1


EXTENDED_HELP = """
CoCo Disk Image Utility - Detailed Help
=======================================

OVERVIEW
--------
This utility manages TRS-80 Color Computer (CoCo) DOS floppy disk images:
35 tracks of 18 sectors of 256 bytes (161280 bytes). Files are stored in
granules of 9 sectors (half a track); track 17 holds the granule map and
the directory, leaving 68 granules for data.

COMMANDS
--------

dump <image>
    List every directory entry with its granule chain, the byte count of
    its last sector, and any corruption found: invalid granules, invalid
    map entries, cycles, and granules claimed by two files. Ends with the
    free-space summary and a warning if the stored free count disagrees.
    The image is not modified.

format <image>
    Create (or truncate) the image file and write an empty file system.

ls <image> [NAME.EXT ...]
    Without names, list all files and the free space. With names, show
    only those files.

rm <image> NAME.EXT [...]
    Remove files and free their granules.

copyin <image> FILE [...]
    Copy host files onto the image. The file name (without directories)
    becomes the name on the image: up to 8 characters, optionally a '.'
    and an extension of up to 3 characters. Lowercase letters are
    converted to uppercase.

copyout <image> NAME.EXT [...] [-d DIR]
    Copy files from the image into DIR (default: current directory).

TYPE AND ENCODING
-----------------
Each file has a type and an encoding. When copying in, both are guessed
from the extension:

    ASM    Data, ASCII          DAT    Data, Binary
    BAS    Basic, Binary        TXT    Text, ASCII
    BIN    Code, Binary         C, H   Data, ASCII

Anything else is stored as Data, Binary.

QUALIFIERS
----------
Append [qualifier] or [qualifier,qualifier] to a copyin file name to set
the type and/or encoding explicitly (case-insensitive):

    Types:      basic, data, code, text
    Encodings:  binary, ascii

At most one type and one encoding may be given. If any qualifier is
given, nothing is guessed from the extension.

OPTIONS
-------
    -v, --verbose      Show detailed output
    -q, --quiet        Suppress non-essential output
    --json             Output in JSON format
    --version          Show version

EXAMPLES
--------
coco_image_util format blank.dsk
coco_image_util copyin blank.dsk hello.bas prog.bin "notes.txt[data,binary]"
coco_image_util ls blank.dsk
coco_image_util copyout blank.dsk HELLO.BAS -d out
coco_image_util rm blank.dsk PROG.BIN
coco_image_util dump blank.dsk
"""


def print_extended_help() -> None:
    """Print extended help documentation."""
    print(EXTENDED_HELP)
