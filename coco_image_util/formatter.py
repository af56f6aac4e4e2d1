"""
Output formatting for the CoCo Disk Image Utility.
"""

import json
import sys

from .constants import GRANULE_SIZE
from .models import FileStat
from .utils import plural


def format_stat_line(stat: FileStat) -> str:
    """One listing line: name, extension, size, type and encoding."""
    size = f"{stat.size:6d} byte{plural(stat.size):<1}"
    line = f"  {stat.name:<8}   {stat.extension:<3}  {size} ({stat.type_name}, {stat.encoding_name})"
    if stat.truncated:
        line += " [corrupt]"
    return line


def format_free_summary(file_count: int, free_granules: int) -> str:
    """'N files, G granules (B bytes) free'."""
    return (f"{file_count} file{plural(file_count)}, "
            f"{free_granules} granule{plural(free_granules)} "
            f"({free_granules * GRANULE_SIZE} bytes) free")


class OutputFormatter:
    """Handle output formatting (text or JSON)."""

    def __init__(self, json_mode: bool = False):
        self.json_mode = json_mode

    def success(self, message: str, **data) -> None:
        """Output success message."""
        if self.json_mode:
            output = {"status": "success", "message": message, **data}
            print(json.dumps(output))
        elif message:
            print(message)

    def error(self, message: str) -> None:
        """Output error message."""
        if self.json_mode:
            output = {"status": "error", "message": message}
            print(json.dumps(output))
        else:
            print(f"Error: {message}", file=sys.stderr)

    def list_files(self, stats: list[FileStat], free_granules: int, image_path: str = "") -> None:
        """Output a full directory listing with the free-space summary."""
        if self.json_mode:
            output = {
                "status": "success",
                "image": image_path,
                "files": [s.to_dict() for s in stats],
                "free_granules": free_granules,
                "free_bytes": free_granules * GRANULE_SIZE,
            }
            print(json.dumps(output))
            return

        print()
        for stat in stats:
            print(format_stat_line(stat))
        if stats:
            print()
        print(format_free_summary(len(stats), free_granules))

    def stat_file(self, stat: FileStat) -> None:
        """Output one file's stat line."""
        if self.json_mode:
            print(json.dumps({"status": "success", "file": stat.to_dict()}))
        else:
            print(format_stat_line(stat))
