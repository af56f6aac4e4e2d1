"""
Utility functions for the CoCo Disk Image Utility.

File name handling: 8.3 normalization, type/encoding guessing from the
extension, and the ``NAME.EXT[type,encoding]`` qualifier syntax used by
copyin.
"""

import os
from dataclasses import dataclass

from .constants import (
    DEFAULT_ENCODING,
    DEFAULT_TYPE,
    DEFAULT_TYPES_BY_EXTENSION,
    ENCODING_NAMES,
    EXT_LEN,
    FILE_TYPE_NAMES,
    NAME_LEN,
)
from .exceptions import InvalidFilenameError, QualifierError

# Case-insensitive qualifier tables, built once
_TYPE_QUALIFIERS = {label.lower(): value for value, label in FILE_TYPE_NAMES.items()}
_ENCODING_QUALIFIERS = {label.lower(): value for value, label in ENCODING_NAMES.items()}


def _upcase(text: str) -> str:
    """Map a-z to A-Z, leaving every other character alone."""
    return ''.join(chr(ord(c) - 32) if 'a' <= c <= 'z' else c for c in text)


def normalize_name(filename: str) -> tuple[str, str]:
    """
    Convert 'name.ext' to the on-disk (name, extension) pair.

    Splits on the first '.', upper-cases ASCII letters and space-pads to
    8 and 3 characters. Raises InvalidFilenameError if either part is too
    long or holds a character with no single-byte (Latin-1) form. An
    empty name is allowed and stored as blanks.
    """
    name, _, ext = filename.partition('.')

    try:
        name_len = len(name.encode('latin-1'))
        ext_len = len(ext.encode('latin-1'))
    except UnicodeEncodeError as e:
        raise InvalidFilenameError(f"invalid file name: {filename} (unsupported character)") from e

    if name_len > NAME_LEN:
        raise InvalidFilenameError(f"invalid file name: {filename} (name exceeds {NAME_LEN} characters)")
    if ext_len > EXT_LEN:
        raise InvalidFilenameError(f"invalid file name: {filename} (extension exceeds {EXT_LEN} characters)")

    return _upcase(name).ljust(NAME_LEN), _upcase(ext).ljust(EXT_LEN)


def guess_type_and_encoding(extension: str) -> tuple[int, int]:
    """Guess (type, encoding) from an extension; defaults to binary data."""
    return DEFAULT_TYPES_BY_EXTENSION.get(extension.strip().upper(), (DEFAULT_TYPE, DEFAULT_ENCODING))


def plural(count: int) -> str:
    return '' if count == 1 else 's'


@dataclass
class HostFileSpec:
    """A copyin operand resolved into host path and on-disk name."""
    source_path: str    # Host file to read, qualifiers removed
    name: str           # 8 chars, space-padded
    extension: str      # 3 chars, space-padded
    file_type: int
    encoding: int


def split_qualifiers(operand: str) -> tuple[str, list[str]]:
    """
    Split 'FILE.EXT[q1,q2]' into ('FILE.EXT', ['q1', 'q2']).

    A '[' in the first position is part of the name, not a qualifier list.
    Only the first comma separates qualifiers.
    """
    if not operand.endswith(']'):
        return operand, []
    start = operand.rfind('[')
    if start <= 0:
        return operand, []
    return operand[:start], operand[start + 1:-1].split(',', 1)


def parse_host_filename(operand: str) -> HostFileSpec:
    """
    Resolve a copyin operand.

    Qualifiers override the type and/or encoding; without any, both are
    guessed from the file name extension. Only the final path component
    names the file on the disk image.
    """
    path, qualifiers = split_qualifiers(operand)

    file_type = DEFAULT_TYPE
    encoding = DEFAULT_ENCODING
    have_type = have_encoding = False

    for qualifier in qualifiers:
        key = qualifier.lower()
        if key in _TYPE_QUALIFIERS:
            if have_type:
                raise QualifierError(f"multiple types specified for {path}")
            file_type = _TYPE_QUALIFIERS[key]
            have_type = True
        elif key in _ENCODING_QUALIFIERS:
            if have_encoding:
                raise QualifierError(f"multiple encodings specified for {path}")
            encoding = _ENCODING_QUALIFIERS[key]
            have_encoding = True
        else:
            raise QualifierError(f"unknown type/encoding qualifier for {path}: {qualifier}")

    base = os.path.basename(path)
    name, ext = normalize_name(base)

    if not have_type and not have_encoding and '.' in base:
        file_type, encoding = guess_type_and_encoding(base.split('.', 1)[1])

    return HostFileSpec(path, name, ext, file_type, encoding)
