#!/usr/bin/env python3
"""
Comprehensive test suite for CoCo Disk Image Utility.

Run with: pytest test_coco_image_util.py -v
"""

import io
import json
import os
import subprocess
import sys
import tempfile
from pathlib import Path

import pytest

# Import the module under test
from coco_image_util import (
    # Constants
    DIR_ENTRIES, DIR_ENTRY_SIZE, GRANULE_SIZE, IMAGE_SIZE, SECTOR_SIZE, TOTAL_GRANULES,
    TYPE_BASIC, TYPE_CODE, TYPE_DATA, TYPE_TEXT, ENC_ASCII, ENC_BINARY,
    # Exceptions
    CoCoError, DiskError, DiskFullError, DirectoryFullError,
    InvalidFilenameError, QualifierError, CorruptedDiskError,
    InvalidGranuleError, InvalidGranuleEntryError, ChainCycleError,
    FileExistsError as CoCoFileExistsError,
    FileNotFoundError as CoCoFileNotFoundError,
    # Data classes
    DirectoryEntry,
    # Utility functions
    normalize_name, parse_host_filename,
    # Classes
    CoCoFileSystem, DiskImage, DiskImageFile, GranuleMap, OutputFormatter,
    check_filesystem,
    # Command handlers
    cmd_copyin, cmd_copyout, cmd_dump, cmd_format, cmd_ls, cmd_rm,
)
from coco_image_util.allocator import ALLOCATION_START, granules_needed, last_granule_layout
from coco_image_util.chain import terminal_bytes
from coco_image_util.granule_map import GranuleState, decode
from coco_image_util.image import GMAP_OFFSET, DIRECTORY_OFFSET, granule_offset
from coco_image_util.models import ChainFault
from coco_image_util.verify import format_dump_result


# =============================================================================
# Test Configuration and Paths
# =============================================================================

TEST_DIR = Path(__file__).parent


# =============================================================================
# Fixtures and helpers
# =============================================================================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fs():
    """A freshly formatted in-memory file system."""
    return CoCoFileSystem(DiskImage.format())


def save_image(image: DiskImage, path: Path) -> Path:
    with open(path, 'wb') as f:
        image.save(f)
    return path


def make_entry(name: str, ext: str, first_granule: int, last_bytes: int = 1,
               file_type: int = TYPE_DATA, encoding: int = ENC_BINARY) -> DirectoryEntry:
    return DirectoryEntry(
        name=name.ljust(8),
        extension=ext.ljust(3),
        file_type=file_type,
        encoding=encoding,
        first_granule=first_granule,
        last_bytes=last_bytes,
    )


@pytest.fixture
def sample_image(temp_dir):
    """An image file holding two small files."""
    fs = CoCoFileSystem(DiskImage.format())
    fs.write_file('HELLO.BAS', b'10 PRINT "HELLO"\r', TYPE_BASIC, ENC_ASCII)
    fs.write_file('DATA.DAT', bytes(range(256)) * 12)
    return save_image(fs.image, temp_dir / 'sample.dsk')


@pytest.fixture
def corrupt_image(temp_dir):
    """
    BAD.DAT has an invalid map entry at its first granule; GOOD.DAT is
    intact.
    """
    fs = CoCoFileSystem(DiskImage.format())
    fs.write_file('GOOD.DAT', b'good data')
    bad = fs.write_file('BAD.DAT', b'x' * 3000)
    fs.granule_map[bad.first_granule] = 0x50
    return save_image(fs.image, temp_dir / 'corrupt.dsk')


# =============================================================================
# Geometry and Data Structure Tests
# =============================================================================

class TestGeometry:
    """Tests for image layout arithmetic."""

    def test_sizes(self):
        assert IMAGE_SIZE == 161280
        assert GRANULE_SIZE == 9 * SECTOR_SIZE
        assert TOTAL_GRANULES == 68

    def test_granule_offsets_skip_directory_track(self):
        track_size = 18 * SECTOR_SIZE
        assert granule_offset(0) == 0
        assert granule_offset(1) == GRANULE_SIZE
        assert granule_offset(33) == 16 * track_size + GRANULE_SIZE
        # Granule 34 starts on track 18
        assert granule_offset(34) == 18 * track_size
        assert granule_offset(67) == 34 * track_size + GRANULE_SIZE

    def test_directory_track_offsets(self):
        track_17 = 17 * 18 * SECTOR_SIZE
        assert GMAP_OFFSET == track_17 + SECTOR_SIZE
        assert DIRECTORY_OFFSET == track_17 + 2 * SECTOR_SIZE

    def test_read_sector_range(self):
        image = DiskImage.format()
        assert image.read_sector(0, 1) == b'\xff' * SECTOR_SIZE
        with pytest.raises(DiskError):
            image.read_sector(0, 0)
        with pytest.raises(DiskError):
            image.read_sector(35, 1)


class TestGranuleMapCodec:
    """Tests for granule map byte decoding."""

    def test_free(self):
        assert decode(0xFF).state is GranuleState.FREE

    def test_links(self):
        assert decode(0).next_granule == 0
        assert decode(67).next_granule == 67

    def test_link_out_of_range_is_invalid(self):
        assert decode(68).state is GranuleState.INVALID

    def test_terminal(self):
        entry = decode(0xC0)
        assert entry.is_terminal
        assert entry.sectors_used == 0
        assert decode(0xC9).sectors_used == 9

    def test_other_values_invalid(self):
        for value in (0x44, 0x80, 0xBF, 0xCA, 0xCF, 0xFE):
            assert not decode(value).is_valid

    def test_claim_wraps(self):
        image = DiskImage.format()
        gmap = GranuleMap(image)
        for granule in range(60, 68):
            gmap[granule] = 0xC1
        image.free_granules = image.count_free_granules()

        assert gmap.claim(60) == 0
        assert gmap[0] == 0xFE
        assert image.free_granules == 59

    def test_claim_full_disk(self):
        image = DiskImage.format()
        gmap = GranuleMap(image)
        for granule in range(TOTAL_GRANULES):
            gmap[granule] = 0xC1
        image.free_granules = 0
        with pytest.raises(DiskFullError):
            gmap.claim(ALLOCATION_START)

    def test_index_checked(self):
        gmap = GranuleMap(DiskImage.format())
        with pytest.raises(IndexError):
            gmap[TOTAL_GRANULES]


class TestDirectoryEntry:
    """Tests for DirectoryEntry parsing."""

    def test_from_bytes(self):
        data = bytearray(b'\xff' * DIR_ENTRY_SIZE)
        data[0:8] = b'TEST    '
        data[8:11] = b'DAT'
        data[11] = TYPE_DATA
        data[12] = ENC_BINARY
        data[13] = 34
        data[14:16] = b'\x00\x88'

        entry = DirectoryEntry.from_bytes(bytes(data), slot=5)
        assert entry.name == 'TEST    '
        assert entry.full_name == 'TEST.DAT'
        assert entry.first_granule == 34
        assert entry.last_bytes == 136
        assert entry.slot == 5
        assert entry.is_file
        assert entry.to_bytes() == bytes(data)

    def test_free_slot(self):
        entry = DirectoryEntry.from_bytes(b'\xff' * DIR_ENTRY_SIZE)
        assert entry.is_free
        assert not entry.is_file

    def test_unknown_type_is_neither(self):
        data = bytearray(b'\xff' * DIR_ENTRY_SIZE)
        data[11] = 0x07
        entry = DirectoryEntry.from_bytes(bytes(data))
        assert not entry.is_free
        assert not entry.is_file

    def test_invalid_size(self):
        with pytest.raises(DiskError):
            DirectoryEntry.from_bytes(b'\x00' * 16)

    def test_full_name_without_extension(self):
        assert make_entry('README', '', 0).full_name == 'README'


# =============================================================================
# File Name Tests
# =============================================================================

class TestNormalizeName:
    """Tests for 8.3 name normalization."""

    def test_lowercase_and_padding(self):
        assert normalize_name('hello.c') == ('HELLO   ', 'C  ')

    def test_no_extension(self):
        assert normalize_name('readme') == ('README  ', '   ')

    def test_splits_on_first_dot(self):
        assert normalize_name('a.b.c') == ('A       ', 'B.C')

    def test_non_letters_unchanged(self):
        assert normalize_name('x-1_z.a9') == ('X-1_Z   ', 'A9 ')

    def test_empty_name_stored_blank(self):
        assert normalize_name('.bas') == ('        ', 'BAS')
        assert normalize_name('') == ('        ', '   ')

    def test_latin1_characters_fit(self):
        assert normalize_name('caf\xe9.txt') == ('CAF\xe9    ', 'TXT')

    @pytest.mark.parametrize('name', ['toolongname.txt', 'file.text', '.profile', '日本.txt', 'a.日'])
    def test_invalid(self, name):
        with pytest.raises(InvalidFilenameError):
            normalize_name(name)


class TestParseHostFilename:
    """Tests for copyin operands and type/encoding qualifiers."""

    def test_guess_from_extension(self):
        host = parse_host_filename('some/dir/prog.bin')
        assert host.source_path == 'some/dir/prog.bin'
        assert host.name == 'PROG    '
        assert host.extension == 'BIN'
        assert (host.file_type, host.encoding) == (TYPE_CODE, ENC_BINARY)

    def test_guess_text(self):
        host = parse_host_filename('notes.txt')
        assert (host.file_type, host.encoding) == (TYPE_TEXT, ENC_ASCII)

    def test_unknown_extension_defaults(self):
        host = parse_host_filename('image.xyz')
        assert (host.file_type, host.encoding) == (TYPE_DATA, ENC_BINARY)

    def test_both_qualifiers(self):
        host = parse_host_filename('notes.txt[Basic,ASCII]')
        assert host.source_path == 'notes.txt'
        assert (host.file_type, host.encoding) == (TYPE_BASIC, ENC_ASCII)

    def test_single_qualifier_disables_guessing(self):
        host = parse_host_filename('prog.bin[ascii]')
        assert (host.file_type, host.encoding) == (TYPE_DATA, ENC_ASCII)

    def test_leading_bracket_is_part_of_name(self):
        host = parse_host_filename('[basic]')
        assert host.name == '[BASIC] '
        assert host.source_path == '[basic]'

    def test_duplicate_type(self):
        with pytest.raises(QualifierError):
            parse_host_filename('a.bas[basic,code]')

    def test_unknown_qualifier(self):
        with pytest.raises(QualifierError):
            parse_host_filename('a.bas[foo]')

    def test_only_first_comma_splits(self):
        with pytest.raises(QualifierError):
            parse_host_filename('a[basic,ascii,data]')

    def test_qualifier_error_is_filename_error(self):
        assert issubclass(QualifierError, InvalidFilenameError)


# =============================================================================
# File System Tests
# =============================================================================

class TestAllocationLayout:
    """Tests for granule counts and last-granule layout."""

    def test_granules_needed(self):
        assert granules_needed(0) == 1
        assert granules_needed(1) == 1
        assert granules_needed(GRANULE_SIZE) == 1
        assert granules_needed(GRANULE_SIZE + 1) == 2

    def test_last_granule_layout(self):
        assert last_granule_layout(0) == (0, 0)
        assert last_granule_layout(1) == (1, 1)
        assert last_granule_layout(256) == (1, 256)
        assert last_granule_layout(392) == (2, 136)
        assert last_granule_layout(GRANULE_SIZE) == (9, 256)

    def test_terminal_bytes(self):
        assert terminal_bytes(0, 0) == 0
        assert terminal_bytes(2, 136) == 392
        assert terminal_bytes(9, 256) == GRANULE_SIZE
        # Out-of-range byte counts are clamped to one sector
        assert terminal_bytes(1, 0x1234) == SECTOR_SIZE


class TestFileSystem:
    """Tests for add, stat, read and remove."""

    def test_format(self, fs):
        assert fs.free_granules == TOTAL_GRANULES
        assert fs.list_files() == []
        assert all(fs.directory.is_slot_free(s) for s in range(DIR_ENTRIES))

    def test_add_5000_bytes(self, fs):
        data = bytes(i % 251 for i in range(5000))
        entry = fs.write_file('TEST.DAT', data)

        assert fs.free_granules == 65
        assert entry.slot == 0
        assert fs.walker.granules(entry.first_granule) == [34, 35, 36]
        assert fs.granule_map[34] == 35
        assert fs.granule_map[35] == 36
        assert fs.granule_map[36] == 0xC2
        assert entry.last_bytes == 136

        stat = fs.stat(fs.get_file('test.dat'))
        assert stat.name == 'TEST'
        assert stat.size == 5000
        assert (stat.type_name, stat.encoding_name) == ('Data', 'Binary')
        assert fs.read_file('TEST.DAT') == data

        fs.delete_file('TEST.DAT')
        assert fs.free_granules == TOTAL_GRANULES
        assert fs.find_file('TEST.DAT') is None
        assert fs.directory.read_raw(0) == b'\xff' * DIR_ENTRY_SIZE

    @pytest.mark.parametrize('size', [1, SECTOR_SIZE, GRANULE_SIZE, GRANULE_SIZE + 1])
    def test_boundary_sizes(self, fs, size):
        data = os.urandom(size)
        fs.write_file('FILE.BIN', data)
        assert fs.stat(fs.get_file('FILE.BIN')).size == size
        assert fs.read_file('FILE.BIN') == data
        assert fs.free_granules == TOTAL_GRANULES - granules_needed(size)

    def test_empty_file(self, fs):
        entry = fs.write_file('EMPTY', b'')
        assert fs.granule_map[entry.first_granule] == 0xC0
        assert entry.last_bytes == 0
        assert fs.stat(entry).size == 0
        assert fs.read_file('EMPTY') == b''
        assert fs.free_granules == TOTAL_GRANULES - 1

    def test_allocation_wraps_past_end(self, fs):
        entry = fs.write_file('BIG.DAT', b'\x55' * (40 * GRANULE_SIZE))
        assert fs.walker.granules(entry.first_granule) == list(range(34, 68)) + list(range(0, 6))

    def test_second_file_continues_after_first(self, fs):
        fs.write_file('A', b'a' * 10)
        entry = fs.write_file('B', b'b' * 10)
        assert entry.first_granule == 35
        assert entry.slot == 1

    def test_fragmented_allocation_stays_disjoint(self, fs):
        contents = {
            'A.DAT': b'a' * (2 * GRANULE_SIZE),
            'B.DAT': b'b' * GRANULE_SIZE,
            'C.DAT': b'c' * (2 * GRANULE_SIZE),
        }
        for name, data in contents.items():
            fs.write_file(name, data)
        fs.delete_file('B.DAT')
        del contents['B.DAT']

        contents['D.DAT'] = bytes(i % 253 for i in range(3 * GRANULE_SIZE))
        d = fs.write_file('D.DAT', contents['D.DAT'])
        assert fs.walker.granules(d.first_granule) == [36, 39, 40]

        chains = [fs.walker.granules(fs.get_file(name).first_granule) for name in contents]
        claimed = [g for chain in chains for g in chain]
        assert len(claimed) == len(set(claimed))

        result = check_filesystem(fs)
        assert result.is_valid
        assert result.computed_free_granules == result.stored_free_granules == fs.free_granules
        assert fs.free_granules == TOTAL_GRANULES - 7
        for name, data in contents.items():
            assert fs.read_file(name) == data

    def test_full_disk(self, fs):
        fs.write_file('ALL.DAT', b'\x00' * (TOTAL_GRANULES * GRANULE_SIZE))
        assert fs.free_granules == 0
        before = bytes(fs.image.data)
        with pytest.raises(DiskFullError):
            fs.write_file('MORE.DAT', b'x')
        assert bytes(fs.image.data) == before

    def test_too_big_rejected_without_changes(self, fs):
        before = bytes(fs.image.data)
        with pytest.raises(DiskFullError):
            fs.write_file('HUGE.DAT', b'\x00' * (TOTAL_GRANULES * GRANULE_SIZE + 1))
        assert bytes(fs.image.data) == before
        assert fs.free_granules == TOTAL_GRANULES

    def test_directory_full(self, fs):
        for slot in range(DIR_ENTRIES):
            fs.directory.write_entry(slot, make_entry(f'F{slot}', 'DAT', 0))
        with pytest.raises(DirectoryFullError):
            fs.write_file('ONE.DAT', b'x')
        assert fs.free_granules == TOTAL_GRANULES

    def test_duplicate_name(self, fs):
        fs.write_file('DUP.DAT', b'first')
        with pytest.raises(CoCoFileExistsError):
            fs.write_file('dup.dat', b'second')
        assert fs.read_file('DUP.DAT') == b'first'

    def test_short_source_rolls_back(self, fs):
        fs.write_file('KEEP.DAT', b'k' * 100)
        before = bytes(fs.image.data)
        free_before = fs.free_granules

        name, ext = normalize_name('SHORT.DAT')
        with pytest.raises(DiskError):
            fs.add_file(name, ext, io.BytesIO(b'x' * 3000), 5000, TYPE_DATA, ENC_BINARY)

        assert bytes(fs.image.data) == before
        assert fs.free_granules == free_before
        assert fs.find_file('SHORT.DAT') is None

    def test_get_missing_file(self, fs):
        with pytest.raises(CoCoFileNotFoundError):
            fs.get_file('NOPE.DAT')

    def test_first_match_wins(self, fs):
        fs.directory.write_entry(3, make_entry('TWIN', 'DAT', 10))
        fs.directory.write_entry(7, make_entry('TWIN', 'DAT', 20))
        assert fs.find_file('TWIN.DAT').slot == 3

    def test_remove_corrupt_chain_changes_nothing(self, fs):
        entry = fs.write_file('BAD.DAT', b'x' * 5000)
        fs.granule_map[35] = 0x50
        before = bytes(fs.image.data)
        free_before = fs.free_granules

        with pytest.raises(InvalidGranuleEntryError):
            fs.remove(entry)
        assert bytes(fs.image.data) == before
        assert fs.free_granules == free_before


class TestChainCorruption:
    """Tests for bounded chain walks."""

    def test_cycle_detected(self, fs):
        fs.granule_map[0] = 1
        fs.granule_map[1] = 0
        entry = make_entry('LOOP', 'DAT', 0)

        with pytest.raises(ChainCycleError):
            fs.walker.granules(entry.first_granule)

        steps = list(fs.walker.trace(0))
        assert steps[-1].fault is ChainFault.CYCLE
        assert len(steps) == TOTAL_GRANULES + 2

    def test_out_of_range_head(self, fs):
        entry = make_entry('BAD', 'DAT', 70)
        with pytest.raises(InvalidGranuleError):
            fs.walker.compute_size(entry)
        stat = fs.stat(entry)
        assert stat.truncated
        assert stat.size == 0

    def test_free_granule_in_chain(self, fs):
        fs.granule_map[4] = 5
        entry = make_entry('HOLE', 'DAT', 4)
        with pytest.raises(CorruptedDiskError):
            fs.walker.read_file(entry)

    def test_partial_size_when_truncated(self, fs):
        fs.granule_map[4] = 5
        fs.granule_map[5] = 0x90
        size, truncated = fs.walker.compute_size(make_entry('PART', 'DAT', 4), strict=False)
        assert truncated
        assert size == GRANULE_SIZE

    def test_corruption_errors_share_base(self):
        for exc in (InvalidGranuleError, InvalidGranuleEntryError, ChainCycleError):
            assert issubclass(exc, CorruptedDiskError)
            assert issubclass(exc, CoCoError)


class TestDiskImageFile:
    """Tests for the file-backed image."""

    def test_create_and_reopen(self, temp_dir):
        path = temp_dir / 'new.dsk'
        with DiskImageFile(str(path), create=True) as disk:
            assert disk.image.free_granules == TOTAL_GRANULES
            disk.save()

        assert path.stat().st_size == IMAGE_SIZE
        with DiskImageFile(str(path)) as disk:
            assert disk.image.free_granules == TOTAL_GRANULES
            assert disk.image.bytes_loaded == IMAGE_SIZE

    def test_short_image_is_loaded(self, temp_dir):
        path = temp_dir / 'short.dsk'
        path.write_bytes(b'\xff' * 1000)
        with DiskImageFile(str(path)) as disk:
            assert disk.image.bytes_loaded == 1000
            assert disk.image.data[1000] == 0

    def test_missing_image(self, temp_dir):
        with pytest.raises(DiskError):
            DiskImageFile(str(temp_dir / 'missing.dsk'))

    def test_short_write_is_error(self):
        class ShortSink:
            def write(self, data):
                return len(data) - 1

            def flush(self):
                pass

        with pytest.raises(DiskError, match='wrote'):
            DiskImage.format().save(ShortSink())

    def test_readonly_save_rejected(self, sample_image):
        with DiskImageFile(str(sample_image)) as disk:
            with pytest.raises(DiskError):
                disk.save()

    def test_persisted_changes(self, sample_image):
        with DiskImageFile(str(sample_image), readonly=False) as disk:
            CoCoFileSystem(disk.image).delete_file('DATA.DAT')
            disk.save()

        with DiskImageFile(str(sample_image)) as disk:
            fs = CoCoFileSystem(disk.image)
            assert fs.find_file('DATA.DAT') is None
            assert fs.find_file('HELLO.BAS') is not None
            assert fs.free_granules == TOTAL_GRANULES - 1


# =============================================================================
# Consistency Check Tests
# =============================================================================

class TestCheckFilesystem:
    """Tests for the dump/consistency scan."""

    def test_clean_image(self, fs):
        fs.write_file('TEST.DAT', b'x' * 5000)
        result = check_filesystem(fs)
        assert result.is_valid
        assert result.files_checked == 1
        assert [s.granule for s in result.files[0].steps] == [34, 35, 36]
        assert result.computed_free_granules == 65
        assert result.stored_free_granules == 65

        text = format_dump_result(result)
        assert '\tGranule  2: 36 (last, nsec=2)' in text
        assert 'Bytes in last sector: 136 (0x00 0x88)' in text
        assert '1 file, 65 granules (149760 bytes) free' in text

    def test_double_allocation(self, fs):
        fs.granule_map[10] = 0xC1
        fs.directory.write_entry(0, make_entry('ONE', 'DAT', 10))
        fs.directory.write_entry(1, make_entry('TWO', 'DAT', 10))
        fs.image.free_granules = fs.image.count_free_granules()

        result = check_filesystem(fs)
        assert not result.is_valid
        assert result.double_allocated == [10]
        assert result.files[1].double_allocated == [(10, 0)]
        assert result.computed_free_granules == TOTAL_GRANULES - 1
        assert 'GRANULE 10 ALREADY ALLOCATED TO FILE 0' in format_dump_result(result)

    def test_free_count_mismatch(self, fs):
        # Lost granule: used in the map, owned by no file
        fs.granule_map[5] = 0xC1
        fs.image.free_granules = fs.image.count_free_granules()

        result = check_filesystem(fs)
        assert result.stored_free_granules == TOTAL_GRANULES - 1
        assert result.computed_free_granules == TOTAL_GRANULES
        assert result.warnings
        assert 'WARNING: free granules loaded 67 != computed 68' in format_dump_result(result)

    def test_corrupt_chain_does_not_stop_scan(self, fs):
        fs.directory.write_entry(0, make_entry('BAD', 'DAT', 99))
        fs.write_file('GOOD.DAT', b'fine')

        result = check_filesystem(fs)
        assert result.files_checked == 2
        assert result.files[0].steps[-1].fault is ChainFault.OUT_OF_RANGE
        assert result.files[1].stat.size == 4
        assert 'INVALID GRANULE #0: 99' in format_dump_result(result)

    def test_cycle_reported(self, fs):
        fs.granule_map[0] = 1
        fs.granule_map[1] = 0
        fs.directory.write_entry(0, make_entry('LOOP', 'DAT', 0))
        result = check_filesystem(fs)
        assert 'GRANULE LIST CYCLE DETECTED' in format_dump_result(result)

    def test_unknown_type_skipped(self, fs):
        entry = make_entry('ODD', 'DAT', 0, file_type=0x07)
        fs.directory.write_entry(2, entry)
        result = check_filesystem(fs)
        assert result.files_checked == 0
        assert result.skipped_slots == [(2, 0x07)]
        assert ' 2: entry type 0x07, skipping.' in format_dump_result(result)


# =============================================================================
# Output Formatter Tests
# =============================================================================

class TestOutputFormatter:
    """Tests for OutputFormatter."""

    def test_success_text_mode(self, capsys):
        formatter = OutputFormatter(json_mode=False)
        formatter.success("Operation completed")
        captured = capsys.readouterr()
        assert "Operation completed" in captured.out

    def test_success_json_mode(self, capsys):
        formatter = OutputFormatter(json_mode=True)
        formatter.success("Done", bytes=100)
        output = json.loads(capsys.readouterr().out)
        assert output["status"] == "success"
        assert output["bytes"] == 100

    def test_error_text_mode(self, capsys):
        formatter = OutputFormatter(json_mode=False)
        formatter.error("Something failed")
        captured = capsys.readouterr()
        assert "Error: Something failed" in captured.err

    def test_error_json_mode(self, capsys):
        formatter = OutputFormatter(json_mode=True)
        formatter.error("Something failed")
        output = json.loads(capsys.readouterr().out)
        assert output["status"] == "error"
        assert output["message"] == "Something failed"


# =============================================================================
# CLI Tests
# =============================================================================

class TestCLI:
    """Tests for command handlers."""

    def test_format(self, temp_dir, capsys):
        path = temp_dir / 'blank.dsk'
        path.write_bytes(b'\x00' * 200000)

        class Args:
            image = str(path)

        assert cmd_format(Args(), OutputFormatter()) == 0
        assert path.read_bytes() == b'\xff' * IMAGE_SIZE

    def test_ls_all(self, sample_image, capsys):
        class Args:
            image = str(sample_image)
            names = []

        assert cmd_ls(Args(), OutputFormatter()) == 0
        out = capsys.readouterr().out
        assert '  HELLO      BAS      17 bytes (Basic, ASCII)' in out
        assert '  DATA       DAT    3072 bytes (Data, Binary)' in out
        assert '2 files, 65 granules (149760 bytes) free' in out

    def test_ls_json(self, sample_image, capsys):
        class Args:
            image = str(sample_image)
            names = []

        assert cmd_ls(Args(), OutputFormatter(json_mode=True)) == 0
        output = json.loads(capsys.readouterr().out)
        assert output["status"] == "success"
        assert [f["name"] for f in output["files"]] == ['HELLO', 'DATA']
        assert output["free_granules"] == 65

    def test_ls_names_continue_after_missing(self, sample_image, capsys):
        class Args:
            image = str(sample_image)
            names = ['MISSING.DAT', 'hello.bas']

        assert cmd_ls(Args(), OutputFormatter()) == 1
        captured = capsys.readouterr()
        assert 'MISSING.DAT: No such file or directory' in captured.err
        assert 'HELLO' in captured.out

    def test_rm(self, sample_image, capsys):
        class Args:
            image = str(sample_image)
            names = ['NOPE.DAT', 'DATA.DAT']

        assert cmd_rm(Args(), OutputFormatter()) == 1
        with DiskImageFile(str(sample_image)) as disk:
            fs = CoCoFileSystem(disk.image)
            assert fs.find_file('DATA.DAT') is None
            assert fs.free_granules == TOTAL_GRANULES - 1

    def test_rm_stops_on_corruption(self, corrupt_image, capsys):
        class Args:
            image = str(corrupt_image)
            names = ['BAD.DAT', 'GOOD.DAT']

        assert cmd_rm(Args(), OutputFormatter()) == 1
        with DiskImageFile(str(corrupt_image)) as disk:
            fs = CoCoFileSystem(disk.image)
            assert fs.find_file('BAD.DAT') is not None
            assert fs.find_file('GOOD.DAT') is not None

    def test_copyin_and_copyout(self, temp_dir, capsys):
        image_path = temp_dir / 'disk.dsk'
        with DiskImageFile(str(image_path), create=True) as disk:
            disk.save()

        source = temp_dir / 'prog.bin'
        payload = os.urandom(5000)
        source.write_bytes(payload)
        notes = temp_dir / 'notes.txt'
        notes.write_bytes(b'hello\r')

        class CopyIn:
            image = str(image_path)
            files = [str(temp_dir / 'missing.bin'), str(source), f"{notes}[data,binary]"]

        assert cmd_copyin(CopyIn(), OutputFormatter()) == 1

        with DiskImageFile(str(image_path)) as disk:
            fs = CoCoFileSystem(disk.image)
            prog = fs.stat(fs.get_file('PROG.BIN'))
            assert (prog.type_name, prog.encoding_name, prog.size) == ('Code', 'Binary', 5000)
            assert fs.stat(fs.get_file('NOTES.TXT')).type_name == 'Data'

        out_dir = temp_dir / 'out'
        out_dir.mkdir()

        class CopyOut:
            image = str(image_path)
            names = ['prog.bin', 'NOTES.TXT']
            directory = str(out_dir)

        assert cmd_copyout(CopyOut(), OutputFormatter()) == 0
        assert (out_dir / 'PROG.BIN').read_bytes() == payload
        assert (out_dir / 'NOTES.TXT').read_bytes() == b'hello\r'

    def test_copyin_duplicate_continues(self, sample_image, temp_dir, capsys):
        dup = temp_dir / 'hello.bas'
        dup.write_bytes(b'other')
        new = temp_dir / 'new.dat'
        new.write_bytes(b'new')

        class Args:
            image = str(sample_image)
            files = [str(dup), str(new)]

        assert cmd_copyin(Args(), OutputFormatter()) == 1
        assert 'HELLO.BAS: File exists' in capsys.readouterr().err
        with DiskImageFile(str(sample_image)) as disk:
            fs = CoCoFileSystem(disk.image)
            assert fs.read_file('NEW.DAT') == b'new'
            assert fs.read_file('HELLO.BAS') == b'10 PRINT "HELLO"\r'

    def test_copyout_removes_partial_file(self, corrupt_image, temp_dir, capsys):
        class Args:
            image = str(corrupt_image)
            names = ['BAD.DAT']
            directory = str(temp_dir)

        assert cmd_copyout(Args(), OutputFormatter()) == 1
        assert not (temp_dir / 'BAD.DAT').exists()

    def test_copyout_failure_keeps_existing_file(self, corrupt_image, temp_dir, capsys):
        existing = temp_dir / 'BAD.DAT'
        existing.write_bytes(b'keep me')

        class Args:
            image = str(corrupt_image)
            names = ['BAD.DAT', 'GOOD.DAT']
            directory = str(temp_dir)

        assert cmd_copyout(Args(), OutputFormatter()) == 1
        assert existing.read_bytes() == b'keep me'
        assert (temp_dir / 'GOOD.DAT').read_bytes() == b'good data'
        assert list(temp_dir.glob('*.tmp')) == []

    def test_copyin_unsupported_character_continues(self, sample_image, temp_dir, capsys):
        wide = temp_dir / '日本.txt'
        wide.write_bytes(b'wide')
        ok = temp_dir / 'ok.dat'
        ok.write_bytes(b'ok')

        class Args:
            image = str(sample_image)
            files = [str(wide), str(ok)]

        assert cmd_copyin(Args(), OutputFormatter()) == 1
        assert 'unsupported character' in capsys.readouterr().err
        with DiskImageFile(str(sample_image)) as disk:
            fs = CoCoFileSystem(disk.image)
            assert fs.read_file('OK.DAT') == b'ok'
            assert len(fs.list_files()) == 3

    def test_dump(self, corrupt_image, capsys):
        class Args:
            image = str(corrupt_image)

        assert cmd_dump(Args(), OutputFormatter()) == 0
        out = capsys.readouterr().out
        assert 'GOOD' in out
        assert 'INVALID GRANULE MAP ENTRY' in out

    def test_dump_json(self, corrupt_image, capsys):
        class Args:
            image = str(corrupt_image)

        assert cmd_dump(Args(), OutputFormatter(json_mode=True)) == 0
        output = json.loads(capsys.readouterr().out)
        assert output["status"] == "success"
        assert output["valid"] is False
        assert len(output["files"]) == 2

    def test_missing_image(self, temp_dir, capsys):
        class Args:
            image = str(temp_dir / 'missing.dsk')
            names = []

        assert cmd_ls(Args(), OutputFormatter()) == 1
        assert 'Error:' in capsys.readouterr().err

    def test_main_help_syntax(self, monkeypatch, capsys):
        from coco_image_util.__main__ import main

        monkeypatch.setattr(sys, 'argv', ['coco_image_util', '--help-syntax'])
        assert main() == 0
        assert 'QUALIFIERS' in capsys.readouterr().out

    @pytest.mark.parametrize('argv', [
        ['--json', 'ls', '{image}'],
        ['ls', '{image}', '--json'],
    ])
    def test_main_json_flag_either_position(self, sample_image, monkeypatch, capsys, argv):
        from coco_image_util.__main__ import main

        argv = [arg.format(image=sample_image) for arg in argv]
        monkeypatch.setattr(sys, 'argv', ['coco_image_util'] + argv)
        assert main() == 0
        output = json.loads(capsys.readouterr().out)
        assert output["status"] == "success"
        assert output["free_granules"] == 65

    def test_main_text_mode_by_default(self, sample_image, monkeypatch, capsys):
        from coco_image_util.__main__ import main

        monkeypatch.setattr(sys, 'argv', ['coco_image_util', 'ls', str(sample_image)])
        assert main() == 0
        assert '2 files, 65 granules (149760 bytes) free' in capsys.readouterr().out

    def test_module_version(self):
        result = subprocess.run(
            [sys.executable, '-m', 'coco_image_util', '--version'],
            cwd=TEST_DIR, capture_output=True, text=True
        )
        assert result.returncode == 0
        assert 'coco_image_util' in result.stdout
