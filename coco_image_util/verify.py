"""
Consistency checking for CoCo DOS disk images.

Walks every file's granule chain, builds a shadow of which slot owns
each granule, and reports chain corruption, granules claimed by more
than one file, and a stored free-granule count that disagrees with the
directory. Nothing is modified.
"""

from dataclasses import dataclass, field

from .constants import TOTAL_GRANULES
from .filesystem import CoCoFileSystem
from .formatter import format_free_summary, format_stat_line
from .models import ChainFault, FileTrace
from .utils import plural


@dataclass
class VerificationResult:
    """Results from a directory scan."""
    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    info: list[str] = field(default_factory=list)

    files: list[FileTrace] = field(default_factory=list)
    skipped_slots: list[tuple[int, int]] = field(default_factory=list)  # (slot, type byte)
    double_allocated: list[int] = field(default_factory=list)
    computed_free_granules: int = TOTAL_GRANULES
    stored_free_granules: int = TOTAL_GRANULES

    def add_error(self, message: str):
        """Add an error (image is inconsistent)."""
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str):
        """Add a warning (image usable but has issues)."""
        self.warnings.append(message)

    def add_info(self, message: str):
        self.info.append(message)

    @property
    def files_checked(self) -> int:
        return len(self.files)

    def to_dict(self) -> dict:
        return {
            "valid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings,
            "files": [
                {
                    **trace.stat.to_dict(),
                    "granules": [step.granule for step in trace.steps if step.fault is None
                                 or step.fault in (ChainFault.INVALID_ENTRY, ChainFault.UNEXPECTED_FREE)],
                    "last_bytes": trace.last_bytes,
                }
                for trace in self.files
            ],
            "skipped_slots": [{"slot": s, "type": t} for s, t in self.skipped_slots],
            "computed_free_granules": self.computed_free_granules,
            "stored_free_granules": self.stored_free_granules,
        }


def check_filesystem(fs: CoCoFileSystem) -> VerificationResult:
    """
    Scan the whole directory and cross-check the granule map.

    A corrupt chain ends that file's walk only; the scan always covers
    every slot.
    """
    result = VerificationResult()
    owners: list[int | None] = [None] * TOTAL_GRANULES
    free_granules = TOTAL_GRANULES

    for entry in fs.directory.entries():
        if not entry.is_file:
            if not entry.is_free:
                result.skipped_slots.append((entry.slot, entry.file_type))
                result.add_info(f"slot {entry.slot}: entry type 0x{entry.file_type:02x}, skipping")
            continue

        trace = FileTrace(stat=fs.stat(entry), last_bytes=entry.last_bytes,
                          raw_last_bytes=entry.raw_last_bytes)
        label = f"{entry.full_name} (slot {entry.slot})"

        for step in fs.walker.trace(entry.first_granule):
            trace.steps.append(step)

            if step.fault is ChainFault.OUT_OF_RANGE:
                result.add_error(f"{label}: invalid granule #{step.position}: {step.granule}")
                break
            if step.fault is ChainFault.CYCLE:
                result.add_error(f"{label}: granule list cycle detected")
                break

            owner = owners[step.granule]
            if owner is not None:
                trace.double_allocated.append((step.granule, owner))
                result.double_allocated.append(step.granule)
                result.add_error(f"{label}: granule {step.granule} already allocated to file in slot {owner}")
            else:
                owners[step.granule] = entry.slot
                free_granules -= 1

            if step.fault is ChainFault.INVALID_ENTRY:
                result.add_error(
                    f"{label}: invalid granule map entry {step.position}: {step.granule} -> 0x{step.value:02x}"
                )
            elif step.fault is ChainFault.UNEXPECTED_FREE:
                result.add_error(f"{label}: granule {step.granule} is marked free but is part of the file")

        result.files.append(trace)

    result.computed_free_granules = free_granules
    result.stored_free_granules = fs.free_granules
    if free_granules != fs.free_granules:
        result.add_warning(
            f"free granules loaded {fs.free_granules} != computed {free_granules}"
        )

    return result


def _format_step(step) -> str:
    if step.fault is ChainFault.OUT_OF_RANGE:
        return f"\tINVALID GRANULE #{step.position}: {step.granule}"
    if step.fault is ChainFault.CYCLE:
        return "\tGRANULE LIST CYCLE DETECTED"
    if step.fault is ChainFault.INVALID_ENTRY:
        return f"\tINVALID GRANULE MAP ENTRY {step.position:2d}: {step.granule} -> 0x{step.value:02x}"
    if step.fault is ChainFault.UNEXPECTED_FREE:
        return f"\tFREE GRANULE IN CHAIN {step.position:2d}: {step.granule}"
    if step.is_last:
        return f"\tGranule {step.position:2d}: {step.granule} (last, nsec={step.last_sectors})"
    return f"\tGranule {step.position:2d}: {step.granule}"


def format_dump_result(result: VerificationResult) -> str:
    """Format a scan as the human-readable dump listing."""
    lines = [""]

    skipped = dict(result.skipped_slots)
    traces = {trace.stat.slot: trace for trace in result.files}
    for slot in sorted(set(skipped) | set(traces)):
        if slot in skipped:
            lines.append(f"{slot:2d}: entry type 0x{skipped[slot]:02x}, skipping.")
            continue

        trace = traces[slot]
        lines.append(format_stat_line(trace.stat))
        double = dict(trace.double_allocated)
        for step in trace.steps:
            if step.granule in double and step.fault is None:
                lines.append(f"\tGRANULE {step.granule} ALREADY ALLOCATED TO FILE {double[step.granule]}")
            lines.append(_format_step(step))
        high, low = trace.raw_last_bytes
        lines.append(f"\tBytes in last sector: {trace.last_bytes} (0x{high:02x} 0x{low:02x})")

    if result.files:
        lines.append("")

    lines.append(format_free_summary(result.files_checked, result.computed_free_granules))
    for warning in result.warnings:
        lines.append(f"WARNING: {warning}")
    if result.errors:
        lines.append(f"{len(result.errors)} error{plural(len(result.errors))} found")

    return '\n'.join(lines)
