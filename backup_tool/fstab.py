"""
Persistent mount table (/etc/fstab) editing with rollback.

Every edit follows the same sequence: snapshot the file, change it, run
``mount -a``. When ``mount -a`` fails the snapshot is written back
byte-for-byte and ``mount -a`` is run once more against it.
"""

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable, List, Optional, Set, Tuple

from .results import OperationResult
from .system import CommandResult, run_command


def escape_field(value: str) -> str:
    """fstab fields cannot contain whitespace; encode it octally."""
    return value.replace("\\", "\\134").replace(" ", "\\040").replace("\t", "\\011")


def unescape_field(value: str) -> str:
    return value.replace("\\040", " ").replace("\\011", "\t").replace("\\134", "\\")


class FstabEntry:
    """One mount line: source, mount point, type, options, dump, pass."""

    def __init__(
        self,
        source: str,
        mount_point: str,
        fstype: str,
        options: List[str],
        dump: int = 0,
        passno: int = 0,
    ):
        self.source = source
        self.mount_point = mount_point
        self.fstype = fstype
        self.options = options
        self.dump = dump
        self.passno = passno

    def to_line(self) -> str:
        options = ",".join(self.options) or "defaults"
        if any(c.isspace() for c in options):
            raise ValueError(f"Mount options cannot contain whitespace: {options!r}")
        return " ".join(
            [
                escape_field(self.source),
                escape_field(self.mount_point),
                self.fstype,
                options,
                str(self.dump),
                str(self.passno),
            ]
        )

    @classmethod
    def from_line(cls, line: str) -> Optional["FstabEntry"]:
        """Parse a table line; comments, blanks and short lines give None."""
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            return None
        fields = stripped.split()
        if len(fields) < 3:
            return None
        options = fields[3].split(",") if len(fields) > 3 else ["defaults"]
        try:
            dump = int(fields[4]) if len(fields) > 4 else 0
            passno = int(fields[5]) if len(fields) > 5 else 0
        except ValueError:
            return None
        return cls(
            unescape_field(fields[0]),
            unescape_field(fields[1]),
            fields[2],
            options,
            dump,
            passno,
        )

    def __repr__(self) -> str:
        return f"FstabEntry({self.to_line()!r})"


class MountTable:
    """Reads and edits the fstab file and reconciles live mounts with it."""

    def __init__(
        self,
        fstab_path: str = "/etc/fstab",
        mounts_path: str = "/proc/self/mounts",
        runner: Callable[..., CommandResult] = run_command,
    ):
        self.fstab_path = Path(fstab_path)
        self.mounts_path = Path(mounts_path)
        self.runner = runner
        self.logger = logging.getLogger(__name__)

    def read_lines(self) -> List[str]:
        if not self.fstab_path.exists():
            return []
        return self.fstab_path.read_text(encoding="utf-8").splitlines()

    def entries(self) -> List[Tuple[int, FstabEntry]]:
        """Mount entries with their 0-based line numbers in the file."""
        result = []
        for line_no, line in enumerate(self.read_lines()):
            entry = FstabEntry.from_line(line)
            if entry is not None:
                result.append((line_no, entry))
        return result

    def mounted_points(self) -> Set[str]:
        """Mount points currently mounted, from the kernel's mount list."""
        points = set()
        try:
            text = self.mounts_path.read_text(encoding="utf-8")
        except OSError as e:
            self.logger.warning(f"Cannot read mount list {self.mounts_path}: {e}")
            return points
        for line in text.splitlines():
            fields = line.split()
            if len(fields) >= 2:
                points.add(unescape_field(fields[1]))
        return points

    def is_mounted(self, path: Path) -> bool:
        """Exact match on the mount-point field, not a substring search."""
        target = os.path.normpath(str(path))
        return any(os.path.normpath(p) == target for p in self.mounted_points())

    def snapshot(self) -> bytes:
        """Current table contents; also kept on disk as <fstab>.bak."""
        if not self.fstab_path.exists():
            return b""
        shutil.copy2(self.fstab_path, self.fstab_path.with_name(self.fstab_path.name + ".bak"))
        return self.fstab_path.read_bytes()

    def _write_bytes(self, data: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(
            dir=str(self.fstab_path.parent), prefix=f".{self.fstab_path.name}."
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            if self.fstab_path.exists():
                shutil.copymode(self.fstab_path, tmp_name)
            else:
                os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, self.fstab_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def restore(self, snapshot: bytes) -> None:
        self._write_bytes(snapshot)

    def append(self, entry: FstabEntry) -> None:
        data = self.fstab_path.read_bytes() if self.fstab_path.exists() else b""
        if data and not data.endswith(b"\n"):
            data += b"\n"
        self._write_bytes(data + entry.to_line().encode("utf-8") + b"\n")
        self.logger.info(f"Added mount table entry: {entry.to_line()}")

    def remove_line(self, line_no: int) -> None:
        lines = self.fstab_path.read_bytes().splitlines(keepends=True)
        if not 0 <= line_no < len(lines):
            raise IndexError(f"No line {line_no} in {self.fstab_path}")
        removed = lines.pop(line_no)
        self._write_bytes(b"".join(lines))
        self.logger.info(f"Removed mount table entry: {removed.decode('utf-8').strip()}")

    def reconcile(self) -> CommandResult:
        """Mount everything listed in the table."""
        return self.runner(["mount", "-a"])

    def apply(self, change: Callable[[], None]) -> OperationResult:
        """
        Snapshot, run ``change``, reconcile; roll back if reconciliation fails.

        Returns:
            Result carrying the reconciliation exit status
        """
        snapshot = self.snapshot()
        change()

        result = self.reconcile()
        if result.ok:
            return OperationResult.success()

        self.logger.error(
            f"mount -a failed with status {result.returncode}: {result.output.strip()}"
        )
        self.logger.warning(f"Restoring {self.fstab_path} from snapshot")
        self.restore(snapshot)
        retry = self.reconcile()
        if not retry.ok:
            self.logger.error(
                f"mount -a still failing after rollback (status {retry.returncode})"
            )
        return OperationResult.failure(
            f"mount -a failed: {result.output.strip()}",
            "mount table restored from snapshot",
            exit_code=result.returncode,
        )
