"""
Interactive wizards that attach or detach backup storage.

Each wizard is a small state machine driven by a Prompter:

    SELECTING_SOURCE -> SELECTING_MOUNTPOINT -> SELECTING_MODE -> CONFIRMED

Invalid answers keep the wizard in the same state and ask again. Once
confirmed, the fstab edit goes through MountTable.apply, which rolls the
table back if ``mount -a`` fails.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .config import AppConfig
from .fstab import FstabEntry, MountTable
from .prompts import Prompter, ask_yes_no, choose_index, show_menu
from .results import OperationResult
from .system import CommandResult, run_command

# Filesystem types that cannot be mounted as a plain directory tree
UNMOUNTABLE_FSTYPES = {"swap", "crypto_LUKS", "LVM2_member", "linux_raid_member", "zfs_member"}


class WizardState(Enum):
    SELECTING_SOURCE = "selecting-source"
    SELECTING_MOUNTPOINT = "selecting-mountpoint"
    SELECTING_MODE = "selecting-mode"
    CONFIRMED = "confirmed"


def format_size(size_bytes: int) -> str:
    """Format byte size in human-readable format."""
    if size_bytes == 0:
        return "0 B"

    size = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024.0:
            if unit == "B":
                return f"{int(size)} {unit}"
            return f"{size:.1f} {unit}"
        size /= 1024.0

    return f"{size:.1f} PB"


def check_mount_point(path: Path, table: MountTable) -> None:
    """
    Reject mount points that are unusable.

    Raises:
        ValueError: describing why the path cannot be used
    """
    if not path.is_absolute():
        raise ValueError(f"Mount point must be an absolute path: {path}")
    if table.is_mounted(path):
        raise ValueError(f"{path} is already a mount point")
    if path.exists() and not path.is_dir():
        raise ValueError(f"{path} exists and is not a directory")
    if path.is_dir() and any(path.iterdir()):
        raise ValueError(f"{path} is not empty")


def prepare_mount_point(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
    os.chmod(path, 0o755)


def validate_mount_point(raw: str, table: MountTable) -> Path:
    """Check a user-supplied mount point and create it if needed."""
    if not raw.strip():
        raise ValueError("Mount point cannot be empty")
    path = Path(raw.strip())
    check_mount_point(path, table)
    prepare_mount_point(path)
    return path


class BlockDevice:
    """A block device as reported by lsblk."""

    def __init__(
        self,
        path: str,
        size_bytes: int,
        fstype: Optional[str] = None,
        uuid: Optional[str] = None,
        mountpoint: Optional[str] = None,
    ):
        self.path = path
        self.size_bytes = size_bytes
        self.fstype = fstype
        self.uuid = uuid
        self.mountpoint = mountpoint

    def describe(self) -> str:
        text = f"{self.path}  {format_size(self.size_bytes)}  {self.fstype or '-'}"
        if self.mountpoint:
            text += f"  (mounted on {self.mountpoint})"
        return text


def _flatten(nodes: List[Dict]) -> List[Dict]:
    flat = []
    for node in nodes:
        flat.append(node)
        flat.extend(_flatten(node.get("children") or []))
    return flat


def list_block_devices(
    runner: Callable[..., CommandResult] = run_command,
) -> List[BlockDevice]:
    """Block devices carrying a mountable filesystem."""
    result = runner(
        ["lsblk", "-J", "-b", "-o", "NAME,PATH,SIZE,TYPE,FSTYPE,UUID,MOUNTPOINT"]
    )
    if not result.ok:
        raise RuntimeError(f"lsblk failed (status {result.returncode}): {result.output.strip()}")
    try:
        data = json.loads(result.output)
    except json.JSONDecodeError as e:
        raise RuntimeError(f"lsblk output is not valid JSON: {e}")

    devices = []
    for node in _flatten(data.get("blockdevices", [])):
        fstype = node.get("fstype")
        if not fstype or fstype in UNMOUNTABLE_FSTYPES:
            continue
        path = node.get("path") or f"/dev/{node.get('name')}"
        devices.append(
            BlockDevice(
                path=path,
                size_bytes=int(node.get("size") or 0),
                fstype=fstype,
                uuid=node.get("uuid"),
                mountpoint=node.get("mountpoint"),
            )
        )
    return devices


def read_device_info(
    device: str, runner: Callable[..., CommandResult] = run_command
) -> Dict[str, str]:
    """UUID, TYPE and friends for a device, from ``blkid -o export``."""
    result = runner(["blkid", "-o", "export", device])
    if not result.ok:
        return {}
    info = {}
    for line in result.output.splitlines():
        if "=" in line:
            key, value = line.split("=", 1)
            info[key.strip()] = value.strip()
    return info


class MountWizard(ABC):
    """Shared flow of the attach wizards."""

    required_tools: Tuple[str, ...] = ("mount",)

    def __init__(
        self,
        config: AppConfig,
        prompter: Prompter,
        table: Optional[MountTable] = None,
        runner: Callable[..., CommandResult] = run_command,
    ):
        self.config = config
        self.prompter = prompter
        self.runner = runner
        self.table = table or MountTable(config.fstab_file, config.mounts_file, runner)
        self.state = WizardState.SELECTING_SOURCE
        self.mount_point: Optional[Path] = None
        self.read_only = False
        self.logger = logging.getLogger(__name__)

    def handlers(self) -> Dict[WizardState, Callable[[], WizardState]]:
        return {
            WizardState.SELECTING_SOURCE: self.select_source,
            WizardState.SELECTING_MOUNTPOINT: self.select_mount_point,
            WizardState.SELECTING_MODE: self.select_mode,
        }

    def show_table(self) -> None:
        self.prompter.show(f"Current entries in {self.table.fstab_path}:")
        entries = self.table.entries()
        if not entries:
            self.prompter.show("  (none)")
        show_menu(self.prompter, [entry.to_line() for _, entry in entries])

    @abstractmethod
    def select_source(self) -> WizardState:
        """Ask for the device, share or entry to act on."""

    @abstractmethod
    def build_entry(self) -> FstabEntry:
        """The mount table line this wizard acts on."""

    def select_mount_point(self) -> WizardState:
        raw = self.prompter.ask("Mount point (absolute path): ")
        try:
            self.mount_point = validate_mount_point(raw, self.table)
        except ValueError as e:
            self.prompter.show(str(e))
            return WizardState.SELECTING_MOUNTPOINT
        return WizardState.SELECTING_MODE

    def select_mode(self) -> WizardState:
        self.read_only = ask_yes_no(self.prompter, "Mount read-only?")
        return WizardState.CONFIRMED

    @property
    def mode_option(self) -> str:
        return "ro" if self.read_only else "rw"

    def run(self) -> OperationResult:
        self.show_table()
        handlers = self.handlers()
        while self.state is not WizardState.CONFIRMED:
            self.state = handlers[self.state]()
        return self.commit()

    def commit(self) -> OperationResult:
        entry = self.build_entry()
        self.prompter.show(f"Adding to {self.table.fstab_path}: {entry.to_line()}")
        result = self.table.apply(lambda: self.table.append(entry))
        self.report(result)
        return result

    def report(self, result: OperationResult) -> None:
        if result.ok:
            self.prompter.show("Mount table updated and mounted.")
        else:
            self.prompter.show("Mounting failed; the previous mount table was restored.")
            for detail in result.details:
                self.prompter.show(f"  {detail}")


class LocalMountWizard(MountWizard):
    """Attach a local block device by filesystem UUID."""

    required_tools = ("lsblk", "blkid", "mount")

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.uuid: Optional[str] = None
        self.fstype: Optional[str] = None

    def select_source(self) -> WizardState:
        devices = list_block_devices(self.runner)
        if not devices:
            raise RuntimeError("No block devices with a mountable filesystem found")

        self.prompter.show("Available devices:")
        show_menu(self.prompter, [device.describe() for device in devices])
        device = devices[choose_index(self.prompter, len(devices), "Device to mount")]

        info = read_device_info(device.path, self.runner)
        uuid = info.get("UUID") or device.uuid
        if not uuid:
            self.prompter.show(f"{device.path} has no filesystem UUID, choose another device")
            return WizardState.SELECTING_SOURCE

        self.uuid = uuid
        self.fstype = info.get("TYPE") or device.fstype
        self.logger.info(f"Selected {device.path} (UUID={self.uuid}, type {self.fstype})")
        return WizardState.SELECTING_MOUNTPOINT

    def build_entry(self) -> FstabEntry:
        return FstabEntry(
            source=f"UUID={self.uuid}",
            mount_point=str(self.mount_point),
            fstype=self.fstype,
            options=["defaults", self.mode_option],
            dump=0,
            passno=2,
        )


class SambaMountWizard(MountWizard):
    """Attach a CIFS/Samba network share."""

    required_tools = ("mount", "mount.cifs")
    fstype = "cifs"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.url: Optional[str] = None
        self.username = ""
        self.password = ""

    def select_source(self) -> WizardState:
        url = self.prompter.ask("Share URL (//server/share): ").strip()
        if not url:
            self.prompter.show("Share URL cannot be empty")
            return WizardState.SELECTING_SOURCE
        if not url.startswith("//"):
            url = "//" + url.lstrip("/")
        self.url = url
        self.username = self.ask_credential("Username (empty for guest access): ")
        if self.username:
            self.password = self.ask_credential("Password (may be empty): ", secret=True)
        return WizardState.SELECTING_MOUNTPOINT

    def ask_credential(self, message: str, secret: bool = False) -> str:
        """Re-prompt until the value fits in a single fstab options field."""
        while True:
            if secret:
                value = self.prompter.ask_secret(message)
            else:
                value = self.prompter.ask(message).strip()
            if not any(c.isspace() or c == "#" for c in value):
                return value
            self.prompter.show("Spaces, tabs and '#' cannot be stored in /etc/fstab options")

    def credential_options(self) -> List[str]:
        if not self.username:
            return ["guest"]
        options = [f"username={self.username}"]
        if self.password:
            # mount.cifs reads a doubled comma as a literal one
            options.append(f"password={self.password.replace(',', ',,')}")
        return options

    def build_entry(self) -> FstabEntry:
        return FstabEntry(
            source=self.url,
            mount_point=str(self.mount_point),
            fstype=self.fstype,
            options=self.credential_options() + [self.mode_option, "_netdev"],
            dump=0,
            passno=0,
        )


class UnmountWizard(MountWizard):
    """Detach a mount listed in the table and drop its line."""

    required_tools = ("mount", "umount")

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.selected: Optional[Tuple[int, FstabEntry]] = None

    def show_table(self) -> None:
        pass

    def select_source(self) -> WizardState:
        entries = self.table.entries()
        if not entries:
            raise RuntimeError(f"No mount entries in {self.table.fstab_path}")

        self.prompter.show(f"Entries in {self.table.fstab_path}:")
        show_menu(self.prompter, [entry.to_line() for _, entry in entries])
        self.selected = entries[choose_index(self.prompter, len(entries), "Entry to remove")]
        return WizardState.CONFIRMED

    def build_entry(self) -> FstabEntry:
        return self.selected[1]

    def commit(self) -> OperationResult:
        line_no = self.selected[0]
        entry = self.build_entry()
        result = self.runner(["umount", entry.mount_point])
        if not result.ok:
            self.logger.warning(
                f"umount {entry.mount_point} returned {result.returncode}: "
                f"{result.output.strip()}"
            )

        self.prompter.show(f"Removing from {self.table.fstab_path}: {entry.to_line()}")
        outcome = self.table.apply(lambda: self.table.remove_line(line_no))
        self.report(outcome)
        return outcome
