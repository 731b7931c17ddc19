"""Storage probe strategies for the system drive."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from typing import Any

import psutil

from ._base import CommandProbe, ProbeStrategy
from ._errors import ProbeParseFailed
from ._types import Component, StorageInfo, StorageType

logger = logging.getLogger(__name__)

_GIB = 1024**3

# Typical sequential read/write MB/s per tier; nothing is benchmarked
_THROUGHPUT_ESTIMATES: dict[StorageType, tuple[int, int]] = {
    StorageType.NVME: (3500, 3000),
    StorageType.SSD: (550, 500),
    StorageType.HDD: (160, 150),
    StorageType.UNKNOWN: (0, 0),
}

# MSFT_PhysicalDisk enum values when ConvertTo-Json emits numbers
_WIN_MEDIA_TYPES = {3: "HDD", 4: "SSD", 5: "SCM"}
_WIN_BUS_NVME = 17


def _root_path() -> str:
    return os.path.abspath(os.sep)


def storage_info(
    kind: StorageType,
    total_bytes: float,
    free_bytes: float,
    device: str | None = None,
) -> StorageInfo:
    read_mbps, write_mbps = _THROUGHPUT_ESTIMATES[kind]
    return StorageInfo(
        detected=True,
        type=kind,
        total_gb=round(total_bytes / _GIB, 2),
        available_gb=round(free_bytes / _GIB, 2),
        read_mbps=read_mbps,
        write_mbps=write_mbps,
        device=device,
    )


def _is_true(value: Any) -> bool:
    # lsblk emits booleans since util-linux 2.33, "0"/"1" strings before
    if isinstance(value, str):
        return value.strip() in ("1", "true")
    return bool(value)


def _mounts(node: dict) -> set[str]:
    found = {m for m in node.get("mountpoints") or [] if m}
    if node.get("mountpoint"):
        found.add(node["mountpoint"])
    for child in node.get("children") or []:
        found |= _mounts(child)
    return found


class LsblkStorageProbe(CommandProbe):
    """Classify the disk that holds ``/`` from lsblk's rotational and transport columns."""

    component = Component.STORAGE
    priority = 100
    platforms = frozenset({"linux"})
    command = ("lsblk", "-J", "-b", "-o", "NAME,ROTA,TRAN,SIZE,TYPE,MOUNTPOINT")

    def parse(self, stdout: str) -> StorageInfo | None:
        disks = [d for d in json.loads(stdout).get("blockdevices", []) if d.get("type") == "disk"]
        if not disks:
            return None
        root = next((d for d in disks if "/" in _mounts(d)), disks[0])
        name = str(root.get("name") or "")
        tran = str(root.get("tran") or "").lower()
        if name.startswith("nvme") or tran == "nvme":
            kind = StorageType.NVME
        elif _is_true(root.get("rota")):
            kind = StorageType.HDD
        else:
            kind = StorageType.SSD
        usage = psutil.disk_usage("/")
        return storage_info(kind, usage.total, usage.free, device=f"/dev/{name}")


def _diskutil_bytes(raw: str) -> int:
    match = re.search(r"\((\d+) Bytes\)", raw)
    if not match:
        raise ValueError(f"no byte count in {raw!r}")
    return int(match.group(1))


class DiskutilStorageProbe(CommandProbe):
    component = Component.STORAGE
    priority = 100
    platforms = frozenset({"darwin"})
    command = ("diskutil", "info", "/")

    def parse(self, stdout: str) -> StorageInfo | None:
        fields: dict[str, str] = {}
        for line in stdout.splitlines():
            if ":" in line:
                key, value = line.split(":", 1)
                fields[key.strip()] = value.strip()
        if not fields:
            return None

        protocol = fields.get("Protocol", "").lower()
        solid = fields.get("Solid State", "").lower() == "yes"
        if "pci" in protocol or "nvme" in protocol or "apple fabric" in protocol:
            kind = StorageType.NVME
        elif solid:
            kind = StorageType.SSD
        elif fields.get("Solid State"):
            kind = StorageType.HDD
        else:
            kind = StorageType.UNKNOWN

        total_raw = fields.get("Container Total Space") or fields.get("Disk Size")
        free_raw = (
            fields.get("Container Free Space")
            or fields.get("Volume Available Space")
            or fields.get("Volume Free Space")
        )
        if not total_raw or not free_raw:
            return None
        return storage_info(
            kind,
            _diskutil_bytes(total_raw),
            _diskutil_bytes(free_raw),
            device=fields.get("Device Node"),
        )


class WindowsStorageProbe(CommandProbe):
    component = Component.STORAGE
    priority = 100
    platforms = frozenset({"win32"})
    command = (
        "powershell",
        "-NoProfile",
        "-NonInteractive",
        "-Command",
        "$part = Get-Partition -DriveLetter C; "
        "$disk = Get-PhysicalDisk | Where-Object DeviceId -eq $part.DiskNumber; "
        "$vol = Get-Volume -DriveLetter C; "
        "@{MediaType=$disk.MediaType; BusType=$disk.BusType; Model=$disk.FriendlyName; "
        "Size=$vol.Size; Free=$vol.SizeRemaining} | ConvertTo-Json",
    )

    def parse(self, stdout: str) -> StorageInfo | None:
        data = json.loads(stdout)
        size = int(data.get("Size") or 0)
        if not size:
            return None
        media = data.get("MediaType")
        bus = data.get("BusType")
        if isinstance(media, int):
            media = _WIN_MEDIA_TYPES.get(media, "")
        media = str(media or "").upper()
        if bus == _WIN_BUS_NVME or str(bus).lower() == "nvme":
            kind = StorageType.NVME
        elif media in ("SSD", "SCM"):
            kind = StorageType.SSD
        elif media == "HDD":
            kind = StorageType.HDD
        else:
            kind = StorageType.UNKNOWN
        return storage_info(kind, size, int(data.get("Free") or 0), device=data.get("Model"))


class PsutilStorageProbe(ProbeStrategy):
    """Capacity only; the drive type stays unknown."""

    component = Component.STORAGE
    priority = 10

    async def probe(self, timeout: float) -> StorageInfo:
        return await asyncio.to_thread(self._read)

    def _read(self) -> StorageInfo:
        try:
            usage = psutil.disk_usage(_root_path())
        except OSError as exc:
            raise ProbeParseFailed(f"disk_usage failed: {exc}") from exc
        return storage_info(StorageType.UNKNOWN, usage.total, usage.free)


STORAGE_STRATEGIES: tuple[ProbeStrategy, ...] = (
    LsblkStorageProbe(),
    DiskutilStorageProbe(),
    WindowsStorageProbe(),
    PsutilStorageProbe(),
)
