"""Tests for memory probes (llmcheck.hardware._memory)."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from llmcheck.hardware._errors import ProbeParseFailed, ProbeUnavailable
from llmcheck.hardware._memory import (
    ProcMeminfoProbe,
    PsutilMemoryProbe,
    SysctlMemoryProbe,
    WindowsMemoryProbe,
)

_GIB = 1024**3

_MEMINFO = """\
MemTotal:       32768000 kB
MemFree:         1024000 kB
MemAvailable:   16384000 kB
Buffers:          512000 kB
Cached:          8192000 kB
"""

_VM_STAT = """\
Mach Virtual Memory Statistics: (page size of 16384 bytes)
Pages free:                               65536.
Pages active:                            500000.
Pages inactive:                          131072.
Pages speculative:                        65536.
Pages purgeable:                              0.
"""


class TestProcMeminfoProbe:
    @pytest.mark.asyncio
    async def test_uses_mem_available(self, tmp_path: Path) -> None:
        path = tmp_path / "meminfo"
        path.write_text(_MEMINFO)
        info = await ProcMeminfoProbe(str(path)).probe(2.0)
        assert info.detected is True
        assert info.total_gb == pytest.approx(31.25)
        assert info.available_gb == pytest.approx(15.63, abs=0.01)

    @pytest.mark.asyncio
    async def test_old_kernel_sums_free_buffers_cached(self, tmp_path: Path) -> None:
        path = tmp_path / "meminfo"
        path.write_text("\n".join(line for line in _MEMINFO.splitlines() if not line.startswith("MemAvailable")))
        info = await ProcMeminfoProbe(str(path)).probe(2.0)
        assert info.available_gb == pytest.approx((1024000 + 512000 + 8192000) / 1024**2, abs=0.01)

    @pytest.mark.asyncio
    async def test_missing_total(self, tmp_path: Path) -> None:
        path = tmp_path / "meminfo"
        path.write_text("MemFree: 100 kB\n")
        with pytest.raises(ProbeParseFailed):
            await ProcMeminfoProbe(str(path)).probe(2.0)

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ProbeUnavailable):
            await ProcMeminfoProbe(str(tmp_path / "absent")).probe(2.0)


class TestSysctlMemoryProbe:
    @pytest.mark.asyncio
    async def test_apple_silicon(self) -> None:
        outputs = [f"{16 * _GIB}\n", _VM_STAT, "Apple M2\n"]
        with patch("llmcheck.hardware._memory.run_command", new=AsyncMock(side_effect=outputs)):
            info = await SysctlMemoryProbe().probe(2.0)
        assert info.total_gb == 16.0
        # (65536 + 131072 + 65536) pages * 16 KiB = 4 GiB
        assert info.available_gb == 4.0
        assert info.type == "LPDDR5"

    @pytest.mark.asyncio
    async def test_chip_lookup_failure_is_tolerated(self) -> None:
        from llmcheck.hardware._errors import ProbeExecutionFailed

        outputs = [f"{8 * _GIB}\n", _VM_STAT, ProbeExecutionFailed("boom")]
        with patch("llmcheck.hardware._memory.run_command", new=AsyncMock(side_effect=outputs)):
            info = await SysctlMemoryProbe().probe(2.0)
        assert info.total_gb == 8.0
        assert info.type == "Unknown"

    @pytest.mark.asyncio
    async def test_bad_memsize(self) -> None:
        with patch("llmcheck.hardware._memory.run_command", new=AsyncMock(return_value="n/a")):
            with pytest.raises(ProbeParseFailed):
                await SysctlMemoryProbe().probe(2.0)


class TestWindowsMemoryProbe:
    def test_parses_cim_hash(self) -> None:
        stdout = json.dumps({"TotalKB": 33554432, "FreeKB": 16777216, "Speed": 5600, "MemoryType": 34})
        info = WindowsMemoryProbe().parse(stdout)
        assert info.total_gb == 32.0
        assert info.available_gb == 16.0
        assert info.type == "DDR5"
        assert info.speed_mhz == 5600

    def test_unknown_smbios_type(self) -> None:
        stdout = json.dumps({"TotalKB": 8388608, "FreeKB": 0, "Speed": None, "MemoryType": 0})
        info = WindowsMemoryProbe().parse(stdout)
        assert info.type == "Unknown"
        assert info.speed_mhz == 0

    def test_zero_total(self) -> None:
        assert WindowsMemoryProbe().parse(json.dumps({"TotalKB": 0})) is None


class TestPsutilMemoryProbe:
    @pytest.mark.asyncio
    async def test_virtual_memory(self) -> None:
        vm = MagicMock(total=64 * _GIB, available=40 * _GIB)
        with patch("llmcheck.hardware._memory.psutil.virtual_memory", return_value=vm):
            info = await PsutilMemoryProbe().probe(2.0)
        assert info.total_gb == 64.0
        assert info.available_gb == 40.0

    @pytest.mark.asyncio
    async def test_zero_memory(self) -> None:
        vm = MagicMock(total=0, available=0)
        with patch("llmcheck.hardware._memory.psutil.virtual_memory", return_value=vm):
            with pytest.raises(ProbeParseFailed):
                await PsutilMemoryProbe().probe(2.0)
