"""Tests for AMD GPU and ROCm runtime probes (llmcheck.hardware._rocm)."""

from __future__ import annotations

from pathlib import Path

import pytest

from llmcheck.hardware._errors import ProbeUnavailable
from llmcheck.hardware._rocm import (
    DrmSysfsGpuProbe,
    RocmDirectoryProbe,
    RocminfoProbe,
    RocmSmiProbe,
    RocmSmiVersionProbe,
    _memory_to_gb,
    amd_gpu,
    list_drm_cards,
    lookup_amd,
)

_ROCM_SMI = """\
============================ ROCm System Management Interface ============================
GPU[0]\t\t: Device ID: 0x744c
GPU[0]\t\t: Card series: \t\tRadeon RX 7900 XTX
GPU[0]\t\t: VRAM Total Memory (B): 25753026560
GPU[1]\t\t: Card series: \t\tRadeon RX 6600
GPU[1]\t\t: VRAM Total Memory (B): 8573157376
==========================================================================================
"""

_ROCMINFO = """\
*******
Agent 1
*******
  Name:                    AMD Ryzen 9 7950X 16-Core Processor
  Device Type:             CPU
*******
Agent 2
*******
  Name:                    gfx1100
  Marketing Name:          Radeon RX 7900 XTX
  Device Type:             GPU
  Compute Unit:            96
  Pool Info:
    Pool 1
      Segment:                 GLOBAL; FLAGS: COARSE GRAINED
      Size:                    25149440(0x17fc000) KB
    Pool 2
      Segment:                 GROUP
      Size:                    64(0x40) KB
"""


def _make_card(root: Path, name: str, vendor: str, device: str, vram_bytes: int | None = None) -> None:
    dev = root / name / "device"
    dev.mkdir(parents=True)
    (dev / "vendor").write_text(vendor + "\n")
    (dev / "device").write_text(device + "\n")
    if vram_bytes is not None:
        (dev / "mem_info_vram_total").write_text(f"{vram_bytes}\n")


# ---------------------------------------------------------------------------
# Lookup and helpers
# ---------------------------------------------------------------------------


class TestLookup:
    def test_xtx_not_confused_with_xt(self) -> None:
        assert lookup_amd("Radeon RX 7900 XTX") == ("RDNA3", 96, 55)
        assert lookup_amd("Radeon RX 7900 XT") == ("RDNA3", 84, 48)

    def test_unknown(self) -> None:
        assert lookup_amd("Radeon HD 5450") is None

    def test_amd_gpu_prefixes_vendor(self) -> None:
        gpu = amd_gpu("Radeon RX 7900 XTX", 24.0)
        assert gpu.model == "AMD Radeon RX 7900 XTX"
        assert gpu.compute_units == 96
        assert gpu.is_dedicated is True
        assert gpu.supports_fp16 and gpu.supports_int8

    def test_arch_from_gfx_target(self) -> None:
        gpu = amd_gpu("AMD Radeon Graphics", 0.5, gfx_version="gfx1103")
        assert gpu.architecture == "RDNA3"
        assert gpu.is_dedicated is False

    def test_legacy_card_has_no_fast_math(self) -> None:
        gpu = amd_gpu("Radeon HD 5450", 1.0)
        assert gpu.architecture is None
        assert gpu.supports_fp16 is False

    @pytest.mark.parametrize(
        "raw,expected",
        [("25753026560", 23.98), ("16368 MB", 15.98), ("16 GB", 16.0), ("n/a", 0.0)],
    )
    def test_memory_to_gb(self, raw: str, expected: float) -> None:
        assert _memory_to_gb(raw) == pytest.approx(expected, abs=0.01)


# ---------------------------------------------------------------------------
# rocm-smi / rocminfo
# ---------------------------------------------------------------------------


class TestRocmSmiProbe:
    def test_picks_largest_gpu(self) -> None:
        gpu = RocmSmiProbe().parse(_ROCM_SMI)
        assert gpu.model == "AMD Radeon RX 7900 XTX"
        assert gpu.vram_gb == pytest.approx(23.98, abs=0.01)
        assert gpu.architecture == "RDNA3"

    def test_no_gpu_lines(self) -> None:
        assert RocmSmiProbe().parse("ROCm System Management Interface\n") is None

    def test_linux_only(self) -> None:
        assert RocmSmiProbe().is_applicable("linux")
        assert not RocmSmiProbe().is_applicable("win32")


class TestRocminfoProbe:
    def test_gpu_agent(self) -> None:
        gpu = RocminfoProbe().parse(_ROCMINFO)
        assert gpu.model == "AMD Radeon RX 7900 XTX"
        assert gpu.compute_units == 96
        assert gpu.vram_gb == pytest.approx(23.98, abs=0.01)

    def test_cpu_only_agents(self) -> None:
        stdout = "*******\nAgent 1\n*******\n  Name: AMD Ryzen\n  Device Type: CPU\n"
        assert RocminfoProbe().parse(stdout) is None


# ---------------------------------------------------------------------------
# sysfs
# ---------------------------------------------------------------------------


class TestDrmSysfs:
    def test_list_cards_skips_connectors(self, tmp_path: Path) -> None:
        (tmp_path / "card0").mkdir()
        (tmp_path / "card0-DP-1").mkdir()
        (tmp_path / "renderD128").mkdir()
        assert list_drm_cards(str(tmp_path)) == [str(tmp_path / "card0")]

    def test_missing_dir(self, tmp_path: Path) -> None:
        assert list_drm_cards(str(tmp_path / "nope")) == []

    @pytest.mark.asyncio
    async def test_known_device_with_vram(self, tmp_path: Path) -> None:
        _make_card(tmp_path, "card0", "0x8086", "0x4680")
        _make_card(tmp_path, "card1", "0x1002", "0x744c", vram_bytes=25753026560)
        gpu = await DrmSysfsGpuProbe(str(tmp_path)).probe(2.0)
        assert gpu.model == "AMD Radeon RX 7900 XTX"
        assert gpu.vram_gb == pytest.approx(23.98, abs=0.01)

    @pytest.mark.asyncio
    async def test_table_vram_when_sysfs_lacks_it(self, tmp_path: Path) -> None:
        _make_card(tmp_path, "card0", "0x1002", "0x73df")
        gpu = await DrmSysfsGpuProbe(str(tmp_path)).probe(2.0)
        assert gpu.vram_gb == 12.0

    @pytest.mark.asyncio
    async def test_unknown_device_id(self, tmp_path: Path) -> None:
        _make_card(tmp_path, "card0", "0x1002", "0xabcd", vram_bytes=4 * 1024**3)
        gpu = await DrmSysfsGpuProbe(str(tmp_path)).probe(2.0)
        assert gpu.model == "AMD Radeon [abcd]"
        assert gpu.vram_gb == 4.0

    @pytest.mark.asyncio
    async def test_no_amd_card(self, tmp_path: Path) -> None:
        _make_card(tmp_path, "card0", "0x10de", "0x2684")
        with pytest.raises(ProbeUnavailable):
            await DrmSysfsGpuProbe(str(tmp_path)).probe(2.0)


# ---------------------------------------------------------------------------
# ROCm runtime
# ---------------------------------------------------------------------------


class TestRocmRuntime:
    def test_smi_version(self) -> None:
        status = RocmSmiVersionProbe().parse("ROCM-SMI version: 2.3.0+6b3bcab\nROCM-SMI-LIB version: 7.3.0\n")
        assert status.present is True
        assert status.version == "2.3.0"

    def test_smi_version_missing(self) -> None:
        assert RocmSmiVersionProbe().parse("usage: rocm-smi\n") is None

    @pytest.mark.asyncio
    async def test_directory_with_version_file(self, tmp_path: Path) -> None:
        info = tmp_path / ".info"
        info.mkdir()
        (info / "version").write_text("6.1.2-115\n")
        status = await RocmDirectoryProbe(str(tmp_path)).probe(2.0)
        assert status.present is True
        assert status.version == "6.1.2"

    @pytest.mark.asyncio
    async def test_directory_without_version_is_still_present(self, tmp_path: Path) -> None:
        status = await RocmDirectoryProbe(str(tmp_path)).probe(2.0)
        assert status.present is True
        assert status.version is None

    @pytest.mark.asyncio
    async def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(ProbeUnavailable):
            await RocmDirectoryProbe(str(tmp_path / "rocm")).probe(2.0)
