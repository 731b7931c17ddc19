"""Tests for vendor-neutral GPU probes (llmcheck.hardware._gpu)."""

from __future__ import annotations

import json

import pytest

from llmcheck.hardware._gpu import (
    GPU_STRATEGIES,
    LspciGpuProbe,
    WindowsGpuProbe,
    intel_gpu,
    vendor_from_name,
)

_LSPCI_NVIDIA = (
    "00:02.0 VGA compatible controller [0300]: Intel Corporation Raptor Lake-S GT1 "
    "[UHD Graphics 770] [8086:a780] (rev 04)\n"
    "01:00.0 VGA compatible controller [0300]: NVIDIA Corporation AD107 "
    "[GeForce RTX 4060] [10de:2882] (rev a1)\n"
    "01:00.1 Audio device [0403]: NVIDIA Corporation Device [10de:22be] (rev a1)\n"
)

_LSPCI_AMD = (
    "03:00.0 VGA compatible controller [0300]: Advanced Micro Devices, Inc. [AMD/ATI] "
    "Navi 31 [Radeon RX 7900 XT/7900 XTX] [1002:744c] (rev c8)\n"
)


class TestVendorFromName:
    @pytest.mark.parametrize(
        "name,vendor",
        [
            ("NVIDIA GeForce RTX 3080", "NVIDIA"),
            ("Quadro P4000", "NVIDIA"),
            ("AMD Radeon RX 6800", "AMD"),
            ("Intel(R) UHD Graphics 630", "Intel"),
            ("Intel(R) Arc(TM) A770 Graphics", "Intel"),
            ("Apple M2", "Apple"),
            ("Microsoft Basic Display Adapter", "Unknown"),
        ],
    )
    def test_vendor(self, name: str, vendor: str) -> None:
        assert vendor_from_name(name) == vendor


class TestIntelGpu:
    def test_integrated(self) -> None:
        gpu = intel_gpu("Intel(R) UHD Graphics 770", 0.0)
        assert gpu.is_dedicated is False
        assert gpu.architecture is None

    def test_arc_is_dedicated(self) -> None:
        gpu = intel_gpu("Intel(R) Arc(TM) A770 Graphics", 16.0)
        assert gpu.is_dedicated is True
        assert gpu.architecture == "Xe"
        assert gpu.supports_int8 is True


class TestLspciGpuProbe:
    def test_discrete_nvidia_beats_integrated_intel(self) -> None:
        gpu = LspciGpuProbe().parse(_LSPCI_NVIDIA)
        assert gpu.vendor == "NVIDIA"
        assert gpu.model == "GeForce RTX 4060"
        assert gpu.architecture == "Ada Lovelace"
        # lspci has no memory size; the lookup table supplies it
        assert gpu.vram_gb == 8.0

    def test_amd_vram_from_pci_table(self) -> None:
        gpu = LspciGpuProbe().parse(_LSPCI_AMD)
        assert gpu.model == "AMD Radeon RX 7900 XTX"
        assert gpu.vram_gb == 24.0

    def test_audio_devices_ignored(self) -> None:
        stdout = "01:00.1 Audio device [0403]: NVIDIA Corporation Device [10de:22be] (rev a1)\n"
        assert LspciGpuProbe().parse(stdout) is None

    def test_intel_only(self) -> None:
        stdout = _LSPCI_NVIDIA.splitlines()[0] + "\n"
        gpu = LspciGpuProbe().parse(stdout)
        assert gpu.vendor == "Intel"
        assert gpu.model == "UHD Graphics 770"


class TestWindowsGpuProbe:
    def test_single_adapter(self) -> None:
        stdout = json.dumps(
            {
                "Name": "NVIDIA GeForce RTX 3070",
                "AdapterRAM": 4293918720,
                "DriverVersion": "31.0.15.5222",
                "AdapterCompatibility": "NVIDIA",
            }
        )
        gpu = WindowsGpuProbe().parse(stdout)
        assert gpu.vendor == "NVIDIA"
        assert gpu.driver_version == "31.0.15.5222"
        assert gpu.compute_capability == "8.6"

    def test_nvidia_known_vram_overrides_32bit_field(self) -> None:
        stdout = json.dumps({"Name": "NVIDIA GeForce RTX 4090", "AdapterRAM": 4293918720})
        assert WindowsGpuProbe().parse(stdout).vram_gb == 24.0

    def test_amd_known_vram_overrides_32bit_field(self) -> None:
        stdout = json.dumps(
            [
                {"Name": "Microsoft Basic Display Adapter", "AdapterRAM": 0},
                {"Name": "AMD Radeon RX 7900 XTX", "AdapterRAM": 4293918720, "AdapterCompatibility": "Advanced Micro Devices, Inc."},
            ]
        )
        gpu = WindowsGpuProbe().parse(stdout)
        assert gpu.vendor == "AMD"
        assert gpu.vram_gb == 24.0

    def test_only_basic_display(self) -> None:
        stdout = json.dumps({"Name": "Microsoft Basic Display Adapter", "AdapterRAM": 0})
        assert WindowsGpuProbe().parse(stdout) is None


class TestStrategyOrder:
    def test_vendor_tools_before_generic_listings(self) -> None:
        by_name = {s.name: s.priority for s in GPU_STRATEGIES}
        assert by_name["NvidiaSmiProbe"] > by_name["RocmSmiProbe"] > by_name["LspciGpuProbe"]
        assert by_name["LspciGpuProbe"] > by_name["DrmSysfsGpuProbe"]
        assert by_name["SystemProfilerGpuProbe"] > by_name["SysctlAppleGpuProbe"]

    def test_every_platform_has_a_gpu_strategy(self) -> None:
        for platform_name in ("linux", "darwin", "win32"):
            assert any(s.is_applicable(platform_name) for s in GPU_STRATEGIES)
