from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from conftest import APP_BASE, PROFILE, FakeBackend, FakeDevice
from punt import cli
from punt.core.context import Context

runner = CliRunner()


def _use_devices(monkeypatch: pytest.MonkeyPatch, *devices: FakeDevice) -> None:
    monkeypatch.setattr(
        cli,
        "Context",
        lambda: Context(backend=FakeBackend(list(devices)), profiles={PROFILE.id: PROFILE}),
    )


def test_list_command(monkeypatch: pytest.MonkeyPatch, device: FakeDevice) -> None:
    _use_devices(monkeypatch, device)
    result = runner.invoke(cli.app, ["list"])
    assert result.exit_code == 0
    assert "001:005 PUNT-0001 (punt)" in result.stdout


def test_list_command_without_targets(monkeypatch: pytest.MonkeyPatch) -> None:
    _use_devices(monkeypatch)
    result = runner.invoke(cli.app, ["list"])
    assert result.exit_code == 0
    assert "No targets found" in result.stdout


def test_info_command(monkeypatch: pytest.MonkeyPatch, device: FakeDevice) -> None:
    _use_devices(monkeypatch, device)
    result = runner.invoke(cli.app, ["info"])
    assert result.exit_code == 0
    assert "Firmware version: 1.2.3" in result.stdout
    assert "Firmware build date: 2019-06-14" in result.stdout
    assert "Bootloader identifier: STM32F042C6" in result.stdout
    assert "Application flash base address: 0x08000800" in result.stdout
    assert "Application flash size: 30 KiB" in result.stdout


def test_flash_command(monkeypatch: pytest.MonkeyPatch, device: FakeDevice, tmp_path: Path) -> None:
    image = bytes(range(256)) * 5
    path = tmp_path / "app.bin"
    path.write_bytes(image)
    _use_devices(monkeypatch, device)

    result = runner.invoke(cli.app, ["flash", str(path), "--exit"])
    assert result.exit_code == 0
    assert "Verified" in result.stdout
    assert "Flashed 1280 bytes at 0x08000800" in result.stdout
    memory = device.bootloader.memory
    assert bytes(memory[0x800:0x800 + len(image)]) == image
    assert device.bootloader.erased == [2, 3]
    assert device.bootloader.exited


def test_read_command(monkeypatch: pytest.MonkeyPatch, device: FakeDevice, tmp_path: Path) -> None:
    device.bootloader.memory[0x800:0x900] = bytes(range(256))
    _use_devices(monkeypatch, device)
    out = tmp_path / "dump.bin"

    result = runner.invoke(cli.app, ["read", str(out), "--length", "0x100", "--address", hex(APP_BASE)])
    assert result.exit_code == 0
    assert out.read_bytes() == bytes(range(256))


def test_erase_command_defaults_to_application_flash(
    monkeypatch: pytest.MonkeyPatch, device: FakeDevice
) -> None:
    _use_devices(monkeypatch, device)
    result = runner.invoke(cli.app, ["erase"])
    assert result.exit_code == 0
    assert "Erased 30 page(s)" in result.stdout
    assert device.bootloader.erased == list(range(2, 32))


def test_verify_mismatch_is_clean_error(monkeypatch: pytest.MonkeyPatch, device: FakeDevice, tmp_path: Path) -> None:
    path = tmp_path / "app.bin"
    path.write_bytes(b"\x00" * 64)
    _use_devices(monkeypatch, device)

    result = runner.invoke(cli.app, ["verify", str(path)])
    assert result.exit_code == 1
    assert "Error: Verification failed" in result.stderr
    assert "Traceback" not in result.stdout
    assert "Traceback" not in result.stderr


def test_several_targets_need_serial(monkeypatch: pytest.MonkeyPatch) -> None:
    _use_devices(
        monkeypatch,
        FakeDevice(address=2, serial="A"),
        FakeDevice(address=3, serial="B"),
    )
    result = runner.invoke(cli.app, ["exit"])
    assert result.exit_code == 1
    assert "Error: Multiple targets found" in result.stderr

    result = runner.invoke(cli.app, ["exit", "--serial", "B"])
    assert result.exit_code == 0
    assert "Started application" in result.stdout


def test_out_of_window_erase_is_rejected(monkeypatch: pytest.MonkeyPatch, device: FakeDevice) -> None:
    _use_devices(monkeypatch, device)
    result = runner.invoke(cli.app, ["erase", "--start", "0x08000000", "--length", "1024"])
    assert result.exit_code == 1
    assert "outside the application flash" in result.stderr
    assert device.bootloader.erased == []


def test_bad_number_is_usage_error(monkeypatch: pytest.MonkeyPatch, device: FakeDevice) -> None:
    _use_devices(monkeypatch, device)
    result = runner.invoke(cli.app, ["erase", "--start", "nope"])
    assert result.exit_code == 2
