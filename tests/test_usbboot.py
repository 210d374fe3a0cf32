from __future__ import annotations

import subprocess

import pytest

from testbot import util_usbboot
from testbot.util_pyudev import UsbbootDrive
from testbot.util_subprocess import SubprocessExitCodeException
from testbot.util_usbboot import UsbbootHandoff

USBBOOT = UsbbootDrive(
    sys_path="/sys/devices/platform/soc/usb1/1-1/1-1.4",
    id_vendor=0x0A5C,
    id_product=0x2764,
)


def test_args() -> None:
    assert UsbbootHandoff().args(drive=USBBOOT) == ["rpiboot", "-p", "1-1.4"]


def test_boot(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[list[str], float]] = []

    def subprocess_run(args: list[str], timeout_s: float) -> str:
        calls.append((args, timeout_s))
        return ""

    monkeypatch.setattr(util_usbboot, "subprocess_run", subprocess_run)

    assert UsbbootHandoff(timeout_s=30.0).boot(USBBOOT)
    assert calls == [(["rpiboot", "-p", "1-1.4"], 30.0)]


@pytest.mark.parametrize(
    "exception",
    [
        SubprocessExitCodeException("rpiboot: Failed to open the requested device"),
        subprocess.TimeoutExpired(cmd="rpiboot", timeout=60.0),
        FileNotFoundError(2, "No such file or directory", "rpiboot"),
    ],
    ids=["exitcode", "timeout", "missing"],
)
def test_boot_failure_not_raised(
    monkeypatch: pytest.MonkeyPatch, exception: Exception
) -> None:
    def subprocess_run(args: list[str], timeout_s: float) -> str:
        raise exception

    monkeypatch.setattr(util_usbboot, "subprocess_run", subprocess_run)

    assert not UsbbootHandoff().boot(USBBOOT)
