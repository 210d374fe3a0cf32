from __future__ import annotations

import dataclasses
import pathlib

import pytest
from conftest import Rig

from testbot.lib_devices import DeviceType
from testbot.util_probe import (
    CurrentWindowProbe,
    NetworkCarrierProbe,
    ProbeResult,
    SysfsGpio,
)


def _carrier(tmp_path: pathlib.Path, value: str | None) -> NetworkCarrierProbe:
    probe = NetworkCarrierProbe(interface="eth1", directory_sysfs=tmp_path)
    if value is not None:
        probe.filename.parent.mkdir(parents=True)
        probe.filename.write_text(value)
    return probe


def test_carrier(tmp_path: pathlib.Path) -> None:
    probe = _carrier(tmp_path, "1\n")
    assert probe.filename == tmp_path / "class/net/eth1/carrier"
    assert probe.check().is_on

    probe.filename.write_text("0\n")
    result = probe.check()
    assert result.is_off
    assert result.text == "off"


def test_carrier_unavailable(tmp_path: pathlib.Path) -> None:
    result = _carrier(tmp_path, None).check()

    assert not result.available
    assert not result.is_off
    assert not result.is_on
    assert result.text.startswith("unavailable")


def test_probe_result() -> None:
    assert ProbeResult.ok(on=True).text == "on"
    assert ProbeResult.unavailable(reason="gpio13").on is None


def test_gpio_export(tmp_path: pathlib.Path) -> None:
    directory_gpio = tmp_path / "class" / "gpio"
    directory_gpio.mkdir(parents=True)
    gpio = SysfsGpio(5, directory_sysfs=tmp_path)

    # The kernel would create 'gpio5/direction' when exported
    assert not gpio.export(direction="in")
    assert (directory_gpio / "export").read_text() == "5"

    (directory_gpio / "gpio5").mkdir()
    assert gpio.export(direction="in")
    assert (directory_gpio / "gpio5" / "direction").read_text() == "in"

    assert gpio.write(1)
    assert gpio.read().is_on


@dataclasses.dataclass
class Ttestparam:
    current_a: float
    expected_on: bool

    @property
    def pytest_id(self) -> str:
        return f"{self.current_a}A"


_TESTPARAMS = [
    Ttestparam(0.0, False),
    Ttestparam(0.03, False),
    Ttestparam(0.5, True),
    Ttestparam(49.9, True),
    Ttestparam(80.0, False),
]


@pytest.mark.parametrize(
    "testparam", _TESTPARAMS, ids=lambda testparam: testparam.pytest_id
)
def test_current_window(testparam: Ttestparam, rig: Rig) -> None:
    rig.driver.currents_a = [testparam.current_a]
    interactor = rig.interactor(
        DeviceType.IMX8MM_VAR_DART_NRT,
        probe=CurrentWindowProbe(low_a=0.03, high_a=50.0),
    )

    assert interactor.probe_dut_power().is_on == testparam.expected_on
