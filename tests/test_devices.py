from __future__ import annotations

import dataclasses

import pytest
from conftest import FakeDriver

from testbot.lib_devices import (
    DICT_DEVICE_SPECS,
    DeviceType,
    device_interactor_factory,
    device_spec,
    select_device_type,
)
from testbot.lib_jetson_tx2 import Tx2PowerControl
from testbot.util_baseclasses import UnsupportedFormatError
from testbot.util_constants import (
    ENV_BALENA_FIN_V09,
    ENV_E2E_DUT_TYPE,
    ENV_TESTBOT_DUT_TYPE,
)


@dataclasses.dataclass
class Ttestparam:
    dut_type: DeviceType
    expected_voltage: float

    @property
    def pytest_id(self) -> str:
        return self.dut_type.value


_TESTPARAMS = [
    Ttestparam(DeviceType.RASPBERRYPI, 5.0),
    Ttestparam(DeviceType.RT_RPI_300, 12.0),
    Ttestparam(DeviceType.RPI3_NEURON, 24.0),
    Ttestparam(DeviceType.RPI4_NEURON, 24.0),
    Ttestparam(DeviceType.JETSON_NANO, 5.0),
    Ttestparam(DeviceType.CM4_IOBOARD, 12.0),
    Ttestparam(DeviceType.ROCKPRO64, 12.0),
    Ttestparam(DeviceType.BEAGLEBONE, 5.0),
    Ttestparam(DeviceType.IMX8MM_EBCRS_A2, 12.0),
    Ttestparam(DeviceType.ROCKPI_4B_RK3399, 12.0),
    Ttestparam(DeviceType.CORAL_DEV, 5.0),
    Ttestparam(DeviceType.IMX8MM_VAR_DART_NRT, 5.0),
    Ttestparam(DeviceType.JETSON_TX2, 5.0),
    Ttestparam(DeviceType.FINCM3, 12.0),
    Ttestparam(DeviceType.FINCM3_V09, 12.0),
    Ttestparam(DeviceType.REVPI_CORE_3, 12.0),
    Ttestparam(DeviceType.REVPI_CONNECT, 12.0),
    Ttestparam(DeviceType.RPI_243390, 5.0),
    Ttestparam(DeviceType.INTEL_NUC, 12.0),
]


def test_catalog_complete() -> None:
    assert {t.dut_type for t in _TESTPARAMS} == set(DeviceType)
    assert set(DICT_DEVICE_SPECS) == set(DeviceType)


@pytest.mark.parametrize(
    "testparam", _TESTPARAMS, ids=lambda testparam: testparam.pytest_id
)
def test_power_voltage(testparam: Ttestparam) -> None:
    interactor = device_interactor_factory(
        driver=FakeDriver(), dut_type=testparam.dut_type.value
    )
    assert interactor.device_type == testparam.dut_type
    assert interactor.power_voltage == testparam.expected_voltage

    with pytest.raises(AttributeError):
        interactor.power_voltage = 1.0  # type: ignore[misc]
    assert interactor.power_voltage == testparam.expected_voltage


@pytest.mark.parametrize("dut_type", list(DeviceType), ids=lambda t: t.value)
def test_zip_rejected_without_touching_hardware(dut_type: DeviceType) -> None:
    driver = FakeDriver()
    interactor = device_interactor_factory(driver=driver, dut_type=dut_type)

    with pytest.raises(UnsupportedFormatError):
        interactor.flash_from_file("balena-image.zip")

    assert driver.calls == []
    assert driver.active_label is None


def test_unknown_dut_type() -> None:
    with pytest.raises(ValueError, match="raspberrypi"):
        DeviceType.factory("commodore64")
    with pytest.raises(ValueError):
        device_spec("commodore64")

    assert select_device_type("raspberrypi4-64") == DeviceType.RASPBERRYPI
    interactor = device_interactor_factory(driver=FakeDriver(), dut_type="commodore64")
    assert interactor.device_type == DeviceType.RASPBERRYPI


def test_strategies_shared() -> None:
    fin_v09 = DICT_DEVICE_SPECS[DeviceType.FINCM3_V09]
    for dut_type in (DeviceType.REVPI_CORE_3, DeviceType.REVPI_CONNECT):
        assert DICT_DEVICE_SPECS[dut_type].flash_strategy is fin_v09.flash_strategy
    assert (
        DICT_DEVICE_SPECS[DeviceType.FINCM3].flash_strategy
        is not fin_v09.flash_strategy
    )


def test_power_control_per_interactor() -> None:
    driver = FakeDriver()
    a = device_interactor_factory(driver=driver, dut_type=DeviceType.JETSON_TX2)
    b = device_interactor_factory(driver=driver, dut_type=DeviceType.JETSON_TX2)
    assert isinstance(a.power_control, Tx2PowerControl)
    assert a.power_control is not b.power_control


@dataclasses.dataclass
class TtestparamEnv:
    label: str
    env: dict[str, str]
    expected: DeviceType

    @property
    def pytest_id(self) -> str:
        return self.label


_TESTPARAMS_ENV = [
    TtestparamEnv("default", {}, DeviceType.RASPBERRYPI),
    TtestparamEnv("testbot", {ENV_TESTBOT_DUT_TYPE: "beaglebone"}, DeviceType.BEAGLEBONE),
    TtestparamEnv("e2e", {ENV_E2E_DUT_TYPE: "coral-dev"}, DeviceType.CORAL_DEV),
    TtestparamEnv(
        "testbot-before-e2e",
        {ENV_TESTBOT_DUT_TYPE: "rockpro64", ENV_E2E_DUT_TYPE: "coral-dev"},
        DeviceType.ROCKPRO64,
    ),
    TtestparamEnv(
        "unknown", {ENV_TESTBOT_DUT_TYPE: "raspberrypi3"}, DeviceType.RASPBERRYPI
    ),
    TtestparamEnv(
        "unknown-e2e", {ENV_E2E_DUT_TYPE: "raspberrypi4-64"}, DeviceType.RASPBERRYPI
    ),
    TtestparamEnv("fincm3", {ENV_TESTBOT_DUT_TYPE: "fincm3"}, DeviceType.FINCM3),
    TtestparamEnv(
        "fincm3-v09",
        {ENV_TESTBOT_DUT_TYPE: "fincm3", ENV_BALENA_FIN_V09: "true"},
        DeviceType.FINCM3_V09,
    ),
    TtestparamEnv(
        "v09-only-for-fincm3",
        {ENV_TESTBOT_DUT_TYPE: "revpi-core-3", ENV_BALENA_FIN_V09: "true"},
        DeviceType.REVPI_CORE_3,
    ),
]


@pytest.mark.parametrize(
    "testparam", _TESTPARAMS_ENV, ids=lambda testparam: testparam.pytest_id
)
def test_select_device_type(
    testparam: TtestparamEnv, monkeypatch: pytest.MonkeyPatch
) -> None:
    for env in (ENV_TESTBOT_DUT_TYPE, ENV_E2E_DUT_TYPE, ENV_BALENA_FIN_V09):
        monkeypatch.delenv(env, raising=False)
    for env, value in testparam.env.items():
        monkeypatch.setenv(env, value)

    assert select_device_type() == testparam.expected
    interactor = device_interactor_factory(driver=FakeDriver())
    assert interactor.device_type == testparam.expected
