"""
The catalog of the supported DUT types.

Each DUT type is a DeviceSpec: The strategies are shared between the DUT families.
"""

from __future__ import annotations

import enum
import logging

from .lib_compute_module import (
    ComputeModuleFlash,
    ComputeModulePowerOn,
    PowerOnFlash,
    PowerOnFlashV09,
)
from .lib_device_interactor import (
    DeviceInteractor,
    DeviceSpec,
    DirectFlash,
    FlasherPowerOn,
    SdMuxPowerOn,
)
from .lib_flasher import FlasherCompletionWait, FlasherFlash
from .lib_hardware_driver import HardwareDriver
from .lib_intel_nuc import CurrentDrawCompletionWait, NucPowerOn
from .lib_jetson_tx2 import (
    Tx2CompletionWait,
    Tx2GpioProbe,
    Tx2PowerControl,
    Tx2PowerOn,
)
from .util_constants import is_balena_fin_v09, resolve_dut_type
from .util_probe import CurrentWindowProbe, NetworkCarrierProbe

logger = logging.getLogger(__file__)


class DeviceType(enum.StrEnum):
    RASPBERRYPI = "raspberrypi"
    RT_RPI_300 = "rt-rpi-300"
    RPI3_NEURON = "rpi3-neuron"
    RPI4_NEURON = "rpi4-neuron"
    JETSON_NANO = "jetson-nano"
    CM4_IOBOARD = "cm4-ioboard"
    ROCKPRO64 = "rockpro64"
    BEAGLEBONE = "beaglebone"
    IMX8MM_EBCRS_A2 = "imx8mm-ebcrs-a2"
    ROCKPI_4B_RK3399 = "rockpi-4b-rk3399"
    CORAL_DEV = "coral-dev"
    IMX8MM_VAR_DART_NRT = "imx8mm-var-dart-nrt"
    JETSON_TX2 = "jetson-tx2"
    FINCM3 = "fincm3"
    FINCM3_V09 = "fincm3-v09"
    REVPI_CORE_3 = "revpi-core-3"
    REVPI_CONNECT = "revpi-connect"
    RPI_243390 = "243390-rpi3"
    INTEL_NUC = "intel-nuc"

    @staticmethod
    def factory(dut_type: str) -> DeviceType:
        """
        Raise ValueError if 'dut_type' is not supported.
        """
        try:
            return DeviceType(dut_type)
        except ValueError as e:
            supported = ", ".join(t.value for t in DeviceType)
            raise ValueError(
                f"Unknown dut type '{dut_type}'! Supported: {supported}"
            ) from e


_SD_MUX_POWER_ON = SdMuxPowerOn()
_DIRECT_FLASH = DirectFlash()
_FLASHER_POWER_ON = FlasherPowerOn()
_FLASHER_FLASH = FlasherFlash()
_FLASHER_COMPLETION_WAIT = FlasherCompletionWait()
_CARRIER_PROBE = NetworkCarrierProbe()
_COMPUTE_MODULE_POWER_ON = ComputeModulePowerOn(settle_usb_off_s=1.0)

# balenaFin V09 and the Revolution Pi boards share the same usb power sequence
_POWER_ON_FLASH_V09 = PowerOnFlashV09(settle_usb_off_s=1.0)
_COMPUTE_MODULE_FLASH_V09 = ComputeModuleFlash(power_on_flash=_POWER_ON_FLASH_V09)


def _sd_mux(device_type: DeviceType, doc: str, power_voltage: float) -> DeviceSpec:
    return DeviceSpec(
        device_type=device_type,
        doc=doc,
        power_voltage=power_voltage,
        power_on=_SD_MUX_POWER_ON,
        flash_strategy=_DIRECT_FLASH,
    )


def _flasher(
    device_type: DeviceType,
    doc: str,
    power_voltage: float,
    completion_probe: CurrentWindowProbe | NetworkCarrierProbe = _CARRIER_PROBE,
) -> DeviceSpec:
    return DeviceSpec(
        device_type=device_type,
        doc=doc,
        power_voltage=power_voltage,
        power_on=_FLASHER_POWER_ON,
        flash_strategy=_FLASHER_FLASH,
        completion_wait=_FLASHER_COMPLETION_WAIT,
        completion_probe=completion_probe,
    )


def _compute_module(
    device_type: DeviceType, doc: str, flash_strategy: ComputeModuleFlash
) -> DeviceSpec:
    return DeviceSpec(
        device_type=device_type,
        doc=doc,
        power_voltage=12.0,
        power_on=_COMPUTE_MODULE_POWER_ON,
        flash_strategy=flash_strategy,
        completion_probe=_CARRIER_PROBE,
    )


_SPECS = (
    _sd_mux(DeviceType.RASPBERRYPI, "Raspberry Pi like devices", 5.0),
    _sd_mux(DeviceType.RT_RPI_300, "RT-RPI-300", 12.0),
    _sd_mux(DeviceType.RPI3_NEURON, "Raspberry Pi 3 Neuron", 24.0),
    _sd_mux(DeviceType.RPI4_NEURON, "Raspberry Pi 4 Neuron", 24.0),
    DeviceSpec(
        device_type=DeviceType.JETSON_NANO,
        doc="Jetson Nano: Boots from the SD card in the mux",
        power_voltage=5.0,
        power_on=SdMuxPowerOn(settle_before_power_s=5.0),
        flash_strategy=_DIRECT_FLASH,
    ),
    _sd_mux(DeviceType.CM4_IOBOARD, "Raspberry Pi CM4 IO Board", 12.0),
    _sd_mux(DeviceType.ROCKPRO64, "RockPro64", 12.0),
    _flasher(DeviceType.BEAGLEBONE, "BeagleBone: Boots the flasher from SD card", 5.0),
    _flasher(DeviceType.IMX8MM_EBCRS_A2, "iMX8MM EBCRS A2", 12.0),
    _flasher(DeviceType.ROCKPI_4B_RK3399, "Rock Pi 4B RK3399", 12.0),
    _flasher(DeviceType.CORAL_DEV, "Coral Dev Board", 5.0),
    _flasher(
        DeviceType.IMX8MM_VAR_DART_NRT,
        "iMX8MM VAR DART NRT: The carrier is not reliable, the current is measured instead",
        5.0,
        completion_probe=CurrentWindowProbe(low_a=0.03, high_a=50.0),
    ),
    DeviceSpec(
        device_type=DeviceType.JETSON_TX2,
        doc="Jetson TX2: Powered using a relay simulating the power button",
        power_voltage=5.0,
        power_on=Tx2PowerOn(),
        flash_strategy=_FLASHER_FLASH,
        completion_wait=Tx2CompletionWait(),
        completion_probe=Tx2GpioProbe(),
        diagnostic_probe=_CARRIER_PROBE,
        power_control_factory=Tx2PowerControl,
    ),
    _compute_module(
        DeviceType.FINCM3,
        "balenaFin v1.1.x",
        ComputeModuleFlash(power_on_flash=PowerOnFlash(settle_usb_off_s=2.0)),
    ),
    _compute_module(
        DeviceType.FINCM3_V09, "balenaFin v1.0.0", _COMPUTE_MODULE_FLASH_V09
    ),
    _compute_module(
        DeviceType.REVPI_CORE_3, "Revolution Pi Core 3", _COMPUTE_MODULE_FLASH_V09
    ),
    _compute_module(
        DeviceType.REVPI_CONNECT, "Revolution Pi Connect", _COMPUTE_MODULE_FLASH_V09
    ),
    DeviceSpec(
        device_type=DeviceType.RPI_243390,
        doc="243390-Rpi3: A compute module which takes longer to settle",
        power_voltage=5.0,
        power_on=ComputeModulePowerOn(settle_usb_off_s=8.0),
        flash_strategy=ComputeModuleFlash(
            power_on_flash=PowerOnFlashV09(settle_usb_off_s=1.0, settle_usb_on_s=5.0),
            settle_power_off_s=1.0,
            settle_before_flash_s=5.0,
        ),
        completion_probe=_CARRIER_PROBE,
    ),
    DeviceSpec(
        device_type=DeviceType.INTEL_NUC,
        doc="Intel NUC: Boots the flasher from usb media, powers down when provisioned",
        power_voltage=12.0,
        power_on=NucPowerOn(),
        flash_strategy=_DIRECT_FLASH,
        completion_wait=CurrentDrawCompletionWait(),
        completion_probe=CurrentWindowProbe(low_a=0.1),
    ),
)

DICT_DEVICE_SPECS: dict[DeviceType, DeviceSpec] = {
    spec.device_type: spec for spec in _SPECS
}
assert len(DICT_DEVICE_SPECS) == len(DeviceType)


def device_spec(dut_type: DeviceType | str) -> DeviceSpec:
    return DICT_DEVICE_SPECS[DeviceType.factory(dut_type)]


def select_device_type(dut_type: DeviceType | str | None = None) -> DeviceType:
    """
    'dut_type=None': Resolved from the environment variables.

    A 'fincm3' is a balenaFin V09 if the environment variable BALENA_FIN_V09 is set.
    Unknown dut types, for example 'raspberrypi4-64', are flashed as a Raspberry Pi.
    """
    if dut_type is None:
        dut_type = resolve_dut_type()
    try:
        device_type = DeviceType.factory(dut_type)
    except ValueError as e:
        logger.warning(f"{e} Falling back to '{DeviceType.RASPBERRYPI}'")
        device_type = DeviceType.RASPBERRYPI
    if device_type == DeviceType.FINCM3 and is_balena_fin_v09():
        logger.info("BALENA_FIN_V09 is set: Using the balenaFin v1.0.0 power sequence")
        return DeviceType.FINCM3_V09
    return device_type


def device_interactor_factory(
    driver: HardwareDriver,
    dut_type: DeviceType | str | None = None,
    **kwargs,
) -> DeviceInteractor:
    """
    Example 'dut_type': 'raspberrypi', 'fincm3'
    'kwargs' are passed to DeviceInteractor: config, timebase, cancel_token, ...
    """
    device_type = select_device_type(dut_type)
    spec = DICT_DEVICE_SPECS[device_type]
    interactor = DeviceInteractor(spec=spec, driver=driver, **kwargs)
    logger.info(f"Selected {interactor!r}: {spec.doc}")
    return interactor

