from __future__ import annotations

import enum
import logging
import pathlib
from typing import Optional

import typer
import typing_extensions

from ..lib_devices import DICT_DEVICE_SPECS, device_spec, select_device_type
from ..util_constants import DIRECTORY_TESTBOT_IMAGES
from ..util_image import images_in_directory
from ..util_logging import init_logging
from ..util_probe import NetworkCarrierProbe
from ..util_pyudev import do_udev_monitor
from ..util_usb_power import UsbHubPower

# 'typer' does not work correctly with typing.Annotated
# Required is: typing_extensions.Annotated
TyperAnnotated = typing_extensions.Annotated

# mypy: disable-error-code="valid-type"

app = typer.Typer()


class TyperUsbPower(str, enum.Enum):
    """
    Used as command line argument (Typer)
    """

    ON = "on"
    OFF = "off"


_DutTypeAnnotation = TyperAnnotated[
    Optional[str],  # noqa: UP045
    typer.Option(
        help="Example: fincm3. Default: Environment variable TESTBOT_DUT_TYPE."
    ),
]

_DebugAnnotation = TyperAnnotated[
    bool,
    typer.Option(help="Log with level DEBUG."),
]


@app.command(help="Lists the supported DUT types.")
def devices() -> None:
    """ """
    for device_type, spec in DICT_DEVICE_SPECS.items():
        probe = spec.completion_probe
        print(f"{device_type.value}: {spec.power_voltage:0.0f}V")
        print(f"  doc: {spec.doc}")
        print(f"  power on: {spec.power_on.description}")
        print(f"  flash: {spec.flash_strategy.LABEL}")
        print(f"  probe: {'-' if probe is None else probe.LABEL}")


@app.command(help="Prints the DUT type selected by the environment variables.")
def resolve() -> None:
    """ """
    print(select_device_type())


@app.command(help="Lists the images available for flashing.")
def images(directory: pathlib.Path = DIRECTORY_TESTBOT_IMAGES) -> None:
    """ """
    image_sources = images_in_directory(directory)
    if len(image_sources) == 0:
        print(f"No images found in {directory}")
        return
    for image_source in image_sources:
        compressed = " (gzip)" if image_source.is_gzip else ""
        print(f"{image_source.filename.name}{compressed}")


@app.command(help="Monitors usbboot and block device events. This is helpful for debugging.")
def udev(debug: _DebugAnnotation = False) -> None:
    """ """
    init_logging(logging.DEBUG if debug else None)
    do_udev_monitor()


@app.command(help="Reads the power state of the DUT from the network carrier.")
def probe(dut_type: _DutTypeAnnotation = None, debug: _DebugAnnotation = False) -> None:
    """ """
    init_logging(logging.DEBUG if debug else None)
    spec = device_spec(select_device_type(dut_type))
    completion_probe = spec.completion_probe
    if not isinstance(completion_probe, NetworkCarrierProbe):
        label = "-" if completion_probe is None else completion_probe.LABEL
        print(f"{spec.device_type}: Probe '{label}' requires the hardware driver")
        raise typer.Exit(code=1)
    result = completion_probe.check()
    print(f"{spec.device_type}: DUT is {result.text}")


@app.command(help="Power the usb hub port of the DUT.")
def usb_power(power: TyperUsbPower, debug: _DebugAnnotation = False) -> None:
    """ """
    init_logging(logging.DEBUG if debug else None)
    usb_hub_power = UsbHubPower()
    if not usb_hub_power.set_power(on=power == TyperUsbPower.ON):
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
