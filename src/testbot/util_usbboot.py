"""
A compute module in usbboot mode waits for its second stage bootloader over usb.

'rpiboot' (https://github.com/raspberrypi/usbboot) sends it. The module
then detaches and reattaches as a mass storage device.
"""

from __future__ import annotations

import logging
import pathlib
import subprocess

from .util_pyudev import UsbbootDrive
from .util_subprocess import SubprocessExitCodeException, subprocess_run

logger = logging.getLogger(__file__)

FILENAME_RPIBOOT = "rpiboot"


class UsbbootHandoff:
    """
    Failures are logged but never raised: The attempt fails
    and the compute module is power cycled again.
    """

    def __init__(self, timeout_s: float = 60.0) -> None:
        assert isinstance(timeout_s, float)
        self.timeout_s = timeout_s

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(timeout_s={self.timeout_s:0.0f}s)"

    def args(self, drive: UsbbootDrive) -> list[str]:
        """
        '-p': Only boot the module attached to this usb port, for example '1-1.4'.
        """
        assert isinstance(drive, UsbbootDrive)
        return [FILENAME_RPIBOOT, "-p", pathlib.Path(drive.sys_path).name]

    def boot(self, drive: UsbbootDrive) -> bool:
        """
        Return False if rpiboot failed.
        """
        logger.info(f"Sending the usbboot bootloader to {drive}")
        try:
            subprocess_run(args=self.args(drive=drive), timeout_s=self.timeout_s)
        except (
            SubprocessExitCodeException,
            subprocess.TimeoutExpired,
            OSError,
        ) as e:
            logger.warning(f"{self!r}: Failed. Check that rpiboot is available: {e!r}")
            return False
        return True
