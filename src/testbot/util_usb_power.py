from __future__ import annotations

import logging
import subprocess

from .util_constants import USB_HUB_LOCATION, USB_HUB_PORT_DUT
from .util_subprocess import SubprocessExitCodeException, subprocess_run

logger = logging.getLogger(__file__)

FILENAME_UHUBCTL = "uhubctl"


class UsbHubPower:
    """
    Switches the power of one port of the testbot usb hub.

    Failures are logged but never raised: A compute module
    which does not power cycle will be detected by the udev timeouts.
    """

    def __init__(
        self,
        location: str = USB_HUB_LOCATION,
        port: int = USB_HUB_PORT_DUT,
    ) -> None:
        assert isinstance(location, str)
        assert isinstance(port, int)
        self.location = location
        self.port = port

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(location={self.location}, port={self.port})"

    def args(self, on: bool) -> list[str]:
        return [
            FILENAME_UHUBCTL,
            "-r",
            "1000",
            "-a",
            "on" if on else "off",
            "-p",
            str(self.port),
            "-l",
            self.location,
        ]

    def set_power(self, on: bool) -> bool:
        """
        Return False if uhubctl failed.
        """
        assert isinstance(on, bool)
        logger.info(f"Toggling USB {'on' if on else 'off'}")
        try:
            subprocess_run(args=self.args(on=on), timeout_s=30.0)
        except (
            SubprocessExitCodeException,
            subprocess.TimeoutExpired,
            OSError,
        ) as e:
            logger.warning(f"{self!r}: Failed. Check that uhubctl is available: {e!r}")
            return False
        return True
