import os
import pathlib

ENV_TESTBOT_DUT_TYPE = "TESTBOT_DUT_TYPE"
ENV_E2E_DUT_TYPE = "E2E_DUT_TYPE"
"""
Deprecated: Only read if TESTBOT_DUT_TYPE is not set.
"""
ENV_BALENA_FIN_V09 = "BALENA_FIN_V09"
"""
'true': A 'fincm3' is a balenaFin v1.0.0 which requires a different usb boot power sequence.
"""
DUT_TYPE_DEFAULT = "raspberrypi"

ENV_TESTBOT_IMAGES = "TESTBOT_IMAGES"
try:
    DIRECTORY_TESTBOT_IMAGES = pathlib.Path(os.environ[ENV_TESTBOT_IMAGES])
except KeyError:
    DIRECTORY_TESTBOT_IMAGES = pathlib.Path.home() / "testbot_images"

DIRECTORY_SYSFS = pathlib.Path("/sys")

NETWORK_INTERFACE_DUT = "eth1"
"""
The ethernet interface of the testbot which is cabled to the DUT.
"""

USB_HUB_LOCATION = "1-1"
USB_HUB_PORT_DUT = 4
"""
uhubctl: The hub port the compute module is connected to.
"""

SETTLE_MUX_MS = 1000
"""
Wait 1s after toggling the mux, to ensure that the mux is toggled before powering on.
"""


def resolve_dut_type() -> str:
    """
    Example: TESTBOT_DUT_TYPE=fincm3
    """
    for env in (ENV_TESTBOT_DUT_TYPE, ENV_E2E_DUT_TYPE):
        dut_type = os.environ.get(env, None)
        if dut_type:
            return dut_type
    return DUT_TYPE_DEFAULT


def is_balena_fin_v09() -> bool:
    return os.environ.get(ENV_BALENA_FIN_V09, "") == "true"
