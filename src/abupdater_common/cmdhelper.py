# Copyright 2022 TIER IV, INC. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Thin wrappers over systemctl and reboot.

Functions with <raise_exception> re-raise the CalledProcessError of a failed
    call when it is True, otherwise the failure is only logged.
"""


from __future__ import annotations

import logging
import subprocess
import sys
from typing import NoReturn, Optional

from abupdater_common.common import subprocess_call, subprocess_run_wrapper

logger = logging.getLogger(__name__)


def _unit_name(unit: str) -> str:
    """Units without a type suffix are services."""
    return unit if "." in unit else f"{unit}.service"


def _systemctl(*args: str) -> list[str]:
    return ["systemctl", *args]


def systemctl_unit_exists(
    unit: str, *, timeout: Optional[float] = None
) -> bool:  # pragma: no cover
    """`systemctl cat -- <unit>` succeeds only for units systemd can load."""
    res = subprocess_run_wrapper(
        _systemctl("cat", "--", _unit_name(unit)),
        check=False,
        check_output=True,
        timeout=timeout,
    )
    return res.returncode == 0


def systemctl_stop(
    unit: str, *, raise_exception: bool = True, timeout: Optional[float] = None
) -> None:  # pragma: no cover
    subprocess_call(
        _systemctl("stop", _unit_name(unit)),
        raise_exception=raise_exception,
        timeout=timeout,
    )


def systemctl_start(
    unit: str, *, raise_exception: bool = True, timeout: Optional[float] = None
) -> None:  # pragma: no cover
    subprocess_call(
        _systemctl("start", _unit_name(unit)),
        raise_exception=raise_exception,
        timeout=timeout,
    )


def systemctl_is_active(
    unit: str, *, timeout: Optional[float] = None
) -> bool:  # pragma: no cover
    """`systemctl is-active --quiet <unit>`, the result is only the return code.

    A timed out check is treated as inactive.
    """
    try:
        res = subprocess_run_wrapper(
            _systemctl("is-active", "--quiet", _unit_name(unit)),
            check=False,
            check_output=False,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        logger.warning(f"is-active check for {unit} timed out")
        return False
    return res.returncode == 0


def reboot() -> NoReturn:  # pragma: no cover
    """Reboot the system and exit abupdater.

    Raises:
        CalledProcessError if the reboot command fails.
    """
    logger.warning("rebooting the system now")
    subprocess_call(["reboot"], raise_exception=True)
    sys.exit(0)
