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
"""Process manager integration for managed application units."""


from __future__ import annotations

import logging
import subprocess
from abc import abstractmethod
from typing import Optional, Protocol

from abupdater_common import cmdhelper

logger = logging.getLogger(__name__)


class ProcessManagerError(Exception):
    """process manager call failed."""


class ProcessManagerProtocol(Protocol):

    @abstractmethod
    def exists(self, unit: str) -> bool:
        """Whether <unit> is known to the process manager."""

    @abstractmethod
    def stop(self, unit: str) -> None: ...

    @abstractmethod
    def start(self, unit: str) -> None: ...

    @abstractmethod
    def is_active(self, unit: str) -> bool: ...


class SystemdProcessManager(ProcessManagerProtocol):
    """ProcessManagerProtocol implementation backed by systemctl.

    Failed stop/start calls are raised as ProcessManagerError.
    """

    def __init__(self, *, timeout: Optional[float] = None) -> None:
        self._timeout = timeout

    def exists(self, unit: str) -> bool:
        try:
            return cmdhelper.systemctl_unit_exists(unit, timeout=self._timeout)
        except subprocess.SubprocessError as e:
            logger.warning(f"failed to query {unit=}: {e!r}")
            return False

    def stop(self, unit: str) -> None:
        try:
            cmdhelper.systemctl_stop(unit, timeout=self._timeout)
        except subprocess.SubprocessError as e:
            raise ProcessManagerError(f"failed to stop {unit=}: {e!r}") from e

    def start(self, unit: str) -> None:
        try:
            cmdhelper.systemctl_start(unit, timeout=self._timeout)
        except subprocess.SubprocessError as e:
            raise ProcessManagerError(f"failed to start {unit=}: {e!r}") from e

    def is_active(self, unit: str) -> bool:
        return cmdhelper.systemctl_is_active(unit, timeout=self._timeout)
