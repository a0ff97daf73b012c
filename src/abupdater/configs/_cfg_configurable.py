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
"""Runtime configurable configs for abupdater."""

from __future__ import annotations

import json
import logging
from typing import Dict, Literal, Tuple

from pydantic import BaseModel, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, SettingsError

from abupdater_common._typing import NetworkPort

logger = logging.getLogger(__name__)

ENV_PREFIX = "ABUPDATER_"
LOG_LEVEL_LITERAL = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class _LoggingSettings(BaseModel):
    DEFAULT_LOG_LEVEL: LOG_LEVEL_LITERAL = "INFO"
    LOG_LEVEL_TABLE: Dict[str, LOG_LEVEL_LITERAL] = {
        "abupdater": "INFO",
        "abupdater_common": "INFO",
    }

    @property
    def LOG_FORMAT(self) -> str:
        """One JSON object per log line."""
        log_fields = {
            "timestamp": "%(asctime)s",
            "level": "%(levelname)s",
            "logger": "%(name)s",
            "func": "%(funcName)s",
            "line": "%(lineno)d",
            "message": "%(message)s",
        }
        return json.dumps(log_fields, separators=(",", ":"))


class _StatusReportSettings(BaseModel):
    # the local endpoint of the agent that receives action status
    STATUS_REPORT_HOST: str = "127.0.0.1"
    STATUS_REPORT_PORT: NetworkPort = 5555

    STATUS_REPORT_RETRY: int = 3
    STATUS_REPORT_BACKOFF_FACTOR: float = 0.5  # seconds
    STATUS_REPORT_BACKOFF_MAX: float = 4  # seconds
    STATUS_REPORT_CONNECT_TIMEOUT: float = 3  # seconds
    # hard limit on the time spent on delivering one status
    STATUS_REPORT_DEADLINE: float = 15  # seconds


class _UnitControlSettings(BaseModel):
    SYSTEMCTL_TIMEOUT: int = 90  # seconds

    # polling is-active after the unit is (re)started
    UNIT_ACTIVE_CHECK_RETRY: int = 5
    UNIT_ACTIVE_CHECK_BACKOFF_FACTOR: float = 0.5  # seconds
    UNIT_ACTIVE_CHECK_BACKOFF_MAX: float = 5  # seconds
    UNIT_ACTIVE_CHECK_DEADLINE: float = 60  # seconds

    # directory holding the binaries of units not listed in units.yaml
    APP_BIN_DIR: str = "/usr/local/bin"


class _SlotSettings(BaseModel):
    SLOT_IDS: Tuple[str, str] = ("A", "B")
    # root= value in kernel cmdline -> slot id
    ROOT_DEV_SLOT_MAP: Dict[str, str] = {
        "/dev/mmcblk0p2": "A",
        "/dev/mmcblk0p3": "B",
    }

    # the update action target_unit that requests an OS slot update
    OS_UPDATE_UNIT: str = "rootfs"

    # consecutive failed boots into a slot before staging into it is refused
    MAX_BOOT_ROLLBACK_ATTEMPTS: int = 3

    PAYLOAD_EXTRACT_TIMEOUT: int = 30 * 60  # seconds

    @field_validator("SLOT_IDS")
    @classmethod
    def _check_slot_ids(cls, value: Tuple[str, str]) -> Tuple[str, str]:
        if value[0] == value[1]:
            raise ValueError(f"two distinct slot ids are required: {value=}")
        return value


class ConfigurableSettings(
    _LoggingSettings, _StatusReportSettings, _UnitControlSettings, _SlotSettings
):
    """abupdater runtime configuration settings."""


def set_configs() -> ConfigurableSettings:
    """Load settings from ABUPDATER_* environment variables.

    Invalid values are logged and the defaults are used instead.
    """

    class _EnvSettings(ConfigurableSettings, BaseSettings):
        model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, validate_default=True)

    try:
        _loaded = _EnvSettings()
    except (ValidationError, SettingsError) as e:
        logger.error(f"invalid abupdater settings from env, use defaults: {e!r}")
        return ConfigurableSettings()
    return ConfigurableSettings.model_construct(**_loaded.model_dump())
