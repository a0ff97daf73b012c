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
"""units.yaml definition and parsing logic."""


from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, List

import yaml
from pydantic import Field, model_validator

from abupdater.configs._common import BaseFixedConfig
from abupdater_common._typing import StrOrPath

logger = logging.getLogger(__name__)

DEFAULT_BACKUP_SUFFIX = ".old"


class ManagedUnit(BaseFixedConfig):
    """An application managed by the process manager.

    Attributes:
        name: the unit name known to the process manager.
        binary_path: where the unit's binary is installed.
        backup_path: where the previous binary is kept during an update transaction,
            default to <binary_path>.old.
        mirror_to_standby: whether to also install the new binary into the standby slot
            after a successful update. The agent itself lives in the data partition
            and must not be mirrored.
    """

    name: str
    binary_path: str
    backup_path: str = ""
    mirror_to_standby: bool = True

    @model_validator(mode="before")
    @classmethod
    def _default_backup_path(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("backup_path"):
            data = {
                **data,
                "backup_path": f"{data.get('binary_path', '')}{DEFAULT_BACKUP_SUFFIX}",
            }
        return data


class UnitsInfo(BaseFixedConfig):
    """units.yaml configuration.

    Attributes:
        format_version: the units.yaml scheme version, current is 1.
        units: a list of ManagedUnit definitions.
    """

    format_version: int = 1
    units: List[ManagedUnit] = Field(default_factory=list)

    def get_unit(self, name: str, *, app_bin_dir: StrOrPath) -> ManagedUnit:
        """Get the unit definition of <name>.

        Units not listed in units.yaml get the default layout, with
            binary installed at <app_bin_dir>/<name>.
        """
        for _unit in self.units:
            if _unit.name == name:
                return _unit
        return ManagedUnit(name=name, binary_path=os.path.join(app_bin_dir, name))


DEFAULT_UNITS_INFO = UnitsInfo()


def parse_units_info(units_info_file: StrOrPath) -> UnitsInfo:
    try:
        _raw_yaml_str = Path(units_info_file).read_text()
    except FileNotFoundError as e:
        logger.info(f"{units_info_file=} not found: {e!r}, use default units_info")
        return DEFAULT_UNITS_INFO

    try:
        loaded_units_info = yaml.safe_load(_raw_yaml_str)
        assert isinstance(loaded_units_info, dict), "not a valid yaml file"
        return UnitsInfo.model_validate(loaded_units_info)
    except Exception as e:
        logger.warning(f"{units_info_file=} is invalid: {e!r}\n{_raw_yaml_str=}")
        logger.warning(f"use default units_info: {DEFAULT_UNITS_INFO}")
        return DEFAULT_UNITS_INFO
