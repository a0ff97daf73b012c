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
"""Load abupdater configs and units_info."""

from typing import TYPE_CHECKING, Any

from abupdater.configs._cfg_configurable import ConfigurableSettings, set_configs
from abupdater.configs._cfg_consts import Consts
from abupdater.configs._units_info import ManagedUnit, UnitsInfo, parse_units_info

__all__ = [
    "ManagedUnit",
    "UnitsInfo",
    "units_info",
    "cfg",
]

cfg_configurable = set_configs()
cfg_consts = Consts()

if TYPE_CHECKING:

    class _ABUpdaterConfigs(ConfigurableSettings, Consts):
        """abupdater configs."""

else:

    class _ABUpdaterConfigs:

        def __getattribute__(self, name: str) -> Any:
            for _cfg in [cfg_consts, cfg_configurable]:
                try:
                    return getattr(_cfg, name)
                except AttributeError:
                    continue
            raise AttributeError(f"no such config field: {name=}")


cfg = _ABUpdaterConfigs()
units_info = parse_units_info(units_info_file=cfg.UNITS_INFO_FPATH)
