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
"""Configure the logging for abupdater."""


from __future__ import annotations

import logging

import abupdater
from abupdater.configs.cfg import cfg


def configure_logging() -> None:
    # NOTE: force to reload the basicConfig, this is for overriding setting
    #       when launching subprocess.
    # NOTE: for the root logger, set to CRITICAL to filter away logs from other
    #       external modules unless reached CRITICAL level.
    logging.basicConfig(level=logging.CRITICAL, format=cfg.LOG_FORMAT, force=True)
    # NOTE: set the <loglevel> to the abupdater package root logger
    _abupdater_logger = logging.getLogger(abupdater.__name__)
    _abupdater_logger.setLevel(cfg.DEFAULT_LOG_LEVEL)

    # configure each sub loggers
    for _module_name, _log_level in cfg.LOG_LEVEL_TABLE.items():
        _logger = logging.getLogger(_module_name)
        _logger.setLevel(_log_level)
