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
"""Logging helpers for noisy code paths, like connection retry loops."""


from __future__ import annotations

import logging
import time


class BurstSuppressFilter(logging.Filter):
    """Let at most <burst_max> records pass in each round of <burst_round_length> seconds.

    The first suppressed record of a round, and the end of a round with suppressed
        records, are announced by a warning from the <upper_logger_name> logger.
    """

    def __init__(
        self,
        name: str,
        burst_max: int,
        burst_round_length: int,
        upper_logger_name: str | None = None,
    ) -> None:
        super().__init__(name)
        self._upper_logger = logging.getLogger(upper_logger_name)
        self._burst_max = burst_max
        self._round_length = burst_round_length

        self._round_end = 0.0
        self._passed = 0
        self._dropped = 0

    def _new_round(self, now: float) -> None:
        if self._dropped:
            self._upper_logger.warning(
                f"{self._dropped} lines of logging suppressed for logger {self.name} "
                f"since {int(self._round_end - self._round_length)}"
            )
        self._round_end = now + self._round_length
        self._passed = self._dropped = 0

    def filter(self, record: logging.LogRecord) -> bool:
        if (now := time.time()) > self._round_end:
            self._new_round(now)

        if self._passed < self._burst_max:
            self._passed += 1
            return True

        if self._dropped == 0:
            self._upper_logger.warning(
                f"logging suppressed for {self.name} until {int(self._round_end)}: "
                f"exceed burst_limit={self._burst_max}"
            )
        self._dropped += 1
        return False


def get_burst_suppressed_logger(
    _logger: logging.Logger | str,
    *,
    upper_logger_name: str | None = None,
    burst_max: int = 6,
    burst_round_length: int = 30,
) -> logging.Logger:
    """Attach a BurstSuppressFilter to the logger <_logger> and return it.

    <upper_logger_name> defaults to the top-level package logger of <_logger>.
    """
    if isinstance(_logger, str):
        _logger = logging.getLogger(_logger)
    _logger.addFilter(
        BurstSuppressFilter(
            _logger.name,
            burst_max=burst_max,
            burst_round_length=burst_round_length,
            upper_logger_name=upper_logger_name or _logger.name.partition(".")[0],
        )
    )
    return _logger
