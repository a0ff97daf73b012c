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
"""Retry and subprocess helpers shared between modules."""


from __future__ import annotations

import logging
import shlex
import subprocess
import time
from typing import Callable, Optional, Sequence, Union

logger = logging.getLogger(__name__)

Command = Union[str, Sequence[str]]


def get_backoff(attempt: int, factor: float, backoff_max: float) -> float:
    """Exponential backoff before retrying after the <attempt>th(from 1) failure."""
    return min(backoff_max, factor * 2 ** (attempt - 1))


def poll_with_backoff(
    check: Callable[[], bool],
    *,
    retry: int,
    backoff_factor: float,
    backoff_max: float,
    deadline: Optional[float] = None,
) -> bool:
    """Call <check> until it returns True, at most <retry>+1 times.

    Between two calls, wait with exponential backoff. If <deadline>(in seconds)
        is set, stop polling once the time spent exceeds it.

    Returns:
        The result of the last <check> call.
    """
    _start = time.monotonic()
    attempt = 0
    while True:
        attempt += 1
        if check():
            return True
        if attempt > retry:
            return False
        if deadline is not None and time.monotonic() - _start >= deadline:
            logger.warning(f"polling deadline {deadline}s exceeded")
            return False
        time.sleep(get_backoff(attempt, backoff_factor, backoff_max))


def subprocess_run_wrapper(
    cmd: Command,
    *,
    check: bool,
    check_output: bool,
    timeout: Optional[float] = None,
) -> subprocess.CompletedProcess[bytes]:
    """Run <cmd>, stderr is always captured.

    Args:
        cmd: the command, a str will be split with shlex.
        check: raise CalledProcessError on non-zero return code.
        check_output: capture stdout.
        timeout: seconds before the command is killed and TimeoutExpired is raised.
    """
    if isinstance(cmd, str):
        cmd = shlex.split(cmd)

    return subprocess.run(
        list(cmd),
        check=check,
        stderr=subprocess.PIPE,
        stdout=subprocess.PIPE if check_output else None,
        timeout=timeout,
    )


def subprocess_call(
    cmd: Command,
    *,
    raise_exception: bool = False,
    timeout: Optional[float] = None,
) -> None:
    """Run <cmd>, a failed call is only logged unless <raise_exception> is True.

    NOTE: TimeoutExpired is always raised.
    """
    try:
        subprocess_run_wrapper(cmd, check=True, check_output=False, timeout=timeout)
    except subprocess.CalledProcessError as e:
        logger.debug(
            f"{cmd=} failed with {e.returncode=}, stderr: {e.stderr.decode(errors='replace')}"
        )
        if raise_exception:
            raise
