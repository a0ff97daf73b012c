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
"""Common shared utils, only used by abupdater package."""


from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path
from types import TracebackType
from typing import Optional

from typing_extensions import Self

from abupdater import errors as ab_errors
from abupdater_common._typing import StrOrPath

logger = logging.getLogger(__name__)


class UpdateLease:
    """Exclusive lease for one update or boot verification transaction.

    The lease is an flock on the lock file, which also records the pid of the holder.
        The kernel drops the flock when the holder exits, so a lock file left by
        a crashed process is simply retaken.

    Raises:
        Busy if the lease is held by another running transaction.
    """

    def __init__(self, lock_fpath: StrOrPath) -> None:
        self.lock_fpath = Path(lock_fpath)
        self._fd: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        if self.held:
            raise ab_errors.Busy("lease is already held", module=__name__)
        self.lock_fpath.parent.mkdir(exist_ok=True, parents=True)

        fd = os.open(self.lock_fpath, os.O_CREAT | os.O_RDWR, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            pid = os.pread(fd, 32, 0).decode(errors="replace").strip()
            os.close(fd)
            _err_msg = f"update lease is held by {pid=}"
            logger.error(_err_msg)
            raise ab_errors.Busy(_err_msg, module=__name__) from None

        _prev_pid = os.pread(fd, 32, 0).decode(errors="replace").strip()
        if _prev_pid:
            logger.warning(f"take over dangling update lease({_prev_pid=})")
        os.ftruncate(fd, 0)
        os.pwrite(fd, f"{os.getpid()}".encode(), 0)
        os.fsync(fd)

        self._fd = fd
        logger.debug(f"update lease acquired: {self.lock_fpath}")

    def release(self) -> None:
        if self._fd is None:
            return
        # the lock file is never removed, only the flock is dropped
        os.ftruncate(self._fd, 0)
        fcntl.flock(self._fd, fcntl.LOCK_UN)
        os.close(self._fd)
        self._fd = None
        logger.debug(f"update lease released: {self.lock_fpath}")

    def __enter__(self) -> Self:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.release()
