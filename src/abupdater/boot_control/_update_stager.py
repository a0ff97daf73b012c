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
"""Stage an OS payload into the standby slot and request booting into it."""


from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Optional

from abupdater import errors as ab_errors
from abupdater._types import PendingAction
from abupdater._utils import UpdateLease
from abupdater_common import cmdhelper
from abupdater_common._typing import StrOrPath
from abupdater_common.common import subprocess_call

from ._rpi_boot import BootSelectorError
from ._slot_state_store import SlotStateStore
from .protocol import BootSelectorProtocol

logger = logging.getLogger(__name__)


def _cleanup_dir_contents(dpath: Path) -> None:
    """Remove everything under <dpath>, but keep <dpath> itself(it might be a mount point)."""
    for _entry in dpath.iterdir():
        if _entry.is_dir() and not _entry.is_symlink():
            shutil.rmtree(_entry)
        else:
            _entry.unlink()


class UpdateStager:
    """Write a payload to the standby slot, then flip the boot target to it.

    The intended-next marker is only set after the payload is fully written and
        synced to disk, and the boot target is only switched after the marker is
        persisted. A failure at any step before the switch leaves the boot target
        and the markers untouched.
    """

    def __init__(
        self,
        *,
        store: SlotStateStore,
        selector: BootSelectorProtocol,
        standby_slot_mp: StrOrPath,
        lease: UpdateLease,
        reboot_func: Callable[[], object] = cmdhelper.reboot,
        max_rollback_attempts: int = 3,
        extract_timeout: Optional[float] = None,
    ) -> None:
        self._store = store
        self._selector = selector
        self._standby_slot_mp = Path(standby_slot_mp)
        self._lease = lease
        self._reboot = reboot_func
        self._max_rollback_attempts = max_rollback_attempts
        self._extract_timeout = extract_timeout

    def _check_target(self, target_slot: str, *, force: bool) -> bool:
        """Returns True if the failed boots counter of <target_slot> is to be reset."""
        try:
            self._store.slots.validate(target_slot)
        except ValueError as e:
            raise ab_errors.InvalidTargetSlot(str(e), module=__name__) from e

        try:
            current_slot = self._selector.read_current_root()
        except BootSelectorError as e:
            raise ab_errors.BootControlError(
                f"failed to detect the booted slot: {e!r}", module=__name__
            ) from e

        if target_slot == current_slot:
            _err_msg = f"{target_slot=} is the currently booted slot, refuse to stage"
            logger.error(_err_msg)
            raise ab_errors.InvalidTargetSlot(_err_msg, module=__name__)

        _failed = self._store.read_markers().get_failed_attempts(target_slot)
        if _failed < self._max_rollback_attempts:
            return False

        if not force:
            _err_msg = (
                f"{target_slot=} has been rolled back {_failed} times, "
                f"exceed limit {self._max_rollback_attempts}"
            )
            logger.error(_err_msg)
            raise ab_errors.RollbackLimitExceeded(_err_msg, module=__name__)
        logger.warning(f"force staging: will reset failed boot attempts of {target_slot=}")
        return True

    def _write_payload(self, payload_location: Path) -> None:
        if not payload_location.is_file():
            raise ab_errors.PayloadStageFailure(
                f"payload {payload_location} not found", module=__name__
            )
        if not self._standby_slot_mp.is_dir():
            raise ab_errors.PayloadStageFailure(
                f"standby slot is not mounted at {self._standby_slot_mp}",
                module=__name__,
            )

        logger.info(f"write {payload_location} to {self._standby_slot_mp} ...")
        try:
            _cleanup_dir_contents(self._standby_slot_mp)
            subprocess_call(
                [
                    "tar",
                    "-xpf",
                    str(payload_location),
                    "-C",
                    str(self._standby_slot_mp),
                ],
                raise_exception=True,
                timeout=self._extract_timeout,
            )
            os.sync()
        except (OSError, subprocess.SubprocessError) as e:
            _err_msg = f"failed to write payload into standby slot: {e!r}"
            logger.error(_err_msg)
            raise ab_errors.PayloadStageFailure(_err_msg, module=__name__) from e

    def _switch_boot(
        self, target_slot: str, *, action_id: str, reset_attempts: bool
    ) -> None:
        with self._store.transaction() as state:
            _prev_attempts = state.get_failed_attempts(target_slot)

            # new content in the slot has not been booted yet
            state.reset_health(target_slot)
            if reset_attempts:
                state.reset_failed_attempts(target_slot)
            state.set_intended_next(target_slot)
            state.set_pending_download(target_slot)
            state.pending_action = PendingAction(
                action_id=action_id, target_slot=target_slot
            )

        try:
            self._selector.request_next_root(target_slot)
        except BootSelectorError as e:
            logger.error(f"failed to switch boot to {target_slot}, revert markers")
            with self._store.transaction() as state:
                # the slot content is already replaced, its health stays unverified
                if _prev_attempts:
                    state.failed_boot_attempts[target_slot] = _prev_attempts
                state.clear_intended_next(target_slot)
                state.clear_pending_download(target_slot)
                state.pending_action = None
            raise ab_errors.BootControlError(
                f"failed to switch boot to {target_slot}: {e!r}", module=__name__
            ) from e

    def stage(
        self,
        target_slot: str,
        payload_location: StrOrPath,
        *,
        action_id: str,
        force: bool = False,
    ) -> None:
        """Stage <payload_location> into <target_slot> and reboot into it.

        Args:
            target_slot: the standby slot, must not be the currently booted one.
            payload_location: a tar archive of the new root filesystem.
            action_id: id of the update action, reported after the next boot.
            force: retry a slot that reached the rollback limit.

        Raises:
            InvalidTargetSlot, RollbackLimitExceeded, Busy, PayloadStageFailure,
                MarkerWriteFailure, BootControlError.
        """
        _reset_attempts = self._check_target(target_slot, force=force)

        with self._lease:
            self._write_payload(Path(payload_location))
            self._switch_boot(
                target_slot, action_id=action_id, reset_attempts=_reset_attempts
            )
            logger.info(f"{target_slot=} staged, reboot to apply")

        try:
            self._reboot()
        except subprocess.CalledProcessError as e:
            _err_msg = f"{target_slot=} staged, but failed to reboot: {e!r}"
            logger.error(_err_msg)
            raise ab_errors.BootControlError(_err_msg, module=__name__) from e
