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
"""Update a single application binary with automatic rollback.

The transaction for one unit:
    stop -> backup(rename) -> install -> start -> wait for active
On success the backup is dropped, on failure the backup is renamed back,
    so that the previous binary is restored byte-for-byte.
"""


from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from abupdater import errors as ab_errors
from abupdater._types import ActionState, ActionStatus
from abupdater._utils import UpdateLease
from abupdater.configs import ManagedUnit, UnitsInfo
from abupdater.status_reporter import StatusReporter
from abupdater.unit_control import ProcessManagerError, ProcessManagerProtocol
from abupdater_common import replace_root
from abupdater_common._io import copyfile_atomic, rename_sync, unlink_sync
from abupdater_common._typing import StrOrPath
from abupdater_common.common import poll_with_backoff

logger = logging.getLogger(__name__)


class ApplicationRollbackController:

    def __init__(
        self,
        *,
        process_manager: ProcessManagerProtocol,
        reporter: StatusReporter,
        lease: UpdateLease,
        units_info: UnitsInfo,
        app_bin_dir: StrOrPath,
        standby_slot_mp: Optional[StrOrPath] = None,
        active_check_retry: int = 5,
        active_check_backoff_factor: float = 0.5,
        active_check_backoff_max: float = 5,
        active_check_deadline: Optional[float] = None,
    ) -> None:
        self._pm = process_manager
        self._reporter = reporter
        self._lease = lease
        self._units_info = units_info
        self._app_bin_dir = app_bin_dir
        self._standby_slot_mp = Path(standby_slot_mp) if standby_slot_mp else None

        self._active_check_retry = active_check_retry
        self._active_check_backoff_factor = active_check_backoff_factor
        self._active_check_backoff_max = active_check_backoff_max
        self._active_check_deadline = active_check_deadline

    def _wait_active(self, unit_name: str) -> bool:
        return poll_with_backoff(
            lambda: self._pm.is_active(unit_name),
            retry=self._active_check_retry,
            backoff_factor=self._active_check_backoff_factor,
            backoff_max=self._active_check_backoff_max,
            deadline=self._active_check_deadline,
        )

    def _lookup_unit(self, unit_name: str) -> ManagedUnit:
        if not self._pm.exists(unit_name):
            _err_msg = f"{unit_name=} is not known to the process manager"
            logger.error(_err_msg)
            raise ab_errors.UnitNotFound(_err_msg, module=__name__)
        return self._units_info.get_unit(unit_name, app_bin_dir=self._app_bin_dir)

    def _mirror_to_standby(self, unit: ManagedUnit) -> None:
        if not unit.mirror_to_standby or self._standby_slot_mp is None:
            return
        if not self._standby_slot_mp.is_dir():
            logger.info(f"standby slot is not mounted, skip mirroring {unit.name}")
            return

        _dst = Path(replace_root(unit.binary_path, "/", self._standby_slot_mp))
        try:
            _dst.parent.mkdir(exist_ok=True, parents=True)
            copyfile_atomic(unit.binary_path, _dst)
            logger.info(f"{unit.name} mirrored to standby slot: {_dst}")
        except (OSError, ValueError) as e:
            logger.warning(f"failed to mirror {unit.name} to {_dst}: {e!r}")

    def _restore(
        self, unit: ManagedUnit, *, installed: bool, backed_up: bool
    ) -> list[str]:
        """Put the previous binary back and restart the unit.

        Returns:
            Error messages of the restore, empty if the unit is active again.
        """
        _errors: list[str] = []
        binary_path, backup_path = Path(unit.binary_path), Path(unit.backup_path)
        logger.warning(f"rollback {unit.name} to previous binary")
        try:
            if installed or backed_up:
                unlink_sync(binary_path)
            if backed_up:
                rename_sync(backup_path, binary_path)
        except OSError as e:
            _err_msg = f"failed to restore previous binary of {unit.name}: {e!r}"
            logger.error(_err_msg)
            _errors.append(_err_msg)

        try:
            self._pm.start(unit.name)
        except ProcessManagerError as e:
            logger.error(f"failed to start {unit.name} after rollback: {e!r}")

        if not self._wait_active(unit.name):
            _err_msg = f"{unit.name} is still inactive after rollback"
            logger.error(_err_msg)
            _errors.append(_err_msg)
        return _errors

    def _apply(self, unit: ManagedUnit, payload_path: Path) -> list[str]:
        if not payload_path.is_file():
            raise ab_errors.PayloadStageFailure(
                f"payload {payload_path} not found", module=__name__
            )

        binary_path, backup_path = Path(unit.binary_path), Path(unit.backup_path)
        backed_up = installed = False
        try:
            self._pm.stop(unit.name)
            if binary_path.is_file():
                rename_sync(binary_path, backup_path)
                backed_up = True
            copyfile_atomic(payload_path, binary_path)
            installed = True
            self._pm.start(unit.name)

            if not self._wait_active(unit.name):
                raise ab_errors.ServiceInactiveAfterUpdate(
                    f"{unit.name} doesn't become active after update", module=__name__
                )
        except ab_errors.ServiceInactiveAfterUpdate as e:
            _failure = e
        except (ProcessManagerError, OSError, ValueError) as e:
            _failure = ab_errors.ServiceInactiveAfterUpdate(
                f"failed to update {unit.name}: {e!r}", module=__name__
            )
        else:
            if backed_up:
                try:
                    unlink_sync(backup_path)
                except OSError as e:
                    logger.warning(f"failed to remove backup {backup_path}: {e!r}")
            self._mirror_to_standby(unit)
            return []

        logger.error(f"{_failure!r}")
        return [
            _failure.get_failure_reason(),
            *self._restore(unit, installed=installed, backed_up=backed_up),
        ]

    def update(
        self, unit_name: str, payload_path: StrOrPath, *, action_id: str
    ) -> ActionStatus:
        """Replace the binary of <unit_name> with <payload_path>.

        The outcome is reported to the agent and returned.
        """
        logger.info(f"[{action_id=}] update {unit_name=} with {payload_path=}")
        try:
            unit = self._lookup_unit(unit_name)
            with self._lease:
                _errors = self._apply(unit, Path(payload_path))
        except ab_errors.ABUpdateError as e:
            logger.error(e.get_error_report(f"[{action_id=}] failed to update {unit_name=}"))
            _errors = [e.get_failure_reason()]

        if _errors:
            status = self._reporter.new_status(
                action_id, ActionState.FAILED, progress=100, errors=_errors
            )
        else:
            logger.info(f"[{action_id=}] {unit_name=} updated")
            status = self._reporter.new_status(action_id, ActionState.COMPLETED)

        self._reporter.report(status)
        return status
