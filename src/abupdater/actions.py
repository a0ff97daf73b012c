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
"""Dispatch update actions from the agent to the OS or application updater."""


from __future__ import annotations

import logging
from typing import Optional

from abupdater import errors as ab_errors
from abupdater._types import ActionState, ActionStatus, UpdateAction
from abupdater.app_updater import ApplicationRollbackController
from abupdater.boot_control import (
    BootSelectorError,
    BootSelectorProtocol,
    SlotPair,
    UpdateStager,
)
from abupdater.status_reporter import StatusReporter

logger = logging.getLogger(__name__)


class ActionHandler:
    """Route an UpdateAction by its target unit.

    Actions targeting <os_update_unit> are staged into the standby slot,
        all the others are treated as application updates.
    """

    def __init__(
        self,
        *,
        os_update_unit: str,
        slots: SlotPair,
        selector: BootSelectorProtocol,
        stager: UpdateStager,
        app_controller: ApplicationRollbackController,
        reporter: StatusReporter,
    ) -> None:
        self._os_update_unit = os_update_unit
        self._slots = slots
        self._selector = selector
        self._stager = stager
        self._app_controller = app_controller
        self._reporter = reporter

    def _get_standby_slot(self) -> str:
        try:
            return self._slots.flip(self._selector.read_current_root())
        except (BootSelectorError, ValueError) as e:
            raise ab_errors.BootControlError(
                f"failed to detect the standby slot: {e!r}", module=__name__
            ) from e

    def _stage_os(self, action: UpdateAction, *, force: bool) -> None:
        self._reporter.report(
            self._reporter.new_status(
                action.action_id, ActionState.IN_PROGRESS, progress=0
            )
        )
        self._stager.stage(
            self._get_standby_slot(),
            action.payload_path,
            action_id=action.action_id,
            force=force,
        )

    def handle(
        self, action: UpdateAction, *, force: bool = False
    ) -> Optional[ActionStatus]:
        """Execute <action>.

        Returns:
            The reported outcome of an application update, or the Failed status
                of an OS update. A successful OS update reboots the system, the outcome
                is reported by the boot verification on next boot.

        Raises:
            InvalidTargetSlot, which indicates a programming error.
        """
        logger.info(f"handle action: {action}")
        if action.target_unit != self._os_update_unit:
            return self._app_controller.update(
                action.target_unit, action.payload_path, action_id=action.action_id
            )

        try:
            self._stage_os(action, force=force)
        except ab_errors.InvalidTargetSlot:
            raise
        except ab_errors.ABUpdateError as e:
            logger.error(e.get_error_report(f"[{action.action_id=}] OS update failed"))
            status = self._reporter.new_status(
                action.action_id,
                ActionState.FAILED,
                progress=100,
                errors=[e.get_failure_reason()],
            )
            self._reporter.report(status)
            return status
