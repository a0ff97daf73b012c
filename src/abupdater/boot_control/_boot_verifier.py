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
"""Post-boot reconciliation of the intended and the actually booted slot.

One run per boot:
    START -> READ_ACTUAL -> RECONCILE -> {COMMITTED, ROLLED_BACK}

COMMITTED: no slot is intended, or the intended slot is the booted one.
    The booted slot is marked OK and its pending download is consumed.
ROLLED_BACK: the bootloader didn't boot into the intended slot.
    The intended slot is marked FAILED, its pending download is dropped, and
    the boot target is pointed back to the booted(known-good) slot.

All the mutations of one reconciliation are persisted as one atomic replacement
    of the slot state record, in the order listed above.
"""


from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from abupdater import errors as ab_errors
from abupdater._types import ActionState, ActionStatus, BootVerifierState
from abupdater._utils import UpdateLease

from ._rpi_boot import BootSelectorError
from ._slot_state_store import SlotState, SlotStateStore
from .protocol import BootSelectorProtocol

logger = logging.getLogger(__name__)


@dataclass
class BootVerifyOutcome:
    state: BootVerifierState
    actual_slot: str
    intended_slot: Optional[str] = None
    report: Optional[ActionStatus] = None


class BootVerifier:

    def __init__(
        self,
        *,
        store: SlotStateStore,
        selector: BootSelectorProtocol,
        lease: Optional[UpdateLease] = None,
    ) -> None:
        self._store = store
        self._selector = selector
        self._lease = lease
        self._state = BootVerifierState.START

    @property
    def state(self) -> BootVerifierState:
        return self._state

    def _read_actual(self) -> str:
        self._state = BootVerifierState.READ_ACTUAL
        try:
            actual_slot = self._store.slots.validate(self._selector.read_current_root())
        except (BootSelectorError, ValueError) as e:
            _err_msg = f"failed to detect the booted slot: {e!r}"
            logger.error(_err_msg)
            raise ab_errors.BootControlError(_err_msg, module=__name__) from e
        logger.info(f"booted into slot {actual_slot}")
        return actual_slot

    @staticmethod
    def _commit(state: SlotState, actual_slot: str) -> Optional[ActionStatus]:
        state.clear_failed(actual_slot)
        state.mark_ok(actual_slot)
        state.clear_pending_download(actual_slot)

        if (_action := state.pending_action) and _action.target_slot == actual_slot:
            state.pending_action = None
            state.pending_report = ActionStatus(
                action_id=_action.action_id,
                state=ActionState.COMPLETED,
                progress=100,
            )
            return state.pending_report

    @staticmethod
    def _rollback(
        state: SlotState, actual_slot: str, intended_slot: str
    ) -> Optional[ActionStatus]:
        state.mark_failed(intended_slot)
        state.clear_pending_download(intended_slot)
        state.set_intended_next(actual_slot)
        # we are running on it, it is the known-good slot
        state.mark_ok(actual_slot)

        if (_action := state.pending_action) and _action.target_slot == intended_slot:
            _mismatch = ab_errors.BootMismatch(
                f"intended {intended_slot}, booted {actual_slot}", module=__name__
            )
            state.pending_action = None
            state.pending_report = ActionStatus(
                action_id=_action.action_id,
                state=ActionState.FAILED,
                progress=100,
                errors=[_mismatch.get_failure_reason()],
            )
            return state.pending_report

    def _reconcile(self, actual_slot: str) -> BootVerifyOutcome:
        self._state = BootVerifierState.RECONCILE
        with self._store.transaction() as state:
            intended_slot = state.intended_next
            if intended_slot is None or intended_slot == actual_slot:
                report = self._commit(state, actual_slot)
                outcome = BootVerifyOutcome(
                    state=BootVerifierState.COMMITTED,
                    actual_slot=actual_slot,
                    intended_slot=intended_slot,
                    report=report,
                )
            else:
                logger.error(
                    f"intended to boot into {intended_slot}, but booted into {actual_slot}, "
                    f"mark {intended_slot} as failed and revert boot target to {actual_slot}"
                )
                report = self._rollback(state, actual_slot, intended_slot)
                outcome = BootVerifyOutcome(
                    state=BootVerifierState.ROLLED_BACK,
                    actual_slot=actual_slot,
                    intended_slot=intended_slot,
                    report=report,
                )

        if outcome.state == BootVerifierState.ROLLED_BACK:
            try:
                self._selector.request_next_root(actual_slot)
            except BootSelectorError as e:
                raise ab_errors.BootControlError(
                    f"failed to revert boot target to {actual_slot}: {e!r}",
                    module=__name__,
                ) from e
        return outcome

    def run(self) -> BootVerifyOutcome:
        """Reconcile the slot state for this boot.

        Raises:
            MarkerWriteFailure if the slot state cannot be persisted, the
                previous record is left untouched.
            BootControlError if the booted slot cannot be detected, or the boot target
                cannot be reverted.
            Busy if another transaction holds the update lease.
        """
        if self._lease:
            with self._lease:
                outcome = self._reconcile(self._read_actual())
        else:
            outcome = self._reconcile(self._read_actual())

        self._state = outcome.state
        logger.info(f"boot verification finished: {outcome}")
        return outcome
