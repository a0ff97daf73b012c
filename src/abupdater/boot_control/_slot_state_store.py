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
"""Persisted per-slot state for boot control."""


from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import Dict, Generator, Optional

from pydantic import BaseModel, ValidationError

from abupdater import errors as ab_errors
from abupdater._types import ActionStatus, PendingAction, SlotHealth
from abupdater_common._io import read_str_from_file, write_str_to_file_atomic
from abupdater_common._typing import StrOrPath

from ._slots import SlotPair

logger = logging.getLogger(__name__)


class SlotState(BaseModel):
    """The slot state record.

    The whole record is persisted as one JSON file, and is always replaced
        as a whole, so that a power loss leaves either the previous or the new record.

    Attributes:
        health: health of each slot, missing slot means UNVERIFIED.
        intended_next: the slot expected to be booted on next boot.
        pending_download: the slot holding a staged payload waiting for verification.
        failed_boot_attempts: consecutive failed boots into each slot.
        pending_action: the update action waiting for the boot verification result.
        pending_report: an action status not yet delivered to the agent.
        report_sequence: the sequence number of the last reported action status.
    """

    health: Dict[str, SlotHealth] = {}
    intended_next: Optional[str] = None
    pending_download: Optional[str] = None
    failed_boot_attempts: Dict[str, int] = {}
    pending_action: Optional[PendingAction] = None
    pending_report: Optional[ActionStatus] = None
    report_sequence: int = 0

    def get_health(self, slot: str) -> SlotHealth:
        return self.health.get(slot, SlotHealth.UNVERIFIED)

    def get_failed_attempts(self, slot: str) -> int:
        return self.failed_boot_attempts.get(slot, 0)

    # ------ mutations ------ #

    def set_intended_next(self, slot: str) -> None:
        # single field, at most one slot can be intended
        self.intended_next = slot

    def clear_intended_next(self, slot: str) -> None:
        if self.intended_next == slot:
            self.intended_next = None

    def mark_ok(self, slot: str) -> None:
        self.health[slot] = SlotHealth.OK
        self.failed_boot_attempts.pop(slot, None)

    def mark_failed(self, slot: str) -> None:
        self.health[slot] = SlotHealth.FAILED
        self.failed_boot_attempts[slot] = self.get_failed_attempts(slot) + 1

    def clear_failed(self, slot: str) -> None:
        if self.get_health(slot) == SlotHealth.FAILED:
            self.health.pop(slot)

    def reset_health(self, slot: str) -> None:
        self.health.pop(slot, None)

    def reset_failed_attempts(self, slot: str) -> None:
        self.failed_boot_attempts.pop(slot, None)

    def set_pending_download(self, slot: str) -> None:
        self.pending_download = slot

    def clear_pending_download(self, slot: str) -> None:
        if self.pending_download == slot:
            self.pending_download = None


class SlotStateStore:
    """Crash-safe store of the slot state record.

    Every exposed operation is all-or-nothing: the record is loaded, mutated in memory,
        and then atomically replaces the on-disk record(write to temp, fsync, rename).
    Failures on reading or persisting the record are both raised as MarkerWriteFailure,
        the previous record on disk stays untouched.
    """

    def __init__(self, state_fpath: StrOrPath, *, slots: SlotPair) -> None:
        self.state_fpath = Path(state_fpath)
        self.slots = slots

    def _load(self) -> SlotState:
        try:
            _raw = read_str_from_file(self.state_fpath, _default="")
        except OSError as e:
            logger.error(f"failed to read {self.state_fpath}: {e!r}")
            raise ab_errors.MarkerWriteFailure(
                f"failed to read slot state: {e!r}", module=__name__
            ) from e

        if not _raw:
            return SlotState()
        try:
            return SlotState.model_validate_json(_raw)
        except ValidationError as e:
            logger.warning(
                f"slot state record at {self.state_fpath} is invalid, treat as empty: {e!r}"
            )
            return SlotState()

    def _store(self, state: SlotState) -> None:
        try:
            self.state_fpath.parent.mkdir(exist_ok=True, parents=True)
            write_str_to_file_atomic(self.state_fpath, state.model_dump_json())
        except OSError as e:
            _err_msg = f"failed to persist slot state to {self.state_fpath}: {e!r}"
            logger.error(_err_msg)
            raise ab_errors.MarkerWriteFailure(_err_msg, module=__name__) from e

    @contextlib.contextmanager
    def transaction(self) -> Generator[SlotState, None, None]:
        """Apply all mutations made in the with block as one atomic replacement.

        If the with block raises, nothing is persisted.
        """
        _loaded = self._load()
        _state = _loaded.model_copy(deep=True)
        yield _state
        if _state != _loaded:
            self._store(_state)

    # ------ public API ------ #

    def read_markers(self) -> SlotState:
        return self._load()

    def set_intended_next(self, slot: str) -> None:
        slot = self.slots.validate(slot)
        with self.transaction() as state:
            state.set_intended_next(slot)

    def clear_intended_next(self, slot: str) -> None:
        slot = self.slots.validate(slot)
        with self.transaction() as state:
            state.clear_intended_next(slot)

    def mark_ok(self, slot: str) -> None:
        slot = self.slots.validate(slot)
        with self.transaction() as state:
            state.mark_ok(slot)

    def mark_failed(self, slot: str) -> None:
        slot = self.slots.validate(slot)
        with self.transaction() as state:
            state.mark_failed(slot)

    def set_pending_download(self, slot: str) -> None:
        slot = self.slots.validate(slot)
        with self.transaction() as state:
            state.set_pending_download(slot)

    def clear_pending_download(self, slot: str) -> None:
        slot = self.slots.validate(slot)
        with self.transaction() as state:
            state.clear_pending_download(slot)

    def reset_failed_attempts(self, slot: str) -> None:
        slot = self.slots.validate(slot)
        with self.transaction() as state:
            state.reset_failed_attempts(slot)

    def store_pending_report(self, status: ActionStatus) -> None:
        with self.transaction() as state:
            state.pending_report = status

    def clear_pending_report(self) -> None:
        with self.transaction() as state:
            state.pending_report = None
