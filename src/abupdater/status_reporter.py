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
"""Deliver action status to the external agent.

Each ActionStatus is serialized as one JSON line and written to the agent's
    TCP endpoint. Delivery is retried with exponential backoff, bounded by
    both the retry count and the deadline.
"""


from __future__ import annotations

import logging
import socket
import time
from typing import Optional

from abupdater import errors as ab_errors
from abupdater._types import ActionState, ActionStatus
from abupdater.boot_control import SlotStateStore
from abupdater_common.common import get_backoff
from abupdater_common.logging import get_burst_suppressed_logger

logger = logging.getLogger(__name__)
burst_suppressed_logger = get_burst_suppressed_logger(f"{__name__}.conn_err")


class StatusReporter:
    """Reporter for ActionStatus.

    If <pending_store> is set, a status that cannot be delivered is kept
        in the slot state record, and delivered later by deliver_pending.
        The sequence numbers also continue across abupdater invocations.
    Without it, sequence numbers start from 1 in each process.
    """

    def __init__(
        self,
        host: str,
        port: int,
        *,
        retry: int = 3,
        backoff_factor: float = 0.5,
        backoff_max: float = 4,
        connect_timeout: float = 3,
        deadline: Optional[float] = None,
        pending_store: Optional[SlotStateStore] = None,
    ) -> None:
        self.host = host
        self.port = port
        self._retry = retry
        self._backoff_factor = backoff_factor
        self._backoff_max = backoff_max
        self._connect_timeout = connect_timeout
        self._deadline = deadline
        self._pending_store = pending_store

        self._last_seq = 0

    def _next_sequence(self) -> int:
        """Next sequence number, persisted in <pending_store> across invocations if set."""
        self._last_seq += 1
        if self._pending_store is None:
            return self._last_seq

        try:
            with self._pending_store.transaction() as state:
                state.report_sequence = max(state.report_sequence + 1, self._last_seq)
                self._last_seq = state.report_sequence
        except ab_errors.MarkerWriteFailure as e:
            logger.warning(f"failed to persist report sequence: {e!r}")
        return self._last_seq

    def _send(self, payload: bytes) -> None:
        with socket.create_connection(
            (self.host, self.port), timeout=self._connect_timeout
        ) as conn:
            conn.sendall(payload)

    def new_status(
        self,
        action_id: str,
        state: ActionState,
        *,
        progress: int = 100,
        errors: Optional[list[str]] = None,
    ) -> ActionStatus:
        return ActionStatus(
            action_id=action_id,
            state=state,
            progress=progress,
            errors=errors or [],
        )

    def report(self, status: ActionStatus) -> bool:
        """Deliver <status> to the agent.

        A sequence number is stamped onto <status> before sending.

        Returns:
            True if delivered, False if all the attempts failed.
        """
        status = status.model_copy(update={"sequence": self._next_sequence()})
        payload = f"{status.to_json()}\n".encode()

        _start = time.monotonic()
        for _retry_cnt in range(1, self._retry + 2):
            try:
                self._send(payload)
                logger.info(f"status reported: {status}")
                return True
            except OSError as e:
                burst_suppressed_logger.warning(
                    f"failed to report status to {self.host}:{self.port} "
                    f"(attempt {_retry_cnt}): {e!r}"
                )

            if _retry_cnt > self._retry:
                break
            _backoff = get_backoff(_retry_cnt, self._backoff_factor, self._backoff_max)
            if (
                self._deadline is not None
                and time.monotonic() - _start + _backoff > self._deadline
            ):
                logger.warning(f"report deadline {self._deadline}s exceeded")
                break
            time.sleep(_backoff)

        logger.error(f"give up reporting status: {status}")
        if self._pending_store:
            try:
                self._pending_store.store_pending_report(status)
            except ab_errors.MarkerWriteFailure as e:
                logger.error(f"failed to keep undelivered status: {e!r}")
        return False

    def deliver_pending(self) -> bool:
        """Deliver the undelivered status kept in the slot state record, clear it on success.

        Returns:
            True if nothing is pending or the pending status is delivered.
        """
        if (
            self._pending_store is None
            or (_pending := self._pending_store.read_markers().pending_report) is None
        ):
            return True
        if not self.report(_pending):
            return False
        self._pending_store.clear_pending_report()
        return True
