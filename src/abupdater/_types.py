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
"""abupdater internal used types."""


from __future__ import annotations

import time
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field

from abupdater_common._typing import Percentage, StrEnum


class SlotHealth(StrEnum):
    UNVERIFIED = "UNVERIFIED"
    OK = "OK"
    FAILED = "FAILED"


class BootVerifierState(StrEnum):
    START = "START"
    READ_ACTUAL = "READ_ACTUAL"
    RECONCILE = "RECONCILE"
    # terminal states
    COMMITTED = "COMMITTED"
    ROLLED_BACK = "ROLLED_BACK"


class ActionState(StrEnum):
    COMPLETED = "Completed"
    FAILED = "Failed"
    IN_PROGRESS = "InProgress"


#
# ------ agent facing messages ------ #
#


def _now_in_millis() -> int:
    return int(time.time() * 1000)


class ActionStatus(BaseModel):
    """The progress/outcome of an update action, emitted to the agent.

    Once emitted, an ActionStatus is never changed.
    """

    model_config = ConfigDict(frozen=True)

    stream: Literal["action_status"] = "action_status"
    sequence: int = 0
    timestamp: int = Field(default_factory=_now_in_millis)
    action_id: str
    state: ActionState
    progress: Percentage = 0
    errors: List[str] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json()


class UpdateAction(BaseModel):
    """An update request delivered by the agent."""

    model_config = ConfigDict(frozen=True)

    action_id: str
    target_unit: str
    payload_path: str


class PendingAction(BaseModel):
    """The update action that is waiting for the boot verification result."""

    model_config = ConfigDict(frozen=True)

    action_id: str
    target_slot: str
