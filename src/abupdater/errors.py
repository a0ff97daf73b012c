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
"""abupdater error code and exception definitions."""


from __future__ import annotations

import traceback
from enum import Enum, unique
from typing import ClassVar


@unique
class ErrorCode(int, Enum):
    E_UNSPECIFIC = 0

    #
    # ------ recoverable errors ------
    #
    E_RECOVERABLE = 100
    E_BUSY = 101
    E_UNIT_NOT_FOUND = 102
    E_SERVICE_INACTIVE_AFTER_UPDATE = 103
    E_PAYLOAD_STAGE_FAILED = 104
    E_BOOT_MISMATCH = 105

    #
    # ------ unrecoverable errors ------
    #
    E_UNRECOVERABLE = 200
    E_MARKER_WRITE_FAILED = 201
    E_INVALID_TARGET_SLOT = 202
    E_ROLLBACK_LIMIT_EXCEEDED = 203
    E_BOOT_CONTROL_FAILED = 204

    def to_errcode_str(self) -> str:
        """Zero-padded 3 digits errcode, like 101 or 001."""
        return str(self.value).zfill(3)


class ABUpdateError(Exception):
    """Base of every abupdater exception.

    Subclasses set <failure_errcode> and <failure_description>, the first
        positional arg(if any) is the failure detail.
    """

    ERROR_PREFIX: ClassVar[str] = "E"

    failure_errcode: ErrorCode = ErrorCode.E_UNSPECIFIC
    failure_description: str = "no description available for this error"

    def __init__(self, *args: object, module: str) -> None:
        self.module = module
        super().__init__(*args)

    @property
    def failure_errcode_str(self) -> str:
        return self.ERROR_PREFIX + self.failure_errcode.to_errcode_str()

    def get_failure_reason(self) -> str:
        """Short one-line reason, suitable for the status report errors list."""
        _parts = [self.failure_errcode_str, self.failure_description]
        if self.args:
            _parts.append(str(self.args[0]))
        return ": ".join(_parts)

    def get_error_report(self, title: str = "") -> str:
        """Multi-line report with module, reason and traceback for logging."""
        _tb = "".join(traceback.format_exception(type(self), self, self.__traceback__))
        return "\n".join(
            (
                title,
                f"@module: {self.module}",
                f"reason: {self.get_failure_reason()}",
                "traceback:",
                _tb,
            )
        )


#
# ------ recoverable errors ------
#
# the device stays on the previous binary/slot, the action can be retried.


class ABUpdateErrorRecoverable(ABUpdateError):
    failure_errcode: ErrorCode = ErrorCode.E_RECOVERABLE
    failure_description: str = "recoverable update failure"


class Busy(ABUpdateErrorRecoverable):
    failure_errcode: ErrorCode = ErrorCode.E_BUSY
    failure_description: str = "another update transaction is in progress"


class UnitNotFound(ABUpdateErrorRecoverable):
    failure_errcode: ErrorCode = ErrorCode.E_UNIT_NOT_FOUND
    failure_description: str = "managed unit is unknown to the process manager"


class ServiceInactiveAfterUpdate(ABUpdateErrorRecoverable):
    failure_errcode: ErrorCode = ErrorCode.E_SERVICE_INACTIVE_AFTER_UPDATE
    failure_description: str = (
        "unit failed liveness check after update, previous binary restored"
    )


class PayloadStageFailure(ABUpdateErrorRecoverable):
    failure_errcode: ErrorCode = ErrorCode.E_PAYLOAD_STAGE_FAILED
    failure_description: str = "failed to write payload into the standby slot"


class BootMismatch(ABUpdateErrorRecoverable):
    failure_errcode: ErrorCode = ErrorCode.E_BOOT_MISMATCH
    failure_description: str = (
        "booted slot differs from the intended slot, boot target reverted"
    )


#
# ------ unrecoverable errors ------
#


class ABUpdateErrorUnrecoverable(ABUpdateError):
    failure_errcode: ErrorCode = ErrorCode.E_UNRECOVERABLE
    failure_description: str = "unrecoverable update failure"


class MarkerWriteFailure(ABUpdateErrorUnrecoverable):
    failure_errcode: ErrorCode = ErrorCode.E_MARKER_WRITE_FAILED
    failure_description: str = "failed to read or persist slot state"


class InvalidTargetSlot(ABUpdateErrorUnrecoverable):
    """Staging over the live slot is a programming error, never retried."""

    failure_errcode: ErrorCode = ErrorCode.E_INVALID_TARGET_SLOT
    failure_description: str = "target slot must be the inactive slot"


class RollbackLimitExceeded(ABUpdateErrorUnrecoverable):
    failure_errcode: ErrorCode = ErrorCode.E_ROLLBACK_LIMIT_EXCEEDED
    failure_description: str = (
        "target slot reached the maximum consecutive failed boots"
    )


class BootControlError(ABUpdateErrorUnrecoverable):
    failure_errcode: ErrorCode = ErrorCode.E_BOOT_CONTROL_FAILED
    failure_description: str = "failed to read or switch the boot slot"
