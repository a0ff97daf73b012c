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


from __future__ import annotations

from abc import abstractmethod
from typing import Protocol


class BootSelectorProtocol(Protocol):
    """The bootloader's slot selection capability."""

    @abstractmethod
    def read_current_root(self) -> str:
        """Get the slot id the kernel actually booted into.

        This MUST be derived from the running kernel, never from persisted state.
        """

    @abstractmethod
    def request_next_root(self, slot: str) -> None:
        """Make the bootloader boot into <slot> on next reboot, atomically."""
