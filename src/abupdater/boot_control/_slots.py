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
"""A/B slot identifiers."""


from __future__ import annotations

from typing import Iterator


class SlotPair:
    """The fixed pair of slot ids of this device.

    Slot ids are looked up from configuration, logic never hardcodes them.
    """

    def __init__(self, slot_ids: tuple[str, str] | list[str]) -> None:
        if len(slot_ids) != 2 or slot_ids[0] == slot_ids[1]:
            raise ValueError(f"exactly two distinct slot ids are required: {slot_ids=}")
        self._slots = (str(slot_ids[0]), str(slot_ids[1]))

    def __iter__(self) -> Iterator[str]:
        return iter(self._slots)

    def __contains__(self, slot: object) -> bool:
        return slot in self._slots

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._slots!r})"

    def validate(self, slot: str) -> str:
        if slot not in self._slots:
            raise ValueError(f"{slot=} is not valid slot id, should be one of {self._slots}")
        return slot

    def flip(self, slot: str) -> str:
        """Get the other slot of <slot>."""
        self.validate(slot)
        return self._slots[1] if slot == self._slots[0] else self._slots[0]
