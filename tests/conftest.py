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

import logging
from pathlib import Path

import pytest

from abupdater._utils import UpdateLease
from abupdater.boot_control import (
    BootSelectorError,
    BootSelectorProtocol,
    SlotPair,
    SlotStateStore,
)

logger = logging.getLogger(__name__)

SLOT_A, SLOT_B = "A", "B"


class FakeBootSelector(BootSelectorProtocol):
    """An in-memory bootloader.

    <booted> is what the kernel booted into, <next_root> is what the bootloader
        will boot on next reboot.
    """

    def __init__(self, booted: str = SLOT_A) -> None:
        self.booted = booted
        self.next_root = booted
        self.requested: list[str] = []
        self.fail_request = False
        self.fail_read = False

    def read_current_root(self) -> str:
        if self.fail_read:
            raise BootSelectorError("cannot read cmdline")
        return self.booted

    def request_next_root(self, slot: str) -> None:
        if self.fail_request:
            raise BootSelectorError(f"cannot switch to {slot}")
        self.requested.append(slot)
        self.next_root = slot

    def reboot(self, *, boot_into: str | None = None) -> None:
        """Simulate a reboot, the bootloader boots <boot_into> if given(fallback)."""
        self.booted = boot_into or self.next_root
        self.next_root = self.booted


@pytest.fixture
def slots() -> SlotPair:
    return SlotPair((SLOT_A, SLOT_B))


@pytest.fixture
def slot_state_store(tmp_path: Path, slots: SlotPair) -> SlotStateStore:
    return SlotStateStore(tmp_path / "boot" / "slot_state.json", slots=slots)


@pytest.fixture
def boot_selector() -> FakeBootSelector:
    return FakeBootSelector(booted=SLOT_A)


@pytest.fixture
def update_lease(tmp_path: Path) -> UpdateLease:
    return UpdateLease(tmp_path / "run" / "update.lock")
