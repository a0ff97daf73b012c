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
from typing import Optional

import pytest

from abupdater.boot_control import (
    BootSelectorError,
    RPIBootSelector,
    SlotPair,
    parse_cmdline_param,
)

logger = logging.getLogger(__name__)

SLOT_A_DEV = "/dev/mmcblk0p2"
SLOT_B_DEV = "/dev/mmcblk0p3"

CMDLINE_TXT_SLOT_A = f"console=tty1 root={SLOT_A_DEV} rootfstype=ext4 rootwait"
CMDLINE_TXT_SLOT_B = f"console=tty1 root={SLOT_B_DEV} rootfstype=ext4 rootwait"


@pytest.mark.parametrize(
    "test_case,cmdline,key,expected",
    (
        ("test_normal", "console=tty1 root=/dev/sda2 rw", "root", "/dev/sda2"),
        ("test_not_found", "console=tty1 rw", "root", None),
        ("test_last_one_wins", "root=/dev/sda2 root=/dev/sda3", "root", "/dev/sda3"),
        ("test_value_with_eq", "root=PARTLABEL=A rw", "root", "PARTLABEL=A"),
        ("test_key_prefix_not_matched", "rootfstype=ext4", "root", None),
    ),
)
def test_parse_cmdline_param(
    test_case: str, cmdline: str, key: str, expected: Optional[str]
):
    logger.info(f"{test_case=}")
    assert parse_cmdline_param(cmdline, key) == expected


class TestRPIBootSelector:

    @pytest.fixture(autouse=True)
    def setup(self, tmp_path: Path):
        self.boot_mp = tmp_path / "boot"
        self.boot_mp.mkdir()
        (self.boot_mp / "cmdline.txt_A").write_text(CMDLINE_TXT_SLOT_A)
        (self.boot_mp / "cmdline.txt_B").write_text(CMDLINE_TXT_SLOT_B)
        (self.boot_mp / "cmdline.txt").write_text(CMDLINE_TXT_SLOT_A)

        self.proc_cmdline = tmp_path / "cmdline"
        self.selector = RPIBootSelector(
            slots=SlotPair(("A", "B")),
            root_dev_slot_map={SLOT_A_DEV: "A", SLOT_B_DEV: "B"},
            system_boot_mp=self.boot_mp,
            proc_cmdline_fpath=self.proc_cmdline,
        )

    @pytest.mark.parametrize(
        "test_case,proc_cmdline,expected_slot",
        (
            ("test_by_root_dev_a", CMDLINE_TXT_SLOT_A, "A"),
            ("test_by_root_dev_b", CMDLINE_TXT_SLOT_B, "B"),
            ("test_by_label", "console=tty1 root=LABEL=B rw", "B"),
            ("test_by_partlabel", "console=tty1 root=PARTLABEL=A rw", "A"),
        ),
    )
    def test_read_current_root(
        self, test_case: str, proc_cmdline: str, expected_slot: str
    ):
        logger.info(f"{test_case=}")
        self.proc_cmdline.write_text(proc_cmdline)
        assert self.selector.read_current_root() == expected_slot

    @pytest.mark.parametrize(
        "test_case,proc_cmdline",
        (
            ("test_no_root", "console=tty1 rw"),
            ("test_unknown_dev", "root=/dev/sda9 rw"),
            ("test_unknown_label", "root=LABEL=C rw"),
        ),
    )
    def test_read_current_root_failed(self, test_case: str, proc_cmdline: str):
        logger.info(f"{test_case=}")
        self.proc_cmdline.write_text(proc_cmdline)
        with pytest.raises(BootSelectorError):
            self.selector.read_current_root()

    def test_proc_cmdline_not_readable(self):
        with pytest.raises(BootSelectorError):
            self.selector.read_current_root()

    def test_request_next_root(self):
        self.selector.request_next_root("B")
        assert (self.boot_mp / "cmdline.txt").read_text() == CMDLINE_TXT_SLOT_B
        # per slot files are kept
        assert (self.boot_mp / "cmdline.txt_A").read_text() == CMDLINE_TXT_SLOT_A

        self.selector.request_next_root("A")
        assert (self.boot_mp / "cmdline.txt").read_text() == CMDLINE_TXT_SLOT_A

    def test_request_next_root_missing_slot_cmdline(self):
        (self.boot_mp / "cmdline.txt_B").unlink()
        with pytest.raises(BootSelectorError):
            self.selector.request_next_root("B")
        assert (self.boot_mp / "cmdline.txt").read_text() == CMDLINE_TXT_SLOT_A

    def test_invalid_root_dev_slot_map(self):
        with pytest.raises(BootSelectorError):
            RPIBootSelector(
                slots=SlotPair(("A", "B")),
                root_dev_slot_map={SLOT_A_DEV: "C"},
                system_boot_mp=self.boot_mp,
            )
