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
"""Boot slot selection for Raspberry Pi style boot partitions.

Supported boot partition layout:
    /boot:
        - cmdline.txt: the kernel cmdline used on next boot
        - cmdline.txt_<slot_id>: kernel cmdline that mounts <slot_id> as rootfs

The slot currently booted is detected from the root= parameter of the running
    kernel's cmdline, by looking up the configured root device -> slot id table,
    or directly from LABEL=<slot_id>/PARTLABEL=<slot_id>.
"""


from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping

from abupdater_common._io import copyfile_atomic, read_str_from_file
from abupdater_common._typing import StrOrPath

from ._slots import SlotPair
from .protocol import BootSelectorProtocol

logger = logging.getLogger(__name__)

SEP_CHAR = "_"
"""separator between boot files name and slot suffix."""

_ROOT_LABEL_PREFIXES = ("LABEL=", "PARTLABEL=")


class BootSelectorError(Exception):
    """boot selector module internal used exception."""


def parse_cmdline_param(cmdline: str, key: str) -> str | None:
    """Get the value of <key>=<value> from kernel cmdline.

    If <key> presents multiple times, the last one takes effect, as the kernel does.
    """
    _res = None
    for _param in cmdline.split():
        _k, _sep, _v = _param.partition("=")
        if _sep and _k == key:
            _res = _v
    return _res


class RPIBootSelector(BootSelectorProtocol):
    """BootSelectorProtocol implementation with per-slot cmdline.txt files."""

    def __init__(
        self,
        *,
        slots: SlotPair,
        root_dev_slot_map: Mapping[str, str],
        system_boot_mp: StrOrPath,
        proc_cmdline_fpath: StrOrPath = "/proc/cmdline",
        cmdline_txt_fname: str = "cmdline.txt",
        root_cmdline_key: str = "root",
    ) -> None:
        self.slots = slots
        self.root_dev_slot_map = dict(root_dev_slot_map)
        self.system_boot_mp = Path(system_boot_mp)
        self.proc_cmdline_fpath = Path(proc_cmdline_fpath)
        self.cmdline_txt_fname = cmdline_txt_fname
        self.root_cmdline_key = root_cmdline_key

        for _dev, _slot in self.root_dev_slot_map.items():
            if _slot not in self.slots:
                raise BootSelectorError(f"{_dev=} maps to unknown slot {_slot=}")

    def get_slot_cmdline_fpath(self, slot: str) -> Path:
        """For example, for cmdline.txt of slot A, we get /boot/cmdline.txt_A"""
        return self.system_boot_mp / f"{self.cmdline_txt_fname}{SEP_CHAR}{slot}"

    def read_current_root(self) -> str:
        try:
            _cmdline = read_str_from_file(self.proc_cmdline_fpath)
        except OSError as e:
            raise BootSelectorError(
                f"failed to read {self.proc_cmdline_fpath}: {e!r}"
            ) from e

        root_param = parse_cmdline_param(_cmdline, self.root_cmdline_key)
        if not root_param:
            raise BootSelectorError(
                f"no {self.root_cmdline_key}= found in kernel cmdline: {_cmdline=}"
            )

        if (_slot := self.root_dev_slot_map.get(root_param)) is not None:
            logger.info(f"current rootfs {root_param} is slot {_slot}")
            return _slot

        for _prefix in _ROOT_LABEL_PREFIXES:
            if root_param.startswith(_prefix):
                _label = root_param[len(_prefix) :]
                if _label in self.slots:
                    logger.info(f"current rootfs {root_param} is slot {_label}")
                    return _label

        raise BootSelectorError(f"{root_param=} doesn't match any slot")

    def request_next_root(self, slot: str) -> None:
        self.slots.validate(slot)
        _src = self.get_slot_cmdline_fpath(slot)
        _dst = self.system_boot_mp / self.cmdline_txt_fname
        try:
            copyfile_atomic(_src, _dst)
        except (OSError, ValueError) as e:
            _err_msg = f"failed to set next root to {slot}: {e!r}"
            logger.error(_err_msg)
            raise BootSelectorError(_err_msg) from e
        logger.info(f"next boot target is set to {slot}, replace {_dst} with {_src}")
