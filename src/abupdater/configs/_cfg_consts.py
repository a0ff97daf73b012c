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
"""abupdater internal uses consts, should not be changed from external."""

from __future__ import annotations


class Consts:

    #
    # ------ paths ------ #
    #
    RUN_DIR = "/run/abupdater"
    # exclusive lease for update and boot verification transactions
    UPDATE_LOCK_FPATH = f"{RUN_DIR}/update.lock"

    PROC_CMDLINE_FPATH = "/proc/cmdline"

    # boot partition, shared by both slots
    SYSTEM_BOOT_MOUNT_POINT = "/boot"
    STATE_DPATH = "/boot/abupdater"
    UNITS_INFO_FPATH = "/etc/abupdater/units.yaml"

    # where the standby slot's rootfs is mounted
    STANDBY_SLOT_MNT = "/mnt/next_root"

    #
    # ------ consts ------ #
    #
    SLOT_STATE_FNAME = "slot_state.json"
    CMDLINE_TXT_FNAME = "cmdline.txt"

    ROOT_CMDLINE_KEY = "root"


cfg_consts = Consts()
