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
"""A/B slot boot control."""


from ._boot_verifier import BootVerifier, BootVerifyOutcome
from ._rpi_boot import BootSelectorError, RPIBootSelector, parse_cmdline_param
from ._slot_state_store import SlotState, SlotStateStore
from ._slots import SlotPair
from ._update_stager import UpdateStager
from .protocol import BootSelectorProtocol

__all__ = [
    "BootSelectorError",
    "BootSelectorProtocol",
    "BootVerifier",
    "BootVerifyOutcome",
    "RPIBootSelector",
    "SlotPair",
    "SlotState",
    "SlotStateStore",
    "UpdateStager",
    "parse_cmdline_param",
]
