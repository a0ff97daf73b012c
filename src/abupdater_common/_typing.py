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
"""Typing helpers shared between modules."""


from __future__ import annotations

import sys
from pathlib import Path
from typing import Union

from pydantic import Field
from typing_extensions import Annotated

StrOrPath = Union[str, Path]

if sys.version_info >= (3, 11):
    from enum import StrEnum
else:
    from enum import Enum

    class StrEnum(str, Enum):
        """Backport of enum.StrEnum, members format as their values."""

        def __str__(self) -> str:
            return self.value

        def __format__(self, format_spec: str) -> str:
            return self.value.__format__(format_spec)


# pydantic constrained types

NetworkPort = Annotated[int, Field(ge=1, le=65535)]
Percentage = Annotated[int, Field(ge=0, le=100)]
