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
"""Common shared libs for abupdater."""


from __future__ import annotations

from pathlib import PurePosixPath

from abupdater_common._typing import StrOrPath


def replace_root(path: StrOrPath, old_root: StrOrPath, new_root: StrOrPath) -> str:
    """Re-anchor an absolute <path> under <old_root> to <new_root>.

    For example, the binary /usr/bin/app of the running slot is at
        /mnt/next_root/usr/bin/app in the standby slot mounted at /mnt/next_root.

    Raises:
        ValueError if either root is not absolute, or <path> is not under <old_root>.
    """
    _old_root, _new_root = PurePosixPath(old_root), PurePosixPath(new_root)
    if not (_old_root.is_absolute() and _new_root.is_absolute()):
        raise ValueError(f"{old_root=} and {new_root=} must be absolute")
    return str(_new_root / PurePosixPath(path).relative_to(_old_root))
