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
"""Crash-safe file operations.

Every helper that replaces a file first prepares the new content in a tmp file
    beside the destination, fsyncs it, renames it over the destination and then
    fsyncs the parent directory. After a power loss, the destination holds either
    the old or the new content, never a partial one.
"""


from __future__ import annotations

import contextlib
import logging
import os
import shutil
from pathlib import Path
from typing import Generator

from abupdater_common._typing import StrOrPath

logger = logging.getLogger(__name__)

TMP_FILE_PREFIX = ".abupdater_io_tmp_"


def _gen_tmp_fname(prefix: str = TMP_FILE_PREFIX) -> str:
    return f"{prefix}{os.urandom(6).hex()}"


def fsync_dir(dpath: StrOrPath) -> None:
    """Persist the entries changes(create, rename, unlink) under <dpath>."""
    dir_fd = os.open(dpath, os.O_RDONLY | os.O_DIRECTORY)
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)


def _fsync_file(fpath: StrOrPath) -> None:
    fd = os.open(fpath, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


@contextlib.contextmanager
def _replacing(dst: Path) -> Generator[Path, None, None]:
    """Yield a tmp path beside <dst> to be filled, then atomically move it to <dst>.

    If the with block raises, <dst> is untouched and the tmp file is removed.
    """
    _tmp = dst.parent / _gen_tmp_fname()
    try:
        yield _tmp
        _fsync_file(_tmp)
        os.rename(_tmp, dst)
        fsync_dir(dst.parent)
    finally:
        _tmp.unlink(missing_ok=True)


def write_str_to_file_atomic(
    fpath: StrOrPath, _input: str, *, follow_symlink: bool = True
) -> None:
    """Replace the content of <fpath> with <_input> atomically.

    If <follow_symlink> is True and <fpath> is a symlink, the file it points to
        is replaced and the symlink itself is kept.
    """
    _dst = Path(os.path.realpath(fpath)) if follow_symlink else Path(fpath)
    with _replacing(_dst) as _tmp:
        _tmp.write_text(_input)


def read_str_from_file(path: StrOrPath, _default: str | None = None) -> str:
    """Read the stripped text content of <path>.

    Raises:
        FileNotFoundError if <path> doesn't exist and no <_default> is given.
    """
    try:
        return Path(path).read_text().strip()
    except FileNotFoundError:
        if _default is None:
            raise
        return _default


def copyfile_atomic(src: StrOrPath, dst: StrOrPath) -> None:
    """Copy <src> over <dst> atomically, file mode is preserved.

    Raises:
        ValueError if the copied file size differs from <src>, <dst> is untouched.
        OSError from the underlying copy or rename.
    """
    src, dst = Path(src), Path(dst)
    _expected_size = src.stat().st_size

    with _replacing(dst) as _tmp:
        shutil.copy(src, _tmp)
        if (_copied_size := _tmp.stat().st_size) != _expected_size:
            _err_msg = f"incomplete copy of {src}: {_copied_size=}, {_expected_size=}"
            logger.warning(_err_msg)
            raise ValueError(_err_msg)


def rename_sync(src: StrOrPath, dst: StrOrPath) -> None:
    """os.rename <src> to <dst>, and persist the change."""
    os.rename(src, dst)
    fsync_dir(Path(dst).parent)
    if (_src_parent := Path(src).parent) != Path(dst).parent:
        fsync_dir(_src_parent)


def unlink_sync(fpath: StrOrPath, *, missing_ok: bool = True) -> None:
    """Remove <fpath>, and persist the change."""
    fpath = Path(fpath)
    fpath.unlink(missing_ok=missing_ok)
    fsync_dir(fpath.parent)
