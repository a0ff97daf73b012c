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
import subprocess
from pathlib import Path
from typing import List

import pytest
import pytest_mock

from abupdater_common import replace_root
from abupdater_common.common import (
    get_backoff,
    poll_with_backoff,
    subprocess_call,
)

logger = logging.getLogger(__name__)

COMMON_MODULE = "abupdater_common.common"


@pytest.mark.parametrize(
    "n, factor, _max, expected",
    (
        (1, 0.5, 5, 0.5),
        (2, 0.5, 5, 1),
        (4, 0.5, 5, 4),
        (5, 0.5, 5, 5),
        (10, 0.5, 5, 5),
    ),
)
def test_get_backoff(n: int, factor: float, _max: float, expected: float):
    assert get_backoff(n, factor, _max) == expected


class TestPollWithBackoff:

    @pytest.fixture(autouse=True)
    def setup(self, mocker: pytest_mock.MockerFixture):
        self.sleep_mock = mocker.patch(f"{COMMON_MODULE}.time.sleep")

    @staticmethod
    def _checker(results: List[bool]):
        _results = list(results)
        calls: List[int] = []

        def _check() -> bool:
            calls.append(1)
            return _results.pop(0) if _results else False

        return _check, calls

    @pytest.mark.parametrize(
        "test_case,results,retry,expected,expected_calls",
        (
            ("test_first_try", [True], 3, True, 1),
            ("test_after_retry", [False, False, True], 3, True, 3),
            ("test_exhausted", [], 3, False, 4),
            ("test_no_retry", [], 0, False, 1),
        ),
    )
    def test_poll(
        self,
        test_case: str,
        results: List[bool],
        retry: int,
        expected: bool,
        expected_calls: int,
    ):
        logger.info(f"{test_case=}")
        _check, calls = self._checker(results)
        assert (
            poll_with_backoff(_check, retry=retry, backoff_factor=1, backoff_max=4)
            == expected
        )
        assert len(calls) == expected_calls
        assert self.sleep_mock.call_count == max(expected_calls - 1, 0)

    def test_backoff_sequence(self):
        _check, _ = self._checker([])
        poll_with_backoff(_check, retry=4, backoff_factor=1, backoff_max=4)
        assert [_c.args[0] for _c in self.sleep_mock.call_args_list] == [1, 2, 4, 4]

    def test_deadline(self, mocker: pytest_mock.MockerFixture):
        # each call to monotonic advances 10 seconds
        _now = iter(range(0, 1000, 10))
        mocker.patch(f"{COMMON_MODULE}.time.monotonic", side_effect=lambda: next(_now))

        _check, calls = self._checker([])
        assert not poll_with_backoff(
            _check, retry=100, backoff_factor=1, backoff_max=1, deadline=25
        )
        assert len(calls) == 3


def test_subprocess_call():
    subprocess_call(["true"], raise_exception=True)
    # failure is swallowed by default
    subprocess_call(["false"])
    with pytest.raises(subprocess.CalledProcessError):
        subprocess_call(["false"], raise_exception=True)


def test_subprocess_timeout():
    with pytest.raises(subprocess.TimeoutExpired):
        subprocess_call(["sleep", "5"], timeout=0.1)


@pytest.mark.parametrize(
    "path, old_root, new_root, expected",
    (
        ("/usr/local/bin/app", "/", "/mnt/next_root", "/mnt/next_root/usr/local/bin/app"),
        (Path("/a/b/c"), "/a", "/x", "/x/b/c"),
    ),
)
def test_replace_root(path, old_root, new_root, expected):
    assert replace_root(path, old_root, new_root) == expected


def test_replace_root_invalid():
    with pytest.raises(ValueError):
        replace_root("/a/b", "/c", "/x")
    with pytest.raises(ValueError):
        replace_root("/a/b", "relative", "/x")
