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

import pytest
from pytest import MonkeyPatch

from abupdater.configs import ENV_PREFIX, set_configs


@pytest.mark.parametrize(
    "setting, env_value, value",
    (
        ("DEFAULT_LOG_LEVEL", "CRITICAL", "CRITICAL"),
        (
            "LOG_LEVEL_TABLE",
            r"""{"abupdater.status_reporter": "DEBUG"}""",
            {"abupdater.status_reporter": "DEBUG"},
        ),
        ("STATUS_REPORT_PORT", "6666", 6666),
        ("UNIT_ACTIVE_CHECK_RETRY", "10", 10),
        ("SLOT_IDS", r"""["slot_a", "slot_b"]""", ("slot_a", "slot_b")),
        ("ROOT_DEV_SLOT_MAP", r"""{"/dev/sda2": "A"}""", {"/dev/sda2": "A"}),
        ("MAX_BOOT_ROLLBACK_ATTEMPTS", "5", 5),
        ("OS_UPDATE_UNIT", "os", "os"),
    ),
)
def test_load_configs(setting, env_value, value, monkeypatch: MonkeyPatch):
    monkeypatch.setenv(f"{ENV_PREFIX}{setting}", env_value)

    mocked_configs = set_configs()
    assert getattr(mocked_configs, setting) == value


@pytest.mark.parametrize(
    "setting, env_value",
    (
        ("UNIT_ACTIVE_CHECK_RETRY", "not_an_int"),
        ("STATUS_REPORT_PORT", "70000"),
        ("SLOT_IDS", r"""["A", "A"]"""),
    ),
)
def test_load_default_on_invalid_envs(
    setting, env_value, monkeypatch: MonkeyPatch
) -> None:
    # first get a normal configs without any envs
    normal_cfg = set_configs()
    # patch envs
    monkeypatch.setenv(f"{ENV_PREFIX}{setting}", env_value)
    # check if config is the default one
    assert normal_cfg == set_configs()


def test_log_format_is_json() -> None:
    import json

    _fields = json.loads(set_configs().LOG_FORMAT)
    assert _fields["message"] == "%(message)s"
