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

import subprocess

import pytest
import pytest_mock

from abupdater.unit_control import ProcessManagerError, SystemdProcessManager

UNIT_CONTROL_MODULE = "abupdater.unit_control"


class TestSystemdProcessManager:

    @pytest.fixture(autouse=True)
    def setup(self, mocker: pytest_mock.MockerFixture):
        self.cmdhelper_mock = mocker.patch(f"{UNIT_CONTROL_MODULE}.cmdhelper")
        self.pm = SystemdProcessManager(timeout=30)

    def test_calls_with_timeout(self):
        self.cmdhelper_mock.systemctl_unit_exists.return_value = True
        self.cmdhelper_mock.systemctl_is_active.return_value = True

        assert self.pm.exists("camera-agent")
        self.pm.stop("camera-agent")
        self.pm.start("camera-agent")
        assert self.pm.is_active("camera-agent")

        self.cmdhelper_mock.systemctl_unit_exists.assert_called_once_with(
            "camera-agent", timeout=30
        )
        self.cmdhelper_mock.systemctl_stop.assert_called_once_with(
            "camera-agent", timeout=30
        )
        self.cmdhelper_mock.systemctl_start.assert_called_once_with(
            "camera-agent", timeout=30
        )
        self.cmdhelper_mock.systemctl_is_active.assert_called_once_with(
            "camera-agent", timeout=30
        )

    @pytest.mark.parametrize(
        "exc",
        (
            subprocess.CalledProcessError(1, ["systemctl"], stderr=b""),
            subprocess.TimeoutExpired(["systemctl"], 30),
        ),
    )
    def test_stop_start_failed(self, exc: subprocess.SubprocessError):
        self.cmdhelper_mock.systemctl_stop.side_effect = exc
        self.cmdhelper_mock.systemctl_start.side_effect = exc

        with pytest.raises(ProcessManagerError):
            self.pm.stop("camera-agent")
        with pytest.raises(ProcessManagerError):
            self.pm.start("camera-agent")

    def test_exists_query_failed(self):
        self.cmdhelper_mock.systemctl_unit_exists.side_effect = (
            subprocess.TimeoutExpired(["systemctl"], 30)
        )
        assert not self.pm.exists("camera-agent")
