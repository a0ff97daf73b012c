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

import json
import logging
import socket
import socketserver
import threading
import time
from pathlib import Path
from typing import List

import pytest
import pytest_mock

from abupdater._types import ActionState, ActionStatus
from abupdater.boot_control import SlotStateStore
from abupdater.status_reporter import StatusReporter

logger = logging.getLogger(__name__)

STATUS_REPORTER_MODULE = "abupdater.status_reporter"


class _AgentHandler(socketserver.StreamRequestHandler):
    def handle(self) -> None:
        for _line in self.rfile:
            self.server.received.append(json.loads(_line))  # type: ignore


class _DummyAgent(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self) -> None:
        super().__init__(("127.0.0.1", 0), _AgentHandler)
        self.received: List[dict] = []


def _get_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class TestStatusReporter:

    @pytest.fixture
    def agent(self):
        _agent = _DummyAgent()
        _t = threading.Thread(target=_agent.serve_forever, daemon=True)
        _t.start()
        try:
            yield _agent
        finally:
            _agent.shutdown()
            _agent.server_close()

    def _wait_received(self, agent: _DummyAgent, count: int):
        for _ in range(100):
            if len(agent.received) >= count:
                return
            time.sleep(0.05)
        raise TimeoutError(f"agent doesn't receive {count} status")

    def test_report(self, agent: _DummyAgent):
        reporter = StatusReporter("127.0.0.1", agent.server_address[1])

        assert reporter.report(
            ActionStatus(action_id="1", state=ActionState.IN_PROGRESS, progress=0)
        )
        assert reporter.report(
            reporter.new_status("1", ActionState.COMPLETED)
        )
        self._wait_received(agent, 2)

        _first, _second = agent.received
        assert _first["stream"] == "action_status"
        assert _first["action_id"] == "1"
        assert _first["state"] == "InProgress"
        assert _second["state"] == "Completed"
        assert _second["progress"] == 100
        assert _second["errors"] == []
        assert isinstance(_second["timestamp"], int)
        # sequence numbers are monotonically increasing
        assert _first["sequence"] < _second["sequence"]

    def test_wire_format(self):
        _status = ActionStatus(
            action_id="7",
            state=ActionState.FAILED,
            progress=100,
            errors=["E103: failed"],
            timestamp=1700000000000,
        )
        assert json.loads(_status.to_json()) == {
            "stream": "action_status",
            "sequence": 0,
            "timestamp": 1700000000000,
            "action_id": "7",
            "state": "Failed",
            "progress": 100,
            "errors": ["E103: failed"],
        }

    def test_report_failed_after_retry(self, mocker: pytest_mock.MockerFixture):
        _sleep_mock = mocker.patch(f"{STATUS_REPORTER_MODULE}.time.sleep")
        reporter = StatusReporter(
            "127.0.0.1",
            _get_free_port(),
            retry=3,
            backoff_factor=0.1,
            backoff_max=1,
            connect_timeout=0.5,
        )
        _send_spy = mocker.spy(reporter, "_send")

        assert not reporter.report(reporter.new_status("1", ActionState.COMPLETED))
        assert _send_spy.call_count == 4
        # exponential backoff between attempts
        assert [_c.args[0] for _c in _sleep_mock.call_args_list] == [0.1, 0.2, 0.4]

    def test_report_deadline(self, mocker: pytest_mock.MockerFixture):
        mocker.patch(f"{STATUS_REPORTER_MODULE}.time.sleep")
        reporter = StatusReporter(
            "127.0.0.1",
            _get_free_port(),
            retry=10,
            backoff_factor=1,
            backoff_max=4,
            deadline=1.5,
        )
        _send_mock = mocker.patch.object(
            reporter, "_send", side_effect=ConnectionRefusedError()
        )

        assert not reporter.report(reporter.new_status("1", ActionState.COMPLETED))
        # the 2s backoff after the second attempt exceeds the deadline
        assert _send_mock.call_count == 2

    def test_undelivered_status_is_kept(
        self, mocker: pytest_mock.MockerFixture, slot_state_store: SlotStateStore
    ):
        reporter = StatusReporter(
            "127.0.0.1", 5555, retry=0, pending_store=slot_state_store
        )
        mocker.patch.object(reporter, "_send", side_effect=ConnectionRefusedError())

        _status = reporter.new_status("1", ActionState.COMPLETED)
        assert not reporter.report(_status)
        _pending = slot_state_store.read_markers().pending_report
        assert _pending is not None
        assert _pending.action_id == "1"

        # delivered on next report cycle
        mocker.patch.object(reporter, "_send")
        assert reporter.deliver_pending()
        assert slot_state_store.read_markers().pending_report is None

    def test_deliver_pending_without_pending(
        self, tmp_path: Path, slot_state_store: SlotStateStore
    ):
        reporter = StatusReporter(
            "127.0.0.1", 5555, retry=0, pending_store=slot_state_store
        )
        assert reporter.deliver_pending()

    def test_sequence_continues_across_reporters(
        self, agent: _DummyAgent, slot_state_store: SlotStateStore
    ):
        # each abupdater invocation creates its own reporter
        for _ in range(3):
            reporter = StatusReporter(
                "127.0.0.1", agent.server_address[1], pending_store=slot_state_store
            )
            assert reporter.report(reporter.new_status("1", ActionState.COMPLETED))
        self._wait_received(agent, 3)

        assert sorted(_r["sequence"] for _r in agent.received) == [1, 2, 3]
        assert slot_state_store.read_markers().report_sequence == 3

    def test_sequence_without_store(self, mocker: pytest_mock.MockerFixture):
        reporter = StatusReporter("127.0.0.1", 5555)
        _send_mock = mocker.patch.object(reporter, "_send")

        for _ in range(2):
            assert reporter.report(reporter.new_status("1", ActionState.COMPLETED))
        _sequences = [
            json.loads(_c.args[0])["sequence"] for _c in _send_mock.call_args_list
        ]
        assert _sequences == [1, 2]
