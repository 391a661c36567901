# Copyright The Volcano Authors.
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

import io
import os
import threading
import unittest
from unittest.mock import Mock, patch

from kubernetes.client.rest import ApiException

from pocket.models.resource import PodPhase, ResourceHandle
from pocket.services.cancellation import CancellationToken
from pocket.services.exceptions import NotReadyError, SessionError
from pocket.session.interactive import InteractiveSession, IOBindings


HANDLE = ResourceHandle(name="pocket-redis-1700000000", namespace="default", image="redis:7-alpine")


class FakeExecStream:
    """Exec websocket stand-in that echoes stdin and exits on 'quit'."""

    def __init__(self, exit_on=b"quit", returncode=0):
        self._lock = threading.Lock()
        self._stdout = b""
        self._open = True
        self._exit_on = exit_on
        self._returncode = returncode
        self.stdin_received = b""
        self.channel_writes = []
        self.closed = False

    def is_open(self):
        with self._lock:
            return self._open

    def update(self, timeout=0):
        threading.Event().wait(min(timeout, 0.01))

    def peek_stdout(self):
        with self._lock:
            return bool(self._stdout)

    def read_stdout(self):
        with self._lock:
            data, self._stdout = self._stdout, b""
            return data

    def peek_stderr(self):
        return False

    def read_stderr(self):
        return b""

    def write_stdin(self, data):
        with self._lock:
            self.stdin_received += data
            self._stdout += b"echo:" + data
            if self._exit_on and self._exit_on in self.stdin_received:
                self._open = False

    def write_channel(self, channel, data):
        self.channel_writes.append((channel, data))

    @property
    def returncode(self):
        if self._returncode is None:
            raise TypeError("no status frame")
        return self._returncode

    def close(self):
        with self._lock:
            self._open = False
        self.closed = True


def _lifecycle(phase=PodPhase.RUNNING):
    lifecycle = Mock()
    lifecycle.get_status.return_value = (phase, None)
    return lifecycle


class TestInteractiveSession(unittest.TestCase):
    def setUp(self):
        self.read_fd, self.write_fd = os.pipe()
        self.stdin = os.fdopen(self.read_fd, "rb", buffering=0)

    def tearDown(self):
        self.stdin.close()
        try:
            os.close(self.write_fd)
        except OSError:
            pass

    def test_requires_running_pod(self):
        k8s = Mock()
        session = InteractiveSession(k8s, _lifecycle(PodPhase.PENDING))
        with self.assertRaises(NotReadyError):
            session.attach(HANDLE, ["redis-cli"], io=IOBindings(self.stdin, io.BytesIO(), io.BytesIO()))
        k8s.open_exec.assert_not_called()

    def test_open_failure(self):
        k8s = Mock()
        k8s.open_exec.side_effect = ApiException(status=403, reason="Forbidden")
        session = InteractiveSession(k8s, _lifecycle())
        with self.assertRaises(SessionError):
            session.attach(HANDLE, ["redis-cli"], io=IOBindings(self.stdin, io.BytesIO(), io.BytesIO()), tty=False)

    def test_duplex_until_remote_exits(self):
        ws = FakeExecStream()
        k8s = Mock()
        k8s.open_exec.return_value = ws
        stdout = io.BytesIO()
        os.write(self.write_fd, b"PING\n")
        os.write(self.write_fd, b"quit\n")

        exit_code = InteractiveSession(k8s, _lifecycle()).attach(
            HANDLE, ["redis-cli", "-h", "redis-svc"], io=IOBindings(self.stdin, stdout, io.BytesIO()), tty=False
        )

        self.assertEqual(exit_code, 0)
        self.assertIn(b"echo:PING", stdout.getvalue())
        self.assertIn(b"quit", ws.stdin_received)
        self.assertTrue(ws.closed)
        k8s.open_exec.assert_called_once_with(
            HANDLE.name, "default", ["redis-cli", "-h", "redis-svc"],
            container="main", stdin=True, tty=False
        )

    def test_missing_exit_status_is_none(self):
        ws = FakeExecStream(returncode=None)
        k8s = Mock()
        k8s.open_exec.return_value = ws
        os.write(self.write_fd, b"quit\n")

        exit_code = InteractiveSession(k8s, _lifecycle()).attach(
            HANDLE, ["psql"], io=IOBindings(self.stdin, io.BytesIO(), io.BytesIO()), tty=False
        )
        self.assertIsNone(exit_code)

    def test_local_stdin_closed_ends_session(self):
        ws = FakeExecStream(exit_on=None)
        k8s = Mock()
        k8s.open_exec.return_value = ws
        stdout = io.BytesIO()
        os.write(self.write_fd, b"PING\n")
        os.close(self.write_fd)

        exit_code = InteractiveSession(k8s, _lifecycle()).attach(
            HANDLE, ["redis-cli"], io=IOBindings(self.stdin, stdout, io.BytesIO()), tty=False
        )

        self.assertEqual(exit_code, 0)
        self.assertEqual(ws.stdin_received, b"PING\n")
        self.assertTrue(ws.closed)

    @patch("pocket.session.interactive.tty")
    @patch("pocket.session.interactive.termios")
    def test_local_stdin_closed_sends_end_of_transmission(self, mock_termios, mock_tty):
        terminal = Mock()
        terminal.isatty.return_value = True
        terminal.fileno.return_value = self.read_fd
        ws = FakeExecStream(exit_on=b"\x04")
        k8s = Mock()
        k8s.open_exec.return_value = ws
        os.close(self.write_fd)

        InteractiveSession(k8s, _lifecycle()).attach(
            HANDLE, ["psql"], io=IOBindings(terminal, io.BytesIO(), io.BytesIO()), tty=True
        )

        self.assertEqual(ws.stdin_received, b"\x04")
        mock_termios.tcsetattr.assert_called_once()

    @patch("pocket.session.interactive.tty")
    @patch("pocket.session.interactive.termios")
    def test_terminal_restored_on_cancellation(self, mock_termios, mock_tty):
        mock_termios.tcgetattr.return_value = "saved-mode"
        terminal = Mock()
        terminal.isatty.return_value = True
        terminal.fileno.return_value = self.read_fd

        ws = FakeExecStream(exit_on=None)
        k8s = Mock()
        k8s.open_exec.return_value = ws
        token = CancellationToken()
        threading.Timer(0.2, token.cancel).start()

        InteractiveSession(k8s, _lifecycle(), token).attach(
            HANDLE, ["mongosh", "mongodb://mongo"], io=IOBindings(terminal, io.BytesIO(), io.BytesIO()), tty=True
        )

        mock_tty.setraw.assert_called_once_with(self.read_fd)
        mock_termios.tcsetattr.assert_called_once()
        self.assertEqual(mock_termios.tcsetattr.call_args.args[0], self.read_fd)
        self.assertEqual(mock_termios.tcsetattr.call_args.args[2], "saved-mode")
        self.assertTrue(ws.closed)
        self.assertEqual(ws.channel_writes[0][0], 4)


if __name__ == "__main__":
    unittest.main()
