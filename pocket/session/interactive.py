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

"""
Interactive exec sessions.

An attached session runs two pump threads over one exec websocket: local
stdin to the remote stdin channel, and remote stdout/stderr to the local
streams. The calling thread waits on the session token, forwards terminal
resizes, and joins both pumps before returning.
"""

import json
import os
import select
import shutil
import signal
import sys
import termios
import threading
import tty
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Sequence

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from pocket.constants import RESIZE_CHANNEL, STREAM_POLL_TIMEOUT, STREAM_READ_SIZE
from pocket.models.resource import PodPhase, ResourceHandle
from pocket.services.cancellation import CancellationToken
from pocket.services.exceptions import NotReadyError, SessionError
from pocket.services.log import get_logger

EOT = b"\x04"

logger = get_logger(__name__)


@dataclass
class IOBindings:
    stdin: Any = None
    stdout: Any = None
    stderr: Any = None

    @classmethod
    def from_process(cls) -> "IOBindings":
        return cls(
            stdin=sys.stdin,
            stdout=getattr(sys.stdout, "buffer", sys.stdout),
            stderr=getattr(sys.stderr, "buffer", sys.stderr),
        )


def _is_tty(stream) -> bool:
    try:
        return stream is not None and stream.isatty()
    except (AttributeError, ValueError):
        return False


@contextmanager
def raw_terminal(stream) -> Iterator[bool]:
    """Put ``stream``'s terminal in raw mode; restore the saved mode on exit.

    Yields False and changes nothing when ``stream`` is not a terminal.
    """
    if not _is_tty(stream):
        yield False
        return

    fd = stream.fileno()
    saved = termios.tcgetattr(fd)
    tty.setraw(fd)
    try:
        yield True
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


def _write(sink, data) -> None:
    if sink is None or not data:
        return
    if isinstance(data, str):
        data = data.encode("utf-8")
    sink.write(data)
    sink.flush()


class InteractiveSession:
    def __init__(self, k8s_client, lifecycle, token: Optional[CancellationToken] = None):
        self._logger = get_logger(f"{__name__}.InteractiveSession")
        self.k8s = k8s_client
        self.lifecycle = lifecycle
        self.token = token if token is not None else CancellationToken()

    def attach(self, handle: ResourceHandle, command: Sequence[str], io: Optional[IOBindings] = None,
               tty: bool = True) -> Optional[int]:
        """
        Run ``command`` in the pod attached to the local terminal.

        Blocks until the remote process exits, the stream fails or the
        token is cancelled.

        Returns:
            Remote exit code when the API server reports one

        Raises:
            NotReadyError: the pod is not Running
            SessionError: the exec stream could not be opened or failed
        """
        phase, _ = self.lifecycle.get_status(handle)
        if phase != PodPhase.RUNNING:
            raise NotReadyError(
                f"Pod {handle.qualified_name} is not running (phase: {phase.value})",
                {"phase": phase.value}
            )

        io = io if io is not None else IOBindings.from_process()
        session_token = self.token.child()

        with raw_terminal(io.stdin if tty else None):
            try:
                ws = self.k8s.open_exec(
                    handle.name, handle.namespace, list(command),
                    container=handle.container, stdin=io.stdin is not None, tty=tty
                )
            except (ApiException, HTTPError, OSError) as e:
                raise SessionError(
                    f"Failed to open exec stream to {handle.qualified_name}: {e}",
                    {"command": list(command)}
                ) from e

            self._logger.debug("Exec stream opened", {"pod": handle.name, "tty": tty})
            try:
                return self._run(ws, io, tty, session_token)
            finally:
                session_token.cancel("session finished")
                ws.close()

    def _run(self, ws, io: IOBindings, tty: bool, token: CancellationToken) -> Optional[int]:
        errors: List[BaseException] = []

        def output_pump():
            try:
                self._pump_output(ws, io, token)
            except Exception as e:
                errors.append(e)
            finally:
                token.cancel("remote stream closed")

        def stdin_pump():
            try:
                self._pump_stdin(ws, io.stdin, token, tty)
            except Exception as e:
                errors.append(e)
                token.cancel("stdin pump failed")

        threads = [threading.Thread(target=output_pump, name="pocket-exec-output", daemon=True)]
        if io.stdin is not None:
            threads.append(threading.Thread(target=stdin_pump, name="pocket-exec-stdin", daemon=True))

        resized = threading.Event()
        with self._watch_resize(resized, enabled=tty):
            if tty:
                self._send_resize(ws)
            for thread in threads:
                thread.start()
            while not token.wait(STREAM_POLL_TIMEOUT):
                if resized.is_set():
                    resized.clear()
                    self._send_resize(ws)

        for thread in threads:
            thread.join()

        if errors:
            raise SessionError(f"Interactive session failed: {errors[0]}") from errors[0]
        return self._returncode(ws)

    def _pump_stdin(self, ws, stdin, token: CancellationToken, tty: bool = False) -> None:
        fd = stdin.fileno()
        while not token.cancelled:
            ready, _, _ = select.select([fd], [], [], STREAM_POLL_TIMEOUT)
            if not ready:
                continue
            data = os.read(fd, STREAM_READ_SIZE)
            if not data:
                self._logger.debug("Local stdin closed", {"tty": tty})
                if tty:
                    # Ctrl+D, so the remote client sees end of input and exits
                    ws.write_stdin(EOT)
                else:
                    token.cancel("local stdin closed")
                return
            ws.write_stdin(data)

    def _pump_output(self, ws, io: IOBindings, token: CancellationToken) -> None:
        while ws.is_open() and not token.cancelled:
            ws.update(timeout=STREAM_POLL_TIMEOUT)
            self._drain(ws, io)
        # Frames that arrived together with the close
        self._drain(ws, io)

    @staticmethod
    def _drain(ws, io: IOBindings) -> None:
        if ws.peek_stdout():
            _write(io.stdout, ws.read_stdout())
        if ws.peek_stderr():
            _write(io.stderr if io.stderr is not None else io.stdout, ws.read_stderr())

    def _send_resize(self, ws) -> None:
        size = shutil.get_terminal_size()
        try:
            ws.write_channel(RESIZE_CHANNEL, json.dumps({"Width": size.columns, "Height": size.lines}))
        except Exception as e:
            self._logger.debug("Failed to send terminal size", {"error": str(e)})

    @contextmanager
    def _watch_resize(self, resized: threading.Event, enabled: bool) -> Iterator[None]:
        sigwinch = getattr(signal, "SIGWINCH", None)
        if not enabled or sigwinch is None or threading.current_thread() is not threading.main_thread():
            yield
            return
        previous = signal.signal(sigwinch, lambda signum, frame: resized.set())
        try:
            yield
        finally:
            signal.signal(sigwinch, previous)

    def _returncode(self, ws) -> Optional[int]:
        try:
            return ws.returncode
        except (TypeError, KeyError, IndexError, ValueError) as e:
            # No status frame on the error channel
            self._logger.debug("Exit status unavailable", {"error": str(e)})
            return None
