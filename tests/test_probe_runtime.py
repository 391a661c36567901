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

import unittest
from unittest.mock import Mock, patch

from kubernetes.client import V1Pod, V1PodStatus
from kubernetes.client.rest import ApiException

from pocket.constants import PROBE_CONTEXT_GRACE
from pocket.models.resource import PodPhase
from pocket.runtime.probe_runtime import ProbeRuntime
from pocket.services.cancellation import CancellationToken
from pocket.services.exceptions import (
    ConfigurationError,
    LogRetrievalError,
    OperationTimeoutError,
    ProbeFailedError,
)


def _k8s(phase="Succeeded", logs=b"PONG\n"):
    k8s = Mock()
    k8s.namespace = "default"
    k8s.get_pod.return_value = V1Pod(status=V1PodStatus(phase=phase))
    k8s.delete_pod.return_value = True
    response = Mock()
    response.stream.return_value = iter([logs])
    k8s.stream_pod_log.return_value = response
    return k8s


class TestProbeRuntimeTest(unittest.TestCase):
    def test_successful_probe(self):
        k8s = _k8s()
        progress = Mock()

        result = ProbeRuntime(k8s, progress=progress, poll_interval=0.01).test("redis", "redis-svc:6379")

        self.assertTrue(result.succeeded)
        self.assertEqual(result.phase, PodPhase.SUCCEEDED)
        self.assertEqual(result.output, "PONG")

        namespace, spec = k8s.create_pod.call_args.args
        self.assertEqual(namespace, "default")
        container = spec["spec"]["containers"][0]
        self.assertEqual(container["image"], "redis:7-alpine")
        self.assertEqual(container["command"], ["redis-cli"])
        self.assertEqual(container["args"], ["-h", "redis-svc", "-p", "6379", "PING"])
        self.assertTrue(spec["metadata"]["name"].startswith("pocket-redis-"))

        k8s.delete_pod.assert_called_once()
        messages = [c.args[0] for c in progress.call_args_list]
        self.assertTrue(any("Cleaning up pod" in m for m in messages))

    def test_log_request_bounded_and_token_released(self):
        k8s = _k8s()
        token = CancellationToken()

        ProbeRuntime(k8s, token=token, progress=Mock(), timeout=5, poll_interval=0.01).test("redis", "redis-svc")

        timeout = k8s.stream_pod_log.call_args.kwargs["timeout"]
        self.assertGreater(timeout, 0)
        self.assertLessEqual(timeout, 5 + PROBE_CONTEXT_GRACE)
        self.assertEqual(token._children, [])
        self.assertFalse(token.cancelled)

    def test_succeeded_pod_without_marker_fails(self):
        k8s = _k8s(logs=b"ERROR: auth failed")

        with self.assertRaises(ProbeFailedError) as ctx:
            ProbeRuntime(k8s, progress=Mock()).test("redis", "redis-svc:6379")

        self.assertEqual(ctx.exception.result.phase, PodPhase.SUCCEEDED)
        self.assertEqual(ctx.exception.result.output, "ERROR: auth failed")
        k8s.delete_pod.assert_called_once()

    def test_failed_pod_fails(self):
        k8s = _k8s(phase="Failed", logs=b"Could not connect to Redis")
        with self.assertRaises(ProbeFailedError):
            ProbeRuntime(k8s, progress=Mock()).test("redis", "redis-svc:6379")
        k8s.delete_pod.assert_called_once()

    def test_timeout_still_cleans_up(self):
        k8s = _k8s(phase="Pending")
        runtime = ProbeRuntime(k8s, progress=Mock(), timeout=0.2, poll_interval=0.05)

        with self.assertRaises(OperationTimeoutError) as ctx:
            runtime.test("mongo", "mongodb://mongo:27017")

        self.assertEqual(ctx.exception.last_phase, PodPhase.PENDING)
        k8s.delete_pod.assert_called_once()
        k8s.stream_pod_log.assert_not_called()

    def test_log_failure_still_cleans_up(self):
        k8s = _k8s()
        k8s.stream_pod_log.side_effect = ApiException(status=500, reason="Internal Server Error")
        with self.assertRaises(LogRetrievalError):
            ProbeRuntime(k8s, progress=Mock()).test("postgres", "postgresql://pg:5432/app")
        k8s.delete_pod.assert_called_once()

    def test_cleanup_failure_is_only_a_warning(self):
        k8s = _k8s()
        k8s.delete_pod.side_effect = ApiException(status=500, reason="Internal Server Error")
        runtime = ProbeRuntime(k8s, progress=Mock())

        result = runtime.test("redis", "redis-svc:6379")

        self.assertTrue(result.succeeded)
        self.assertEqual(len(runtime.cleanup_warnings), 1)

    def test_unsupported_database_creates_nothing(self):
        k8s = _k8s()
        with self.assertRaises(ConfigurationError):
            ProbeRuntime(k8s, progress=Mock()).test("mysql", "mysql:3306")
        k8s.create_pod.assert_not_called()


class TestProbeRuntimeShell(unittest.TestCase):
    @patch("pocket.runtime.probe_runtime.InteractiveSession")
    def test_shell_attaches_client_and_cleans_up(self, mock_session_class):
        k8s = _k8s(phase="Running")
        mock_session_class.return_value.attach.return_value = 0

        exit_code = ProbeRuntime(k8s, progress=Mock(), poll_interval=0.01).shell("redis", "redis-svc:6379")

        self.assertEqual(exit_code, 0)
        container = k8s.create_pod.call_args.args[1]["spec"]["containers"][0]
        self.assertEqual(container["command"], ["sleep", "3600"])
        self.assertTrue(container["tty"])
        self.assertTrue(container["stdin"])

        handle, command = mock_session_class.return_value.attach.call_args.args
        self.assertEqual(command, ["redis-cli", "-h", "redis-svc", "-p", "6379"])
        self.assertEqual(handle.image, "redis:7-alpine")
        k8s.delete_pod.assert_called_once()

    @patch("pocket.runtime.probe_runtime.InteractiveSession")
    def test_shell_session_error_still_cleans_up(self, mock_session_class):
        k8s = _k8s(phase="Running")
        mock_session_class.return_value.attach.side_effect = RuntimeError("stream died")

        with self.assertRaises(RuntimeError):
            ProbeRuntime(k8s, progress=Mock()).shell("postgres", "postgresql://pg/app")
        k8s.delete_pod.assert_called_once()


if __name__ == "__main__":
    unittest.main()
