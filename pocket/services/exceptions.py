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

class PocketError(Exception):
    """Base exception class for all pocket errors"""
    def __init__(self, message: str, context: dict = None):
        super().__init__(message)
        self.context = context or {}
        self.code = getattr(self, 'code', 500)

class ConfigurationError(PocketError):
    """Invalid configuration or arguments"""
    code = 400

class CreateError(PocketError):
    """The control plane rejected the ephemeral pod"""
    code = 502

class TransientReadError(PocketError):
    """A status read failed; the next poll may succeed"""
    code = 503

class OperationTimeoutError(PocketError):
    """Operation timeout"""
    code = 504

    def __init__(self, message: str, last_phase=None, context: dict = None):
        super().__init__(message, context)
        self.last_phase = last_phase

class OperationCancelledError(PocketError):
    """The invocation was interrupted"""
    code = 499

class NotReadyError(PocketError):
    """Pod is not in Running phase"""
    code = 409

class LogRetrievalError(PocketError):
    """Pod log stream could not be opened or read"""
    code = 502

class NoTargetError(PocketError):
    """No pod could be resolved for a port-forward alias"""
    code = 404

class SessionError(PocketError):
    """Interactive exec stream failure"""
    code = 502

class ProbeFailedError(PocketError):
    """Connection probe finished without the expected response"""
    code = 500

    def __init__(self, message: str, result=None, context: dict = None):
        super().__init__(message, context)
        self.result = result

class CleanupWarning(PocketError):
    """Deleting an ephemeral pod failed. Reported, never fatal"""
    code = 500
