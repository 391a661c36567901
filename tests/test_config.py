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

import os
import unittest
from unittest.mock import patch

from pocket import config
from pocket.services.exceptions import ConfigurationError


class TestDefaultTimeout(unittest.TestCase):
    def test_unset(self):
        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(config.get_default_timeout(), 30)

    def test_from_environment(self):
        with patch.dict(os.environ, {"POCKET_TIMEOUT": "45"}):
            self.assertEqual(config.get_default_timeout(), 45)

    def test_not_a_number(self):
        with patch.dict(os.environ, {"POCKET_TIMEOUT": "30s"}):
            with self.assertRaises(ConfigurationError) as ctx:
                config.get_default_timeout()
        self.assertEqual(ctx.exception.context["POCKET_TIMEOUT"], "30s")

    def test_not_positive(self):
        with patch.dict(os.environ, {"POCKET_TIMEOUT": "0"}):
            with self.assertRaises(ConfigurationError):
                config.get_default_timeout()


if __name__ == "__main__":
    unittest.main()
