# hpsearch/errors.py
# Copyright 2025 Verso Industries (Author: Michael B. Zimmerman)
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

"""Exceptions raised by search methods and the searcher."""


class SearcherError(RuntimeError):
    """Raised when a lifecycle call cannot be handled consistently."""


class SnapshotError(SearcherError):
    """Raised when a snapshot cannot be interpreted on restore."""


class SearcherConfigError(ValueError):
    """Raised when a searcher configuration is unusable."""


__all__ = ["SearcherError", "SnapshotError", "SearcherConfigError"]
