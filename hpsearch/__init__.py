# hpsearch/__init__.py
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

"""hpsearch - event-driven hyperparameter search.

Search methods are deterministic state machines: they receive trial
lifecycle events and answer with operations (create, train, checkpoint,
validate, close, shutdown) for an external executor to carry out.

Example Usage:
    import hpsearch as hs

    config = hs.SearcherConfig(async_halving=hs.AsyncHalvingConfig(max_trials=64))
    searcher = hs.Searcher.from_config(config, {"lr": {"type": "log", "minval": -5, "maxval": -1}})
    ops = searcher.initial_operations()

    # Or preview the whole search against simulated trials
    results = hs.simulate(searcher)
    print(results.summary())
"""

from hpsearch.config import (
    AdaptiveASHAConfig,
    AdaptiveConfig,
    AdaptiveMode,
    AdaptiveSimpleConfig,
    AsyncHalvingConfig,
    Config,
    GridConfig,
    PBTConfig,
    RandomConfig,
    SearcherConfig,
    SingleConfig,
    SyncHalvingConfig,
    Unit,
)
from hpsearch.searcher import (
    HyperparameterSpace,
    Searcher,
    SearcherConfigError,
    SearcherError,
    SnapshotError,
    new_search_method,
    simulate,
)

__version__ = "1.0.0"
__author__ = "Verso Industries"
__license__ = "Apache-2.0"

__all__ = [
    "AdaptiveASHAConfig",
    "AdaptiveConfig",
    "AdaptiveMode",
    "AdaptiveSimpleConfig",
    "AsyncHalvingConfig",
    "Config",
    "GridConfig",
    "HyperparameterSpace",
    "PBTConfig",
    "RandomConfig",
    "Searcher",
    "SearcherConfig",
    "SearcherConfigError",
    "SearcherError",
    "SingleConfig",
    "SnapshotError",
    "SyncHalvingConfig",
    "Unit",
    "new_search_method",
    "simulate",
]
