# hpsearch/searcher/__init__.py
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

"""hpsearch Searcher Module.

Provides the search methods and the components that drive them:

- Operations: the commands search methods emit and the events answering them
- Search methods: single, random, grid, synchronous and asynchronous
  successive halving, Hyperband-style adaptive brackets, and PBT
- Searcher: executor-facing driver with snapshot/restore
- Simulation: in-process executor for previews and tests
"""

from hpsearch.errors import SearcherConfigError, SearcherError, SnapshotError
from hpsearch.searcher.adaptive import AdaptiveASHASearch, AdaptiveSearch, AdaptiveSimpleSearch
from hpsearch.searcher.async_halving import AsyncHalvingSearch
from hpsearch.searcher.context import RequestID, SearchContext
from hpsearch.searcher.grid import GridSearch
from hpsearch.searcher.hyperparameters import (
    Hyperparameter,
    HyperparameterSpace,
    HyperparameterType,
)
from hpsearch.searcher.operations import (
    Checkpoint,
    CheckpointMetrics,
    Close,
    Create,
    ExitedReason,
    Operation,
    OperationType,
    Shutdown,
    Train,
    Validate,
    ValidationMetrics,
)
from hpsearch.searcher.pbt import PBTSearch
from hpsearch.searcher.random_search import RandomSearch
from hpsearch.searcher.scheduler_factory import new_search_method
from hpsearch.searcher.search_method import SearchMethod, SearchMethodType
from hpsearch.searcher.searcher import Searcher
from hpsearch.searcher.simulate import SimulationResults, Simulator, simulate
from hpsearch.searcher.single import SingleSearch
from hpsearch.searcher.sync_halving import SyncHalvingSearch

__all__ = [
    "AdaptiveASHASearch",
    "AdaptiveSearch",
    "AdaptiveSimpleSearch",
    "AsyncHalvingSearch",
    "Checkpoint",
    "CheckpointMetrics",
    "Close",
    "Create",
    "ExitedReason",
    "GridSearch",
    "Hyperparameter",
    "HyperparameterSpace",
    "HyperparameterType",
    "Operation",
    "OperationType",
    "PBTSearch",
    "RandomSearch",
    "RequestID",
    "SearchContext",
    "SearchMethod",
    "SearchMethodType",
    "Searcher",
    "SearcherConfigError",
    "SearcherError",
    "Shutdown",
    "SimulationResults",
    "Simulator",
    "SingleSearch",
    "SnapshotError",
    "SyncHalvingSearch",
    "Train",
    "Validate",
    "ValidationMetrics",
    "new_search_method",
    "simulate",
]
