# hpsearch/__main__.py
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

"""Command-line entry point.

Usage:
    python -m hpsearch preview experiment.json [--seed 7] [--sim-seed 0] [--json]

``preview`` loads a configuration file (searcher settings, hyperparameter
declarations and seed), runs the search against simulated trials and
prints what every trial would have done.
"""

import argparse
import json
import logging
import os
import sys

from hpsearch.config import Config
from hpsearch.errors import SearcherError
from hpsearch.searcher.searcher import Searcher
from hpsearch.searcher.simulate import simulate

logger = logging.getLogger(__name__)


def preview(args: argparse.Namespace) -> int:
    if not os.path.exists(args.config):
        logger.error(f"[Preview] Config file not found: {args.config}")
        return 1

    config = Config.load(args.config)
    seed = args.seed if args.seed is not None else config.seed
    searcher = Searcher.from_config(config.searcher, config.hyperparameters, seed=seed)
    results = simulate(searcher, seed=args.sim_seed, shuffle=not args.in_order)

    unit = config.searcher.unit.value
    if args.json:
        print(json.dumps({**results.to_dict(), "unit": unit}, indent=2))
    else:
        print(results.summary(unit))

    if results.shutdown is None or results.shutdown.failure:
        logger.error(f"[Preview] Search did not complete cleanly: {results.shutdown}")
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the hpsearch CLI."""
    parser = argparse.ArgumentParser(prog="hpsearch", description="Hyperparameter search engine")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    preview_parser = subparsers.add_parser(
        "preview", help="Simulate a search and print each trial's workload"
    )
    preview_parser.add_argument("config", type=str, help="Path to configuration JSON")
    preview_parser.add_argument(
        "--seed", type=int, default=None, help="Searcher seed (default: from config)"
    )
    preview_parser.add_argument(
        "--sim-seed", type=int, default=0, help="Seed of the simulated executor (default: 0)"
    )
    preview_parser.add_argument(
        "--in-order",
        action="store_true",
        help="Run trials in creation order instead of interleaving them randomly",
    )
    preview_parser.add_argument("--json", action="store_true", help="Print results as JSON")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(asctime)s] [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        return preview(args)
    except (SearcherError, ValueError) as e:
        logger.error(f"[Preview] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
