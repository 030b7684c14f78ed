#!/usr/bin/env python3
"""
Snowcap SIGCOMM 2021 Evaluation Runner.

Runs the eleven experiments of the Snowcap paper and generates all plots and
tables. Generating the full dataset takes a very long time, so every
iteration count is divided by a SPEEDUP factor (default 100, which takes
about 12 to 24 hours on a 24-core machine and makes the plots less
accurate). Precomputed data with SPEEDUP=1 ships with the artifact; use
--precomputed to only regenerate the plots from it.

Run from the root of a Snowcap checkout (or pass --root / set SNOWCAP_ROOT)
after building the release binaries.

Usage:
    # Run everything, asking for the SPEEDUP factor:
    python -m snowcap_eval.run_evaluation --all

    # Specific experiment(s) with a given factor:
    python -m snowcap_eval.run_evaluation --exp 3 4 --speedup 1000

    # Print commands without executing:
    python -m snowcap_eval.run_evaluation --all --speedup 100 --dry-run

    # Plots and tables from the precomputed results only:
    python -m snowcap_eval.run_evaluation --all --precomputed

Environment:
    SPEEDUP       speedup factor (skips the prompt)
    SNOWCAP_ROOT  project root
    THREADS_PP    extra flags for problem_probability (e.g. "-t 24")
    THREADS_SM    extra flags for snowcap_main
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from snowcap_eval.lib.catalog import EXPERIMENT_IDS, select_experiments
from snowcap_eval.lib.config import prompt_speedup, resolve_config
from snowcap_eval.lib.errors import ConfigurationError
from snowcap_eval.lib.orchestrator import Orchestrator
from snowcap_eval.lib.report import EXIT_CONFIG_ERROR
from snowcap_eval.lib.utils import DEFAULT_PYTHON, DEFAULT_RUST_LOG, TIMEOUT_SERVICE

log = logging.getLogger("snowcap_eval")

WELCOME = """\
Welcome to Snowcap Evaluation
-----------------------------

This script will run all experiments presented in the Snowcap paper. It will
also generate all plots and tables automatically.

Generating the entire dataset takes a very long time. Therefore, you can choose
a SPEEDUP factor, which reduces the number of iterations, making the resulting
plots inaccurate. Generating all data with a SPEEDUP factor of 100 will take
around 12 to 24 hours to compute on a system with 24 cores.
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Snowcap SIGCOMM 2021 Evaluation Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--exp",
        nargs="+",
        type=int,
        choices=EXPERIMENT_IDS,
        help=f"Experiment number(s) to run ({EXPERIMENT_IDS[0]}-{EXPERIMENT_IDS[-1]})",
    )
    parser.add_argument(
        "--all", action="store_true", help="Run all experiments"
    )
    parser.add_argument(
        "--speedup",
        help="SPEEDUP factor (default: $SPEEDUP, else ask; blank means 100)",
    )
    parser.add_argument(
        "--root", type=Path, help="Snowcap checkout (default: $SNOWCAP_ROOT or cwd)"
    )
    parser.add_argument(
        "--python",
        default=DEFAULT_PYTHON,
        help=f"Interpreter for the plot scripts (default: {DEFAULT_PYTHON})",
    )
    parser.add_argument(
        "--threads-pp",
        default=os.environ.get("THREADS_PP", ""),
        help="Thread flags for problem_probability (default: $THREADS_PP)",
    )
    parser.add_argument(
        "--threads-sm",
        default=os.environ.get("THREADS_SM", ""),
        help="Thread flags for snowcap_main (default: $THREADS_SM)",
    )
    parser.add_argument(
        "--rust-log",
        default=DEFAULT_RUST_LOG,
        help=f"RUST_LOG for the binaries (default: {DEFAULT_RUST_LOG}; experiment 11 uses info)",
    )
    parser.add_argument(
        "--timeout", type=float, help="Per-invocation timeout in seconds (default: none)"
    )
    parser.add_argument(
        "--service-timeout",
        type=float,
        default=TIMEOUT_SERVICE,
        help=f"Seconds to wait for gns3server (default: {TIMEOUT_SERVICE})",
    )
    parser.add_argument(
        "--service-url",
        help="Readiness URL for gns3server; 'none' falls back to a fixed delay",
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Print commands without executing"
    )
    parser.add_argument(
        "--skip-existing",
        action="store_true",
        help="Do not re-run points whose artifact already exists",
    )
    parser.add_argument(
        "--precomputed",
        action="store_true",
        help="Only generate plots and tables from the precomputed results",
    )
    parser.add_argument(
        "--no-progress", action="store_true", help="Disable the progress bar"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose logging"
    )
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    if not args.exp and not args.all:
        parser.print_help()
        return EXIT_CONFIG_ERROR

    options = dict(
        verbose=args.verbose,
        rust_log=args.rust_log,
        python=args.python,
        timeout=args.timeout,
        dry_run=args.dry_run,
        skip_existing=args.skip_existing,
        precomputed=args.precomputed,
        show_progress=not args.no_progress,
        service_timeout=args.service_timeout,
    )
    if args.service_url is not None:
        options["service_url"] = None if args.service_url.lower() == "none" else args.service_url

    try:
        speedup = args.speedup if args.speedup is not None else os.environ.get("SPEEDUP")
        if speedup is None and not args.precomputed:
            print(WELCOME)
            speedup = prompt_speedup()
        config = resolve_config(
            speedup=speedup,
            root=args.root,
            threads_pp=args.threads_pp,
            threads_sm=args.threads_sm,
            **options,
        )
    except ConfigurationError as e:
        log.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    if not config.eval_dir.is_dir():
        log.error(f"{config.eval_dir} not found; run from a Snowcap checkout or pass --root")
        return EXIT_CONFIG_ERROR

    definitions = select_experiments(None if args.all else args.exp)
    report = Orchestrator(config).run(definitions, handle_signals=True)

    if not config.precomputed and not config.dry_run:
        dirs = ", ".join(o.result_dir for o in report.outcomes if o.result_dir)
        log.info(f"Results are stored in: {dirs}")
    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())
