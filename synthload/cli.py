from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from synthload.config import (
    get_settings,
    parse_source_options,
    parse_step_options,
    read_json_argument,
)
from synthload.driver import Driver
from synthload.engine import ErrorPolicy, LocalEngine
from synthload.exceptions import ConfigurationError
from synthload.metrics.publisher import PUBLISHER_NAMES, make_publisher

EXIT_OK = 0
EXIT_RUN_FAILED = 1
EXIT_CONFIG_ERROR = 2


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="Run a synthetic ParDo-style load test and publish its metrics."
    )
    parser.add_argument(
        "--source-options",
        required=True,
        help='Source options JSON, e.g. \'{"numRecords": 1000}\', or @path.',
    )
    parser.add_argument(
        "--step-options",
        required=True,
        help='Step options JSON, e.g. \'{"outputRecordsPerInputRecord": 2}\', or @path.',
    )
    parser.add_argument(
        "--number-of-counter-operations",
        type=int,
        default=1,
        help="Number of consecutive synthetic steps.",
    )
    parser.add_argument(
        "--namespace", default=settings.namespace, help="Metrics namespace."
    )
    parser.add_argument(
        "--workers", type=int, default=settings.workers, help="Worker threads."
    )
    parser.add_argument(
        "--error-policy",
        choices=[policy.value for policy in ErrorPolicy],
        default=settings.error_policy,
        help="What to do with records that exhaust their attempts.",
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=settings.max_attempts,
        help="Attempts per record before it is reported as failed.",
    )
    parser.add_argument(
        "--publisher",
        choices=list(PUBLISHER_NAMES),
        default=settings.publisher,
        help="Where to publish the metrics summary.",
    )
    parser.add_argument("--output", help="File to publish to (stdout when absent).")
    parser.add_argument(
        "--log-level", default=settings.log_level, help="Logging level."
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = _parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        source_options = parse_source_options(read_json_argument(args.source_options))
        step_options = parse_step_options(read_json_argument(args.step_options))
        engine = LocalEngine(
            workers=args.workers,
            error_policy=args.error_policy,
            max_attempts=args.max_attempts,
        )
        driver = Driver(
            source_options,
            step_options,
            count=args.number_of_counter_operations,
            namespace=args.namespace,
            engine=engine,
            publisher=make_publisher(args.publisher, args.output),
        )
    except ConfigurationError as exc:
        print(f"Configuration error: {exc.message}", file=sys.stderr)
        for error in exc.details.get("errors", []):
            location = ".".join(str(part) for part in error.get("loc", ()))
            print(f"  {location}: {error.get('msg')}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    report = driver.run()
    if not report.success:
        print(
            f"Run '{report.namespace}' failed with {report.engine_errors} record error(s).",
            file=sys.stderr,
        )
        return EXIT_RUN_FAILED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
