"""
Command-line entry point: run the pipeline and write the HTML report.

    python -m ili_report --data-dir data --output build/ili_report.html
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from .config import REFERENCE_YEAR
from .data_manager import export_rate_tables, resolve_data_dir
from .exceptions import DataValidationError, RateComputationError, SourceNotFoundError
from .pipeline import run_pipeline
from .report import write_report

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Compute ILI incidence rates for Taiwan by year, age group and city "
            "and render them as an HTML report."
        )
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory with the input files (default: $ILI_DATA_DIR or ./data).",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("ili_report.html"),
        help="Path of the HTML report (default: ili_report.html).",
    )
    parser.add_argument(
        "--boundaries",
        type=Path,
        default=None,
        help="Boundary dataset to use instead of the shapefile in the data directory.",
    )
    parser.add_argument(
        "--reference-year",
        type=int,
        default=REFERENCE_YEAR,
        help=f"Year of the city population workbook (default: {REFERENCE_YEAR}).",
    )
    parser.add_argument(
        "--year-min",
        type=int,
        default=None,
        help="Lower bound year of the national series (default: first case year).",
    )
    parser.add_argument(
        "--year-max",
        type=int,
        default=None,
        help="Upper bound year of the national series (default: last case year).",
    )
    parser.add_argument(
        "--lenient",
        action="store_true",
        help="Drop cities missing from one city table with a warning instead of failing.",
    )
    parser.add_argument(
        "--export-dir",
        type=Path,
        default=None,
        help="Also write the rate tables as CSV files into this directory.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO).",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    data_dir = args.data_dir or resolve_data_dir()
    try:
        payload = run_pipeline(
            data_dir,
            sources={"boundaries": args.boundaries} if args.boundaries else None,
            reference_year=args.reference_year,
            year_min=args.year_min,
            year_max=args.year_max,
            strict=not args.lenient,
        )
    except (SourceNotFoundError, DataValidationError, RateComputationError) as exc:
        logger.error("Report generation aborted: %s", exc)
        raise SystemExit(1) from exc

    report_path = write_report(payload, args.output)
    if args.export_dir is not None:
        export_rate_tables(payload, args.export_dir)

    logger.info(
        "Years: %s–%s | National rows: %d | City rows: %d | Report: %s",
        payload["year_min"],
        payload["year_max"],
        len(payload["national"]),
        len(payload["city"]),
        report_path,
    )


if __name__ == "__main__":
    main()
