"""Core pipeline logic: turn ILI case counts into incidence rate tables.

This module orchestrates the loading, aggregation and rate computation
for the Taiwan ILI report:

* National rates by year and age group, from the case table and the
  yearly population table.
* City rates by age group for the reference year, from the case table and
  the city population workbook.
* One all-ages rate per city, merged onto the county polygons for the map.

The primary entry point is :func:`run_pipeline`, which returns every
table the presenter needs in a single payload dictionary.  The run is
deterministic: identical input files always produce identical tables.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional, Tuple

import pandas as pd

from .aggregate import aggregate_city, aggregate_national
from .config import (
    BOUNDARY_ENCODING,
    BOUNDARY_FILE,
    CASES_FILE,
    POPULATION_BY_CITY_FILE,
    POPULATION_BY_YEAR_FILE,
    REFERENCE_YEAR,
)
from .exceptions import DataValidationError
from .loader import (
    load_boundaries,
    load_cases,
    load_population_by_city,
    load_population_by_year,
)
from .rates import (
    attach_rates_to_regions,
    city_rates,
    decade_means,
    minimum_years,
    national_rates,
    overall_city_rates,
)

# Module‑level logger
logger = logging.getLogger(__name__)


def resolve_year_bounds(
    cases: pd.DataFrame,
    override_min: Optional[int],
    override_max: Optional[int],
) -> Tuple[int, int]:
    """Clamp the requested year range to the years present in the case table.

    Parameters
    ----------
    cases : pd.DataFrame
        Case table with an integer ``Year`` column.
    override_min, override_max : Optional[int]
        Requested bounds; ``None`` keeps the data's own minimum/maximum.

    Returns
    -------
    Tuple[int, int]
        The inclusive range ``(year_min, year_max)``.  Raises
        ``DataValidationError`` if the case table is empty or the requested range
        misses the data entirely.
    """
    years = cases["Year"].dropna().astype(int)
    if years.empty:
        raise DataValidationError("Cannot infer year range: case table has no rows.")

    auto_min, auto_max = int(years.min()), int(years.max())
    year_min = max(override_min, auto_min) if override_min is not None else auto_min
    year_max = min(override_max, auto_max) if override_max is not None else auto_max

    if year_min > year_max:
        raise DataValidationError(
            f"Requested years {override_min}–{override_max} do not overlap the "
            f"case data ({auto_min}–{auto_max})."
        )
    return year_min, year_max


def source_paths(data_dir: str | Path) -> Dict[str, Path]:
    """Default locations of the four inputs inside ``data_dir``."""
    base = Path(data_dir)
    return {
        "cases": base / CASES_FILE,
        "population_by_year": base / POPULATION_BY_YEAR_FILE,
        "population_by_city": base / POPULATION_BY_CITY_FILE,
        "boundaries": base / BOUNDARY_FILE,
    }


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------


def run_pipeline(
    data_dir: str | Path,
    *,
    sources: Optional[Dict[str, str | Path]] = None,
    reference_year: int = REFERENCE_YEAR,
    year_min: Optional[int] = None,
    year_max: Optional[int] = None,
    boundary_encoding: str = BOUNDARY_ENCODING,
    strict: bool = True,
) -> Dict[str, object]:
    """Run the full data pipeline and return the report payload.

    Parameters
    ----------
    data_dir : str or Path
        Directory holding the four input files under their default names.
    sources : dict, optional
        Per-input path overrides keyed like :func:`source_paths`.
    reference_year : int, optional
        Year of the city population workbook; city cases are restricted
        to it.
    year_min, year_max : Optional[int], optional
        Bounds on the national series.  Clamped to the case data range.
    boundary_encoding : str, optional
        Attribute encoding of the boundary shapefile.
    strict : bool, optional
        If ``True`` (default), a city present in only one of the city
        tables aborts the run instead of being dropped with a warning.

    Returns
    -------
    Dict[str, object]
        Loaded inputs (``cases``, ``population_by_year``,
        ``population_by_city``), rate tables (``national``, ``city``,
        ``overall``), the map layer (``regions``), the summaries
        (``decade_means``, ``minimum_years``) and the resolved
        ``year_min``/``year_max`` and ``reference_year``.
    """
    paths = source_paths(data_dir)
    paths.update({key: Path(value) for key, value in (sources or {}).items()})

    # 1. Load raw inputs
    cases = load_cases(paths["cases"])
    population_by_year = load_population_by_year(paths["population_by_year"])
    population_by_city = load_population_by_city(
        paths["population_by_city"], reference_year=reference_year
    )
    boundaries = load_boundaries(paths["boundaries"], encoding=boundary_encoding)

    # 2. Aggregate cases
    resolved_min, resolved_max = resolve_year_bounds(cases, year_min, year_max)
    cases_by_year = aggregate_national(cases, year_min=resolved_min, year_max=resolved_max)
    cases_by_city = aggregate_city(cases, year=reference_year)

    # 3. Rates
    national = national_rates(cases_by_year, population_by_year)
    city = city_rates(cases_by_city, population_by_city, strict=strict)
    overall = overall_city_rates(cases_by_city, population_by_city, strict=strict)
    regions = attach_rates_to_regions(boundaries, city, overall)

    logger.info(
        "Pipeline complete: %d national rows (%d–%d), %d city rows, %d regions",
        len(national),
        resolved_min,
        resolved_max,
        len(city),
        len(regions),
    )

    # Package and return payload for the report and the app
    return {
        "cases": cases,
        "population_by_year": population_by_year,
        "population_by_city": population_by_city,
        "national": national,
        "city": city,
        "overall": overall,
        "regions": regions,
        "decade_means": decade_means(national),
        "minimum_years": minimum_years(national),
        "year_min": resolved_min,
        "year_max": resolved_max,
        "reference_year": reference_year,
    }
