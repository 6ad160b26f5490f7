"""
Case aggregation: sum clinic visit counts to the grouping keys the rate
tables are built on.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import pandas as pd

from .config import AGE_GROUP_DTYPE, REFERENCE_YEAR

logger = logging.getLogger(__name__)


def _sum_cases(cases: pd.DataFrame, keys: List[str]) -> pd.DataFrame:
    """Sum ``Patient_count`` over ``keys`` into a ``Cases`` column.

    ``observed=True`` keeps only age groups that actually occur; the
    categorical dtype survives so the canonical level order still drives
    sorting and legends.
    """
    grouped = (
        cases.groupby(keys, as_index=False, observed=True)["Patient_count"]
        .sum()
        .rename(columns={"Patient_count": "Cases"})
    )
    grouped["Age_group"] = grouped["Age_group"].astype(AGE_GROUP_DTYPE)
    grouped["Cases"] = grouped["Cases"].astype("int64")
    return grouped.sort_values(keys, ignore_index=True)


def aggregate_national(
    cases: pd.DataFrame,
    *,
    year_min: Optional[int] = None,
    year_max: Optional[int] = None,
) -> pd.DataFrame:
    """Total cases per (Year, Age_group), optionally within a year range."""
    if year_min is not None or year_max is not None:
        mask = pd.Series(True, index=cases.index, dtype=bool)
        if year_min is not None:
            mask &= cases["Year"] >= year_min
        if year_max is not None:
            mask &= cases["Year"] <= year_max
        cases = cases.loc[mask]
    national = _sum_cases(cases, ["Year", "Age_group"])
    logger.debug("National aggregation: %d (Year, Age_group) rows", len(national))
    return national


def aggregate_city(cases: pd.DataFrame, year: int = REFERENCE_YEAR) -> pd.DataFrame:
    """Total cases per (Year, City, Age_group) for a single year."""
    subset = cases.loc[cases["Year"] == year]
    if subset.empty:
        logger.warning("No case rows for year %d; city-level rates will be empty", year)
    by_city = _sum_cases(subset, ["Year", "City", "Age_group"])
    logger.debug("City aggregation for %d: %d rows", year, len(by_city))
    return by_city
