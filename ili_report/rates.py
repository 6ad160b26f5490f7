"""Incidence rates: join aggregated case counts against population denominators.

Three rate tables are produced:

* ``national_rates``: one row per (Year, Age_group).
* ``city_rates``: one row per (City, Age_group) for the reference year,
  built age group by age group with an explicit join on the city name.
* ``overall_city_rates``: one all-ages rate per city, used by the map.

Every table carries ``Cases``, ``Population`` and ``Percentage`` where
``Percentage = Cases / Population``.  The ratio is a plain fraction and may
exceed 1 because one person can account for several visits.
"""

from __future__ import annotations

import logging
from typing import List

import geopandas as gpd
import pandas as pd

from .config import AGE_GROUP_DTYPE, AGE_GROUPS
from .exceptions import RateComputationError
from .loader import city_population_totals

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check_denominators(df: pd.DataFrame, *, label: str) -> None:
    """Refuse to divide by a missing or non-positive population."""
    bad = df["Population"].isna() | (df["Population"] <= 0)
    if bad.any():
        rows = df.loc[bad].drop(columns=["Cases"], errors="ignore").head(5)
        raise RateComputationError(
            f"{label}: population must be positive; offending rows:\n{rows}"
        )


def _check_unique(df: pd.DataFrame, keys: List[str], *, label: str) -> None:
    dupes = df.duplicated(subset=keys, keep=False)
    if dupes.any():
        values = df.loc[dupes, keys].drop_duplicates().values.tolist()
        raise RateComputationError(f"{label}: duplicate keys {values}")


def _with_percentage(df: pd.DataFrame, *, label: str) -> pd.DataFrame:
    _check_denominators(df, label=label)
    out = df.copy()
    out["Cases"] = out["Cases"].astype("int64")
    out["Population"] = out["Population"].astype("int64")
    out["Percentage"] = out["Cases"] / out["Population"]
    return out


def _key_join(
    cases: pd.DataFrame,
    population: pd.DataFrame,
    *,
    on: List[str],
    label: str,
    strict: bool,
) -> pd.DataFrame:
    """Inner-join cases to population on explicit keys, reporting strays.

    Keys present on only one side are either fatal (``strict``) or logged
    as warnings and dropped.
    """
    merged = cases.merge(
        population, on=on, how="outer", indicator=True, validate="one_to_one"
    )
    unmatched = merged.loc[merged["_merge"] != "both"]
    if not unmatched.empty:
        cases_only = unmatched.loc[unmatched["_merge"] == "left_only", on].values.tolist()
        pop_only = unmatched.loc[unmatched["_merge"] == "right_only", on].values.tolist()
        message = (
            f"{label}: keys without a population denominator {cases_only}; "
            f"keys without case counts {pop_only}"
        )
        if strict:
            raise RateComputationError(message)
        logger.warning("%s; these rows are dropped", message)
    return merged.loc[merged["_merge"] == "both"].drop(columns="_merge")


# ---------------------------------------------------------------------------
# Rate tables
# ---------------------------------------------------------------------------


def national_rates(
    cases_by_year: pd.DataFrame, population_by_year: pd.DataFrame
) -> pd.DataFrame:
    """Compute national incidence per (Year, Age_group).

    Parameters
    ----------
    cases_by_year : pd.DataFrame
        Output of :func:`ili_report.aggregate.aggregate_national`.
    population_by_year : pd.DataFrame
        Output of :func:`ili_report.loader.load_population_by_year`.

    Returns
    -------
    pd.DataFrame
        Columns ``Year``, ``Age_group``, ``Cases``, ``Population`` and
        ``Percentage``, sorted by year and age group.  Case rows without a
        matching denominator are dropped with a warning naming each key,
        so a gap in population coverage never passes silently.
    """
    keys = ["Year", "Age_group"]
    _check_unique(cases_by_year, keys, label="national cases")
    _check_unique(population_by_year, keys, label="national population")

    merged = cases_by_year.merge(
        population_by_year[keys + ["Population"]],
        on=keys,
        how="left",
        indicator=True,
    )
    missing = merged.loc[merged["_merge"] == "left_only", keys]
    for year, age in missing.itertuples(index=False):
        logger.warning(
            "No population denominator for Year=%s Age_group=%s; row dropped", year, age
        )

    joined = merged.loc[merged["_merge"] == "both"].drop(columns="_merge")
    rates = _with_percentage(joined, label="national rates")
    rates["Age_group"] = rates["Age_group"].astype(AGE_GROUP_DTYPE)
    return rates[["Year", "Age_group", "Cases", "Population", "Percentage"]].sort_values(
        keys, ignore_index=True
    )


def city_rates(
    cases_by_city: pd.DataFrame,
    population_by_city: pd.DataFrame,
    *,
    strict: bool = True,
) -> pd.DataFrame:
    """Compute city incidence per (City, Age_group) for the reference year.

    Each age group is handled separately: its case subset is joined to the
    denominators for that exact age group on ``City``.  Age groups missing
    from either table are skipped.  Duplicate cities are always fatal;
    cities present on only one side are fatal when ``strict`` and
    otherwise dropped with a warning.

    Returns
    -------
    pd.DataFrame
        Columns ``Year``, ``City``, ``Age_group``, ``Cases``,
        ``Population`` and ``Percentage``, one block per age group in the
        canonical order, cities sorted within each block.
    """
    _check_unique(cases_by_city, ["City", "Age_group"], label="city cases")
    _check_unique(population_by_city, ["City", "Age_group"], label="city population")

    blocks: List[pd.DataFrame] = []
    for age in AGE_GROUPS:
        case_part = cases_by_city.loc[
            cases_by_city["Age_group"] == age, ["Year", "City", "Cases"]
        ]
        pop_part = population_by_city.loc[
            population_by_city["Age_group"] == age, ["City", "Population"]
        ]
        if case_part.empty or pop_part.empty:
            logger.debug("Age group %s absent from city cases or population; skipped", age)
            continue

        joined = _key_join(
            case_part, pop_part, on=["City"], label=f"city rates ({age})", strict=strict
        )
        joined["Age_group"] = age
        blocks.append(_with_percentage(joined, label=f"city rates ({age})"))

    columns = ["Year", "City", "Age_group", "Cases", "Population", "Percentage"]
    if not blocks:
        logger.warning("No age group is present in both city tables")
        empty = pd.DataFrame(columns=columns)
        empty["Age_group"] = empty["Age_group"].astype(AGE_GROUP_DTYPE)
        return empty

    rates = pd.concat(blocks, ignore_index=True)
    rates["Year"] = rates["Year"].astype("int64")
    rates["Age_group"] = rates["Age_group"].astype(AGE_GROUP_DTYPE)
    return rates[columns].sort_values(["Age_group", "City"], ignore_index=True)


def overall_city_rates(
    cases_by_city: pd.DataFrame,
    population_by_city: pd.DataFrame,
    *,
    strict: bool = True,
) -> pd.DataFrame:
    """All-ages incidence per city: summed cases over summed denominators."""
    case_totals = cases_by_city.groupby("City", as_index=False)["Cases"].sum()
    pop_totals = city_population_totals(population_by_city).rename(
        columns={"Total": "Population"}
    )
    joined = _key_join(
        case_totals, pop_totals, on=["City"], label="overall city rates", strict=strict
    )
    rates = _with_percentage(joined, label="overall city rates")
    return rates[["City", "Cases", "Population", "Percentage"]].sort_values(
        "City", ignore_index=True
    )


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------


def decade_means(national: pd.DataFrame) -> pd.DataFrame:
    """Mean national Percentage per age group across every year in the table."""
    means = (
        national.groupby("Age_group", observed=True)["Percentage"]
        .mean()
        .reset_index(name="Mean")
    )
    means["Age_group"] = means["Age_group"].astype(AGE_GROUP_DTYPE)
    return means.sort_values("Age_group", ignore_index=True)


def minimum_years(national: pd.DataFrame) -> pd.DataFrame:
    """Year with the lowest national Percentage for each age group."""
    if national.empty:
        return pd.DataFrame(columns=["Age_group", "Year", "Percentage"])
    idx = national.groupby("Age_group", observed=True)["Percentage"].idxmin()
    lows = national.loc[idx.values, ["Age_group", "Year", "Percentage"]]
    return lows.sort_values("Age_group", ignore_index=True)


def attach_rates_to_regions(
    boundaries: gpd.GeoDataFrame,
    city: pd.DataFrame,
    overall: pd.DataFrame,
) -> gpd.GeoDataFrame:
    """Widen city rates and merge them onto the boundary polygons.

    The result keeps every polygon and adds one Percentage column per age
    group plus ``Overall``.  Polygons without rates keep NaN (drawn as
    no-data on the map); cities without a polygon are reported.
    """
    wide = city.assign(Age_group=city["Age_group"].astype(str)).pivot(
        index="City", columns="Age_group", values="Percentage"
    )
    wide = wide.reindex(columns=[g for g in AGE_GROUPS if g in wide.columns])
    wide.columns.name = None
    wide = wide.join(overall.set_index("City")["Percentage"].rename("Overall"), how="outer")
    wide.index.name = "City"
    wide = wide.reset_index()

    polygon_cities = set(boundaries["City"])
    rate_cities = set(wide["City"])
    no_polygon = sorted(rate_cities - polygon_cities)
    no_rates = sorted(polygon_cities - rate_cities)
    if no_polygon:
        logger.warning("Cities with rates but no boundary polygon: %s", no_polygon)
    if no_rates:
        logger.warning("Boundary polygons without rates: %s", no_rates)

    regions = boundaries.merge(wide, on="City", how="left")
    return regions.sort_values("City", ignore_index=True)
