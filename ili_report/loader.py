"""Load and validate the report's four input sources.

* The ILI case table: long-format clinic visit counts by year, city and
  age group.
* The national population table: one denominator per year and age group.
* The city population workbook: one row per city with a column per age
  band, for the reference year only.
* The county boundary dataset: polygons keyed by a city-name attribute,
  usually a Big5-encoded shapefile.

Every loader returns a frame with consistent dtypes (``Year`` as int,
``Age_group`` as the ordered categorical from :mod:`ili_report.config`,
``City`` as a normalized string) or raises one of the exceptions in
:mod:`ili_report.exceptions`.  There is no partial-load policy: a single
malformed row aborts the load.
"""

from __future__ import annotations

import logging
import unicodedata
from pathlib import Path
from typing import Iterable, List, Optional

import geopandas as gpd
import pandas as pd

from .config import (
    AGE_GROUP_DTYPE,
    AGE_GROUPS,
    BOUNDARY_CITY_COLUMN,
    BOUNDARY_ENCODING,
    CITY_CHAR_ALIASES,
    DEFAULT_SEP,
    REFERENCE_YEAR,
)
from .exceptions import DataValidationError, SourceNotFoundError
from .xlsx import read_xlsx

logger = logging.getLogger(__name__)

CITY_COLUMN_CANDIDATES = ("City", "city", "CITY", "縣市")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def ensure_columns(df: pd.DataFrame, required: Iterable[str], *, source: str) -> None:
    """Raise an error if the DataFrame lacks any of the required columns."""
    missing = [col for col in required if col not in df.columns]
    if missing:
        raise DataValidationError(f"{source}: missing expected columns: {missing}")


def _require_file(path: str | Path) -> Path:
    path = Path(path)
    if not path.exists():
        raise SourceNotFoundError(f"Source not found: {path}")
    return path


def normalize_city_name(name: object) -> str:
    """Return a canonical city name: NFC, trimmed, variant characters unified."""
    if isinstance(name, bytes):
        name = name.decode(BOUNDARY_ENCODING)
    text = unicodedata.normalize("NFC", str(name)).strip()
    for variant, canonical in CITY_CHAR_ALIASES.items():
        text = text.replace(variant, canonical)
    return text


def to_age_group(series: pd.Series, *, source: str) -> pd.Series:
    """Coerce labels to the ordered age-group categorical; unknown bands are fatal."""
    labels = series.astype(str).str.strip()
    coerced = labels.astype(AGE_GROUP_DTYPE)
    bad = labels[coerced.isna()].unique().tolist()
    if bad:
        raise DataValidationError(
            f"{source}: unrecognized age group(s) {bad}; expected one of {list(AGE_GROUPS)}"
        )
    return coerced


def to_count(
    series: pd.Series, *, column: str, source: str, positive: bool = False
) -> pd.Series:
    """Coerce a count column to int64, rejecting blanks, fractions and negatives."""
    values = pd.to_numeric(series, errors="coerce")
    bad_mask = values.isna() | (values % 1 != 0)
    bad_mask |= values <= 0 if positive else values < 0
    if bad_mask.any():
        sample = series[bad_mask].head(5).tolist()
        expectation = "positive" if positive else "non-negative"
        raise DataValidationError(
            f"{source}: column {column!r} must hold {expectation} integers; "
            f"{int(bad_mask.sum())} bad value(s), e.g. {sample}"
        )
    return values.astype("int64")


def to_year(series: pd.Series, *, source: str) -> pd.Series:
    values = pd.to_numeric(series, errors="coerce")
    if values.isna().any() or (values % 1 != 0).any():
        sample = series[values.isna() | (values % 1 != 0)].head(5).tolist()
        raise DataValidationError(f"{source}: non-integer Year value(s), e.g. {sample}")
    return values.astype("int64")


def _read_csv(path: Path, sep: str) -> pd.DataFrame:
    try:
        return pd.read_csv(path, sep=sep, encoding="utf-8-sig")
    except (pd.errors.ParserError, UnicodeDecodeError) as exc:
        raise DataValidationError(f"{path}: unparseable table ({exc})") from exc


# ---------------------------------------------------------------------------
# Data loaders
# ---------------------------------------------------------------------------


def load_cases(path: str | Path, sep: str = DEFAULT_SEP) -> pd.DataFrame:
    """Load the long-format ILI case table.

    Parameters
    ----------
    path : str or Path
        CSV with columns ``Year``, ``City``, ``Age_group`` and
        ``Patient_count``.
    sep : str, optional
        Column delimiter; defaults to ``","``.

    Returns
    -------
    pd.DataFrame
        Columns ``Year`` (int), ``City`` (str), ``Age_group`` (ordered
        categorical) and ``Patient_count`` (int).
    """
    path = _require_file(path)
    source = path.name
    df = _read_csv(path, sep)
    ensure_columns(df, ["Year", "City", "Age_group", "Patient_count"], source=source)
    if df.empty:
        raise DataValidationError(f"{source}: case table has no rows")
    if df["City"].isna().any():
        raise DataValidationError(
            f"{source}: {int(df['City'].isna().sum())} row(s) without a City"
        )

    cases = pd.DataFrame(
        {
            "Year": to_year(df["Year"], source=source),
            "City": df["City"].map(normalize_city_name),
            "Age_group": to_age_group(df["Age_group"], source=source),
            "Patient_count": to_count(
                df["Patient_count"], column="Patient_count", source=source
            ),
        }
    )
    logger.info(
        "Loaded %d case rows from %s (years %d-%d, %d cities)",
        len(cases),
        source,
        cases["Year"].min(),
        cases["Year"].max(),
        cases["City"].nunique(),
    )
    return cases


def load_population_by_year(path: str | Path, sep: str = DEFAULT_SEP) -> pd.DataFrame:
    """Load the national population table (``Years``/``Age_level``/``Population``).

    Columns are renamed to ``Year``/``Age_group``/``Population``; a duplicate
    (Year, Age_group) pair is rejected because it would double a denominator.
    """
    path = _require_file(path)
    source = path.name
    df = _read_csv(path, sep).rename(columns={"Years": "Year", "Age_level": "Age_group"})
    ensure_columns(df, ["Year", "Age_group", "Population"], source=source)

    population = pd.DataFrame(
        {
            "Year": to_year(df["Year"], source=source),
            "Age_group": to_age_group(df["Age_group"], source=source),
            "Population": to_count(
                df["Population"], column="Population", source=source, positive=True
            ),
        }
    )
    dupes = population.duplicated(subset=["Year", "Age_group"], keep=False)
    if dupes.any():
        keys = population.loc[dupes, ["Year", "Age_group"]].drop_duplicates()
        raise DataValidationError(
            f"{source}: duplicate population rows for {keys.values.tolist()}"
        )
    return population.sort_values(["Year", "Age_group"], ignore_index=True)


def _find_city_column(columns: Iterable[str], *, source: str) -> str:
    for candidate in CITY_COLUMN_CANDIDATES:
        if candidate in columns:
            return candidate
    raise DataValidationError(
        f"{source}: no city column found (looked for {list(CITY_COLUMN_CANDIDATES)})"
    )


def load_population_by_city(
    path: str | Path,
    *,
    reference_year: int = REFERENCE_YEAR,
    sheet: Optional[str] = None,
) -> pd.DataFrame:
    """Load the city population workbook and melt it to long format.

    The workbook holds one row per city and one column per age band.  If a
    ``Year`` column is present, rows are restricted to ``reference_year``.
    Columns that are not a recognised age band (totals, notes) are ignored.

    Returns
    -------
    pd.DataFrame
        Columns ``City``, ``Age_group`` and ``Population`` sorted by city
        and then age group.
    """
    path = _require_file(path)
    source = path.name
    try:
        raw = read_xlsx(path, sheet=sheet)
    except (KeyError, ValueError) as exc:
        raise DataValidationError(f"{source}: {exc}") from exc
    if raw.empty:
        raise DataValidationError(f"{source}: worksheet is empty")

    city_col = _find_city_column(raw.columns, source=source)
    if "Year" in raw.columns:
        years = to_year(raw["Year"], source=source)
        raw = raw.loc[years == reference_year]
        if raw.empty:
            raise DataValidationError(f"{source}: no rows for reference year {reference_year}")

    age_cols: List[str] = [col for col in AGE_GROUPS if col in raw.columns]
    if not age_cols:
        raise DataValidationError(
            f"{source}: expected age band columns {list(AGE_GROUPS)}, found {list(raw.columns)}"
        )
    absent = [col for col in AGE_GROUPS if col not in age_cols]
    if absent:
        logger.warning("%s: no population columns for age group(s) %s", source, absent)

    wide = raw[[city_col, *age_cols]].rename(columns={city_col: "City"})
    wide = wide[wide["City"].astype(str).str.strip() != ""]
    long = wide.melt(id_vars="City", var_name="Age_group", value_name="Population")

    population = pd.DataFrame(
        {
            "City": long["City"].map(normalize_city_name),
            "Age_group": to_age_group(long["Age_group"], source=source),
            "Population": to_count(
                long["Population"], column="Population", source=source, positive=True
            ),
        }
    )
    logger.info(
        "Loaded %s population for %d cities from %s",
        reference_year,
        population["City"].nunique(),
        source,
    )
    return population.sort_values(["City", "Age_group"], ignore_index=True)


def city_population_totals(population_by_city: pd.DataFrame) -> pd.DataFrame:
    """Sum the age-group denominators into one ``Total`` per city."""
    return (
        population_by_city.groupby("City", as_index=False)["Population"]
        .sum()
        .rename(columns={"Population": "Total"})
        .sort_values("City", ignore_index=True)
    )


def _decode_text(value: object, encoding: str) -> object:
    if isinstance(value, bytes):
        value = value.decode(encoding)
    if isinstance(value, str):
        return unicodedata.normalize("NFC", value)
    return value


def load_boundaries(
    path: str | Path,
    *,
    encoding: str = BOUNDARY_ENCODING,
    city_column: str = BOUNDARY_CITY_COLUMN,
) -> gpd.GeoDataFrame:
    """Load the county boundary polygons.

    Parameters
    ----------
    path : str or Path
        Any vector format geopandas reads.  Shapefiles are decoded with
        ``encoding``; self-describing formats (GeoJSON, GeoPackage) are
        read as UTF-8.
    encoding : str, optional
        Attribute encoding of legacy shapefiles (default Big5).
    city_column : str, optional
        Attribute holding the city name; matched case-insensitively.

    Returns
    -------
    gpd.GeoDataFrame
        Upper-cased attribute columns, missing numeric attributes set to
        zero, a ``City`` key column, lon/lat coordinates (EPSG:4326) and
        rows sorted by city.
    """
    path = _require_file(path)
    source = path.name
    read_kwargs = {"encoding": encoding} if path.suffix.lower() == ".shp" else {}
    try:
        gdf = gpd.read_file(path, **read_kwargs)
    except Exception as exc:
        raise DataValidationError(f"{source}: unreadable boundary dataset ({exc})") from exc

    geom_col = gdf.geometry.name
    gdf = gdf.rename(columns={c: str(c).upper() for c in gdf.columns if c != geom_col})

    text_cols = [
        c
        for c in gdf.columns
        if c != geom_col
        and (pd.api.types.is_object_dtype(gdf[c]) or pd.api.types.is_string_dtype(gdf[c]))
    ]
    for col in text_cols:
        gdf[col] = gdf[col].map(lambda v: _decode_text(v, encoding))

    num_cols = [c for c in gdf.select_dtypes(include="number").columns if c != geom_col]
    gdf[num_cols] = gdf[num_cols].fillna(0)

    key = city_column.upper()
    if key not in gdf.columns:
        raise DataValidationError(
            f"{source}: city attribute {city_column!r} not found in {list(gdf.columns)}"
        )
    gdf["City"] = gdf[key].map(normalize_city_name)

    if gdf.crs is not None and gdf.crs.to_epsg() != 4326:
        gdf = gdf.to_crs(epsg=4326)

    logger.info("Loaded %d boundary polygons from %s", len(gdf), source)
    return gdf.sort_values("City", ignore_index=True)
