"""Shared fixtures: small but complete input files written into tmp_path."""

from __future__ import annotations

from html import escape
from pathlib import Path
from typing import Dict, List, Sequence
from zipfile import ZipFile

import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import box

# -----------------------------------------------------------------------------
# Sample data definition
# -----------------------------------------------------------------------------

YEARS = list(range(2014, 2024))
LOW_YEAR = 2021
REFERENCE_YEAR = 2023

# City -> size factor applied to case counts and populations.
CITIES: Dict[str, float] = {"臺北市": 1.0, "新北市": 2.0, "高雄市": 1.5}
# The case file spells Taipei with the common variant character.
CASE_SPELLING: Dict[str, str] = {"臺北市": "台北市"}

AGE_CASES: Dict[str, int] = {"0-4": 3000, "5-14": 2000, "15-24": 1000, "25-64": 6000, "65+": 1500}
NATIONAL_POP: Dict[str, int] = {
    "0-4": 100_000,
    "5-14": 200_000,
    "15-24": 250_000,
    "25-64": 1_200_000,
    "65+": 400_000,
}
CITY_POP: Dict[str, int] = {"0-4": 10_000, "5-14": 20_000, "15-24": 25_000, "25-64": 120_000, "65+": 40_000}

POLYGONS = {
    "臺北市": box(121.45, 25.0, 121.6, 25.2),
    "新北市": box(121.3, 24.8, 121.45, 25.1),
    "高雄市": box(120.2, 22.5, 120.6, 23.0),
    "澎湖縣": box(119.4, 23.4, 119.7, 23.7),
}


def case_count(year: int, age: str, city: str) -> int:
    factor = 0.3 if year == LOW_YEAR else 1 + (year - YEARS[0]) * 0.02
    return int(round(AGE_CASES[age] * CITIES[city] * factor))


def city_population(age: str, city: str) -> int:
    return int(CITY_POP[age] * CITIES[city])


# -----------------------------------------------------------------------------
# File writers
# -----------------------------------------------------------------------------

MAIN_NS = "http://schemas.openxmlformats.org/spreadsheetml/2006/main"
REL_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"


def write_xlsx(
    path: Path,
    rows: Sequence[Sequence[object]],
    *,
    sheet_name: str = "Sheet1",
    shared_strings: bool = False,
) -> Path:
    """Write a one-sheet xlsx with numbers as values and text inline or shared."""
    strings: List[str] = []
    row_xml = []
    for r, row in enumerate(rows, start=1):
        cells = []
        for c, value in enumerate(row):
            ref = f"{chr(ord('A') + c)}{r}"
            if isinstance(value, (int, float)):
                cells.append(f'<c r="{ref}"><v>{value}</v></c>')
            elif shared_strings:
                strings.append(str(value))
                cells.append(f'<c r="{ref}" t="s"><v>{len(strings) - 1}</v></c>')
            else:
                cells.append(
                    f'<c r="{ref}" t="inlineStr"><is><t>{escape(str(value))}</t></is></c>'
                )
        row_xml.append(f'<row r="{r}">{"".join(cells)}</row>')

    sheet = f'<worksheet xmlns="{MAIN_NS}"><sheetData>{"".join(row_xml)}</sheetData></worksheet>'
    workbook = (
        f'<workbook xmlns="{MAIN_NS}" xmlns:r="{REL_NS}"><sheets>'
        f'<sheet name="{sheet_name}" sheetId="1" r:id="rId1"/></sheets></workbook>'
    )
    rels = (
        '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
        f'<Relationship Id="rId1" Type="{REL_NS}/worksheet" Target="worksheets/sheet1.xml"/>'
        "</Relationships>"
    )
    with ZipFile(path, "w") as zf:
        zf.writestr("xl/workbook.xml", workbook)
        zf.writestr("xl/_rels/workbook.xml.rels", rels)
        zf.writestr("xl/worksheets/sheet1.xml", sheet)
        if shared_strings:
            items = "".join(f"<si><t>{escape(s)}</t></si>" for s in strings)
            zf.writestr("xl/sharedStrings.xml", f'<sst xmlns="{MAIN_NS}">{items}</sst>')
    return path


def write_cases(path: Path) -> Path:
    """Two rows per (Year, City, Age_group), splitting each count."""
    records = []
    for year in YEARS:
        for city in CITIES:
            for age in AGE_CASES:
                total = case_count(year, age, city)
                half = total // 2
                name = CASE_SPELLING.get(city, city)
                records.append((year, name, age, half))
                records.append((year, name, age, total - half))
    pd.DataFrame(records, columns=["Year", "City", "Age_group", "Patient_count"]).to_csv(
        path, index=False
    )
    return path


def write_population_by_year(path: Path) -> Path:
    records = [(year, age, NATIONAL_POP[age]) for year in YEARS for age in NATIONAL_POP]
    pd.DataFrame(records, columns=["Years", "Age_level", "Population"]).to_csv(path, index=False)
    return path


def write_population_by_city(path: Path) -> Path:
    header = ["City", *CITY_POP, "Total"]
    rows: List[List[object]] = [header]
    for city in CITIES:
        counts = [city_population(age, city) for age in CITY_POP]
        rows.append([city, *counts, sum(counts)])
    return write_xlsx(path, rows)


def write_boundaries(path: Path) -> Path:
    gdf = gpd.GeoDataFrame(
        {
            "countyname": list(POLYGONS),
            "area": [1.0, None, 2.0, 3.0],
        },
        geometry=list(POLYGONS.values()),
        crs="EPSG:4326",
    )
    gdf.to_file(path, driver="GeoJSON")
    return path


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Directory holding all four inputs under the pipeline's default names
    (the boundary file is GeoJSON and passed via ``sources``)."""
    write_cases(tmp_path / "ili_cases.csv")
    write_population_by_year(tmp_path / "population_by_year.csv")
    write_population_by_city(tmp_path / "population_by_city_2023.xlsx")
    write_boundaries(tmp_path / "counties.geojson")
    return tmp_path


@pytest.fixture
def sources(data_dir: Path) -> Dict[str, Path]:
    return {"boundaries": data_dir / "counties.geojson"}


@pytest.fixture
def cases(data_dir: Path) -> pd.DataFrame:
    from ili_report.loader import load_cases

    return load_cases(data_dir / "ili_cases.csv")


@pytest.fixture
def population_by_year(data_dir: Path) -> pd.DataFrame:
    from ili_report.loader import load_population_by_year

    return load_population_by_year(data_dir / "population_by_year.csv")


@pytest.fixture
def population_by_city(data_dir: Path) -> pd.DataFrame:
    from ili_report.loader import load_population_by_city

    return load_population_by_city(data_dir / "population_by_city_2023.xlsx")


@pytest.fixture
def boundaries(data_dir: Path) -> gpd.GeoDataFrame:
    from ili_report.loader import load_boundaries

    return load_boundaries(data_dir / "counties.geojson")


@pytest.fixture
def payload(data_dir: Path, sources: Dict[str, Path]) -> Dict[str, object]:
    from ili_report.pipeline import run_pipeline

    return run_pipeline(data_dir, sources=sources)
