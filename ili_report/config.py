"""
Configuration constants for the Taiwan ILI incidence report.
"""

from typing import Dict, Tuple

import pandas as pd

# ======================================================
#  DATA SOURCES / CONSTANTS
# ======================================================
DATA_DIR_ENV: str = "ILI_DATA_DIR"

CASES_FILE: str = "ili_cases.csv"
POPULATION_BY_YEAR_FILE: str = "population_by_year.csv"
POPULATION_BY_CITY_FILE: str = "population_by_city_2023.xlsx"
BOUNDARY_FILE: str = "COUNTY_MOI.shp"

DEFAULT_SEP: str = ","

# Order matters: every table, groupby and legend follows this sequence.
AGE_GROUPS: Tuple[str, ...] = ("0-4", "5-14", "15-24", "25-64", "65+")
AGE_GROUP_DTYPE = pd.CategoricalDtype(categories=list(AGE_GROUPS), ordered=True)

# City-level denominators only exist for one year.
REFERENCE_YEAR: int = 2023

# Boundary dataset (MOI county shapefile) ships Big5 attribute text.
BOUNDARY_ENCODING: str = "big5"
BOUNDARY_CITY_COLUMN: str = "COUNTYNAME"

# Case data spells cities with the common variant character.
CITY_CHAR_ALIASES: Dict[str, str] = {"台": "臺"}

# ======================================================
#  PLOT DEFAULTS
# ======================================================
TAIWAN_LON_RANGE: Tuple[float, float] = (118.0, 122.9)
TAIWAN_LAT_RANGE: Tuple[float, float] = (21.8, 25.4)

AGE_GROUP_COLORS: Dict[str, str] = {
    "0-4": "#1f77b4",
    "5-14": "#ff7f0e",
    "15-24": "#2ca02c",
    "25-64": "#d62728",
    "65+": "#9467bd",
}

MAP_COLOR_SCALE: str = "YlOrRd"
NO_DATA_COLOR: str = "lightgrey"
