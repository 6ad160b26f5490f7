"""Assemble the five figures and the narrative into one HTML document.

The narrative is generated from the rate tables so the text always agrees
with the plots: it quotes each age group's mean rate over the period, the
year in which each group's rate bottomed out, and the highest and lowest
cities on the map.
"""

from __future__ import annotations

import html
import logging
from pathlib import Path
from typing import Dict, List

import pandas as pd
import plotly.graph_objects as go

from .plotting import box_plot, choropleth_map, density_plot, trend_plot, violin_plot

logger = logging.getLogger(__name__)

REPORT_TITLE = "Influenza-like illness incidence in Taiwan"

SECTION_TITLES: Dict[str, str] = {
    "density": "Distribution of national rates",
    "box": "National rates by age group",
    "trend": "National rates over time",
    "violin": "City rates by age group",
    "map": "Overall rate by city",
}


def build_figures(payload: Dict[str, object]) -> Dict[str, go.Figure]:
    """Render the five report figures, keyed in report order."""
    national = payload["national"]
    return {
        "density": density_plot(national),
        "box": box_plot(national),
        "trend": trend_plot(national, payload.get("decade_means")),
        "violin": violin_plot(payload["city"]),
        "map": choropleth_map(payload["regions"]),
    }


def _pct(value: float) -> str:
    return f"{value:.2%}"


def narrative(payload: Dict[str, object]) -> Dict[str, str]:
    """Plain-text paragraphs for each report section."""
    national: pd.DataFrame = payload["national"]
    means: pd.DataFrame = payload["decade_means"]
    lows: pd.DataFrame = payload["minimum_years"]
    overall: pd.DataFrame = payload["overall"]
    city: pd.DataFrame = payload["city"]
    year_min, year_max = payload["year_min"], payload["year_max"]
    reference_year = payload["reference_year"]

    text: Dict[str, str] = {}
    text["intro"] = (
        f"Rates are reported ILI clinic visits divided by the population of the "
        f"same age group. The national series covers {year_min}–{year_max} "
        f"({len(national)} year/age-group pairs); city rates use {reference_year} "
        f"population denominators. A rate above 100% means more visits than "
        f"residents, since one person can visit more than once."
    )

    if means.empty:
        text["density"] = "No national rates could be computed."
    else:
        top = means.loc[means["Mean"].idxmax()]
        bottom = means.loc[means["Mean"].idxmin()]
        parts = ", ".join(
            f"{row.Age_group}: {_pct(row.Mean)}" for row in means.itertuples(index=False)
        )
        text["density"] = (
            f"Mean rate per age group over the period ({parts}). Dashed lines mark "
            f"these means. The {top['Age_group']} group has the highest average "
            f"rate and the {bottom['Age_group']} group the lowest."
        )
    text["box"] = (
        "Each point is one year; boxes show the quartiles of the yearly rates "
        "within an age group."
    )

    if lows.empty:
        text["trend"] = "No national trend is available."
    else:
        low_years = lows["Year"].unique().tolist()
        if len(low_years) == 1:
            trend_note = f"Every age group reaches its lowest rate in {low_years[0]}."
        else:
            trend_note = "Lowest years per group: " + ", ".join(
                f"{row.Age_group} in {row.Year}" for row in lows.itertuples(index=False)
            ) + "."
        text["trend"] = (
            f"{trend_note} Dotted lines show each group's mean over "
            f"{year_min}–{year_max}; solid lines are LOWESS trends."
        )

    text["violin"] = (
        f"City rates for {reference_year} across {city['City'].nunique()} cities. "
        "Violins show the spread across cities; each point is one city."
    )

    if overall.empty:
        text["map"] = "No city-level rates are available for the map."
    else:
        high = overall.loc[overall["Percentage"].idxmax()]
        low = overall.loc[overall["Percentage"].idxmin()]
        text["map"] = (
            f"All-ages rate per city. {high['City']} has the highest rate "
            f"({_pct(high['Percentage'])}) and {low['City']} the lowest "
            f"({_pct(low['Percentage'])})."
        )
    return text


def build_report(payload: Dict[str, object]) -> str:
    """Return a standalone HTML document with narrative and figures.

    plotly.js is embedded once, with the first figure; the document needs
    no network access to render.
    """
    figures = build_figures(payload)
    text = narrative(payload)

    body: List[str] = [
        f"<h1>{html.escape(REPORT_TITLE)}</h1>",
        f"<p>{html.escape(text['intro'])}</p>",
    ]
    include_js: bool | str = True
    for key, fig in figures.items():
        body.append(f"<h2>{html.escape(SECTION_TITLES[key])}</h2>")
        body.append(f"<p>{html.escape(text[key])}</p>")
        body.append(fig.to_html(full_html=False, include_plotlyjs=include_js))
        include_js = False

    return (
        "<!DOCTYPE html>\n<html lang=\"en\">\n<head>\n<meta charset=\"utf-8\">\n"
        f"<title>{html.escape(REPORT_TITLE)}</title>\n</head>\n<body>\n"
        + "\n".join(body)
        + "\n</body>\n</html>\n"
    )


def write_report(payload: Dict[str, object], path: str | Path) -> Path:
    """Write the HTML report atomically and return its path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(build_report(payload), encoding="utf-8")
    tmp_path.replace(path)
    logger.info("Report written to %s", path)
    return path
