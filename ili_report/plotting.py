import logging
import warnings

import geopandas as gpd
import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
from scipy.stats import gaussian_kde

from .config import (
    AGE_GROUP_COLORS,
    AGE_GROUPS,
    MAP_COLOR_SCALE,
    NO_DATA_COLOR,
    TAIWAN_LAT_RANGE,
    TAIWAN_LON_RANGE,
)

logger = logging.getLogger(__name__)


# ============================================================
# Configuration / constants
# ============================================================

KDE_GRID_POINTS: int = 200
MIN_TREND_POINTS: int = 3

HOVER_TEMPLATE_NATIONAL = (
    "Age: %{customdata[0]}<br>"
    "Year: %{customdata[1]}<br>"
    "ILI visits per capita: %{y:.4f}<extra></extra>"
)

HOVER_TEMPLATE_CITY = (
    "City: %{customdata[0]}<br>"
    "Age: %{x}<br>"
    "ILI visits per capita: %{y:.4f}<extra></extra>"
)

BASE_LAYOUT = dict(
    width=1000,
    height=600,
    margin=dict(t=80, l=60, r=40, b=50),
    plot_bgcolor="#f5f7fb",
    legend=dict(
        bordercolor="#c7c7c7",
        borderwidth=1,
        bgcolor="#f9f9f9",
        font=dict(size=12),
    ),
)


# ============================================================
# Helper functions
# ============================================================


def _build_palette(age_colors: dict[str, str] | None) -> dict[str, str]:
    """
    Merge user-supplied colors with defaults (user overrides default).
    """
    return {**AGE_GROUP_COLORS, **(age_colors or {})}


def _present_groups(df: pd.DataFrame) -> list[str]:
    """Age groups present in ``df``, in canonical order."""
    present = set(df["Age_group"].astype(str))
    return [age for age in AGE_GROUPS if age in present]


def _group_values(df: pd.DataFrame, age: str, column: str = "Percentage") -> pd.Series:
    return df.loc[df["Age_group"].astype(str) == age, column]


def _kde_curve(values: np.ndarray) -> tuple[np.ndarray, np.ndarray] | None:
    """Evaluate a Gaussian KDE over a padded grid; ``None`` if degenerate."""
    if np.unique(values).size < 2:
        return None
    lo, hi = values.min(), values.max()
    pad = 0.25 * (hi - lo)
    grid = np.linspace(lo - pad, hi + pad, KDE_GRID_POINTS)
    try:
        density = gaussian_kde(values)(grid)
    except np.linalg.LinAlgError:
        return None
    return grid, density


# ============================================================
# National plots
# ============================================================


def density_plot(
    national: pd.DataFrame, *, age_colors: dict[str, str] | None = None
) -> go.Figure:
    """
    Density of national ILI rates per age group, with each group's mean
    drawn as a dashed vertical line.

    Parameters
    ----------
    national : pd.DataFrame
        National rate table with 'Age_group' and 'Percentage'.
    age_colors : dict[str, str] | None, default None
        Optional mapping of age group -> hex color. Overrides defaults.

    Returns
    -------
    go.Figure
    """
    groups = _present_groups(national)
    if not groups:
        return go.Figure()
    palette = _build_palette(age_colors)

    fig = go.Figure()
    for age in groups:
        values = _group_values(national, age).to_numpy(dtype=float)
        color = palette.get(age)
        curve = _kde_curve(values)
        if curve is None:
            logger.debug("Density for age group %s skipped: fewer than two distinct values", age)
        else:
            grid, density = curve
            fig.add_trace(
                go.Scatter(
                    x=grid,
                    y=density,
                    mode="lines",
                    name=age,
                    legendgroup=age,
                    fill="tozeroy",
                    opacity=0.5,
                    line=dict(width=2, color=color),
                    hovertemplate=f"Age: {age}<br>Rate: %{{x:.4f}}<extra></extra>",
                )
            )
        fig.add_vline(
            x=float(values.mean()),
            line_width=2,
            line_dash="dash",
            line_color=color,
        )

    fig.update_xaxes(title_text="ILI visits per capita", tickformat=".0%")
    fig.update_yaxes(title_text="Density")
    fig.update_layout(
        **BASE_LAYOUT,
        title="<b>Distribution of national ILI rates by age group</b>",
        legend_title_text="Age group",
    )
    return fig


def box_plot(
    national: pd.DataFrame, *, age_colors: dict[str, str] | None = None
) -> go.Figure:
    """Box plot of national rates per age group with every year shown as a jittered point."""
    groups = _present_groups(national)
    if not groups:
        return go.Figure()
    palette = _build_palette(age_colors)

    fig = go.Figure()
    for age in groups:
        sub = national.loc[national["Age_group"].astype(str) == age]
        fig.add_trace(
            go.Box(
                x=[age] * len(sub),
                y=sub["Percentage"],
                name=age,
                boxpoints="all",
                jitter=0.4,
                pointpos=0,
                marker=dict(size=7, color=palette.get(age), opacity=0.8),
                line=dict(color=palette.get(age)),
                customdata=list(zip([age] * len(sub), sub["Year"])),
                hovertemplate=HOVER_TEMPLATE_NATIONAL,
            )
        )

    fig.update_xaxes(
        title_text="Age group", categoryorder="array", categoryarray=list(AGE_GROUPS)
    )
    fig.update_yaxes(title_text="ILI visits per capita", tickformat=".0%", rangemode="tozero")
    fig.update_layout(
        **BASE_LAYOUT,
        title="<b>National ILI rates by age group</b>",
        showlegend=False,
    )
    return fig


def trend_plot(
    national: pd.DataFrame,
    means: pd.DataFrame | None = None,
    *,
    age_colors: dict[str, str] | None = None,
) -> go.Figure:
    """
    Yearly national rates with a LOWESS trend line per age group.

    A group gets a trend line only when it has at least
    ``MIN_TREND_POINTS`` distinct years; shorter groups keep their markers
    and mean segment. Each group's mean over the whole period is overlaid
    as a dotted horizontal segment. ``means`` is recomputed from
    ``national`` when not supplied.
    """
    groups = _present_groups(national)
    if not groups:
        return go.Figure()
    palette = _build_palette(age_colors)

    df = national.assign(Age_group=national["Age_group"].astype(str))
    if means is None:
        means = df.groupby("Age_group")["Percentage"].mean().reset_index(name="Mean")

    year_counts = df.groupby("Age_group")["Year"].nunique()
    smoothed = [g for g in groups if year_counts.get(g, 0) >= MIN_TREND_POINTS]
    unsmoothed = [g for g in groups if g not in smoothed]
    if unsmoothed:
        logger.info(
            "No trend line for %s: fewer than %d years of data", unsmoothed, MIN_TREND_POINTS
        )

    scatter_kwargs = dict(
        x="Year",
        y="Percentage",
        color="Age_group",
        category_orders={"Age_group": groups},
        color_discrete_map=palette,
        labels={"Percentage": "ILI visits per capita", "Age_group": "Age group"},
    )
    fig = px.scatter(df, **scatter_kwargs)

    if smoothed:
        # statsmodels warns on tiny or tied samples; keep that local to this call.
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", RuntimeWarning)
            trends = px.scatter(
                df[df["Age_group"].isin(smoothed)], trendline="lowess", **scatter_kwargs
            )
        fig.add_traces([t for t in trends.data if t.mode == "lines"])

    year_min, year_max = int(df["Year"].min()), int(df["Year"].max())
    for row in means.itertuples(index=False):
        age = str(row.Age_group)
        if age not in groups:
            continue
        fig.add_trace(
            go.Scatter(
                x=[year_min, year_max],
                y=[row.Mean, row.Mean],
                mode="lines",
                line=dict(width=2, dash="dot", color=palette.get(age)),
                name=f"{age} mean",
                legendgroup=age,
                showlegend=False,
                hovertemplate=f"{age} mean: %{{y:.4f}}<extra></extra>",
            )
        )

    fig.update_traces(marker=dict(size=9), selector=dict(mode="markers"))
    fig.update_xaxes(title_text="Year", tickmode="linear", dtick=1)
    fig.update_yaxes(tickformat=".0%", rangemode="tozero")
    fig.update_layout(
        **BASE_LAYOUT,
        title="<b>National ILI rates over time by age group</b>",
    )
    return fig


# ============================================================
# City plots
# ============================================================


def violin_plot(
    city: pd.DataFrame,
    *,
    age_colors: dict[str, str] | None = None,
    city_colors: list[str] | None = None,
) -> go.Figure:
    """
    Violin per age group of city-level rates, with one jittered point per
    city colored by city.
    """
    groups = _present_groups(city)
    if not groups:
        return go.Figure()
    palette = _build_palette(age_colors)
    city_palette = city_colors or px.colors.qualitative.Alphabet

    fig = go.Figure()
    for age in groups:
        fig.add_trace(
            go.Violin(
                x=[age] * int((city["Age_group"].astype(str) == age).sum()),
                y=_group_values(city, age),
                name=age,
                points=False,
                box_visible=True,
                meanline_visible=True,
                line_color=palette.get(age),
                fillcolor=palette.get(age),
                opacity=0.35,
                showlegend=False,
                hoverinfo="skip",
            )
        )

    cities = sorted(city["City"].unique())
    for i, name in enumerate(cities):
        sub = city.loc[city["City"] == name]
        fig.add_trace(
            go.Box(
                x=sub["Age_group"].astype(str),
                y=sub["Percentage"],
                name=name,
                boxpoints="all",
                jitter=0.5,
                pointpos=0,
                fillcolor="rgba(255,255,255,0)",
                line=dict(color="rgba(255,255,255,0)"),
                marker=dict(size=7, color=city_palette[i % len(city_palette)]),
                customdata=list(zip([name] * len(sub))),
                hovertemplate=HOVER_TEMPLATE_CITY,
            )
        )

    fig.update_xaxes(
        title_text="Age group", categoryorder="array", categoryarray=list(AGE_GROUPS)
    )
    fig.update_yaxes(title_text="ILI visits per capita", tickformat=".0%", rangemode="tozero")
    fig.update_layout(
        **BASE_LAYOUT,
        title="<b>City ILI rates by age group</b>",
        violinmode="overlay",
        boxmode="overlay",
        legend_title_text="City",
    )
    return fig


def choropleth_map(regions: gpd.GeoDataFrame, *, value_col: str = "Overall") -> go.Figure:
    """
    Taiwan county map filled by each city's overall ILI rate.

    Parameters
    ----------
    regions : gpd.GeoDataFrame
        Output of :func:`ili_report.rates.attach_rates_to_regions`; needs
        'City', geometry and ``value_col``.
    value_col : str, default "Overall"
        Column driving the continuous color scale.

    Returns
    -------
    go.Figure
        Polygons labelled by city name, clipped to the Taiwan extent.
    """
    if regions.empty:
        return go.Figure()

    geojson = regions[["City", regions.geometry.name]].__geo_interface__
    table = pd.DataFrame(regions.drop(columns=regions.geometry.name))
    hover_cols = [c for c in (*AGE_GROUPS, value_col) if c in table.columns]

    fig = px.choropleth(
        table,
        geojson=geojson,
        locations="City",
        featureidkey="properties.City",
        color=value_col,
        color_continuous_scale=MAP_COLOR_SCALE,
        hover_name="City",
        hover_data={c: ":.4f" for c in hover_cols} | {"City": False},
        labels={value_col: "ILI visits per capita"},
    )

    # px.choropleth leaves NaN features undrawn; paint them grey underneath.
    no_data = table.loc[table[value_col].isna(), "City"]
    if not no_data.empty:
        fig.add_trace(
            go.Choropleth(
                geojson=geojson,
                locations=no_data,
                featureidkey="properties.City",
                z=[0] * len(no_data),
                colorscale=[[0, NO_DATA_COLOR], [1, NO_DATA_COLOR]],
                showscale=False,
                name="No data",
                hovertemplate="%{location}<br>No rate<extra></extra>",
            )
        )
        fig.data = (fig.data[-1], *fig.data[:-1])

    # representative_point() always lies inside the polygon, unlike centroid.
    points = regions.geometry.representative_point()
    fig.add_trace(
        go.Scattergeo(
            lon=points.x,
            lat=points.y,
            text=regions["City"],
            mode="text",
            textfont=dict(size=10, color="black"),
            showlegend=False,
            hoverinfo="skip",
        )
    )

    fig.update_geos(
        visible=False,
        projection_type="mercator",
        lonaxis_range=list(TAIWAN_LON_RANGE),
        lataxis_range=list(TAIWAN_LAT_RANGE),
    )
    fig.update_layout(
        width=800,
        height=900,
        margin=dict(t=80, l=20, r=20, b=20),
        title="<b>Overall ILI rate by city</b>",
        coloraxis_colorbar=dict(title="Rate", tickformat=".0%"),
    )
    return fig
