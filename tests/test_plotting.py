import plotly.graph_objects as go
import pytest
import pandas as pd

from conftest import CITIES
from ili_report.config import AGE_GROUPS, TAIWAN_LAT_RANGE, TAIWAN_LON_RANGE
from ili_report.plotting import box_plot, choropleth_map, density_plot, trend_plot, violin_plot


def _names(fig, trace_type):
    return [t.name for t in fig.data if t.type == trace_type]


def test_density_plot(payload):
    fig = density_plot(payload["national"])
    assert _names(fig, "scatter") == list(AGE_GROUPS)
    # one dashed mean marker per age group
    vlines = [s for s in fig.layout.shapes if s.line.dash == "dash"]
    assert len(vlines) == len(AGE_GROUPS)
    means = payload["decade_means"]["Mean"].tolist()
    assert sorted(s.x0 for s in vlines) == pytest.approx(sorted(means))


def test_density_plot_single_value_group():
    national = pd.DataFrame(
        {"Year": [2020], "Age_group": ["0-4"], "Percentage": [0.1]}
    )
    fig = density_plot(national)
    assert len(fig.data) == 0
    assert len(fig.layout.shapes) == 1


def test_box_plot(payload):
    fig = box_plot(payload["national"])
    assert _names(fig, "box") == list(AGE_GROUPS)
    assert list(fig.layout.xaxis.categoryarray) == list(AGE_GROUPS)
    assert all(t.boxpoints == "all" for t in fig.data)


def test_trend_plot(payload):
    fig = trend_plot(payload["national"], payload["decade_means"])
    markers = [t for t in fig.data if t.mode == "markers"]
    assert [t.name for t in markers] == list(AGE_GROUPS)
    mean_lines = [t for t in fig.data if t.name and t.name.endswith(" mean")]
    assert len(mean_lines) == len(AGE_GROUPS)
    first = mean_lines[0]
    assert first.y[0] == first.y[1] == payload["decade_means"].loc[0, "Mean"]


def test_trend_plot_without_smoothing():
    national = pd.DataFrame(
        {
            "Year": [2022, 2023],
            "Age_group": ["0-4", "0-4"],
            "Percentage": [0.1, 0.2],
        }
    )
    fig = trend_plot(national)
    assert len(fig.data) == 2


def test_violin_plot(payload):
    fig = violin_plot(payload["city"])
    assert _names(fig, "violin") == list(AGE_GROUPS)
    assert sorted(_names(fig, "box")) == sorted(CITIES)


def test_choropleth_map(payload):
    fig = choropleth_map(payload["regions"])
    assert fig.data[0].type == "choropleth"
    assert fig.data[-1].type == "scattergeo"
    assert set(fig.data[-1].text) == set(payload["regions"]["City"])
    assert tuple(fig.layout.geo.lonaxis.range) == TAIWAN_LON_RANGE
    assert tuple(fig.layout.geo.lataxis.range) == TAIWAN_LAT_RANGE


def test_empty_inputs():
    empty = pd.DataFrame(columns=["Year", "City", "Age_group", "Percentage"])
    for builder in (density_plot, box_plot, trend_plot, violin_plot):
        assert isinstance(builder(empty), go.Figure)
        assert len(builder(empty).data) == 0


def test_choropleth_map_greys_out_regions_without_rates(payload):
    fig = choropleth_map(payload["regions"])
    base, rated = fig.data[0], fig.data[1]
    assert base.type == rated.type == "choropleth"
    assert list(base.locations) == ["澎湖縣"]
    assert base.showscale is False
    assert set(rated.locations) >= set(CITIES)


def test_choropleth_map_without_gaps_has_no_base_layer(payload):
    regions = payload["regions"]
    fig = choropleth_map(regions[regions["Overall"].notna()])
    assert [t.type for t in fig.data] == ["choropleth", "scattergeo"]


def test_trend_plot_smooths_each_group_separately():
    national = pd.DataFrame(
        {
            "Year": [2021, 2022, 2023, 2022, 2023],
            "Age_group": ["0-4", "0-4", "0-4", "65+", "65+"],
            "Percentage": [0.1, 0.3, 0.2, 0.05, 0.06],
        }
    )
    fig = trend_plot(national)
    trends = [t for t in fig.data if t.mode == "lines" and not t.name.endswith(" mean")]
    assert [t.name for t in trends] == ["0-4"]
    markers = [t for t in fig.data if t.mode == "markers"]
    assert [t.name for t in markers] == ["0-4", "65+"]
