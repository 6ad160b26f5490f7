from ili_report.data_manager import EXPORTED_TABLES, export_rate_tables
from ili_report.report import SECTION_TITLES, build_figures, build_report, narrative, write_report


def test_figures_in_report_order(payload):
    figures = build_figures(payload)
    assert list(figures) == ["density", "box", "trend", "violin", "map"]


def test_narrative_mentions_low_year(payload):
    text = narrative(payload)
    assert set(text) == {"intro", *SECTION_TITLES}
    assert "2021" in text["trend"]
    assert "2014–2023" in text["intro"]


def test_narrative_map_extremes(payload):
    overall = payload["overall"].set_index("City")["Percentage"]
    text = narrative(payload)["map"]
    assert overall.idxmax() in text
    assert overall.idxmin() in text


def test_build_report_is_standalone(payload):
    html = build_report(payload)
    assert html.startswith("<!DOCTYPE html>")
    for title in SECTION_TITLES.values():
        assert f"<h2>{title}</h2>" in html
    assert html.count("plotly-graph-div") >= 5


def test_write_report(payload, tmp_path):
    path = write_report(payload, tmp_path / "out" / "report.html")
    assert path.exists()
    assert not path.with_suffix(".html.tmp").exists()
    assert "<h1>" in path.read_text(encoding="utf-8")


def test_export_rate_tables(payload, tmp_path):
    written = export_rate_tables(payload, tmp_path / "tables")
    assert [p.name for p in written] == [f"ili_{name}.csv" for name in EXPORTED_TABLES]
    assert all(p.exists() for p in written)
