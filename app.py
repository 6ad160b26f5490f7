from shiny import reactive, render
from shiny.express import ui
from shinywidgets import render_plotly

# Import organized modules
from ili_report.data_manager import load_payload
from ili_report.plotting import (
    box_plot,
    choropleth_map,
    density_plot,
    trend_plot,
    violin_plot,
)
from ili_report.report import REPORT_TITLE, SECTION_TITLES, narrative

# ======================================================
#  REACTIVE STATE
# ======================================================
# Load once on startup; values stay in-memory until app restart.
payload_store = reactive.Value(load_payload())


@reactive.calc
def report_text():
    return narrative(payload_store.get())


# ======================================================
#  UI LAYOUT
# ======================================================
ui.page_opts(
    title=REPORT_TITLE,
    fillable=False,
    fillable_mobile=True,
    full_width=True,
    id="page",
    lang="en",
)


with ui.div(style="max-width:1100px; margin:0 auto;"):

    @render.text
    def intro():
        return report_text()["intro"]

    ui.h2(SECTION_TITLES["density"])

    @render.text
    def density_text():
        return report_text()["density"]

    @render_plotly
    def density():
        return density_plot(payload_store.get()["national"])

    ui.h2(SECTION_TITLES["box"])

    @render.text
    def box_text():
        return report_text()["box"]

    @render_plotly
    def box():
        return box_plot(payload_store.get()["national"])

    ui.h2(SECTION_TITLES["trend"])

    @render.text
    def trend_text():
        return report_text()["trend"]

    @render_plotly
    def trend():
        payload = payload_store.get()
        return trend_plot(payload["national"], payload["decade_means"])

    ui.h2(SECTION_TITLES["violin"])

    @render.text
    def violin_text():
        return report_text()["violin"]

    @render_plotly
    def violin():
        return violin_plot(payload_store.get()["city"])

    ui.h2(SECTION_TITLES["map"])

    @render.text
    def map_text():
        return report_text()["map"]

    @render_plotly
    def city_map():
        return choropleth_map(payload_store.get()["regions"])
