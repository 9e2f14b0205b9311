"""
PNG export of the sensor charts.

The server decides what to export and how to name it; the browser does the
rasterizing through ``Plotly.downloadImage`` at the full chart width, so a
chart that only fits on screen with horizontal scrolling still comes out
whole and the figure on the page is left as it was.
"""

from datetime import datetime
from typing import Dict, List

from sensorwatch.frontend.charts import ACCEL_GRAPH, CHART_HEIGHT, COMBINED_GRAPH, GYRO_GRAPH, POLAR_HEIGHT, POLAR_WIDTH
from sensorwatch.frontend.pipeline import POLAR_TYPES, ChartData, ChartWindow

SCOPES = ("completo", "acelerometro", "giroscopio")


def export_filename(scope: str, chart_type: str, window: ChartWindow, at: datetime) -> str:
    """``sensores-<scope>-<chartType>-<windowLabel>-<timestamp>.png``"""
    timestamp = at.strftime("%Y-%m-%dT%H-%M-%S")
    return f"sensores-{scope}-{chart_type}-{window.label()}-{timestamp}.png"


def build_export_jobs(scope: str, data: ChartData, at: datetime) -> List[Dict]:
    """
    One job per figure to rasterize.

    Each job carries the graph id, the file name (with and without the
    extension, Plotly appends its own) and the unclipped size.
    """
    if scope not in SCOPES:
        raise ValueError(f"Unknown export scope: {scope!r}")
    if data.empty:
        return []

    if data.chart_type in POLAR_TYPES:
        targets = [(COMBINED_GRAPH, "completo")]
        width, height = POLAR_WIDTH, POLAR_HEIGHT
    else:
        targets = {
            "acelerometro": [(ACCEL_GRAPH, "acelerometro")],
            "giroscopio": [(GYRO_GRAPH, "giroscopio")],
            "completo": [(ACCEL_GRAPH, "completo-acelerometro"), (GYRO_GRAPH, "completo-giroscopio")],
        }[scope]
        width, height = data.width, CHART_HEIGHT

    jobs = []
    for graph_id, name in targets:
        filename = export_filename(name, data.chart_type, data.window, at)
        jobs.append({
            "graph_id": graph_id,
            "filename": filename,
            "stem": filename[:-len(".png")],
            "width": width,
            "height": height,
        })
    return jobs


# Runs in the browser; receives the jobs stored by the export callback
DOWNLOAD_JS = """
function(jobs) {
    if (!jobs || !jobs.length) {
        return window.dash_clientside.no_update;
    }
    jobs.forEach(function(job) {
        var container = document.getElementById(job.graph_id);
        var plot = container && container.querySelector('.js-plotly-plot');
        if (plot) {
            Plotly.downloadImage(plot, {format: 'png', filename: job.stem, width: job.width, height: job.height});
        }
    });
    return '';
}
"""
