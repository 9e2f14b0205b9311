from datetime import datetime, timedelta, timezone

import dash_bootstrap_components as dbc
import pytest

from conftest import make_reading
from sensorwatch.frontend.charts import (
    ACCEL_GRAPH, COMBINED_GRAPH, GYRO_GRAPH, NO_DATA_MESSAGE, plotly_template, radar_figure, radial_figure,
    render_charts, sensor_figure,
)
from sensorwatch.frontend.export import build_export_jobs, export_filename
from sensorwatch.frontend.pipeline import ChartWindow, prepare_chart_data

NOW = datetime(2024, 3, 10, 12, 0, 0, tzinfo=timezone.utc)
EXPORTED_AT = datetime(2024, 3, 10, 12, 5, 9)


def chart_data(chart_type, points=3, range_key="1h"):
    raw = [make_reading(NOW - timedelta(seconds=10 * i), ax=1.0, ay=2.0, az=2.0) for i in range(points)]
    return prepare_chart_data(raw, ChartWindow.relative(range_key), chart_type, NOW, timezone.utc)


def find_ids(component):
    """Every component id in a rendered layout tree."""
    ids = []
    if getattr(component, "id", None) is not None:
        ids.append(component.id)
    children = getattr(component, "children", None)
    if children is None:
        return ids
    if not isinstance(children, (list, tuple)):
        children = [children]
    for child in children:
        if child is not None and not isinstance(child, str):
            ids.extend(find_ids(child))
    return ids


class TestFigures:
    def test_lines_has_one_trace_per_axis(self):
        fig = sensor_figure(chart_data("lines"), "accel")
        assert [trace.name for trace in fig.data] == ["Accel X", "Accel Y", "Accel Z"]
        assert fig.data[0].line.color == "#8884d8"

    def test_bars(self):
        fig = sensor_figure(chart_data("bars"), "gyro")
        assert len(fig.data) == 3
        assert all(trace.type == "bar" for trace in fig.data)

    def test_area_plots_magnitude(self):
        fig = sensor_figure(chart_data("area"), "accel")
        assert len(fig.data) == 1
        assert fig.data[0].fill == "tozeroy"
        assert fig.data[0].y[0] == pytest.approx(3.0)

    def test_width_follows_point_count(self):
        fig = sensor_figure(chart_data("lines", points=200), "accel")
        assert fig.layout.width == 1600

    def test_polar_figures(self):
        assert len(radar_figure(chart_data("radar")).data) == 2
        radial = radial_figure(chart_data("radial"))
        assert list(radial.data[0].theta) == ["Acelerómetro", "Giroscopio"]

    def test_radar_axis_labels(self):
        radar = radar_figure(chart_data("radar"))
        assert list(radar.data[0].theta) == ["Accel X", "Accel Y", "Accel Z", "Accel X"]

    def test_template(self):
        assert plotly_template("dark") == "plotly_dark"
        assert plotly_template("light") == "plotly_white"


class TestRenderCharts:
    def test_empty_shows_placeholder(self):
        rendered = render_charts(chart_data("lines", points=0))
        assert isinstance(rendered, dbc.Alert)
        assert rendered.children == NO_DATA_MESSAGE

    def test_cartesian_renders_two_graphs(self):
        ids = find_ids(render_charts(chart_data("lines")))
        assert ACCEL_GRAPH in ids
        assert GYRO_GRAPH in ids
        assert {"type": "export-button", "scope": "completo"} in ids
        assert {"type": "export-button", "scope": "acelerometro"} in ids

    def test_polar_renders_one_graph(self):
        ids = find_ids(render_charts(chart_data("radar")))
        assert COMBINED_GRAPH in ids
        assert ACCEL_GRAPH not in ids

    def test_not_exportable(self):
        ids = find_ids(render_charts(chart_data("lines"), exportable=False))
        assert not any(isinstance(i, dict) for i in ids)


class TestExport:
    def test_filename(self):
        name = export_filename("acelerometro", "lines", ChartWindow.relative("24h"), EXPORTED_AT)
        assert name == "sensores-acelerometro-lines-24-horas-2024-03-10T12-05-09.png"

    def test_single_sensor_job(self):
        data = chart_data("lines", points=200)
        jobs = build_export_jobs("giroscopio", data, EXPORTED_AT)

        assert len(jobs) == 1
        assert jobs[0]["graph_id"] == GYRO_GRAPH
        assert jobs[0]["width"] == 1600
        assert jobs[0]["stem"] == "sensores-giroscopio-lines-1-hora-2024-03-10T12-05-09"

    def test_full_export_covers_both_sensors(self):
        jobs = build_export_jobs("completo", chart_data("bars"), EXPORTED_AT)
        assert [job["graph_id"] for job in jobs] == [ACCEL_GRAPH, GYRO_GRAPH]
        assert jobs[0]["filename"].startswith("sensores-completo-acelerometro-bars-")

    def test_polar_export(self):
        jobs = build_export_jobs("completo", chart_data("radial"), EXPORTED_AT)
        assert [job["graph_id"] for job in jobs] == [COMBINED_GRAPH]

    def test_empty_data_exports_nothing(self):
        assert build_export_jobs("completo", chart_data("lines", points=0), EXPORTED_AT) == []

    def test_unknown_scope(self):
        with pytest.raises(ValueError):
            build_export_jobs("todo", chart_data("lines"), EXPORTED_AT)
