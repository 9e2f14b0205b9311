from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from conftest import make_reading
from sensorwatch.frontend import app as dashboard
from sensorwatch.frontend.context import DashboardContext, readings_collection
from sensorwatch.frontend.gateway import RemoteError
from sensorwatch.frontend.pipeline import ChartWindow
from sensorwatch.frontend.theme import normalize_theme, resolve_theme, theme_selection


@pytest.fixture
def context(gateway, cache):
    ctx = DashboardContext(gateway=gateway, cache=cache)
    with patch.object(dashboard, "context", ctx):
        yield ctx


@pytest.mark.parametrize("pathname,expected", [
    ("/dispositivos/dev-1", "dev-1"),
    ("/dispositivos/dev-1/", "dev-1"),
    ("/dispositivos/", None),
    ("/", None),
    (None, None),
])
def test_device_id_from_path(pathname, expected):
    assert dashboard.device_id_from_path(pathname) == expected


class TestTheme:
    def test_normalize(self):
        assert normalize_theme("dark") == "dark"
        assert normalize_theme("sepia") == "system"
        assert normalize_theme(None) == "system"

    def test_resolve(self):
        assert resolve_theme("system", prefers_dark=True) == "dark"
        assert resolve_theme("system") == "light"
        assert resolve_theme("light", prefers_dark=True) == "light"

    def test_selection_from_dropdown(self):
        assert theme_selection("theme-select", "dark", "light") == ("dark", "dark")

    def test_selection_from_storage(self):
        assert theme_selection("ui-theme", None, "light") == ("light", "light")
        assert theme_selection(None, None, None) == ("system", "system")


class TestDashboardContext:
    def test_latest_reading_query(self, context, gateway):
        now = datetime.now(timezone.utc)
        for minutes in (5, 1, 3):
            ts = (now - timedelta(minutes=minutes)).isoformat()
            gateway.add(readings_collection("dev-1"), f"r{minutes}", make_reading(ts))

        latest = context.latest_reading("dev-1")

        assert [r["id"] for r in latest.data] == ["r1"]

    def test_fresh_skips_cache(self, context, gateway):
        context.devices()
        context.devices()
        context.devices(fresh=True)
        assert gateway.count("read_many") == 2

    def test_rename_invalidates_device_queries(self, context, gateway):
        assert context.device("dev-1").data["name"] == "Sensor Nave A"
        context.rename_device("dev-1", "Nave Norte")
        assert context.device("dev-1").data["name"] == "Nave Norte"

    def test_delete(self, context, gateway):
        context.devices()
        context.delete_device("dev-2")
        assert [d["id"] for d in context.devices().data] == ["dev-1"]


class TestChartLoading:
    def test_load_chart_data(self, context, gateway):
        now = datetime.now(timezone.utc)
        gateway.add(readings_collection("dev-1"), "r1", make_reading((now - timedelta(minutes=2)).isoformat()))
        gateway.add(readings_collection("dev-1"), "r2", make_reading((now - timedelta(hours=3)).isoformat()))

        data = dashboard.load_chart_data("dev-1", ChartWindow.relative("1h"), "lines")

        assert [r.id for r in data.readings] == ["r1"]

    def test_load_chart_data_error(self, context, gateway):
        gateway.fail = "service down"
        with pytest.raises(RemoteError):
            dashboard.load_chart_data("dev-1", ChartWindow.relative("1h"), "lines")

    def test_device_summary_not_found(self, context):
        rendered = dashboard.device_summary("missing")
        assert rendered.children == "Dispositivo no encontrado"
