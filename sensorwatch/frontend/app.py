import logging
from datetime import datetime, timezone

import dash_bootstrap_components as dbc
from dash import ALL, Dash, Input, Output, State, callback, ctx, dcc, html, no_update

from sensorwatch import config
from sensorwatch.frontend.charts import CHART_DESCRIPTIONS, plotly_template, render_charts
from sensorwatch.frontend.context import DashboardContext
from sensorwatch.frontend.devices import (
    STATUS_LABELS, detailed_status, device_status, format_timestamp, last_active, relative_label,
)
from sensorwatch.frontend.export import DOWNLOAD_JS, build_export_jobs
from sensorwatch.frontend.gateway import RemoteError
from sensorwatch.frontend.pipeline import (
    CHART_TYPES, DEFAULT_RANGE, RANGE_KEY, RANGE_LABEL, TIME_RANGES, display_timezone,
    magnitude, prepare_chart_data, resolve_window,
)
from sensorwatch.frontend.readings import parse_reading, reading_summary
from sensorwatch.frontend.theme import RESOLVE_THEME_JS, THEME_STORAGE_KEY, THEMES, theme_selection

logger = logging.getLogger(__name__)

DEVICE_PATH = "/dispositivos/"
REFRESH_INTERVAL_MS = 30_000

context = DashboardContext()

app = Dash(
    __name__,
    external_stylesheets=[dbc.themes.BOOTSTRAP],
    title="Monitoreo de Sensores",
)
app.config.suppress_callback_exceptions = True

app.layout = dbc.Container([
    dcc.Location(id="url"),
    dbc.Row([
        dbc.Col(html.H1(dcc.Link("Monitoreo de Sensores", href="/", className="text-reset text-decoration-none"),
                        className="my-4"), width=True),
        dbc.Col([
            dbc.Button("Actualizar", id="refresh-button", color="primary", className="me-2"),
            dcc.Dropdown(
                id="theme-select",
                options=[{"label": label, "value": value} for value, label in THEMES],
                clearable=False,
                style={"width": "140px"},
            ),
        ], width="auto", className="d-flex align-items-center"),
    ], className="align-items-center"),
    html.Hr(),

    html.Div(id="page-content"),

    # Confirmation modal for delete
    dbc.Modal([
        dbc.ModalHeader("Eliminar dispositivo"),
        dbc.ModalBody("¿Seguro que quieres eliminar este dispositivo? Esta acción no se puede deshacer."),
        dbc.ModalFooter([
            dbc.Button("Cancelar", id="delete-cancel", color="secondary", className="me-2"),
            dbc.Button("Eliminar", id="delete-confirm", color="danger"),
        ]),
    ], id="delete-modal", is_open=False),

    # Rename modal
    dbc.Modal([
        dbc.ModalHeader("Renombrar dispositivo"),
        dbc.ModalBody([
            dbc.Label("Nombre"),
            dbc.Input(id="rename-input", type="text", placeholder="Nombre del dispositivo", maxLength=100),
        ]),
        dbc.ModalFooter([
            dbc.Button("Cancelar", id="rename-cancel", color="secondary", className="me-2"),
            dbc.Button("Guardar", id="rename-confirm", color="primary"),
        ]),
    ], id="rename-modal", is_open=False),

    dcc.Interval(id="refresh-interval", interval=REFRESH_INTERVAL_MS),
    dcc.Store(id=THEME_STORAGE_KEY, storage_type="local"),
    dcc.Store(id="resolved-theme"),
    dcc.Store(id="delete-device-id"),
    dcc.Store(id="rename-device-id"),
    dcc.Store(id="export-jobs"),
    dcc.Store(id="write-counter", data=0),
    html.Div(id="export-sink", hidden=True),
], fluid=True, className="p-4")


def device_id_from_path(pathname):
    if pathname and pathname.startswith(DEVICE_PATH):
        device_id = pathname[len(DEVICE_PATH):].strip("/")
        return device_id or None
    return None


def error_alert(message, prefix="Error al cargar los datos"):
    return dbc.Alert(f"{prefix}: {message}", color="danger", dismissable=True)


def device_card(device, fresh=False):
    """Overview card for one device, with status derived from its latest reading."""
    now = datetime.now(timezone.utc)
    latest = context.latest_reading(device["id"], fresh=fresh)
    last_reading = latest.data[0] if latest.data else None
    seen = last_active(device, last_reading)
    status = device_status(seen, now)
    reading = parse_reading(last_reading) if last_reading else None

    if latest.error:
        body = html.Small(f"Error al cargar lecturas: {latest.error}", className="text-danger")
    elif reading is None:
        body = html.Small("Sin lecturas disponibles", className="text-muted")
    else:
        body = html.Small([
            f"Accel |a|: {magnitude(reading.avg.accel.x, reading.avg.accel.y, reading.avg.accel.z):.3f} m/s²",
            html.Br(),
            f"Gyro |ω|: {magnitude(reading.avg.gyro.x, reading.avg.gyro.y, reading.avg.gyro.z):.3f} rad/s",
        ])

    return dbc.Card([
        dbc.CardBody([
            html.Div([
                html.H5(device.get("name") or device["id"], className="card-title d-inline me-2 mb-0"),
                dbc.Button(
                    "✎",  # Pencil icon
                    id={"type": "rename-button", "index": device["id"]},
                    color="link",
                    size="sm",
                    style={"padding": "0", "fontSize": "16px", "verticalAlign": "baseline"},
                ),
                dbc.Badge(STATUS_LABELS[status], color="success" if status == "online" else "secondary",
                          className="ms-auto"),
            ], style={"display": "flex", "alignItems": "center"}),
            html.P([
                html.Small(f"Última actividad: {relative_label(seen, now)}", className="text-muted"),
                html.Br(),
                body,
            ], className="card-text mt-2"),
            html.Div([
                dcc.Link(dbc.Button("Ver", color="success", size="sm", className="w-100"),
                         href=f"{DEVICE_PATH}{device['id']}", style={"flex": "0 0 60%"}),
                dbc.Button(
                    "×",
                    id={"type": "delete-button", "index": device["id"]},
                    color="danger",
                    size="sm",
                    style={"flex": "0 0 15%", "padding": "0"},
                ),
            ], className="mt-2", style={"display": "flex", "width": "100%", "justifyContent": "space-between"}),
        ])
    ], className="mb-3")


def overview_page(fresh=False):
    devices = context.devices(fresh=fresh)
    if devices.error:
        return error_alert(devices.error)
    if not devices.data:
        return dbc.Alert("No hay dispositivos registrados.", color="info")
    return dbc.Row([dbc.Col(device_card(device, fresh), width=12, md=6, xl=4) for device in devices.data])


def stat_card(title, value):
    return dbc.Col(dbc.Card(dbc.CardBody([
        html.H6(title, className="text-muted"),
        html.H5(value, className="mb-0"),
    ])), width=12, md=3)


def chart_controls():
    return dbc.Row([
        dbc.Col([
            dbc.Label("Rango de tiempo"),
            dcc.Dropdown(
                id="time-range",
                options=[{"label": label, "value": key} for key, label, _ in TIME_RANGES]
                + [{"label": RANGE_LABEL, "value": RANGE_KEY}],
                value=DEFAULT_RANGE,
                clearable=False,
            ),
        ], width=12, md=3),
        dbc.Col([
            dbc.Label("Fechas"),
            html.Div([
                dcc.DatePickerRange(id="date-range", display_format="DD/MM/YYYY",
                                    start_date_placeholder_text="Desde", end_date_placeholder_text="Hasta"),
                dbc.Button("×", id="clear-range", color="link", size="sm"),
            ], className="d-flex align-items-center"),
        ], width=12, md=4),
        dbc.Col([
            dbc.Label("Tipo de gráfico"),
            dbc.RadioItems(
                id="chart-type",
                options=[{"label": label, "value": value} for value, label in CHART_TYPES],
                value="lines",
                inline=True,
            ),
        ], width=12, md=5),
    ], className="g-3 mb-3")


def device_summary(device_id, fresh=False):
    device = context.device(device_id, fresh=fresh)
    if device.error:
        return error_alert(device.error, "Error al cargar el dispositivo")
    if device.data is None:
        return dbc.Alert("Dispositivo no encontrado", color="warning")

    latest = context.latest_reading(device_id, fresh=fresh)
    last_reading = latest.data[0] if latest.data else None
    now = datetime.now(timezone.utc)
    seen = last_active(device.data, last_reading)
    status = detailed_status(seen, now)
    reading = parse_reading(last_reading) if last_reading else None

    summary = None
    if reading is not None:
        values = reading_summary(reading)
        summary = dbc.Card(dbc.CardBody([
            html.H6("Última lectura", className="text-muted"),
            html.Small(
                f"Accel X {values['accel_x']:.3f} · Y {values['accel_y']:.3f} · Z {values['accel_z']:.3f} m/s²  |  "
                f"Gyro X {values['gyro_x']:.3f} · Y {values['gyro_y']:.3f} · Z {values['gyro_z']:.3f} rad/s  |  "
                f"Muestras: {values['count']}"
            ),
        ]), className="mb-3")

    return html.Div([
        html.Div([
            html.H2(device.data.get("name") or device_id, className="d-inline me-3"),
            dbc.Badge(status["status"], color=status["color"]),
        ], className="d-flex align-items-center mb-3"),
        dbc.Row([
            stat_card("Estado", status["status"]),
            stat_card("Última actividad", format_timestamp(seen, display_timezone())),
            stat_card("ID del dispositivo", device_id),
            stat_card("Última lectura disponible", "Sí" if last_reading else "No"),
        ], className="g-2 mb-3"),
        summary,
    ])


def device_page():
    """Device page shell; summary and charts are filled in by their own callbacks."""
    return html.Div([
        html.Div(id="device-summary"),
        dbc.Card([
            dbc.CardHeader(html.Div([
                html.H4("Datos de Sensores", className="mb-0"),
                html.Div([
                    dbc.Badge(id="reading-count", color="light", text_color="dark", className="me-2"),
                    dbc.Badge(id="scroll-hint", color="info"),
                ], className="d-flex align-items-center"),
            ], className="d-flex align-items-center justify-content-between")),
            dbc.CardBody([
                chart_controls(),
                html.P(id="chart-description", className="text-muted small"),
                dcc.Loading(html.Div(id="charts-container"), type="default"),
            ]),
        ]),
    ])


@callback(
    Output(THEME_STORAGE_KEY, "data"),
    Output("theme-select", "value"),
    Input("theme-select", "value"),
    Input(THEME_STORAGE_KEY, "modified_timestamp"),
    State(THEME_STORAGE_KEY, "data"),
)
def sync_theme(selected, _modified, stored):
    return theme_selection(ctx.triggered_id, selected, stored)


app.clientside_callback(RESOLVE_THEME_JS, Output("resolved-theme", "data"), Input(THEME_STORAGE_KEY, "data"))
app.clientside_callback(DOWNLOAD_JS, Output("export-sink", "children"), Input("export-jobs", "data"))


@callback(
    Output("page-content", "children"),
    Input("url", "pathname"),
)
def display_page(pathname):
    """Render the overview or the device page for the current path."""
    if device_id_from_path(pathname):
        return device_page()
    return html.Div(id="device-list")


@callback(
    Output("device-list", "children"),
    Input("device-list", "id"),
    Input("refresh-button", "n_clicks"),
    Input("refresh-interval", "n_intervals"),
    Input("write-counter", "data"),
)
def update_device_list(_id, _clicks, _intervals, _writes):
    return overview_page(fresh=ctx.triggered_id == "refresh-button")


@callback(
    Output("device-summary", "children"),
    Input("device-summary", "id"),
    Input("refresh-button", "n_clicks"),
    Input("refresh-interval", "n_intervals"),
    Input("write-counter", "data"),
    State("url", "pathname"),
)
def update_device_summary(_id, _clicks, _intervals, _writes, pathname):
    device_id = device_id_from_path(pathname)
    if not device_id:
        return no_update
    return device_summary(device_id, fresh=ctx.triggered_id == "refresh-button")


@callback(
    Output("time-range", "value"),
    Output("date-range", "start_date"),
    Output("date-range", "end_date"),
    Input("time-range", "value"),
    Input("date-range", "start_date"),
    Input("date-range", "end_date"),
    Input("clear-range", "n_clicks"),
    prevent_initial_call=True,
)
def select_window(range_key, start_date, end_date, _clear):
    """A relative span and an explicit date range are mutually exclusive."""
    trigger = ctx.triggered_id
    if trigger == "clear-range":
        return DEFAULT_RANGE, None, None
    if trigger == "time-range":
        if range_key != RANGE_KEY:
            return range_key, None, None
        return no_update, no_update, no_update
    if start_date or end_date:
        return RANGE_KEY, start_date, end_date
    return no_update, no_update, no_update


def load_chart_data(device_id, window, chart_type, fresh=False):
    readings = context.chart_readings(device_id, fresh=fresh)
    if readings.error:
        raise RemoteError(readings.error)
    return prepare_chart_data(readings.data, window, chart_type, datetime.now(timezone.utc))


@callback(
    Output("charts-container", "children"),
    Output("reading-count", "children"),
    Output("scroll-hint", "children"),
    Output("chart-description", "children"),
    Input("time-range", "value"),
    Input("date-range", "start_date"),
    Input("date-range", "end_date"),
    Input("chart-type", "value"),
    Input("resolved-theme", "data"),
    Input("refresh-button", "n_clicks"),
    Input("refresh-interval", "n_intervals"),
    State("url", "pathname"),
)
def update_charts(range_key, start_date, end_date, chart_type, theme, _clicks, _intervals, pathname):
    device_id = device_id_from_path(pathname)
    if not device_id:
        return no_update, no_update, no_update, no_update

    window = resolve_window(range_key, start_date, end_date)
    try:
        data = load_chart_data(device_id, window, chart_type, fresh=ctx.triggered_id == "refresh-button")
    except RemoteError as e:
        return error_alert(e.message), "", "", ""

    charts = render_charts(data, plotly_template(theme), exportable=True)
    scroll_hint = "Desplázate horizontalmente" if data.needs_scroll else ""
    return charts, f"{len(data.readings)} lecturas", scroll_hint, CHART_DESCRIPTIONS.get(chart_type, "")


@callback(
    Output("export-jobs", "data"),
    Input({"type": "export-button", "scope": ALL}, "n_clicks"),
    State("time-range", "value"),
    State("date-range", "start_date"),
    State("date-range", "end_date"),
    State("chart-type", "value"),
    State("url", "pathname"),
    prevent_initial_call=True,
)
def export_charts(_clicks, range_key, start_date, end_date, chart_type, pathname):
    """Queue PNG downloads for the clicked export button."""
    trigger = ctx.triggered_id
    if not trigger or not ctx.triggered[0]["value"]:
        return no_update
    device_id = device_id_from_path(pathname)
    if not device_id:
        return no_update

    window = resolve_window(range_key, start_date, end_date)
    try:
        data = load_chart_data(device_id, window, chart_type)
    except RemoteError as e:
        logger.error(f"Error al exportar imagen: {e}")
        return no_update
    return build_export_jobs(trigger["scope"], data, datetime.now(timezone.utc))


@callback(
    [Output("delete-modal", "is_open"),
     Output("delete-device-id", "data")],
    [Input({"type": "delete-button", "index": ALL}, "n_clicks"),
     Input("delete-cancel", "n_clicks"),
     Input("delete-confirm", "n_clicks")],
    [State("delete-device-id", "data"),
     State("delete-modal", "is_open")],
    prevent_initial_call=True
)
def handle_delete_modal(_delete_clicks, _cancel_clicks, _confirm_clicks, stored_device_id, is_open):
    """Handle opening/closing the delete confirmation modal."""
    trigger = ctx.triggered_id
    if trigger is None:
        return is_open, stored_device_id

    # Delete button clicked - open modal and store device ID
    if isinstance(trigger, dict) and trigger.get("type") == "delete-button":
        # Re-rendered buttons fire with n_clicks None
        if not ctx.triggered[0]["value"]:
            return is_open, stored_device_id
        return True, trigger["index"]

    if trigger in ("delete-cancel", "delete-confirm"):
        return False, stored_device_id

    return is_open, stored_device_id


@callback(
    Output("write-counter", "data"),
    Input("delete-confirm", "n_clicks"),
    State("delete-device-id", "data"),
    State("write-counter", "data"),
    prevent_initial_call=True
)
def delete_device_confirmed(_confirm_clicks, device_id, writes):
    """Delete the device when the user confirms, then re-render the page."""
    if device_id is None:
        return no_update
    try:
        context.delete_device(device_id)
    except RemoteError as e:
        logger.error(f"Failed to delete device {device_id}: {e}")
        return no_update
    logger.info(f"Deleted device {device_id}")
    return (writes or 0) + 1


@callback(
    [Output("rename-modal", "is_open"),
     Output("rename-device-id", "data"),
     Output("rename-input", "value")],
    [Input({"type": "rename-button", "index": ALL}, "n_clicks"),
     Input("rename-cancel", "n_clicks"),
     Input("rename-confirm", "n_clicks")],
    [State("rename-device-id", "data"),
     State("rename-modal", "is_open"),
     State("rename-input", "value")],
    prevent_initial_call=True
)
def handle_rename_modal(_rename_clicks, _cancel_clicks, _confirm_clicks, stored_device_id, is_open, input_value):
    """Handle opening/closing the rename modal."""
    trigger = ctx.triggered_id
    if trigger is None:
        return is_open, stored_device_id, input_value

    if isinstance(trigger, dict) and trigger.get("type") == "rename-button":
        if not ctx.triggered[0]["value"]:
            return is_open, stored_device_id, input_value
        device_id = trigger["index"]

        # Prefill with the current name
        device = context.device(device_id)
        current_name = (device.data or {}).get("name") or ""
        return True, device_id, current_name

    if trigger in ("rename-cancel", "rename-confirm"):
        return False, stored_device_id, ""

    return is_open, stored_device_id, input_value


@callback(
    Output("write-counter", "data", allow_duplicate=True),
    Input("rename-confirm", "n_clicks"),
    State("rename-device-id", "data"),
    State("rename-input", "value"),
    State("write-counter", "data"),
    prevent_initial_call=True
)
def rename_device_confirmed(_confirm_clicks, device_id, new_name, writes):
    """Rename the device when the user confirms, then re-render the page."""
    if device_id is None or not new_name:
        return no_update
    try:
        context.rename_device(device_id, new_name.strip())
    except RemoteError as e:
        logger.error(f"Failed to rename device {device_id}: {e}")
        return no_update
    logger.info(f"Renamed device {device_id} to '{new_name}'")
    return (writes or 0) + 1


def main():
    logging.basicConfig(level=logging.INFO)
    app.run(debug=True, host=config.FRONTEND_HOST, port=config.FRONTEND_PORT)


if __name__ == "__main__":
    main()
