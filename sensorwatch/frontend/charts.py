"""Plotly figures and the chart section of the device page."""

import dash_bootstrap_components as dbc
import plotly.graph_objects as go
from dash import dcc, html

from sensorwatch.frontend.pipeline import POLAR_TYPES, ChartData

CHART_HEIGHT = 350
POLAR_HEIGHT = 400
POLAR_WIDTH = 600

ACCEL_COLORS = ("#8884d8", "#82ca9d", "#ffc658")
GYRO_COLORS = ("#ff7300", "#00ff00", "#ff0000")
ACCEL_FILL = "#8884d8"
GYRO_FILL = "#82ca9d"

# Graph ids, also the export targets
ACCEL_GRAPH = "accel-graph"
GYRO_GRAPH = "gyro-graph"
COMBINED_GRAPH = "combined-graph"

NO_DATA_MESSAGE = "No hay datos disponibles para el rango seleccionado"

CHART_DESCRIPTIONS = {
    "lines": (
        "Se muestran los datos de cada sensor por separado en formato \"crudo\". En el primer gráfico "
        "se visualizan los tres ejes del acelerómetro (X, Y, Z) y en el segundo gráfico los tres ejes "
        "del giroscopio (X, Y, Z), permitiendo un análisis más claro de cada sensor individualmente."
    ),
    "area": (
        "Se visualizan las magnitudes totales por separado: la magnitud de aceleración |a| en el primer "
        "gráfico y la magnitud del giroscopio |ω| en el segundo. Esta separación facilita la detección "
        "de eventos específicos de movimiento o rotación sin interferencias visuales entre sensores."
    ),
    "bars": (
        "Se comparan los promedios recientes de cada eje por sensor. El primer gráfico muestra los ejes "
        "X, Y, Z del acelerómetro y el segundo los del giroscopio. Ideal para analizar la distribución "
        "de fuerzas y rotaciones por separado e identificar patrones específicos de cada sensor."
    ),
    "radar": (
        "Se muestra un snapshot instantáneo de los valores absolutos de la última lectura disponible. "
        "Permite visualizar todos los ejes X, Y, Z de ambos sensores simultáneamente en un formato "
        "polar, útil para entender la orientación y patrones de movimiento actuales de forma comparativa."
    ),
    "radial": (
        "Se visualiza la intensidad actual mediante las magnitudes de aceleración y giroscopio. Este "
        "gráfico es ideal para monitorear el nivel general de actividad del dispositivo de forma "
        "rápida y visual, comparando ambos sensores en un solo vistazo."
    ),
}

# sensor -> (title, unit, axis colors, magnitude fill, magnitude name)
SENSORS = {
    "accel": ("Acelerómetro", "m/s²", ACCEL_COLORS, ACCEL_FILL, "Magnitud Acelerómetro"),
    "gyro": ("Giroscopio", "rad/s", GYRO_COLORS, GYRO_FILL, "Magnitud Giroscopio"),
}


def plotly_template(theme):
    return "plotly_dark" if theme == "dark" else "plotly_white"


def sensor_figure(data: ChartData, sensor: str, template: str = "plotly_white") -> go.Figure:
    """Lines, area or bars figure for one sensor."""
    title, unit, colors, fill, magnitude_name = SENSORS[sensor]
    df = data.frame
    prefix = "Accel" if sensor == "accel" else "Gyro"
    hover = "%{customdata}<br>%{fullData.name}: %{y:.3f}<extra></extra>"

    fig = go.Figure()
    if data.chart_type == "area":
        fig.add_trace(go.Scatter(
            x=df["timestamp"], y=df[f"{sensor}_magnitude"], name=magnitude_name,
            fill="tozeroy", line=dict(color=fill), customdata=df["time"], hovertemplate=hover,
        ))
    else:
        for axis, color in zip("xyz", colors):
            column = f"{sensor}_{axis}"
            name = f"{prefix} {axis.upper()}"
            if data.chart_type == "bars":
                trace = go.Bar(x=df["timestamp"], y=df[column], name=name, marker_color=color)
            else:
                trace = go.Scatter(x=df["timestamp"], y=df[column], name=name, mode="lines",
                                   line=dict(color=color, width=2))
            trace.update(customdata=df["time"], hovertemplate=hover)
            fig.add_trace(trace)

    fig.update_layout(
        xaxis_title="Tiempo",
        yaxis_title=f"{title} ({unit})",
        xaxis_tickformat="%H:%M:%S" if data.window.minute_granularity else "%H:%M",
        xaxis_tickangle=-45,
        hovermode="x unified",
        barmode="group",
        width=data.width,
        height=CHART_HEIGHT,
        margin=dict(t=20, r=30, l=20, b=60),
        template=template,
    )
    return fig


def radar_figure(data: ChartData, template: str = "plotly_white") -> go.Figure:
    axes = [row["axis"] for row in data.radar]
    fig = go.Figure()
    for key, name, color in (("accel", "Acelerómetro", ACCEL_FILL), ("gyro", "Giroscopio", GYRO_FILL)):
        values = [row[key] for row in data.radar]
        fig.add_trace(go.Scatterpolar(
            r=values + values[:1], theta=axes + axes[:1], name=name,
            fill="toself", opacity=0.6, line=dict(color=color),
        ))
    fig.update_layout(width=POLAR_WIDTH, height=POLAR_HEIGHT, template=template,
                      polar=dict(radialaxis=dict(visible=True)))
    return fig


def radial_figure(data: ChartData, template: str = "plotly_white") -> go.Figure:
    fig = go.Figure(go.Barpolar(
        r=[row["value"] for row in data.radial],
        theta=[row["name"] for row in data.radial],
        marker_color=[ACCEL_FILL, GYRO_FILL][:len(data.radial)],
        hovertemplate="%{theta}: %{r:.3f}<extra></extra>",
    ))
    fig.update_layout(width=POLAR_WIDTH, height=POLAR_HEIGHT, template=template, showlegend=False)
    return fig


def _export_button(scope, label="📷 Exportar"):
    return dbc.Button(
        label,
        id={"type": "export-button", "scope": scope},
        color="secondary",
        outline=True,
        size="sm",
    )


def _scroll_wrapper(graph, scroll):
    style = {"overflowX": "auto", "scrollbarWidth": "thin"} if scroll else {}
    return html.Div(graph, style={"width": "100%", **style})


def _sensor_block(data, sensor, graph_id, template, exportable):
    title, unit = SENSORS[sensor][0], SENSORS[sensor][1]
    scope = "acelerometro" if sensor == "accel" else "giroscopio"
    header = html.Div([
        html.H5([title, " ", dbc.Badge(unit, color="light", text_color="dark", className="ms-1")],
                className="mb-0"),
        _export_button(scope) if exportable else None,
    ], className="d-flex align-items-center justify-content-between mb-2")
    graph = dcc.Graph(id=graph_id, figure=sensor_figure(data, sensor, template),
                      config={"displayModeBar": False})
    return html.Div([header, _scroll_wrapper(graph, data.needs_scroll)], className="mb-4")


def render_charts(data: ChartData, template: str = "plotly_white", exportable: bool = True):
    """
    Chart area for every chart type.

    lines/area/bars show the accelerometer and gyroscope as two charts;
    radar/radial show one combined chart. ``exportable`` adds export buttons.
    """
    if data.empty:
        return dbc.Alert(NO_DATA_MESSAGE, color="secondary", className="text-center my-5")

    toolbar = None
    if exportable:
        toolbar = html.Div(_export_button("completo", "📷 Exportar todo"), className="d-flex justify-content-end mb-2")

    if data.chart_type in POLAR_TYPES:
        build = radar_figure if data.chart_type == "radar" else radial_figure
        return html.Div([
            toolbar,
            html.Div(dcc.Graph(id=COMBINED_GRAPH, figure=build(data, template),
                               config={"displayModeBar": False}),
                     className="d-flex justify-content-center"),
        ])

    return html.Div([
        toolbar,
        _sensor_block(data, "accel", ACCEL_GRAPH, template, exportable),
        _sensor_block(data, "gyro", GYRO_GRAPH, template, exportable),
    ])
