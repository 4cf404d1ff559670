import pandas as pd
import plotly.graph_objects as go
from plotly.subplots import make_subplots


def plot_track_profile(track: pd.DataFrame) -> go.Figure:
    """Elevation and speed of the ride over time, sharing one time axis."""
    x = track["timestamp"] if track["timestamp"].notna().any() else track.index
    fig = make_subplots(
        rows=2,
        cols=1,
        shared_xaxes=True,
        subplot_titles=("Elevation", "Speed"),
    )
    fig.add_trace(
        go.Scatter(
            x=x,
            y=track["elevation"],
            mode="lines",
            name="Elevation",
            line=dict(color="saddlebrown"),
            fill="tozeroy",
            fillcolor="rgba(139, 69, 19, 0.15)",
        ),
        row=1,
        col=1,
    )
    fig.add_trace(
        go.Scatter(
            x=x,
            y=track["speed"],
            mode="lines",
            name="Speed",
            line=dict(color="dodgerblue"),
        ),
        row=2,
        col=1,
    )
    fig.update_yaxes(title_text="m", row=1, col=1)
    fig.update_yaxes(title_text="speed", row=2, col=1)
    fig.update_layout(
        title_text="Ride Profile",
        height=500,
        showlegend=False,
        template="plotly_white",
        font=dict(size=14),
    )
    return fig


def plot_case_rates(features: pd.DataFrame) -> go.Figure:
    """
    Horizontal bar chart of cases per 10,000 by county, highest first.
    Counties without a rate are left out.
    """
    rates = (
        pd.DataFrame(features[["county", "cases_per_10000"]])
        .dropna(subset=["cases_per_10000"])
        .sort_values("cases_per_10000", ascending=True)
    )
    fig = go.Figure(
        go.Bar(
            x=rates["cases_per_10000"],
            y=rates["county"].str.title(),
            orientation="h",
            marker=dict(color="firebrick"),
        )
    )
    fig.update_layout(
        title="COVID-19 Cases per 10,000 Residents",
        xaxis_title="Cases per 10,000",
        yaxis_title="County",
        template="plotly_white",
        font=dict(size=14),
        height=max(400, 18 * len(rates)),
    )
    return fig
