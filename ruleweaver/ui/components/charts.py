"""
Reusable chart components for the Ruleweaver UI.

Helper functions that return Plotly figures for:
  - Population per type over time
  - Energy distribution histogram and energy over time
  - Mean trait evolution
  - Objective progress bars
"""

from typing import Optional

import numpy as np
import pandas as pd
import plotly.graph_objects as go

from ruleweaver.core.entity import TYPE_PROFILES, EntityType, Traits
from ruleweaver.simulation.objectives import Objective

_TYPE_COLUMNS = {
    "herbivores": EntityType.HERBIVORE,
    "carnivores": EntityType.CARNIVORE,
    "traders": EntityType.TRADER,
    "resources": EntityType.RESOURCE,
}


def _rgb(entity_type: EntityType) -> str:
    r, g, b = TYPE_PROFILES[entity_type].color
    return f"rgb({r}, {g}, {b})"


def _x_axis(df: pd.DataFrame):
    return df["tick"] if "tick" in df.columns else df.index


# ---------------------------------------------------------------------------
# Population charts
# ---------------------------------------------------------------------------

def population_over_time(
    df: pd.DataFrame,
    title: str = "Population Over Time",
    include_resources: bool = False,
) -> go.Figure:
    """
    Line chart of live counts per entity type.

    Args:
        df: KPI DataFrame (MetricsCollector.to_dataframe()).
        title: Chart title.
        include_resources: Also draw the resource count.

    Returns:
        Plotly figure.
    """
    fig = go.Figure()

    for col, entity_type in _TYPE_COLUMNS.items():
        if entity_type is EntityType.RESOURCE and not include_resources:
            continue
        if col in df.columns:
            fig.add_trace(go.Scatter(
                x=_x_axis(df),
                y=df[col],
                mode="lines",
                name=col.capitalize(),
                line=dict(color=_rgb(entity_type), width=2),
            ))

    if "population" in df.columns:
        fig.add_trace(go.Scatter(
            x=_x_axis(df),
            y=df["population"],
            mode="lines",
            name="Total",
            line=dict(color="#2c3e50", width=2, dash="dot"),
        ))

    fig.update_layout(
        title=title,
        xaxis_title="Tick",
        yaxis_title="Count",
        template="plotly_white",
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="right", x=1),
    )
    return fig


# ---------------------------------------------------------------------------
# Energy charts
# ---------------------------------------------------------------------------

def energy_distribution(
    energies: list[float] | np.ndarray,
    title: str = "Energy Distribution",
    bins: int = 30,
) -> go.Figure:
    """Histogram of entity energy levels."""
    fig = go.Figure(data=[
        go.Histogram(
            x=energies,
            nbinsx=bins,
            marker_color="#f39c12",
            opacity=0.75,
        )
    ])
    fig.update_layout(
        title=title,
        xaxis_title="Energy",
        yaxis_title="Count",
        template="plotly_white",
    )
    return fig


def energy_over_time(
    df: pd.DataFrame,
    title: str = "Total Energy Over Time",
) -> go.Figure:
    fig = go.Figure()
    if "total_energy" in df.columns:
        fig.add_trace(go.Scatter(
            x=_x_axis(df),
            y=df["total_energy"],
            mode="lines",
            name="Total energy",
            line=dict(color="#f39c12", width=2),
            fill="tozeroy",
        ))
    fig.update_layout(
        title=title,
        xaxis_title="Tick",
        yaxis_title="Energy",
        template="plotly_white",
    )
    return fig


# ---------------------------------------------------------------------------
# Traits
# ---------------------------------------------------------------------------

def trait_evolution(
    df: pd.DataFrame,
    title: str = "Mean Traits Over Time",
    traits: Optional[list[str]] = None,
) -> go.Figure:
    """Line chart of the population's mean trait values, each in [0, 1]."""
    fig = go.Figure()
    for name in traits or list(Traits.names()):
        col = f"avg_{name}"
        if col in df.columns:
            fig.add_trace(go.Scatter(
                x=_x_axis(df),
                y=df[col],
                mode="lines",
                name=name.capitalize(),
            ))
    fig.update_layout(
        title=title,
        xaxis_title="Tick",
        yaxis_title="Mean value",
        yaxis=dict(range=[0, 1]),
        template="plotly_white",
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="right", x=1),
    )
    return fig


# ---------------------------------------------------------------------------
# Objectives
# ---------------------------------------------------------------------------

def objective_progress(
    objectives: list[Objective],
    title: str = "Objectives",
) -> go.Figure:
    """Horizontal bars of each objective's progress; completed ones in green."""
    titles = [o.title for o in objectives]
    progress = [o.progress * 100 for o in objectives]
    colors = ["#2ecc71" if o.completed else ("#e74c3c" if o.emergency else "#3498db") for o in objectives]

    fig = go.Figure(data=[
        go.Bar(
            x=progress,
            y=titles,
            orientation="h",
            marker_color=colors,
            text=[o.status for o in objectives],
            textposition="auto",
        )
    ])
    fig.update_layout(
        title=title,
        xaxis=dict(title="Progress (%)", range=[0, 100]),
        template="plotly_white",
        height=max(250, 40 * len(objectives) + 100),
        margin=dict(l=220, r=20, t=50, b=40),
    )
    return fig
