"""
World View component for the Ruleweaver UI.

Renders the world with Plotly, one scatter trace per entity type:
  - marker colour is the entity's trait-derived colour
  - marker size follows the entity's radius
  - hover shows the inspection summary

Works from a live World or from a save payload's "world" section.
Rendering only reads entity state.
"""

from typing import Optional

import plotly.graph_objects as go

from ruleweaver.core.entity import EntityType, Traits, TYPE_PROFILES, entity_color, entity_radius
from ruleweaver.core.world import World

_SYMBOLS = {
    EntityType.HERBIVORE: "circle",
    EntityType.CARNIVORE: "triangle-up",
    EntityType.TRADER: "diamond",
    EntityType.RESOURCE: "square",
}


def _layout(fig: go.Figure, title: str, world_w: float, world_h: float, width: int, height: int) -> None:
    fig.update_layout(
        title=title,
        width=width,
        height=height,
        xaxis=dict(
            range=[0, world_w],
            title="X",
            scaleanchor="y",
            scaleratio=1,
            constrain="domain",
        ),
        yaxis=dict(
            range=[world_h, 0],
            title="Y",
        ),
        template="plotly_white",
        legend=dict(
            orientation="h",
            yanchor="bottom", y=1.02,
            xanchor="right", x=1,
        ),
        margin=dict(l=40, r=40, t=60, b=40),
    )


def _add_trace(fig: go.Figure, entity_type: EntityType, rows: list[dict]) -> None:
    if not rows:
        return
    fig.add_trace(go.Scatter(
        x=[r["x"] for r in rows],
        y=[r["y"] for r in rows],
        mode="markers",
        marker=dict(
            symbol=_SYMBOLS[entity_type],
            size=[r["radius"] * 2 for r in rows],
            color=[r["color"] for r in rows],
            line=dict(width=0.5, color="rgba(0,0,0,0.3)"),
        ),
        text=[r["hover"] for r in rows],
        name=f"{entity_type.value.capitalize()}s ({len(rows)})",
        hovertemplate="%{text}<extra></extra>",
    ))


# ---------------------------------------------------------------------------
# Rendering from live World object
# ---------------------------------------------------------------------------

def render_world(
    world: World,
    title: Optional[str] = None,
    width: int = 800,
    height: int = 600,
) -> go.Figure:
    """
    Render the live world.

    Args:
        world: World to draw.
        title: Optional chart title.
        width, height: Plot size in pixels.

    Returns:
        Plotly figure.
    """
    fig = go.Figure()
    if title is None:
        title = f"World ({world.width:.0f}x{world.height:.0f}) | Tick {world.tick_count}"

    by_type: dict[EntityType, list[dict]] = {t: [] for t in EntityType}
    for e in world.live_entities():
        info = e.inspect()
        hover = "<br>".join(f"{k}: {v}" for k, v in info.items())
        by_type[e.type].append({
            "x": e.x, "y": e.y, "radius": e.radius, "color": e.color, "hover": hover,
        })

    # Resources first so they sit underneath the agents.
    for entity_type in (EntityType.RESOURCE, *[t for t in EntityType if t is not EntityType.RESOURCE]):
        _add_trace(fig, entity_type, by_type[entity_type])

    _layout(fig, title, world.width, world.height, width, height)
    return fig


# ---------------------------------------------------------------------------
# Rendering from a save payload
# ---------------------------------------------------------------------------

def render_saved_world(
    world_data: dict,
    title: Optional[str] = None,
    width: int = 800,
    height: int = 600,
) -> go.Figure:
    """
    Render the "world" section of a save payload.

    Colour and size are recomputed from the saved traits.
    """
    fig = go.Figure()
    world_w = world_data.get("width", 800)
    world_h = world_data.get("height", 600)
    if title is None:
        title = f"Saved World ({world_w:.0f}x{world_h:.0f})"

    by_type: dict[EntityType, list[dict]] = {t: [] for t in EntityType}
    for d in world_data.get("entities", []):
        entity_type = EntityType(d["type"])
        traits = Traits.from_dict(d.get("traits", {}))
        by_type[entity_type].append({
            "x": d.get("x", 0),
            "y": d.get("y", 0),
            "radius": entity_radius(traits),
            "color": entity_color(entity_type, traits),
            "hover": f"{entity_type.value} gen {d.get('generation', 1)} energy {d.get('energy', 0):.0f}",
        })

    for entity_type in EntityType:
        _add_trace(fig, entity_type, by_type[entity_type])

    _layout(fig, title, world_w, world_h, width, height)
    return fig


def type_legend() -> list[dict]:
    """Base colour of every type, for a static legend."""
    return [
        {"type": t.value, "rgb": f"rgb{TYPE_PROFILES[t].color}", "symbol": _SYMBOLS[t]}
        for t in EntityType
    ]
