"""
Simulation page for the Ruleweaver UI.

Allows users to:
  - Step or run the simulation and pause/resume it
  - Tune the global rules (every change goes through the rules engine)
  - Respawn after extinction, reset, save and load slots
  - Watch the world, population charts, objectives and the event log
"""

import streamlit as st
import pandas as pd

from ruleweaver.core.config import get_default_config
from ruleweaver.logging.event_log import Severity
from ruleweaver.simulation.engine import SimulationEngine
from ruleweaver.simulation.metrics import MetricsCollector
from ruleweaver.simulation.rules import BOOLEAN_RULES, SETTABLE_RULES
from ruleweaver.ui.components.charts import (
    energy_distribution,
    objective_progress,
    population_over_time,
    trait_evolution,
)
from ruleweaver.ui.components.world_view import render_world

# (min, max, step) for each numeric rule slider
_SLIDER_RANGES = {
    "gravity": (0.0, 3.0, 0.1),
    "energy_decay": (0.0, 0.2, 0.005),
    "reproduction_cost": (0.0, 150.0, 5.0),
    "mutation_chance": (0.0, 0.5, 0.01),
    "trade_efficiency": (0.0, 3.0, 0.1),
    "resource_abundance": (0.0, 3.0, 0.1),
}

_SEVERITY_ICONS = {
    Severity.NORMAL: "•",
    Severity.IMPORTANT: "⚠️",
    Severity.SUCCESS: "✅",
    Severity.CRITICAL: "🛑",
}


# ---------------------------------------------------------------------------
# Session state helpers
# ---------------------------------------------------------------------------

def _init_session_state() -> None:
    """Create the engine and metrics collector once per session."""
    if st.session_state.get("rw_engine") is None:
        config = get_default_config()
        engine = SimulationEngine(config)
        engine.initialize()
        st.session_state.rw_engine = engine
        st.session_state.rw_metrics = MetricsCollector(config)


def _engine() -> SimulationEngine:
    return st.session_state.rw_engine


def _metrics() -> MetricsCollector:
    return st.session_state.rw_metrics


def _advance(engine: SimulationEngine, ticks: int) -> int:
    """Tick up to `ticks` times, sampling metrics every tick (history is capped). Returns ticks run."""
    metrics = _metrics()
    ran = 0
    for _ in range(ticks):
        if engine.tick() is None:
            break
        ran += 1
        metrics.collect(engine, engine.get_accumulated_stats())
        engine.reset_accumulated_stats()
        if engine.extinct:
            break
    return ran


# ---------------------------------------------------------------------------
# Main render
# ---------------------------------------------------------------------------

def render_sim_runner() -> None:
    """Render the simulation page."""
    _init_session_state()
    engine = _engine()
    st.title("🌍 Ruleweaver Simulation")

    _render_rule_controls(engine)
    _render_controls(engine)

    if engine.extinct:
        st.error("💀 All entities have perished. Respawn the population to continue.")
    elif engine.paused:
        st.info("⏸️ Simulation paused.")

    _render_status(engine)

    col_world, col_side = st.columns([3, 2])
    with col_world:
        st.plotly_chart(render_world(engine.world), use_container_width=True)
    with col_side:
        _render_objectives(engine)

    _render_charts(engine)
    _render_event_log(engine)


# ---------------------------------------------------------------------------
# Controls
# ---------------------------------------------------------------------------

def _render_rule_controls(engine: SimulationEngine) -> None:
    st.sidebar.subheader("⚙️ Rules")
    rules = engine.rules_engine.get_current_rules()

    for name, (lo, hi, step) in _SLIDER_RANGES.items():
        current = float(getattr(rules, name))
        value = st.sidebar.slider(
            name.replace("_", " ").capitalize(),
            min_value=lo, max_value=max(hi, current), value=current, step=step,
            key=f"rw_rule_{name}",
        )
        if value != current:
            engine.set_rule(name, value)

    for name in sorted(BOOLEAN_RULES):
        current = bool(getattr(rules, name))
        value = st.sidebar.checkbox(
            name.replace("_", " ").capitalize(), value=current, key=f"rw_rule_{name}",
        )
        if value != current:
            engine.set_rule(name, value)

    analysis = engine.rules_engine.analyze_rule_effectiveness()
    if analysis is not None:
        st.sidebar.caption(f"Most tuned: {analysis.most_changed}. {analysis.recommendation}")


def _render_controls(engine: SimulationEngine) -> None:
    c1, c2, c3, c4, c5, c6 = st.columns(6)

    with c1:
        if st.button("⏭️ Step", key="rw_step", disabled=engine.paused):
            _advance(engine, 1)
    with c2:
        n = st.number_input("Ticks", min_value=1, max_value=5000, value=100, step=50, key="rw_n")
        if st.button("▶️ Run", key="rw_run", disabled=engine.paused):
            with st.spinner(f"Running {n} ticks..."):
                _advance(engine, int(n))
    with c3:
        if engine.paused:
            if st.button("▶️ Resume", key="rw_resume", disabled=engine.extinct):
                engine.resume()
                st.rerun()
        elif st.button("⏸️ Pause", key="rw_pause"):
            engine.pause()
            st.rerun()
    with c4:
        if st.button("🌱 Respawn", key="rw_respawn"):
            engine.respawn_population()
            st.rerun()
    with c5:
        if st.button("🔄 Reset", key="rw_reset"):
            engine.reset()
            st.session_state.rw_metrics = MetricsCollector(engine.config)
            st.rerun()
    with c6:
        slots = list(range(engine.config.persistence.slots))
        slot = st.selectbox("Slot", slots, key="rw_slot")
        s_col, l_col = st.columns(2)
        if s_col.button("💾", key="rw_save", help="Save to slot"):
            engine.save_game(slot)
        if l_col.button("📂", key="rw_load", help="Load from slot"):
            if engine.load_game(slot):
                st.session_state.rw_metrics = MetricsCollector(engine.config)
            st.rerun()


# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------

def _render_status(engine: SimulationEngine) -> None:
    game = engine.get_game_stats()
    world = game["world"]
    by_type = world["by_type"]
    weather = game["weather"]

    cols = st.columns(7)
    cols[0].metric("⏱️ Tick", game["tick"])
    cols[1].metric("🐾 Population", world["population"])
    cols[2].metric("🌿 Herbivores", by_type.get("herbivore", 0))
    cols[3].metric("🦁 Carnivores", by_type.get("carnivore", 0))
    cols[4].metric("🤝 Traders", by_type.get("trader", 0))
    cols[5].metric("⚡ Energy", world["total_energy"])
    cols[6].metric("🏆 Score", game["objectives"]["total_score"])

    rules = game["rules"]
    st.caption(
        f"Pressure {rules['population_pressure']:.2f} | "
        f"Extinction threat {rules['extinction_threat']:.2f} | "
        f"Weather: {weather['phase']}"
    )


def _render_objectives(engine: SimulationEngine) -> None:
    manager = engine.objective_manager
    st.subheader("🎯 Objectives")
    active = manager.active_objectives
    if active:
        st.plotly_chart(objective_progress(active), use_container_width=True)
    else:
        st.caption("No active objectives.")

    rows = [
        {"Objective": o.title, "Points": o.points, "Completed at": o.completed_at}
        for o in manager.completed_objectives
    ]
    if rows:
        with st.expander(f"Completed ({len(rows)})"):
            st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)

    stats = engine.entity_manager.get_statistics()
    for rec in manager.get_recommendations(stats, engine.rules_engine.get_current_rules()):
        st.warning(f"[{rec.priority}] {rec.text}")


def _render_charts(engine: SimulationEngine) -> None:
    df = _metrics().to_dataframe()
    if df.empty:
        return

    st.markdown("---")
    tab_pop, tab_energy, tab_traits, tab_raw = st.tabs(["Population", "Energy", "Traits", "Raw"])

    with tab_pop:
        st.plotly_chart(population_over_time(df), use_container_width=True)
    with tab_energy:
        energies = [e.energy for e in engine.world.live_entities() if not e.is_resource]
        st.plotly_chart(energy_distribution(energies), use_container_width=True)
    with tab_traits:
        st.plotly_chart(trait_evolution(df), use_container_width=True)
    with tab_raw:
        st.dataframe(df, use_container_width=True)
        st.download_button(
            "⬇️ Download CSV",
            data=df.to_csv(index=False),
            file_name="ruleweaver_kpis.csv",
            mime="text/csv",
            key="rw_dl_csv",
        )


def _render_event_log(engine: SimulationEngine) -> None:
    st.markdown("---")
    st.subheader("📜 Event Log")
    for entry in engine.event_log.recent(15):
        st.text(f"{_SEVERITY_ICONS[entry.severity]} [{entry.tick:>6}] {entry.message}")
