"""
Ruleweaver - Streamlit Web UI

Pages, picked from the sidebar:
  1. Home       - What the simulation is and how to play
  2. Simulation - Tune rules, run the world, chase objectives
"""

import streamlit as st

# Must be the very first Streamlit command
st.set_page_config(
    page_title="Ruleweaver",
    page_icon="🌍",
    layout="wide",
    initial_sidebar_state="expanded",
)


def main() -> None:
    """Main entry point for the Streamlit app."""

    st.sidebar.title("🌍 Ruleweaver")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigation",
        options=["🏠 Home", "▶️ Simulation"],
        index=1,
    )

    st.sidebar.markdown("---")

    if page == "🏠 Home":
        _render_home()
    else:
        from ruleweaver.ui.pages.sim_runner import render_sim_runner
        render_sim_runner()


def _render_home() -> None:
    """Render the home page."""
    st.title("🌍 Ruleweaver")
    st.markdown("""
    A small ecosystem in a bounded 2D world. You do not control the creatures;
    you control the **rules** they live under, and try to complete objectives.

    ### Entities

    | Type | Behaviour |
    |------|-----------|
    | **Herbivore** | Seeks resources, eats them for energy |
    | **Carnivore** | Hunts smaller entities when predation is enabled |
    | **Trader** | Shares energy with weaker neighbours |
    | **Resource** | Stationary food, respawns over time |

    Every living entity carries heritable traits (efficiency, aggression,
    sociability, adaptability, size), ages, burns energy
    and reproduces when it has enough to spare.

    ### Rules

    Gravity, energy decay, reproduction cost, mutation chance, trade efficiency
    and resource abundance are sliders; predators and weather are switches.
    Population pressure and extinction threat are derived from the live
    population every tick.

    ### Objectives

    Reach population, energy, survival, generation and balance goals to earn
    points. New objectives appear as you complete old ones, and emergencies
    show up when the world is about to collapse.
    """)


if __name__ == "__main__":
    main()
