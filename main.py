"""
Ruleweaver - CLI Entry Point

Usage:
    python main.py --mode run --ticks 2000
    python main.py --mode run --config my_config.json --auto-respawn
    python main.py --mode run --load-slot 1 --ticks 500
    python main.py --ui
"""

import argparse
import logging
import sys
import time
from pathlib import Path


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Ruleweaver - tune the rules of a small ecosystem and watch it evolve",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --ui                                   Launch Streamlit UI
  python main.py --mode run --ticks 2000                Run headless for 2000 ticks
  python main.py --mode run --load-slot 1 --ticks 500   Continue a saved game
        """,
    )

    parser.add_argument(
        "--mode",
        choices=["run"],
        default=None,
        help="Run mode: 'run' for a headless simulation",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to JSON config file (default: built-in defaults)",
    )
    parser.add_argument(
        "--ui",
        action="store_true",
        help="Launch Streamlit web UI (ignores --mode)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Override random seed (overrides config value)",
    )
    parser.add_argument(
        "--ticks",
        type=int,
        default=1000,
        help="Number of ticks to simulate (default: 1000)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Override output directory",
    )
    parser.add_argument(
        "--load-slot",
        type=int,
        default=None,
        help="Start from the save in this slot instead of a fresh world",
    )
    parser.add_argument(
        "--auto-respawn",
        action="store_true",
        help="Reseed the population on extinction instead of stopping",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level for simulation events (default: WARNING)",
    )

    return parser.parse_args()


def launch_ui() -> None:
    """Launch the Streamlit web UI."""
    import subprocess
    ui_path = Path(__file__).parent / "ruleweaver" / "ui" / "app.py"
    if not ui_path.exists():
        print(f"Error: UI app not found at {ui_path}")
        sys.exit(1)
    subprocess.run(
        [
            sys.executable, "-m", "streamlit", "run", str(ui_path),
            "--server.port=8501",
            "--server.headless=true",
            "--browser.gatherUsageStats=false",
        ],
        check=True,
    )


def run_headless(
    config_path: str | None,
    ticks: int,
    seed_override: int | None = None,
    output_dir: str | None = None,
    load_slot: int | None = None,
    auto_respawn: bool = False,
) -> int:
    """Run one headless simulation and write a run directory. Returns an exit code."""
    from ruleweaver.core.config import load_config, get_default_config
    from ruleweaver.simulation.engine import SimulationEngine
    from ruleweaver.simulation.metrics import MetricsCollector
    from ruleweaver.logging.run_manager import RunManager

    config = load_config(config_path) if config_path else get_default_config()
    if output_dir is not None:
        config.viz.output_dir = output_dir

    run_manager = RunManager(config, base_dir=config.viz.output_dir)

    print("[Ruleweaver] Headless run")
    print(f"  Config: {config_path or '(defaults)'}")
    print(f"  World: {config.world.width}x{config.world.height}")
    print(f"  Seed: {seed_override if seed_override is not None else config.world.seed}")
    print(f"  Ticks: {ticks}")
    print(f"  Output: {run_manager.run_dir}")
    print()

    engine = SimulationEngine(config, seed=seed_override)
    engine.initialize()

    if load_slot is not None:
        from ruleweaver.logging.snapshot import SnapshotManager
        saves = SnapshotManager(config.persistence.save_dir)
        engine.snapshot_manager = saves
        if not engine.load_game(load_slot):
            print(f"Error: could not load slot {load_slot} from {saves.save_dir}")
            return 1
        print(f"  Loaded slot {load_slot} at tick {engine.current_tick}")

    metrics = MetricsCollector(config)
    every = config.viz.stats_every_ticks

    def on_tick(tick: int, eng: SimulationEngine) -> None:
        if tick % every != 0:
            return
        kpis = metrics.collect(eng, eng.get_accumulated_stats())
        eng.reset_accumulated_stats()
        run_manager.log_metrics(kpis)
        print(
            f"  Tick {tick:6d} | Pop: {kpis['population']:4d} "
            f"(H {kpis['herbivores']:3d} C {kpis['carnivores']:3d} T {kpis['traders']:3d}) "
            f"| Energy: {kpis['total_energy']:6d} | Gen: {kpis['max_generation']:3d} "
            f"| Score: {kpis['score']}"
        )

    def on_extinction(tick: int, eng: SimulationEngine) -> None:
        print(f"  Tick {tick:6d} | EXTINCTION")

    engine.on_tick = on_tick
    engine.on_extinction = on_extinction

    start_time = time.time()
    result = engine.run(max_ticks=ticks, auto_respawn=auto_respawn)
    elapsed = time.time() - start_time

    engine.snapshot_manager = run_manager.snapshot_manager
    engine.save_game(config.persistence.autosave_slot)

    print()
    print("[Result]")
    print(f"  Ticks: {result.total_ticks}")
    print(f"  Final population: {result.final_population}")
    print(f"  Max generation: {result.max_generation}")
    print(f"  Extinct: {result.extinct}")
    print(f"  Respawns: {result.respawns}")
    print(f"  Score: {result.score} ({result.objectives_completed} objectives)")
    print(f"  Elapsed: {elapsed:.1f}s")

    summary = result.to_summary()
    summary["elapsed_seconds"] = round(elapsed, 2)
    run_manager.write_events(engine.event_log)
    run_manager.finalize(summary)
    print(f"  Output saved to: {run_manager.run_dir}")
    return 0


def main() -> None:
    args = parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.ui:
        launch_ui()
        return

    if args.mode is None:
        print("Error: Specify --mode run or --ui to launch the web interface.")
        print("Run with --help for usage information.")
        sys.exit(1)

    if args.mode == "run":
        sys.exit(run_headless(
            args.config,
            ticks=args.ticks,
            seed_override=args.seed,
            output_dir=args.output,
            load_slot=args.load_slot,
            auto_respawn=args.auto_respawn,
        ))


if __name__ == "__main__":
    main()
