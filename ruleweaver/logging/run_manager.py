"""
Run Manager for Ruleweaver.

Lays out the output directory of one headless run:

    {base_dir}/{run_name}/
        config.json     - the configuration the run used
        metrics.csv     - periodic KPI samples
        events.json     - the event log at the end of the run
        summary.json    - final RunResult summary
        saves/          - slot saves made during the run
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from ruleweaver.core.config import SimConfig, save_config
from ruleweaver.logging.csv_logger import CSVLogger
from ruleweaver.logging.event_log import EventLog
from ruleweaver.logging.snapshot import SnapshotManager


class RunManager:
    """
    Owns one run's output directory.

    Attributes:
        run_dir: Path to this run's output directory.
        csv_logger: CSVLogger for KPI rows.
        snapshot_manager: SnapshotManager rooted at run_dir/saves.
    """

    def __init__(
        self,
        config: SimConfig,
        base_dir: Optional[str | Path] = None,
        run_name: Optional[str] = None,
    ):
        """
        Create the run directory and write config.json.

        Args:
            config: Simulation configuration.
            base_dir: Base output directory. None = config.viz.output_dir.
            run_name: Subdirectory name. None = timestamp.
        """
        if base_dir is None:
            base_dir = config.viz.output_dir
        if run_name is None:
            run_name = datetime.now().strftime("%Y%m%d_%H%M%S")

        self.run_dir = Path(base_dir) / run_name
        self.run_dir.mkdir(parents=True, exist_ok=True)

        self._config_path = self.run_dir / "config.json"
        save_config(config, self._config_path)

        self.csv_logger = CSVLogger(self.run_dir / "metrics.csv")
        self.snapshot_manager = SnapshotManager(self.run_dir / "saves")

    @property
    def config_path(self) -> Path:
        return self._config_path

    @property
    def metrics_path(self) -> Path:
        return self.csv_logger.file_path

    @property
    def saves_dir(self) -> Path:
        return self.snapshot_manager.save_dir

    def log_metrics(self, kpis: dict) -> None:
        self.csv_logger.log_row(kpis)

    def write_events(self, event_log: EventLog) -> Path:
        path = self.run_dir / "events.json"
        with open(path, "w", encoding="utf-8") as f:
            json.dump(event_log.export(), f, indent=2, ensure_ascii=False)
        return path

    def finalize(self, summary: Optional[dict[str, Any]] = None) -> None:
        """Write summary.json if a summary is given."""
        if summary is not None:
            with open(self.run_dir / "summary.json", "w", encoding="utf-8") as f:
                json.dump(summary, f, indent=2, ensure_ascii=False)

    @staticmethod
    def list_runs(base_dir: str | Path) -> list[str]:
        """Sorted names of run directories (those holding a config.json)."""
        base = Path(base_dir)
        if not base.exists():
            return []
        return sorted(
            d.name for d in base.iterdir()
            if d.is_dir() and (d / "config.json").exists()
        )

    def __repr__(self) -> str:
        return f"RunManager(run_dir='{self.run_dir}')"
