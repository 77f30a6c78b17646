"""
CSV Logger for Ruleweaver.

Appends one KPI row per metrics sample to a CSV file. The header is written
with the first row; later rows are appended, so a long headless run can be
inspected while it is still going.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Optional

import pandas as pd

from ruleweaver.simulation.metrics import MetricsCollector


class CSVLogger:
    """
    Logs KPI samples to a CSV file.

    Usage:
        csv_log = CSVLogger("runs/my_run/metrics.csv")
        csv_log.log_row(kpis)                 # append one row
        csv_log.log_all(collector.history)    # rewrite the file
        df = csv_log.read_back()              # pandas DataFrame

    Attributes:
        file_path: Path to the CSV file.
        columns: Ordered column names; keys outside this list are dropped.
        rows_written: Rows appended through this instance.
    """

    def __init__(
        self,
        file_path: str | Path,
        columns: Optional[list[str]] = None,
    ):
        self.file_path = Path(file_path)
        self.columns = columns or MetricsCollector.kpi_names()
        self.rows_written = 0
        self.file_path.parent.mkdir(parents=True, exist_ok=True)

    def _has_content(self) -> bool:
        return self.file_path.exists() and self.file_path.stat().st_size > 0

    def log_row(self, kpis: dict) -> None:
        """Append a single KPI row, writing the header first if the file is empty."""
        write_header = not self._has_content()
        with open(self.file_path, "a", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=self.columns, extrasaction="ignore")
            if write_header:
                writer.writeheader()
            writer.writerow(kpis)
        self.rows_written += 1

    def log_all(self, rows: list[dict]) -> None:
        """Rewrite the file with every row at once."""
        with open(self.file_path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=self.columns, extrasaction="ignore")
            writer.writeheader()
            writer.writerows(rows)
        self.rows_written = len(rows)

    def read_back(self) -> pd.DataFrame:
        """All rows written so far (empty DataFrame with the columns if none)."""
        if not self._has_content():
            return pd.DataFrame(columns=self.columns)
        return pd.read_csv(self.file_path)

    def __repr__(self) -> str:
        return f"CSVLogger(file_path='{self.file_path}', rows_written={self.rows_written})"
