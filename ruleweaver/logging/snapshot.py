"""
Snapshot manager for Ruleweaver.

Stores full game saves as JSON files keyed by slot number:

    {save_dir}/ruleweaver_save_{slot}.json

The payload itself is built and decoded by the simulation engine; this
module only moves JSON documents to and from disk. Writes go to a temporary
file first and replace the target atomically, so a failed save never
clobbers the previous one.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import numpy as np


SAVE_PREFIX = "ruleweaver_save_"


class SnapshotManager:
    """
    Saves and loads slot-keyed game snapshots.

    Attributes:
        save_dir: Directory holding the save files.
    """

    def __init__(self, save_dir: str | Path):
        self.save_dir = Path(save_dir)
        self.save_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, slot: int) -> Path:
        return self.save_dir / f"{SAVE_PREFIX}{slot}.json"

    def save(self, payload: dict[str, Any], slot: int) -> Path:
        """
        Write a payload to a slot.

        Raises:
            OSError: If the file cannot be written.
            TypeError: If the payload is not JSON serializable.
        """
        file_path = self.path_for(slot)
        tmp_path = file_path.with_suffix(".json.tmp")

        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False, default=_json_default)
            os.replace(tmp_path, file_path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

        return file_path

    def load(self, slot: int) -> dict[str, Any]:
        """
        Read the payload stored in a slot.

        Raises:
            FileNotFoundError: If the slot is empty.
            ValueError: If the file is not valid JSON or not an object.
        """
        file_path = self.path_for(slot)
        if not file_path.exists():
            raise FileNotFoundError(f"No save data in slot {slot}: {file_path}")

        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Save file {file_path} does not contain a JSON object")
        return data

    def exists(self, slot: int) -> bool:
        return self.path_for(slot).exists()

    def delete(self, slot: int) -> bool:
        """Remove a slot. Returns True if something was deleted."""
        file_path = self.path_for(slot)
        if file_path.exists():
            file_path.unlink()
            return True
        return False

    def list_slots(self) -> list[int]:
        """
        List all occupied slot numbers.

        Returns:
            Sorted list of slot numbers.
        """
        slots = []
        for p in self.save_dir.glob(f"{SAVE_PREFIX}*.json"):
            try:
                slots.append(int(p.stem[len(SAVE_PREFIX):]))
            except ValueError:
                continue
        return sorted(slots)

    def __repr__(self) -> str:
        return f"SnapshotManager(save_dir='{self.save_dir}')"


def _json_default(obj: Any) -> Any:
    """JSON serialization fallback for NumPy types."""
    if isinstance(obj, (np.integer,)):
        return int(obj)
    if isinstance(obj, (np.floating,)):
        return float(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")
