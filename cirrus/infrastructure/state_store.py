"""
Instance State Store

Architectural Intent:
- On-disk index of the instances each client tracks, one JSON file per
  profile inside the shared azureIdx directory
- The directory is shared by every client of every profile

Design Decisions:
- Directory creation is idempotent and tolerates a concurrent creator
- Writes go to a temp file in the same directory followed by os.replace,
  so concurrent readers see either the old or the new file, never a
  partial one
- A missing or corrupt file reads as an empty index
"""

from __future__ import annotations
from pathlib import Path
from typing import Any
import json
import logging
import os
import re
import tempfile

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class InstanceStateStore:
    def __init__(self, directory: Path | str):
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def ensure_directory(self) -> Path:
        self._directory.mkdir(parents=True, exist_ok=True)
        return self._directory

    def path_for(self, profile_id: str) -> Path:
        return self._directory / f"{_UNSAFE_CHARS.sub('_', profile_id)}.json"

    def save(self, profile_id: str, records: list[dict[str, Any]]) -> None:
        self.ensure_directory()
        target = self.path_for(profile_id)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._directory, prefix=f".{target.stem}-", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w") as f:
                json.dump({"profile_id": profile_id, "instances": records}, f, indent=2)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def load(self, profile_id: str) -> list[dict[str, Any]]:
        path = self.path_for(profile_id)
        try:
            with open(path) as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except json.JSONDecodeError as e:
            logger.warning("Corrupt instance index %s: %s", path, e)
            return []
        instances = data.get("instances") if isinstance(data, dict) else None
        return instances if isinstance(instances, list) else []

    def delete(self, profile_id: str) -> None:
        self.path_for(profile_id).unlink(missing_ok=True)
