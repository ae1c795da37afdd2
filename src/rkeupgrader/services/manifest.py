"""Upgrade session manifest and verified marker."""

import json
import os
import tempfile
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class SessionManifestService:
    """Collects the progress of one upgrade session into upgrade_<ts>.json."""

    def __init__(self, manifest_file: str, marker_file: str, logger):
        self.manifest_file = manifest_file
        self.marker_file = marker_file
        self.logger = logger
        self.manifest: Dict[str, Any] = {
            "session_id": None,
            "status": "running",
            "stage": None,
            "started_at": None,
            "finished_at": None,
            "duration_seconds": None,
            "metadata": {},
            "versions": {
                "server": None,
                "target": None,
                "observed": None,
            },
            "release": None,
            "stages": [],
            "artifacts": {},
            "error": None,
        }

    def start_session(self, session_id: str, metadata: Dict[str, Any]):
        self.manifest["session_id"] = session_id
        self.manifest["status"] = "running"
        self.manifest["started_at"] = self._now()
        self.manifest["metadata"] = metadata
        self.write()

    def set_versions(
        self,
        server: Optional[str] = None,
        target: Optional[str] = None,
        observed: Optional[str] = None,
    ):
        for key, value in (("server", server), ("target", target), ("observed", observed)):
            if value is not None:
                self.manifest["versions"][key] = value
        self.write()

    def set_release(self, tag: str, matched_versions):
        self.manifest["release"] = {"tag": tag, "matched_versions": list(matched_versions)}
        self.write()

    def stage_reached(self, stage_name: str):
        self.manifest["stage"] = stage_name
        self.manifest["stages"].append({"name": stage_name, "reached_at": self._now()})
        self.write()

    def add_artifact(self, key: str, value: str):
        self.manifest["artifacts"][key] = value
        self.write()

    def finalize(self, status: str, error: Optional[str] = None):
        self.manifest["status"] = status
        self.manifest["finished_at"] = self._now()
        if self.manifest.get("started_at"):
            started_at = datetime.fromisoformat(self.manifest["started_at"])
            finished_at = datetime.fromisoformat(self.manifest["finished_at"])
            self.manifest["duration_seconds"] = (finished_at - started_at).total_seconds()
        self.manifest["error"] = error
        self.write()

    def write_verified_marker(self, payload: Dict[str, Any]):
        """Creates the marker that only a session reaching VERIFIED may own."""
        self._atomic_write(self.marker_file, payload)

    def write(self):
        try:
            self._atomic_write(self.manifest_file, self.manifest)
        except OSError as exc:
            self.logger.warning("Could not write manifest file '%s': %s", self.manifest_file, exc)

    @staticmethod
    def _atomic_write(path: str, payload: Dict[str, Any]):
        directory = os.path.dirname(path) or "."
        os.makedirs(directory, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(prefix=".upgrade-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                json.dump(payload, file_obj, indent=2, sort_keys=True)
                file_obj.write("\n")
            os.replace(temp_path, path)
        finally:
            if os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError:
                    pass

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()
