"""
File-backed project cache, the Python counterpart of the browser's local storage.

Layout under ``directory``::

    projects_index.json      list of project rows (newest first)
    project_<id>.json        one Project Document per project

The cache is a working copy.  The object store is the durable record; the
cache only remembers what this client last saved or published.
"""
from __future__ import annotations

import json
import logging
import os
import secrets
from pathlib import Path
from typing import Any, Mapping, Optional

from smartbridge.core.timestamps import iso_timestamp, utc_now
from smartbridge.models.project import default_project, to_wire
from smartbridge.services.section_patch import SECTIONS, UnknownSectionError

logger = logging.getLogger(__name__)

INDEX_FILE = "projects_index.json"


class ProjectLocalCache:
    """Read and write cached Project Documents for one producer workspace."""

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self.directory = Path(directory)

    def _project_path(self, project_id: str) -> Path:
        pid = str(project_id or "").strip()
        if not pid or "/" in pid or "\\" in pid or pid in (".", ".."):
            raise ValueError(f"Invalid projectId: {project_id!r}")
        return self.directory / f"project_{pid}.json"

    def _read(self, path: Path) -> Any:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable cache file %s: %s", path, e)
            return None

    def _write(self, path: Path, value: Any) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{path.name}.tmp")
        tmp.write_text(json.dumps(value, indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, path)

    # ── Documents ──

    def load(self, project_id: str) -> Optional[dict[str, Any]]:
        """Cached document, or ``None`` when absent or not a JSON object."""
        value = self._read(self._project_path(project_id))
        return value if isinstance(value, dict) else None

    def save(self, project_id: str, project: Mapping[str, Any]) -> None:
        self._write(self._project_path(project_id), dict(project))

    def ensure_project(self, project_id: str) -> dict[str, Any]:
        """Return the cached document, writing the default skeleton first if absent."""
        existing = self.load(project_id)
        if existing is not None:
            return existing
        seed = to_wire(default_project(project_id))
        self.save(project_id, seed)
        return seed

    def set_section(self, project_id: str, section: str, value: Any) -> dict[str, Any]:
        """Replace one section of the cached document and refresh ``updatedAt``."""
        if section not in SECTIONS:
            raise UnknownSectionError(section)
        project = self.ensure_project(project_id)
        project[section] = value
        project["updatedAt"] = iso_timestamp(utc_now())
        self.save(project_id, project)
        return project

    # ── Project index ──

    def list_projects(self) -> list[dict[str, Any]]:
        rows = self._read(self.directory / INDEX_FILE)
        return [r for r in rows if isinstance(r, dict)] if isinstance(rows, list) else []

    def _generate_project_id(self, existing: set[str]) -> str:
        for _ in range(50):
            candidate = str(100000 + secrets.randbelow(900000))
            if candidate not in existing:
                return candidate
        raise RuntimeError("Could not allocate a unique 6-digit projectId")

    def create_project(
        self,
        project_name: str,
        *,
        producer: str = "",
        company: str = "",
        date: str = "",
    ) -> dict[str, Any]:
        """Create a project row and seed its document. Returns the index row."""
        name = str(project_name or "").strip()
        if not name:
            raise ValueError("projectName is required")
        rows = self.list_projects()
        pid = self._generate_project_id({str(r.get("projectId")) for r in rows})
        now = iso_timestamp(utc_now())

        seed = to_wire(default_project(pid, now=now))
        seed.update(
            {
                "projectName": name,
                "producer": producer.strip(),
                "company": company.strip(),
                "date": date.strip(),
            }
        )
        self.save(pid, seed)

        row = {
            "projectId": pid,
            "projectName": name,
            "date": date.strip(),
            "producer": producer.strip(),
            "company": company.strip(),
            "createdAt": now,
            "updatedAt": now,
            "master": dict(seed["master"]),
        }
        self._write(self.directory / INDEX_FILE, [row, *rows])
        logger.info("Created project %s (%s)", pid, name)
        return row

    def _update_index_row(self, project_id: str, **fields: Any) -> None:
        rows = self.list_projects()
        changed = False
        for row in rows:
            if str(row.get("projectId")) == project_id:
                row.update(fields)
                changed = True
        if changed:
            self._write(self.directory / INDEX_FILE, rows)

    # ── Save / publish bookkeeping ──

    def record_master_save(self, project_id: str, result: Mapping[str, Any]) -> dict[str, Any]:
        """Store the bookkeeping from a master-save response (``snapshotKey``, ``savedAt``)."""
        project = self.ensure_project(project_id)
        snap_key = str(result.get("snapshotKey") or "")
        saved_at = str(result.get("savedAt") or iso_timestamp(utc_now()))

        master = dict(project.get("master") or {})
        master.update({"isMasterSaved": True, "masterSavedAt": saved_at, "lastSnapshotKey": snap_key})
        project["master"] = master

        master_save = dict(project.get("masterSave") or {})
        master_save["lastMasterSaveAt"] = saved_at
        project["masterSave"] = master_save

        self.save(project_id, project)
        self._update_index_row(project_id, master=master, updatedAt=saved_at)
        return project

    def record_publish(self, project_id: str, result: Mapping[str, Any]) -> dict[str, Any]:
        """Store the outcome of a publish response in the ``publish`` block."""
        project = self.ensure_project(project_id)
        publish = dict(project.get("publish") or {})
        publish.update(
            {
                "lastShareId": str(result.get("shareId") or ""),
                "lastPublicUrl": str(result.get("publicUrl") or ""),
                "manifestKey": str(result.get("manifestKey") or ""),
                "publishedAt": str(result.get("publishedAt") or iso_timestamp(utc_now())),
                "snapshotKey": str(result.get("snapshotKey") or ""),
            }
        )
        project["publish"] = publish
        self.save(project_id, project)
        return project

    def last_master_save_key(self, project_id: str) -> str:
        project = self.load(project_id) or {}
        master = project.get("master") or {}
        return str(master.get("lastSnapshotKey") or "") if isinstance(master, dict) else ""
