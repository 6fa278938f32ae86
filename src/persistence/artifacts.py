"""Generated-file storage: a filesystem blob store plus a SQLite catalogue.

Keys follow the ``<owner_id>/<job_id>/<path>`` scheme.  The blob store
only knows about keys and bytes; the catalogue records which keys belong
to which job so that review steps can read the files back and rewinds can
remove them.
"""
from __future__ import annotations

import hashlib
import logging
import shutil
import sqlite3
from pathlib import Path

from src.pipeline.exceptions import PersistenceError
from src.shared.db.connection import ConnectionPool
from src.shared.models.jobs import ArtifactRecord
from src.shared.utils import atomic_write_bytes, now_iso

logger = logging.getLogger(__name__)


def artifact_key(owner_id: str, job_id: str, path: str) -> str:
    """Return the storage key for one generated file."""
    return f"{owner_id}/{job_id}/{path}"


class FileArtifactStore:
    """Stores artifact bytes under a root directory.

    Args:
        root: Directory that holds every artifact.  Keys that would resolve
            outside it are rejected.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, key: str) -> Path:
        target = (self._root / key.replace("\\", "/")).resolve()
        if target == self._root or self._root not in target.parents:
            raise ValueError(f"Artifact key escapes the store root: {key!r}")
        return target

    def put(self, key: str, data: bytes) -> None:
        """Write *data* under *key*, replacing any previous value."""
        atomic_write_bytes(self._resolve(key), data)

    def get(self, key: str) -> bytes | None:
        """Return the bytes stored under *key*, or ``None``."""
        target = self._resolve(key)
        if not target.is_file():
            return None
        return target.read_bytes()

    def delete(self, key: str) -> None:
        """Remove *key*.  Missing keys are ignored."""
        target = self._resolve(key)
        if target.is_file():
            target.unlink()

    def delete_prefix(self, prefix: str) -> None:
        """Remove every key under *prefix*."""
        target = self._resolve(prefix)
        if target.is_dir():
            shutil.rmtree(target)


class ArtifactCatalog:
    """Persists :class:`ArtifactRecord` rows in the ``artifacts`` table."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def add(self, record: ArtifactRecord) -> None:
        """Insert or replace the record for ``(job_id, file_path)``."""
        try:
            with self._pool.transaction() as conn:
                conn.execute(
                    """INSERT OR REPLACE INTO artifacts
                       (job_id, owner_id, artifact_type, file_path, storage_key,
                        size_bytes, content_hash, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        record.job_id,
                        record.owner_id,
                        record.artifact_type,
                        record.file_path,
                        record.storage_key,
                        record.size_bytes,
                        record.content_hash,
                        now_iso(),
                    ),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to record artifact: {exc}") from exc

    def list_for_job(self, job_id: str, owner_id: str) -> list[ArtifactRecord]:
        """Return the job's artifacts in insertion order."""
        try:
            rows = self._pool.get().execute(
                """SELECT job_id, owner_id, artifact_type, file_path, storage_key,
                          size_bytes, content_hash
                   FROM artifacts
                   WHERE job_id = ? AND owner_id = ?
                   ORDER BY id""",
                (job_id, owner_id),
            ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to list artifacts: {exc}") from exc
        return [ArtifactRecord.model_validate(dict(r)) for r in rows]

    def delete_for_job(self, job_id: str) -> int:
        """Delete every record of the job and return how many were removed."""
        try:
            with self._pool.transaction() as conn:
                cursor = conn.execute("DELETE FROM artifacts WHERE job_id = ?", (job_id,))
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to delete artifacts: {exc}") from exc
        return cursor.rowcount


def build_record(
    owner_id: str, job_id: str, path: str, content: bytes, artifact_type: str = "implementation"
) -> ArtifactRecord:
    """Describe *content* as an :class:`ArtifactRecord`."""
    return ArtifactRecord(
        job_id=job_id,
        owner_id=owner_id,
        file_path=path,
        storage_key=artifact_key(owner_id, job_id, path),
        size_bytes=len(content),
        content_hash=hashlib.sha256(content).hexdigest(),
        artifact_type=artifact_type,
    )


class ArtifactRepository:
    """Keeps the blob store and the catalogue in step for one job."""

    def __init__(self, store: FileArtifactStore, catalog: ArtifactCatalog) -> None:
        self.store = store
        self.catalog = catalog

    def replace_job_files(
        self, owner_id: str, job_id: str, files: list[tuple[str, str]]
    ) -> list[ArtifactRecord]:
        """Drop the job's previous files and store *files* in their place."""
        self.clear_job(owner_id, job_id)
        records = []
        for path, content in files:
            data = content.encode("utf-8")
            record = build_record(owner_id, job_id, path, data)
            self.store.put(record.storage_key, data)
            self.catalog.add(record)
            records.append(record)
        logger.info("Stored %d artifact(s) for job %s", len(records), job_id)
        return records

    def load_job_files(self, owner_id: str, job_id: str) -> list[tuple[str, str]]:
        """Return ``(path, content)`` for every stored file of the job."""
        loaded = []
        for record in self.catalog.list_for_job(job_id, owner_id):
            data = self.store.get(record.storage_key)
            if data is None:
                logger.warning("Artifact %s missing from store", record.storage_key)
                continue
            loaded.append((record.file_path, data.decode("utf-8", errors="replace")))
        return loaded

    def clear_job(self, owner_id: str, job_id: str) -> None:
        """Remove every stored file and catalogue row of the job."""
        removed = self.catalog.delete_for_job(job_id)
        self.store.delete_prefix(f"{owner_id}/{job_id}")
        if removed:
            logger.info("Removed %d artifact(s) for job %s", removed, job_id)
