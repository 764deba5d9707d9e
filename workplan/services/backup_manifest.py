"""
Daily backup of the work plan with a JSON manifest.

Layout under the backup root:

    <root>/<YYYY-MM-DD>/initiatives.json
    <root>/<YYYY-MM-DD>/change_records.json
    <root>/<YYYY-MM-DD>/manifest.json

A manifest already present for the date means the backup ran: running
again is a no-op that returns the existing manifest. Per-file failures are
collected in ``errors`` and decide the status (success / partial / failed);
they never touch the database.
"""

import hashlib
import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"


@dataclass
class BackupFileInfo:
    name: str
    path: str
    size: int
    contentType: str = "application/json"
    md5Hash: str | None = None


@dataclass
class BackupManifest:
    id: str
    timestamp: str
    date: str
    files: list = field(default_factory=list)
    totalSize: int = 0
    duration: int = 0
    status: str = "success"
    errors: list = field(default_factory=list)
    reporter: str = "scheduler"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "BackupManifest":
        files = [BackupFileInfo(**f) for f in data.get("files") or []]
        return cls(**{**data, "files": files})


def backup_status(files, errors) -> str:
    if not errors:
        return "success"
    return "partial" if files else "failed"


def new_manifest(day: date, reporter: str = "scheduler") -> BackupManifest:
    return BackupManifest(
        id=f"backup_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}",
        timestamp=datetime.now(timezone.utc).isoformat(),
        date=day.isoformat(),
        reporter=reporter or "scheduler",
    )


def _write_json(path: Path, payload) -> BackupFileInfo:
    body = json.dumps(payload, indent=2, default=str).encode("utf-8")
    path.write_bytes(body)
    return BackupFileInfo(
        name=path.name,
        path=str(path),
        size=len(body),
        md5Hash=hashlib.md5(body).hexdigest(),
    )


def existing_manifest(root, day: date) -> BackupManifest | None:
    path = Path(root) / day.isoformat() / MANIFEST_NAME
    if not path.exists():
        return None
    return BackupManifest.from_dict(json.loads(path.read_text(encoding="utf-8")))


def run_backup(root, datasets: dict, *, day: date | None = None, reporter: str = "scheduler") -> BackupManifest:
    """Write each dataset (name → JSON-serialisable payload) and the manifest.

    ``datasets`` values may be callables; they are evaluated per file so one
    failing export only fails its own file.
    """
    day = day or date.today()
    found = existing_manifest(root, day)
    if found is not None:
        logger.info("Backup for %s already exists, skipping", day.isoformat())
        return found

    started = time.monotonic()
    manifest = new_manifest(day, reporter)
    folder = Path(root) / day.isoformat()

    try:
        folder.mkdir(parents=True, exist_ok=True)
        for name, payload in datasets.items():
            try:
                data = payload() if callable(payload) else payload
                info = _write_json(folder / f"{name}.json", data)
            except Exception as exc:
                message = f"Failed to backup {name}: {exc}"
                logger.error(message)
                manifest.errors.append(message)
                continue
            manifest.files.append(info)
            manifest.totalSize += info.size
    except OSError as exc:
        logger.exception("Backup failed")
        manifest.errors.append(f"Backup failed: {exc}")

    manifest.status = backup_status(manifest.files, manifest.errors)
    manifest.duration = int((time.monotonic() - started) * 1000)

    if manifest.status != "failed":
        (folder / MANIFEST_NAME).write_text(json.dumps(manifest.to_dict(), indent=2), encoding="utf-8")
    logger.info("Backup %s finished: %s, %d file(s), %d bytes",
                manifest.id, manifest.status, len(manifest.files), manifest.totalSize)
    return manifest
