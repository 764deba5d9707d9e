"""Daily backup files and manifest."""

import json
from datetime import date

from workplan.services.backup_manifest import BackupManifest, backup_status, run_backup

DAY = date(2026, 3, 12)


def test_backup_writes_files_and_manifest(tmp_path):
    manifest = run_backup(tmp_path, {"initiatives": [{"id": "i1"}], "change_records": []}, day=DAY)

    folder = tmp_path / "2026-03-12"
    assert manifest.status == "success"
    assert sorted(f.name for f in manifest.files) == ["change_records.json", "initiatives.json"]
    assert json.loads((folder / "initiatives.json").read_text()) == [{"id": "i1"}]
    assert manifest.totalSize == sum(f.size for f in manifest.files)
    assert all(f.md5Hash for f in manifest.files)

    stored = json.loads((folder / "manifest.json").read_text())
    assert stored["id"] == manifest.id
    assert stored["files"][0]["contentType"] == "application/json"


def test_second_run_same_day_is_noop(tmp_path):
    first = run_backup(tmp_path, {"initiatives": []}, day=DAY)
    calls = []
    second = run_backup(tmp_path, {"initiatives": lambda: calls.append(1) or []}, day=DAY)
    assert second.id == first.id
    assert calls == []


def test_one_failing_dataset_is_partial(tmp_path):
    def broken():
        raise RuntimeError("export failed")

    manifest = run_backup(tmp_path, {"initiatives": [], "change_records": broken}, day=DAY)
    assert manifest.status == "partial"
    assert "change_records" in manifest.errors[0]
    assert (tmp_path / "2026-03-12" / "manifest.json").exists()


def test_all_failing_writes_no_manifest(tmp_path):
    def broken():
        raise RuntimeError("export failed")

    manifest = run_backup(tmp_path, {"initiatives": broken}, day=DAY)
    assert manifest.status == "failed"
    assert not (tmp_path / "2026-03-12" / "manifest.json").exists()


def test_status_rules():
    assert backup_status([object()], []) == "success"
    assert backup_status([object()], ["x"]) == "partial"
    assert backup_status([], ["x"]) == "failed"


def test_manifest_from_dict(tmp_path):
    manifest = run_backup(tmp_path, {"initiatives": []}, day=DAY)
    loaded = BackupManifest.from_dict(manifest.to_dict())
    assert loaded == manifest
