"""Tests for healthsync/utils/backup.py."""

from healthsync.utils.backup import create_backup


def test_backup_copies_database(tmp_path):
    db = tmp_path / "healthsync.db"
    db.write_bytes(b"sqlite-bytes")
    backup_dir = tmp_path / "backups"

    dest = create_backup(str(db), str(backup_dir), keep=7)

    assert dest is not None
    assert dest.parent == backup_dir
    assert dest.name.startswith("healthsync_")
    assert dest.read_bytes() == b"sqlite-bytes"


def test_backup_missing_source_returns_none(tmp_path):
    assert create_backup(str(tmp_path / "absent.db"), str(tmp_path / "backups")) is None
    assert not (tmp_path / "backups").exists()


def test_backup_prunes_old_copies(tmp_path):
    db = tmp_path / "healthsync.db"
    db.write_bytes(b"x")
    backup_dir = tmp_path / "backups"
    backup_dir.mkdir()
    for stamp in ("20200101_000000", "20200102_000000", "20200103_000000"):
        (backup_dir / f"healthsync_{stamp}.db").write_bytes(b"old")
    (backup_dir / "unrelated.db").write_bytes(b"keep me")

    dest = create_backup(str(db), str(backup_dir), keep=2)

    remaining = sorted(p.name for p in backup_dir.glob("healthsync_*.db"))
    assert len(remaining) == 2
    assert dest.name in remaining
    assert "healthsync_20200103_000000.db" in remaining
    assert (backup_dir / "unrelated.db").exists()
