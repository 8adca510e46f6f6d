import sqlite3
from datetime import datetime, timezone

import pytest

from smb_fieldmap.profiles import (
    DatabaseConfig,
    delete_profile,
    get_profile,
    init_database,
    list_profiles,
    load_latest_profile,
    save_profile,
)


def make_tmp_db_cfg(tmp_path) -> DatabaseConfig:
    """Helper to build a DatabaseConfig pointing to a temporary SQLite file."""
    db_path = tmp_path / "db" / "profiles.sqlite"
    return DatabaseConfig(engine="sqlite", path=db_path)


def test_init_database_creates_file_and_schema(tmp_path):
    """init_database should create the SQLite file and an empty table."""
    cfg = make_tmp_db_cfg(tmp_path)

    assert not cfg.path.exists()
    init_database(cfg)
    assert cfg.path.exists()

    # Idempotent
    init_database(cfg)
    assert list_profiles(cfg).empty


def test_save_and_get_profile(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)

    saved = save_profile(
        cfg,
        "org-1",
        "default",
        {"Nombre Cliente": "company_name", "Giro": "sector"},
        confidence_threshold=0.7,
        created_by="user-42",
    )

    assert saved.org_id == "org-1"
    assert saved.field_mappings == {"Giro": "sector", "Nombre Cliente": "company_name"}
    assert saved.confidence_threshold == pytest.approx(0.7)
    assert saved.created_at.tzinfo is not None

    loaded = get_profile(cfg, "org-1", "default")
    assert loaded == saved
    assert get_profile(cfg, "org-1", "other") is None


def test_save_profile_replaces_existing(tmp_path):
    """Saving under the same name updates mappings but keeps id/created_at."""
    cfg = make_tmp_db_cfg(tmp_path)
    t0 = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)
    t1 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    first = save_profile(
        cfg, "org-1", "default", {"A": "company_name"}, created_by="u1", saved_at=t0
    )
    second = save_profile(
        cfg, "org-1", "default", {"B": "sector"}, created_by="u2", saved_at=t1
    )

    assert second.id == first.id
    assert second.field_mappings == {"B": "sector"}
    assert second.created_at == t0
    assert second.updated_at == t1
    assert second.created_by == "u1"
    assert len(list_profiles(cfg)) == 1


def test_load_latest_profile_picks_most_recent(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    save_profile(
        cfg,
        "org-1",
        "2024 template",
        {"A": "company_name"},
        saved_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
    )
    save_profile(
        cfg,
        "org-1",
        "2025 template",
        {"B": "company_name"},
        saved_at=datetime(2025, 6, 1, tzinfo=timezone.utc),
    )
    save_profile(
        cfg,
        "org-2",
        "latest elsewhere",
        {"C": "company_name"},
        saved_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )

    latest = load_latest_profile(cfg, "org-1")

    assert latest.profile_name == "2025 template"
    assert load_latest_profile(cfg, "org-3") is None


def test_load_latest_profile_without_database_file(tmp_path):
    """A missing store means 'no profile' and is not created on read."""
    cfg = make_tmp_db_cfg(tmp_path)

    assert load_latest_profile(cfg, "org-1") is None
    assert not cfg.path.exists()


def test_load_latest_profile_with_corrupted_row(tmp_path, caplog):
    cfg = make_tmp_db_cfg(tmp_path)
    save_profile(cfg, "org-1", "default", {"A": "company_name"})

    conn = sqlite3.connect(cfg.path)
    conn.execute("UPDATE organization_field_mappings SET field_mappings = '{oops';")
    conn.commit()
    conn.close()

    assert load_latest_profile(cfg, "org-1") is None
    assert "profile lookup failed" in caplog.text


def test_load_latest_profile_with_non_database_file(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    cfg.path.parent.mkdir(parents=True)
    cfg.path.write_text("this is not a sqlite database", encoding="utf-8")

    assert load_latest_profile(cfg, "org-1") is None


def test_load_latest_profile_unsupported_engine(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    save_profile(cfg, "org-1", "default", {"A": "company_name"})

    other = DatabaseConfig(engine="postgres", path=cfg.path)
    assert load_latest_profile(other, "org-1") is None


def test_list_profiles_filters_by_org(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    save_profile(cfg, "org-1", "a", {"A": "company_name", "S": "sector"})
    save_profile(cfg, "org-2", "b", {"B": "company_name"})

    df = list_profiles(cfg, "org-1")

    assert list(df["profile_name"]) == ["a"]
    assert int(df["fields"].iloc[0]) == 2
    assert len(list_profiles(cfg)) == 2


def test_delete_profile(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    save_profile(cfg, "org-1", "default", {"A": "company_name"})

    assert delete_profile(cfg, "org-1", "default") is True
    assert delete_profile(cfg, "org-1", "default") is False
    assert get_profile(cfg, "org-1", "default") is None


@pytest.mark.parametrize(
    "org_id, name, mappings, threshold",
    [
        ("", "default", {"A": "company_name"}, None),
        ("org-1", "  ", {"A": "company_name"}, None),
        ("org-1", "default", {"A": ""}, None),
        ("org-1", "default", {"A": "company_name"}, 1.5),
    ],
)
def test_save_profile_validation(tmp_path, org_id, name, mappings, threshold):
    cfg = make_tmp_db_cfg(tmp_path)

    with pytest.raises(ValueError):
        save_profile(cfg, org_id, name, mappings, confidence_threshold=threshold)


def test_unsupported_engine_is_rejected_on_write(tmp_path):
    cfg = DatabaseConfig(engine="postgres", path=tmp_path / "x.sqlite")

    with pytest.raises(ValueError, match="Unsupported database engine"):
        init_database(cfg)
