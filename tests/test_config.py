from pathlib import Path

import pytest

from smb_fieldmap.config import AppConfig, MappingConfig, load_app_config
from smb_fieldmap.dictionary import Category


def test_defaults_without_config_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    cfg = load_app_config()

    assert cfg == AppConfig()
    assert cfg.mapping == MappingConfig()
    assert cfg.max_file_size_bytes == 10 * 1024 * 1024
    assert cfg.mapping.review_threshold == 0.8
    assert cfg.database.engine == "sqlite"
    assert cfg.log_level == "WARNING"


def test_default_file_in_working_directory_is_used(tmp_path, monkeypatch):
    (tmp_path / "smb_fieldmap_config.toml").write_text(
        "[logging]\nlevel = 'debug'\n", encoding="utf-8"
    )
    monkeypatch.chdir(tmp_path)

    assert load_app_config().log_level == "DEBUG"


def test_explicit_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_app_config(str(tmp_path / "nope.toml"))


def test_full_config_file(tmp_path):
    cfg_file = tmp_path / "conf" / "fieldmap.toml"
    cfg_file.parent.mkdir()
    cfg_file.write_text(
        """
[mapping]
synonym_confidence = 0.9
fuzzy_synonym_discount = 0.85
min_confidence = 0.7
review_threshold = 0.75
dictionary_file = "dictionary.csv"

[upload]
max_file_size_mb = 2

[database]
engine = "sqlite"
path = "db/profiles.sqlite"

[logging]
level = "info"
""",
        encoding="utf-8",
    )

    cfg = load_app_config(str(cfg_file))

    assert cfg.mapping.synonym_confidence == 0.9
    assert cfg.mapping.review_threshold == 0.75
    assert cfg.mapping.dictionary_file == (cfg_file.parent / "dictionary.csv").resolve()
    assert cfg.max_file_size_bytes == 2 * 1024 * 1024
    assert cfg.database.path == (cfg_file.parent / "db" / "profiles.sqlite").resolve()
    assert cfg.log_level == "INFO"

    settings = cfg.mapping.mapper_settings()
    assert settings.fuzzy_synonym_discount == 0.85
    assert settings.min_confidence == 0.7


@pytest.mark.parametrize(
    "content",
    [
        "[mapping]\nreview_threshold = 1.5\n",
        "[mapping]\nmin_confidence = 'high'\n",
        "[upload]\nmax_file_size_mb = 0\n",
        "[upload]\nmax_file_size_mb = 'big'\n",
        "[mapping\nreview_threshold = 0.5\n",
    ],
)
def test_invalid_config_values(tmp_path, content):
    cfg_file = tmp_path / "bad.toml"
    cfg_file.write_text(content, encoding="utf-8")

    with pytest.raises(ValueError):
        load_app_config(str(cfg_file))


def test_dictionary_file_replaces_builtin_dictionary(tmp_path):
    (tmp_path / "dictionary.csv").write_text(
        "category,canonical,required,synonyms_es\n"
        "company_info,razon_social,true,Nombre fiscal\n",
        encoding="utf-8",
    )
    cfg_file = tmp_path / "fieldmap.toml"
    cfg_file.write_text("[mapping]\ndictionary_file = 'dictionary.csv'\n", encoding="utf-8")

    dictionary = load_app_config(str(cfg_file)).load_dictionary()

    assert dictionary.required_fields(Category.ENTITY) == ["razon_social"]
    assert dictionary.entries_for(Category.RELATED_PARTY) == ()


def test_builtin_dictionary_by_default():
    dictionary = AppConfig().load_dictionary()

    assert dictionary.get(Category.ENTITY, "company_name") is not None
    assert isinstance(AppConfig().database.path, Path)
