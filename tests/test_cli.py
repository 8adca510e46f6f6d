import json

import pytest

from smb_fieldmap import __version__
from smb_fieldmap.cli import main


@pytest.fixture
def config_file(tmp_path):
    """TOML config pointing the profile store to a temporary directory."""
    path = tmp_path / "fieldmap.toml"
    path.write_text(
        "[database]\npath = 'profiles.sqlite'\n\n[mapping]\nreview_threshold = 0.8\n",
        encoding="utf-8",
    )
    return str(path)


def test_version(capsys):
    assert main(["--version"]) == 0
    assert __version__ in capsys.readouterr().out


def test_process_json_output(tmp_path, config_file, capsys):
    upload = tmp_path / "company.csv"
    upload.write_text("Empresa;Sector;Web\nAcme SL;Retail;acme.es\n", encoding="utf-8")

    code = main(
        ["--config", config_file, "process", str(upload), "--org", "org-1",
         "--format", "json"]
    )
    body = json.loads(capsys.readouterr().out)

    assert code == 0
    assert body["success"] is True
    assert body["entity"]["company_name"] == "Acme SL"
    assert body["needs_review"] is False


def test_process_table_output(tmp_path, config_file, capsys):
    upload = tmp_path / "company.csv"
    upload.write_text("Empresa,Sector,Foo\nAcme SL,Retail,x\n", encoding="utf-8")

    assert main(["--config", config_file, "process", str(upload), "--org", "o"]) == 0
    out = capsys.readouterr().out

    assert "=== Column mapping ===" in out
    assert "company_name" in out
    assert "unmapped" in out
    assert "Acme SL" in out


def test_process_rejected_file(tmp_path, config_file, capsys):
    upload = tmp_path / "company.csv"
    upload.write_text("Empresa,Industria\nAcme,Retail\n", encoding="utf-8")

    code = main(["--config", config_file, "process", str(upload), "--org", "org-1"])
    out = capsys.readouterr().out

    assert code == 1
    assert "MISSING_REQUIRED_FIELDS" in out
    assert "sector" in out


def test_process_missing_file(tmp_path, config_file):
    with pytest.raises(SystemExit):
        main(["--config", config_file, "process", str(tmp_path / "x.csv"), "--org", "o"])


def test_profile_save_list_show_delete(tmp_path, config_file, capsys):
    base = ["--config", config_file, "profiles"]

    assert main(
        base + ["save", "--org", "org-1", "--name", "erp",
                "--map", "Nombre Cliente=company_name", "--map", "Giro=sector",
                "--threshold", "0.9"]
    ) == 0
    assert "2 mappings" in capsys.readouterr().out

    assert main(base + ["list", "--org", "org-1"]) == 0
    assert "erp" in capsys.readouterr().out

    assert main(base + ["show", "--org", "org-1", "--name", "erp"]) == 0
    out = capsys.readouterr().out
    assert "Giro -> sector" in out
    assert "0.9" in out

    upload = tmp_path / "export.csv"
    upload.write_text("Nombre Cliente;Giro\nAcme;Retail\n", encoding="utf-8")
    assert main(
        ["--config", config_file, "process", str(upload), "--org", "org-1"]
    ) == 0
    assert "Mapping profile applied: erp" in capsys.readouterr().out

    assert main(base + ["delete", "--org", "org-1", "--name", "erp"]) == 0
    assert main(base + ["delete", "--org", "org-1", "--name", "erp"]) == 1


def test_profile_save_rejects_bad_mapping(config_file):
    with pytest.raises(SystemExit):
        main(["--config", config_file, "profiles", "save", "--org", "o",
              "--name", "n", "--map", "no-separator"])


def test_dictionary_show(config_file, capsys):
    assert main(
        ["--config", config_file, "dictionary", "show", "--category", "shareholder_info"]
    ) == 0
    out = capsys.readouterr().out

    assert "shareholder_name" in out
    assert "company_name" not in out
