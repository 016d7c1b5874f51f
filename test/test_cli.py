import json
from pathlib import Path

import pytest

from ipsm.main import build_parser, main


@pytest.fixture
def cli_env(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("IPSM_CONFIG_SOURCE", str(tmp_path / "config"))
    monkeypatch.delenv("IPSM_DB_PATH", raising=False)
    return tmp_path


def test_parser_reads_history_filters():
    args = build_parser().parse_args(["--db", "x.db", "history", "--product", "p1", "--limit", "5"])
    assert args.db == "x.db"
    assert args.command == "history"
    assert args.product == "p1"
    assert args.limit == 5
    assert args.source_type is None


def test_parser_rejects_unknown_entity():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["import", "invoices", "x.csv"])


def test_template_to_file(cli_env: Path):
    out = cli_env / "customers.csv"
    assert main(["--db", str(cli_env / "t.db"), "template", "customers", "--out", str(out)]) == 0
    assert out.read_text(encoding="utf-8").startswith("customerCode,companyName")


def test_import_then_status(cli_env: Path, capsys):
    db = str(cli_env / "t.db")
    src = cli_env / "customers.csv"
    src.write_text("companyName,contactName\nAcme Co.,Somchai\n", encoding="utf-8")

    assert main(["--db", db, "import", "customers", str(src)]) == 0
    result = json.loads(capsys.readouterr().out)
    assert result["success_rows"] == 1

    assert main(["--db", db, "status"]) == 0
    status = json.loads(capsys.readouterr().out)
    assert status["counts"]["customers"] == 1


def test_errors_exit_nonzero_with_status(cli_env: Path, capsys):
    db = str(cli_env / "t.db")
    assert main(["--db", db, "adjust", "ghost", "add", "vat", "1"]) == 1
    assert capsys.readouterr().err.startswith("404 ")

    assert main(["--db", db, "history", "--source-type", "refund", "--source-id", "x"]) == 1
    assert capsys.readouterr().err.startswith("400 ")
