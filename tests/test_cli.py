from pathlib import Path

import pandas as pd

from fiscal_recon.cli import main


def write_workbook(path: Path, rows: list[dict]) -> Path:
    pd.DataFrame(rows).to_excel(path, index=False, engine="openpyxl")
    return path


def test_reconcile_command(tmp_path: Path, capsys):
    ledger = write_workbook(
        tmp_path / "razao.xlsx",
        [
            {"Número": "500", "CPF/CNPJ": "11222333000144", "Esp": "NFE"},
            {"Número": "900", "CPF/CNPJ": "99888777000166", "Esp": "DEV"},
        ],
    )
    documents = write_workbook(
        tmp_path / "notas.xlsx",
        [
            {"Número": "500", "CPF/CNPJ": "11.222.333/0001-44", "Fornecedor": "Fornecedor A"},
            {"Número": "501", "CPF/CNPJ": "11.222.333/0001-44", "Fornecedor": "Fornecedor A"},
        ],
    )
    export = tmp_path / "out.xlsx"

    code = main(["reconcile", str(ledger), str(documents), "--export", str(export)])

    out = capsys.readouterr().out
    assert code == 0
    assert "Matched items: 1" in out
    assert "Only in documents: 1" in out
    assert "Returns of own issuance: 1" in out
    assert export.is_file()


def test_gaps_command(tmp_path: Path, capsys):
    documents = write_workbook(
        tmp_path / "saidas.xlsx",
        [{"Número": str(number), "CPF/CNPJ": "11222333000144"} for number in (10, 11, 13, 16)],
    )

    code = main(["gaps", str(documents), "--last-number", "9", "--voided", "14", "15"])

    out = capsys.readouterr().out
    assert code == 0
    assert "Range: 10 - 16" in out
    assert "Missing numbers: 12" in out


def test_taxes_command(tmp_path: Path, capsys):
    ledger = write_workbook(
        tmp_path / "razao.xlsx",
        [{"Número": "10", "CPF/CNPJ": "11222333000144", "UF": "SP", "CFOP": "1102", "ICMS": "10,00"}],
    )

    code = main(["taxes", str(ledger), "--home-state", "pr"])

    out = capsys.readouterr().out
    assert code == 0
    assert "expected 2102" in out
    assert "ICMS: 1 documents, total 10.00" in out


def test_unreadable_input_returns_error_code(tmp_path: Path, capsys):
    broken = tmp_path / "razao.xlsx"
    broken.write_bytes(b"not a workbook")

    code = main(["taxes", str(broken)])

    assert code == 1
    assert "razao.xlsx" in capsys.readouterr().err


def test_unwritable_export_fails_the_command(tmp_path: Path, capsys):
    ledger = write_workbook(tmp_path / "razao.xlsx", [{"Número": "500", "CPF/CNPJ": "11222333000144"}])
    documents = write_workbook(tmp_path / "notas.xlsx", [{"Número": "500", "CPF/CNPJ": "11222333000144"}])
    export = tmp_path / "missing" / "out.xlsx"

    code = main(["reconcile", str(ledger), str(documents), "--export", str(export)])

    captured = capsys.readouterr()
    assert code == 1
    assert "Matched items: 1" in captured.out
    assert f"Could not write {export}" in captured.err
    assert not export.exists()


def test_manifest_exceptions_set_documents_aside(tmp_path: Path, capsys):
    ledger = write_workbook(tmp_path / "razao.xlsx", [{"Número": "500", "CPF/CNPJ": "11222333000144"}])
    documents = write_workbook(
        tmp_path / "notas.xlsx",
        [
            {"Número": "500", "CPF/CNPJ": "11222333000144", "Chave de acesso": "1001"},
            {"Número": "501", "CPF/CNPJ": "11222333000144", "Chave de acesso": "1002"},
        ],
    )
    manifest = write_workbook(tmp_path / "manifesto.xlsx", [{"Chave de acesso": "1002"}])

    code = main(["reconcile", str(ledger), str(documents), "--exceptions", str(manifest)])

    out = capsys.readouterr().out
    assert code == 0
    assert "Only in documents: 0" in out
    assert "Set aside (canceled): 1" in out
