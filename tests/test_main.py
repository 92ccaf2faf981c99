"""
Tests for the command-line entry point, run against JSON snapshots.
"""

import json

import pytest

from pos_ledger.main import main


@pytest.fixture
def data_file(tmp_path):
    path = tmp_path / "ledger.json"
    path.write_text(json.dumps({
        "customers": [
            {"id": "c1", "name": "Boutique Awa", "openingBalance": 1000,
             "openingBalanceDate": "2023-12-01T00:00:00.000Z", "creditBalance": 0},
        ],
        "sales": [
            {"id": "s1", "referenceNumber": "FV-001", "customerId": "c1", "date": "2024-01-10T00:00:00.000Z",
             "grandTotal": 500, "paidAmount": 0, "paymentStatus": "En attente"},
        ],
        "salePayments": [],
    }), encoding="utf-8")
    return path


def _load(path):
    return json.loads(path.read_text(encoding="utf-8"))


def test_pay_writes_back_to_data_file(data_file, capsys):
    code = main(["--data-file", str(data_file), "--user", "u1", "pay", "c1", "1200", "--debt", "s1"])

    assert code == 0
    payload = _load(data_file)
    assert payload["sales"][0]["paidAmount"] == 500
    assert payload["sales"][0]["paymentStatus"] == "Payé"
    assert sorted(p["amount"] for p in payload["salePayments"]) == [500, 700]
    assert "Avoir" in capsys.readouterr().out


def test_statement_prints_balance(data_file, capsys):
    code = main(["--data-file", str(data_file), "statement", "c1"])

    assert code == 0
    out = capsys.readouterr().out
    assert "FV-001" in out
    assert "Solde: 1 500.00" in out


def test_summary_lists_debts(data_file, capsys):
    assert main(["--data-file", str(data_file), "summary", "c1"]) == 0

    out = capsys.readouterr().out
    assert "SOLDE D'OUVERTURE" in out
    assert "FV-001" in out


def test_domain_error_exits_with_status_1(data_file, capsys):
    code = main(["--data-file", str(data_file), "pay", "c1", "300", "--method", "Compte Avoir"])

    assert code == 1
    assert "Solde avoir insuffisant" in capsys.readouterr().err
    assert _load(data_file)["salePayments"] == []


def test_delete_then_edit(data_file):
    assert main(["--data-file", str(data_file), "pay", "c1", "400", "--debt", "s1"]) == 0
    payment_id = _load(data_file)["salePayments"][0]["id"]

    assert main(["--data-file", str(data_file), "edit-payment", payment_id, "450"]) == 0
    assert _load(data_file)["sales"][0]["paidAmount"] == 450

    assert main(["--data-file", str(data_file), "delete-payment", payment_id, "--reason", "Erreur"]) == 0
    payload = _load(data_file)
    assert payload["sales"][0]["paidAmount"] == 0
    assert payload["deleted_salePayments"][0]["deleteReason"] == "Erreur"


def test_delete_requires_reason_argument(data_file):
    with pytest.raises(SystemExit):
        main(["--data-file", str(data_file), "delete-payment", "p1"])


def test_mobile_money_payment_needs_operator_and_number(data_file, capsys):
    code = main(["--data-file", str(data_file), "pay", "c1", "200", "--method", "Mobile Money"])

    assert code == 1
    assert "opérateur" in capsys.readouterr().err

    code = main(["--data-file", str(data_file), "pay", "c1", "200", "--method", "Mobile Money",
                 "--momo-operator", "MTN", "--momo-number", "0712"])
    assert code == 0
    stored = _load(data_file)["salePayments"][0]
    assert (stored["momoOperator"], stored["momoNumber"]) == ("MTN", "0712")


def test_credit_note_issue_and_delete(data_file, capsys):
    assert main(["--data-file", str(data_file), "credit-note", "c1", "150", "--reason", "Retour"]) == 0
    payload = _load(data_file)
    assert payload["customers"][0]["creditBalance"] == 150
    note_id = payload["creditNotes"][0]["id"]
    assert "AVOIR-" in capsys.readouterr().out

    assert main(["--data-file", str(data_file), "delete-credit-note", note_id, "--reason", "Erreur"]) == 0
    payload = _load(data_file)
    assert payload["customers"][0]["creditBalance"] == 0
    assert payload["creditNotes"] == []
