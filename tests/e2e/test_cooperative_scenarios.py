"""
E2E tests for cooperative member and treasurer workflows.

The gateway talks to the mock master data server in-process, reading
the stub accounts under mock/master_data_stub:

- member_fixed: Rp 50,000 per month for 12 months
- member_upgrade: Rp 50,000 upgraded to Rp 80,000 from the fourth month
- member_open: open-ended voluntary savings, Rp 25,000 per month
- bank_bri_001: cooperative bank account, opening balance Rp 1,000,000
"""

import importlib.util
import httpx
import pytest
from pathlib import Path
from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient

from koperasi_gateway.api.dependencies import get_master_data_client
from koperasi_gateway.infrastructure.clients.master_data import MasterDataClient

MOCK_SERVER = Path(__file__).resolve().parents[2] / "mock" / "master_data_server" / "main.py"


def load_mock_app():
    spec = importlib.util.spec_from_file_location("master_data_mock", MOCK_SERVER)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module.app


@pytest.fixture
def gateway(client: TestClient) -> TestClient:
    transport = httpx.ASGITransport(app=load_mock_app())
    client.app.dependency_overrides[get_master_data_client] = lambda: MasterDataClient(
        base_url="http://master-data", transport=transport
    )
    return client


def pay(gateway: TestClient, account_ref: str, slot: int, amount_minor: int, occurred_at: str) -> str:
    response = gateway.post(
        "/v1/transactions",
        json={
            "account_ref": account_ref,
            "amount_minor": amount_minor,
            "occurred_at": occurred_at,
            "slot_index": slot,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()["transaction_id"]


def approve(gateway: TestClient, transaction_id: str) -> None:
    assert gateway.post(f"/v1/transactions/{transaction_id}/approve", json={"actor": "bendahara"}).status_code == 200


def test_member_pays_in_parts_and_resubmits(gateway: TestClient):
    """
    member_fixed: pays slot 1 in two parts, has a slot 2 transfer rejected,
    then resubmits it
    """
    status = gateway.get("/v1/schedule-status/member_fixed").json()
    assert status["next_action"]["slot"] == 1
    assert status["next_action"]["suggested_amount_minor"] == 50000
    assert status["slots"][0]["due_date"] == "2025-01-15"

    approve(gateway, pay(gateway, "member_fixed", 1, 20000, "2025-01-14"))
    status = gateway.get("/v1/schedule-status/member_fixed").json()
    assert status["next_action"]["is_partial_continuation"] is True
    assert status["next_action"]["suggested_amount_minor"] == 30000
    assert status["next_action"]["description"] == "Pembayaran Simpanan Periode - 1 (#2)"

    approve(gateway, pay(gateway, "member_fixed", 1, 30000, "2025-01-16"))
    rejected = pay(gateway, "member_fixed", 2, 50000, "2025-02-15")
    gateway.post(f"/v1/transactions/{rejected}/reject", json={"rejection_reason": "Nominal tidak sesuai"})

    status = gateway.get("/v1/schedule-status/member_fixed").json()
    assert status["slots"][0]["status"] == "paid"
    assert status["slots"][1]["status"] == "rejected"
    assert status["next_action"]["slot"] == 2
    assert status["next_action"]["rejected_slots"] == [2]

    response = gateway.post(
        "/v1/transactions",
        json={
            "account_ref": "member_fixed",
            "amount_minor": 50000,
            "occurred_at": "2025-02-16",
            "slot_index": 2,
            "resubmission_of": rejected,
        },
    )
    approve(gateway, response.json()["transaction_id"])

    status = gateway.get("/v1/schedule-status/member_fixed").json()
    assert status["slots"][1]["status"] == "paid"
    assert status["slots"][1]["has_rejections"] is True
    assert status["next_action"]["slot"] == 3
    assert status["summary"]["paid"] == 2
    assert status["balance"]["balance_minor"] == 100000


def test_member_upgrade_adds_compensation(gateway: TestClient):
    """member_upgrade: three months at Rp 50,000, then the Rp 80,000 plan applies"""
    for slot, paid_on in ((1, "2025-01-03"), (2, "2025-02-03"), (3, "2025-03-03")):
        approve(gateway, pay(gateway, "member_upgrade", slot, 50000, paid_on))

    status = gateway.get("/v1/schedule-status/member_upgrade").json()

    assert status["slots"][2]["required_amount_minor"] == 50000
    assert status["slots"][3]["required_amount_minor"] == 80000
    assert status["next_action"]["slot"] == 4
    assert status["next_action"]["is_upgrade_adjusted"] is True
    assert status["next_action"]["suggested_amount_minor"] == 90000


def test_open_ended_savings(gateway: TestClient):
    status = gateway.get("/v1/schedule-status/member_open").json()

    assert len(status["slots"]) == 12
    assert status["next_action"]["suggested_amount_minor"] == 25000

    quote = gateway.post("/v1/schedule-status/member_open/upgrade-quote", json={"new_amount_per_slot_minor": 30000})
    assert quote.status_code == 200
    assert quote.json()["completed_slots"] == 0
    assert quote.json()["compensation_per_slot_minor"] == 0


def test_unknown_member_is_service_error(gateway: TestClient):
    response = gateway.get("/v1/schedule-status/member_missing")
    assert response.status_code == 503


@patch("koperasi_gateway.infrastructure.clients.ledger.LedgerClient.send_event", new_callable=AsyncMock)
def test_treasurer_reconciles_two_statements(mock_ledger: AsyncMock, gateway: TestClient):
    """
    bank_bri_001: January reconciles from the opening balance, February
    starts from January's closing balance
    """
    lines = {}
    for name, amount, direction, occurred_at in (
        ("setoran", 250000, "credit", "2025-01-08"),
        ("biaya_admin", 5000, "debit", "2025-01-31"),
        ("salah_catat", 999, "credit", "2025-01-15"),
        ("februari", 120000, "credit", "2025-02-10"),
    ):
        response = gateway.post(
            "/v1/transactions",
            json={"account_ref": "bank_bri_001", "amount_minor": amount, "direction": direction, "occurred_at": occurred_at},
        )
        lines[name] = response.json()["transaction_id"]

    overview = gateway.get("/v1/reconciliation/bank_bri_001").json()
    assert overview["starting_balance_minor"] == 1000000

    january = gateway.post(
        "/v1/reconciliation/start",
        json={"account_ref": "bank_bri_001", "statement_end_date": "2025-01-31", "closing_balance_minor": 1245000},
    ).json()
    assert january["starting_balance_minor"] == 1000000

    for name in ("setoran", "biaya_admin"):
        gateway.post(
            "/v1/reconciliation/toggle-match",
            json={"reconciliation_id": january["reconciliation_id"], "transaction_id": lines[name]},
        )
    totals = gateway.post(
        "/v1/reconciliation/remove-items",
        json={"reconciliation_id": january["reconciliation_id"], "transaction_ids": [lines["salah_catat"]]},
    ).json()
    assert totals["difference_minor"] == 0
    assert totals["unmatched_count"] == 0

    response = gateway.post(f"/v1/reconciliation/{january['reconciliation_id']}/complete")
    assert response.status_code == 200
    mock_ledger.assert_awaited_once()

    february = gateway.post(
        "/v1/reconciliation/start",
        json={"account_ref": "bank_bri_001", "statement_end_date": "2025-02-28", "closing_balance_minor": 1365000},
    ).json()
    assert february["starting_balance_minor"] == 1245000

    view = gateway.get(f"/v1/reconciliation/session/{february['reconciliation_id']}").json()
    # The removed line was never reconciled, so it is reviewable again
    assert {t["transaction_id"] for t in view["transactions"]} == {lines["salah_catat"], lines["februari"]}
