"""
Tests for api/routes/finance.py

Covers ledger entries (validation, ordering, filters), the income/expense
summary, project budgets with computed remaining, and CSV/Excel export.
"""
import csv
import io
import sys
from pathlib import Path

import openpyxl
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import api.routes.finance as finance_routes  # noqa: E402
from api.routes.finance import EXPORT_HEADER, export_csv  # noqa: E402
from conftest import create_project  # noqa: E402


def _txn(c, project_id, txn_type, amount, description, day):
    resp = c.post("/api/v1/finance/transactions", json={
        "project_id": project_id, "type": txn_type, "amount": amount,
        "description": description, "date": day,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.fixture(scope="module")
def ledger(signup):
    """A user with two projects and five ledger entries."""
    c = signup("ledger@example.com")
    web = create_project(c, "Website Redesign")
    app = create_project(c, "Mobile App")
    _txn(c, web["id"], "income", 4000, "Deposit", "2025-01-05")
    _txn(c, web["id"], "expense", 650, "Stock photos", "2025-01-12")
    _txn(c, app["id"], "income", 7500, "Milestone 1", "2025-02-03")
    _txn(c, app["id"], "expense", 1200.5, "Device lab", "2025-02-04")
    _txn(c, app["id"], "income", 250, "Small fix", "2025-02-04")
    c.projects = {"web": web, "app": app}
    return c


class TestTransactions:
    def test_newest_date_first(self, ledger):
        items = ledger.get("/api/v1/finance/transactions").json()["items"]
        assert [t["date"] for t in items] == [
            "2025-02-04", "2025-02-04", "2025-02-03", "2025-01-12", "2025-01-05",
        ]
        # Same date: the later-created entry comes first.
        assert items[0]["description"] == "Small fix"

    def test_project_name_joined(self, ledger):
        items = ledger.get("/api/v1/finance/transactions").json()["items"]
        assert items[-1]["project_name"] == "Website Redesign"

    def test_type_filter(self, ledger):
        body = ledger.get("/api/v1/finance/transactions", params={"type": "expense"}).json()
        assert body["total"] == 2
        assert all(t["type"] == "expense" for t in body["items"])

    def test_invalid_type_filter_400(self, ledger):
        resp = ledger.get("/api/v1/finance/transactions", params={"type": "refund"})
        assert resp.status_code == 400

    def test_date_range(self, ledger):
        body = ledger.get("/api/v1/finance/transactions",
                          params={"date_from": "2025-02-01", "date_to": "2025-02-03"}).json()
        assert [t["description"] for t in body["items"]] == ["Milestone 1"]

    def test_search_description_or_project(self, ledger):
        body = ledger.get("/api/v1/finance/transactions", params={"q": "mobile"}).json()
        assert body["total"] == 3

    def test_zero_amount_422(self, ledger):
        resp = ledger.post("/api/v1/finance/transactions", json={
            "project_id": ledger.projects["web"]["id"], "type": "income",
            "amount": 0, "description": "Nothing",
        })
        assert resp.status_code == 422

    @pytest.mark.parametrize("amount", ["1e400", "inf", "nan"])
    def test_non_finite_amount_422(self, ledger, amount):
        resp = ledger.post("/api/v1/finance/transactions", json={
            "project_id": ledger.projects["web"]["id"], "type": "income",
            "amount": amount, "description": "Infinite money",
        })
        assert resp.status_code == 422
        assert ledger.get("/api/v1/finance/summary").json()["total_income"] == 11750

    def test_missing_project_422(self, ledger):
        resp = ledger.post("/api/v1/finance/transactions", json={
            "project_id": "", "type": "income", "amount": 10, "description": "No project",
        })
        assert resp.status_code == 422

    def test_date_defaults_to_today(self, signup):
        from datetime import date

        c = signup("today-txn@example.com")
        p = create_project(c, "Today Project")
        resp = c.post("/api/v1/finance/transactions", json={
            "project_id": p["id"], "type": "income", "amount": 10, "description": "Tip jar",
        })
        assert resp.status_code == 201
        assert resp.json()["date"] == date.today().isoformat()

    def test_foreign_project_404(self, ledger, other_client):
        resp = other_client.post("/api/v1/finance/transactions", json={
            "project_id": ledger.projects["web"]["id"], "type": "income",
            "amount": 10, "description": "Sneaky",
        })
        assert resp.status_code == 404

    def test_delete(self, signup):
        c = signup("delete-txn@example.com")
        p = create_project(c, "Delete Ledger")
        t = _txn(c, p["id"], "expense", 20, "Mistake", "2025-03-01")
        assert c.delete(f"/api/v1/finance/transactions/{t['id']}").status_code == 204
        assert c.get("/api/v1/finance/transactions").json()["total"] == 0


class TestSummary:
    def test_totals(self, ledger):
        body = ledger.get("/api/v1/finance/summary").json()
        assert body["total_income"] == 11750
        assert body["total_expense"] == 1850.5
        assert body["net_profit"] == 9899.5
        assert body["transaction_count"] == 5

    def test_project_scoped(self, ledger):
        body = ledger.get("/api/v1/finance/summary",
                          params={"project_id": ledger.projects["web"]["id"]}).json()
        assert body["net_profit"] == 3350

    def test_empty_ledger_zero(self, signup):
        c = signup("empty-ledger@example.com")
        body = c.get("/api/v1/finance/summary").json()
        assert body == {"total_income": 0, "total_expense": 0, "net_profit": 0,
                        "transaction_count": 0}


class TestBudgets:
    def test_budget_defaults_zero(self, ledger):
        rows = ledger.get("/api/v1/finance/projects").json()
        web = next(r for r in rows if r["project_name"] == "Website Redesign")
        assert web["budget"] == 0
        assert web["income"] == 4000
        assert web["expense"] == 650

    def test_upsert_and_remaining(self, ledger):
        pid = ledger.projects["app"]["id"]
        resp = ledger.put(f"/api/v1/finance/projects/{pid}",
                          json={"budget": 30000, "received": 7500, "spent": 1200})
        assert resp.status_code == 200
        assert resp.json()["remaining"] == 28800

        resp = ledger.put(f"/api/v1/finance/projects/{pid}",
                          json={"budget": 25000, "received": 7500, "spent": 5000})
        assert resp.json()["remaining"] == 20000
        rows = [r for r in ledger.get("/api/v1/finance/projects").json() if r["project_id"] == pid]
        assert len(rows) == 1

    def test_negative_budget_422(self, ledger):
        pid = ledger.projects["web"]["id"]
        resp = ledger.put(f"/api/v1/finance/projects/{pid}", json={"budget": -1})
        assert resp.status_code == 422

    @pytest.mark.parametrize("field", ["budget", "received", "spent"])
    def test_infinite_budget_field_422(self, ledger, field):
        pid = ledger.projects["web"]["id"]
        resp = ledger.put(f"/api/v1/finance/projects/{pid}", json={field: "inf"})
        assert resp.status_code == 422

    def test_foreign_project_404(self, ledger, other_client):
        pid = ledger.projects["web"]["id"]
        resp = other_client.put(f"/api/v1/finance/projects/{pid}", json={"budget": 1})
        assert resp.status_code == 404


class TestExport:
    def test_export_csv_helper(self):
        text = export_csv([{"date": "2025-01-01", "project_name": "P", "type": "income",
                            "description": "Deposit, part 1", "amount": 10.0}])
        rows = list(csv.reader(io.StringIO(text)))
        assert rows[0] == EXPORT_HEADER
        assert rows[1] == ["2025-01-01", "P", "income", "Deposit, part 1", "10.0"]

    def test_csv_download(self, ledger):
        resp = ledger.get("/api/v1/finance/export", params={"fmt": "csv"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert "finance_export_" in resp.headers["content-disposition"]
        assert resp.headers["content-disposition"].endswith(".csv")
        assert resp.headers["x-total-count"] == "5"
        rows = list(csv.reader(io.StringIO(resp.text)))
        assert rows[0] == ["Date", "Project", "Type", "Description", "Amount"]
        assert len(rows) == 6

    def test_export_reads_every_page(self, ledger, monkeypatch):
        monkeypatch.setattr(finance_routes, "EXPORT_PAGE_SIZE", 2)
        resp = ledger.get("/api/v1/finance/export", params={"fmt": "csv"})
        assert resp.headers["x-total-count"] == "5"
        rows = list(csv.reader(io.StringIO(resp.text)))[1:]
        assert len(rows) == 5
        assert [r[0] for r in rows] == sorted((r[0] for r in rows), reverse=True)

    def test_xlsx_download(self, ledger):
        resp = ledger.get("/api/v1/finance/export", params={"fmt": "xlsx"})
        assert resp.status_code == 200
        assert resp.headers["content-disposition"].endswith(".xlsx")
        wb = openpyxl.load_workbook(io.BytesIO(resp.content))
        assert wb.sheetnames == ["Transactions", "Summary"]
        rows = list(wb["Transactions"].iter_rows(values_only=True))
        assert list(rows[0]) == EXPORT_HEADER
        assert len(rows) == 6
        summary = {r[0]: r[1] for r in wb["Summary"].iter_rows(values_only=True)}
        assert summary["Net Profit"] == 9899.5

    def test_bad_format_422(self, ledger):
        assert ledger.get("/api/v1/finance/export", params={"fmt": "pdf"}).status_code == 422

    def test_requires_auth(self, client):
        assert client.get("/api/v1/finance/export").status_code == 401
