"""API endpoint tests."""

from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient

from labor_billing.config import Settings
from labor_billing.models import Personnel, TimeEntry

pytestmark = pytest.mark.asyncio

API = "/api/v1/billing"


class TestHealthEndpoints:
    """Test health check endpoints."""

    async def test_health_check(self, client: AsyncClient):
        """Test basic health check."""
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"


class TestEntryEndpoints:
    """Test unbilled entry listing."""

    async def test_list_unbilled(self, client: AsyncClient, seeded):
        response = await client.get(f"{API}/entries/unbilled", params={"side": "invoice"})

        assert response.status_code == 200
        entries = response.json()
        assert len(entries) == 6
        assert {e["customer_name"] for e in entries} == {"Acme Corp"}

    async def test_list_unbilled_by_project(self, client: AsyncClient, seeded):
        response = await client.get(
            f"{API}/entries/unbilled",
            params={"side": "vendor_bill", "project_id": str(seeded.gemini_id)},
        )

        assert response.status_code == 200
        assert len(response.json()) == 2

    async def test_invalid_side(self, client: AsyncClient, seeded):
        response = await client.get(f"{API}/entries/unbilled", params={"side": "timesheet"})
        assert response.status_code == 422


class TestInvoiceEndpoints:
    """Test invoice preview and creation."""

    async def test_preview(self, client: AsyncClient, seeded):
        response = await client.post(f"{API}/invoices/preview", json={})

        assert response.status_code == 200
        data = response.json()
        assert data["can_submit"] is True
        assert Decimal(data["draft"]["total"]) == Decimal("2960")
        assert len(data["draft"]["lines"]) == 4
        assert data["blockers"] == []
        assert data["customer_error"] is None
        assert len(data["fingerprint"]) == 32

    async def test_create(self, client: AsyncClient, seeded):
        response = await client.post(
            f"{API}/invoices", json={"invoice_date": "2025-01-13", "notes": "Week 2"}
        )

        assert response.status_code == 201
        data = response.json()
        assert data["number"] == "INV-00001"
        assert data["subject_name"] == "Acme Corp"
        assert Decimal(data["total"]) == Decimal("2960")
        assert data["entries_linked"] == 6

    async def test_rerun_is_nothing_to_bill(self, client: AsyncClient, seeded):
        await client.post(f"{API}/invoices", json={})

        response = await client.post(f"{API}/invoices", json={})

        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "NOTHING_TO_BILL"
        assert "6 already billed" in data["detail"]

    async def test_unresolved_rate(self, client: AsyncClient, db_session, seeded):
        """Test that an unassigned person is named in the error."""
        cleo = Personnel(first_name="Cleo", last_name="Patra")
        db_session.add(cleo)
        await db_session.flush()
        db_session.add(
            TimeEntry(
                personnel_id=cleo.personnel_id,
                project_id=seeded.apollo_id,
                entry_date=date(2025, 1, 6),
                hours=Decimal("4"),
            )
        )
        await db_session.commit()

        response = await client.post(f"{API}/invoices", json={})

        assert response.status_code == 422
        data = response.json()
        assert data["code"] == "UNRESOLVED_RATE"
        assert data["data"]["people"] == ["Cleo Patra"]

    async def test_customer_invoices(self, client: AsyncClient, seeded):
        response = await client.post(f"{API}/customer-invoices", json={})

        assert response.status_code == 200
        data = response.json()
        assert len(data["succeeded"]) == 1
        assert data["failed"] == []
        assert Decimal(data["total_amount"]) == Decimal("2960")


class TestVendorBillEndpoints:
    """Test vendor bill preview and creation."""

    async def test_preview(self, client: AsyncClient, seeded):
        response = await client.post(f"{API}/vendor-bills/preview", json={})

        assert response.status_code == 200
        data = response.json()
        assert [d["subject_name"] for d in data["drafts"]] == ["Ada Lovelace", "Bob Builder"]
        assert data["zero_rate_people"] == []

    async def test_create(self, client: AsyncClient, seeded):
        response = await client.post(f"{API}/vendor-bills", json={"bill_date": "2025-01-13"})

        assert response.status_code == 200
        data = response.json()
        assert [d["subject_name"] for d in data["succeeded"]] == ["Ada Lovelace", "Bob Builder"]
        assert Decimal(data["total_amount"]) == Decimal("1340")
        assert data["skipped_message"] is None

    async def test_invoicing_does_not_consume_vendor_side(self, client: AsyncClient, seeded):
        await client.post(f"{API}/invoices", json={})

        response = await client.post(f"{API}/vendor-bills", json={})

        assert response.status_code == 200
        assert len(response.json()["succeeded"]) == 2


class TestSyncEndpoints:
    """Test accounting sync retry."""

    async def test_sync_disabled(self, client: AsyncClient, seeded):
        response = await client.post(f"{API}/sync/invoice/{uuid4()}")

        assert response.status_code == 502
        assert response.json()["code"] == "ACCOUNTING_SYNC_FAILED"


class TestSyncEnabledEndpoints:
    """Test accounting sync with the stub adapter."""

    @pytest_asyncio.fixture
    async def app_settings(self):
        return replace(Settings.from_env(), accounting_sync_enabled=True)

    async def test_invoice_synced_on_create(self, client: AsyncClient, seeded):
        response = await client.post(f"{API}/invoices", json={})

        assert response.status_code == 201
        assert response.json()["external_ref"].startswith("QINV-")

    async def test_retry_sync(self, client: AsyncClient, seeded):
        created = (await client.post(f"{API}/invoices", json={})).json()

        response = await client.post(f"{API}/sync/invoice/{created['document_id']}")

        assert response.status_code == 200
        assert response.json()["provider"] == "accounting_stub"

    async def test_unknown_document(self, client: AsyncClient, seeded):
        response = await client.post(f"{API}/sync/vendor_bill/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["code"] == "DOCUMENT_NOT_FOUND"
