"""API tests through the ASGI app with the test database."""

from decimal import Decimal
from uuid import uuid4

import httpx
import pytest

from workforce_payroll.api.app import create_app
from workforce_payroll.api.dependencies import (
    get_app_settings,
    get_clock,
    get_db_session,
    get_notifier,
)


@pytest.fixture
async def client(session, settings, clock, notifier):
    app = create_app()

    async def override_session():
        yield session

    app.dependency_overrides[get_db_session] = override_session
    app.dependency_overrides[get_app_settings] = lambda: settings
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def _headers(world) -> dict[str, str]:
    return {"X-Organization-ID": str(world.organization_id)}


async def _calculate(client, world, **extra):
    payload = {
        "period_start": "2025-07-01",
        "period_end": "2025-07-31",
        "actor_id": str(world.admin_id),
        **extra,
    }
    return await client.post(
        f"/api/v1/projects/{world.project_id}/payroll", json=payload, headers=_headers(world)
    )


def _record_for(body, employee_id):
    return next(r for r in body["records"] if r["employee_id"] == str(employee_id))


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["database"] == "healthy"

    async def test_live(self, client):
        response = await client.get("/live")

        assert response.json() == {"status": "alive"}


class TestPayCycleEndpoints:
    async def test_configure_and_read(self, client, world):
        response = await client.put(
            "/api/v1/pay-cycles", json={"frequency": "weekly"}, headers=_headers(world)
        )

        assert response.status_code == 200
        body = response.json()
        assert body["next_cycle_start"] == "2025-08-01"
        assert body["next_cycle_end"] == "2025-08-07"

        response = await client.get("/api/v1/pay-cycles", headers=_headers(world))
        assert response.json()["frequency"] == "weekly"

    async def test_unconfigured_is_404(self, client, world):
        response = await client.get("/api/v1/pay-cycles", headers=_headers(world))

        assert response.status_code == 404

    async def test_unknown_frequency_is_422(self, client, world):
        response = await client.put(
            "/api/v1/pay-cycles", json={"frequency": "daily"}, headers=_headers(world)
        )

        assert response.status_code == 422

    async def test_missing_organization_header(self, client):
        response = await client.get("/api/v1/pay-cycles")

        assert response.status_code == 400


class TestPayrollEndpoints:
    async def test_calculate_then_rerun(self, client, world):
        response = await _calculate(client, world)

        assert response.status_code == 201
        body = response.json()
        assert body["records_created"] == 2
        assert Decimal(_record_for(body, world.alice_id)["net_pay"]) == Decimal("390.00")

        rerun = await _calculate(client, world)
        assert rerun.status_code == 201
        assert rerun.json()["records_created"] == 0

    async def test_calculate_with_options(self, client, world):
        options = {
            "tax_rate": "0.10",
            "bonuses": {str(world.bob_id): [{"amount": "50"}]},
        }

        response = await _calculate(client, world, options=options)

        bob = _record_for(response.json(), world.bob_id)
        assert Decimal(bob["gross_pay"]) == Decimal("525.00")
        assert Decimal(bob["net_pay"]) == Decimal("498.00")
        assert bob["deductions_json"][0]["type"] == "tax"

    async def test_inverted_period_is_400(self, client, world):
        response = await client.post(
            f"/api/v1/projects/{world.project_id}/payroll",
            json={
                "period_start": "2025-07-31",
                "period_end": "2025-07-01",
                "actor_id": str(world.admin_id),
            },
            headers=_headers(world),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    async def test_approve_flow(self, client, world, notifier):
        created = (await _calculate(client, world)).json()
        alice = _record_for(created, world.alice_id)
        url = f"/api/v1/payroll/{alice['payroll_record_id']}/approve"
        payload = {"admin_id": str(world.admin_id), "employee_id": str(world.alice_id)}

        response = await client.post(url, json=payload, headers=_headers(world))

        assert response.status_code == 200
        assert response.json()["payroll_status"] == "approved"
        assert len(notifier.sent) == 1

        again = await client.post(url, json=payload, headers=_headers(world))
        assert again.status_code == 409
        assert again.json()["code"] == "CONFLICT"

    async def test_reject_requires_reason(self, client, world):
        created = (await _calculate(client, world)).json()
        bob = _record_for(created, world.bob_id)
        url = f"/api/v1/payroll/{bob['payroll_record_id']}/reject"
        payload = {
            "admin_id": str(world.admin_id),
            "employee_id": str(world.bob_id),
            "reason": "   ",
        }

        response = await client.post(url, json=payload, headers=_headers(world))

        assert response.status_code == 400

        payload["reason"] = "Overtime not authorised"
        response = await client.post(url, json=payload, headers=_headers(world))
        assert response.status_code == 200
        assert response.json()["rejection_reason"] == "Overtime not authorised"

    async def test_unknown_record_is_404(self, client, world):
        response = await client.get(f"/api/v1/payroll/{uuid4()}", headers=_headers(world))

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_reports_export_and_payslip(self, client, world):
        created = (await _calculate(client, world)).json()
        for employee_id in (world.alice_id, world.bob_id):
            record = _record_for(created, employee_id)
            await client.post(
                f"/api/v1/payroll/{record['payroll_record_id']}/approve",
                json={"admin_id": str(world.admin_id), "employee_id": str(employee_id)},
                headers=_headers(world),
            )

        summary = await client.get(
            "/api/v1/payroll/summary/monthly",
            params={"month": 7, "year": 2025},
            headers=_headers(world),
        )
        assert summary.status_code == 200
        assert Decimal(summary.json()["total_amount"]) == Decimal("865.50")
        assert summary.json()["employee_count"] == 2

        project = await client.get(
            f"/api/v1/projects/{world.project_id}/payroll/summary", headers=_headers(world)
        )
        assert Decimal(project.json()["total_cost"]) == Decimal("865.50")
        assert len(project.json()["employees"]) == 2

        history = await client.get(
            f"/api/v1/employees/{world.alice_id}/payroll", headers=_headers(world)
        )
        assert len(history.json()) == 1

        export = await client.get(
            "/api/v1/payroll/export/bank",
            params={"period_start": "2025-07-01", "period_end": "2025-07-31"},
            headers=_headers(world),
        )
        assert export.status_code == 200
        assert export.headers["content-type"].startswith("text/csv")
        assert export.text.split("\n")[1] == "1234567890,ACME0001,390.00,Payroll 2025-07-01"

        alice = _record_for(created, world.alice_id)
        payslip = await client.get(
            f"/api/v1/payroll/{alice['payroll_record_id']}/payslip", headers=_headers(world)
        )
        assert payslip.status_code == 200
        assert payslip.headers["content-type"] == "application/pdf"
        assert payslip.headers["content-disposition"].endswith('.pdf"')
        assert payslip.content.startswith(b"%PDF-")

    async def test_add_rate(self, client, world):
        response = await client.post(
            f"/api/v1/employees/{world.bob_id}/rates",
            json={
                "actor_id": str(world.admin_id),
                "hourly_rate": "12.50",
                "effective_from": "2025-08-01",
            },
            headers=_headers(world),
        )

        assert response.status_code == 201
        assert Decimal(response.json()["hourly_rate"]) == Decimal("12.50")

    async def test_employee_cannot_add_rate(self, client, world):
        response = await client.post(
            f"/api/v1/employees/{world.bob_id}/rates",
            json={
                "actor_id": str(world.alice_id),
                "hourly_rate": "12.50",
                "effective_from": "2025-08-01",
            },
            headers=_headers(world),
        )

        assert response.status_code == 400

    async def test_other_organization_sees_no_payroll(self, client, world):
        await _calculate(client, world)
        foreign = {"X-Organization-ID": str(uuid4())}

        project = await client.get(
            f"/api/v1/projects/{world.project_id}/payroll/summary", headers=foreign
        )
        history = await client.get(f"/api/v1/employees/{world.alice_id}/payroll", headers=foreign)
        rate = await client.post(
            f"/api/v1/employees/{world.bob_id}/rates",
            json={
                "actor_id": str(world.admin_id),
                "hourly_rate": "99.00",
                "effective_from": "2025-08-01",
            },
            headers=foreign,
        )

        assert project.status_code == 200
        assert Decimal(project.json()["total_cost"]) == Decimal("0")
        assert project.json()["employees"] == []
        assert history.json() == []
        assert rate.status_code == 400

    async def test_calculate_with_allowance_and_deduction(self, client, world):
        options = {
            "allowances": {str(world.bob_id): [{"name": "Meal", "amount": "12.345"}]},
            "custom_deductions": {
                str(world.bob_id): [{"type": "advance", "amount": "20", "reason": "Advance"}]
            },
        }

        response = await _calculate(client, world, options=options)

        bob = _record_for(response.json(), world.bob_id)
        assert Decimal(bob["gross_pay"]) == Decimal("487.35")
        assert Decimal(bob["net_pay"]) == Decimal("492.85")
        assert bob["allowances_json"][0]["name"] == "Meal"
        assert bob["allowances_json"][0]["amount"] == "12.35"
        assert bob["deductions_json"][0]["type"] == "advance"


class TestPayRunEndpoints:
    async def _approve_all(self, client, world):
        created = (await _calculate(client, world)).json()
        for employee_id in (world.alice_id, world.bob_id):
            record = _record_for(created, employee_id)
            await client.post(
                f"/api/v1/payroll/{record['payroll_record_id']}/approve",
                json={"admin_id": str(world.admin_id), "employee_id": str(employee_id)},
                headers=_headers(world),
            )
        return created

    async def _run(self, client, world, method="auto"):
        return await client.post(
            "/api/v1/payroll/runs",
            json={
                "period_start": "2025-07-01",
                "period_end": "2025-07-31",
                "admin_id": str(world.admin_id),
                "method": method,
            },
            headers=_headers(world),
        )

    async def test_run_and_settle(self, client, world):
        created = await self._approve_all(client, world)

        response = await self._run(client, world)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending"
        assert Decimal(body["total_amount"]) == Decimal("390.00")
        assert body["skipped_employee_ids"] == [str(world.bob_id)]
        assert len(body["payouts"]) == 1

        alice = _record_for(created, world.alice_id)
        record = await client.get(
            f"/api/v1/payroll/{alice['payroll_record_id']}", headers=_headers(world)
        )
        assert record.json()["locked"] is True
        assert record.json()["payroll_run_id"] == body["payroll_run_id"]

        payout_id = body["payouts"][0]["payout_id"]
        settled = await client.post(
            f"/api/v1/payouts/{payout_id}/success", json={}, headers=_headers(world)
        )
        assert settled.status_code == 200
        assert settled.json()["status"] == "success"

        again = await client.post(
            f"/api/v1/payouts/{payout_id}/failure",
            json={"reason": "Bounced"},
            headers=_headers(world),
        )
        assert again.status_code == 409

    async def test_second_run_has_nothing_to_pay(self, client, world):
        await self._approve_all(client, world)
        await self._run(client, world, method="manual")

        response = await self._run(client, world, method="manual")

        assert response.status_code == 400

    async def test_unknown_payout_is_404(self, client, world):
        response = await client.post(
            f"/api/v1/payouts/{uuid4()}/failure",
            json={"reason": "Bounced"},
            headers=_headers(world),
        )

        assert response.status_code == 404
