"""
Tests for region and practice ETA lookups.
"""
import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.reference import Region
from app.services.eta_service import EtaService


class TestRegions:

    @pytest.mark.asyncio
    async def test_list_active_regions_sorted(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers_member: dict
    ):
        db_session.add_all([
            Region(code="TX-DAL", name="TX-DAL"),
            Region(code="CA-LAX", name="CA-LAX"),
            Region(code="OLD", name="OLD", active=False),
        ])
        await db_session.commit()

        response = await client.get("/api/regions", headers=auth_headers_member)

        assert [r["code"] for r in response.json()["regions"]] == ["CA-LAX", "TX-DAL"]

    @pytest.mark.asyncio
    async def test_admin_creates_region(self, client: AsyncClient, auth_headers_admin: dict):
        response = await client.post(
            "/api/regions",
            json={"code": "fl-mia", "name": "FL-MIA"},
            headers=auth_headers_admin
        )

        assert response.status_code == 201
        assert response.json()["region"]["code"] == "FL-MIA"

        response = await client.post(
            "/api/regions",
            json={"code": "FL-MIA", "name": "Miami"},
            headers=auth_headers_admin
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_member_cannot_create_region(self, client: AsyncClient, auth_headers_member: dict):
        response = await client.post(
            "/api/regions",
            json={"code": "OK-OKC", "name": "OK-OKC"},
            headers=auth_headers_member
        )

        assert response.status_code == 403


class TestPracticeEtas:

    @pytest.mark.asyncio
    async def test_filter_by_practice(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers_member: dict
    ):
        service = EtaService(db_session)
        await service.record_sample("Cloud", "pending_to_unassigned", 5.0)
        await service.record_sample("Network", "unassigned_to_assigned", 12.0)
        await service.record_sample("Network", "unassigned_to_assigned", 20.0, sa_name="Sky Architect")

        response = await client.get(
            "/api/practice-etas",
            params={"practice": ["Network"], "saName": "Sky Architect"},
            headers=auth_headers_member
        )

        etas = response.json()["etas"]
        assert len(etas) == 1
        assert etas[0]["saName"] == "Sky Architect"
        assert etas[0]["avgDurationHours"] == 20.0

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client: AsyncClient):
        response = await client.get("/api/practice-etas")

        assert response.status_code == 401
