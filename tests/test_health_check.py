"""
Tests for the liveness and readiness endpoints.
"""
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.domain.services import health_service


class TestLivenessProbe:
    @pytest.mark.unit
    async def test_liveness_returns_healthy(self, test_client: httpx.AsyncClient) -> None:
        response = await test_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestReadinessProbe:
    @pytest.mark.unit
    async def test_readiness_healthy(self, test_client: httpx.AsyncClient) -> None:
        with patch(
            "app.domain.services.health_service._check_db",
            new_callable=AsyncMock,
            return_value="ok",
        ):
            response = await test_client.get("/health/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "db": "ok"}

    @pytest.mark.unit
    async def test_readiness_degraded_returns_503(self, test_client: httpx.AsyncClient) -> None:
        with patch(
            "app.domain.services.health_service._check_db",
            new_callable=AsyncMock,
            return_value="error: db_unavailable",
        ):
            response = await test_client.get("/health/ready")

        assert response.status_code == 503
        assert response.json() == {"status": "degraded", "db": "error: db_unavailable"}


class TestCheckDb:
    @pytest.mark.integration
    async def test_reachable_database(self, async_engine, monkeypatch) -> None:
        monkeypatch.setattr(
            health_service,
            "AsyncSessionLocal",
            async_sessionmaker(async_engine, class_=AsyncSession),
        )

        assert await health_service._check_db() == "ok"

    @pytest.mark.unit
    async def test_unreachable_database_hides_details(self, monkeypatch) -> None:
        class _Unreachable:
            async def __aenter__(self):
                raise OperationalError("connect", {}, Exception("password authentication failed for user x"))

            async def __aexit__(self, *exc):
                return False

        monkeypatch.setattr(health_service, "AsyncSessionLocal", _Unreachable)

        result = await health_service.check_readiness()

        assert result == {"status": "degraded", "db": "error: db_unavailable"}
