import pytest
from aiohttp import test_utils

from pangolin_guardian.health_server import create_app


class TestHealthServer:
    @pytest.mark.asyncio
    async def test_health_ok(self):
        async with test_utils.TestClient(test_utils.TestServer(create_app())) as client:
            response = await client.get("/health")
            assert response.status == 200
            assert await response.text() == "OK"

    @pytest.mark.asyncio
    async def test_other_paths_404(self):
        async with test_utils.TestClient(test_utils.TestServer(create_app())) as client:
            response = await client.get("/metrics")
            assert response.status == 404
