"""Tests for FastAPI application endpoints.

Tests cover:
- Health check endpoint (/health)
- Root endpoint (/) API metadata
- Job routes answer 503 when the pipeline is not configured
"""

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from promo_pipeline import __version__
from promo_pipeline.main import SERVICE_NAME, app


@pytest.fixture
def client() -> TestClient:
    """Create FastAPI test client.

    The lifespan is not entered, so no pipeline services are built.

    Returns:
        TestClient: Synchronous client for testing FastAPI endpoints.
    """
    app.state.services = None
    return TestClient(app)


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_endpoint_returns_200(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == status.HTTP_200_OK

    def test_health_reports_service_and_pipeline_state(self, client: TestClient) -> None:
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["service"] == SERVICE_NAME
        assert data["pipeline_configured"] is False


class TestRootEndpoint:
    """Tests for / endpoint."""

    def test_root_returns_api_metadata(self, client: TestClient) -> None:
        response = client.get("/")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "service": "Promo Video Pipeline",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }


class TestUnconfiguredPipeline:
    """Job routes without a service container."""

    def test_create_job_returns_503(self, client: TestClient) -> None:
        response = client.post(
            "/jobs",
            json={"project_id": "proj-1", "scenes": [{"description": "A bottle"}]},
        )

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["detail"] == "Pipeline is not configured"

    def test_openapi_lists_job_routes(self, client: TestClient) -> None:
        paths = client.get("/openapi.json").json()["paths"]

        assert "/jobs" in paths
        assert "/jobs/{job_id}/generate" in paths
        assert "/jobs/{job_id}/scenes/status" in paths
        assert "/projects/{project_id}/visuals" in paths
        assert "/jobs/{job_id}/scenes/{scene_index}/generate" in paths
        assert "/quickclips" in paths

    def test_create_quickclip_returns_503(self, client: TestClient) -> None:
        response = client.post(
            "/quickclips",
            json={"project_id": "proj-1", "image_url": "https://cdn/a.png"},
        )

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
