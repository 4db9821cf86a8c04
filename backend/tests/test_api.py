"""
Tests for API endpoints.
"""

import pytest
from fastapi import status

from conftest import CATEGORY_URL, product_url


class TestRootEndpoint:
    """Test the root endpoint."""

    def test_root_returns_json(self, client):
        """Test that root endpoint returns expected JSON."""
        response = client.get("/")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert "message" in data
        assert data["message"] == "Pricewatch API"
        assert "version" in data

    def test_favicon(self, client):
        response = client.get("/favicon.ico")
        assert response.status_code == status.HTTP_204_NO_CONTENT


class TestProductsEndpoint:
    """Test product batch jobs."""

    def test_scrape_products(self, client):
        """Test starting and finishing a product batch."""
        urls = [product_url(1), product_url(2)]
        response = client.post("/api/scrape/products", json={"urls": urls})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "running"
        assert data["targets"] == 2
        assert data["rejected_urls"] == []

        # Background tasks finish before the test client returns
        job = client.get(f"/api/scrape/{data['session_id']}").json()
        assert job["status"] == "completed"
        assert job["progress"] == 100
        assert job["result"]["successful"] == 2
        assert [listing["url"] for listing in job["result"]["listings"]] == urls
        assert job["result"]["listings"][0]["sellers"][0]["seller_name"] == "Satici1"

    def test_invalid_urls_reported(self, client):
        """Test that malformed URLs are reported and skipped."""
        response = client.post(
            "/api/scrape/products",
            json={"urls": ["https://www.example.com/x,1.html", product_url(3)]},
        )

        data = response.json()
        assert data["targets"] == 1
        assert data["rejected_urls"] == ["https://www.example.com/x,1.html"]

    def test_no_valid_urls(self, client):
        response = client.post("/api/scrape/products", json={"urls": ["https://www.akakce.com/x.html"]})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_empty_url_list(self, client):
        response = client.post("/api/scrape/products", json={"urls": []})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_start_from(self, client):
        response = client.post(
            "/api/scrape/products",
            json={"urls": [product_url(1), product_url(2), product_url(3)], "start_from": 3},
        )

        job = client.get(f"/api/scrape/{response.json()['session_id']}").json()
        assert job["result"]["skipped"] == 2
        assert len(job["result"]["listings"]) == 1

    def test_busy_runner(self, client, runner):
        """Test that a second job is refused while one is running."""
        runner.create_products_job([product_url(1)])

        response = client.post("/api/scrape/products", json={"urls": [product_url(2)]})

        assert response.status_code == status.HTTP_409_CONFLICT


class TestCategoryEndpoint:
    """Test category jobs."""

    def test_scrape_category(self, client):
        response = client.post("/api/scrape/category", json={"url": CATEGORY_URL, "max_products": 2})

        assert response.status_code == status.HTTP_200_OK
        job = client.get(f"/api/scrape/{response.json()['session_id']}").json()
        assert job["kind"] == "category"
        assert job["status"] == "completed"
        assert job["result"]["discovered_urls"] == [product_url(1), product_url(2)]
        assert job["result"]["successful"] == 2

    def test_max_products_bounds(self, client):
        response = client.post("/api/scrape/category", json={"url": CATEGORY_URL, "max_products": 0})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


class TestSessionEndpoints:
    """Test status, stop and session listing."""

    def test_unknown_session(self, client):
        assert client.get("/api/scrape/missing").status_code == status.HTTP_404_NOT_FOUND
        assert client.post("/api/scrape/missing/stop").status_code == status.HTTP_404_NOT_FOUND

    def test_stop_finished_job(self, client):
        response = client.post("/api/scrape/products", json={"urls": [product_url(1)]})
        session_id = response.json()["session_id"]

        data = client.post(f"/api/scrape/{session_id}/stop").json()

        assert data["stop_requested"] is False
        assert data["status"] == "completed"

    def test_stop_pending_job(self, client, runner):
        job = runner.create_products_job([product_url(1)])

        data = client.post(f"/api/scrape/{job.session_id}/stop").json()

        assert data["stop_requested"] is True
        assert job.stop_requested

    def test_active_sessions_empty(self, client):
        response = client.get("/api/sessions")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"active": []}


class TestJobRunner:
    """Test job bookkeeping outside HTTP."""

    @pytest.mark.asyncio
    async def test_stopped_before_start(self, runner):
        from api.jobs import JobStatus

        job = runner.create_products_job([product_url(1)])
        runner.stop(job.session_id)
        await runner.run(job)

        assert job.status is JobStatus.STOPPED
        assert job.result is None

    @pytest.mark.asyncio
    async def test_failed_job(self, runner):
        from api.jobs import JobStatus

        job = runner.create_products_job([product_url(1)])
        runner.store.register(job.session_id)

        await runner.run(job)

        assert job.status is JobStatus.FAILED
        assert "already running" in job.error
        assert not runner.is_busy()
