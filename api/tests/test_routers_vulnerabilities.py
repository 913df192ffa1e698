"""
Tests for vulnerability registry router.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from api.services.registry.errors import ConflictError


BASE = "/api/vulnerabilities"


def _create(client: TestClient, **overrides):
    document = {
        "title": "T",
        "description": "D",
        "platform": "ETH",
        "discoveryDate": "2023-05-15",
    }
    document.update(overrides)
    return client.post(BASE, json={"document": document})


class TestCreateVulnerability:
    """Tests for POST /api/vulnerabilities."""

    def test_create(self, client: TestClient):
        """Test registering a vulnerability returns 201 with a receipt."""
        response = _create(client)
        assert response.status_code == 201
        data = response.json()
        assert data["identifiers"]["bvc_id"] == "BVC-ETH-2023-001"
        assert data["ledger"]["version"] == "1"
        assert data["content"]["hash"]
        assert data["content"]["url"]

    def test_create_new_version(self, client: TestClient):
        """Test resubmitting with the same id yields version 2."""
        _create(client, id="ETH-REENTRANCY-1")
        response = _create(client, id="ETH-REENTRANCY-1", title="T2")
        assert response.status_code == 201
        assert response.json()["ledger"]["version"] == "2"
        assert response.json()["identifiers"]["bvc_id"] == "BVC-ETH-2023-001"

    def test_create_invalid_month(self, client: TestClient, ledger):
        """Test an invalid date is rejected before the ledger is touched."""
        response = _create(client, discoveryDate="2023-13-01")
        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["field"] == "discoveryDate"
        assert "Month" in detail["error"]
        assert ledger.calls == []

    def test_create_missing_field(self, client: TestClient):
        response = client.post(BASE, json={"document": {"title": "T"}})
        assert response.status_code == 400
        assert "Missing required fields" in response.json()["detail"]["error"]

    def test_create_without_document(self, client: TestClient):
        response = client.post(BASE, json={})
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "document"

    def test_create_invalid_platform(self, client: TestClient):
        response = _create(client, platform="ethereum")
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "platform"

    def test_create_ledger_unreachable(self, client: TestClient, ledger):
        ledger.reachable = False
        response = _create(client)
        assert response.status_code == 500
        assert response.json()["detail"]["collaborator"] == "ledger"


class TestGetVulnerability:
    """Tests for GET /api/vulnerabilities/{id}."""

    def test_get_by_bvc_id(self, client: TestClient):
        _create(client)
        response = client.get(f"{BASE}/BVC-ETH-2023-001")
        assert response.status_code == 200
        data = response.json()
        assert data["title"] == "T"
        assert data["status"] == "active"
        assert data["discovery_year"] == 2023
        assert data["content"]["data"]["description"] == "D"

    def test_get_by_base_id(self, client: TestClient):
        created = _create(client).json()
        response = client.get(f"{BASE}/{created['identifiers']['base_id']}")
        assert response.status_code == 200
        assert response.json()["bvc_id"] == "BVC-ETH-2023-001"

    def test_get_not_found(self, client: TestClient):
        """Test a well-formed but unknown BVC ID returns 404."""
        response = client.get(f"{BASE}/BVC-ZZZ-2099-99999")
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "Vulnerability not found"

    def test_get_malformed_bvc_id(self, client: TestClient):
        response = client.get(f"{BASE}/BVC-ETH-23-1")
        assert response.status_code == 400
        assert "BVC-PLATFORM-YEAR-ID" in response.json()["detail"]["error"]

    def test_get_with_content_outage(self, client: TestClient, content_store):
        """Test the ledger record is served when the body is unavailable."""
        _create(client)
        content_store.available = False
        response = client.get(f"{BASE}/BVC-ETH-2023-001")
        assert response.status_code == 200
        data = response.json()
        assert data["title"] == "T"
        assert data["content"]["data"] is None
        assert data["content"]["error"]


class TestListVulnerabilities:
    """Tests for GET /api/vulnerabilities."""

    def test_list_empty(self, client: TestClient):
        response = client.get(BASE)
        assert response.status_code == 200
        assert response.json() == {"count": 0, "items": []}

    def test_list_all(self, client: TestClient):
        for i in range(3):
            _create(client, id=f"v{i}")
        response = client.get(BASE)
        assert response.status_code == 200
        assert response.json()["count"] == 3

    def test_list_paginated(self, client: TestClient):
        for i in range(5):
            _create(client, id=f"v{i}")
        response = client.get(BASE, params={"page": 2, "page_size": 2})
        assert response.status_code == 200
        data = response.json()
        assert [item["bvc_id"] for item in data["items"]] == ["BVC-ETH-2023-003", "BVC-ETH-2023-004"]
        assert data["total"] == 5
        assert data["pages"] == 3
        assert data["has_next"] is True
        assert data["has_prev"] is True

    def test_list_page_zero(self, client: TestClient):
        response = client.get(BASE, params={"page": 0})
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "page"

    def test_list_page_size_too_large(self, client: TestClient):
        response = client.get(BASE, params={"page_size": 1000})
        assert response.status_code == 400

    def test_list_by_platform(self, client: TestClient):
        _create(client, id="a", platform="ETH")
        _create(client, id="b", platform="SOL")
        response = client.get(BASE, params={"platform": "SOL"})
        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["items"][0]["bvc_id"] == "BVC-SOL-2023-001"

    def test_list_ids(self, client: TestClient):
        _create(client, id="a")
        response = client.get(f"{BASE}/ids")
        assert response.status_code == 200
        assert response.json()["bvc_ids"] == ["BVC-ETH-2023-001"]


class TestVersionsAndStatus:
    """Tests for version history and status endpoints."""

    def test_versions(self, client: TestClient):
        _create(client, id="x")
        _create(client, id="x", title="T2")
        response = client.get(f"{BASE}/BVC-ETH-2023-001/versions")
        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        assert [v["version"] for v in data["versions"]] == ["1", "2"]

    def test_versions_not_found(self, client: TestClient):
        response = client.get(f"{BASE}/BVC-ZZZ-2099-99999/versions")
        assert response.status_code == 404

    def test_deactivate(self, client: TestClient):
        _create(client)
        response = client.post(f"{BASE}/status", json={"id": "BVC-ETH-2023-001", "is_active": False})
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        fetched = client.get(f"{BASE}/BVC-ETH-2023-001").json()
        assert fetched["status"] == "inactive"
        assert fetched["version"] == "1"

    def test_status_non_boolean(self, client: TestClient):
        response = client.post(f"{BASE}/status", json={"id": "BVC-ETH-2023-001", "is_active": "no"})
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "is_active"

    def test_status_missing_id(self, client: TestClient):
        response = client.post(f"{BASE}/status", json={"is_active": True})
        assert response.status_code == 400

    def test_status_unknown(self, client: TestClient):
        response = client.post(f"{BASE}/status", json={"id": "BVC-ETH-2023-999", "is_active": True})
        assert response.status_code == 404


class TestHelperEndpoints:
    """Tests for preview, counter and date validation endpoints."""

    def test_preview(self, client: TestClient):
        response = client.get(f"{BASE}/bvc-id/preview", params={"platform": "ETH", "discovery_date": "2023"})
        assert response.status_code == 200
        assert response.json()["bvc_id"] == "BVC-ETH-2023-001"

    def test_preview_invalid_platform(self, client: TestClient):
        response = client.get(f"{BASE}/bvc-id/preview", params={"platform": "x", "discovery_date": "2023"})
        assert response.status_code == 400

    def test_counter(self, client: TestClient):
        _create(client)
        response = client.get(f"{BASE}/counters/ETH/2023")
        assert response.status_code == 200
        assert response.json()["counter"] == 1

    @pytest.mark.parametrize("date,status", [
        ("2023-05-15", 200),
        ("2023-02-29", 200),
        ("2023-02-30", 400),
        ("", 400),
    ])
    def test_validate_discovery_date(self, client: TestClient, date, status):
        response = client.get(f"{BASE}/validate/discovery-date", params={"date": date})
        assert response.status_code == status


class TestErrorMapping:
    """Tests for status codes of ledger rejections and malformed requests."""

    def test_create_conflict(self, client: TestClient, ledger):
        """Test a ledger uniqueness rejection returns 409."""
        ledger.submit_vulnerability = AsyncMock(side_effect=ConflictError("BVC ID already exists"))
        response = _create(client)
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "Vulnerability already exists"

    def test_create_non_string_fields(self, client: TestClient, content_store):
        """Test structured title or description is rejected before upload."""
        response = _create(client, title=["x"], description={"a": 1})
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "title"
        assert content_store.uploads == []

    def test_create_malformed_id(self, client: TestClient, ledger):
        response = _create(client, id="BVC-bad")
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "id"
        assert ledger.calls == []

    @pytest.mark.parametrize("path,params,field", [
        (BASE, {"page": "two"}, "page"),
        (BASE, {"page_size": "ten"}, "page_size"),
        (f"{BASE}/ids", {"page": "x"}, "page"),
        (f"{BASE}/counters/ETH/next", {}, "year"),
    ])
    def test_non_integer_parameters(self, client: TestClient, path, params, field):
        """Test unparseable integers are reported as 400 with the field."""
        response = client.get(path, params=params)
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == field

    def test_malformed_body(self, client: TestClient):
        response = client.post(BASE, json={"document": ["not", "an", "object"]})
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "document"
