"""Tests for web application functionality."""

import json
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from apps.web.main import app


class TestWebApp:
    """Test web application endpoints."""

    def setup_method(self):
        """Setup test fixtures."""
        self.client = TestClient(app)

    def test_health(self):
        """Should report the service as healthy."""
        response = self.client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestAnalyzeApi:
    """Test the build output analysis endpoint."""

    def setup_method(self):
        """Setup test fixtures."""
        self.client = TestClient(app)

    def test_analyze_success(self):
        """Should classify build errors."""
        response = self.client.post("/api/analyze", json={
            "stdout": "> webpack",
            "stderr": "Error: Cannot find module 'lodash'",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["error_count"] == 1
        assert data["errors_by_category"] == {"dependency_not_found": 1}
        assert data["errors"][0]["package"] == "lodash"
        assert data["errors"][0]["suggested_fix"] == {"type": "remove_lockfile", "lockfile": "package-lock.json"}

    def test_analyze_empty_output(self):
        """Should reject requests without output."""
        response = self.client.post("/api/analyze", json={"stdout": "", "stderr": "  "})

        assert response.status_code == 400
        assert "No build output" in response.json()["detail"]

    def test_analyze_noise_only(self):
        """Should return no errors for warning-only output."""
        response = self.client.post("/api/analyze", json={"stderr": "npm WARN deprecated request@2.88.2"})

        assert response.status_code == 200
        assert response.json()["errors"] == []


class TestScanApi:
    """Test the blocking dependency endpoint."""

    def setup_method(self):
        """Setup test fixtures."""
        self.client = TestClient(app)

    def test_scan_success(self, sample_package_json):
        """Should report blocking dependencies with replacements."""
        response = self.client.post("/api/scan", json={"content": sample_package_json, "arch": "x64"})

        assert response.status_code == 200
        data = response.json()
        assert data["has_blocking"] is True
        assert data["blocking"][0]["name"] == "node-sass"
        assert data["blocking"][0]["replacement"] == "sass"

    def test_scan_clean(self):
        """Should report nothing for safe manifests."""
        content = json.dumps({"dependencies": {"express": "^4.18.0"}})

        response = self.client.post("/api/scan", json={"content": content, "arch": "x64"})

        assert response.status_code == 200
        assert response.json() == {"blocking": [], "has_blocking": False}

    def test_scan_empty_content(self):
        """Should reject empty content."""
        response = self.client.post("/api/scan", json={"content": "   "})

        assert response.status_code == 400
        assert "No content provided" in response.json()["detail"]

    def test_scan_invalid_json(self):
        """Should reject content that is not a package.json object."""
        assert self.client.post("/api/scan", json={"content": "{broken"}).status_code == 400
        assert self.client.post("/api/scan", json={"content": "[1, 2]"}).status_code == 400

    def test_scan_internal_error(self):
        """Should map unexpected failures to 500."""
        with patch("apps.web.main.BlockingDependencyDetector") as mock_detector_class:
            mock_detector = AsyncMock()
            mock_detector_class.return_value = mock_detector
            mock_detector.detect.side_effect = RuntimeError("registry exploded")

            response = self.client.post("/api/scan", json={"content": '{"dependencies": {}}'})

        assert response.status_code == 500
        assert "registry exploded" in response.json()["detail"]

    def test_scan_never_fetches_request_urls(self):
        """Should not make outbound requests for archive URLs in the content."""
        content = json.dumps({"dependencies": {"internal": "http://169.254.169.254/archive/x.tar.gz"}})

        with patch("revive.blocking.httpx.AsyncClient") as mock_client_class:
            response = self.client.post("/api/scan", json={"content": content, "arch": "x64"})

        assert response.status_code == 200
        assert response.json() == {"blocking": [], "has_blocking": False}
        mock_client_class.assert_not_called()

    def test_scan_registry_dead_urls_still_flagged(self):
        """Should still report URLs the registry lists as dead."""
        content = json.dumps(
            {"dependencies": {"querystring": "https://github.com/substack/querystring/archive/0.2.0.tar.gz"}}
        )

        with patch("revive.blocking.httpx.AsyncClient") as mock_client_class:
            response = self.client.post("/api/scan", json={"content": content, "arch": "x64"})

        assert response.status_code == 200
        assert response.json()["blocking"][0]["reason"] == "dead_url"
        mock_client_class.assert_not_called()
