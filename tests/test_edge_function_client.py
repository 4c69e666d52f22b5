"""Unit tests for the edge functions client."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from bodyscan_api.services.edge_functions import EdgeFunctionClient, EdgeFunctionResponse


class TestEdgeFunctionClient:
    """Tests for EdgeFunctionClient."""

    @pytest.fixture
    def client(self):
        """Create a test client."""
        return EdgeFunctionClient(
            base_url="http://localhost:54321/",
            api_key="test-key",
            timeout=10.0,
        )

    def _mock_http(self, response=None, side_effect=None):
        mock_http_client = MagicMock()
        mock_http_client.request = AsyncMock(return_value=response, side_effect=side_effect)
        return mock_http_client

    def test_base_url_is_normalized(self, client):
        assert client.base_url == "http://localhost:54321"

    @pytest.mark.asyncio
    async def test_invoke_success(self, client):
        """Test a JSON response is returned as data."""
        mock_http_client = self._mock_http(httpx.Response(200, json={"success": True, "value": 3}))

        with patch.object(client, "_get_client") as mock_get_client:
            mock_get_client.return_value = mock_http_client

            result = await client.invoke("scan-estimate", {"user_id": "user_123"})

        assert result == EdgeFunctionResponse(data={"success": True, "value": 3})
        mock_http_client.request.assert_called_once_with(
            "POST",
            "/functions/v1/scan-estimate",
            params=None,
            json={"user_id": "user_123"},
        )

    @pytest.mark.asyncio
    async def test_invoke_sends_content_verbatim(self, client):
        """Test pre-serialized bytes are sent unchanged."""
        body = b'{"clientScanId":"scan-7f3a"}'
        mock_http_client = self._mock_http(httpx.Response(200, json={"scan_id": "srv-1"}))

        with patch.object(client, "_get_client") as mock_get_client:
            mock_get_client.return_value = mock_http_client

            await client.invoke("scan-commit", content=body)

        call = mock_http_client.request.call_args
        assert call.kwargs["content"] is body
        assert call.kwargs["headers"] == {"Content-Type": "application/json"}
        assert "json" not in call.kwargs

    @pytest.mark.asyncio
    async def test_invoke_get_with_params(self, client):
        mock_http_client = self._mock_http(httpx.Response(200, json={"masculine": {}}))

        with patch.object(client, "_get_client") as mock_get_client:
            mock_get_client.return_value = mock_http_client

            await client.invoke("morphology-mapping", method="GET", params={"version": "v1.0"})

        mock_http_client.request.assert_called_once_with(
            "GET", "/functions/v1/morphology-mapping", params={"version": "v1.0"}
        )

    @pytest.mark.asyncio
    async def test_invoke_empty_body(self, client):
        """Test an empty 2xx body yields neither data nor error."""
        mock_http_client = self._mock_http(httpx.Response(204))

        with patch.object(client, "_get_client") as mock_get_client:
            mock_get_client.return_value = mock_http_client

            result = await client.invoke("scan-commit", content=b"{}")

        assert result.data is None
        assert result.error is None

    @pytest.mark.asyncio
    async def test_invoke_error_status(self, client):
        """Test an error status is returned in the error field."""
        mock_http_client = self._mock_http(
            httpx.Response(409, json={"error": "duplicate clientScanId"})
        )

        with patch.object(client, "_get_client") as mock_get_client:
            mock_get_client.return_value = mock_http_client

            result = await client.invoke("scan-commit", content=b"{}")

        assert result.data is None
        assert result.error == {"message": "duplicate clientScanId", "status": 409}
        assert result.error_message == "duplicate clientScanId"

    @pytest.mark.asyncio
    async def test_invoke_error_status_without_body(self, client):
        mock_http_client = self._mock_http(httpx.Response(503))

        with patch.object(client, "_get_client") as mock_get_client:
            mock_get_client.return_value = mock_http_client

            result = await client.invoke("scan-match", {})

        assert result.error == {"message": "Service Unavailable", "status": 503}

    @pytest.mark.asyncio
    async def test_invoke_transport_error(self, client):
        """Test transport failures are reported with no status."""
        mock_http_client = self._mock_http(side_effect=httpx.ConnectError("Connection refused"))

        with patch.object(client, "_get_client") as mock_get_client:
            mock_get_client.return_value = mock_http_client

            result = await client.invoke("scan-semantic", {})

        assert result.error == {"message": "Connection refused", "status": None}

    @pytest.mark.asyncio
    async def test_invoke_invalid_json(self, client):
        mock_http_client = self._mock_http(httpx.Response(200, content=b"<html>oops</html>"))

        with patch.object(client, "_get_client") as mock_get_client:
            mock_get_client.return_value = mock_http_client

            result = await client.invoke("scan-refine-morphs", {})

        assert result.error["status"] == 200
        assert result.error_message.startswith("Invalid JSON response from scan-refine-morphs")

    @pytest.mark.asyncio
    async def test_client_sends_auth_headers(self, client):
        http_client = await client._get_client()
        try:
            assert http_client.headers["Authorization"] == "Bearer test-key"
            assert http_client.headers["apikey"] == "test-key"
        finally:
            await client.close()

        assert client._client is None
