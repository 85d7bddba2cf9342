"""
Unit tests for the App Store HTTP client.
"""

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from crawler.app_store_client import LOOKUP_URL, AppStoreClient, listing_url, validate_target


def _mock_response(json_data=None, text="", status_error=None):
    response = MagicMock()
    response.json.return_value = json_data
    response.text = text
    if status_error is not None:
        response.raise_for_status.side_effect = status_error
    return response


class TestTargetHelpers:
    """Test cases for target validation and URL building."""

    def test_validate_target_normalizes(self):
        assert validate_target("id1190307500", "VN") == ("1190307500", "vn")

    @pytest.mark.parametrize("app_id,country", [
        ("abc", "vn"),
        ("", "vn"),
        ("123", "vnm"),
        ("123", ""),
    ])
    def test_validate_target_rejects(self, app_id, country):
        with pytest.raises(ValueError):
            validate_target(app_id, country)

    def test_listing_url(self):
        assert listing_url("1190307500", "vn") == "https://apps.apple.com/vn/app/id1190307500"
        assert listing_url("1190307500", "vn", "vi") == "https://apps.apple.com/vn/app/id1190307500?l=vi"


class TestFetchLookup:
    """Test cases for the iTunes lookup call."""

    @pytest.mark.asyncio
    async def test_success(self, tracker_config, sample_lookup_payload):
        client = AppStoreClient(tracker_config)

        with patch('httpx.AsyncClient') as mock_client:
            mock_client_instance = AsyncMock()
            mock_client_instance.get.return_value = _mock_response(sample_lookup_payload)
            mock_client.return_value.__aenter__.return_value = mock_client_instance

            result = await client.fetch_lookup("1190307500", "vn")

            assert result.ok
            assert result.value.version == "1.9.4"
            assert result.value.track_name == "Dynamons World"
            mock_client_instance.get.assert_called_once_with(
                LOOKUP_URL, params={"id": "1190307500", "country": "vn"}
            )
            mock_client.assert_called_once_with(timeout=tracker_config.lookup_timeout)

    @pytest.mark.asyncio
    async def test_empty_results(self, tracker_config):
        client = AppStoreClient(tracker_config)

        with patch('httpx.AsyncClient') as mock_client:
            mock_client_instance = AsyncMock()
            mock_client_instance.get.return_value = _mock_response({"resultCount": 0, "results": []})
            mock_client.return_value.__aenter__.return_value = mock_client_instance

            result = await client.fetch_lookup("1190307500", "vn")

            assert not result.ok
            assert result.value is None
            assert result.error == "lookup returned no results"

    @pytest.mark.asyncio
    async def test_http_error_is_absent(self, tracker_config):
        client = AppStoreClient(tracker_config)
        error = httpx.HTTPStatusError("Server error", request=MagicMock(), response=MagicMock())

        with patch('httpx.AsyncClient') as mock_client:
            mock_client_instance = AsyncMock()
            mock_client_instance.get.return_value = _mock_response(status_error=error)
            mock_client.return_value.__aenter__.return_value = mock_client_instance

            result = await client.fetch_lookup("1190307500", "vn")

            assert not result.ok
            assert "lookup failed" in result.error

    @pytest.mark.asyncio
    async def test_timeout_is_absent(self, tracker_config):
        client = AppStoreClient(tracker_config)

        with patch('httpx.AsyncClient') as mock_client:
            mock_client_instance = AsyncMock()
            mock_client_instance.get.side_effect = httpx.ReadTimeout("timed out")
            mock_client.return_value.__aenter__.return_value = mock_client_instance

            result = await client.fetch_lookup("1190307500", "vn")

            assert not result.ok
            # Single attempt, no retries
            assert mock_client_instance.get.call_count == 1

    @pytest.mark.asyncio
    async def test_malformed_json_is_absent(self, tracker_config):
        client = AppStoreClient(tracker_config)
        response = _mock_response()
        response.json.side_effect = ValueError("not json")

        with patch('httpx.AsyncClient') as mock_client:
            mock_client_instance = AsyncMock()
            mock_client_instance.get.return_value = response
            mock_client.return_value.__aenter__.return_value = mock_client_instance

            result = await client.fetch_lookup("1190307500", "vn")

            assert not result.ok

    @pytest.mark.asyncio
    async def test_malformed_record_is_absent(self, tracker_config):
        client = AppStoreClient(tracker_config)

        with patch('httpx.AsyncClient') as mock_client:
            mock_client_instance = AsyncMock()
            mock_client_instance.get.return_value = _mock_response(
                {"resultCount": 1, "results": [{"trackName": "X", "version": 2}]}
            )
            mock_client.return_value.__aenter__.return_value = mock_client_instance

            result = await client.fetch_lookup("1190307500", "vn")

            assert result.ok is False
            assert result.value is None
            assert "malformed" in result.error

    @pytest.mark.asyncio
    async def test_invalid_target_raises(self, tracker_config):
        client = AppStoreClient(tracker_config)

        with pytest.raises(ValueError):
            await client.fetch_lookup("not-an-id", "vn")


class TestFetchListing:
    """Test cases for the listing page fetch."""

    @pytest.mark.asyncio
    async def test_success_uses_language_headers(self, tracker_config, whats_new_html):
        client = AppStoreClient(tracker_config)

        with patch('httpx.AsyncClient') as mock_client:
            mock_client_instance = AsyncMock()
            mock_client_instance.get.return_value = _mock_response(text=whats_new_html)
            mock_client.return_value.__aenter__.return_value = mock_client_instance

            result = await client.fetch_listing("1190307500", "vn", "vi")

            assert result.ok
            assert result.value == whats_new_html
            mock_client_instance.get.assert_called_once_with(
                "https://apps.apple.com/vn/app/id1190307500?l=vi"
            )
            kwargs = mock_client.call_args.kwargs
            assert kwargs["timeout"] == tracker_config.page_timeout
            assert kwargs["follow_redirects"] is True
            assert kwargs["headers"]["Accept-Language"].startswith("vi,")
            assert "Chrome" in kwargs["headers"]["User-Agent"]

    @pytest.mark.asyncio
    async def test_connection_error_is_absent(self, tracker_config):
        client = AppStoreClient(tracker_config)

        with patch('httpx.AsyncClient') as mock_client:
            mock_client_instance = AsyncMock()
            mock_client_instance.get.side_effect = httpx.ConnectError("Connection failed")
            mock_client.return_value.__aenter__.return_value = mock_client_instance

            result = await client.fetch_listing("1190307500", "us", "en")

            assert not result.ok
            assert result.value is None
            assert "listing fetch failed" in result.error
