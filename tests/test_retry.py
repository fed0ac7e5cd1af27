"""
Tests for RetryingClient.
"""

import pytest

from http_pipeline import RetryingClient
from http_pipeline.exceptions import RetryExhausted
from http_pipeline.transport import MockTransport, SyncResult


@pytest.fixture
def retrying_client(mock_transport):
    return RetryingClient(transport=mock_transport, env_lookup={}.get)


class TestRetryingClient:
    """Test response-driven retries."""

    @pytest.mark.asyncio
    async def test_retries_until_success(self, retrying_client, mock_transport) -> None:
        for status in (429, 429, 200):
            mock_transport.add_response(SyncResult(status))

        response = await retrying_client.get_or_raise("example.com", params={"a": 1})

        assert response.status_code == 200
        assert response.request.options["try_count"] == 3
        assert len(mock_transport.calls) == 3
        assert [call.url for call in mock_transport.calls] == ["http://example.com?a=1"] * 3

    @pytest.mark.asyncio
    async def test_exhausted(self, retrying_client, mock_transport) -> None:
        for _ in range(3):
            mock_transport.add_response(SyncResult(429))

        result = await retrying_client.get("example.com")

        assert isinstance(result.error, RetryExhausted)
        assert str(result.error) == "too many tries [3 of 3]"
        assert len(mock_transport.calls) == 3

    @pytest.mark.asyncio
    async def test_per_request_bound(self, retrying_client, mock_transport) -> None:
        mock_transport.add_response(SyncResult(429))

        with pytest.raises(RetryExhausted) as exc_info:
            await retrying_client.get_or_raise("example.com", options={"max_tries": 1})

        assert exc_info.value.attempts == 1
        assert mock_transport.pending == 0

    @pytest.mark.asyncio
    async def test_other_statuses_are_returned(self, retrying_client, mock_transport) -> None:
        mock_transport.add_response(SyncResult(500))

        response = await retrying_client.get_or_raise("example.com")

        assert response.status_code == 500
        assert response.request.options["try_count"] == 1

    @pytest.mark.asyncio
    async def test_custom_statuses(self, mock_transport) -> None:
        client = RetryingClient(
            transport=mock_transport, env_lookup={}.get, max_tries=5, retry_statuses=[503]
        )
        for status in (503, 503, 503, 204):
            mock_transport.add_response(SyncResult(status))

        response = await client.get_or_raise("example.com")

        assert response.status_code == 204
        assert response.request.options["try_count"] == 4
