"""Tests for the Stibee client request handling."""

from unittest.mock import AsyncMock, patch

import pytest

from morning_letter.clients.stibee import StibeeClient
from morning_letter.core.errors import ExternalApiError


@pytest.fixture
def client(mock_settings):
    return StibeeClient(mock_settings)


@pytest.mark.asyncio
async def test_create_and_send_email(client):
    request = AsyncMock(
        side_effect=[
            (200, {"Ok": True, "Value": {"id": 987}}),
            (200, {"Ok": True}),
        ]
    )
    with patch.object(client, "_request", request):
        email_id = await client.create_and_send_email("Subject", "<p>Hi</p>", "Preview")

    assert email_id == "987"
    create_call, send_call = request.await_args_list
    payload = create_call.args[2]
    assert payload["listId"] == 12345
    assert payload["senderEmail"] == "letter@example.com"
    assert send_call.args[1].endswith("/emails/987/send")


@pytest.mark.asyncio
async def test_send_failure_raises_after_create(client):
    request = AsyncMock(
        side_effect=[
            (200, {"Ok": True, "Value": {"id": 1}}),
            (400, {"Ok": False, "Error": {"Message": "quota exceeded"}}),
        ]
    )
    with patch.object(client, "_request", request):
        with pytest.raises(ExternalApiError) as exc_info:
            await client.create_and_send_email("Subject", "<p>Hi</p>")

    assert "quota exceeded" in exc_info.value.message


@pytest.mark.asyncio
async def test_auto_email_posts_subscriber_and_variables(client):
    request = AsyncMock(return_value=(200, "ok"))
    with patch.object(client, "_request", request):
        assert await client.send_auto_email("a@example.com", {"title": "T"}) is True

    method, url, payload = request.await_args.args
    assert (method, url) == ("POST", "https://stibee.example.com/auto")
    assert payload == {"subscriber": "a@example.com", "title": "T"}


@pytest.mark.asyncio
async def test_auto_email_failures_return_false(client):
    with patch.object(client, "_request", AsyncMock(return_value=(500, "err"))):
        assert await client.send_auto_email("a@example.com") is False
    with patch.object(
        client, "_request", AsyncMock(side_effect=ExternalApiError("Stibee", "timeout"))
    ):
        assert await client.send_auto_email("a@example.com") is False


@pytest.mark.asyncio
async def test_unconfigured_list_calls_are_skipped(mock_settings):
    client = StibeeClient(mock_settings.model_copy(update={"stibee_api_key": None}))
    with patch.object(client, "_request", AsyncMock()) as request:
        result = await client.add_subscribers([{"email": "a@example.com"}])
        assert await client.delete_subscriber("a@example.com") is True
        assert await client.get_subscribers() == []

    assert result["success"] == [{"email": "a@example.com"}]
    request.assert_not_awaited()


@pytest.mark.asyncio
async def test_delete_subscriber_quotes_email(client):
    with patch.object(client, "_request", AsyncMock(return_value=(200, {"Ok": True}))) as request:
        assert await client.delete_subscriber("a+b@example.com") is True

    assert request.await_args.args[1].endswith("/lists/12345/subscribers/a%2Bb%40example.com")
