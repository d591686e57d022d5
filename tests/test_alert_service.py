import asyncio
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import httpx

from kf_relay.config import Settings
from kf_relay.services.alert_service import alert_error, send_alert

CONFIGURED = Settings(_env_file=None, alert_bot_token="test-token", alert_chat_id="test-chat")
UNCONFIGURED = Settings(_env_file=None, alert_bot_token=None, alert_chat_id=None)


def _client(mock_client_class, status_code=200):
    client = MagicMock()
    client.post = AsyncMock(return_value=Mock(status_code=status_code))
    mock_client_class.return_value.__aenter__.return_value = client
    return client


class TestSendAlert:
    def test_returns_false_when_not_configured(self):
        assert asyncio.run(send_alert("ERROR", "Test message", settings=UNCONFIGURED)) is False

    @patch("kf_relay.services.alert_service.httpx.AsyncClient")
    def test_sends_alert_to_telegram(self, mock_client_class):
        client = _client(mock_client_class)

        result = asyncio.run(send_alert("ERROR", "Test error message", settings=CONFIGURED))

        assert result is True
        client.post.assert_awaited_once()
        call_args = client.post.await_args
        assert "api.telegram.org/bottest-token" in call_args.args[0]
        json_data = call_args.kwargs["json"]
        assert json_data["chat_id"] == "test-chat"
        assert "ERROR" in json_data["text"]

    @patch("kf_relay.services.alert_service.httpx.AsyncClient")
    def test_includes_context_in_message(self, mock_client_class):
        client = _client(mock_client_class)
        asyncio.run(send_alert("ERROR", "Test message", {"call_id": "sig-1"}, settings=CONFIGURED))
        text = client.post.await_args.kwargs["json"]["text"]
        assert "call_id" in text
        assert "sig-1" in text

    @patch("kf_relay.services.alert_service.httpx.AsyncClient")
    def test_returns_false_on_telegram_error(self, mock_client_class):
        _client(mock_client_class, status_code=400)
        assert asyncio.run(send_alert("ERROR", "Test message", settings=CONFIGURED)) is False

    @patch("kf_relay.services.alert_service.httpx.AsyncClient")
    def test_returns_false_on_network_error(self, mock_client_class):
        client = _client(mock_client_class)
        client.post.side_effect = httpx.ConnectError("Network error")
        assert asyncio.run(send_alert("ERROR", "Test message", settings=CONFIGURED)) is False


class TestShortcuts:
    @patch("kf_relay.services.alert_service.send_alert", new_callable=AsyncMock)
    def test_alert_error(self, mock_send):
        mock_send.return_value = True
        assert asyncio.run(alert_error("boom", {"k": "v"})) is True
        mock_send.assert_awaited_once_with("ERROR", "boom", {"k": "v"}, None)
