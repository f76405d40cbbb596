from unittest.mock import MagicMock, Mock, patch

import httpx

from tiaen.services.alert_service import alert_critical, format_alert, send_alert


class TestSendAlert:
    @patch("tiaen.services.alert_service.settings")
    def test_returns_false_when_not_configured(self, mock_settings):
        mock_settings.alert_bot_token = None
        mock_settings.alert_chat_id = None
        assert send_alert("ERROR", "Test message") is False

    @patch("tiaen.services.alert_service.settings")
    @patch("tiaen.services.alert_service.httpx.Client")
    def test_sends_alert_to_telegram(self, mock_client_class, mock_settings):
        mock_settings.alert_bot_token = "test-token"
        mock_settings.alert_chat_id = "test-chat"
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.return_value = Mock(status_code=200)

        assert alert_critical("WhatsApp send failed", {"phone": "5511"}) is True

        call_args = mock_client.post.call_args
        assert "api.telegram.org/bottest-token" in call_args[0][0]
        json_data = call_args[1]["json"]
        assert json_data["chat_id"] == "test-chat"
        assert "CRITICAL" in json_data["text"]
        assert "phone: 5511" in json_data["text"]

    @patch("tiaen.services.alert_service.settings")
    @patch("tiaen.services.alert_service.httpx.Client")
    def test_returns_false_on_transport_error(self, mock_client_class, mock_settings):
        mock_settings.alert_bot_token = "test-token"
        mock_settings.alert_chat_id = "test-chat"
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.side_effect = httpx.ConnectError("down")

        assert send_alert("ERROR", "boom") is False


class TestFormatAlert:
    def test_without_context(self):
        text = format_alert("WARNING", "Webhook secret not configured")
        assert "WARNING" in text
        assert "Webhook secret not configured" in text
        assert "```" not in text
