from unittest.mock import MagicMock, Mock, patch

import httpx

from tiaen.services.gateway_service import EvolutionGateway


def _gateway(**kwargs):
    defaults = dict(base_url="http://evolution:8080/", api_key="evo-key", default_instance="main")
    defaults.update(kwargs)
    return EvolutionGateway(**defaults)


class TestEvolutionGateway:
    @patch("tiaen.services.gateway_service.httpx.Client")
    def test_sends_text(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.return_value = Mock(status_code=201, json=Mock(return_value={"key": {"id": "3EB0"}}))

        result = _gateway().send_text("tiaen", "5511", "Olá")

        assert result.success is True
        assert result.message_id == "3EB0"
        args, kwargs = mock_client.post.call_args
        assert args[0] == "http://evolution:8080/message/sendText/tiaen"
        assert kwargs["json"] == {"number": "5511", "text": "Olá"}
        assert kwargs["headers"]["apikey"] == "evo-key"

    @patch("tiaen.services.gateway_service.httpx.Client")
    def test_uses_default_instance(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.return_value = Mock(status_code=200, json=Mock(return_value={}))

        _gateway().send_text(None, "5511", "Olá")

        assert mock_client.post.call_args[0][0].endswith("/message/sendText/main")

    @patch("tiaen.services.gateway_service.alert_critical")
    @patch("tiaen.services.gateway_service.httpx.Client")
    def test_http_error_is_failure(self, mock_client_class, mock_alert):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.return_value = Mock(status_code=500, text="boom")

        result = _gateway().send_text("main", "5511", "Olá")

        assert result.success is False
        assert "500" in result.error
        mock_alert.assert_called_once()

    @patch("tiaen.services.gateway_service.alert_critical")
    @patch("tiaen.services.gateway_service.httpx.Client")
    def test_timeout_is_failure(self, mock_client_class, mock_alert):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.side_effect = httpx.ConnectTimeout("timeout")

        result = _gateway().send_text("main", "5511", "Olá")

        assert result.success is False
        assert "ConnectTimeout" in result.error

    @patch("tiaen.services.gateway_service.alert_critical")
    def test_missing_api_key(self, mock_alert):
        result = _gateway(api_key=None).send_text("main", "5511", "Olá")

        assert result.success is False
        assert result.error == "missing_evolution_api_key"
