"""Tests for the bark push client."""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from submanager.bark import (
    BarkOptions,
    build_push_url,
    send_bark_notification,
    send_test_push,
    validate_bark_config,
)


def _response(payload=None, status_error=None):
    response = MagicMock()
    if status_error:
        response.raise_for_status.side_effect = status_error
    else:
        response.raise_for_status = MagicMock()
    response.json.return_value = payload if payload is not None else {"code": 200, "message": "success"}
    return response


class TestBuildPushUrl:
    def test_encodes_title_and_body(self):
        url = build_push_url("https://api.day.app/", "KEY", "Subscription Manager", "Netflix expires\n$1/month")
        assert url == (
            "https://api.day.app/KEY/Subscription%20Manager/"
            "Netflix%20expires%0A%241%2Fmonth"
        )


class TestSendBarkNotification:
    @patch("submanager.bark.httpx")
    def test_success(self, mock_httpx):
        mock_httpx.get.return_value = _response()
        result = send_bark_notification(
            "https://api.day.app", "KEY", "Title", "Body",
            BarkOptions(sound="bell", group="Subscription Manager", icon="https://x/icon.png"),
        )
        assert result is True
        args, kwargs = mock_httpx.get.call_args
        assert args[0] == "https://api.day.app/KEY/Title/Body"
        assert kwargs["params"] == {
            "sound": "bell",
            "group": "Subscription Manager",
            "icon": "https://x/icon.png",
        }
        assert kwargs["timeout"] == 10.0

    @patch("submanager.bark.httpx")
    def test_empty_options_sends_no_params(self, mock_httpx):
        mock_httpx.get.return_value = _response()
        send_bark_notification("https://api.day.app", "KEY", "T", "B")
        assert mock_httpx.get.call_args[1]["params"] == {}

    @patch("submanager.bark.httpx")
    def test_rejected_code(self, mock_httpx):
        mock_httpx.get.return_value = _response({"code": 400, "message": "failed to get device token"})
        assert send_bark_notification("https://api.day.app", "KEY", "T", "B") is False

    @patch("submanager.bark.httpx")
    def test_http_error(self, mock_httpx):
        mock_httpx.get.return_value = _response(status_error=Exception("500 Server Error"))
        assert send_bark_notification("https://api.day.app", "KEY", "T", "B") is False

    @patch("submanager.bark.httpx")
    def test_network_error(self, mock_httpx):
        mock_httpx.get.side_effect = httpx.ConnectError("unreachable")
        assert send_bark_notification("https://api.day.app", "KEY", "T", "B") is False

    @patch("submanager.bark.httpx")
    def test_non_json_response(self, mock_httpx):
        response = _response()
        response.json.side_effect = ValueError("not json")
        mock_httpx.get.return_value = response
        assert send_bark_notification("https://api.day.app", "KEY", "T", "B") is False

    @patch("submanager.bark.httpx")
    def test_missing_credentials(self, mock_httpx):
        assert send_bark_notification("", "KEY", "T", "B") is False
        assert send_bark_notification("https://api.day.app", "", "T", "B") is False
        mock_httpx.get.assert_not_called()


class TestSendTestPush:
    @patch("submanager.bark.httpx")
    def test_sends_test_message(self, mock_httpx):
        mock_httpx.get.return_value = _response()
        assert send_test_push("https://api.day.app", "KEY") is True
        args, kwargs = mock_httpx.get.call_args
        assert args[0].startswith("https://api.day.app/KEY/Test%20Notification/")
        assert kwargs["params"] == {"sound": "bell", "group": "Subscription Manager"}


class TestValidateBarkConfig:
    def test_valid(self):
        assert validate_bark_config("https://api.day.app", "abc_DEF-123") is None

    @pytest.mark.parametrize("server_url,device_key,expected", [
        ("", "key", "Server URL is required"),
        ("https://api.day.app", "", "Device Key is required"),
        ("not a url", "key", "Invalid Server URL format"),
        ("https://api.day.app", "bad key!", "Device Key should only contain letters, numbers, - and _"),
    ])
    def test_invalid(self, server_url, device_key, expected):
        assert validate_bark_config(server_url, device_key) == expected
