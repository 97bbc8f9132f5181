"""
Unit tests for server reply formats.
"""

import pytest

from linechat.protocol.responses import (
    DISCONNECT_NOTICE,
    INVALID_COMMAND_REPLY,
    LIST_HEADER,
    ROOM_FULL_NOTICE,
    ServerResponse,
    StatusClass,
    classify_reply,
)


class TestServerResponse:
    """Tests for the reply table."""

    def test_register_formats(self):
        assert ServerResponse.REGISTER.success("alice") == "200 ok alice successfully registerred"
        assert ServerResponse.REGISTER.error("alice") == "100 err alice already taken!"

    def test_send_to_formats(self):
        assert ServerResponse.SEND_TO.success("bob") == "200 ok message to bob sent successfully."
        assert ServerResponse.SEND_TO.error("ghost") == "100 err ghost does not exists!"

    def test_invalid_command(self):
        assert INVALID_COMMAND_REPLY == "404 Invalid command!"

    def test_missing_format_raises(self):
        with pytest.raises(ValueError):
            ServerResponse.INVALID_COMMAND.success()
        with pytest.raises(ValueError):
            ServerResponse.LIST.error()

    def test_patterns_match_formats(self):
        """Every format is recognised by its own pattern."""
        for response in (ServerResponse.REGISTER, ServerResponse.SEND_TO):
            assert response.is_success(response.success("carol"))
            assert response.is_error(response.error("carol"))
            assert not response.is_success(response.error("carol"))

    def test_register_patterns_distinct(self):
        line = ServerResponse.SEND_TO.success("bob")

        assert not ServerResponse.REGISTER.is_success(line)


class TestClassifyReply:
    """Tests for classify_reply()."""

    @pytest.mark.parametrize("line,status", [
        ("200 ok alice successfully registerred", StatusClass.SUCCESS),
        ("200 ok message to bob sent successfully.", StatusClass.SUCCESS),
        (LIST_HEADER, StatusClass.SUCCESS),
        (DISCONNECT_NOTICE, StatusClass.SUCCESS),
        ("100 err alice already taken!", StatusClass.ERROR),
        ("100 err ghost does not exists!", StatusClass.ERROR),
        ("404 Invalid command!", StatusClass.ERROR),
        ("300 msg_fromalicehello", StatusClass.INFO),
        (ROOM_FULL_NOTICE, StatusClass.INFO),
        ("alice", StatusClass.INFO),
    ])
    def test_classification(self, line, status):
        response = classify_reply(line)

        assert response.status is status
        assert str(response) == line
