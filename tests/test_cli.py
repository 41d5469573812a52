"""Summary: Tests for CLI command dispatch.

Importance: Ensures local workflows reach the same services as the API.
Alternatives: Exercise the CLI through subprocess calls.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from chatshare.ai import MockAiProvider
from chatshare.app import build_services
from chatshare.cli import _dispatch, build_parser
from chatshare.config import AppConfig
from chatshare.errors import NotFoundError


def _config(db_path: str) -> AppConfig:
    return AppConfig(
        db_path=db_path,
        ai_provider="mock",
        gemini_api_key=None,
        gemini_model="gemini-pro",
        gemini_base_url="https://generativelanguage.googleapis.com",
        openai_api_key=None,
        openai_model="gpt-4o-mini",
        ollama_url="http://localhost:11434",
        ollama_model="llama3",
        ai_timeout_seconds=5,
        api_host="127.0.0.1",
        api_port=8000,
        token_secret="secret",
    )


def test_cli_send_share_and_inbox(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Summary: Verify a user can chat and share from the command line.

    Importance: Covers the CLI path through the orchestrator and sharing service.
    Alternatives: Test only the HTTP API.
    """

    services = build_services(_config(str(tmp_path / "test.db")), ai_provider=MockAiProvider())
    parser = build_parser()
    _dispatch(parser.parse_args(["create-user", "alice@example.com", "--name", "Alice"]), services)
    _dispatch(parser.parse_args(["create-user", "bob@example.com"]), services)
    _dispatch(parser.parse_args(["send", "Hello", "--email", "alice@example.com"]), services)
    alice = services.users.get_user_by_email("alice@example.com")
    conversation = services.conversations.list_by_owner(alice.id)[0]
    reply = conversation.messages[1]
    _dispatch(
        parser.parse_args(
            ["share", conversation.id, reply.id, "bob@example.com", "--email", "alice@example.com"]
        ),
        services,
    )
    capsys.readouterr()
    _dispatch(parser.parse_args(["inbox", "--email", "bob@example.com"]), services)
    output = capsys.readouterr().out
    assert "from alice@example.com: [mock:chat] Hello" in output


def test_cli_unknown_user(tmp_path: Path) -> None:
    services = build_services(_config(str(tmp_path / "test.db")))
    parser = build_parser()
    with pytest.raises(NotFoundError):
        _dispatch(parser.parse_args(["list-chats", "--email", "ghost@example.com"]), services)


def test_cli_api_key_lifecycle(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Summary: Verify keys can be issued, listed, and revoked from the CLI.

    Importance: Revocation is the only way to cut off a leaked key.
    Alternatives: Manage keys with raw SQL.
    """

    services = build_services(_config(str(tmp_path / "test.db")))
    parser = build_parser()
    _dispatch(parser.parse_args(["create-user", "alice@example.com"]), services)
    _dispatch(
        parser.parse_args(["create-api-key", "alice@example.com", "--label", "laptop"]), services
    )
    alice = services.users.get_user_by_email("alice@example.com")
    key = services.api_keys.list_api_keys(alice.id)[0]
    capsys.readouterr()
    _dispatch(parser.parse_args(["list-api-keys", "alice@example.com"]), services)
    assert f"{key.id}: laptop" in capsys.readouterr().out
    _dispatch(parser.parse_args(["revoke-api-key", "alice@example.com", str(key.id)]), services)
    assert f"Revoked key {key.id}." in capsys.readouterr().out
    assert services.api_keys.list_api_keys(alice.id) == []


def test_build_services_logs_selected_model(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO, logger="chatshare.app")
    build_services(_config(str(tmp_path / "test.db")))
    assert "Using AI provider mock (mock)." in caplog.text
