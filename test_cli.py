#!/usr/bin/env python3
"""
Tests for the command-line entry point.
"""

import logging
import os
import tempfile

import pytest
import yaml

from conftest import BASE_URL, FakeBackend
from src.config import TOKEN_ENV, Configuration
from src.chat_client.credentials import FileCredentialStore, InMemoryCredentialStore
from src.main import build_credentials, main, parse_args


@pytest.fixture
def config_path():
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "config.yaml")
        with open(path, "w") as f:
            yaml.dump({"api": {"base_url": BASE_URL}, "logging": {"level": "INFO"}}, f)
        yield path


def use_backend(monkeypatch, backend):
    monkeypatch.setattr(
        "src.chat_client.streaming.controller.build_http_client",
        lambda settings: backend.client(),
    )


def test_parse_args():
    args = parse_args(["hello", "--public", "--conversation-id", "4", "--temperature", "0.2"])

    assert args.message == "hello"
    assert args.public
    assert args.conversation_id == 4
    assert args.temperature == 0.2
    assert not args.rag


def test_memory_credentials_when_no_token_file(monkeypatch):
    monkeypatch.delenv(TOKEN_ENV, raising=False)
    credentials = build_credentials(Configuration.from_dict({}))

    assert isinstance(credentials, InMemoryCredentialStore)
    assert credentials.get_token() is None


def test_configured_token_file(monkeypatch):
    monkeypatch.delenv(TOKEN_ENV, raising=False)
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "token.json")
        FileCredentialStore(path).set_token("saved")
        config = Configuration.from_dict({"credentials": {"token_file": path}})

        credentials = build_credentials(config)

        assert isinstance(credentials, FileCredentialStore)
        assert credentials.get_token() == "saved"


def test_environment_token_is_not_written_to_disk(monkeypatch):
    monkeypatch.setenv(TOKEN_ENV, "jwt")
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "token.json")
        config = Configuration.from_dict({"credentials": {"token_file": path}})

        credentials = build_credentials(config)

        assert isinstance(credentials, InMemoryCredentialStore)
        assert credentials.get_token() == "jwt"
        assert not os.path.exists(path)


def test_completed_stream_exits_zero(monkeypatch, config_path, capsys):
    monkeypatch.delenv(TOKEN_ENV, raising=False)
    use_backend(monkeypatch, FakeBackend([
        b'event: token\ndata: Hello\n\nevent: done\ndata: {"conversation_id": 7}\n\n'
    ]))

    assert main(["hi", "--public", "--config", config_path]) == 0
    assert "Hello" in capsys.readouterr().out


def test_failed_stream_exits_nonzero_and_logs_failure(
    monkeypatch, config_path, capsys, caplog
):
    monkeypatch.delenv(TOKEN_ENV, raising=False)
    use_backend(monkeypatch, FakeBackend(status_code=500, json_body={"detail": "overloaded"}))
    caplog.set_level(logging.INFO)

    assert main(["hi", "--public", "--config", config_path]) == 1

    assert "Error: overloaded" in capsys.readouterr().err
    messages = [record.getMessage() for record in caplog.records]
    assert any("Operation failed" in m and "chat_stream" in m for m in messages)
    assert not any(
        "Operation completed successfully" in m and "chat_stream" in m for m in messages
    )
