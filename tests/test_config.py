"""Tests for environment configuration and runtime client selection."""

import pytest

from dockside.clients.cli import CliClient
from dockside.clients.detect import ContainerRuntime
from dockside.clients.http import HttpClient
from dockside.config import Settings, default_client, get_settings, reset_settings
from dockside.exceptions import DocksideConfigError
from dockside.models import CleanupPolicy


def test_defaults():
    settings = Settings()
    assert settings.cleanup is CleanupPolicy.REMOVE
    assert settings.runtime == "auto"
    assert settings.docker_socket == "/var/run/docker.sock"
    assert settings.http_timeout == 60.0
    assert not settings.keep_containers


def test_keep_from_environment(monkeypatch):
    monkeypatch.setenv("DOCKSIDE_CLEANUP", " KEEP ")
    settings = Settings()
    assert settings.cleanup is CleanupPolicy.KEEP
    assert settings.keep_containers


@pytest.mark.parametrize(
    "name,value",
    [
        ("DOCKSIDE_CLEANUP", "purge"),
        ("DOCKSIDE_RUNTIME", "containerd"),
        ("DOCKSIDE_HTTP_TIMEOUT", "soon"),
    ],
)
def test_invalid_values_rejected(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(DocksideConfigError) as excinfo:
        Settings()
    assert excinfo.value.details["value"].strip() == value


def test_get_settings_cached_until_reset(monkeypatch):
    first = get_settings()
    monkeypatch.setenv("DOCKSIDE_CLEANUP", "keep")

    assert get_settings() is first
    reset_settings()
    assert get_settings().cleanup is CleanupPolicy.KEEP


def test_default_client_auto_is_cli():
    client = default_client()
    assert isinstance(client, CliClient)


def test_default_client_forced_runtime(monkeypatch):
    monkeypatch.setenv("DOCKSIDE_RUNTIME", "podman")
    client = default_client(Settings())
    assert isinstance(client, CliClient)
    assert client.runtime is ContainerRuntime.PODMAN


def test_default_client_http(monkeypatch):
    monkeypatch.setenv("DOCKSIDE_RUNTIME", "http")
    monkeypatch.setenv("DOCKSIDE_DOCKER_SOCKET", "/tmp/engine.sock")
    monkeypatch.setenv("DOCKSIDE_HTTP_TIMEOUT", "5")
    client = default_client(Settings())
    assert isinstance(client, HttpClient)
    assert client._socket_path == "/tmp/engine.sock"
    assert client._timeout == 5.0
