"""Unit tests for the ``python -m carouselpub`` entry-point.

The Graph API client is replaced by a :class:`~unittest.mock.MagicMock`
through ``carouselpub.__main__._build_client``; pacing and processing waits
are zeroed through the environment so the saga runs instantly.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

import carouselpub.__main__ as cli
from carouselpub.core.exceptions import GraphApiError
from carouselpub.core.models import ContainerStatus, PublishedMedia, RemoteContainerRef

__all__: list[str] = []

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def configured_env(monkeypatch: pytest.MonkeyPatch, clean_env: None) -> None:
    monkeypatch.setenv("INSTAGRAM_ACCOUNT_ID", "1784")
    monkeypatch.setenv("INSTAGRAM_ACCESS_TOKEN", "EAAG-token")
    for name in (
        "PACING_BASE_MS",
        "PACING_INCREMENT_MS",
        "PROCESSING_WAIT_BASE_MS",
        "PROCESSING_WAIT_PER_ITEM_MS",
    ):
        monkeypatch.setenv(name, "0")


def _fake_client(**methods: Any) -> MagicMock:
    client = MagicMock()
    client.__aenter__.return_value = client
    client.__aexit__.return_value = None
    for name, value in methods.items():
        setattr(client, name, value)
    return client


def _install(monkeypatch: pytest.MonkeyPatch, client: MagicMock) -> None:
    monkeypatch.setattr(cli, "_build_client", lambda settings: client)


def _publishing_client(**overrides: Any) -> MagicMock:
    methods: dict[str, Any] = {
        "create_container": AsyncMock(
            side_effect=[RemoteContainerRef(id=f"c{i}") for i in range(1, 11)]
        ),
        "create_carousel_container": AsyncMock(return_value=RemoteContainerRef(id="car")),
        "publish": AsyncMock(return_value=PublishedMedia(id="m1")),
        "get_permalink": AsyncMock(return_value="https://www.instagram.com/p/abc/"),
    }
    methods.update(overrides)
    return _fake_client(**methods)


# ===========================================================================
# publish
# ===========================================================================


class TestPublishCommand:
    def test_success_prints_result(
        self,
        monkeypatch: pytest.MonkeyPatch,
        configured_env: None,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        client = _publishing_client()
        _install(monkeypatch, client)

        code = cli.main(
            [
                "publish",
                "--image", "https://cdn.example.com/1.jpg",
                "--video", "https://cdn.example.com/2.mp4",
                "--image", "https://cdn.example.com/3.jpg",
                "--caption", "Hello",
            ]
        )

        assert code == cli.EXIT_OK
        out = json.loads(capsys.readouterr().out)
        assert out["media_id"] == "m1"
        assert out["permalink"] == "https://www.instagram.com/p/abc/"
        assert out["child_container_ids"] == ["c1", "c2", "c3"]

        calls = client.create_container.await_args_list
        assert [c.args[2] for c in calls] == [
            "https://cdn.example.com/1.jpg",
            "https://cdn.example.com/2.mp4",
            "https://cdn.example.com/3.jpg",
        ]
        assert [c.kwargs["is_video"] for c in calls] == [False, True, False]
        client.create_carousel_container.assert_awaited_once_with(
            "1784", "EAAG-token", ["c1", "c2", "c3"], "Hello"
        )

    def test_missing_credentials_exit_1(
        self,
        monkeypatch: pytest.MonkeyPatch,
        clean_env: None,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        _install(monkeypatch, _publishing_client())
        code = cli.main(
            ["publish", "--image", "https://cdn/1.jpg", "--image", "https://cdn/2.jpg"]
        )
        assert code == cli.EXIT_CONFIG
        assert "INSTAGRAM_ACCOUNT_ID" in capsys.readouterr().err

    def test_publish_failure_exit_2_with_orphans(
        self,
        monkeypatch: pytest.MonkeyPatch,
        configured_env: None,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        client = _publishing_client(
            publish=AsyncMock(side_effect=GraphApiError("expired", status_code=400, code=190))
        )
        _install(monkeypatch, client)

        code = cli.main(
            ["publish", "--image", "https://cdn/1.jpg", "--image", "https://cdn/2.jpg"]
        )

        assert code == cli.EXIT_FAILURE
        err = capsys.readouterr().err
        assert "expired_auth" in err
        assert "reconnect" in err.lower()
        assert "c1, c2, car" in err
        client.publish.assert_awaited_once()

    def test_dry_run_makes_no_calls(
        self,
        monkeypatch: pytest.MonkeyPatch,
        clean_env: None,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        def _no_client(settings: Any) -> MagicMock:
            raise AssertionError("dry run must not build a client")

        monkeypatch.setattr(cli, "_build_client", _no_client)
        code = cli.main(
            [
                "publish",
                "--image", "https://cdn/1.jpg",
                "--image", "https://cdn/2.jpg",
                "--caption", "Hi",
                "--dry-run",
            ]
        )
        assert code == cli.EXIT_OK
        plan = json.loads(capsys.readouterr().out)
        assert plan["dry_run"] is True
        assert plan["account_configured"] is False
        assert len(plan["items"]) == 2
        assert plan["processing_wait_ms"] == 4000

    def test_dry_run_rejects_single_item(
        self, clean_env: None, capsys: pytest.CaptureFixture[str]
    ) -> None:
        code = cli.main(["publish", "--image", "https://cdn/1.jpg", "--dry-run"])
        assert code == cli.EXIT_FAILURE
        assert "validation" in capsys.readouterr().err

    def test_relative_url_is_usage_error(self, clean_env: None) -> None:
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["publish", "--image", "photos/1.jpg"])
        assert exc_info.value.code == 2


# ===========================================================================
# check / status
# ===========================================================================


class TestCheckCommand:
    def test_can_publish(
        self,
        monkeypatch: pytest.MonkeyPatch,
        configured_env: None,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        client = _fake_client(check_publishing_permissions=AsyncMock(return_value=True))
        _install(monkeypatch, client)
        assert cli.main(["check"]) == cli.EXIT_OK
        assert json.loads(capsys.readouterr().out) == {"account_id": "1784", "can_publish": True}
        client.check_publishing_permissions.assert_awaited_once_with("1784", "EAAG-token")

    def test_cannot_publish(self, monkeypatch: pytest.MonkeyPatch, configured_env: None) -> None:
        _install(monkeypatch, _fake_client(check_publishing_permissions=AsyncMock(return_value=False)))
        assert cli.main(["check"]) == cli.EXIT_FAILURE


class TestStatusCommand:
    def test_prints_status(
        self,
        monkeypatch: pytest.MonkeyPatch,
        configured_env: None,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        status = ContainerStatus(id="c1", status_code="FINISHED", status="Finished")
        client = _fake_client(get_container_status=AsyncMock(return_value=status))
        _install(monkeypatch, client)
        assert cli.main(["status", "c1"]) == cli.EXIT_OK
        out = json.loads(capsys.readouterr().out)
        assert out["status_code"] == "FINISHED"
        assert out["ready"] is True
        client.get_container_status.assert_awaited_once_with("c1", "EAAG-token")

    def test_api_error_exit_2(
        self,
        monkeypatch: pytest.MonkeyPatch,
        configured_env: None,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        client = _fake_client(
            get_container_status=AsyncMock(side_effect=GraphApiError("bad id", status_code=400, code=100))
        )
        _install(monkeypatch, client)
        assert cli.main(["status", "nope"]) == cli.EXIT_FAILURE
        assert "API error" in capsys.readouterr().err


# ===========================================================================
# Configuration errors
# ===========================================================================


class TestConfigurationErrors:
    def test_bad_log_level_flag(self, clean_env: None) -> None:
        assert cli.main(["--log-level", "VERBOSE", "check"]) == cli.EXIT_CONFIG

    def test_invalid_settings(self, monkeypatch: pytest.MonkeyPatch, clean_env: None) -> None:
        monkeypatch.setenv("GRAPH_API_VERSION", "18.0")
        assert cli.main(["check"]) == cli.EXIT_CONFIG
