"""Black-box tests for CLI entry point."""

import json
import sys
import threading
from pathlib import Path

import pytest
from pytest_httpx import HTTPXMock
from typer.testing import CliRunner

from nostalgia import cli
from nostalgia.cli import app, install_fault_handlers
from nostalgia.state import STATE_FILE_NAME

runner = CliRunner()

BASE = "https://photoslibrary.googleapis.com/v1"


@pytest.fixture(autouse=True)
def keep_fault_handlers(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the test process's own excepthooks in place."""
    monkeypatch.setattr(cli, "install_fault_handlers", lambda: None)


@pytest.fixture
def trip_dir(tmp_path: Path) -> Path:
    """A source root with one album directory holding one photo."""
    trip = tmp_path / "Trip2019"
    trip.mkdir()
    (trip / "a.jpg").write_bytes(b"x" * 500)
    (trip / "b.mp4").write_bytes(b"")
    (trip / "notes.txt").write_text("not media")
    return tmp_path


def mock_new_album_sync(httpx_mock: HTTPXMock) -> None:
    """Register the requests for syncing Trip2019/a.jpg into a new album."""
    httpx_mock.add_response(method="GET", url=f"{BASE}/albums?pageSize=50", json={})
    httpx_mock.add_response(
        method="POST", url=f"{BASE}/albums", json={"id": "album_1", "title": "Trip2019"}
    )
    httpx_mock.add_response(method="POST", url=f"{BASE}/uploads", text="token_1")
    httpx_mock.add_response(
        method="POST",
        url=f"{BASE}/mediaItems:batchCreate",
        json={"newMediaItemResults": [{"mediaItem": {"id": "media_1"}}]},
    )
    httpx_mock.add_response(
        method="POST", url=f"{BASE}/albums/album_1:batchAddMediaItems", json={}
    )


class TestCLI:
    """Test command-line interface."""

    def test_cli_help(self) -> None:
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "Google Photos albums" in result.stdout

    def test_cli_dry_run_success(self, temp_media_dir: Path) -> None:
        result = runner.invoke(app, [str(temp_media_dir), "--dry-run"])

        assert result.exit_code == 0
        assert "Trip2019" in result.stdout
        assert not (temp_media_dir / "Trip2019" / STATE_FILE_NAME).exists()

    def test_cli_missing_access_token(
        self, temp_media_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test CLI fails without access token when not in dry-run."""
        monkeypatch.delenv("GOOGLE_PHOTOS_ACCESS_TOKEN", raising=False)

        result = runner.invoke(app, [str(temp_media_dir)])

        assert result.exit_code == 1
        assert "access token is required" in result.stdout.lower()

    def test_cli_missing_source_root(self) -> None:
        """Test that a missing source root is a startup failure, not exit 2."""
        result = runner.invoke(app, ["--dry-run"])

        assert result.exit_code == cli.EXIT_SYNC_FAILED == 1
        assert "SOURCE_ROOT is required" in result.stdout

    def test_cli_nonexistent_directory(self, tmp_path: Path) -> None:
        """Test CLI with non-existent directory."""
        result = runner.invoke(app, [str(tmp_path / "nonexistent"), "--dry-run"])

        assert result.exit_code == 1
        assert "not a directory" in result.stdout

    def test_cli_source_root_is_a_file(self, temp_media_dir: Path) -> None:
        result = runner.invoke(app, [str(temp_media_dir / "not_a_dir.txt"), "--dry-run"])

        assert result.exit_code == 1

    def test_cli_invalid_log_level(self, temp_media_dir: Path) -> None:
        result = runner.invoke(app, [str(temp_media_dir), "--dry-run", "--log-level", "loud"])

        assert result.exit_code == 2

    def test_cli_log_level_from_env(
        self, temp_media_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("LOG_LEVEL", "debug")

        result = runner.invoke(app, [str(temp_media_dir), "--dry-run"])

        assert result.exit_code == 0

    def test_cli_empty_directory(self, tmp_path: Path) -> None:
        """Test CLI with directory containing no album directories."""
        result = runner.invoke(app, [str(tmp_path), "--dry-run"])

        assert result.exit_code == 0

    def test_cli_sync_new_album(
        self, trip_dir: Path, access_token: str, httpx_mock: HTTPXMock
    ) -> None:
        mock_new_album_sync(httpx_mock)

        result = runner.invoke(app, [str(trip_dir), "--access-token", access_token])

        assert result.exit_code == 0
        assert "Trip2019" in result.stdout
        state = json.loads((trip_dir / "Trip2019" / STATE_FILE_NAME).read_text())
        assert state == {"id": "album_1", "synced": {"a.jpg": {"id": "media_1"}}}

    def test_cli_access_token_from_env(
        self,
        trip_dir: Path,
        access_token: str,
        monkeypatch: pytest.MonkeyPatch,
        httpx_mock: HTTPXMock,
    ) -> None:
        monkeypatch.setenv("GOOGLE_PHOTOS_ACCESS_TOKEN", access_token)
        mock_new_album_sync(httpx_mock)

        result = runner.invoke(app, [str(trip_dir), "--concurrency", "2"])

        assert result.exit_code == 0
        assert httpx_mock.get_requests()[0].headers["Authorization"] == f"Bearer {access_token}"

    def test_cli_second_run_uploads_nothing(
        self, trip_dir: Path, access_token: str, httpx_mock: HTTPXMock
    ) -> None:
        (trip_dir / "Trip2019" / STATE_FILE_NAME).write_text(
            json.dumps({"id": "album_1", "synced": {"a.jpg": {"id": "media_1"}}})
        )
        httpx_mock.add_response(
            method="GET",
            url=f"{BASE}/albums?pageSize=50",
            json={"albums": [{"id": "album_1", "title": "Trip2019"}]},
        )

        result = runner.invoke(app, [str(trip_dir), "--access-token", access_token])

        assert result.exit_code == 0
        assert len(httpx_mock.get_requests()) == 1

    def test_cli_album_creation_failure(
        self, trip_dir: Path, access_token: str, httpx_mock: HTTPXMock
    ) -> None:
        """Test that a directory setup error fails the whole run."""
        httpx_mock.add_response(method="GET", url=f"{BASE}/albums?pageSize=50", json={})
        httpx_mock.add_response(
            method="POST",
            url=f"{BASE}/albums",
            json={"error": {"code": 403, "message": "denied", "status": "PERMISSION_DENIED"}},
            status_code=403,
        )

        result = runner.invoke(app, [str(trip_dir), "--access-token", access_token])

        assert result.exit_code == 1
        assert not (trip_dir / "Trip2019" / STATE_FILE_NAME).exists()

    def test_cli_malformed_state(self, trip_dir: Path, access_token: str) -> None:
        (trip_dir / "Trip2019" / STATE_FILE_NAME).write_text("{broken")

        result = runner.invoke(app, [str(trip_dir), "--access-token", access_token])

        assert result.exit_code == 1

    def test_cli_abandoned_upload_fails_run(
        self, trip_dir: Path, access_token: str, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(method="GET", url=f"{BASE}/albums?pageSize=50", json={})
        httpx_mock.add_response(
            method="POST", url=f"{BASE}/albums", json={"id": "album_1", "title": "Trip2019"}
        )
        httpx_mock.add_response(
            method="POST",
            url=f"{BASE}/uploads",
            json={"error": {"code": 400, "message": "bad file", "status": "INVALID_ARGUMENT"}},
            status_code=400,
        )

        result = runner.invoke(
            app, [str(trip_dir), "--access-token", access_token, "--max-attempts", "1"]
        )

        assert result.exit_code == 1
        state = json.loads((trip_dir / "Trip2019" / STATE_FILE_NAME).read_text())
        assert state["synced"] == {}


class TestFaultHandlers:
    """Test process-level fault handling."""

    def test_unhandled_async_error_exits_2(self, monkeypatch: pytest.MonkeyPatch) -> None:
        codes: list[int] = []
        monkeypatch.setattr(cli.os, "_exit", codes.append)

        cli.handle_loop_exception(None, {"message": "boom", "exception": RuntimeError("boom")})

        assert codes == [cli.EXIT_UNHANDLED_ASYNC] == [2]

    def test_unhandled_fault_exits_3(self, monkeypatch: pytest.MonkeyPatch) -> None:
        codes: list[int] = []
        monkeypatch.setattr(cli.os, "_exit", codes.append)

        try:
            raise ValueError("boom")
        except ValueError:
            cli.handle_uncaught_exception(*sys.exc_info())

        assert codes == [cli.EXIT_UNHANDLED_FAULT] == [3]

    def test_install_fault_handlers(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "excepthook", sys.excepthook)
        monkeypatch.setattr(threading, "excepthook", threading.excepthook)

        install_fault_handlers()

        assert sys.excepthook is cli.handle_uncaught_exception
        assert threading.excepthook is cli.handle_thread_exception
