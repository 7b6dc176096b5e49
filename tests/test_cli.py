from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path
from typing import Iterator
from unittest.mock import MagicMock, patch

import pytest

from isotrack_cli.cli import format_file_size, main
from isotrack_cli.config import (
    CONFIG_FILENAME,
    STATUS_FILENAME,
    TASKS_FILENAME,
    SettingsService,
    read_config,
    write_config,
)
from isotrack_cli.exceptions import (
    ConfigError,
    NotFoundError,
    UploadError,
    UpstreamError,
    ValidationError,
)
from isotrack_cli.models.config import AppConfig
from isotrack_cli.models.documents import Document, DocumentList
from isotrack_cli.models.profiles import CompanySize
from isotrack_cli.registry import StatusBoard
from isotrack_cli.tasks import TaskBoard


def _run(*args: str) -> None:
    with patch("sys.argv", ["isotrack-cli", *args]):
        main()


def _document(doc_id: str = "doc-1", name: str = "policy.pdf") -> Document:
    return Document(
        id=doc_id,
        name=name,
        file_key=f"org-1/{doc_id}/{name}",
        file_size=10,
        mime_type="application/pdf",
        version=1,
        organization_id="org-1",
        uploaded_by_id="user-1",
        created_at="2024-01-20T10:00:00Z",
        updated_at="2024-01-20T10:00:00Z",
        control_id="A.5.1",
    )


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def backend(workdir: Path) -> Iterator[MagicMock]:
    write_config(workdir, AppConfig(api_url="https://compliance.example.com", token="tok"))
    client = MagicMock()
    client.list_documents.return_value = DocumentList([_document()], 1, 10)
    client.upload_document.return_value = _document()
    with patch("isotrack_cli.cli.IsoTrackClient", return_value=client):
        yield client


class TestNoArgs:
    def test_no_args_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        _run()
        assert "usage:" in capsys.readouterr().out.lower()


class TestInit:
    def test_init_writes_config_and_settings(self, workdir: Path) -> None:
        with patch("isotrack_cli.cli.getpass.getpass", return_value="my-token"), \
             patch("builtins.input", side_effect=["Acme", "medium"]):
            _run("init", "https://compliance.example.com")

        config = read_config(workdir)
        assert config.api_url == "https://compliance.example.com/"
        assert config.token == "my-token"
        settings = SettingsService(workdir).load()
        assert settings.company_name == "Acme"
        assert settings.company_size is CompanySize.MEDIUM

    def test_init_accepts_empty_answers(
        self, workdir: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        with patch("isotrack_cli.cli.getpass.getpass", return_value=""), \
             patch("builtins.input", return_value=""):
            _run("init", "http://localhost:8000")

        assert read_config(workdir).token is None
        assert SettingsService(workdir).load().company_size is CompanySize.STARTUP
        assert "Configuration saved" in capsys.readouterr().out

    def test_invalid_url_scheme(self, workdir: Path) -> None:
        with pytest.raises(ConfigError, match="must start with http:// or https://"):
            _run("init", "ftp://compliance.example.com")

    def test_unknown_company_size(self, workdir: Path) -> None:
        with patch("isotrack_cli.cli.getpass.getpass", return_value="tok"), \
             patch("builtins.input", side_effect=["Acme", "huge"]):
            with pytest.raises(ConfigError, match="Unknown company size"):
                _run("init", "https://compliance.example.com")
        assert not (workdir / CONFIG_FILENAME).exists()


class TestSettings:
    def test_show_defaults(self, workdir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        _run("settings")
        out = capsys.readouterr().out
        assert "Company size: startup" in out
        assert "Applicable items: 53" in out

    def test_update(self, workdir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        _run("settings", "--company-name", "Acme", "--company-size", "large")
        out = capsys.readouterr().out
        assert "Settings saved." in out
        assert "Applicable items: 116" in out
        assert SettingsService(workdir).load().company_name == "Acme"


class TestControls:
    def test_lists_profile_items(self, workdir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        _run("controls")
        out = capsys.readouterr().out
        assert "Showing 53 of 53 items." in out
        assert "Overall: 0/53 completed (0%)" in out

    def test_filters(self, workdir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        _run("controls", "--type", "annex-a", "--category", "A.7")
        out = capsys.readouterr().out
        assert "A.7.7" in out
        assert "Showing 1 of 30 items." in out

    def test_overall_follows_type(
        self, workdir: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        _run("set-status", "4.1", "completed")
        capsys.readouterr()

        _run("controls", "--type", "annex-a")
        out = capsys.readouterr().out
        assert "Showing 30 of 30 items." in out
        assert "Overall: 0/30 completed (0%)" in out

        _run("controls", "--type", "clause")
        out = capsys.readouterr().out
        assert "Showing 23 of 23 items." in out
        assert "Overall: 1/23 completed (4%)" in out

    def test_unknown_category(self, workdir: Path) -> None:
        with pytest.raises(ValidationError, match="Unknown category 'A.7'. Available: 4, "):
            _run("controls", "--type", "clause", "--category", "A.7")

    def test_category_of_either_kind(
        self, workdir: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        _run("controls", "--category", "4")
        assert "Showing 4 of 53 items." in capsys.readouterr().out

    def test_set_status_persists(self, workdir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        _run("set-status", "A.5.1", "completed")
        assert "A.5.1: 완료 (100%)" in capsys.readouterr().out
        assert StatusBoard.load(workdir / STATUS_FILENAME).get("A.5.1").progress == 100

        _run("controls", "--status", "completed")
        out = capsys.readouterr().out
        assert "Showing 1 of 53 items." in out
        assert "Overall: 1/53 completed (2%)" in out

    def test_set_status_unknown_item(self, workdir: Path) -> None:
        with pytest.raises(NotFoundError, match="Unknown control or clause: A.9.9"):
            _run("set-status", "A.9.9", "completed")
        assert not (workdir / STATUS_FILENAME).exists()

    def test_stats(self, workdir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        _run("stats", "--type", "clause")
        lines = [line for line in capsys.readouterr().out.splitlines() if line]
        assert len(lines) == 7
        assert lines[0].startswith("4 ")

    def test_show(self, workdir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        TaskBoard.sample().save(workdir / TASKS_FILENAME)
        _run("show", "A.5.1")
        out = capsys.readouterr().out
        assert "A.5.1 정보보호 정책" in out
        assert "구현 팁:" in out
        assert "task-1" in out

    def test_show_unknown_item(self, workdir: Path) -> None:
        with pytest.raises(NotFoundError):
            _run("show", "Z.1")


class TestTasks:
    def test_seed_add_and_move(self, workdir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        _run("tasks", "seed")
        assert "Seeded 8 sample tasks." in capsys.readouterr().out

        _run("tasks", "add", "A.8.8", "취약점 점검")
        added = capsys.readouterr().out.strip().split()[-1]
        assert added.startswith("task-A.8.8-")

        _run("tasks", "set-status", added, "review")
        board = TaskBoard.load(workdir / TASKS_FILENAME)
        assert len(board.tasks) == 9
        assert board.get(added).status.value == "review"

    def test_seed_refuses_to_overwrite(self, workdir: Path) -> None:
        _run("tasks", "seed")
        with pytest.raises(ValidationError, match="already exists"):
            _run("tasks", "seed")

    def test_add_for_unknown_control(self, workdir: Path) -> None:
        with pytest.raises(NotFoundError):
            _run("tasks", "add", "Z.1", "title")

    def test_list_filters(self, workdir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        _run("tasks", "seed")
        capsys.readouterr()
        _run("tasks", "list", "--control", "A.5.1")
        out = capsys.readouterr().out
        assert "task-1" in out
        assert "task-2" not in out
        assert "Total 8" in out


class TestDocs:
    def test_commands_require_config(self, workdir: Path) -> None:
        with pytest.raises(ConfigError, match="Configuration not found"):
            _run("docs", "list")

    def test_settings_alone_are_not_enough(self, workdir: Path) -> None:
        _run("settings", "--company-name", "Acme")
        with pytest.raises(ConfigError, match="Run isotrack-cli init first"):
            _run("docs", "list")

    def test_list(self, backend: MagicMock, capsys: pytest.CaptureFixture[str]) -> None:
        _run("docs", "list", "--control", "A.5.1")
        out = capsys.readouterr().out
        assert "doc-1  policy.pdf  10 B  v1  A.5.1" in out
        assert "1 document(s), 10 B total" in out
        backend.list_documents.assert_called_once_with(
            control_id="A.5.1", task_id=None, search=None,
        )

    def test_upload(
        self, backend: MagicMock, workdir: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        (workdir / "policy.pdf").write_bytes(b"0123456789")
        _run("docs", "upload", "policy.pdf", "--control", "A.5.1")

        out = capsys.readouterr().out
        assert "policy.pdf: uploaded as doc-1" in out
        assert "1 document(s)" in out
        backend.upload_document.assert_called_once()

    def test_upload_failure_exits_with_error(
        self, backend: MagicMock, workdir: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        (workdir / "ok.pdf").write_bytes(b"ok")
        (workdir / "bad.pdf").write_bytes(b"bad")

        def upload(filename: str, *args: object, **kwargs: object) -> Document:
            if filename == "bad.pdf":
                raise UpstreamError("Backend request failed (500)", status_code=500)
            return _document(name=filename)

        backend.upload_document.side_effect = upload
        with pytest.raises(UploadError, match="1 of 2 upload"):
            _run("docs", "upload", "ok.pdf", "bad.pdf")

        out = capsys.readouterr().out
        assert "ok.pdf: uploaded as doc-1" in out
        assert "bad.pdf: failed (Backend request failed (500))" in out

    def test_name_requires_single_file(self, backend: MagicMock) -> None:
        with pytest.raises(ValidationError, match="single file"):
            _run("docs", "upload", "a.pdf", "b.pdf", "--name", "x")

    def test_download_opens_browser(self, backend: MagicMock) -> None:
        backend.get_download_url.return_value = "https://s3.example.com/get?sig=1"
        with patch("isotrack_cli.cli.webbrowser.open_new_tab") as open_tab:
            _run("docs", "download", "doc-1")
        open_tab.assert_called_once_with("https://s3.example.com/get?sig=1")

    def test_download_no_open(
        self, backend: MagicMock, capsys: pytest.CaptureFixture[str],
    ) -> None:
        backend.get_download_url.return_value = "https://s3.example.com/get?sig=1"
        with patch("isotrack_cli.cli.webbrowser.open_new_tab") as open_tab:
            _run("docs", "download", "doc-1", "--no-open")
        open_tab.assert_not_called()
        assert "https://s3.example.com/get?sig=1" in capsys.readouterr().out

    def test_delete_confirmation(
        self, backend: MagicMock, capsys: pytest.CaptureFixture[str],
    ) -> None:
        with patch("builtins.input", return_value="n"):
            _run("docs", "delete", "doc-1")
        backend.delete_document.assert_not_called()
        assert "Cancelled." in capsys.readouterr().out

        _run("docs", "delete", "doc-1", "--yes")
        backend.delete_document.assert_called_once_with("doc-1")

    def test_update(self, backend: MagicMock, capsys: pytest.CaptureFixture[str]) -> None:
        backend.update_document.return_value = _document(name="renamed.pdf")
        _run("docs", "update", "doc-1", "--name", "renamed.pdf")
        backend.update_document.assert_called_once_with(
            "doc-1", name="renamed.pdf", description=None, control_id=None, task_id=None,
        )
        assert "Updated doc-1 (renamed.pdf)" in capsys.readouterr().out

    def test_update_without_fields(self, backend: MagicMock) -> None:
        with pytest.raises(ValidationError, match="Nothing to update."):
            _run("docs", "update", "doc-1")
        backend.update_document.assert_not_called()


class TestExport:
    def test_export_writes_reports(self, workdir: Path) -> None:
        TaskBoard.sample().save(workdir / TASKS_FILENAME)
        _run("export", "reports")

        out_dir = workdir / "reports"
        assert (out_dir / "index.md").is_file()
        assert (out_dir / "status.yaml").is_file()
        assert (out_dir / "tasks.md").is_file()
        assert not (out_dir / "index.json").exists()

    def test_export_keep_raw_json(self, workdir: Path) -> None:
        _run("export", "reports", "--keep-raw-json")
        assert (workdir / "reports" / "index.json").is_file()
        assert (workdir / "reports" / "tasks.json").is_file()


class TestFormatFileSize:
    @pytest.mark.parametrize(
        "size,expected",
        [(10, "10 B"), (2048, "2.0 KB"), (5 * 1024 * 1024, "5.0 MB")],
    )
    def test_units(self, size: int, expected: str) -> None:
        assert format_file_size(size) == expected


class TestInitSubprocess:
    def test_python_m_init_creates_config(self, tmp_path: Path) -> None:
        repo_root = Path(__file__).resolve().parents[1]
        env = os.environ.copy()
        env["PYTHONPATH"] = str(repo_root)
        completed = subprocess.run(
            [sys.executable, "-m", "isotrack_cli", "init", "https://compliance.example.com/"],
            cwd=tmp_path,
            env=env,
            input="token-from-stdin\nAcme\nsmall\n",
            text=True,
            capture_output=True,
            check=False,
        )

        assert completed.returncode == 0
        cfg = read_config(tmp_path)
        assert cfg.api_url == "https://compliance.example.com/"
        assert cfg.token == "token-from-stdin"
        assert SettingsService(tmp_path).load().company_size is CompanySize.SMALL
