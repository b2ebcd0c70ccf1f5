"""
Integration tests for the rl4track CLI.

Tests cover:
- hook: capture from a stdin payload, always exit 0
- capture: manual capture of a file
- log / history / show-blob: reading the evidence back
- --version
"""

import gzip
import json
from pathlib import Path
from typing import Callable

import pytest
from typer.testing import CliRunner

from rl4track import __version__
from rl4track.cli import app
from rl4track.store import compute_digest

runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep RL4_* overrides from the outer environment out of the tests."""
    for name in ("RL4_WORKSPACE_ROOT", "RL4_SOURCE", "RL4_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def _records(root: Path) -> list[dict]:
    path = root / ".rl4" / "evidence" / "activity.jsonl"
    return [json.loads(line) for line in path.read_text().splitlines()]


def _index(root: Path) -> dict:
    return json.loads((root / ".rl4" / "snapshots" / "file_index.json").read_text())


def _blobs(root: Path) -> list[str]:
    return sorted(p.name for p in (root / ".rl4" / "snapshots").glob("*.content.gz"))


# =============================================================================
# hook
# =============================================================================


class TestHookCommand:
    """Tests for `rl4track hook`."""

    def test_new_file(self, workspace_root: Path, make_payload: Callable[..., str]) -> None:
        (workspace_root / "src").mkdir()
        (workspace_root / "src" / "a.go").write_text("package a\n")

        result = runner.invoke(
            app,
            ["hook"],
            input=make_payload("Write", workspace_root, file_path="src/a.go", content="package a\n"),
        )

        assert result.exit_code == 0
        assert result.stdout == ""

        digest = compute_digest(b"package a\n")
        records = _records(workspace_root)
        assert len(records) == 1
        record = records[0]
        assert record["kind"] == "save"
        assert record["path"] == "src/a.go"
        assert record["sha256"] == digest
        assert record["linesAdded"] == 1
        assert record["linesRemoved"] == 0
        assert record["source"] == "claude-code"
        assert record["burst_id"] == "burst-cli-session-0123"
        assert record["t"].endswith("Z")

        assert _index(workspace_root) == {"src/a.go": [digest]}
        assert _blobs(workspace_root) == [f"{digest}.content.gz"]
        blob = workspace_root / ".rl4" / "snapshots" / f"{digest}.content.gz"
        assert gzip.decompress(blob.read_bytes()) == b"package a\n"

    def test_identical_recapture(self, workspace_root: Path, make_payload: Callable[..., str]) -> None:
        (workspace_root / "a.go").write_text("package a\n")
        payload = make_payload("Write", workspace_root, file_path="a.go")

        runner.invoke(app, ["hook"], input=payload)
        runner.invoke(app, ["hook"], input=payload)

        records = _records(workspace_root)
        assert len(records) == 2
        assert records[0]["sha256"] == records[1]["sha256"]
        assert _index(workspace_root) == {"a.go": [records[0]["sha256"]]}
        assert len(_blobs(workspace_root)) == 1

    def test_partial_edit(self, workspace_root: Path, make_payload: Callable[..., str]) -> None:
        (workspace_root / "a.py").write_text("".join(f"{i}\n" for i in range(1000)))

        runner.invoke(
            app,
            ["hook"],
            input=make_payload(
                "Edit",
                workspace_root,
                file_path="a.py",
                old_string="x\ny\n",
                new_string="1\n2\n3\n4\n5\n",
            ),
        )

        record = _records(workspace_root)[0]
        assert (record["linesAdded"], record["linesRemoved"]) == (5, 2)

    def test_history_grows_on_change(self, workspace_root: Path, make_payload: Callable[..., str]) -> None:
        target = workspace_root / "a.txt"
        payload = make_payload("Write", workspace_root, file_path="a.txt")
        for content in ("one\n", "two\n", "one\n"):
            target.write_text(content)
            runner.invoke(app, ["hook"], input=payload)

        assert _index(workspace_root)["a.txt"] == [
            compute_digest(b"one\n"),
            compute_digest(b"two\n"),
            compute_digest(b"one\n"),
        ]
        assert len(_blobs(workspace_root)) == 2

    def test_creates_workspace_under_pinned_root(
        self,
        temp_dir: Path,
        make_payload: Callable[..., str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("RL4_WORKSPACE_ROOT", str(temp_dir))
        (temp_dir / "new.txt").write_text("hello")

        result = runner.invoke(app, ["hook"], input=make_payload("Write", temp_dir, file_path="new.txt"))

        assert result.exit_code == 0
        assert _records(temp_dir)[0]["path"] == "new.txt"

    def test_source_from_env(
        self,
        workspace_root: Path,
        make_payload: Callable[..., str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("RL4_SOURCE", "cursor")
        (workspace_root / "a.txt").write_text("x")
        runner.invoke(app, ["hook"], input=make_payload("Write", workspace_root, file_path="a.txt"))
        assert _records(workspace_root)[0]["source"] == "cursor"

    @pytest.mark.parametrize(
        "payload",
        [
            "",
            "{not json",
            "[]",
            '{"tool_name": "Write", "tool_input": {}}',
            '{"tool_name": "Read", "tool_input": {"file_path": "a.txt"}}',
        ],
    )
    def test_unusable_payload_is_noop(self, workspace_root: Path, payload: str) -> None:
        result = runner.invoke(app, ["hook"], input=payload)
        assert result.exit_code == 0
        assert not (workspace_root / ".rl4" / "evidence" / "activity.jsonl").exists()

    def test_missing_file_is_noop(self, workspace_root: Path, make_payload: Callable[..., str]) -> None:
        result = runner.invoke(
            app,
            ["hook"],
            input=make_payload("Write", workspace_root, file_path="deleted.txt"),
        )
        assert result.exit_code == 0
        assert not (workspace_root / ".rl4" / "evidence" / "activity.jsonl").exists()

    def test_corrupt_index_still_logs(self, workspace_root: Path, make_payload: Callable[..., str]) -> None:
        snapshots = workspace_root / ".rl4" / "snapshots"
        snapshots.mkdir()
        (snapshots / "file_index.json").write_text("{corrupt")
        (workspace_root / "a.txt").write_text("x\n")

        result = runner.invoke(app, ["hook"], input=make_payload("Write", workspace_root, file_path="a.txt"))

        assert result.exit_code == 0
        assert (snapshots / "file_index.json").read_text() == "{corrupt"
        assert len(_records(workspace_root)) == 1
        assert len(_blobs(workspace_root)) == 1

    def test_bad_config_falls_back_to_defaults(
        self,
        workspace_root: Path,
        make_payload: Callable[..., str],
    ) -> None:
        config = workspace_root / "rl4.yaml"
        config.write_text("no_such_option: 1\n")
        (workspace_root / "a.txt").write_text("x")

        result = runner.invoke(
            app,
            ["hook", "--config", str(config)],
            input=make_payload("Write", workspace_root, file_path="a.txt"),
        )

        assert result.exit_code == 0
        assert len(_records(workspace_root)) == 1


# =============================================================================
# capture
# =============================================================================


class TestCaptureCommand:
    """Tests for `rl4track capture`."""

    def test_capture_json(self, workspace_root: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(workspace_root)
        (workspace_root / "notes.md").write_text("a\nb\n")

        result = runner.invoke(app, ["capture", "notes.md", "--session", "manual-run", "--json"])

        assert result.exit_code == 0
        output = json.loads(result.stdout)
        assert output["captured"] is True
        assert output["state"] == "done"
        assert output["event"]["path"] == "notes.md"
        assert output["event"]["linesAdded"] == 2
        assert output["event"]["burst_id"] == "burst-cli-manual-run"
        assert [s["step"] for s in output["steps"]] == ["workspace", "content", "index", "log"]

    def test_capture_missing_file(self, workspace_root: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(workspace_root)
        result = runner.invoke(app, ["capture", "missing.md"])
        assert result.exit_code == 1
        assert "Not captured" in result.stdout


# =============================================================================
# Read commands
# =============================================================================


@pytest.fixture
def captured(workspace_root: Path, make_payload: Callable[..., str]) -> Path:
    """A workspace with two versions of src/a.go captured."""
    target = workspace_root / "src" / "a.go"
    target.parent.mkdir()
    payload = make_payload("Write", workspace_root, file_path="src/a.go")
    for content in ("package a\n", "package a\n\nfunc A() {}\n"):
        target.write_text(content)
        runner.invoke(app, ["hook"], input=payload)
    return workspace_root


class TestReadCommands:
    """Tests for log, history and show-blob."""

    def test_log_json(self, captured: Path) -> None:
        result = runner.invoke(app, ["log", "--root", str(captured), "--json"])
        assert result.exit_code == 0
        events = json.loads(result.stdout)
        assert [e["linesAdded"] for e in events] == [1, 3]
        assert all(e["path"] == "src/a.go" for e in events)

    def test_log_limit(self, captured: Path) -> None:
        result = runner.invoke(app, ["log", "--root", str(captured), "-n", "1", "--json"])
        assert len(json.loads(result.stdout)) == 1

    def test_log_table(self, captured: Path) -> None:
        result = runner.invoke(app, ["log", "--root", str(captured)])
        assert result.exit_code == 0
        assert "src/a.go" in result.stdout

    def test_history_json(self, captured: Path) -> None:
        result = runner.invoke(app, ["history", "src/a.go", "--root", str(captured), "--json"])
        assert result.exit_code == 0
        output = json.loads(result.stdout)
        assert output["path"] == "src/a.go"
        assert output["history"] == [
            compute_digest(b"package a\n"),
            compute_digest(b"package a\n\nfunc A() {}\n"),
        ]

    def test_history_absolute_path(self, captured: Path) -> None:
        result = runner.invoke(
            app,
            ["history", str(captured / "src" / "a.go"), "--root", str(captured), "--json"],
        )
        assert len(json.loads(result.stdout)["history"]) == 2

    def test_show_blob(self, captured: Path) -> None:
        digest = compute_digest(b"package a\n")
        result = runner.invoke(app, ["show-blob", digest, "--root", str(captured)])
        assert result.exit_code == 0
        assert result.stdout_bytes == b"package a\n"

    def test_show_unknown_blob(self, captured: Path) -> None:
        result = runner.invoke(app, ["show-blob", "0" * 64, "--root", str(captured)])
        assert result.exit_code == 1

    def test_show_blob_rejects_non_digest(self, captured: Path) -> None:
        result = runner.invoke(app, ["show-blob", "../../etc/passwd", "--root", str(captured)])
        assert result.exit_code == 1
        assert "Not a SHA-256 digest" in result.stdout

    def test_no_workspace(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RL4_WORKSPACE_ROOT", str(temp_dir))
        result = runner.invoke(app, ["log"])
        assert result.exit_code == 1
        assert not (temp_dir / ".rl4").exists()


class TestVersion:
    """Tests for --version."""

    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout
