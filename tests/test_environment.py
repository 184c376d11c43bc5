"""Tests for the preview environment orchestration."""

import asyncio
import sys
import tempfile
from pathlib import Path

import pytest

from previewer import platform_utils
from previewer.config import GlobalConfig
from previewer.environment import PreviewEnvironment
from previewer.errors import ArtifactGenerationError
from previewer.models import WatchEvent, WatchEventKind


class IdentityFormatter:
    def __init__(self):
        self.fail = False

    def format(self, source: str) -> str:
        if self.fail:
            raise ArtifactGenerationError("formatter failed")
        return source


class IdleDaemon:
    app_id = None


@pytest.fixture(autouse=True)
def linux_host(monkeypatch):
    monkeypatch.setattr(platform_utils, "device_id", lambda: "linux")


def make_project(root: Path):
    (root / "lib").mkdir()
    (root / "lib" / "x.dart").write_text("@Preview()\nList<WidgetPreview> previewA() => [];\n")
    (root / "lib" / "plain.dart").write_text("void main() {}\n")


def test_run_command_uses_prebuilt_binary_when_present():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir).resolve()
        environment = PreviewEnvironment(root, GlobalConfig(), formatter=IdentityFormatter())

        assert environment.run_command() == ["flutter", "run", "--machine", "--device-id=linux"]

        binary = platform_utils.prebuilt_application_binary(environment.scaffold_dir)
        binary.parent.mkdir(parents=True)
        binary.write_text("")

        assert environment.run_command() == [
            "flutter", "run", "--machine", f"--use-application-binary={binary}", "--device-id=linux",
        ]


def test_start_returns_process_exit_code():
    """The session ends with the companion process and reports its exit status."""
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir).resolve()
        make_project(root)
        # `python run --machine ...` fails to open the script `run` and exits with 2.
        config = GlobalConfig(toolchain=sys.executable)
        environment = PreviewEnvironment(root, config, formatter=IdentityFormatter())
        environment.scaffold_dir.mkdir(parents=True)

        exit_code = asyncio.run(environment.start())

        assert exit_code == 2
        assert environment.watcher is None
        assert environment.store.snapshot() == {(root / "lib" / "x.dart").as_uri(): ["previewA"]}
        generated = (environment.scaffold_dir / "lib" / "generated_preview.dart").read_text()
        assert "previewA()" in generated


def test_failed_initial_generation_is_retried_by_the_watcher():
    """An unchanged file event rewrites an artifact that the first generation left stale."""
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir).resolve()
        make_project(root)
        formatter = IdentityFormatter()
        environment = PreviewEnvironment(root, GlobalConfig(), formatter=formatter)
        artifact = environment.scaffold_dir / "lib" / "generated_preview.dart"
        artifact.parent.mkdir(parents=True)
        artifact.write_text("// previous")

        environment.store.replace(environment.scanner.find_previews(root))
        formatter.fail = True
        assert environment.write_initial_artifact() is False
        assert artifact.read_text() == "// previous"

        formatter.fail = False
        reconciler = environment.create_reconciler(IdleDaemon())
        event = WatchEvent(root / "lib" / "x.dart", WatchEventKind.MODIFIED)
        assert asyncio.run(reconciler.reconcile(event))
        assert "previewA()" in artifact.read_text()
        assert reconciler.artifact_stale is False
