"""Top-level orchestration of the widget preview environment."""

import asyncio
import contextlib
import logging
import subprocess
from pathlib import Path
from typing import List, Optional

from . import platform_utils
from .analyzer import PreviewScanner
from .config import GlobalConfig
from .daemon import DaemonClient
from .errors import ArtifactGenerationError
from .generator import ArtifactGenerator, DartFormatter
from .models import PreviewMappingStore
from .monitor import PreviewEventHandler, PreviewReconciler, ProjectWatcher
from .scaffold import Runner, ScaffoldBootstrapper

logger = logging.getLogger(__name__)


class PreviewEnvironment:
    """Builds the preview scaffold, runs it and keeps it in sync with the project."""

    def __init__(
        self,
        project_root: Path,
        config: Optional[GlobalConfig] = None,
        runner: Runner = subprocess.run,
        formatter: Optional[DartFormatter] = None,
    ):
        self.config = config or GlobalConfig()
        self.project_root = project_root.resolve()
        self.scaffold_dir = self.project_root / self.config.scaffold_path
        self.store = PreviewMappingStore()
        self.scanner = PreviewScanner(
            marker=self.config.marker_annotation,
            source_suffix=self.config.source_suffix,
            ignore_patterns=self.config.ignore_patterns,
        )
        artifact_path = self.scaffold_dir / self.config.artifact_path
        self.generator = ArtifactGenerator(
            artifact_path,
            formatter=formatter or DartFormatter(self.config.dart_executable, stdin_name=artifact_path.name),
            runtime_import=self.config.runtime_import,
            descriptor_type=self.config.descriptor_type,
        )
        self.bootstrapper = ScaffoldBootstrapper(self.project_root, self.config, self.generator, runner)
        self.watcher: Optional[ProjectWatcher] = None
        self.artifact_stale = False

    async def start(self) -> int:
        """Run until the preview process exits and return its exit code.

        Raises ScaffoldError if the scaffold cannot be created.
        """
        self.bootstrapper.ensure_exists()
        self.store.replace(self.scanner.find_previews(self.project_root))
        logger.info(f"Found previews in {len(self.store)} file(s)")
        self.write_initial_artifact()
        try:
            return await self._run_preview_environment()
        finally:
            self._cleanup()

    def write_initial_artifact(self) -> bool:
        """Generate the artifact for the full scan. On failure the reconciler retries later."""
        try:
            self.generator.write(self.store.snapshot())
        except ArtifactGenerationError as e:
            logger.error(f"Failed to generate previews, starting with the previous version: {e}")
            self.artifact_stale = True
            return False
        self.artifact_stale = False
        return True

    def run_command(self) -> List[str]:
        device = platform_utils.device_id()
        args = [self.config.toolchain, 'run', '--machine']
        binary = platform_utils.prebuilt_application_binary(self.scaffold_dir, self.scaffold_dir.name)
        if binary.exists():
            args.append(f"--use-application-binary={binary}")
        args.append(f"--device-id={device}")
        return args

    def create_reconciler(self, daemon) -> PreviewReconciler:
        return PreviewReconciler(
            self.store,
            self.scanner,
            self.generator,
            daemon,
            root=self.project_root,
            artifact_stale=self.artifact_stale,
        )

    async def _run_preview_environment(self) -> int:
        daemon = DaemonClient(self.run_command(), cwd=self.scaffold_dir)
        await daemon.start()

        reconciler = self.create_reconciler(daemon)
        handler = PreviewEventHandler(asyncio.get_running_loop(), reconciler.submit)
        self.watcher = ProjectWatcher(self.project_root, handler)
        consumer = asyncio.create_task(reconciler.run())
        try:
            self.watcher.start()
            return await daemon.wait()
        finally:
            # Stop producing events before tearing down the consumer.
            self._cleanup()
            consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await consumer
            daemon.stop()

    def _cleanup(self):
        if self.watcher is not None:
            self.watcher.stop()
            self.watcher = None
