"""Creation of the companion project that hosts the generated previews."""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Callable, List

from . import platform_utils
from .config import GlobalConfig
from .errors import ScaffoldError
from .generator import ArtifactGenerator
from .templates import WIDGET_PREVIEW_SCAFFOLD

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


class ScaffoldBootstrapper:
    """Ensures the preview scaffold project exists and has been built once."""

    def __init__(
        self,
        project_root: Path,
        config: GlobalConfig,
        generator: ArtifactGenerator,
        runner: Runner = subprocess.run,
    ):
        self.project_root = project_root
        self.config = config
        self.generator = generator
        self.runner = runner
        self.scaffold_dir = project_root / config.scaffold_path

    def _run(self, args: List[str], cwd: Path) -> subprocess.CompletedProcess:
        logger.debug(f"Running '{' '.join(args)}' in {cwd}")
        try:
            return self.runner(args, cwd=cwd, capture_output=True, text=True, check=False)
        except OSError as e:
            raise ScaffoldError(f"Could not run '{args[0]}': {e}") from e

    def ensure_exists(self) -> bool:
        """Create the scaffold if needed. Returns True when it was (re)created."""
        if self.config.development_mode and self.scaffold_dir.exists():
            logger.info(f"Development mode: removing {self.scaffold_dir}")
            shutil.rmtree(self.scaffold_dir)

        if self.scaffold_dir.exists():
            logger.info('Preview scaffolding exists!')
            return False

        try:
            self._create_project()
            self._write_entry_point()
            self._add_runtime_dependency()

            logger.info(f"Generating empty {self.generator.artifact_path}")
            self.generator.write({})
        except Exception:
            # Never leave a partial scaffold behind.
            logger.error(f"Scaffold creation failed, removing {self.scaffold_dir}")
            shutil.rmtree(self.scaffold_dir, ignore_errors=True)
            raise

        logger.info('Performing initial build...')
        self._initial_build()

        logger.info('Preview scaffold initialization complete!')
        return True

    def _create_project(self):
        logger.info(f"Creating {self.scaffold_dir}...")
        result = self._run(
            [
                self.config.toolchain,
                'create',
                f"--platforms={','.join(self.config.platforms)}",
                str(self.scaffold_dir),
            ],
            cwd=self.project_root,
        )
        if result.returncode != 0:
            raise ScaffoldError(
                f"'{self.config.toolchain} create' exited with {result.returncode}: {(result.stderr or '').strip()}"
            )
        if not self.scaffold_dir.is_dir():
            logger.error(f"Could not create {self.scaffold_dir}!")
            raise ScaffoldError(f"Could not create {self.scaffold_dir}")

    def _write_entry_point(self):
        entry_point = self.scaffold_dir / self.config.entry_point_path
        logger.info(f"Writing preview scaffolding entry point to {entry_point}...")
        entry_point.parent.mkdir(parents=True, exist_ok=True)
        entry_point.write_text(WIDGET_PREVIEW_SCAFFOLD, encoding='utf-8')

    def _add_runtime_dependency(self):
        logger.info(f"Adding {self.config.runtime_dependency} dependency...")
        result = self._run(
            [
                self.config.toolchain,
                'pub',
                'add',
                f"--directory={self.scaffold_dir}",
                self.config.runtime_dependency,
            ],
            cwd=self.project_root,
        )
        if result.returncode != 0:
            raise ScaffoldError(
                f"Could not add {self.config.runtime_dependency}: {(result.stderr or '').strip()}"
            )

    def _initial_build(self):
        device = platform_utils.device_id()
        result = self._run(
            [
                self.config.toolchain,
                'build',
                # The device id doubles as the build subcommand.
                device,
                f"--device-id={device}",
                '--debug',
            ],
            cwd=self.scaffold_dir,
        )
        if result.returncode != 0:
            logger.warning(
                f"Initial build exited with {result.returncode}; the scaffold will be compiled on run"
            )
