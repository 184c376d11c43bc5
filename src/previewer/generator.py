"""Generation of the aggregated preview library inside the scaffold project."""

import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Optional

from .errors import ArtifactGenerationError
from .models import PreviewMapping

logger = logging.getLogger(__name__)

GENERATED_HEADER = (
    "// GENERATED CODE - DO NOT MODIFY BY HAND\n"
    "// Regenerated by previewer whenever annotated previews change.\n"
)


def render_previews_library(
    previews: PreviewMapping,
    runtime_import: str = "package:widget_preview/widget_preview.dart",
    descriptor_type: str = "WidgetPreview",
) -> str:
    """Render the unformatted Dart source of the preview library.

    Each source file gets a numbered import prefix in mapping order and every
    preview function is spread into the returned list.
    """
    prefixes = {uri: f"_i{index}" for index, uri in enumerate(previews, start=1)}

    lines = [GENERATED_HEADER, f"import '{runtime_import}';"]
    for uri, prefix in prefixes.items():
        lines.append(f"import '{uri}' as {prefix};")
    lines.append("")
    lines.append(f"List<{descriptor_type}> previews() => [")
    for uri, names in previews.items():
        for name in names:
            lines.append(f"  ...{prefixes[uri]}.{name}(),")
    lines.append("];")
    return "\n".join(lines) + "\n"


class DartFormatter:
    """Formats Dart source with `dart format` reading from stdin."""

    def __init__(self, executable: str = "dart", stdin_name: str = "generated_preview.dart"):
        self.executable = executable
        self.stdin_name = stdin_name

    def format(self, source: str) -> str:
        args = [self.executable, "format", f"--stdin-name={self.stdin_name}"]
        try:
            result = subprocess.run(args, input=source, capture_output=True, text=True, check=False)
        except OSError as e:
            raise ArtifactGenerationError(f"Could not run '{self.executable} format': {e}") from e

        if result.returncode != 0:
            raise ArtifactGenerationError(
                f"'{self.executable} format' exited with {result.returncode}: {result.stderr.strip()}"
            )
        return result.stdout


def write_durably(path: Path, content: str):
    """Replace `path` with `content`, flushed to disk before returning."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class ArtifactGenerator:
    """Writes the preview library that the scaffold's entry point imports."""

    def __init__(
        self,
        artifact_path: Path,
        formatter: Optional[DartFormatter] = None,
        runtime_import: str = "package:widget_preview/widget_preview.dart",
        descriptor_type: str = "WidgetPreview",
    ):
        self.artifact_path = artifact_path
        self.formatter = formatter or DartFormatter(stdin_name=artifact_path.name)
        self.runtime_import = runtime_import
        self.descriptor_type = descriptor_type

    def render(self, previews: PreviewMapping) -> str:
        source = render_previews_library(previews, self.runtime_import, self.descriptor_type)
        return self.formatter.format(source)

    def write(self, previews: PreviewMapping) -> Path:
        """Render, format and write the artifact.

        On ArtifactGenerationError the file on disk is left as it was.
        """
        content = self.render(previews)
        write_durably(self.artifact_path, content)
        count = sum(len(names) for names in previews.values())
        logger.info(f"Wrote {count} preview(s) from {len(previews)} file(s) to {self.artifact_path}")
        return self.artifact_path
