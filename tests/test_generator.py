"""Tests for generation of the preview library."""

import tempfile
from pathlib import Path

import pytest

from previewer.errors import ArtifactGenerationError
from previewer.generator import ArtifactGenerator, DartFormatter, render_previews_library


class IdentityFormatter:
    def format(self, source: str) -> str:
        return source


class FailingFormatter:
    def format(self, source: str) -> str:
        raise ArtifactGenerationError("dart format exited with 65")


def test_empty_mapping_returns_empty_list():
    """No previews renders an empty list and no file imports."""
    source = render_previews_library({})

    assert "import 'package:widget_preview/widget_preview.dart';" in source
    assert "List<WidgetPreview> previews() => [\n];" in source
    assert "..." not in source
    assert " as _i" not in source


def test_single_preview_is_invoked_once():
    source = render_previews_library({"file:///project/lib/x.dart": ["previewA"]})

    assert "import 'file:///project/lib/x.dart' as _i1;" in source
    assert source.count("previewA()") == 1
    assert "..._i1.previewA()," in source


def test_previews_are_spread_in_mapping_order():
    """Each file gets its own prefix and each function is spread in order."""
    source = render_previews_library({
        "file:///project/lib/b.dart": ["b1", "b2"],
        "file:///project/lib/a.dart": ["a1"],
    })

    calls = [line.strip() for line in source.splitlines() if line.strip().startswith("...")]
    assert calls == ["..._i1.b1(),", "..._i1.b2(),", "..._i2.a1(),"]
    assert "import 'file:///project/lib/a.dart' as _i2;" in source


def test_rendering_is_deterministic():
    """The same mapping always renders identical bytes."""
    previews = {"file:///project/lib/a.dart": ["a1", "a2"], "file:///project/lib/b.dart": ["b1"]}

    assert render_previews_library(previews) == render_previews_library(dict(previews))


def test_generator_writes_formatted_artifact():
    with tempfile.TemporaryDirectory() as tmpdir:
        artifact = Path(tmpdir) / "lib" / "generated_preview.dart"
        generator = ArtifactGenerator(artifact, formatter=IdentityFormatter())

        previews = {"file:///project/lib/x.dart": ["previewA"]}
        generator.write(previews)
        first = artifact.read_bytes()
        generator.write(previews)

        assert artifact.read_bytes() == first
        assert "previewA()" in artifact.read_text()
        assert [p.name for p in artifact.parent.iterdir()] == ["generated_preview.dart"]


def test_formatting_failure_keeps_previous_artifact():
    """A failed generation leaves the last good file untouched."""
    with tempfile.TemporaryDirectory() as tmpdir:
        artifact = Path(tmpdir) / "generated_preview.dart"
        ArtifactGenerator(artifact, formatter=IdentityFormatter()).write({"file:///x.dart": ["previewA"]})
        before = artifact.read_text()

        generator = ArtifactGenerator(artifact, formatter=FailingFormatter())
        with pytest.raises(ArtifactGenerationError):
            generator.write({"file:///x.dart": ["previewB"]})

        assert artifact.read_text() == before


def test_dart_formatter_reports_missing_executable():
    """An executable that cannot be started is a generation error."""
    formatter = DartFormatter(executable="previewer-test-no-such-dart-binary")

    with pytest.raises(ArtifactGenerationError):
        formatter.format("void main() {}\n")
