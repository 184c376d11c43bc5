"""Source analysis for finding annotated preview functions in Dart code."""

import logging
import os
import re
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

from .errors import SourceParseError
from .models import DiscoveredSymbol, PreviewMapping

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")
_BRACKETS = {"(": ")", "[": "]", "{": "}"}
_QUOTES = "'\""

# Keywords that rule out a top-level function declaration when they appear
# before the parameter list.
_NON_FUNCTION_KEYWORDS = {
    "class", "enum", "mixin", "extension", "typedef", "import", "export",
    "part", "library", "var", "final", "const", "late", "get", "set", "operator",
}
_BODY_STARTS = {"{}", "=>", ";", "async", "sync"}
_TYPE_PUNCTUATION = {"<", ">", ",", "?", ".", "()"}


class _DartTokenizer:
    """Produces the top-level token stream of a Dart compilation unit.

    Bracketed groups are collapsed into a single token ("()", "[]" or "{}") and
    string literals into "''", so only declarations at the top level are visible.
    """

    def __init__(self, content: str):
        self.src = content
        self.pos = 0
        if content.startswith("#!"):
            newline = content.find("\n")
            self.pos = len(content) if newline == -1 else newline

    def _error(self, message: str):
        line = self.src.count("\n", 0, self.pos) + 1
        raise SourceParseError(f"{message} at line {line}")

    def _at_string_start(self) -> bool:
        src, pos = self.src, self.pos
        if src[pos] in _QUOTES:
            return True
        return src[pos] in "rR" and pos + 1 < len(src) and src[pos + 1] in _QUOTES

    def _skip_trivia(self):
        src = self.src
        while self.pos < len(src):
            if src[self.pos].isspace():
                self.pos += 1
            elif src.startswith("//", self.pos):
                newline = src.find("\n", self.pos)
                self.pos = len(src) if newline == -1 else newline + 1
            elif src.startswith("/*", self.pos):
                self._skip_block_comment()
            else:
                break

    def _skip_block_comment(self):
        # Dart block comments nest.
        src = self.src
        depth = 0
        start = self.pos
        while self.pos < len(src):
            if src.startswith("/*", self.pos):
                depth += 1
                self.pos += 2
            elif src.startswith("*/", self.pos):
                depth -= 1
                self.pos += 2
                if depth == 0:
                    return
            else:
                self.pos += 1
        self.pos = start
        self._error("Unterminated block comment")

    def _skip_string(self):
        src = self.src
        start = self.pos
        raw = src[self.pos] in "rR"
        if raw:
            self.pos += 1
        quote = src[self.pos]
        delimiter = quote * 3 if src.startswith(quote * 3, self.pos) else quote
        self.pos += len(delimiter)

        while self.pos < len(src):
            if src.startswith(delimiter, self.pos):
                self.pos += len(delimiter)
                return
            char = src[self.pos]
            if char == "\n" and len(delimiter) == 1:
                break
            if not raw and char == "\\":
                self.pos += 2
            elif not raw and src.startswith("${", self.pos):
                self.pos += 2
                self._skip_group("{")
            else:
                self.pos += 1

        self.pos = start
        self._error("Unterminated string literal")

    def _skip_group(self, opener: str):
        """Skip to just past the bracket closing `opener` (already consumed)."""
        src = self.src
        closer = _BRACKETS[opener]
        while True:
            self._skip_trivia()
            if self.pos >= len(src):
                self._error(f"Unclosed '{opener}'")
            char = src[self.pos]
            if char == closer:
                self.pos += 1
                return
            if char in ")]}":
                self._error(f"Expected '{closer}' but found '{char}'")
            if char in _BRACKETS:
                self.pos += 1
                self._skip_group(char)
            elif self._at_string_start():
                self._skip_string()
            else:
                match = _IDENTIFIER.match(src, self.pos)
                self.pos = match.end() if match else self.pos + 1

    def tokens(self) -> Iterator[str]:
        src = self.src
        while True:
            self._skip_trivia()
            if self.pos >= len(src):
                return
            char = src[self.pos]
            if char in _BRACKETS:
                self.pos += 1
                self._skip_group(char)
                yield char + _BRACKETS[char]
            elif char in ")]}":
                self._error(f"Unexpected '{char}'")
            elif self._at_string_start():
                self._skip_string()
                yield "''"
            else:
                match = _IDENTIFIER.match(src, self.pos)
                if match:
                    self.pos = match.end()
                    yield match.group()
                elif src.startswith("=>", self.pos):
                    self.pos += 2
                    yield "=>"
                else:
                    self.pos += 1
                    yield char


def _is_identifier(token: str) -> bool:
    return _IDENTIFIER.fullmatch(token) is not None


def _split_declarations(tokens: Iterator[str]) -> Iterator[List[str]]:
    current: List[str] = []
    for token in tokens:
        current.append(token)
        if token == ";":
            yield current
            current = []
        elif token == "{}" and "=" not in current and "=>" not in current:
            yield current
            current = []
    if current:
        yield current


def _read_annotations(tokens: Sequence[str]) -> Tuple[List[str], int]:
    annotations = []
    i = 0
    while i < len(tokens) and tokens[i] == "@":
        i += 1
        parts = []
        if i < len(tokens) and _is_identifier(tokens[i]):
            parts.append(tokens[i])
            i += 1
        while i + 1 < len(tokens) and tokens[i] == "." and _is_identifier(tokens[i + 1]):
            parts.append(tokens[i + 1])
            i += 2
        if i < len(tokens) and tokens[i] == "()":
            i += 1
        annotations.append(".".join(parts))
    return annotations, i


def _function_name(tokens: Sequence[str]) -> Optional[str]:
    """Name of the function declared by `tokens` (annotations removed), if any."""
    for index, token in enumerate(tokens):
        if token in _NON_FUNCTION_KEYWORDS or token in ("=", "=>"):
            return None
        if token != "()" or index + 1 >= len(tokens) or tokens[index + 1] not in _BODY_STARTS:
            continue

        end = index
        # Skip generic type parameters: `List<T> pick<T>(...)`.
        if end > 0 and tokens[end - 1] == ">":
            depth = 0
            for back in range(end - 1, -1, -1):
                if tokens[back] == ">":
                    depth += 1
                elif tokens[back] == "<":
                    depth -= 1
                    if depth == 0:
                        end = back
                        break
            else:
                return None

        if end == 0 or not _is_identifier(tokens[end - 1]):
            return None
        if not all(_is_identifier(t) or t in _TYPE_PUNCTUATION for t in tokens[:end - 1]):
            return None
        return tokens[end - 1]
    return None


def _resolves_to(annotation: str, marker: str) -> bool:
    if annotation == marker:
        return True
    parts = annotation.split(".")
    return len(parts) == 2 and parts[1] == marker


class DartAnalyzer:
    """Analyzes Dart files to find annotated top-level functions."""

    @staticmethod
    def find_annotated_functions(content: str, marker: str) -> List[str]:
        """Return public top-level functions annotated with `marker`, in declaration order.

        Raises SourceParseError if the source cannot be lexed.
        """
        functions = []
        for declaration in _split_declarations(_DartTokenizer(content).tokens()):
            annotations, start = _read_annotations(declaration)
            name = _function_name(declaration[start:])
            if name is None or name.startswith("_"):
                continue
            # Repeated markers on one function count once.
            if any(_resolves_to(annotation, marker) for annotation in annotations):
                functions.append(name)
        return functions


class PreviewScanner:
    """Builds preview mappings for files or whole directory trees."""

    def __init__(self, marker: str = "Preview", source_suffix: str = ".dart",
                 ignore_patterns: Optional[List[str]] = None):
        self.marker = marker
        self.source_suffix = source_suffix
        self.ignore_patterns = list(ignore_patterns or [])
        self.analyzer = DartAnalyzer()

    def should_ignore(self, name: str) -> bool:
        for pattern in self.ignore_patterns:
            if pattern.startswith('*'):
                if name.endswith(pattern[1:]):
                    return True
            elif name == pattern:
                return True
        return False

    def _iter_source_files(self, root: Path) -> Iterator[Path]:
        for current, dirs, files in os.walk(root):
            dirs[:] = sorted(d for d in dirs if not self.should_ignore(d))
            for name in sorted(files):
                if name.endswith(self.source_suffix) and not self.should_ignore(name):
                    yield Path(current) / name

    def scan_file(self, path: Path) -> List[DiscoveredSymbol]:
        """Previews declared in a single file. Unreadable or unparsable files yield none."""
        try:
            content = path.read_text(encoding='utf-8')
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Skipping unreadable file {path}: {e}")
            return []

        try:
            names = self.analyzer.find_annotated_functions(content, self.marker)
        except SourceParseError as e:
            logger.warning(f"Skipping {path}: {e}")
            return []
        uri = file_uri(path)
        return [DiscoveredSymbol(file_uri=uri, name=name) for name in names]

    def find_previews(self, entity: Path) -> PreviewMapping:
        """Search `entity` (a file or a directory) for functions annotated as previews."""
        entity = entity.absolute()
        previews: PreviewMapping = {}

        if entity.is_dir():
            logger.info(f"Finding previews in {entity} ...")
            paths = self._iter_source_files(entity)
        else:
            paths = iter([entity])

        for path in paths:
            for symbol in self.scan_file(path):
                previews.setdefault(symbol.file_uri, []).append(symbol.name)

        for uri, names in previews.items():
            logger.info(f"File path: {uri}")
            logger.info(f"Preview functions: {', '.join(names)}")
        return previews


def file_uri(path: Path) -> str:
    """Canonical identity for a source file: its absolute path with symlinks resolved."""
    return Path(path).resolve().as_uri()
