"""Data models for previewer."""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

# File URI -> preview function names in declaration order.
PreviewMapping = Dict[str, List[str]]


@dataclass(frozen=True)
class DiscoveredSymbol:
    """A preview function found by the scanner."""

    file_uri: str
    name: str


class WatchEventKind(Enum):
    ADDED = "add"
    MODIFIED = "modify"
    REMOVED = "remove"


@dataclass(frozen=True)
class WatchEvent:
    """A single filesystem change under the watched project."""

    path: Path
    kind: WatchEventKind


@dataclass
class DaemonSession:
    """State of one companion `run` process."""

    pid: Optional[int] = None
    app_id: Optional[str] = None
    attached: bool = False

    def attach(self, pid: int):
        self.pid = pid
        self.attached = True

    def mark_started(self, app_id: str) -> bool:
        """Record the application id. Returns True only for the first call."""
        if self.app_id is not None:
            logger.debug(f"Ignoring repeated app start for {app_id} (current: {self.app_id})")
            return False
        self.app_id = app_id
        return True

    @property
    def ready(self) -> bool:
        return self.attached and self.app_id is not None

    def detach(self):
        self.attached = False


class PreviewMappingStore:
    """In-memory map of source files to the previews they declare.

    Files without previews never have an entry.
    """

    def __init__(self):
        self._previews: PreviewMapping = {}

    def replace(self, previews: PreviewMapping):
        """Replace the whole mapping, e.g. with the result of a full scan."""
        self._previews = {uri: list(names) for uri, names in previews.items() if names}

    def update(self, file_uri: str, symbols: List[str]) -> bool:
        """Apply the scan result for a single file and report whether anything changed."""
        if not symbols:
            if file_uri in self._previews:
                del self._previews[file_uri]
                return True
            return False

        if self._previews.get(file_uri) == symbols:
            return False

        # Existing keys keep their position so the generated output stays stable.
        self._previews[file_uri] = list(symbols)
        return True

    def snapshot(self) -> PreviewMapping:
        return {uri: list(names) for uri, names in self._previews.items()}

    def __len__(self) -> int:
        return len(self._previews)
