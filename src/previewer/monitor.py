"""File system monitoring and preview reconciliation for previewer."""

import asyncio
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .analyzer import PreviewScanner, file_uri
from .errors import ArtifactGenerationError
from .generator import ArtifactGenerator
from .models import PreviewMappingStore, WatchEvent, WatchEventKind

logger = logging.getLogger(__name__)

_EVENT_KINDS = {
    'created': WatchEventKind.ADDED,
    'modified': WatchEventKind.MODIFIED,
    'deleted': WatchEventKind.REMOVED,
}


class ReconcilerState(Enum):
    IDLE = "idle"
    RESCANNING = "rescanning"
    REGENERATING = "regenerating"


def to_watch_events(event: FileSystemEvent) -> List[WatchEvent]:
    """Translate a watchdog event. A move becomes a removal plus an addition."""
    if event.is_directory:
        return []
    src_path = Path(os.fsdecode(event.src_path))
    if event.event_type == 'moved':
        dest_path = Path(os.fsdecode(event.dest_path))
        return [
            WatchEvent(src_path, WatchEventKind.REMOVED),
            WatchEvent(dest_path, WatchEventKind.ADDED),
        ]
    kind = _EVENT_KINDS.get(event.event_type)
    if kind is None:
        return []
    return [WatchEvent(src_path, kind)]


class PreviewReconciler:
    """Keeps the preview mapping, the generated artifact and the running app in sync.

    Events are queued and handled by a single consumer so that each
    rescan -> regenerate -> reload sequence completes before the next starts.
    """

    def __init__(
        self,
        store: PreviewMappingStore,
        scanner: PreviewScanner,
        generator: ArtifactGenerator,
        daemon,
        root: Optional[Path] = None,
        artifact_stale: bool = False,
    ):
        self.store = store
        self.scanner = scanner
        self.generator = generator
        self.daemon = daemon
        self.root = root
        self.state = ReconcilerState.IDLE
        self.queue: asyncio.Queue = asyncio.Queue()
        # Set while the artifact on disk lags behind the store.
        self.artifact_stale = artifact_stale

    def is_relevant(self, path: Path) -> bool:
        """Source files under the root, outside ignored names, other than the artifact."""
        if not path.name.endswith(self.scanner.source_suffix):
            return False
        if os.path.abspath(path) == os.path.abspath(self.generator.artifact_path):
            return False
        parts = path.parts
        if self.root is not None:
            try:
                parts = Path(os.path.abspath(path)).relative_to(os.path.abspath(self.root)).parts
            except ValueError:
                return False
        return not any(self.scanner.should_ignore(part) for part in parts)

    def submit(self, event: WatchEvent):
        self.queue.put_nowait(event)

    async def run(self):
        """Consume queued events until cancelled."""
        while True:
            event = await self.queue.get()
            try:
                await self.reconcile(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error handling change to {event.path}: {e}", exc_info=True)
            finally:
                self.queue.task_done()

    async def reconcile(self, event: WatchEvent) -> bool:
        """Handle one event. Returns True when the artifact was regenerated."""
        if not self.is_relevant(event.path):
            return False

        self.state = ReconcilerState.RESCANNING
        uri = file_uri(event.path)
        logger.info(f"Detected change in {uri}")

        if event.kind is WatchEventKind.REMOVED:
            previews = []
        else:
            symbols = await asyncio.to_thread(self.scanner.scan_file, event.path)
            previews = [symbol.name for symbol in symbols]
        logger.info(f"Updated previews for {uri}: {previews}")

        changed = self.store.update(uri, previews)
        if not changed and not self.artifact_stale:
            logger.debug(f"Previews for {uri} are unchanged")
            self.state = ReconcilerState.IDLE
            return False

        self.state = ReconcilerState.REGENERATING
        try:
            # Off the event loop: formatting waits on a subprocess.
            await asyncio.to_thread(self.generator.write, self.store.snapshot())
        except ArtifactGenerationError as e:
            logger.error(f"Failed to regenerate previews, keeping the previous version: {e}")
            self.artifact_stale = True
            self.state = ReconcilerState.IDLE
            return False
        self.artifact_stale = False

        app_id = self.daemon.app_id
        if app_id is None:
            logger.info("Application has not started yet, skipping reload")
        else:
            logger.info(f"Performing reload for {uri}...")
            await self.daemon.request_hot_reload(app_id)

        self.state = ReconcilerState.IDLE
        return True


class PreviewEventHandler(FileSystemEventHandler):
    """Forwards watchdog events from the observer thread to the event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, submit: Callable[[WatchEvent], None]):
        self.loop = loop
        self.submit = submit

    def on_any_event(self, event: FileSystemEvent):
        for watch_event in to_watch_events(event):
            logger.debug(f"Event received: {watch_event.kind.value} for {watch_event.path}")
            self.loop.call_soon_threadsafe(self.submit, watch_event)


class ProjectWatcher:
    """Watch a project tree recursively."""

    def __init__(self, root: Path, handler: FileSystemEventHandler):
        self.root = root
        self.handler = handler
        self.observer: Optional[Observer] = None

    def start(self):
        if self.observer is not None:
            return
        self.observer = Observer()
        watch_path = str(self.root.resolve())
        self.observer.schedule(self.handler, watch_path, recursive=True)
        self.observer.start()
        logger.info(f"Started watching {watch_path}")

    def stop(self):
        if self.observer is None:
            return
        try:
            self.observer.stop()
            self.observer.join(timeout=5)
        finally:
            self.observer = None
        logger.info(f"Stopped watching {self.root}")
