"""Client for the toolchain's machine-readable `run` daemon protocol."""

import asyncio
import itertools
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

from .errors import DaemonProtocolError
from .models import DaemonSession

logger = logging.getLogger(__name__)

APP_STARTED = "app.started"
APP_RESTART = "app.restart"

# Maximum length of a single protocol line.
STREAM_LIMIT = 1024 * 1024


@dataclass
class DaemonRequest:
    """A request envelope sent to the daemon's stdin."""

    method: str
    id: int
    params: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def hot_reload(cls, app_id: str, request_id: int) -> "DaemonRequest":
        return cls(APP_RESTART, request_id, {"appId": app_id, "fullRestart": False, "pause": False})

    @classmethod
    def hot_restart(cls, app_id: str, request_id: int) -> "DaemonRequest":
        return cls(APP_RESTART, request_id, {"appId": app_id, "fullRestart": True, "pause": False})

    @property
    def is_full_restart(self) -> bool:
        return bool(self.params.get("fullRestart"))

    def encode(self) -> str:
        return json.dumps([{"method": self.method, "id": self.id, "params": self.params}])


def parse_daemon_line(line: str) -> List[Dict[str, Any]]:
    """Decode one line of daemon output into protocol messages.

    Lines that are not wrapped in brackets or braces are ordinary tool output
    and decode to no messages. Raises DaemonProtocolError for envelopes that
    cannot be decoded.
    """
    text = line.strip()
    if not ((text.startswith("[") and text.endswith("]")) or (text.startswith("{") and text.endswith("}"))):
        return []

    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as e:
        raise DaemonProtocolError(f"Invalid JSON in daemon message {text!r}: {e}") from e

    if isinstance(decoded, dict):
        decoded = [decoded]
    if not isinstance(decoded, list) or not all(isinstance(message, dict) for message in decoded):
        raise DaemonProtocolError(f"Unexpected daemon message shape: {text!r}")
    return decoded


class DaemonClient:
    """Runs the scaffold in machine mode and talks to it over stdio."""

    def __init__(self, command: List[str], cwd: Path):
        self.command = command
        self.cwd = cwd
        self.session = DaemonSession()
        self.sent_requests: List[DaemonRequest] = []
        self.process: Optional[asyncio.subprocess.Process] = None
        self._request_ids = itertools.count(1)
        self._readers: List[asyncio.Task] = []

    @property
    def app_id(self) -> Optional[str]:
        """The running application, or None until it has started."""
        return self.session.app_id if self.session.ready else None

    async def start(self):
        logger.info(f'Running "{" ".join(self.command)}"')
        self.process = await asyncio.create_subprocess_exec(
            *self.command,
            cwd=str(self.cwd),
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=STREAM_LIMIT,
        )
        self.session.attach(self.process.pid)
        self._readers = [
            asyncio.create_task(self._read_stdout()),
            asyncio.create_task(self._read_stderr()),
        ]

    async def _read_lines(self, stream: asyncio.StreamReader) -> AsyncIterator[str]:
        """Yield decoded lines, dropping any line longer than STREAM_LIMIT."""
        skipping = False
        while True:
            try:
                raw = await stream.readuntil(b"\n")
            except asyncio.IncompleteReadError as e:
                if e.partial and not skipping:
                    yield e.partial.decode('utf-8', errors='replace').rstrip('\r\n')
                return
            except asyncio.LimitOverrunError as e:
                if not skipping:
                    logger.warning(f"Skipping preview process output line longer than {STREAM_LIMIT} bytes")
                skipping = True
                await stream.readexactly(e.consumed)
                continue

            if skipping:
                # Tail of an over-long line.
                skipping = False
                continue
            yield raw.decode('utf-8', errors='replace').rstrip('\r\n')

    async def _read_stdout(self):
        async for line in self._read_lines(self.process.stdout):
            logger.info(f"[STDOUT] {line}")
            await self.handle_line(line)

    async def _read_stderr(self):
        async for line in self._read_lines(self.process.stderr):
            if not line:
                continue
            logger.info(f"[STDERR] {line}")

    async def handle_line(self, line: str):
        try:
            messages = parse_daemon_line(line)
        except DaemonProtocolError as e:
            logger.warning(f"Ignoring malformed daemon message: {e}")
            return

        for message in messages:
            await self._dispatch(message)

    async def _dispatch(self, message: Dict[str, Any]):
        event = message.get("event")
        if event is None:
            if "error" in message:
                logger.warning(f"Daemon request {message.get('id')} failed: {message['error']}")
            else:
                logger.debug(f"Daemon response: {message}")
            return

        params = message.get("params") or {}
        if event != APP_STARTED:
            logger.debug(f"Daemon event {event}: {params}")
            return

        app_id = params.get("appId")
        if not isinstance(app_id, str):
            logger.warning(f"Ignoring {APP_STARTED} event without an appId: {message}")
            return
        if self.session.mark_started(app_id):
            logger.info(f"Application {app_id} started")
            # A hot restart on first start makes the app pick up the latest previews.
            await self.request_hot_restart(app_id)

    async def request_hot_reload(self, app_id: str):
        await self._send(DaemonRequest.hot_reload(app_id, next(self._request_ids)))

    async def request_hot_restart(self, app_id: str):
        await self._send(DaemonRequest.hot_restart(app_id, next(self._request_ids)))

    async def _send(self, request: DaemonRequest):
        if self.process is None or self.process.stdin is None:
            logger.warning(f"Daemon is not running; dropping {request.method} request {request.id}")
            return
        self.sent_requests.append(request)
        kind = "restart" if request.is_full_restart else "reload"
        logger.info(f"Requesting hot {kind} of {request.params.get('appId')}")
        try:
            self.process.stdin.write((request.encode() + "\n").encode('utf-8'))
            await self.process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.warning(f"Could not send {request.method} request {request.id}: {e}")

    async def wait(self) -> int:
        """Wait for the process to exit and its output to drain. Returns the exit code."""
        exit_code = await self.process.wait()
        results = await asyncio.gather(*self._readers, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Error reading preview process output: {result}")
        self.session.detach()
        logger.info(f"Preview process exited with code {exit_code}")
        return exit_code

    def stop(self):
        """Terminate the process if it is still running."""
        if self.process is not None and self.process.returncode is None:
            logger.info("Stopping preview process...")
            try:
                self.process.terminate()
            except ProcessLookupError:
                pass
