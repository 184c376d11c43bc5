"""Host platform helpers for building and running the scaffold."""

import platform
from pathlib import Path

from .errors import UnsupportedPlatformError

SCAFFOLD_APP_NAME = "preview_scaffold"

_DEVICE_IDS = {
    "Linux": "linux",
    "Darwin": "macos",
    "Windows": "windows",
}


def device_id() -> str:
    """Device id of the host desktop. It also names the `build` subcommand."""
    system = platform.system()
    try:
        return _DEVICE_IDS[system]
    except KeyError:
        raise UnsupportedPlatformError(f"Widget previews are not supported on {system or 'this platform'}") from None


def _linux_arch() -> str:
    return "arm64" if platform.machine().lower() in ("aarch64", "arm64") else "x64"


def prebuilt_application_binary(scaffold_dir: Path, app_name: str = SCAFFOLD_APP_NAME) -> Path:
    """Location of the debug binary produced by the initial build."""
    device = device_id()
    if device == "linux":
        return scaffold_dir / "build" / "linux" / _linux_arch() / "debug" / "bundle" / app_name
    if device == "macos":
        return scaffold_dir / "build" / "macos" / "Build" / "Products" / "Debug" / f"{app_name}.app"
    return scaffold_dir / "build" / "windows" / "x64" / "runner" / "Debug" / f"{app_name}.exe"
