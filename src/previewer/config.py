"""Configuration management for previewer using pydantic-settings and platformdirs."""

from pathlib import Path
from typing import List

from platformdirs import user_state_dir
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GlobalConfig(BaseSettings):
    """Global configuration for previewer."""

    model_config = SettingsConfigDict(
        env_prefix="PREVIEWER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra environment variables
    )

    development_mode: bool = Field(
        default=False,
        description="Delete and recreate the preview scaffold on every start",
    )

    # Companion project layout, relative to the watched project root
    scaffold_path: str = Field(default=".dart_tool/preview_scaffold")
    entry_point_path: str = Field(default="lib/main.dart")
    artifact_path: str = Field(default="lib/generated_preview.dart")

    # External toolchain
    toolchain: str = Field(default="flutter", description="Executable used to create, build and run the scaffold")
    dart_executable: str = Field(default="dart", description="Executable used to format generated code")
    platforms: List[str] = Field(default=["windows", "linux", "macos"])

    # Preview discovery
    source_suffix: str = Field(default=".dart")
    marker_annotation: str = Field(default="Preview")
    ignore_patterns: List[str] = Field(
        default=['.git', '.dart_tool', 'build', '.idea', '.vscode', '.fvm']
    )

    # Preview runtime support library
    runtime_import: str = Field(default="package:widget_preview/widget_preview.dart")
    runtime_dependency: str = Field(default='widget_preview:{"path":"../widget_preview"}')
    descriptor_type: str = Field(default="WidgetPreview")


def state_dir() -> Path:
    """Directory for logs and other runtime state."""
    path = Path(user_state_dir("previewer", "previewer"))
    path.mkdir(parents=True, exist_ok=True)
    return path
