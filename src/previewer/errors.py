"""Exceptions raised by previewer."""


class PreviewerError(Exception):
    """Base class for previewer errors."""


class ScaffoldError(PreviewerError):
    """The companion preview project could not be created."""


class UnsupportedPlatformError(PreviewerError):
    """The host operating system has no desktop preview target."""


class SourceParseError(PreviewerError):
    """A source file could not be lexed."""


class ArtifactGenerationError(PreviewerError):
    """The generated preview library could not be rendered or formatted."""


class DaemonProtocolError(PreviewerError):
    """A daemon message looked like a protocol envelope but could not be decoded."""
