"""
Previewer - live widget previews for Flutter projects.

Finds functions annotated with @Preview, generates a library that collects
them and keeps a preview app hot reloaded as the project changes.
"""

__version__ = "0.1.0"

from .environment import PreviewEnvironment
from .models import PreviewMapping, PreviewMappingStore

__all__ = ["PreviewEnvironment", "PreviewMapping", "PreviewMappingStore", "__version__"]
