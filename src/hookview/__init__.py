"""hookview - realtime viewer for AI coding assistant hook events.

Tails the append-only hook event log and streams it to live dashboards
over Server-Sent Events.
"""

from importlib.metadata import version

from hookview.config import ViewerConfig
from hookview.server import ViewerServer

__version__ = version("hookview")
__all__ = ["ViewerConfig", "ViewerServer", "__version__"]
