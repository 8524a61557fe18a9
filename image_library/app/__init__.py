"""Application-facing facade.

`ImagePipeline` is the single entry point the UI talks to: it owns the open
document, the description index and the event hub.
"""

from .pipeline import ImagePipeline

__all__ = ["ImagePipeline"]
