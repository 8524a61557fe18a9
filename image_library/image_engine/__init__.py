"""Image Engine - pixel buffers and the codec boundary.

This package provides:
- Decoding/encoding through pyvips (decoder)
- Background loading with last-requested-wins delivery (loader)
- The open image and its edits (document)
- Free-hand painting sessions (paint)

Keep this module lightweight: the Qt-based loader is imported directly as
`image_library.image_engine.loader`.
"""

from .document import ImageDocument
from .paint import PaintSession

__all__ = ["ImageDocument", "PaintSession"]
