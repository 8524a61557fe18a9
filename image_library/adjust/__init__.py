"""Tonal adjustments on decoded pixel buffers."""

from .adjustments import AdjustmentPreview, adjust, contrast_factor

__all__ = ["AdjustmentPreview", "adjust", "contrast_factor"]
