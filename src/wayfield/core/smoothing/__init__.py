"""
Smoothing library.

Curve corner cutting and binary map morphology shared by the road and
distance field generators.
"""

from wayfield.core.smoothing.chaikin import chaikin_smooth, smooth_contour
from wayfield.core.smoothing.morphology import (
    close_binary_map,
    cross_structure,
    dilate_binary_map,
    erode_binary_map,
    mask_map,
    open_binary_map,
    square_structure,
)

__all__ = [
    "chaikin_smooth",
    "smooth_contour",
    "close_binary_map",
    "cross_structure",
    "dilate_binary_map",
    "erode_binary_map",
    "mask_map",
    "open_binary_map",
    "square_structure",
]
