"""
Binary map morphology.

Maps may be boolean arrays or 8-bit luma arrays (0-255). Luma inputs are
thresholded at half intensity and results are returned in the same
representation as the input.
"""

import numpy as np
from numpy.typing import NDArray
from scipy import ndimage

LUMA_THRESHOLD = 128


def _to_bool(binary_map: NDArray) -> NDArray[np.bool_]:
    arr = np.asarray(binary_map)
    if arr.dtype == np.bool_:
        return arr
    return arr >= LUMA_THRESHOLD


def _like(result: NDArray[np.bool_], template: NDArray) -> NDArray:
    if np.asarray(template).dtype == np.bool_:
        return result
    return np.where(result, 255, 0).astype(np.uint8)


def cross_structure(radius: int) -> NDArray[np.bool_]:
    """
    Plus-shaped structuring element of a given arm length.

    Args:
        radius: Arm length in pixels

    Returns:
        (2r+1, 2r+1) boolean element
    """
    size = 2 * radius + 1
    element = np.zeros((size, size), dtype=bool)
    element[radius, :] = True
    element[:, radius] = True
    return element


def square_structure(radius: int) -> NDArray[np.bool_]:
    """Square structuring element of a given half size."""
    return np.ones((2 * radius + 1, 2 * radius + 1), dtype=bool)


def erode_binary_map(binary_map: NDArray, radius: int) -> NDArray:
    """
    Erode a binary map with a cross-shaped element.

    Pixels whose element reaches outside the map are cleared.

    Args:
        binary_map: Boolean or luma map
        radius: Erosion radius in pixels

    Returns:
        Eroded map
    """
    if radius <= 0:
        return np.array(binary_map, copy=True)
    mask = _to_bool(binary_map)
    eroded = ndimage.binary_erosion(mask, structure=cross_structure(radius), border_value=0)
    return _like(eroded, binary_map)


def dilate_binary_map(binary_map: NDArray, radius: int) -> NDArray:
    """
    Dilate a binary map with a square element.

    Args:
        binary_map: Boolean or luma map
        radius: Dilation radius in pixels

    Returns:
        Dilated map
    """
    if radius <= 0:
        return np.array(binary_map, copy=True)
    mask = _to_bool(binary_map)
    dilated = ndimage.binary_dilation(mask, structure=square_structure(radius))
    return _like(dilated, binary_map)


def open_binary_map(binary_map: NDArray, radius: int, extra_dilation: int = 0) -> NDArray:
    """
    Morphological opening: erosion followed by dilation.

    Removes features thinner than the element while keeping the rest.

    Args:
        binary_map: Boolean or luma map
        radius: Erosion radius in pixels
        extra_dilation: Additional dilation radius to grow the kept features

    Returns:
        Opened map
    """
    return dilate_binary_map(erode_binary_map(binary_map, radius), radius + extra_dilation)


def close_binary_map(binary_map: NDArray, radius: int) -> NDArray:
    """
    Morphological closing: dilation followed by erosion.

    Fills gaps narrower than the element.
    """
    return erode_binary_map(dilate_binary_map(binary_map, radius), radius)


def mask_map(source: NDArray, mask: NDArray, threshold: int = 30) -> NDArray:
    """
    Zero every source pixel outside a mask.

    Args:
        source: Map to mask
        mask: Boolean or luma mask; luma pixels count when above threshold
        threshold: Luma threshold for luma masks

    Returns:
        Masked copy of source
    """
    source_arr = np.array(source, copy=True)
    mask_arr = np.asarray(mask)
    keep = mask_arr if mask_arr.dtype == np.bool_ else mask_arr > threshold

    rows = min(source_arr.shape[0], keep.shape[0])
    cols = min(source_arr.shape[1], keep.shape[1])
    region = source_arr[:rows, :cols]
    region[~keep[:rows, :cols]] = 0
    return source_arr
