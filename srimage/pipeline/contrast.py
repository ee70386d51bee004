from __future__ import annotations

import math

import numpy as np


def percentile_ceiling(image: np.ndarray, p: float = 99.5, inplace: bool = False) -> np.ndarray:
    """Clip pixels brighter than the ``p``-th percentile down to that percentile.

    The percentile is taken over all pixels with linear interpolation.
    """
    pf = float(p)
    if not (0.0 <= pf <= 100.0):
        raise ValueError(f"Percentile must lie in [0, 100], got {p!r}")
    img = image if inplace else np.array(image, dtype=np.float64, copy=True)
    if img.size == 0:
        return img
    upper = float(np.percentile(img, pf))
    img[img > upper] = upper
    return img


def contrast_stretch(
    image: np.ndarray,
    minval: float = 0.0,
    maxval: float = 1.0,
    inplace: bool = False,
) -> np.ndarray:
    """Linearly map the image range onto ``[minval, maxval]``.

    A constant image has no range to stretch and becomes all ``minval``.
    """
    lo_out, hi_out = float(minval), float(maxval)
    if not (math.isfinite(lo_out) and math.isfinite(hi_out)):
        raise ValueError(f"Stretch bounds must be finite, got ({minval!r}, {maxval!r})")
    img = image if inplace else np.array(image, dtype=np.float64, copy=True)
    if img.size == 0:
        return img

    img -= np.min(img)
    top = float(np.max(img))
    if top > 0.0 and math.isfinite(top):
        img /= top
    else:
        img[...] = 0.0
    img *= hi_out - lo_out
    img += lo_out
    return img
