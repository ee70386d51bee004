from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import logging
import math

import numpy as np

from .debug import RenderTrace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizedImage:
    image: np.ndarray
    normalizable: bool


def flat_image(shape) -> np.ndarray:
    """Uniform image of total mass 1."""
    rows, cols = int(shape[0]), int(shape[1])
    return np.full((rows, cols), 1.0 / (rows * cols), dtype=np.float64)


def normalize_checked(image: np.ndarray, trace: Optional[RenderTrace] = None) -> NormalizedImage:
    """Scale ``image`` so it sums to 1.0 and report whether that was possible.

    A raster with zero, negative or non-finite total mass cannot be scaled;
    it is replaced by a flat image (every pixel ``1 / (rows*cols)``) and
    ``normalizable`` is False.
    """
    img = np.asarray(image, dtype=np.float64)
    if img.ndim != 2 or img.size == 0:
        raise ValueError(f"Expected a non-empty 2-D image, got shape {img.shape}")

    total = float(np.sum(img))
    if not math.isfinite(total) or total <= 0.0:
        msg = f"Image is non-normalizable (sum={total!r}); returning flat image of shape {img.shape}"
        logger.warning(msg)
        if trace is not None:
            trace.warn("normalize", msg)
        return NormalizedImage(image=flat_image(img.shape), normalizable=False)

    return NormalizedImage(image=img / total, normalizable=True)


def normalize(image: np.ndarray, trace: Optional[RenderTrace] = None) -> np.ndarray:
    return normalize_checked(image, trace=trace).image
