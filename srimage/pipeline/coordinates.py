from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple, Union

import math

import numpy as np

PixelSize = Union[float, Tuple[float, float]]


def _check_pixel_size(pixel_size: float, name: str = "pixel_size") -> float:
    ps = float(pixel_size)
    if not math.isfinite(ps) or ps <= 0:
        raise ValueError(f"{name} must be a positive finite number, got {pixel_size!r}")
    return ps


# -----------------------------
# Physical <-> pixel mapping
# -----------------------------
# Pixel coordinates are 1-based with (1, 1) at the center of the first pixel,
# i.e. physical (0, 0) is the top-left corner of the grid.

def pixel_to_physical(px, py, pixel_size: float):
    """Pixel coordinates -> physical coordinates (microns).

    Works element-wise on scalars and numpy arrays.
    """
    ps = _check_pixel_size(pixel_size)
    return (px - 0.5) * ps, (py - 0.5) * ps


def physical_to_pixel(x, y, pixel_size: float):
    """Physical coordinates (microns) -> continuous pixel coordinates.

    Example: with 0.1 um pixels, (0.05, 0.05) maps to (1.0, 1.0).
    """
    ps = _check_pixel_size(pixel_size)
    return x / ps + 0.5, y / ps + 0.5


def physical_to_pixel_index(x, y, pixel_size: float):
    """Index of the pixel containing a physical point (nearest pixel center)."""
    px, py = physical_to_pixel(x, y, pixel_size)
    if np.ndim(px) == 0 and np.ndim(py) == 0:
        return int(np.rint(px)), int(np.rint(py))
    return np.rint(px).astype(np.int64), np.rint(py).astype(np.int64)


def pixel_edges(n_pixels: int, pixel_size: float) -> np.ndarray:
    """``n_pixels + 1`` edge positions starting at 0 (microns)."""
    ps = _check_pixel_size(pixel_size)
    n = int(n_pixels)
    if n < 1:
        raise ValueError(f"n_pixels must be >= 1, got {n_pixels!r}")
    return np.arange(n + 1, dtype=np.float64) * ps


def pixel_centers(edges: Sequence[float]) -> np.ndarray:
    e = np.asarray(edges, dtype=np.float64)
    if e.ndim != 1 or e.size < 2:
        raise ValueError("edges must be a 1-D sequence with at least two entries")
    return 0.5 * (e[:-1] + e[1:])


# -----------------------------
# Magnified output grid
# -----------------------------

def magnification(input_pixel_size: float, output_pixel_size: float) -> float:
    inp = _check_pixel_size(input_pixel_size, "input_pixel_size")
    out = _check_pixel_size(output_pixel_size, "output_pixel_size")
    return inp / out


def magnify(p, mag: float):
    """Input-pixel coordinate -> output-pixel coordinate.

    Scales about the grid corner (coordinate 0.5), so input pixel 1 maps to
    the center of its magnified block, ``mag / 2 + 0.5``, and ``mag = 1``
    is the identity.
    """
    return mag * (p - 0.5) + 0.5


def raster_shape(data_size_px: Sequence[float], mag: float) -> Tuple[int, int]:
    """(rows, cols) of the output raster for an ``(x, y)`` extent given in input pixels."""
    sx, sy = float(data_size_px[0]), float(data_size_px[1])
    if not (math.isfinite(sx) and math.isfinite(sy)) or sx < 0 or sy < 0:
        raise ValueError(f"data size must be non-negative and finite, got ({sx}, {sy})")
    if not math.isfinite(mag) or mag <= 0:
        raise ValueError(f"magnification must be positive, got {mag!r}")
    rows = max(1, int(np.rint(sy * mag)))
    cols = max(1, int(np.rint(sx * mag)))
    return rows, cols


# -----------------------------
# Camera grid
# -----------------------------

@dataclass(frozen=True, eq=False)
class IdealCamera:
    """Regular pixel grid described by its pixel edges (microns).

    Pixel (1, 1) is centered at (pixel_size_x / 2, pixel_size_y / 2).
    """

    pixel_edges_x: np.ndarray
    pixel_edges_y: np.ndarray

    def __post_init__(self) -> None:
        for name in ("pixel_edges_x", "pixel_edges_y"):
            e = np.asarray(getattr(self, name), dtype=np.float64)
            if e.ndim != 1 or e.size < 2:
                raise ValueError(f"{name} must contain at least two edges")
            if not np.all(np.diff(e) > 0):
                raise ValueError(f"{name} must be strictly increasing")
            object.__setattr__(self, name, e)

    @classmethod
    def from_pixel_counts(cls, n_x: int, n_y: int, pixel_size: PixelSize) -> "IdealCamera":
        if isinstance(pixel_size, (tuple, list)):
            ps_x, ps_y = float(pixel_size[0]), float(pixel_size[1])
        else:
            ps_x = ps_y = float(pixel_size)
        return cls(pixel_edges(n_x, ps_x), pixel_edges(n_y, ps_y))

    @property
    def shape(self) -> Tuple[int, int]:
        """(rows, cols) = (n_y, n_x)."""
        return self.pixel_edges_y.size - 1, self.pixel_edges_x.size - 1

    @property
    def pixel_size(self) -> Tuple[float, float]:
        return (
            float(self.pixel_edges_x[1] - self.pixel_edges_x[0]),
            float(self.pixel_edges_y[1] - self.pixel_edges_y[0]),
        )

    @property
    def field_of_view(self) -> Tuple[float, float]:
        """(x_extent, y_extent) in microns."""
        return (
            float(self.pixel_edges_x[-1] - self.pixel_edges_x[0]),
            float(self.pixel_edges_y[-1] - self.pixel_edges_y[0]),
        )

    def pixel_centers(self) -> Tuple[np.ndarray, np.ndarray]:
        return pixel_centers(self.pixel_edges_x), pixel_centers(self.pixel_edges_y)
