from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Sequence, Tuple

import math

import numpy as np
from numba import njit
from scipy.stats import norm

from .coordinates import magnify, raster_shape

RenderMode = Literal["binary", "histogram", "circle", "gaussian"]
ComputeEngine = Literal["reference", "numba"]

RENDER_MODES: Tuple[str, ...] = ("binary", "histogram", "circle", "gaussian")
COMPUTE_ENGINES: Tuple[str, ...] = ("reference", "numba")

_INV_SQRT_2PI = 1.0 / math.sqrt(2.0 * math.pi)

# All functions in this module work in *input pixel* units: coordinates are
# 1-based continuous pixel coordinates (pixel (1, 1) centered at (1.0, 1.0)),
# uncertainties are in input pixels and ``data_size_px`` is the (x, y) extent
# in input pixels. Rasters are indexed [row, col] = [y, x].


@dataclass(frozen=True)
class RasterStats:
    n_input: int
    n_rendered: int

    @property
    def n_skipped(self) -> int:
        return self.n_input - self.n_rendered


def _column(v: Optional[Sequence[float]], n: int) -> np.ndarray:
    if v is None:
        return np.zeros((n,), dtype=np.float64)
    arr = np.ascontiguousarray(v, dtype=np.float64).ravel()
    if arr.size == 1 and n != 1:
        arr = np.full((n,), float(arr[0]), dtype=np.float64)
    if arr.size != n:
        raise ValueError(f"Expected {n} values, got {arr.size}")
    return arr


def _check_nsigma(nsigma: float) -> float:
    ns = float(nsigma)
    if not math.isfinite(ns) or ns <= 0:
        raise ValueError(f"nsigma must be a positive finite number, got {nsigma!r}")
    return ns


def renderable_mask(
    mode: str,
    x_px: np.ndarray,
    y_px: np.ndarray,
    sigma_x_px: Optional[np.ndarray] = None,
    sigma_y_px: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Boolean mask of the localizations a given mode will draw.

    Non-finite coordinates are never drawn. Circle and Gaussian modes also
    drop localizations with non-positive or non-finite uncertainty (the circle
    uses the mean of both axes as its radius).
    """
    x = np.asarray(x_px, dtype=np.float64).ravel()
    y = np.asarray(y_px, dtype=np.float64).ravel()
    ok = np.isfinite(x) & np.isfinite(y)
    if mode in ("binary", "histogram"):
        return ok
    sx = _column(sigma_x_px, x.size)
    sy = _column(sigma_y_px, x.size)
    with np.errstate(invalid="ignore"):
        if mode == "circle":
            r = 0.5 * (sx + sy)
            return ok & np.isfinite(r) & (r > 0)
        if mode == "gaussian":
            return ok & np.isfinite(sx) & np.isfinite(sy) & (sx > 0) & (sy > 0)
    raise ValueError(f"Unknown render mode: {mode}")


def _nearest_output_indices(
    x_px: np.ndarray,
    y_px: np.ndarray,
    shape: Tuple[int, int],
    mag: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """0-based (rows, cols) of the nearest output pixel, clamped into the raster."""
    nrows, ncols = shape
    cx = magnify(x_px, mag)
    cy = magnify(y_px, mag)
    rows = np.rint(np.clip(cy, 1.0, float(nrows))).astype(np.int64) - 1
    cols = np.rint(np.clip(cx, 1.0, float(ncols))).astype(np.int64) - 1
    return rows, cols


# -----------------------------
# Point modes
# -----------------------------

def render_binary(
    x_px: np.ndarray,
    y_px: np.ndarray,
    data_size_px: Sequence[float],
    mag: float,
) -> np.ndarray:
    """Hot-pixel image: every pixel holding at least one localization is 1.0."""
    shape = raster_shape(data_size_px, mag)
    image = np.zeros(shape, dtype=np.float64)
    x = np.asarray(x_px, dtype=np.float64).ravel()
    y = np.asarray(y_px, dtype=np.float64).ravel()
    keep = renderable_mask("binary", x, y)
    rows, cols = _nearest_output_indices(x[keep], y[keep], shape, mag)
    image[rows, cols] = 1.0
    return image


def render_histogram(
    x_px: np.ndarray,
    y_px: np.ndarray,
    data_size_px: Sequence[float],
    mag: float,
) -> np.ndarray:
    """Count image: +1.0 per localization in its nearest output pixel."""
    shape = raster_shape(data_size_px, mag)
    image = np.zeros(shape, dtype=np.float64)
    x = np.asarray(x_px, dtype=np.float64).ravel()
    y = np.asarray(y_px, dtype=np.float64).ravel()
    keep = renderable_mask("histogram", x, y)
    rows, cols = _nearest_output_indices(x[keep], y[keep], shape, mag)
    # unbuffered: repeated indices accumulate
    np.add.at(image, (rows, cols), 1.0)
    return image


# -----------------------------
# Circle (ring overlay)
# -----------------------------

def circle_sample_count(radius_px: float) -> int:
    """Number of angular samples for a ring of the given radius (output pixels)."""
    # 4x oversampling of the circumference keeps the drawn ring closed
    return max(4, int(math.ceil(4.0 * 2.0 * math.pi * float(radius_px))))


def render_circle(
    x_px: np.ndarray,
    y_px: np.ndarray,
    sigma_x_px: np.ndarray,
    sigma_y_px: np.ndarray,
    data_size_px: Sequence[float],
    mag: float,
) -> np.ndarray:
    """Draw a ring of radius mean(sigma_x, sigma_y) around every localization."""
    shape = raster_shape(data_size_px, mag)
    nrows, ncols = shape
    image = np.zeros(shape, dtype=np.float64)

    x = np.asarray(x_px, dtype=np.float64).ravel()
    y = np.asarray(y_px, dtype=np.float64).ravel()
    sx = _column(sigma_x_px, x.size)
    sy = _column(sigma_y_px, x.size)
    keep = renderable_mask("circle", x, y, sx, sy)

    cx = magnify(x[keep], mag)
    cy = magnify(y[keep], mag)
    radius = 0.5 * (sx[keep] + sy[keep]) * mag

    for x0, y0, r in zip(cx, cy, radius):
        if not (math.isfinite(r) and r > 0 and math.isfinite(x0) and math.isfinite(y0)):
            continue
        theta = np.linspace(0.0, 2.0 * np.pi, circle_sample_count(r))
        rows = np.rint(y0 + r * np.sin(theta))
        cols = np.rint(x0 + r * np.cos(theta))
        valid = (rows >= 1) & (rows < nrows) & (cols >= 1) & (cols < ncols)
        if not np.any(valid):
            continue
        image[rows[valid].astype(np.int64) - 1, cols[valid].astype(np.int64) - 1] = 1.0
    return image


# -----------------------------
# Gaussian (truncated density splat)
# -----------------------------

def _gaussian_window(center: float, sigma: float, nsigma: float, size: int) -> Optional[Tuple[int, int]]:
    """Inclusive 1-based pixel range covering center +/- nsigma*sigma, clipped to [1, size]."""
    half = nsigma * sigma
    lo = float(np.ceil(center - half))
    hi = float(np.floor(center + half))
    if lo < 1.0:
        lo = 1.0
    if hi > float(size):
        hi = float(size)
    if not lo <= hi:
        return None
    return int(lo), int(hi)


def render_gaussian_reference(
    x_px: np.ndarray,
    y_px: np.ndarray,
    sigma_x_px: np.ndarray,
    sigma_y_px: np.ndarray,
    data_size_px: Sequence[float],
    mag: float,
    nsigma: float = 5.0,
) -> np.ndarray:
    """Reference Gaussian renderer (one vectorized window per localization).

    Every localization adds the separable product of two normal densities,
    N(row; cy, sy*mag) * N(col; cx, sx*mag), evaluated at the pixel centers
    inside its nsigma window. Slow for large tables but easy to audit.
    """
    ns = _check_nsigma(nsigma)
    shape = raster_shape(data_size_px, mag)
    nrows, ncols = shape
    image = np.zeros(shape, dtype=np.float64)

    x = np.asarray(x_px, dtype=np.float64).ravel()
    y = np.asarray(y_px, dtype=np.float64).ravel()
    sx = _column(sigma_x_px, x.size)
    sy = _column(sigma_y_px, x.size)
    keep = renderable_mask("gaussian", x, y, sx, sy)

    cx = magnify(x[keep], mag)
    cy = magnify(y[keep], mag)
    sxm = sx[keep] * mag
    sym = sy[keep] * mag

    for x0, y0, sx0, sy0 in zip(cx, cy, sxm, sym):
        if not (sx0 > 0 and sy0 > 0 and math.isfinite(x0) and math.isfinite(y0)):
            continue
        win_r = _gaussian_window(y0, sy0, ns, nrows)
        win_c = _gaussian_window(x0, sx0, ns, ncols)
        if win_r is None or win_c is None:
            continue
        r0, r1 = win_r
        c0, c1 = win_c

        with np.errstate(over="ignore", invalid="ignore", divide="ignore"):
            gy = norm.pdf(np.arange(r0, r1 + 1, dtype=np.float64), loc=y0, scale=sy0)
            gx = norm.pdf(np.arange(c0, c1 + 1, dtype=np.float64), loc=x0, scale=sx0)
            patch = np.outer(gy, gx)
        patch[~np.isfinite(patch)] = 0.0
        image[r0 - 1:r1, c0 - 1:c1] += patch
    return image


@njit(cache=True, fastmath=False)
def _fill_gaussian_numba(
    image: np.ndarray,
    cx: np.ndarray,
    cy: np.ndarray,
    sx: np.ndarray,
    sy: np.ndarray,
    nsigma: float,
) -> None:
    nrows = image.shape[0]
    ncols = image.shape[1]

    for n in range(cx.size):
        x0 = cx[n]
        y0 = cy[n]
        sx0 = sx[n]
        sy0 = sy[n]
        if not (sx0 > 0.0 and sy0 > 0.0):
            continue
        if not (math.isfinite(x0) and math.isfinite(y0) and math.isfinite(sx0) and math.isfinite(sy0)):
            continue

        # window in 1-based output pixels, clipped in floating point
        r_lo = np.ceil(y0 - nsigma * sy0)
        r_hi = np.floor(y0 + nsigma * sy0)
        c_lo = np.ceil(x0 - nsigma * sx0)
        c_hi = np.floor(x0 + nsigma * sx0)
        if r_lo < 1.0:
            r_lo = 1.0
        if c_lo < 1.0:
            c_lo = 1.0
        if r_hi > float(nrows):
            r_hi = float(nrows)
        if c_hi > float(ncols):
            c_hi = float(ncols)
        if r_lo > r_hi or c_lo > c_hi:
            continue

        norm_y = _INV_SQRT_2PI / sy0
        norm_x = _INV_SQRT_2PI / sx0
        for i in range(int(r_lo), int(r_hi) + 1):
            dy = (i - y0) / sy0
            gy = math.exp(-0.5 * dy * dy) * norm_y
            if gy == 0.0:
                continue
            for j in range(int(c_lo), int(c_hi) + 1):
                dx = (j - x0) / sx0
                val = gy * (math.exp(-0.5 * dx * dx) * norm_x)
                if math.isfinite(val):
                    image[i - 1, j - 1] += val


def render_gaussian_numba(
    x_px: np.ndarray,
    y_px: np.ndarray,
    sigma_x_px: np.ndarray,
    sigma_y_px: np.ndarray,
    data_size_px: Sequence[float],
    mag: float,
    nsigma: float = 5.0,
) -> np.ndarray:
    """JIT-compiled Gaussian renderer; same result as :func:`render_gaussian_reference`."""
    ns = _check_nsigma(nsigma)
    shape = raster_shape(data_size_px, mag)
    image = np.zeros(shape, dtype=np.float64)

    x = np.asarray(x_px, dtype=np.float64).ravel()
    y = np.asarray(y_px, dtype=np.float64).ravel()
    sx = _column(sigma_x_px, x.size)
    sy = _column(sigma_y_px, x.size)
    keep = renderable_mask("gaussian", x, y, sx, sy)

    with np.errstate(over="ignore", invalid="ignore"):
        cx = np.ascontiguousarray(magnify(x[keep], mag), dtype=np.float64)
        cy = np.ascontiguousarray(magnify(y[keep], mag), dtype=np.float64)
        sxm = np.ascontiguousarray(sx[keep] * mag, dtype=np.float64)
        sym = np.ascontiguousarray(sy[keep] * mag, dtype=np.float64)

    _fill_gaussian_numba(image, cx, cy, sxm, sym, ns)
    return image


def render_gaussian(
    x_px: np.ndarray,
    y_px: np.ndarray,
    sigma_x_px: np.ndarray,
    sigma_y_px: np.ndarray,
    data_size_px: Sequence[float],
    mag: float,
    nsigma: float = 5.0,
    engine: str = "numba",
) -> np.ndarray:
    if engine == "numba":
        return render_gaussian_numba(x_px, y_px, sigma_x_px, sigma_y_px, data_size_px, mag, nsigma)
    if engine == "reference":
        return render_gaussian_reference(x_px, y_px, sigma_x_px, sigma_y_px, data_size_px, mag, nsigma)
    raise ValueError(f"Unknown compute engine: {engine}")


def render_dispatch(
    mode: str,
    x_px: np.ndarray,
    y_px: np.ndarray,
    sigma_x_px: Optional[np.ndarray],
    sigma_y_px: Optional[np.ndarray],
    data_size_px: Sequence[float],
    mag: float,
    nsigma: float = 5.0,
    engine: str = "numba",
) -> Tuple[np.ndarray, RasterStats]:
    """Render one mode and report how many localizations were drawn."""
    if mode not in RENDER_MODES:
        raise ValueError(f"Unknown render mode: {mode}")
    if mode == "gaussian" and engine not in COMPUTE_ENGINES:
        raise ValueError(f"Unknown compute engine: {engine}")

    x = np.asarray(x_px, dtype=np.float64).ravel()
    y = np.asarray(y_px, dtype=np.float64).ravel()
    sx = _column(sigma_x_px, x.size)
    sy = _column(sigma_y_px, x.size)
    stats = RasterStats(n_input=int(x.size), n_rendered=int(np.count_nonzero(renderable_mask(mode, x, y, sx, sy))))

    if mode == "binary":
        return render_binary(x, y, data_size_px, mag), stats
    if mode == "histogram":
        return render_histogram(x, y, data_size_px, mag), stats
    if mode == "circle":
        return render_circle(x, y, sx, sy, data_size_px, mag), stats
    return render_gaussian(x, y, sx, sy, data_size_px, mag, nsigma=nsigma, engine=engine), stats
