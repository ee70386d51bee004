from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple, Optional, Sequence, Tuple

import logging
import time

import numpy as np

from .config import RenderConfig
from .contrast import contrast_stretch, percentile_ceiling
from .coordinates import magnification, physical_to_pixel
from .debug import RenderTrace
from .localizations import LocalizationSet, validate_data_size
from .normalize import normalize_checked
from .render import RasterStats, render_dispatch

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_PIXEL_SIZE_UM = 0.005


@dataclass
class RenderResult:
    image: np.ndarray
    render_mode: str
    friendly: bool
    magnification: float
    input_pixel_size_um: float
    output_pixel_size_um: float
    n_localizations: int
    n_rendered: int
    normalizable: Optional[bool] = None  # None => image was not normalized
    x_offset_um: float = 0.0
    y_offset_um: float = 0.0

    @property
    def n_skipped(self) -> int:
        return self.n_localizations - self.n_rendered


class _Mapped(NamedTuple):
    mag: float
    x_px: np.ndarray
    y_px: np.ndarray
    sigma_x_px: np.ndarray
    sigma_y_px: np.ndarray
    data_size_px: Tuple[float, float]


def _map_to_input_pixels(
    locs: LocalizationSet,
    input_pixel_size: float,
    output_pixel_size: float,
    data_size: Optional[Sequence[float]] = None,
) -> _Mapped:
    """Validate the call and express the set in input-pixel units.

    Everything is checked here, before a raster is allocated.
    """
    mag = magnification(input_pixel_size, output_pixel_size)
    ps = float(input_pixel_size)
    sx_um, sy_um = validate_data_size(locs.data_size if data_size is None else data_size)

    x_px, y_px = physical_to_pixel(locs.x_um, locs.y_um, ps)
    return _Mapped(
        mag=mag,
        x_px=x_px,
        y_px=y_px,
        sigma_x_px=locs.sigma_x_um / ps,
        sigma_y_px=locs.sigma_y_um / ps,
        data_size_px=(sx_um / ps, sy_um / ps),
    )


def _rasterize(
    mode: str,
    locs: LocalizationSet,
    input_pixel_size: float,
    output_pixel_size: float,
    data_size: Optional[Sequence[float]] = None,
    nsigma: float = 5.0,
    engine: str = "numba",
    trace: Optional[RenderTrace] = None,
) -> Tuple[np.ndarray, RasterStats, float]:
    m = _map_to_input_pixels(locs, input_pixel_size, output_pixel_size, data_size)

    t0 = time.perf_counter()
    image, stats = render_dispatch(
        mode,
        m.x_px,
        m.y_px,
        m.sigma_x_px,
        m.sigma_y_px,
        m.data_size_px,
        m.mag,
        nsigma=nsigma,
        engine=engine,
    )
    dt = time.perf_counter() - t0

    if trace is not None:
        trace.log(
            "rasterize",
            f"mode={mode}, mag={m.mag:g}, shape={image.shape[0]}x{image.shape[1]}, "
            f"rendered {stats.n_rendered}/{stats.n_input} in {dt:.3f} s",
        )
        if stats.n_skipped:
            trace.log("rasterize", f"skipped {stats.n_skipped} localizations (invalid uncertainty or coordinates)")
    logger.debug("Rendered %s image %s from %d localizations", mode, image.shape, stats.n_rendered)
    return image, stats, m.mag


# -----------------------------
# Raw images (map + rasterize)
# -----------------------------

def make_binary_image(
    locs: LocalizationSet,
    input_pixel_size: float,
    output_pixel_size: float = DEFAULT_OUTPUT_PIXEL_SIZE_UM,
    data_size: Optional[Sequence[float]] = None,
) -> np.ndarray:
    return _rasterize("binary", locs, input_pixel_size, output_pixel_size, data_size)[0]


def make_histogram_image(
    locs: LocalizationSet,
    input_pixel_size: float,
    output_pixel_size: float = DEFAULT_OUTPUT_PIXEL_SIZE_UM,
    data_size: Optional[Sequence[float]] = None,
) -> np.ndarray:
    return _rasterize("histogram", locs, input_pixel_size, output_pixel_size, data_size)[0]


def make_circle_image(
    locs: LocalizationSet,
    input_pixel_size: float,
    output_pixel_size: float = DEFAULT_OUTPUT_PIXEL_SIZE_UM,
    data_size: Optional[Sequence[float]] = None,
) -> np.ndarray:
    return _rasterize("circle", locs, input_pixel_size, output_pixel_size, data_size)[0]


def make_gaussian_image(
    locs: LocalizationSet,
    input_pixel_size: float,
    output_pixel_size: float = DEFAULT_OUTPUT_PIXEL_SIZE_UM,
    data_size: Optional[Sequence[float]] = None,
    nsigma: float = 5.0,
    engine: str = "numba",
) -> np.ndarray:
    """Sum of truncated 2-D Gaussians, one per localization with valid uncertainty.

    Not normalized: a single localization far from the border sums to ~1.0.
    """
    return _rasterize(
        "gaussian", locs, input_pixel_size, output_pixel_size, data_size, nsigma=nsigma, engine=engine
    )[0]


# -----------------------------
# Friendly images
# -----------------------------

def binary_image(
    locs: LocalizationSet,
    input_pixel_size: float,
    output_pixel_size: float = DEFAULT_OUTPUT_PIXEL_SIZE_UM,
    data_size: Optional[Sequence[float]] = None,
    trace: Optional[RenderTrace] = None,
) -> np.ndarray:
    """Binary image normalized to unit sum (flat image if nothing was drawn)."""
    image = make_binary_image(locs, input_pixel_size, output_pixel_size, data_size)
    return normalize_checked(image, trace=trace).image


def histogram_image(
    locs: LocalizationSet,
    input_pixel_size: float,
    output_pixel_size: float = DEFAULT_OUTPUT_PIXEL_SIZE_UM,
    data_size: Optional[Sequence[float]] = None,
    trace: Optional[RenderTrace] = None,
) -> np.ndarray:
    """Histogram image normalized to unit sum (flat image if nothing was drawn)."""
    image = make_histogram_image(locs, input_pixel_size, output_pixel_size, data_size)
    return normalize_checked(image, trace=trace).image


def circle_image(
    locs: LocalizationSet,
    input_pixel_size: float,
    output_pixel_size: float = DEFAULT_OUTPUT_PIXEL_SIZE_UM,
    data_size: Optional[Sequence[float]] = None,
    stretch_bounds: Tuple[float, float] = (0.0, 1.0),
) -> np.ndarray:
    image = make_circle_image(locs, input_pixel_size, output_pixel_size, data_size)
    return contrast_stretch(image, stretch_bounds[0], stretch_bounds[1], inplace=True)


def gaussian_image(
    locs: LocalizationSet,
    input_pixel_size: float,
    output_pixel_size: float = DEFAULT_OUTPUT_PIXEL_SIZE_UM,
    data_size: Optional[Sequence[float]] = None,
    nsigma: float = 5.0,
    percentile: float = 99.5,
    stretch_bounds: Tuple[float, float] = (0.0, 1.0),
    engine: str = "numba",
) -> np.ndarray:
    """Viewable Gaussian image.

    Renders the raw Gaussian image, clips the brightest pixels at the given
    percentile and stretches the result into ``stretch_bounds``.
    """
    image = make_gaussian_image(locs, input_pixel_size, output_pixel_size, data_size, nsigma=nsigma, engine=engine)
    percentile_ceiling(image, percentile, inplace=True)
    return contrast_stretch(image, stretch_bounds[0], stretch_bounds[1], inplace=True)


# -----------------------------
# Config-driven entry point
# -----------------------------

def render(
    locs: LocalizationSet,
    config: RenderConfig,
    trace: Optional[RenderTrace] = None,
) -> RenderResult:
    """Render ``locs`` as described by ``config``.

    Friendly post-processing per mode: binary/histogram are normalized,
    circle is contrast stretched, gaussian is percentile clipped and
    stretched.
    """
    cfg = config
    cfg.validate()

    x_off = y_off = 0.0
    if cfg.shift_to_origin:
        locs, (x_off, y_off) = locs.shifted_to_origin()
        if trace is not None:
            trace.log("map", f"shifted to origin by ({x_off:.4f} um, {y_off:.4f} um)")

    image, stats, mag = _rasterize(
        cfg.render_mode,
        locs,
        cfg.input_pixel_size_um,
        cfg.output_pixel_size_um,
        data_size=cfg.data_size_um,
        nsigma=cfg.nsigma,
        engine=cfg.compute_engine,
        trace=trace,
    )

    normalizable: Optional[bool] = None
    if cfg.friendly:
        lo, hi = cfg.contrast_stretch_bounds
        if cfg.render_mode in ("binary", "histogram"):
            res = normalize_checked(image, trace=trace)
            image, normalizable = res.image, res.normalizable
        elif cfg.render_mode == "circle":
            image = contrast_stretch(image, lo, hi, inplace=True)
        else:
            percentile_ceiling(image, cfg.percentile_ceiling, inplace=True)
            image = contrast_stretch(image, lo, hi, inplace=True)
            if trace is not None:
                trace.log("enhance", f"percentile ceiling {cfg.percentile_ceiling:g}, stretch to [{lo:g}, {hi:g}]")

    return RenderResult(
        image=image,
        render_mode=cfg.render_mode,
        friendly=bool(cfg.friendly),
        magnification=mag,
        input_pixel_size_um=float(cfg.input_pixel_size_um),
        output_pixel_size_um=float(cfg.output_pixel_size_um),
        n_localizations=stats.n_input,
        n_rendered=stats.n_rendered,
        normalizable=normalizable,
        x_offset_um=x_off,
        y_offset_um=y_off,
    )
