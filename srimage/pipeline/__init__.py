from __future__ import annotations

from .config import RenderConfig, preset_preview, preset_publication, preset_reference
from .contrast import contrast_stretch, percentile_ceiling
from .coordinates import (
    IdealCamera,
    magnification,
    physical_to_pixel,
    physical_to_pixel_index,
    pixel_edges,
    pixel_to_physical,
)
from .localizations import Localization, LocalizationSet
from .normalize import normalize, normalize_checked
from .pipeline import (
    RenderResult,
    binary_image,
    circle_image,
    gaussian_image,
    histogram_image,
    make_binary_image,
    make_circle_image,
    make_gaussian_image,
    make_histogram_image,
    render,
)

__all__ = [
    "IdealCamera",
    "Localization",
    "LocalizationSet",
    "RenderConfig",
    "RenderResult",
    "binary_image",
    "circle_image",
    "contrast_stretch",
    "gaussian_image",
    "histogram_image",
    "magnification",
    "make_binary_image",
    "make_circle_image",
    "make_gaussian_image",
    "make_histogram_image",
    "normalize",
    "normalize_checked",
    "percentile_ceiling",
    "physical_to_pixel",
    "physical_to_pixel_index",
    "pixel_edges",
    "pixel_to_physical",
    "preset_preview",
    "preset_publication",
    "preset_reference",
    "render",
]
