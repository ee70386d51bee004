from __future__ import annotations

from dataclasses import asdict, dataclass, fields, is_dataclass
from typing import Any, Optional, Tuple

import json
import math
import pathlib

import numpy as np

from .render import COMPUTE_ENGINES, RENDER_MODES, ComputeEngine, RenderMode


def to_jsonable(value: Any) -> Any:
    """Convert configs, render metadata and numpy values into plain JSON types.

    Non-finite floats are written as null; tuples and arrays as lists.
    """
    if is_dataclass(value) and not isinstance(value, type):
        value = asdict(value)
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, np.ndarray)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if value is None or isinstance(value, (str, bool, int)):
        return value
    # paths and anything else
    return str(value)


@dataclass
class RenderConfig:
    # -------------------------
    # Grids (microns)
    # -------------------------
    input_pixel_size_um: float = 0.1
    output_pixel_size_um: float = 0.005
    data_size_um: Optional[Tuple[float, float]] = None  # None => taken from the localization set
    shift_to_origin: bool = False

    # -------------------------
    # Rendering
    # -------------------------
    render_mode: RenderMode = "gaussian"
    friendly: bool = True  # normalize / clip + stretch after rasterizing
    nsigma: float = 5.0
    compute_engine: ComputeEngine = "numba"

    # -------------------------
    # Contrast
    # -------------------------
    percentile_ceiling: float = 99.5
    contrast_stretch_bounds: Tuple[float, float] = (0.0, 1.0)

    @property
    def magnification(self) -> float:
        return float(self.input_pixel_size_um) / float(self.output_pixel_size_um)

    def validate(self) -> None:
        """Raise ValueError for settings that cannot produce an image."""
        for name in ("input_pixel_size_um", "output_pixel_size_um", "nsigma"):
            v = float(getattr(self, name))
            if not math.isfinite(v) or v <= 0:
                raise ValueError(f"{name} must be a positive finite number, got {v!r}")
        if self.render_mode not in RENDER_MODES:
            raise ValueError(f"render_mode must be one of {RENDER_MODES}, got {self.render_mode!r}")
        if self.compute_engine not in COMPUTE_ENGINES:
            raise ValueError(f"compute_engine must be one of {COMPUTE_ENGINES}, got {self.compute_engine!r}")
        if not (0.0 <= float(self.percentile_ceiling) <= 100.0):
            raise ValueError(f"percentile_ceiling must lie in [0, 100], got {self.percentile_ceiling!r}")
        if len(self.contrast_stretch_bounds) != 2:
            raise ValueError("contrast_stretch_bounds must be a (min, max) pair")
        if self.data_size_um is not None:
            if len(self.data_size_um) != 2:
                raise ValueError("data_size_um must be an (x, y) pair")
            for v in self.data_size_um:
                if not math.isfinite(float(v)) or float(v) < 0:
                    raise ValueError(f"data_size_um must be non-negative and finite, got {self.data_size_um!r}")

    def to_json(self, path: str | pathlib.Path) -> None:
        """Write config to JSON."""
        path = pathlib.Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(to_jsonable(self), indent=2), encoding="utf-8")

    @staticmethod
    def from_json(path: str | pathlib.Path) -> "RenderConfig":
        d = json.loads(pathlib.Path(path).read_text(encoding="utf-8"))
        known = {f.name for f in fields(RenderConfig)}
        unknown = sorted(set(d) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")

        # JSON has no tuples
        if d.get("contrast_stretch_bounds") is not None:
            d["contrast_stretch_bounds"] = tuple(float(v) for v in d["contrast_stretch_bounds"])
        if d.get("data_size_um") is not None:
            d["data_size_um"] = tuple(float(v) for v in d["data_size_um"])

        cfg = RenderConfig(**d)
        cfg.validate()
        return cfg


def preset_preview() -> RenderConfig:
    """Fast look at the data: normalized histogram at 20 nm pixels."""
    return RenderConfig(
        output_pixel_size_um=0.02,
        render_mode="histogram",
        friendly=True,
    )


def preset_reference() -> RenderConfig:
    """Gaussian rendering with the pure numpy/scipy engine (slow, easy to audit)."""
    return RenderConfig(
        output_pixel_size_um=0.005,
        render_mode="gaussian",
        compute_engine="reference",
        nsigma=5.0,
    )


def preset_publication() -> RenderConfig:
    """Fine Gaussian rendering with the compiled engine and contrast enhancement."""
    return RenderConfig(
        output_pixel_size_um=0.0025,
        render_mode="gaussian",
        compute_engine="numba",
        nsigma=5.0,
        percentile_ceiling=99.5,
        contrast_stretch_bounds=(0.0, 1.0),
    )
