from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Optional, Sequence, Tuple

import math

import numpy as np


@dataclass(frozen=True)
class Localization:
    """One localized emitter (all lengths in microns).

    Uncertainties <= 0 (or NaN) mean "unknown" and exclude the localization
    from the uncertainty-aware render modes.
    """

    x_um: float
    y_um: float
    sigma_x_um: float = 0.0
    sigma_y_um: float = 0.0
    photons: float = float("nan")


def _empty() -> np.ndarray:
    return np.zeros((0,), dtype=np.float64)


def _as_column(values: Optional[Iterable[float]], n: int, fill: float, name: str) -> np.ndarray:
    if values is None:
        return np.full((n,), fill, dtype=np.float64)
    arr = np.asarray(values, dtype=np.float64).ravel()
    if arr.size == 1 and n != 1:
        arr = np.full((n,), float(arr[0]), dtype=np.float64)
    if arr.size != n:
        raise ValueError(f"Column '{name}' has {arr.size} values, expected {n}")
    return arr


def _record_value(rec: Any, names: Sequence[str], default: float) -> float:
    for name in names:
        v = getattr(rec, name, None)
        if v is not None:
            return float(v)
    return float(default)


def _finite_min(v: np.ndarray) -> float:
    v = v[np.isfinite(v)]
    return float(np.min(v)) if v.size else 0.0


def validate_data_size(data_size: Sequence[float]) -> Tuple[float, float]:
    """Return ``data_size`` as an ``(x_extent, y_extent)`` float tuple or raise ``ValueError``."""
    if len(data_size) != 2:
        raise ValueError(f"data_size must have two entries (x, y), got {data_size!r}")
    sx, sy = float(data_size[0]), float(data_size[1])
    if not (math.isfinite(sx) and math.isfinite(sy)):
        raise ValueError(f"data_size must be finite, got ({sx}, {sy})")
    if sx < 0 or sy < 0:
        raise ValueError(f"data_size must be non-negative, got ({sx}, {sy})")
    return sx, sy


@dataclass
class LocalizationSet:
    """Column-wise localization table plus the physical field extent.

    The render pipeline only reads from a set; arrays are never modified in
    place. ``data_size`` is ``(x_extent_um, y_extent_um)``.
    """

    x_um: np.ndarray = field(default_factory=_empty)
    y_um: np.ndarray = field(default_factory=_empty)
    sigma_x_um: np.ndarray = field(default_factory=_empty)
    sigma_y_um: np.ndarray = field(default_factory=_empty)
    photons: np.ndarray = field(default_factory=_empty)
    data_size: Tuple[float, float] = (0.0, 0.0)

    def __post_init__(self) -> None:
        self.x_um = np.asarray(self.x_um, dtype=np.float64).ravel()
        n = self.x_um.size
        self.y_um = _as_column(self.y_um, n, float("nan"), "y_um")
        self.sigma_x_um = _as_column(self.sigma_x_um if np.size(self.sigma_x_um) else None, n, 0.0, "sigma_x_um")
        if np.size(self.sigma_y_um):
            self.sigma_y_um = _as_column(self.sigma_y_um, n, 0.0, "sigma_y_um")
        else:
            # isotropic uncertainty when only sigma_x is given
            self.sigma_y_um = self.sigma_x_um.copy()
        self.photons = _as_column(self.photons if np.size(self.photons) else None, n, float("nan"), "photons")
        self.data_size = validate_data_size(self.data_size)

    # -------------------------
    # Constructors
    # -------------------------
    @classmethod
    def from_arrays(
        cls,
        x_um: Iterable[float],
        y_um: Iterable[float],
        sigma_x_um: Optional[Iterable[float]] = None,
        sigma_y_um: Optional[Iterable[float]] = None,
        photons: Optional[Iterable[float]] = None,
        data_size: Optional[Sequence[float]] = None,
    ) -> "LocalizationSet":
        x = np.asarray(x_um, dtype=np.float64).ravel()
        n = x.size
        y = _as_column(y_um, n, float("nan"), "y_um")
        sx = _as_column(sigma_x_um, n, 0.0, "sigma_x_um")
        # isotropic uncertainty when only sigma_x is given
        sy = _as_column(sigma_y_um, n, 0.0, "sigma_y_um") if sigma_y_um is not None else sx.copy()
        ph = _as_column(photons, n, float("nan"), "photons")
        if data_size is None:
            data_size = infer_data_size(x, y)
        return cls(x_um=x, y_um=y, sigma_x_um=sx, sigma_y_um=sy, photons=ph, data_size=tuple(data_size))

    @classmethod
    def from_records(
        cls,
        records: Iterable[Any],
        data_size: Optional[Sequence[float]] = None,
    ) -> "LocalizationSet":
        """Build a set from any objects exposing ``x``/``y`` (or ``x_um``/``y_um``).

        Uncertainties are read from ``sigma_x_um``/``sigma_x`` when present and
        default to 0.0 (unknown) for basic records.
        """
        recs = list(records)
        x = [_record_value(r, ("x_um", "x"), float("nan")) for r in recs]
        y = [_record_value(r, ("y_um", "y"), float("nan")) for r in recs]
        sx = [_record_value(r, ("sigma_x_um", "sigma_x"), 0.0) for r in recs]
        sy = [_record_value(r, ("sigma_y_um", "sigma_y"), 0.0) for r in recs]
        ph = [_record_value(r, ("photons",), float("nan")) for r in recs]
        return cls.from_arrays(x, y, sx, sy, ph, data_size=data_size)

    # -------------------------
    # Record access
    # -------------------------
    def __len__(self) -> int:
        return int(self.x_um.size)

    def __iter__(self) -> Iterator[Localization]:
        for i in range(len(self)):
            yield self[i]

    def __getitem__(self, i: int) -> Localization:
        return Localization(
            x_um=float(self.x_um[i]),
            y_um=float(self.y_um[i]),
            sigma_x_um=float(self.sigma_x_um[i]),
            sigma_y_um=float(self.sigma_y_um[i]),
            photons=float(self.photons[i]),
        )

    # -------------------------
    # Derived sets (never modify self)
    # -------------------------
    def subset(self, index: Any) -> "LocalizationSet":
        """Keep the localizations selected by an index array or boolean mask."""
        idx = np.asarray(index)
        if idx.dtype == bool and idx.size != len(self):
            raise ValueError(f"Boolean mask has {idx.size} entries, expected {len(self)}")
        return LocalizationSet(
            x_um=self.x_um[idx],
            y_um=self.y_um[idx],
            sigma_x_um=self.sigma_x_um[idx],
            sigma_y_um=self.sigma_y_um[idx],
            photons=self.photons[idx],
            data_size=self.data_size,
        )

    def with_offset(self, dx_um: float, dy_um: float) -> "LocalizationSet":
        return LocalizationSet(
            x_um=self.x_um + float(dx_um),
            y_um=self.y_um + float(dy_um),
            sigma_x_um=self.sigma_x_um.copy(),
            sigma_y_um=self.sigma_y_um.copy(),
            photons=self.photons.copy(),
            data_size=self.data_size,
        )

    def shifted_to_origin(self) -> Tuple["LocalizationSet", Tuple[float, float]]:
        """Shift so the smallest finite x/y become 0; returns the new set and the removed offset.

        Non-finite coordinates are ignored; an axis without finite values is
        not shifted.
        """
        x0 = _finite_min(self.x_um)
        y0 = _finite_min(self.y_um)
        shifted = self.with_offset(-x0, -y0)
        shifted.data_size = validate_data_size((max(self.data_size[0] - x0, 0.0), max(self.data_size[1] - y0, 0.0)))
        return shifted, (x0, y0)


def infer_data_size(x_um: np.ndarray, y_um: np.ndarray) -> Tuple[float, float]:
    """Per-axis maximum coordinate (0 for empty or all-NaN columns)."""
    def _extent(v: np.ndarray) -> float:
        v = v[np.isfinite(v)]
        if v.size == 0:
            return 0.0
        return max(float(np.max(v)), 0.0)

    return _extent(np.asarray(x_um, dtype=np.float64)), _extent(np.asarray(y_um, dtype=np.float64))
