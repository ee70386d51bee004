from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple
import json
import pathlib

import matplotlib

matplotlib.use("Agg")  # headless-safe
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import tifffile

from .localizations import LocalizationSet
from .config import to_jsonable

# -----------------------------
# Column mapping helpers
# -----------------------------

_UM = 1.0
_NM = 1e-3

# canonical column -> [(alias, factor to microns)], tried in order
# (ThunderSTORM, SMAP, SMITE-style exports, ...)
_ALIASES: Dict[str, List[Tuple[str, float]]] = {
    "x_um": [
        ("x_um", _UM), ("x [um]", _UM), ("x (um)", _UM),
        ("x_nm", _NM), ("x_nm_", _NM), ("x [nm]", _NM), ("x (nm)", _NM),
        ("x", _UM),
    ],
    "y_um": [
        ("y_um", _UM), ("y [um]", _UM), ("y (um)", _UM),
        ("y_nm", _NM), ("y_nm_", _NM), ("y [nm]", _NM), ("y (nm)", _NM),
        ("y", _UM),
    ],
    "sigma_x_um": [
        ("sigma_x_um", _UM), ("sigma_x [um]", _UM), ("σ_x", _UM), ("sigma_x", _UM), ("x_se", _UM),
        ("sigma_x_nm", _NM), ("sigma_x [nm]", _NM), ("uncertainty_x [nm]", _NM),
        # isotropic precision
        ("uncertainty_xy [nm]", _NM), ("uncertainty [nm]", _NM), ("uncertainty_xy_nm_", _NM),
        ("uncertainty_nm", _NM), ("uncertainty_um", _UM),
    ],
    "sigma_y_um": [
        ("sigma_y_um", _UM), ("sigma_y [um]", _UM), ("σ_y", _UM), ("sigma_y", _UM), ("y_se", _UM),
        ("sigma_y_nm", _NM), ("sigma_y [nm]", _NM), ("uncertainty_y [nm]", _NM),
        ("uncertainty_xy [nm]", _NM), ("uncertainty [nm]", _NM), ("uncertainty_xy_nm_", _NM),
        ("uncertainty_nm", _NM), ("uncertainty_um", _UM),
    ],
    "photons": [
        ("photons", 1.0), ("intensity [photon]", 1.0), ("intensity (photon)", 1.0),
        ("intensity_photon_", 1.0), ("intensity", 1.0),
    ],
}

CANONICAL_COLUMNS = ("x_um", "y_um", "sigma_x_um", "sigma_y_um", "photons")


def _normalize_colname(name: str) -> str:
    return (
        str(name).strip()
        .lower()
        .replace("µ", "u")
        .replace("μ", "u")
        .replace("  ", " ")
    )


def _find_column(df: pd.DataFrame, canonical: str) -> Optional[Tuple[str, float]]:
    cols_norm = {_normalize_colname(c): c for c in df.columns}
    for alias, factor in _ALIASES[canonical]:
        a = _normalize_colname(alias)
        if a in cols_norm:
            return cols_norm[a], factor
    return None


def load_localizations(path: str | pathlib.Path) -> pd.DataFrame:
    """Load a localization table from CSV/TSV.

    Columns are mapped onto the canonical names (all lengths in microns):
        x_um, y_um, sigma_x_um, sigma_y_um, photons

    Missing uncertainties are filled with 0.0 (unknown), missing photons with
    NaN. Rows with non-numeric x/y are dropped.
    """
    path = pathlib.Path(path)
    if not path.exists():
        raise FileNotFoundError(path)

    # delimiter sniffing (very lightweight)
    head = path.read_text(errors="ignore", encoding="utf-8")[:20000]
    sep = "," if head.count(",") >= head.count("\t") else "\t"

    df_in = pd.read_csv(path, sep=sep, engine="python")
    if df_in.empty:
        raise ValueError(f"Empty localization table: {path}")

    out = pd.DataFrame(index=df_in.index)
    for canonical in CANONICAL_COLUMNS:
        found = _find_column(df_in, canonical)
        if found is None:
            continue
        col, factor = found
        out[canonical] = pd.to_numeric(df_in[col], errors="coerce") * factor

    missing = [c for c in ("x_um", "y_um") if c not in out.columns]
    if missing:
        raise ValueError(
            "Missing required columns in localization table: "
            + ", ".join(missing)
            + f"\nAvailable columns: {list(df_in.columns)}"
        )

    if "sigma_x_um" not in out.columns:
        out["sigma_x_um"] = 0.0
    if "sigma_y_um" not in out.columns:
        out["sigma_y_um"] = out["sigma_x_um"]
    if "photons" not in out.columns:
        out["photons"] = np.nan

    out = out.dropna(subset=["x_um", "y_um"])
    out["sigma_x_um"] = out["sigma_x_um"].fillna(0.0)
    out["sigma_y_um"] = out["sigma_y_um"].fillna(0.0)
    return out[list(CANONICAL_COLUMNS)].reset_index(drop=True)


def dataframe_to_localizations(
    df: pd.DataFrame,
    data_size: Optional[Sequence[float]] = None,
) -> LocalizationSet:
    """Wrap a canonical localization table as a LocalizationSet."""
    return LocalizationSet.from_arrays(
        df["x_um"].to_numpy(dtype=np.float64),
        df["y_um"].to_numpy(dtype=np.float64),
        sigma_x_um=df["sigma_x_um"].to_numpy(dtype=np.float64) if "sigma_x_um" in df else None,
        sigma_y_um=df["sigma_y_um"].to_numpy(dtype=np.float64) if "sigma_y_um" in df else None,
        photons=df["photons"].to_numpy(dtype=np.float64) if "photons" in df else None,
        data_size=data_size,
    )


# -----------------------------
# Image writers
# -----------------------------

def save_render_tiff(
    out_path: str | pathlib.Path,
    img: np.ndarray,
    *,
    pixel_size_um: float,
    meta: dict,
) -> pathlib.Path:
    """Write a float32 OME-TIFF plus a ``<name>.json`` sidecar with ``meta``."""
    out_path = pathlib.Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    px_um = float(pixel_size_um)
    ome_meta = {
        "axes": "YX",
        "PhysicalSizeX": px_um,
        "PhysicalSizeXUnit": "µm",
        "PhysicalSizeY": px_um,
        "PhysicalSizeYUnit": "µm",
    }

    # Classic TIFF resolution tags (pixels per cm)
    px_cm = px_um * 1e-4
    ppcm = (1.0 / px_cm) if px_cm > 0 else 1.0

    tifffile.imwrite(
        out_path,
        np.asarray(img, dtype=np.float32),
        ome=True,
        metadata=ome_meta,
        resolution=(ppcm, ppcm),
        resolutionunit="CENTIMETER",
    )

    sidecar = out_path.with_suffix(out_path.suffix + ".json")
    sidecar.write_text(json.dumps(to_jsonable(meta), indent=2), encoding="utf-8")
    return sidecar


def save_render_png(
    out_path: str | pathlib.Path,
    img: np.ndarray,
    *,
    cmap: str = "hot",
    vmin: Optional[float] = None,
    vmax: Optional[float] = None,
) -> None:
    """Colorize with a matplotlib colormap and write an 8-bit PNG (row 0 at the top)."""
    out_path = pathlib.Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    plt.imsave(out_path, np.asarray(img, dtype=np.float64), cmap=cmap, vmin=vmin, vmax=vmax)
