from __future__ import annotations

import argparse
import logging
import sys
import traceback
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

from . import __version__
from .pipeline.config import RenderConfig
from .pipeline.coordinates import IdealCamera
from .pipeline.debug import RenderTrace
from .pipeline.io import dataframe_to_localizations, load_localizations, save_render_png, save_render_tiff
from .pipeline.pipeline import render
from .pipeline.render import COMPUTE_ENGINES, RENDER_MODES

_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def setup_logging(log_file: Optional[str | Path] = None, level: int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger("srimage")
    logger.setLevel(level)
    logger.propagate = False

    fmt = logging.Formatter(_LOG_FORMAT)

    # Avoid duplicate handlers if main() is called twice
    if not any(type(h) is logging.StreamHandler for h in logger.handlers):
        sh = logging.StreamHandler(sys.stderr)
        sh.setLevel(level)
        sh.setFormatter(fmt)
        logger.addHandler(sh)

    if log_file is not None:
        log_path = Path(log_file)
        if not any(
            isinstance(h, logging.FileHandler) and Path(getattr(h, "baseFilename", "")) == log_path.resolve()
            for h in logger.handlers
        ):
            log_path.parent.mkdir(parents=True, exist_ok=True)
            fh = logging.FileHandler(str(log_path), encoding="utf-8")
            fh.setLevel(level)
            fh.setFormatter(fmt)
            logger.addHandler(fh)

    return logger


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="srimage-render",
        description="Render a super-resolution image from a localization CSV/TSV and save it as TIFF.",
    )
    ap.add_argument("--input", "-i", required=True, help="Input localization table (.csv/.tsv)")
    ap.add_argument("--output", "-o", required=True, help="Output TIFF path (.tif/.tiff)")
    ap.add_argument("--config", help="RenderConfig JSON; command line options override it")
    ap.add_argument("--input-px-um", type=float, help="Camera (data) pixel size in microns")
    ap.add_argument("--output-px-um", type=float, help="Rendered pixel size in microns")
    ap.add_argument("--mode", choices=list(RENDER_MODES), help="Render mode")
    ap.add_argument("--raw", action="store_true", help="Skip normalization / contrast enhancement")
    ap.add_argument("--nsigma", type=float, help="Gaussian truncation radius in standard deviations")
    ap.add_argument("--percentile", type=float, help="Percentile ceiling for the Gaussian mode")
    ap.add_argument("--engine", choices=list(COMPUTE_ENGINES), help="Gaussian compute engine")
    ap.add_argument(
        "--camera-pixels",
        type=int,
        nargs=2,
        metavar=("NX", "NY"),
        help="Take the field of view from a camera of NX x NY pixels of --input-px-um",
    )
    ap.add_argument("--shift-to-origin", action="store_true", help="Shift XY so the minimum becomes 0")
    ap.add_argument("--png", help="Also write a colorized PNG preview")
    ap.add_argument("--save-config", help="Write the effective RenderConfig to this JSON path")
    ap.add_argument("--log-file", help="Also log to this file")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return ap


def config_from_args(args: argparse.Namespace) -> RenderConfig:
    cfg = RenderConfig.from_json(args.config) if args.config else RenderConfig()

    updates = {}
    if args.input_px_um is not None:
        updates["input_pixel_size_um"] = float(args.input_px_um)
    if args.output_px_um is not None:
        updates["output_pixel_size_um"] = float(args.output_px_um)
    if args.mode is not None:
        updates["render_mode"] = str(args.mode)
    if args.raw:
        updates["friendly"] = False
    if args.nsigma is not None:
        updates["nsigma"] = float(args.nsigma)
    if args.percentile is not None:
        updates["percentile_ceiling"] = float(args.percentile)
    if args.engine is not None:
        updates["compute_engine"] = str(args.engine)
    if args.shift_to_origin:
        updates["shift_to_origin"] = True
    cfg = replace(cfg, **updates)

    if args.camera_pixels is not None:
        cam = IdealCamera.from_pixel_counts(args.camera_pixels[0], args.camera_pixels[1], cfg.input_pixel_size_um)
        cfg = replace(cfg, data_size_um=cam.field_of_view)

    cfg.validate()
    return cfg


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logger = setup_logging(args.log_file)

    try:
        cfg = config_from_args(args)
        if args.save_config:
            cfg.to_json(args.save_config)

        logger.info(f"Loading localizations: {args.input}")
        df = load_localizations(args.input)
        locs = dataframe_to_localizations(df)
        logger.info(f"Localizations loaded: {len(locs)} rows")
        logger.info(
            f"Rendering: mode={cfg.render_mode}, engine={cfg.compute_engine}, "
            f"px={cfg.input_pixel_size_um:g} -> {cfg.output_pixel_size_um:g} um (mag {cfg.magnification:g})"
        )

        trace = RenderTrace(log_cb=logger.info)
        res = render(locs, cfg, trace=trace)

        meta = {
            "srimage_version": __version__,
            "input": str(Path(args.input).resolve()),
            "output": str(Path(args.output).resolve()),
            "config": cfg,
            "n_localizations": res.n_localizations,
            "n_rendered": res.n_rendered,
            "magnification": res.magnification,
            "normalizable": res.normalizable,
            "x_offset_um": res.x_offset_um,
            "y_offset_um": res.y_offset_um,
            "image_shape": [int(res.image.shape[0]), int(res.image.shape[1])],
            "diagnostics": trace.as_lines(),
        }

        save_render_tiff(args.output, res.image, pixel_size_um=cfg.output_pixel_size_um, meta=meta)
        logger.info(f"Saved: {args.output}")
        if args.png:
            save_render_png(args.png, res.image)
            logger.info(f"Saved: {args.png}")
        return 0

    except Exception:
        logger.error("Rendering failed:\n" + traceback.format_exc())
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
