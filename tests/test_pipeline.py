"""
Tests for the micron-level render entry points and the config-driven render().
"""

import numpy as np
import pytest

from srimage.pipeline.config import RenderConfig
from srimage.pipeline.coordinates import physical_to_pixel_index
from srimage.pipeline.debug import RenderTrace
from srimage.pipeline.localizations import LocalizationSet
from srimage.pipeline.pipeline import (
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


class TestRawImages:
    """Tests for make_*_image (no post-processing)."""

    @pytest.mark.parametrize("engine", ["reference", "numba"])
    def test_single_gaussian_mass_and_peak(self, single_loc, engine):
        img = make_gaussian_image(single_loc, 0.1, 0.01, engine=engine)
        assert img.shape == (200, 200)
        assert img.sum() == pytest.approx(1.0, abs=1e-4)
        assert np.unravel_index(np.argmax(img), img.shape) == (100, 100)

    def test_colliding_localizations(self, colliding_locs):
        binary = make_binary_image(colliding_locs, 0.1, 0.01)
        hist = make_histogram_image(colliding_locs, 0.1, 0.01)
        assert binary.shape == hist.shape == (100, 100)
        assert binary[30, 20] == 1.0
        assert binary.sum() == 1.0
        assert hist[30, 20] == 2.0
        assert hist.sum() == 2.0

    def test_binary_pixel_matches_physical_index(self):
        locs = LocalizationSet.from_arrays([0.123], [0.456], data_size=(1.0, 1.0))
        img = make_binary_image(locs, 0.1, 0.01)
        col, row = physical_to_pixel_index(0.123, 0.456, 0.01)
        assert (col, row) == (13, 46)
        assert img[row - 1, col - 1] == 1.0
        assert img.sum() == 1.0

    def test_circle_radius(self):
        locs = LocalizationSet.from_arrays([0.5], [0.5], sigma_x_um=[0.1], data_size=(1.0, 1.0))
        img = make_circle_image(locs, 0.1, 0.01)
        rows, cols = np.nonzero(img)
        assert rows.size > 0
        # center is output coordinate 50.5, radius 10 output pixels
        dist = np.hypot(rows + 1 - 50.5, cols + 1 - 50.5)
        assert np.all(np.abs(dist - 10.0) <= 1.0)

    def test_empty_set_gives_zero_image(self):
        locs = LocalizationSet.from_arrays([], [], data_size=(1.0, 1.0))
        for fn in (make_binary_image, make_histogram_image, make_circle_image, make_gaussian_image):
            img = fn(locs, 0.1, 0.01)
            assert img.shape == (100, 100)
            assert not img.any()

    def test_explicit_data_size_overrides_set(self, single_loc):
        img = make_histogram_image(single_loc, 0.1, 0.01, data_size=(0.5, 0.3))
        assert img.shape == (30, 50)
        # clamped onto the last pixel
        assert img[29, 49] == 1.0

    def test_default_output_pixel_size(self):
        locs = LocalizationSet.from_arrays([0.1], [0.1], data_size=(1.0, 1.0))
        assert make_histogram_image(locs, 0.1).shape == (200, 200)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"input_pixel_size": 0.0},
            {"input_pixel_size": -0.1},
            {"input_pixel_size": 0.1, "output_pixel_size": 0.0},
            {"input_pixel_size": 0.1, "output_pixel_size": np.nan},
            {"input_pixel_size": 0.1, "data_size": (-1.0, 1.0)},
        ],
    )
    def test_invalid_arguments(self, single_loc, kwargs):
        with pytest.raises(ValueError):
            make_histogram_image(single_loc, **kwargs)

    def test_invalid_nsigma(self, single_loc):
        with pytest.raises(ValueError):
            make_gaussian_image(single_loc, 0.1, 0.01, nsigma=0.0)

    def test_engines_agree(self):
        rng = np.random.default_rng(42)
        locs = LocalizationSet.from_arrays(
            rng.uniform(0.0, 1.0, 40),
            rng.uniform(0.0, 1.0, 40),
            sigma_x_um=rng.uniform(0.005, 0.03, 40),
            sigma_y_um=rng.uniform(0.005, 0.03, 40),
            data_size=(1.0, 1.0),
        )
        ref = make_gaussian_image(locs, 0.1, 0.01, engine="reference")
        fast = make_gaussian_image(locs, 0.1, 0.01, engine="numba")
        np.testing.assert_allclose(fast, ref, rtol=1e-10, atol=1e-12)

    def test_inputs_not_modified(self, mixed_locs):
        before = {k: getattr(mixed_locs, k).copy() for k in ("x_um", "y_um", "sigma_x_um", "sigma_y_um")}
        make_gaussian_image(mixed_locs, 0.1, 0.01)
        make_circle_image(mixed_locs, 0.1, 0.01)
        for k, v in before.items():
            np.testing.assert_array_equal(getattr(mixed_locs, k), v)


class TestFriendlyImages:
    """Tests for the post-processed entry points."""

    def test_histogram_normalized(self, colliding_locs):
        img = histogram_image(colliding_locs, 0.1, 0.01)
        assert img.sum() == pytest.approx(1.0)
        assert img[30, 20] == pytest.approx(1.0)

    def test_binary_normalized(self, mixed_locs):
        img = binary_image(mixed_locs, 0.1, 0.01)
        assert img.sum() == pytest.approx(1.0)

    def test_empty_set_gives_flat_image(self):
        locs = LocalizationSet.from_arrays([], [], data_size=(1.0, 1.0))
        trace = RenderTrace()
        img = histogram_image(locs, 0.1, 0.01, trace=trace)
        np.testing.assert_allclose(img, 1.0 / 10000.0)
        assert len(trace.warnings) == 1

    def test_gaussian_stretched(self, single_loc):
        img = gaussian_image(single_loc, 0.1, 0.01)
        assert img.min() == pytest.approx(0.0)
        assert img.max() == pytest.approx(1.0)

    def test_gaussian_custom_bounds(self, single_loc):
        img = gaussian_image(single_loc, 0.1, 0.01, stretch_bounds=(0.1, 0.9))
        assert img.min() == pytest.approx(0.1)
        assert img.max() == pytest.approx(0.9)

    def test_circle_stretched(self, single_loc):
        img = circle_image(single_loc, 0.1, 0.01)
        assert set(np.unique(img)) == {0.0, 1.0}


class TestRender:
    """Tests for render() with a RenderConfig."""

    def test_gaussian_counts(self, mixed_locs):
        cfg = RenderConfig(output_pixel_size_um=0.01, render_mode="gaussian")
        res = render(mixed_locs, cfg)
        assert res.n_localizations == 5
        assert res.n_rendered == 2
        assert res.n_skipped == 3
        assert res.image.shape == (100, 100)
        assert res.magnification == pytest.approx(10.0)
        assert res.normalizable is None

    def test_histogram_normalizable_flag(self, colliding_locs):
        cfg = RenderConfig(output_pixel_size_um=0.01, render_mode="histogram")
        res = render(colliding_locs, cfg)
        assert res.normalizable is True
        assert res.image.sum() == pytest.approx(1.0)

    def test_raw_matches_make_function(self, single_loc):
        cfg = RenderConfig(output_pixel_size_um=0.01, render_mode="gaussian", friendly=False, compute_engine="reference")
        res = render(single_loc, cfg)
        expected = make_gaussian_image(single_loc, 0.1, 0.01, engine="reference")
        np.testing.assert_array_equal(res.image, expected)
        assert res.friendly is False

    def test_shift_to_origin(self):
        locs = LocalizationSet.from_arrays([2.0, 2.5], [3.0, 3.2], data_size=(3.0, 4.0))
        cfg = RenderConfig(output_pixel_size_um=0.01, render_mode="histogram", friendly=False, shift_to_origin=True)
        res = render(locs, cfg)
        assert (res.x_offset_um, res.y_offset_um) == (2.0, 3.0)
        assert res.image.shape == (100, 100)
        assert res.image.sum() == 2.0
        # first localization now at the origin corner -> first pixel
        assert res.image[0, 0] == 1.0
        # original set untouched
        np.testing.assert_array_equal(locs.x_um, [2.0, 2.5])

    @pytest.mark.parametrize(
        "x, y",
        [([-np.inf, 0.5], [0.5, 0.5]), ([np.nan, np.nan], [np.nan, np.nan])],
    )
    def test_shift_to_origin_with_non_finite_coordinates(self, x, y):
        locs = LocalizationSet.from_arrays(x, y, data_size=(1.0, 1.0))
        cfg = RenderConfig(output_pixel_size_um=0.01, render_mode="histogram", shift_to_origin=True)
        res = render(locs, cfg)
        assert np.all(np.isfinite(res.image))
        assert res.image.sum() == pytest.approx(1.0)
        assert np.isfinite(res.x_offset_um) and np.isfinite(res.y_offset_um)

    def test_config_data_size(self, single_loc):
        cfg = RenderConfig(output_pixel_size_um=0.01, render_mode="binary", data_size_um=(4.0, 3.0))
        assert render(single_loc, cfg).image.shape == (300, 400)

    def test_trace_records_skips(self, mixed_locs):
        trace = RenderTrace()
        render(mixed_locs, RenderConfig(output_pixel_size_um=0.01), trace=trace)
        stages = [e.stage for e in trace.events]
        assert "rasterize" in stages
        assert "enhance" in stages
        assert any("skipped 3" in e.message for e in trace.events)

    def test_trace_callback_and_text(self, single_loc, tmp_path):
        seen = []
        trace = RenderTrace(log_cb=seen.append)
        render(single_loc, RenderConfig(output_pixel_size_um=0.01, render_mode="histogram"), trace=trace)
        assert len(seen) == len(trace.events) > 0
        path = tmp_path / "trace" / "render.txt"
        trace.save_text(path)
        lines = path.read_text(encoding="utf-8").splitlines()
        assert lines == trace.as_lines()
        assert "| INFO | rasterize:" in lines[0]

    @pytest.mark.parametrize(
        "cfg",
        [
            RenderConfig(render_mode="bogus"),
            RenderConfig(compute_engine="gpu"),
            RenderConfig(output_pixel_size_um=0.0),
            RenderConfig(nsigma=-1.0),
            RenderConfig(percentile_ceiling=101.0),
        ],
    )
    def test_invalid_config(self, single_loc, cfg):
        with pytest.raises(ValueError):
            render(single_loc, cfg)
