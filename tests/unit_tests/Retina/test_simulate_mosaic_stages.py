# Built-in
import unittest

# Third-party
import numpy as np
import pytest

# Local
from earlyvision.retina.receptive_field_module import (
    ConeMosaicReference,
    build_receptive_fields,
)
from earlyvision.retina.simulate_mosaic_module import (
    ExponentialGenerator,
    SpatialConvolution,
    TemporalConvolution,
    TemporalKernels,
    generate_spikes,
)


class TestSpatialConvolution(unittest.TestCase):

    def setUp(self):
        rng = np.random.default_rng(0)
        self.cone_mosaic = ConeMosaicReference(rows=10, cols=12)
        self.frames = rng.random((5, 10, 12))
        self.rf = build_receptive_fields("onmidget", 0.0, self.cone_mosaic)

    def test_scalar_output_shape(self):
        center, surround = SpatialConvolution("scalar").compute(self.frames, self.rf)
        self.assertEqual(center.shape, (10, 12, 5, 1))
        self.assertEqual(surround.shape, (10, 12, 5, 1))

    def test_map_output_sums_to_scalar_output(self):
        center, surround = SpatialConvolution("scalar").compute(self.frames, self.rf)
        center_map, surround_map = SpatialConvolution("map").compute(
            self.frames, self.rf
        )

        self.assertEqual(center_map.shape, (10, 12, 5, 1, 7, 7))
        np.testing.assert_allclose(center_map.sum(axis=(4, 5)), center, atol=1e-10)
        np.testing.assert_allclose(surround_map.sum(axis=(4, 5)), surround, atol=1e-10)

    def test_even_support_map_sums_to_scalar_output(self):
        rf = build_receptive_fields("ondiffuse", 0.0, self.cone_mosaic, stride=3)
        center, _ = SpatialConvolution("scalar").compute(self.frames, rf)
        center_map, _ = SpatialConvolution("map").compute(self.frames, rf)
        self.assertEqual(rf.support, 12)
        np.testing.assert_allclose(center_map.sum(axis=(4, 5)), center, atol=1e-10)

    def test_uniform_frame_gives_uniform_interior_response(self):
        frames = np.full((2, 10, 12), 4.0)
        center, surround = SpatialConvolution("scalar").compute(frames, self.rf)
        # Kernels sum to one, away from the zero padded border
        self.assertAlmostEqual(center[5, 6, 0, 0], 4.0, places=8)
        self.assertAlmostEqual(center[5, 6, 1, 0], 4.0, places=8)
        self.assertLess(center[0, 0, 0, 0], 4.0)
        # Surround gain 1.3 on a unit-sum kernel
        self.assertAlmostEqual(surround[5, 6, 0, 0], 1.3 * 4.0, places=8)
        self.assertLess(surround[0, 0, 0, 0], 1.3 * 4.0)

    def test_multichannel_frames(self):
        frames = np.stack([self.frames, 2 * self.frames], axis=-1)
        center, _ = SpatialConvolution().compute(frames, self.rf)
        self.assertEqual(center.shape[3], 2)
        np.testing.assert_allclose(center[..., 1], 2 * center[..., 0])

    def test_frame_shape_mismatch(self):
        with self.assertRaises(ValueError):
            SpatialConvolution().compute(self.frames, self.rf, frame_shape=(10, 10))

    def test_grid_beyond_frames(self):
        with self.assertRaises(ValueError):
            SpatialConvolution().compute(self.frames[:, :5, :5], self.rf)

    def test_unknown_output(self):
        with self.assertRaises(ValueError):
            SpatialConvolution("cube")


class TestTemporalConvolution(unittest.TestCase):

    def setUp(self):
        rng = np.random.default_rng(1)
        self.center = rng.normal(size=(3, 4, 30, 2))
        self.surround = rng.normal(size=(3, 4, 30, 2))
        self.kernels = TemporalKernels(
            center=[rng.normal(size=11), rng.normal(size=8)],
            surround=[rng.normal(size=11), rng.normal(size=8)],
            dt=1e-3,
        )

    def test_delta_kernel_gives_center_minus_surround(self):
        kernels = TemporalKernels(center=[[1.0]], surround=[[1.0]], dt=1e-3)
        linear = TemporalConvolution().compute(
            self.center[..., :1], self.surround[..., :1], kernels
        )
        np.testing.assert_allclose(
            linear, self.center[..., 0] - self.surround[..., 0], atol=1e-12
        )

    def test_output_shape(self):
        linear = TemporalConvolution().compute(self.center, self.surround, self.kernels)
        self.assertEqual(linear.shape, (3, 4, 30))

    def test_channels_are_summed(self):
        conv = TemporalConvolution()
        linear = conv.compute(self.center, self.surround, self.kernels)

        per_channel = 0
        for channel in range(2):
            kernels = TemporalKernels(
                center=[self.kernels.center[channel]],
                surround=[self.kernels.surround[channel]],
                dt=1e-3,
            )
            per_channel = per_channel + conv.compute(
                self.center[..., channel : channel + 1],
                self.surround[..., channel : channel + 1],
                kernels,
            )
        np.testing.assert_allclose(linear, per_channel, atol=1e-10)

    def test_linearity(self):
        conv = TemporalConvolution()
        a = conv.compute(self.center, self.surround, self.kernels)
        b = conv.compute(self.surround, self.center, self.kernels)
        combined = conv.compute(
            2 * self.center + 3 * self.surround,
            2 * self.surround + 3 * self.center,
            self.kernels,
        )
        np.testing.assert_allclose(combined, 2 * a + 3 * b, atol=1e-9)

    def test_torch_backend_matches_numpy_backend(self):
        numpy_result = TemporalConvolution("numpy").compute(
            self.center, self.surround, self.kernels
        )
        torch_result = TemporalConvolution("torch", device="cpu").compute(
            self.center, self.surround, self.kernels
        )
        np.testing.assert_allclose(torch_result, numpy_result, atol=1e-10)

    def test_map_input_is_averaged_over_the_map(self):
        rng = np.random.default_rng(2)
        center_map = rng.normal(size=(2, 2, 30, 2, 3, 3))
        surround_map = rng.normal(size=(2, 2, 30, 2, 3, 3))
        conv = TemporalConvolution()

        from_map = conv.compute(center_map, surround_map, self.kernels)
        from_mean = conv.compute(
            center_map.mean(axis=(4, 5)), surround_map.mean(axis=(4, 5)), self.kernels
        )
        np.testing.assert_allclose(from_map, from_mean)

    def test_channel_mismatch(self):
        kernels = TemporalKernels(center=[[1.0]], surround=[[1.0]], dt=1e-3)
        with self.assertRaises(ValueError):
            TemporalConvolution().compute(self.center, self.surround, kernels)

    def test_shape_mismatch(self):
        with self.assertRaises(ValueError):
            TemporalConvolution().compute(
                self.center, self.surround[:, :2], self.kernels
            )

    def test_unknown_backend(self):
        with self.assertRaises(ValueError):
            TemporalConvolution("jax")


class TestTemporalKernels:

    def test_from_parameters_defaults(self):
        kernels = TemporalKernels.from_parameters(None, dt=1e-3, n_channels=3)
        assert kernels.n_channels == 3
        assert abs(len(kernels.center[0]) - 200) <= 1
        assert np.sum(np.abs(kernels.center[0])) == pytest.approx(1.0)
        np.testing.assert_array_equal(kernels.center[1], kernels.surround[1])

    def test_from_parameters_overrides(self):
        kernels = TemporalKernels.from_parameters({"duration": 0.05}, dt=1e-3)
        assert abs(len(kernels.center[0]) - 50) <= 1

    @pytest.mark.parametrize("dt", [0.0, -1e-3])
    def test_bad_dt(self, dt):
        with pytest.raises(ValueError):
            TemporalKernels.from_parameters(None, dt=dt)

    def test_center_surround_count_mismatch(self):
        with pytest.raises(ValueError):
            TemporalKernels(center=[[1.0], [1.0]], surround=[[1.0]], dt=1e-3)


class TestExponentialGenerator:

    def test_pointwise(self):
        linear = np.array([[[0.0, 1.0, -1.0]]])
        np.testing.assert_allclose(ExponentialGenerator()(linear), np.exp(linear))

    def test_collapse_time(self):
        linear = np.array([[[0.0, 2.0], [1.0, 3.0]]])
        result = ExponentialGenerator(collapse_time=True)(linear)
        assert result.shape == (1, 2)
        np.testing.assert_allclose(result, np.exp([[1.0, 2.0]]))


class TestGenerateSpikes:

    def test_zero_rates_give_no_spikes(self):
        spikes = generate_spikes(np.zeros((3, 50)), dt=1e-3, n_trials=2, seed=1)
        assert len(spikes) == 2
        for indices, times in spikes:
            assert len(indices) == 0
            assert len(times) == 0

    def test_spike_count_follows_rate(self):
        # 20 units at 200 Hz for 0.5 s, expected 2000 spikes
        rates = np.full((20, 500), 200.0)
        indices, times = generate_spikes(rates, dt=1e-3, seed=3)[0]
        assert 1700 < len(indices) < 2300
        assert times.min() >= 0.0
        assert times.max() < 0.5
        assert set(np.unique(indices)) <= set(range(20))

    def test_unit_indices_follow_c_order(self):
        rates = np.zeros((2, 3, 100))
        rates[1, 2] = 500.0
        indices, _ = generate_spikes(rates, dt=1e-3, seed=4)[0]
        assert len(indices) > 0
        assert np.all(indices == 5)

    def test_seed_reproducibility(self):
        rates = np.full((5, 200), 100.0)
        first = generate_spikes(rates, dt=1e-3, seed=7)
        second = generate_spikes(rates, dt=1e-3, seed=7)
        np.testing.assert_array_equal(first[0][0], second[0][0])
        np.testing.assert_allclose(first[0][1], second[0][1])

    @pytest.mark.parametrize(
        "rates", [np.full((2, 10), -1.0), np.array([[np.nan, 1.0]])]
    )
    def test_invalid_rates(self, rates):
        with pytest.raises(ValueError):
            generate_spikes(rates, dt=1e-3)

    def test_invalid_dt(self):
        with pytest.raises(ValueError):
            generate_spikes(np.ones((2, 10)), dt=0.0)


if __name__ == "__main__":
    unittest.main()
