# Built-in
import unittest

# Third-party
import numpy as np
import pytest

# Local
from earlyvision.stimuli.oi_sequence_module import (
    Composition,
    FrameSequence,
    OISequence,
    OpticalImage,
    SequenceBase,
    moving_bar_sequence,
)


def make_images(rows=4, cols=5, n_wave=None):
    shape = (rows, cols) if n_wave is None else (rows, cols, n_wave)
    oi_fixed = OpticalImage("background", np.ones(shape))
    oi_modulated = OpticalImage("grating", 3 * np.ones(shape))
    return oi_fixed, oi_modulated


class TestOISequence(unittest.TestCase):

    def setUp(self):
        self.oi_fixed, self.oi_modulated = make_images()
        self.weights = np.array([0.0, 0.5, 1.0])

    def test_blend_frames(self):
        sequence = OISequence(self.oi_fixed, self.oi_modulated, self.weights)
        frames = sequence.frames()

        self.assertEqual(frames.shape, (3, 4, 5))
        np.testing.assert_allclose(frames[:, 0, 0], [1.0, 2.0, 3.0])
        np.testing.assert_allclose(frames[0], self.oi_fixed.data)
        np.testing.assert_allclose(frames[2], self.oi_modulated.data)

    def test_add_frames(self):
        sequence = OISequence(
            self.oi_fixed, self.oi_modulated, self.weights, composition="add"
        )
        np.testing.assert_allclose(sequence.frames()[:, 2, 3], [1.0, 2.5, 4.0])
        np.testing.assert_allclose(sequence.frames()[0], self.oi_fixed.data)

    def test_frame_at_index_matches_frames(self):
        sequence = OISequence(self.oi_fixed, self.oi_modulated, self.weights)
        for index in range(sequence.length):
            np.testing.assert_allclose(
                sequence.frame_at_index(index), sequence.frames()[index]
            )

    def test_multichannel_images(self):
        oi_fixed, oi_modulated = make_images(n_wave=3)
        sequence = OISequence(oi_fixed, oi_modulated, self.weights)
        self.assertEqual(sequence.frames().shape, (3, 4, 5, 3))
        self.assertEqual(sequence.illuminance_frames().shape, (3, 4, 5))

    def test_default_time_axis(self):
        sequence = OISequence(self.oi_fixed, self.oi_modulated, self.weights)
        np.testing.assert_allclose(sequence.time_axis, [0.0, 1e-3, 2e-3])
        self.assertAlmostEqual(sequence.frame_interval, 1e-3)
        self.assertEqual(sequence.length, 3)

    def test_name(self):
        sequence = OISequence(
            self.oi_fixed, self.oi_modulated, self.weights, composition="add"
        )
        self.assertEqual(sequence.name, "background add grating")

    def test_illuminance_movie_is_scaled_by_common_maximum(self):
        sequence = OISequence(self.oi_fixed, self.oi_modulated, self.weights)
        movie = sequence.illuminance_movie()
        np.testing.assert_allclose(movie[:, 0, 0], np.array([1.0, 2.0, 3.0]) * 256 / 3)
        self.assertAlmostEqual(movie.max(), 256.0)

    def test_illuminance_movie_of_dark_images(self):
        dark = OpticalImage("dark", np.zeros((2, 2)))
        sequence = OISequence(dark, dark, [0.0, 1.0])
        np.testing.assert_array_equal(sequence.illuminance_movie(), np.zeros((2, 2, 2)))

    def test_illuminance_range(self):
        sequence = OISequence(self.oi_fixed, self.oi_modulated, self.weights)
        np.testing.assert_allclose(sequence.illuminance_range(), [1.0, 3.0])

        constant = OISequence(self.oi_fixed, self.oi_fixed, self.weights)
        np.testing.assert_allclose(constant.illuminance_range(), [0.99, 1.01])

    def test_explicit_illuminance_map(self):
        image = OpticalImage(
            "scene", np.ones((2, 2, 3)), illuminance=np.full((2, 2), 7.0)
        )
        np.testing.assert_allclose(image.get_illuminance(), 7.0)


class TestOISequenceErrors:

    def test_weight_count_must_match_time_axis(self):
        oi_fixed, oi_modulated = make_images()
        with pytest.raises(ValueError, match="weights"):
            OISequence(oi_fixed, oi_modulated, [0.0, 1.0], time_axis=[0.0, 0.1, 0.2])

    def test_image_shapes_must_match(self):
        oi_fixed, _ = make_images()
        other = OpticalImage("other", np.ones((3, 3)))
        with pytest.raises(ValueError, match="shape"):
            OISequence(oi_fixed, other, [0.0, 1.0])

    def test_unknown_composition(self):
        oi_fixed, oi_modulated = make_images()
        with pytest.raises(ValueError, match="Unknown composition"):
            OISequence(oi_fixed, oi_modulated, [0.0], composition="multiply")

    def test_composition_from_string(self):
        assert Composition.from_string("ADD") is Composition.ADD
        assert Composition.from_string(Composition.BLEND) is Composition.BLEND

    def test_bad_image_dimensions(self):
        with pytest.raises(ValueError):
            OpticalImage("flat", np.ones(5))
        with pytest.raises(ValueError):
            OpticalImage("bad map", np.ones((2, 2)), illuminance=np.ones((3, 3)))


class TestFrameSequence:

    def test_sequence_base_needs_frames(self):
        with pytest.raises(TypeError):
            SequenceBase([0.0, 0.001])

    def test_frames_and_timing(self):
        frames = np.random.default_rng(0).random((6, 3, 4))
        sequence = FrameSequence(frames, np.arange(6) * 0.01)
        assert sequence.length == 6
        assert sequence.frame_interval == pytest.approx(0.01)
        np.testing.assert_array_equal(sequence.frame_at_index(2), frames[2])

    def test_single_frame_has_no_interval(self):
        sequence = FrameSequence(np.zeros((1, 2, 2)), [0.0])
        assert np.isnan(sequence.frame_interval)

    def test_frame_count_mismatch(self):
        with pytest.raises(ValueError):
            FrameSequence(np.zeros((3, 2, 2)), [0.0, 0.1])

    def test_moving_bar(self):
        sequence = moving_bar_sequence(
            rows=3, cols=5, n_frames=7, bar_width=2, background=0.5
        )
        frames = sequence.frames()
        assert frames.shape == (7, 3, 5)
        np.testing.assert_array_equal(frames[0, 0], [1.0, 1.0, 0.5, 0.5, 0.5])
        np.testing.assert_array_equal(frames[4, 0], [1.0, 0.5, 0.5, 0.5, 1.0])
        # The bar wraps around with period cols / step
        np.testing.assert_array_equal(frames[5], frames[0])
        assert sequence.frame_interval == pytest.approx(1e-3)


if __name__ == "__main__":
    unittest.main()
