# Built-in
import unittest

# Third-party
import numpy as np
import pytest

# Local
from earlyvision.retina.receptive_field_module import (
    CELL_TYPES,
    ConeMosaicReference,
    DiffuseProfile,
    MidgetProfile,
    SmallBistratifiedProfile,
    build_receptive_fields,
    get_cell_locations,
    get_cell_type_profile,
)
from earlyvision.retina.retina_math_module import RetinaMath


class TestReceptiveFieldBuilder(unittest.TestCase):

    def setUp(self):
        self.cone_mosaic = ConeMosaicReference(rows=20, cols=30)
        self.retina_math = RetinaMath()

    def test_onmidget_at_zero_eccentricity(self):
        rf = build_receptive_fields("onmidget", 0.0, self.cone_mosaic)

        self.assertEqual(rf.support, 7)
        self.assertEqual(rf.center.shape, (7, 7))
        self.assertEqual(rf.spread, 1.0)
        np.testing.assert_allclose(rf.center, self.retina_math.gaussian_kernel(7, 1.0))
        np.testing.assert_allclose(
            rf.surround, 1.3 * self.retina_math.gaussian_kernel(7, 10.0)
        )

    def test_ondiffuse_far_periphery_is_clamped_to_minimum(self):
        rf = build_receptive_fields("ondiffuse", 30.0, self.cone_mosaic)
        self.assertEqual(rf.support, 12)
        self.assertEqual(rf.center.shape, (12, 12))
        np.testing.assert_allclose(
            rf.surround, self.retina_math.gaussian_kernel(12, 1.3)
        )

    def test_support_formula_exceeds_minimum(self):
        self.assertEqual(DiffuseProfile().support(100.0), 32)
        self.assertEqual(MidgetProfile().support(50.0), 11)
        self.assertEqual(SmallBistratifiedProfile().support(60.0), 20)

    def test_support_is_monotonic_and_at_least_minimum(self):
        eccentricities = np.linspace(0, 200, 401)
        for cell_type in CELL_TYPES:
            profile = get_cell_type_profile(cell_type)
            supports = [profile.support(ecc) for ecc in eccentricities]
            self.assertTrue(np.all(np.diff(supports) >= 0), cell_type)
            self.assertGreaterEqual(min(supports), profile.min_support)

    def test_kernels_match_support_for_all_types(self):
        for cell_type in CELL_TYPES:
            for ecc in [0.0, 17.5, 80.0]:
                rf = build_receptive_fields(cell_type, ecc, self.cone_mosaic)
                self.assertEqual(rf.center.shape, (rf.support, rf.support))
                self.assertEqual(rf.surround.shape, (rf.support, rf.support))

    def test_small_bistratified_uses_fixed_spread(self):
        rf = build_receptive_fields("onsbc", 0.0, self.cone_mosaic, spread=1.0)
        self.assertEqual(rf.spread, 3.0)
        self.assertEqual(rf.stride, 3)
        self.assertEqual(rf.support, 15)
        np.testing.assert_allclose(
            rf.surround, self.retina_math.gaussian_kernel(15, 30.0)
        )

    def test_stride_defaults_to_rounded_spread(self):
        rf = build_receptive_fields("onparasol", 0.0, self.cone_mosaic, spread=2.4)
        self.assertEqual(rf.stride, 2)
        self.assertEqual(rf.cell_location.shape, (10, 15, 2))

    def test_stride_rounds_half_spread_up(self):
        rf = build_receptive_fields("ondiffuse", 0.0, self.cone_mosaic, spread=2.5)
        self.assertEqual(rf.stride, 3)
        self.assertEqual(rf.cell_location.shape, (7, 10, 2))
        rf = build_receptive_fields("ondiffuse", 0.0, self.cone_mosaic, spread=0.5)
        self.assertEqual(rf.stride, 1)

    def test_explicit_stride(self):
        rf = build_receptive_fields("offmidget", 0.0, self.cone_mosaic, stride=5)
        self.assertEqual(rf.cell_pixel.shape, (4, 6, 2))
        np.testing.assert_array_equal(rf.cell_pixel[1, 2], [5, 10])


class TestCellLocations:

    def test_locations_are_centered(self):
        cone_mosaic = ConeMosaicReference(rows=11, cols=8)
        cell_location, cell_pixel = get_cell_locations(cone_mosaic, 2)

        assert cell_location.shape == (6, 4, 2)
        np.testing.assert_allclose(cell_location[..., 0].mean(), 0.0, atol=1e-12)
        np.testing.assert_allclose(cell_location[..., 1].mean(), 0.0, atol=1e-12)
        # x follows columns, y follows rows
        np.testing.assert_allclose(cell_location[0, 1] - cell_location[0, 0], [2.0, 0.0])
        np.testing.assert_allclose(cell_location[1, 0] - cell_location[0, 0], [0.0, 2.0])
        assert cell_pixel.dtype.kind == "i"
        assert cell_pixel[..., 0].max() == 10
        assert cell_pixel[..., 1].max() == 6


class TestReceptiveFieldErrors:

    @pytest.fixture
    def cone_mosaic(self):
        return ConeMosaicReference(rows=10, cols=10)

    def test_unknown_cell_type(self, cone_mosaic):
        with pytest.raises(ValueError, match="Unknown cell type"):
            build_receptive_fields("onstarburst", 0.0, cone_mosaic)

    @pytest.mark.parametrize("eccentricity", [-1.0, np.nan, np.inf, "10", [1.0, 2.0]])
    def test_bad_eccentricity(self, cone_mosaic, eccentricity):
        with pytest.raises(ValueError):
            build_receptive_fields("onmidget", eccentricity, cone_mosaic)

    @pytest.mark.parametrize("spread", [0.0, -2.0])
    def test_bad_spread(self, cone_mosaic, spread):
        with pytest.raises(ValueError):
            build_receptive_fields("ondiffuse", 0.0, cone_mosaic, spread=spread)

    @pytest.mark.parametrize("stride", [0, -1, 1.5])
    def test_bad_stride(self, cone_mosaic, stride):
        with pytest.raises(ValueError):
            build_receptive_fields("ondiffuse", 0.0, cone_mosaic, stride=stride)

    def test_empty_cone_mosaic(self):
        with pytest.raises(ValueError):
            ConeMosaicReference(rows=0, cols=10)


if __name__ == "__main__":
    unittest.main()
