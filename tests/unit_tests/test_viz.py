# Built-in
import unittest

# Third-party
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402
import pytest  # noqa: E402

# Local
from earlyvision.calculators.watson_rgc_module import (  # noqa: E402
    TabulatedConeDensity,
    WatsonRGCModel,
)
from earlyvision.project.project_manager_module import ProjectData  # noqa: E402
from earlyvision.retina.receptive_field_module import ConeMosaicReference  # noqa: E402
from earlyvision.retina.retina_math_module import RetinaMath  # noqa: E402
from earlyvision.retina.simulate_mosaic_module import (  # noqa: E402
    Mosaic,
    generate_spikes,
)
from earlyvision.stimuli.oi_sequence_module import (  # noqa: E402
    OISequence,
    OpticalImage,
    moving_bar_sequence,
)
from earlyvision.viz.viz_module import Viz  # noqa: E402


@pytest.fixture
def viz(tmp_path):
    yield Viz({"output_folder": tmp_path}, ProjectData(), RetinaMath())
    plt.close("all")


@pytest.fixture
def sequence():
    oi_fixed = OpticalImage("background", np.ones((6, 6)))
    oi_modulated = OpticalImage("spot", np.pad(np.full((2, 2), 5.0), 2))
    return OISequence(oi_fixed, oi_modulated, [0.0, 0.5, 1.0, 0.5, 0.0])


@pytest.fixture
def computed_mosaic():
    mosaic = Mosaic("onmidget", ConeMosaicReference(rows=6, cols=6))
    return mosaic.init_space().compute(moving_bar_sequence(6, 6, n_frames=25))


@pytest.fixture
def watson():
    table = pd.DataFrame(
        {
            "ecc_mm": [0.0, 25.0] * 4,
            "angle_deg": [0, 0, 90, 90, 180, 180, 270, 270],
            "density": [200000.0, 5000.0] * 4,
        }
    )
    return WatsonRGCModel(cone_density_source=TabulatedConeDensity(table))


class TestShowSequence:
    def test_weights(self, viz, sequence):
        data = viz.show_sequence(sequence, plot_type="weights")
        np.testing.assert_array_equal(data["weights"], sequence.modulation_function)

    def test_movie_illuminance(self, viz, sequence):
        data = viz.show_sequence(sequence, plot_type="movie illuminance")
        assert data["movie"].shape == (5, 6, 6)
        assert data["movie"].max() == pytest.approx(256.0)

    def test_montage(self, viz, sequence, tmp_path):
        data = viz.show_sequence(sequence, plot_type="montage", savefigname="montage")
        assert data["frames"].min() >= 0.0
        assert data["frames"].max() <= 1.0
        assert (tmp_path / "montage.png").exists()

    def test_montage_of_dark_sequence(self, viz):
        dark = OpticalImage("dark", np.zeros((4, 4)))
        dark_sequence = OISequence(dark, dark, [0.0, 1.0, 0.0])
        np.testing.assert_array_equal(dark_sequence.illuminance_range(), [0.0, 0.0])

        data = viz.show_sequence(dark_sequence, plot_type="montage")

        np.testing.assert_array_equal(data["illuminance_range"], [0.0, 1.0])
        assert not np.isnan(data["frames"]).any()
        np.testing.assert_array_equal(data["frames"], 0.0)

    def test_errors(self, viz, sequence):
        with pytest.raises(ValueError):
            viz.show_sequence(sequence, plot_type="histogram")
        with pytest.raises(ValueError):
            viz.show_sequence(moving_bar_sequence(4, 4, 3))


class TestShowMosaics:
    def test_receptive_fields(self, viz, computed_mosaic):
        data = viz.show_receptive_fields(computed_mosaic)
        np.testing.assert_allclose(data["dog"], data["center"] - data["surround"])

    def test_mosaic_responses(self, viz, computed_mosaic):
        data = viz.show_mosaic_responses(computed_mosaic, n_cells=3)
        assert data["traces"].shape == (3, 25)

    def test_mosaic_responses_need_computed_mosaic(self, viz):
        mosaic = Mosaic("onmidget", ConeMosaicReference(rows=6, cols=6)).init_space()
        with pytest.raises(ValueError):
            viz.show_mosaic_responses(mosaic)

    def test_spike_raster(self, viz):
        spikes = generate_spikes(np.full((4, 100), 100.0), dt=1e-3, seed=0)
        data = viz.show_spike_raster(spikes)
        assert len(data["indices"]) == len(data["times"])

    def test_simulation_result_saves_one_figure_per_mosaic(
        self, viz, computed_mosaic, tmp_path
    ):
        with pytest.raises(ValueError):
            viz.show_simulation_result()

        viz.project_data.simulate_mosaic["mosaics"] = [computed_mosaic]
        data = viz.show_simulation_result(savefigname="responses.svg")

        assert set(data) == {"onmidget"}
        assert (tmp_path / "responses_onmidget.svg").exists()


class TestShowWatson:
    def test_cone_density_vs_eccentricity(self, viz, watson):
        eccentricities = np.array([0.5, 1.0, 5.0])
        df = viz.show_cone_density_vs_eccentricity(watson, eccentricities)
        assert len(df) == 12
        assert set(df["retinal_meridian"]) == {
            "nasal meridian",
            "superior meridian",
            "temporal meridian",
            "inferior meridian",
        }

    def test_on_or_off_mrgc_spacing_units(self, viz, watson):
        eccentricities = np.array([1.0, 5.0])
        arcmin = viz.show_on_or_off_mrgc_spacing(watson, eccentricities)
        microns = viz.show_on_or_off_mrgc_spacing(
            watson, eccentricities, spacing_units="retinal mm^2"
        )
        expected = watson.on_or_off_mrgc_rf_spacing_and_density(
            eccentricities, "temporal meridian"
        ).spacing
        np.testing.assert_allclose(arcmin["spacing"].iloc[:2], expected * 60)
        assert (microns["spacing"] > 0).all()

    def test_2d_cone_density(self, viz, watson, tmp_path):
        data = viz.show_2d_cone_density(
            watson, np.linspace(-2, 2, 5), savefigname="density_2d"
        )
        assert data["density"].shape == (5, 5)
        assert (tmp_path / "density_2d.png").exists()


class TestFigsave(unittest.TestCase):
    def test_subfolder_and_extension(self):
        import tempfile
        from pathlib import Path

        with tempfile.TemporaryDirectory() as tmp:
            viz = Viz({"output_folder": Path(tmp)}, ProjectData(), RetinaMath())
            plt.figure()
            path = viz._figsave(figurename="panels/figure_a.pdf")
            plt.close("all")
            self.assertEqual(path, Path(tmp) / "panels" / "figure_a.pdf")
            self.assertTrue(path.exists())
