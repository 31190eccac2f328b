"""
Module on project management

We use dependency injection to make the code more modular and easier to test.
During construction here at the manager level, we inject object instances to
the constructors of the "clients", which keep them as attributes.
"""

from __future__ import annotations

# Built-in
from typing import TYPE_CHECKING

# Third-party
import numpy as np

# Local
from earlyvision.calculators.watson_rgc_module import (
    TabulatedConeDensity,
    WatsonRGCModel,
)
from earlyvision.retina.outer_segment_module import OuterSegmentLinear
from earlyvision.retina.retina_math_module import RetinaMath
from earlyvision.retina.simulate_mosaic_module import SimulateMosaic
from earlyvision.stimuli.oi_sequence_module import moving_bar_sequence
from earlyvision.viz.viz_module import Viz

if TYPE_CHECKING:
    from earlyvision.data_io.config_io import Configuration


class ProjectData:
    """
    Container for project piping data for internal use, such as visualizations.
    """

    def __init__(self) -> None:
        self.simulate_mosaic = {}


class ProjectManager:
    def __init__(self, config: Configuration) -> None:
        """
        Main project manager.
        In init we construct other classes and inject necessary dependencies.
        """
        self.config = config
        self.project_data = ProjectData()
        self.retina_math = RetinaMath()

        self.viz = Viz(self.config, self.project_data, self.retina_math)

        self.simulate_mosaic = SimulateMosaic(
            self.config,
            self.project_data,
            self.retina_math,
            self.config.get("device", "cpu"),
        )

        self.outer_segment = OuterSegmentLinear(
            self.config.get("outer_segment_parameters", None), self.retina_math
        )

        self.watson = WatsonRGCModel(
            cone_density_source=self._get_cone_density_source(),
            retina_math=self.retina_math,
        )

        np.random.seed(self.config.get("numpy_seed", 42))

    def _get_cone_density_source(self) -> TabulatedConeDensity | None:
        density_parameters = self.config.get("density_parameters", None)
        if not density_parameters or not density_parameters.get("cone_density_file"):
            return None
        cone_density_file = density_parameters["cone_density_file"]
        input_folder = self.config.get("input_folder", None)
        if input_folder is not None:
            cone_density_file = input_folder.joinpath(cone_density_file)
        return TabulatedConeDensity.from_csv(cone_density_file)

    @property
    def simulate_mosaic(self) -> SimulateMosaic:
        return self._simulate_mosaic

    @simulate_mosaic.setter
    def simulate_mosaic(self, value) -> None:
        if isinstance(value, SimulateMosaic):
            self._simulate_mosaic = value
        else:
            raise AttributeError(
                "Trying to set improper simulate_mosaic. simulate_mosaic must be a "
                "SimulateMosaic instance."
            )

    def default_sequence(self, n_frames: int = 50, bar_width: int = 5):
        """Moving bar sized like the configured cone mosaic, 10 ms frames."""
        cone_mosaic = self.config.cone_mosaic
        return moving_bar_sequence(
            cone_mosaic["rows"],
            cone_mosaic["cols"],
            n_frames,
            bar_width=bar_width,
            frame_interval=0.01,
        )


def dispatcher(PM: ProjectManager, config: Configuration) -> None:
    """Runs the pipeline(s) chosen in core_parameters.yaml."""
    run = config.get("run", {})
    if run.get("simulate_mosaic", False):
        PM.simulate_mosaic.client(PM.default_sequence())
        if run.get("show_responses", False):
            PM.viz.show_simulation_result(savefigname="mosaic_responses")
        if run.get("show_receptive_fields", False):
            for mosaic in PM.project_data.simulate_mosaic["mosaics"]:
                PM.viz.show_receptive_fields(
                    mosaic, savefigname=f"receptive_fields_{mosaic.cell_type}"
                )
    if run.get("show_watson_figures", False):
        density_parameters = config.get("density_parameters", {})
        ecc_units = density_parameters.get("ecc_units", "visual deg")
        density_units = density_parameters.get("density_units", "visual deg^2")
        PM.viz.show_on_or_off_mrgc_spacing(
            PM.watson, spacing_units=density_units, savefigname="watson_figure_11"
        )
        if PM.watson.cone_density_source is not None:
            PM.viz.show_cone_density_vs_eccentricity(
                PM.watson,
                ecc_units=ecc_units,
                density_units=density_units,
                savefigname="watson_figure_1",
            )
        else:
            print("No cone_density_file set, skipping cone density figure.")
