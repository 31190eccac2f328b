"""
Parameter validation with Pydantic.

Each parameter in the project configuration, after being loaded, is validated
against the required type. Parameters derived from other parameters are
computed here.
"""

from __future__ import annotations

# Built-in
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

# Third-party
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

# Local
from earlyvision.retina.receptive_field_module import CELL_TYPES

if TYPE_CHECKING:
    # Local
    from earlyvision.data_io.config_io import Configuration


class BaseConfigModel(BaseModel):
    """
    Base class for configuration models. Extra parameters in the YAML files are
    allowed and retained.
    """

    def __init__(self, **data: Any):
        provided_fields = set(data.keys())
        for field_name, field_content in type(self).model_fields.items():
            if (
                field_name not in provided_fields
                and field_content.default is not None
                and not field_content.is_required()
            ):
                print(
                    f"Parameter '{field_name}' not provided in the YAML file(s), "
                    f"using default value: {field_content.default} (set in param_validation.py)",
                )

        super().__init__(**data)

    model_config = ConfigDict(extra="allow")


## From retina_parameters.yaml
class ConeMosaicParameters(BaseConfigModel):
    rows: int = Field(ge=1, description="cone samples along y")
    cols: int = Field(ge=1, description="cone samples along x")
    pattern_sample_size: float = Field(
        default=2e-6, gt=0, description="cone sample pitch in meters"
    )


class SpikeParameters(BaseConfigModel):
    generate: bool = False
    n_trials: int = Field(default=1, ge=1)
    seed: int | None = None


class MosaicParameters(BaseConfigModel):
    cell_types: list[str] = Field(min_length=1)
    eccentricity: float = Field(default=0.0, ge=0.0)
    spread: float = Field(default=1.0, gt=0.0, description="in cone samples")
    stride: int | None = Field(
        default=None, ge=1, description="null for round(spread)"
    )
    spatial_output: Literal["scalar", "map"] = "scalar"
    temporal_backend: Literal["numpy", "torch"] = "numpy"
    linear: bool = Field(
        default=False, description="If True, mosaics have no generator function"
    )
    show_progress: bool = True

    @field_validator("cell_types", mode="after")
    @classmethod
    def check_cell_types(cls, cell_types):
        unknown = [ct for ct in cell_types if ct not in CELL_TYPES]
        if unknown:
            raise ValueError(f"Unknown cell types {unknown}, valid types are {CELL_TYPES}")
        if len(set(cell_types)) != len(cell_types):
            raise ValueError(f"Duplicate cell types in {cell_types}")
        return cell_types


class SimulationParameters(MosaicParameters):
    spikes: SpikeParameters = SpikeParameters()


class TemporalFilterParameters(BaseConfigModel):
    n: float = Field(default=5.0, gt=0, description="lowpass filter order")
    p1: float = 0.8
    p2: float = 0.4
    tau1: float = Field(default=0.02, gt=0, description="in sec")
    tau2: float = Field(default=0.04, gt=0, description="in sec")
    duration: float = Field(default=0.2, gt=0, description="kernel length in sec")


class GeneratorParameters(BaseConfigModel):
    collapse_time: bool = Field(
        default=False, description="If True, exp(mean over time) per cell"
    )


class OuterSegmentParameters(BaseConfigModel):
    scale: float = Field(default=0.6745, description="pA per R*")
    tau_r: float = Field(default=0.0216, gt=0, description="in sec")
    tau_d: float = Field(default=0.0299, gt=0, description="in sec")
    tau_p: float = Field(default=0.5, gt=0, description="in sec")
    phi_deg: float = -67.46
    dark_current: float = Field(default=0.0, description="in pA")
    duration: float = Field(default=0.5, gt=0, description="in sec")


class DensityParameters(BaseConfigModel):
    ecc_units: Literal["visual deg", "retinal mm"] = "visual deg"
    density_units: Literal["visual deg^2", "retinal mm^2"] = "visual deg^2"
    cone_density_file: Path | None = Field(
        default=None,
        description="CSV with ecc_mm, angle_deg and density columns, relative to input_folder",
    )


class ConfigParams(BaseConfigModel):
    model_root_path: Path = Field(description="Update this to your model root path")
    project: str = Field(description="Project name")
    experiment: str = Field(description="Current experiment")
    input_folder: str
    output_folder: str
    numpy_seed: int = Field(ge=0, le=1000000, default=42)
    device: Literal["cpu", "cuda"] = "cpu"
    run: dict[str, Any] = {}
    profile: bool = False

    cone_mosaic: ConeMosaicParameters
    simulation_parameters: SimulationParameters
    temporal_filter_parameters: TemporalFilterParameters = TemporalFilterParameters()
    generator_parameters: GeneratorParameters = GeneratorParameters()
    outer_segment_parameters: OuterSegmentParameters = OuterSegmentParameters()
    density_parameters: DensityParameters = DensityParameters()

    @field_validator("model_root_path", mode="after")
    @classmethod
    def convert_model_root_path_to_path(cls, model_root_path) -> Path:
        model_root_path = Path(model_root_path).expanduser()
        if not model_root_path.exists():
            print(
                f"\033[91m \nModel root path {model_root_path} does not exist.\n"
                f"Update core_parameters.yaml model_root_path.\n"
                f"Using current working directory. \033[0m\n"
            )
            return Path.cwd()
        return model_root_path

    @model_validator(mode="after")
    def set_derived_values(self):
        self.path = self.model_root_path.joinpath(Path(self.project), self.experiment)
        if self.simulation_parameters.temporal_backend == "numpy" and self.device != "cpu":
            print(
                f"Device '{self.device}' is used by the torch temporal backend only, "
                "numpy backend runs on cpu."
            )
        return self


def _validate_paths(config: Configuration) -> None:
    if not config.path.is_absolute():
        raise KeyError("The 'path' parameter is not an absolute path, aborting...")

    config.output_folder = config.path.joinpath(config.output_folder)
    config.input_folder = config.path.joinpath(config.input_folder)

    config.input_folder.mkdir(parents=True, exist_ok=True)
    config.output_folder.mkdir(parents=True, exist_ok=True)


# Façade
def validate_params(
    config: Configuration,
    project_conf_module_file_path: Path,
    git_repo_root_path: Path,
) -> Configuration:
    """
    Validate and convert parameters to the appropriate types.

    Parameters
    ----------
    config : Configuration
        Configuration loaded from the YAML files.

    Returns
    -------
    Configuration
        The same object, updated with the validated and derived parameters.

    Raises
    ------
    pydantic.ValidationError
        If a parameter has the wrong type or value.
    """
    validated_config: dict = ConfigParams(**config.to_dict()).model_dump()
    validated_config["project_conf_module_file_path"] = project_conf_module_file_path
    validated_config["git_repo_root_path"] = git_repo_root_path

    config.clear()
    config.update(validated_config)

    _validate_paths(config)

    return config
