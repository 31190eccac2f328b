# Built-in
import time
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional, Tuple

# Third-party
import brian2 as b2
import brian2.units as b2u
import numpy as np
import pandas as pd
import torch
from brian2 import BrianLogger
from tqdm import tqdm

# Local
from earlyvision.project.project_utilities_module import PrintableMixin
from earlyvision.retina.receptive_field_module import (
    ConeMosaicReference,
    ReceptiveFields,
    build_receptive_fields,
    get_cell_type_profile,
)
from earlyvision.retina.retina_math_module import RetinaMath

BrianLogger.log_level_error()

DEFAULT_TEMPORAL_FILTER = {
    "n": 5.0,
    "p1": 0.8,
    "p2": 0.4,
    "tau1": 0.02,
    "tau2": 0.04,
    "duration": 0.2,
}


class MosaicState(IntEnum):
    UNINITIALIZED = 0
    SPATIAL_BUILT = 1
    COMPUTED_SPATIAL = 2
    COMPUTED_TEMPORAL = 3
    COMPUTED_NONLINEAR = 4


@dataclass
class TemporalKernels:
    """
    Temporal impulse responses, one kernel per input channel.

    Attributes
    ----------
    center, surround : list of np.ndarray
        1D kernels sampled at dt.
    dt : float
        Sampling interval in seconds.
    """

    center: List[np.ndarray]
    surround: List[np.ndarray]
    dt: float

    def __post_init__(self):
        self.center = [np.asarray(k, dtype=float).ravel() for k in self.center]
        self.surround = [np.asarray(k, dtype=float).ravel() for k in self.surround]
        if len(self.center) != len(self.surround):
            raise ValueError(
                f"Got {len(self.center)} center kernels but {len(self.surround)} "
                "surround kernels"
            )

    @property
    def n_channels(self) -> int:
        return len(self.center)

    @classmethod
    def from_parameters(
        cls,
        params: Optional[Dict[str, float]],
        dt: float,
        n_channels: int = 1,
        retina_math: Optional[RetinaMath] = None,
    ) -> "TemporalKernels":
        """
        Difference of lowpass filters (Chichilnisky & Kalmar 2002), normalized
        to unit sum and identical for center and surround.
        """
        params = dict(DEFAULT_TEMPORAL_FILTER, **(params or {}))
        retina_math = retina_math if retina_math is not None else RetinaMath()
        if not dt > 0:
            raise ValueError(f"Temporal kernel sampling interval must be > 0, got {dt}")

        tvec = np.arange(0, params["duration"], dt)
        kernel = retina_math.diff_of_lowpass_filters(
            tvec,
            params["n"],
            params["p1"],
            params["p2"],
            params["tau1"],
            params["tau2"],
        )
        kernel_sum = np.sum(np.abs(kernel))
        if kernel_sum > 0:
            kernel = kernel / kernel_sum
        return cls(
            center=[kernel.copy() for _ in range(n_channels)],
            surround=[kernel.copy() for _ in range(n_channels)],
            dt=dt,
        )


def _as_channel_frames(frames: np.ndarray) -> np.ndarray:
    """Return frames as [n_frames, rows, cols, n_channels]."""
    frames = np.asarray(frames, dtype=float)
    match frames.ndim:
        case 3:
            return frames[..., np.newaxis]
        case 4:
            return frames
        case _:
            raise ValueError(
                f"Frames must be [n_frames, rows, cols(, n_channels)], got shape "
                f"{frames.shape}"
            )


class SpatialConvolution:
    """
    Apply the center and surround kernels to every frame and channel.

    Parameters
    ----------
    output : str
        'scalar' gives one value per cell, frame and channel. 'map' keeps the
        kernel-weighted support x support patch under each cell; a map sums to
        the corresponding scalar value.
    """

    outputs = ("scalar", "map")

    def __init__(
        self, output: str = "scalar", retina_math: Optional[RetinaMath] = None
    ) -> None:
        if output not in self.outputs:
            raise ValueError(
                f"Unknown spatial output '{output}', use one of {self.outputs}"
            )
        self.output = output
        self.retina_math = retina_math if retina_math is not None else RetinaMath()

    def compute(
        self,
        frames: np.ndarray,
        rf: ReceptiveFields,
        frame_shape: Optional[Tuple[int, int]] = None,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Parameters
        ----------
        frames : np.ndarray
            [n_frames, rows, cols] or [n_frames, rows, cols, n_channels].
        rf : ReceptiveFields
            Kernels and cell grid of the mosaic.
        frame_shape : tuple, optional
            Expected (rows, cols) of the frames.

        Returns
        -------
        center, surround : np.ndarray
            [n_rows, n_cols, n_frames, n_channels] for scalar output,
            [n_rows, n_cols, n_frames, n_channels, support, support] for maps.
        """
        frames = _as_channel_frames(frames)
        rows, cols = frames.shape[1:3]
        if frame_shape is not None and (rows, cols) != tuple(frame_shape):
            raise ValueError(
                f"Frame size {rows}x{cols} does not match the cone mosaic "
                f"{frame_shape[0]}x{frame_shape[1]}"
            )
        if (
            rf.cell_pixel[..., 0].max() >= rows
            or rf.cell_pixel[..., 1].max() >= cols
        ):
            raise ValueError(
                f"Cell grid extends beyond the {rows}x{cols} frames"
            )

        if self.output == "scalar":
            center = self._sample_convolved(frames, rf.center, rf.cell_pixel)
            surround = self._sample_convolved(frames, rf.surround, rf.cell_pixel)
        else:
            center = self._weighted_patches(frames, rf.center, rf.cell_pixel)
            surround = self._weighted_patches(frames, rf.surround, rf.cell_pixel)
        return center, surround

    def _sample_convolved(self, frames, kernel, cell_pixel):
        convolved = self.retina_math.same_size_convolve2d(frames, kernel, axes=(1, 2))
        sampled = convolved[:, cell_pixel[..., 0], cell_pixel[..., 1], :]
        return np.moveaxis(sampled, 0, 2)

    def _weighted_patches(self, frames, kernel, cell_pixel):
        support = kernel.shape[0]
        offsets = np.arange(support) - (support - 1) // 2

        # Zero padding so that patches at the border stay in range
        pad = support
        padded = np.pad(frames, ((0, 0), (pad, pad), (pad, pad), (0, 0)))
        row_idx = cell_pixel[..., 0][..., np.newaxis] + offsets + pad
        col_idx = cell_pixel[..., 1][..., np.newaxis] + offsets + pad

        # [n_frames, n_rows, n_cols, support, support, n_channels]
        patches = padded[
            :, row_idx[..., :, np.newaxis], col_idx[..., np.newaxis, :], :
        ]
        kernel_flipped = kernel[::-1, ::-1]
        weighted = patches * kernel_flipped[np.newaxis, np.newaxis, np.newaxis, :, :, np.newaxis]
        return np.transpose(weighted, (1, 2, 0, 5, 3, 4))


class TemporalConvolution:
    """
    Filter the spatial responses with the temporal kernels and combine them to
    one linear response per cell.

    linear = sum over channels (center_c * tCenter_c - surround_c * tSurround_c)

    Convolution keeps the input length, the full convolution is sliced from
    len(kernel) // 2. Map responses are first averaged over the map.

    Parameters
    ----------
    backend : str
        'numpy' (scipy fftconvolve) or 'torch' (conv1d on device).
    device : str
        Torch device, used with the torch backend only.
    """

    backends = ("numpy", "torch")

    def __init__(
        self,
        backend: str = "numpy",
        device: str = "cpu",
        retina_math: Optional[RetinaMath] = None,
    ) -> None:
        if backend not in self.backends:
            raise ValueError(
                f"Unknown temporal backend '{backend}', use one of {self.backends}"
            )
        self.backend = backend
        self.device = device
        self.retina_math = retina_math if retina_math is not None else RetinaMath()

    def compute(
        self,
        center: np.ndarray,
        surround: np.ndarray,
        kernels: TemporalKernels,
    ) -> np.ndarray:
        """
        Returns
        -------
        linear_response : np.ndarray
            [n_rows, n_cols, n_frames].
        """
        if center.shape != surround.shape:
            raise ValueError(
                f"Center shape {center.shape} differs from surround shape "
                f"{surround.shape}"
            )
        # Temporal filtering is linear, so averaging the maps first is exact
        if center.ndim == 6:
            center = center.mean(axis=(4, 5))
            surround = surround.mean(axis=(4, 5))
        elif center.ndim != 4:
            raise ValueError(
                f"Spatial responses must be 4D or 6D, got shape {center.shape}"
            )

        n_channels = center.shape[3]
        if kernels.n_channels != n_channels:
            raise ValueError(
                f"Spatial responses have {n_channels} channels but "
                f"{kernels.n_channels} temporal kernels were given"
            )

        linear_response = np.zeros(center.shape[:3], dtype=float)
        for channel in range(n_channels):
            linear_response += self._convolve(
                center[..., channel], kernels.center[channel]
            ) - self._convolve(surround[..., channel], kernels.surround[channel])
        return linear_response

    def _convolve(self, series: np.ndarray, kernel: np.ndarray) -> np.ndarray:
        if self.backend == "numpy":
            return self.retina_math.same_length_convolve(series, kernel, axis=-1)
        return self._torch_convolve(series, kernel)

    def _torch_convolve(self, series: np.ndarray, kernel: np.ndarray) -> np.ndarray:
        n_samples = series.shape[-1]
        filter_length = len(kernel)
        device = torch.device(self.device)

        series_t = torch.tensor(
            series.reshape(-1, 1, n_samples), dtype=torch.float64, device=device
        )

        # conv1d computes cross-correlation, so flip the kernel
        kernel_t = torch.flip(
            torch.tensor(kernel, dtype=torch.float64, device=device), dims=[0]
        ).reshape(1, 1, -1)

        padding_size = filter_length - 1
        series_padded = torch.nn.functional.pad(
            series_t, (padding_size, padding_size), mode="constant", value=0.0
        )
        full = torch.nn.functional.conv1d(series_padded, kernel_t, padding=0)

        start = filter_length // 2
        same = full[..., start : start + n_samples]
        return same.cpu().numpy().reshape(series.shape)


class ExponentialGenerator:
    """
    Exponential static nonlinearity.

    Parameters
    ----------
    collapse_time : bool
        If True, return exp(mean over time) per cell instead of a time series.
    """

    def __init__(self, collapse_time: bool = False) -> None:
        self.collapse_time = collapse_time

    def __call__(self, linear_response: np.ndarray) -> np.ndarray:
        if self.collapse_time:
            return np.exp(np.mean(linear_response, axis=-1))
        return np.exp(linear_response)


def generate_spikes(
    rates: np.ndarray,
    dt: float,
    n_trials: int = 1,
    seed: Optional[int] = None,
) -> List[Tuple[np.ndarray, np.ndarray]]:
    """
    Draw Poisson spike trains from firing rates with brian2.

    Parameters
    ----------
    rates : np.ndarray
        Firing rates in Hz, [..., n_timepoints]. Leading dimensions are
        flattened to unit indices in C order.
    dt : float
        Sampling interval of the rates in seconds.
    n_trials : int
        Number of independent repetitions.
    seed : int, optional
        Seed for the brian2 random number generator.

    Returns
    -------
    list of tuple
        Per trial, (unit indices, spike times in seconds).
    """
    rates = np.asarray(rates, dtype=float)
    if rates.ndim < 1 or rates.shape[-1] == 0:
        raise ValueError(f"Rates need a time axis, got shape {rates.shape}")
    if np.any(rates < 0) or not np.all(np.isfinite(rates)):
        raise ValueError("Firing rates must be finite and non-negative")
    if not dt > 0:
        raise ValueError(f"dt must be > 0, got {dt}")

    rates_2d = rates.reshape(-1, rates.shape[-1])
    n_units, n_timepoints = rates_2d.shape

    b2.prefs.codegen.target = "numpy"
    if seed is not None:
        b2.seed(seed)

    simulation_dt = dt * b2u.second
    duration = n_timepoints * simulation_dt

    # rows=time, columns=unit index
    inst_rates = b2.TimedArray(rates_2d.T * b2u.Hz, dt=simulation_dt)
    poisson_group = b2.PoissonGroup(
        n_units,
        rates="inst_rates(t, i)",
        dt=simulation_dt,
        namespace={"inst_rates": inst_rates},
    )
    spike_monitor = b2.SpikeMonitor(poisson_group)
    net = b2.Network(poisson_group, spike_monitor)
    net.store()

    spikes = []
    for _ in range(n_trials):
        net.restore()
        net.run(duration)
        spike_indices = np.array(spike_monitor.i[:], dtype=int)
        spike_times = np.array(spike_monitor.t[:] / b2u.second, dtype=float)
        spikes.append((spike_indices, spike_times))

    return spikes


class Mosaic(PrintableMixin):
    """
    One cell type on a rectangular grid over the cone mosaic.

    The mosaic owns its response tensors. Stages must run in order:
    init_space, compute_spatial, compute_temporal, compute_nonlinear.
    Rerunning a stage discards the responses of all later stages.

    Parameters
    ----------
    cell_type : str
        Cell type, see receptive_field_module.CELL_TYPES.
    cone_mosaic : ConeMosaicReference
        Input mosaic.
    temporal_kernels : TemporalKernels, optional
        If None, default kernels are built at the input frame interval.
    linear : bool
        If True, the mosaic has no generator function and its nonlinear
        response stays None.
    """

    def __init__(
        self,
        cell_type: str,
        cone_mosaic: ConeMosaicReference,
        temporal_kernels: Optional[TemporalKernels] = None,
        generator_function: Optional[Callable] = None,
        linear: bool = False,
        spatial_output: str = "scalar",
        temporal_backend: str = "numpy",
        device: str = "cpu",
        temporal_filter_parameters: Optional[Dict[str, float]] = None,
        retina_math: Optional[RetinaMath] = None,
    ) -> None:
        self.retina_math = retina_math if retina_math is not None else RetinaMath()

        # Fail on unknown cell types before anything is built
        self._profile = get_cell_type_profile(cell_type, self.retina_math)
        self.cell_type = cell_type
        self.cone_mosaic = cone_mosaic
        self.temporal_kernels = temporal_kernels
        self.temporal_filter_parameters = temporal_filter_parameters
        self.linear = linear
        if linear:
            self.generator_function = None
        elif generator_function is not None:
            self.generator_function = generator_function
        else:
            self.generator_function = self._profile.generator_function

        self.spatial_convolution = SpatialConvolution(spatial_output, self.retina_math)
        self.temporal_convolution = TemporalConvolution(
            temporal_backend, device, self.retina_math
        )

        self._rf: Optional[ReceptiveFields] = None
        self._state = MosaicState.UNINITIALIZED
        self.eccentricity = None
        self.time_axis = None
        self.frame_interval = None
        self._clear_responses(MosaicState.SPATIAL_BUILT)

    @property
    def state(self) -> MosaicState:
        return self._state

    def _require(self, state: MosaicState, action: str) -> None:
        if self._state < state:
            raise RuntimeError(
                f"Cannot {action} for {self.cell_type} mosaic in state "
                f"{self._state.name}, requires {state.name}"
            )

    def _clear_responses(self, from_state: MosaicState) -> None:
        """Drop responses computed at from_state or later."""
        if from_state <= MosaicState.SPATIAL_BUILT:
            self.spatial_response_center = None
            self.spatial_response_surround = None
        if from_state <= MosaicState.COMPUTED_SPATIAL:
            self.linear_response = None
        if from_state <= MosaicState.COMPUTED_TEMPORAL:
            self.nonlinear_response = None

    # Geometry accessors
    def _geometry(self, name):
        self._require(MosaicState.SPATIAL_BUILT, f"read {name}")
        value = getattr(self._rf, name)
        return value.copy() if isinstance(value, np.ndarray) else value

    @property
    def receptive_fields(self) -> ReceptiveFields:
        self._require(MosaicState.SPATIAL_BUILT, "read receptive fields")
        return self._rf

    @property
    def cell_location(self) -> np.ndarray:
        return self._geometry("cell_location")

    @property
    def cell_pixel(self) -> np.ndarray:
        return self._geometry("cell_pixel")

    @property
    def srf_center(self) -> np.ndarray:
        return self._geometry("center")

    @property
    def srf_surround(self) -> np.ndarray:
        return self._geometry("surround")

    @property
    def support(self) -> int:
        return self._geometry("support")

    @property
    def spread(self) -> float:
        return self._geometry("spread")

    @property
    def stride(self) -> int:
        return self._geometry("stride")

    @property
    def grid_shape(self) -> Tuple[int, int]:
        return self._geometry("cell_pixel").shape[:2]

    @property
    def n_cells(self) -> int:
        n_rows, n_cols = self.grid_shape
        return n_rows * n_cols

    def init_space(
        self,
        eccentricity: float = 0.0,
        spread: float = 1.0,
        stride: Optional[int] = None,
    ) -> "Mosaic":
        rf = build_receptive_fields(
            self.cell_type,
            eccentricity,
            self.cone_mosaic,
            spread=spread,
            stride=stride,
            retina_math=self.retina_math,
        )
        self._rf = rf
        self.eccentricity = float(eccentricity)
        self._clear_responses(MosaicState.SPATIAL_BUILT)
        self._state = MosaicState.SPATIAL_BUILT
        return self

    def compute_spatial(self, sequence: Any) -> "Mosaic":
        """
        Spatial responses to all frames of an OISequence or FrameSequence.
        """
        self._require(MosaicState.SPATIAL_BUILT, "compute spatial responses")
        frames = sequence.frames()
        center, surround = self.spatial_convolution.compute(
            frames,
            self._rf,
            frame_shape=(self.cone_mosaic.rows, self.cone_mosaic.cols),
        )

        self._clear_responses(MosaicState.SPATIAL_BUILT)
        self.spatial_response_center = center
        self.spatial_response_surround = surround
        self.time_axis = np.asarray(sequence.time_axis, dtype=float)
        self.frame_interval = sequence.frame_interval
        self._state = MosaicState.COMPUTED_SPATIAL
        return self

    def _get_temporal_kernels(self, n_channels: int) -> TemporalKernels:
        if self.temporal_kernels is not None:
            return self.temporal_kernels
        dt = self.frame_interval
        if dt is None or not np.isfinite(dt):
            dt = 1e-3
        return TemporalKernels.from_parameters(
            self.temporal_filter_parameters, dt, n_channels, self.retina_math
        )

    def compute_temporal(self) -> "Mosaic":
        self._require(MosaicState.COMPUTED_SPATIAL, "compute temporal responses")
        n_channels = self.spatial_response_center.shape[3]
        kernels = self._get_temporal_kernels(n_channels)
        linear_response = self.temporal_convolution.compute(
            self.spatial_response_center, self.spatial_response_surround, kernels
        )

        self._clear_responses(MosaicState.COMPUTED_SPATIAL)
        self.linear_response = linear_response
        self._state = MosaicState.COMPUTED_TEMPORAL
        return self

    def compute_nonlinear(self) -> "Mosaic":
        self._require(MosaicState.COMPUTED_TEMPORAL, "compute nonlinear responses")
        if self.generator_function is None:
            nonlinear_response = None
        else:
            nonlinear_response = self.generator_function(self.linear_response)

        self.nonlinear_response = nonlinear_response
        self._state = MosaicState.COMPUTED_NONLINEAR
        return self

    def compute(self, sequence: Any) -> "Mosaic":
        return self.compute_spatial(sequence).compute_temporal().compute_nonlinear()

    def responses(self) -> Dict[str, Optional[np.ndarray]]:
        return {
            "spatial_response_center": self.spatial_response_center,
            "spatial_response_surround": self.spatial_response_surround,
            "linear_response": self.linear_response,
            "nonlinear_response": self.nonlinear_response,
        }

    def cell_dataframe(self) -> pd.DataFrame:
        """
        One row per cell with grid indices, centered positions in cone samples
        and in micrometers, and the input pixel.
        """
        location = self.cell_location
        pixel = self.cell_pixel
        n_rows, n_cols = location.shape[:2]
        grid_row, grid_col = np.meshgrid(
            np.arange(n_rows), np.arange(n_cols), indexing="ij"
        )
        sample_um = self.cone_mosaic.pattern_sample_size * 1e6
        df = pd.DataFrame(
            {
                "grid_row": grid_row.ravel(),
                "grid_col": grid_col.ravel(),
                "x": location[..., 0].ravel(),
                "y": location[..., 1].ravel(),
                "x_um": location[..., 0].ravel() * sample_um,
                "y_um": location[..., 1].ravel() * sample_um,
                "pixel_row": pixel[..., 0].ravel(),
                "pixel_col": pixel[..., 1].ravel(),
            }
        )
        df["cell_type"] = self.cell_type
        return df


class MosaicCoordinator:
    """
    Run the spatial, temporal and nonlinear stages over several mosaics.

    Parameters
    ----------
    mosaics : list of Mosaic
        Mosaics with built receptive fields, one per cell type.
    progress_callback : callable, optional
        Called as progress_callback(stage, done, total) after each stage of
        each mosaic. Exceptions raised by the callback are turned into
        warnings.
    show_progress : bool
        Show a tqdm progress bar.
    """

    stages = ("spatial", "temporal", "nonlinear")

    def __init__(
        self,
        mosaics: List[Mosaic],
        progress_callback: Optional[Callable[[str, int, int], Any]] = None,
        show_progress: bool = True,
    ) -> None:
        cell_types = [mosaic.cell_type for mosaic in mosaics]
        duplicates = {ct for ct in cell_types if cell_types.count(ct) > 1}
        if duplicates:
            raise ValueError(f"Duplicate mosaics for cell types {sorted(duplicates)}")
        self.mosaics = list(mosaics)
        self.progress_callback = progress_callback
        self.show_progress = show_progress

    def _report(self, stage: str, done: int, total: int) -> None:
        if self.progress_callback is None:
            return
        try:
            self.progress_callback(stage, done, total)
        except Exception as e:
            warnings.warn(
                f"Progress callback failed at {stage} ({done}/{total}): {e!r}",
                RuntimeWarning,
            )

    def compute(self, sequence: Any) -> Dict[str, Dict[str, Optional[np.ndarray]]]:
        """
        Returns
        -------
        dict
            Response tensors of each mosaic keyed by cell type.
        """
        for mosaic in self.mosaics:
            if mosaic.state < MosaicState.SPATIAL_BUILT:
                raise RuntimeError(
                    f"Mosaic {mosaic.cell_type} has no receptive fields, call "
                    "init_space first"
                )

        start_time = time.time()
        total = len(self.mosaics) * len(self.stages)
        done = 0
        with tqdm(
            total=total, desc="Computing mosaic responses", disable=not self.show_progress
        ) as progress_bar:
            for mosaic in self.mosaics:
                for stage in self.stages:
                    progress_bar.set_postfix_str(f"{mosaic.cell_type} {stage}")
                    match stage:
                        case "spatial":
                            mosaic.compute_spatial(sequence)
                        case "temporal":
                            mosaic.compute_temporal()
                        case "nonlinear":
                            mosaic.compute_nonlinear()
                    done += 1
                    progress_bar.update(1)
                    self._report(stage, done, total)

        if self.show_progress:
            print(f"Mosaic computation time: {time.time() - start_time:.2f} s")

        return {mosaic.cell_type: mosaic.responses() for mosaic in self.mosaics}


class MosaicBuildInterface(ABC):
    @property
    @abstractmethod
    def mosaics(self):
        pass

    @abstractmethod
    def get_concrete_components(self):
        pass

    @abstractmethod
    def create_receptive_fields(self):
        pass

    @abstractmethod
    def compute_responses(self):
        pass

    @abstractmethod
    def generate_spikes(self):
        pass


class ConcreteMosaicBuilder(MosaicBuildInterface):
    """
    Builds the mosaics of one simulation run from validated parameters.

    Parameters
    ----------
    simulation_parameters : Mapping
        cell_types, eccentricity, spread, stride, spatial_output,
        temporal_backend, linear, and spikes (n_trials, seed).
    cone_mosaic : ConeMosaicReference
        Input mosaic.
    sequence : OISequence or FrameSequence
        Input frames.
    temporal_filter_parameters, generator_parameters : Mapping, optional
        Difference of lowpass kernel parameters and generator options.
    """

    def __init__(
        self,
        simulation_parameters: Any,
        cone_mosaic: ConeMosaicReference,
        sequence: Any,
        retina_math: RetinaMath,
        device: str = "cpu",
        temporal_filter_parameters: Optional[Any] = None,
        generator_parameters: Optional[Any] = None,
        progress_callback: Optional[Callable] = None,
    ) -> None:
        self._simulation_parameters = simulation_parameters
        self._cone_mosaic = cone_mosaic
        self._sequence = sequence
        self._retina_math = retina_math
        self._device = device
        self._temporal_filter_parameters = (
            dict(temporal_filter_parameters) if temporal_filter_parameters else None
        )
        self._generator_parameters = (
            dict(generator_parameters) if generator_parameters else {}
        )
        self._progress_callback = progress_callback

        self._mosaics: List[Mosaic] = []
        self._responses: Dict[str, Dict[str, Optional[np.ndarray]]] = {}
        self._spikes: Dict[str, List[Tuple[np.ndarray, np.ndarray]]] = {}

    @property
    def mosaics(self) -> List[Mosaic]:
        return self._mosaics

    @property
    def responses(self) -> Dict[str, Dict[str, Optional[np.ndarray]]]:
        return self._responses

    @property
    def spikes(self) -> Dict[str, List[Tuple[np.ndarray, np.ndarray]]]:
        return self._spikes

    @property
    def retina_math(self) -> RetinaMath:
        return self._retina_math

    def get_concrete_components(self) -> None:
        params = self._simulation_parameters
        collapse_time = bool(self._generator_parameters.get("collapse_time", False))
        linear = bool(params.get("linear", False))

        mosaics = []
        for cell_type in params["cell_types"]:
            generator = None if linear else ExponentialGenerator(collapse_time)
            mosaics.append(
                Mosaic(
                    cell_type,
                    self._cone_mosaic,
                    generator_function=generator,
                    linear=linear,
                    spatial_output=params.get("spatial_output", "scalar"),
                    temporal_backend=params.get("temporal_backend", "numpy"),
                    device=self._device,
                    temporal_filter_parameters=self._temporal_filter_parameters,
                    retina_math=self.retina_math,
                )
            )
        self._mosaics = mosaics

    def create_receptive_fields(self) -> None:
        params = self._simulation_parameters
        for mosaic in self._mosaics:
            mosaic.init_space(
                eccentricity=params.get("eccentricity", 0.0),
                spread=params.get("spread", 1.0),
                stride=params.get("stride", None),
            )

    def compute_responses(self) -> None:
        coordinator = MosaicCoordinator(
            self._mosaics,
            progress_callback=self._progress_callback,
            show_progress=self._simulation_parameters.get("show_progress", True),
        )
        self._responses = coordinator.compute(self._sequence)

    def generate_spikes(self) -> None:
        spike_params = self._simulation_parameters.get("spikes", None)
        self._spikes = {}
        if not spike_params or not spike_params.get("generate", False):
            return

        for mosaic in self._mosaics:
            rates = mosaic.nonlinear_response
            # Time-collapsed and linear responses carry no rate time series
            if rates is None or rates.ndim != 3:
                continue
            self._spikes[mosaic.cell_type] = generate_spikes(
                rates,
                dt=mosaic.frame_interval,
                n_trials=spike_params.get("n_trials", 1),
                seed=spike_params.get("seed", None),
            )


class MosaicDirector:
    """
    Directs a mosaic simulation through a builder.

    Parameters
    ----------
    builder : MosaicBuildInterface
        The builder object responsible for constructing the mosaics.
    """

    def __init__(self, builder: MosaicBuildInterface) -> None:
        self.builder = builder

    def build_mosaics(self) -> None:
        self.builder.get_concrete_components()
        self.builder.create_receptive_fields()

    def run_simulation(self) -> None:
        self.builder.get_concrete_components()
        self.builder.create_receptive_fields()
        self.builder.compute_responses()
        self.builder.generate_spikes()

    def get_simulation_result(self) -> Tuple[List[Mosaic], Dict, Dict]:
        """
        Returns
        -------
        tuple
            Mosaics, response tensors keyed by cell type, and spikes keyed by
            cell type.
        """
        return self.builder.mosaics, self.builder.responses, self.builder.spikes


class SimulateMosaic:
    """
    Entry point for mosaic simulations driven by the configuration.

    Parameters
    ----------
    config : Configuration
        Configuration parameters object.
    project_data : Any
        Container for data shared with visualization.
    retina_math : RetinaMath
        Numerical helpers.
    device : str
        Torch device for the temporal stage.
    """

    def __init__(
        self,
        config: Any,
        project_data: Any,
        retina_math: RetinaMath,
        device: str,
    ) -> None:
        self._config = config
        self._project_data = project_data
        self._retina_math = retina_math
        self._device = device

    @property
    def config(self) -> Any:
        return self._config

    @property
    def project_data(self) -> Any:
        return self._project_data

    @property
    def retina_math(self) -> RetinaMath:
        return self._retina_math

    @property
    def device(self) -> str:
        return self._device

    def get_cone_mosaic(self) -> ConeMosaicReference:
        cone_params = self.config.cone_mosaic
        return ConeMosaicReference(
            rows=cone_params["rows"],
            cols=cone_params["cols"],
            pattern_sample_size=cone_params["pattern_sample_size"],
        )

    def client(
        self,
        sequence: Any,
        cone_mosaic: Optional[ConeMosaicReference] = None,
        progress_callback: Optional[Callable] = None,
    ) -> Tuple[List[Mosaic], Dict, Dict]:
        """
        Build and run the mosaic simulation using the builder pattern.

        Parameters
        ----------
        sequence : OISequence or FrameSequence
            Input frames, sized like the cone mosaic.
        cone_mosaic : ConeMosaicReference, optional
            Defaults to the cone_mosaic parameters.
        """
        if cone_mosaic is None:
            cone_mosaic = self.get_cone_mosaic()

        builder = ConcreteMosaicBuilder(
            self.config.simulation_parameters,
            cone_mosaic,
            sequence,
            self.retina_math,
            device=self.device,
            temporal_filter_parameters=self.config.get(
                "temporal_filter_parameters", None
            ),
            generator_parameters=self.config.get("generator_parameters", None),
            progress_callback=progress_callback,
        )
        director = MosaicDirector(builder)
        director.run_simulation()
        mosaics, responses, spikes = director.get_simulation_result()

        self.project_data.simulate_mosaic.update(
            {"mosaics": mosaics, "responses": responses, "spikes": spikes}
        )
        return mosaics, responses, spikes
