"""
Spatial receptive fields for bipolar and ganglion cell mosaics.

Each mosaic takes its input from the cone mosaic, so cell locations and kernel
sizes are in units of cone mosaic samples. Multiply by the cone sample pitch
to get retinal distances.

Support sizes follow Dacey, Brainard, Lee et al. (2000) Vision Research: the
center/surround gain ratio is about 1:1.3 and the center:surround diameter
ratio about 1:10 for midget bipolars. Parasol is synonymous with diffuse.
"""

# Built-in
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

# Third-party
import numpy as np

# Local
from earlyvision.retina.retina_math_module import RetinaMath


@dataclass(frozen=True)
class ConeMosaicReference:
    """
    Extent and sample pitch of the cone mosaic feeding a cell mosaic.

    Attributes
    ----------
    rows, cols : int
        Number of cone samples along y and x.
    pattern_sample_size : float
        Distance between cone samples in meters.
    """

    rows: int
    cols: int
    pattern_sample_size: float = 2e-6

    def __post_init__(self):
        if self.rows < 1 or self.cols < 1:
            raise ValueError(
                f"Cone mosaic needs at least one row and column, got {self.rows}x{self.cols}"
            )


@dataclass
class ReceptiveFields:
    center: np.ndarray
    surround: np.ndarray
    support: int
    spread: float
    stride: int
    cell_location: np.ndarray
    cell_pixel: np.ndarray


class CellTypeProfile(ABC):
    """
    Kernel construction rule of a group of cell types.

    Subclasses fix the support table (min_support, base_offset, slope), the
    surround spread ratio and gain, and optionally override the spread.
    """

    cell_types: tuple = ()
    min_support: int
    base_offset: float
    slope: float
    surround_ratio: float
    surround_gain: float = 1.0

    def __init__(self, retina_math: Optional[RetinaMath] = None) -> None:
        self.retina_math = retina_math if retina_math is not None else RetinaMath()

    def support(self, eccentricity: float) -> int:
        return max(
            self.min_support, math.floor(self.base_offset + self.slope * eccentricity)
        )

    @abstractmethod
    def effective_spread(self, spread: float) -> float:
        pass

    def build_kernels(
        self, eccentricity: float, spread: float = 1.0
    ) -> tuple[np.ndarray, np.ndarray]:
        """
        Center and surround kernels for a mosaic at the given eccentricity.

        Returns
        -------
        center, surround : np.ndarray
            Arrays of shape (support, support).
        """
        support = self.support(eccentricity)
        sigma = self.effective_spread(spread)
        center = self.retina_math.gaussian_kernel(support, sigma)
        surround = self.surround_gain * self.retina_math.gaussian_kernel(
            support, self.surround_ratio * sigma
        )
        return center, surround

    @property
    def generator_function(self) -> Optional[Callable]:
        """Static nonlinearity of the ganglion cells fed by this type."""
        # Avoid circular import, the generators live with the simulation stages
        from earlyvision.retina.simulate_mosaic_module import ExponentialGenerator

        return ExponentialGenerator()


class DiffuseProfile(CellTypeProfile):
    """
    Diffuse bipolars that carry parasol signals.

    ecc = 0 mm yields 2x2 cone input, ecc = 30 mm yields 5x5 cone input.
    """

    cell_types = ("ondiffuse", "offdiffuse", "onparasol", "offparasol")
    min_support = 12
    base_offset = 2
    slope = 0.3
    surround_ratio = 1.3

    def effective_spread(self, spread: float) -> float:
        return spread


class MidgetProfile(CellTypeProfile):
    """
    Midget bipolars to midget RGCs.

    Up to 10 mm eccentricity virtually all midget bipolars contact a single cone,
    so the center spread is fixed to one cone sample.
    """

    cell_types = ("onmidget", "offmidget")
    min_support = 7
    base_offset = 1
    slope = 0.2
    surround_ratio = 10.0
    surround_gain = 1.3

    def effective_spread(self, spread: float) -> float:
        return 1.0


class SmallBistratifiedProfile(CellTypeProfile):
    """Small bistratified cells, S-cone signals."""

    cell_types = ("onsbc",)
    min_support = 15
    base_offset = 2
    slope = 0.3
    surround_ratio = 10.0

    def effective_spread(self, spread: float) -> float:
        return 3.0


_PROFILES = (DiffuseProfile, MidgetProfile, SmallBistratifiedProfile)

CELL_TYPES = tuple(ct for profile in _PROFILES for ct in profile.cell_types)


def get_cell_type_profile(
    cell_type: str, retina_math: Optional[RetinaMath] = None
) -> CellTypeProfile:
    """
    Return the profile building kernels for cell_type.

    Raises
    ------
    ValueError
        If cell_type is not a known cell type.
    """
    for profile in _PROFILES:
        if cell_type in profile.cell_types:
            return profile(retina_math)
    raise ValueError(
        f"Unknown cell type '{cell_type}', valid types are {', '.join(CELL_TYPES)}"
    )


def get_cell_locations(
    cone_mosaic: ConeMosaicReference, stride: int
) -> tuple[np.ndarray, np.ndarray]:
    """
    Cell positions sampled on a stride over the cone mosaic.

    Returns
    -------
    cell_location : np.ndarray
        [n_rows, n_cols, 2] array of (x, y) centered on the grid mean.
    cell_pixel : np.ndarray
        [n_rows, n_cols, 2] integer array of (row, col) cone sample indices.
    """
    cols = np.arange(0, cone_mosaic.cols, stride)
    rows = np.arange(0, cone_mosaic.rows, stride)
    X, Y = np.meshgrid(cols, rows)

    cell_location = np.stack(
        [X - X.mean(), Y - Y.mean()], axis=-1
    ).astype(float)
    cell_pixel = np.stack([Y, X], axis=-1).astype(int)
    return cell_location, cell_pixel


def _validate_scalar(name: str, value, positive: bool = False) -> float:
    if not np.isscalar(value) or isinstance(value, (str, bool)):
        raise ValueError(f"{name} must be a scalar, got {value!r}")
    value = float(value)
    if not np.isfinite(value):
        raise ValueError(f"{name} must be finite, got {value}")
    if positive and value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")
    return value


def build_receptive_fields(
    cell_type: str,
    eccentricity: float,
    cone_mosaic: ConeMosaicReference,
    spread: float = 1.0,
    stride: Optional[int] = None,
    retina_math: Optional[RetinaMath] = None,
) -> ReceptiveFields:
    """
    Build the spatial receptive fields and the cell grid of one mosaic.

    Parameters
    ----------
    cell_type : str
        One of CELL_TYPES.
    eccentricity : float
        Eccentricity driving the support size.
    cone_mosaic : ConeMosaicReference
        Input mosaic, sets the extent of the cell grid.
    spread : float
        Standard deviation of the center Gaussian in cone samples. Midget and
        small bistratified types use a fixed spread.
    stride : int, optional
        Spacing of cell centers in cone samples, round(spread) by default.

    Raises
    ------
    ValueError
        On unknown cell type or malformed numeric arguments. Nothing is built
        in that case.
    """
    profile = get_cell_type_profile(cell_type, retina_math)
    eccentricity = _validate_scalar("eccentricity", eccentricity)
    spread = _validate_scalar("spread", spread, positive=True)

    effective_spread = profile.effective_spread(spread)
    if stride is None:
        # Half rounds up
        stride = max(int(np.floor(effective_spread + 0.5)), 1)
    elif int(stride) != stride or stride < 1:
        raise ValueError(f"stride must be a positive integer, got {stride!r}")
    stride = int(stride)

    center, surround = profile.build_kernels(eccentricity, spread)
    cell_location, cell_pixel = get_cell_locations(cone_mosaic, stride)

    return ReceptiveFields(
        center=center,
        surround=surround,
        support=center.shape[0],
        spread=effective_spread,
        stride=stride,
        cell_location=cell_location,
        cell_pixel=cell_pixel,
    )
