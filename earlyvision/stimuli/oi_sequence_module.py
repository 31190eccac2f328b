"""
Input sequences for the cell mosaics.

An OISequence composes a fixed (background) optical image and a modulated
optical image frame by frame, weighted by a modulation function. A
FrameSequence holds maps that are already computed, for example outer
segment photocurrents.

Frames are returned as [n_frames, rows, cols] or
[n_frames, rows, cols, n_channels] arrays.
"""

# Built-in
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

# Third-party
import numpy as np

# Local
from earlyvision.project.project_utilities_module import PrintableMixin
from earlyvision.retina.retina_math_module import RetinaMath


class Composition(Enum):
    BLEND = "blend"
    ADD = "add"

    @classmethod
    def from_string(cls, composition: "str | Composition") -> "Composition":
        if isinstance(composition, cls):
            return composition
        try:
            return cls(str(composition).lower())
        except ValueError as e:
            raise ValueError(
                f"Unknown composition '{composition}', use one of "
                f"{[c.value for c in cls]}"
            ) from e


@dataclass
class OpticalImage:
    """
    One optical image frame.

    Attributes
    ----------
    name : str
        Label of the image.
    data : np.ndarray
        Irradiance, [rows, cols] or [rows, cols, n_wave].
    illuminance : np.ndarray, optional
        [rows, cols] illuminance map. If missing, the mean of data over
        wavelengths is used.
    sample_spacing : float
        Spatial sample spacing in meters.
    wavelength : np.ndarray, optional
        Wavelength support in nm, one entry per channel.
    """

    name: str
    data: np.ndarray
    illuminance: Optional[np.ndarray] = None
    sample_spacing: float = 2e-6
    wavelength: Optional[np.ndarray] = field(default=None)

    def __post_init__(self):
        self.data = np.asarray(self.data, dtype=float)
        if self.data.ndim not in (2, 3):
            raise ValueError(
                f"Optical image data must be 2D or 3D, got shape {self.data.shape}"
            )
        if self.illuminance is not None:
            self.illuminance = np.asarray(self.illuminance, dtype=float)
            if self.illuminance.shape != self.data.shape[:2]:
                raise ValueError(
                    f"Illuminance map shape {self.illuminance.shape} does not match "
                    f"image shape {self.data.shape[:2]}"
                )

    @property
    def shape(self) -> tuple:
        return self.data.shape

    def get_illuminance(self) -> np.ndarray:
        if self.illuminance is not None:
            return self.illuminance
        if self.data.ndim == 3:
            return self.data.mean(axis=2)
        return self.data


def _compose(fixed, modulated, weight, composition: Composition):
    match composition:
        case Composition.BLEND:
            return fixed * (1 - weight) + modulated * weight
        case Composition.ADD:
            return fixed + modulated * weight


class SequenceBase(PrintableMixin, ABC):
    """Common timing attributes of input sequences."""

    def __init__(self, time_axis) -> None:
        self.time_axis = np.asarray(time_axis, dtype=float).ravel()

    @property
    def length(self) -> int:
        return len(self.time_axis)

    @property
    def frame_interval(self) -> float:
        """Time between frames in seconds, nan for single-frame sequences."""
        if self.length < 2:
            return np.nan
        return float(np.mean(np.diff(self.time_axis)))

    @abstractmethod
    def frames(self) -> np.ndarray:
        pass


class OISequence(SequenceBase):
    """
    Sequence of optical images composed from a fixed and a modulated image.

    Parameters
    ----------
    oi_fixed : OpticalImage
        Background image, identical for all frames.
    oi_modulated : OpticalImage
        Image mixed in with weight modulation_function[i] at frame i.
    modulation_function : array_like
        One weight per frame. For blend, weights are expected in [0, 1]; values
        outside are used as given.
    time_axis : array_like, optional
        Frame times in seconds. Defaults to 1 ms steps.
    composition : str
        'blend' for fixed * (1 - w) + modulated * w,
        'add' for fixed + modulated * w.
    """

    def __init__(
        self,
        oi_fixed: OpticalImage,
        oi_modulated: OpticalImage,
        modulation_function,
        time_axis=None,
        composition: str = "blend",
        retina_math: Optional[RetinaMath] = None,
    ) -> None:
        self.modulation_function = np.asarray(modulation_function, dtype=float).ravel()
        if time_axis is None:
            time_axis = np.arange(len(self.modulation_function)) * 1e-3
        super().__init__(time_axis)

        if len(self.modulation_function) != len(self.time_axis):
            raise ValueError(
                f"modulation_function has {len(self.modulation_function)} weights but "
                f"time_axis has {len(self.time_axis)} samples"
            )
        if oi_fixed.shape != oi_modulated.shape:
            raise ValueError(
                f"Fixed image shape {oi_fixed.shape} differs from modulated image "
                f"shape {oi_modulated.shape}"
            )

        self.oi_fixed = oi_fixed
        self.oi_modulated = oi_modulated
        self.composition = Composition.from_string(composition)
        self.retina_math = retina_math if retina_math is not None else RetinaMath()

    @property
    def name(self) -> str:
        return f"{self.oi_fixed.name} {self.composition.value} {self.oi_modulated.name}"

    def frame_at_index(self, index: int) -> np.ndarray:
        weight = self.modulation_function[index]
        return _compose(
            self.oi_fixed.data, self.oi_modulated.data, weight, self.composition
        )

    def frames(self) -> np.ndarray:
        """All composed frames, [n_frames, rows, cols(, n_channels)]."""
        weights = self.modulation_function.reshape(
            (-1,) + (1,) * self.oi_fixed.data.ndim
        )
        return _compose(
            self.oi_fixed.data[np.newaxis],
            self.oi_modulated.data[np.newaxis],
            weights,
            self.composition,
        )

    def illuminance_frames(self) -> np.ndarray:
        """Composed illuminance maps, [n_frames, rows, cols]."""
        weights = self.modulation_function[:, np.newaxis, np.newaxis]
        return _compose(
            self.oi_fixed.get_illuminance()[np.newaxis],
            self.oi_modulated.get_illuminance()[np.newaxis],
            weights,
            self.composition,
        )

    def illuminance_range(self) -> np.ndarray:
        """Display range of the illuminance maps, [low, high]."""
        illuminance = self.illuminance_frames()
        return self.retina_math.illuminance_range(
            float(illuminance.min()), float(illuminance.max())
        )

    def illuminance_movie(self) -> np.ndarray:
        """
        Composed illuminance maps for display.

        Both source maps are scaled to 0-256 by their common maximum before
        composition, so 'add' frames can exceed 256.
        """
        illuminance = self.illuminance_frames()
        max_illuminance = max(
            self.oi_fixed.get_illuminance().max(),
            self.oi_modulated.get_illuminance().max(),
        )
        if max_illuminance == 0:
            return np.zeros_like(illuminance)
        return illuminance * 256 / max_illuminance


class FrameSequence(SequenceBase):
    """
    Sequence of precomputed frames.

    Parameters
    ----------
    frames : array_like
        [n_frames, rows, cols] or [n_frames, rows, cols, n_channels].
    time_axis : array_like
        Frame times in seconds.
    """

    def __init__(self, frames, time_axis, name: str = "frames") -> None:
        super().__init__(time_axis)
        self._frames = np.asarray(frames, dtype=float)
        if self._frames.ndim not in (3, 4):
            raise ValueError(
                f"Frames must be [n_frames, rows, cols(, n_channels)], got shape "
                f"{self._frames.shape}"
            )
        if self._frames.shape[0] != self.length:
            raise ValueError(
                f"Got {self._frames.shape[0]} frames but {self.length} time samples"
            )
        self.name = name

    def frame_at_index(self, index: int) -> np.ndarray:
        return self._frames[index]

    def frames(self) -> np.ndarray:
        return self._frames


def moving_bar_sequence(
    rows: int,
    cols: int,
    n_frames: int,
    bar_width: int = 1,
    step: int = 1,
    background: float = 0.0,
    bar_intensity: float = 1.0,
    frame_interval: float = 1e-3,
) -> FrameSequence:
    """
    Vertical bar sweeping left to right over a uniform background.

    The bar moves `step` columns per frame and wraps around the image edge.
    """
    frames = np.full((n_frames, rows, cols), background, dtype=float)
    for frame_idx in range(n_frames):
        start = (frame_idx * step) % cols
        columns = np.arange(start, start + bar_width) % cols
        frames[frame_idx][:, columns] = bar_intensity
    time_axis = np.arange(n_frames) * frame_interval
    return FrameSequence(frames, time_axis, name="moving bar")
