"""
Linear cone outer segment.

Cone isomerization rates are converted to photocurrent by convolution with a
fixed linear impulse response, a fit to the low light cone responses of
Angueyra & Rieke (2013) Nature Neuroscience. The model does not adapt to the
background.
"""

# Built-in
from typing import Optional

# Third-party
import numpy as np
from scipy.signal import fftconvolve

# Local
from earlyvision.project.project_utilities_module import PrintableMixin
from earlyvision.retina.retina_math_module import RetinaMath
from earlyvision.stimuli.oi_sequence_module import FrameSequence

DEFAULT_OUTER_SEGMENT = {
    "scale": 0.6745,
    "tau_r": 0.0216,
    "tau_d": 0.0299,
    "tau_p": 0.5,
    "phi_deg": -67.46,
    "dark_current": 0.0,
    "duration": 0.5,
}


class OuterSegmentLinear(PrintableMixin):
    """
    Parameters
    ----------
    params : dict, optional
        scale (pA per R*), tau_r, tau_d, tau_p (s), phi_deg, dark_current (pA)
        and duration of the impulse response (s). Missing entries use
        DEFAULT_OUTER_SEGMENT.
    """

    def __init__(
        self, params: Optional[dict] = None, retina_math: Optional[RetinaMath] = None
    ) -> None:
        self.params = dict(DEFAULT_OUTER_SEGMENT, **(params or {}))
        self.retina_math = retina_math if retina_math is not None else RetinaMath()

    def impulse_response(self, dt: float) -> np.ndarray:
        """Impulse response in pA per R*, sampled at dt seconds."""
        if not dt > 0:
            raise ValueError(f"dt must be > 0, got {dt}")
        p = self.params
        tvec = np.arange(0, p["duration"], dt)
        return self.retina_math.cone_linear_impulse_response(
            tvec, p["scale"], p["tau_r"], p["tau_d"], p["tau_p"], p["phi_deg"]
        )

    def compute(self, isomerizations, dt: float, time_axis=None) -> FrameSequence:
        """
        Photocurrent from isomerization rates.

        Parameters
        ----------
        isomerizations : array_like
            [n_frames, rows, cols] or [n_frames, rows, cols, n_cone_types], R*/cone/s.
        dt : float
            Frame interval in seconds.
        time_axis : array_like, optional
            Frame times, defaults to n * dt.

        Returns
        -------
        FrameSequence
            Photocurrent in pA, same shape as the input.
        """
        isomerizations = np.asarray(isomerizations, dtype=float)
        if isomerizations.ndim not in (3, 4):
            raise ValueError(
                f"Isomerizations must be [n_frames, rows, cols(, n_cone_types)], "
                f"got shape {isomerizations.shape}"
            )
        n_frames = isomerizations.shape[0]

        # R*/s times dt gives R* per frame; the filter is in pA per R*
        kernel = self.impulse_response(dt)
        kernel_shaped = kernel.reshape((-1,) + (1,) * (isomerizations.ndim - 1))
        current = fftconvolve(isomerizations * dt, kernel_shaped, mode="full", axes=0)
        current = current[:n_frames] + self.params["dark_current"]

        if time_axis is None:
            time_axis = np.arange(n_frames) * dt
        return FrameSequence(current, time_axis, name="outer segment current")
