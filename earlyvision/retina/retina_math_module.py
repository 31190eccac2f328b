# Third-party
import numpy as np
from scipy.signal import fftconvolve


class RetinaMath:
    """
    Numerical building blocks shared by the receptive field builder, the
    simulation stages and the calculators.
    """

    # Need object instance of this class at ProjectManager
    def __init__(self) -> None:
        pass

    # Receptive field methods
    def gaussian_kernel(self, support: int, sigma: float) -> np.ndarray:
        """
        Normalized isotropic 2D Gaussian on a support x support grid.

        Parameters
        ----------
        support : int
            Side length of the kernel in input samples.
        sigma : float
            Standard deviation of the Gaussian in input samples.

        Returns
        -------
        kernel : np.ndarray
            Array of shape (support, support) summing to one.

        Notes
        -----
        The grid is centered at (support - 1) / 2, so even supports are
        sampled at half-integer offsets from the center.
        """
        half = (support - 1) / 2
        x = np.arange(support) - half
        xx, yy = np.meshgrid(x, x)
        kernel = np.exp(-(xx**2 + yy**2) / (2 * sigma**2))

        # Mask out values below machine precision relative to the peak
        kernel[kernel < np.finfo(float).eps * kernel.max()] = 0
        return kernel / kernel.sum()

    def hex_spacing_from_density(self, density):
        """Center-to-center spacing of a hexagonal mosaic with the given density."""
        return np.sqrt(2.0 / (np.sqrt(3.0) * np.asarray(density, dtype=float)))

    def hex_density_from_spacing(self, spacing):
        return 2.0 / (np.sqrt(3.0) * np.asarray(spacing, dtype=float) ** 2)

    # Convolution methods
    def same_length_convolve(
        self, x: np.ndarray, kernel: np.ndarray, axis: int = -1
    ) -> np.ndarray:
        """
        Convolve along one axis and keep the input length.

        Parameters
        ----------
        x : np.ndarray
            Signals, any number of dimensions.
        kernel : np.ndarray
            1D kernel.
        axis : int
            Axis of x holding time.

        Returns
        -------
        np.ndarray
            Array with the shape of x.

        Notes
        -----
        The full convolution is sliced from len(kernel) // 2, i.e. the central
        part of the full output. Start-of-signal edge effects are kept as is.
        """
        kernel = np.asarray(kernel, dtype=float).ravel()
        x = np.moveaxis(np.asarray(x, dtype=float), axis, -1)
        n_samples = x.shape[-1]
        kernel_shaped = kernel.reshape((1,) * (x.ndim - 1) + (-1,))
        full = fftconvolve(x, kernel_shaped, mode="full", axes=-1)
        start = len(kernel) // 2
        same = full[..., start : start + n_samples]
        return np.moveaxis(same, -1, axis)

    def same_size_convolve2d(
        self, images: np.ndarray, kernel: np.ndarray, axes: tuple = (0, 1)
    ) -> np.ndarray:
        """
        2D convolution with zero padding, output the size of the input images.

        The full output is sliced from kernel.shape // 2 along both axes.
        """
        images = np.asarray(images, dtype=float)
        kernel = np.asarray(kernel, dtype=float)
        kernel_shape = [1] * images.ndim
        kernel_shape[axes[0]] = kernel.shape[0]
        kernel_shape[axes[1]] = kernel.shape[1]
        full = fftconvolve(images, kernel.reshape(kernel_shape), mode="full", axes=axes)

        slices = [slice(None)] * images.ndim
        for ax, k_len in zip(axes, kernel.shape):
            start = k_len // 2
            slices[ax] = slice(start, start + images.shape[ax])
        return full[tuple(slices)]

    # Temporal filter methods
    def lowpass(self, t, n, p, tau):
        """
        Returns a lowpass filter kernel with a given time constant and order.

        Parameters
        ----------
        - t (numpy.ndarray): Time points at which to evaluate the kernel.
        - n (float): Order of the filter.
        - p (float): Normalization factor for the kernel.
        - tau (float): Time constant of the filter.

        Returns
        -------
        - y (numpy.ndarray): Lowpass filter kernel evaluated at each time point in `t`.
        """

        y = p * (t / tau) ** (n) * np.exp(-n * (t / tau - 1))
        return y

    def diff_of_lowpass_filters(self, t, n, p1, p2, tau1, tau2):
        """
        Returns the difference between two lowpass filters with different time constants.
        From Chichilnisky & Kalmar JNeurosci 2002
        """
        y = self.lowpass(t, n, p1, tau1) - self.lowpass(t, n, p2, tau2)
        return y

    def cone_linear_impulse_response(self, t, scale, tau_r, tau_d, tau_p, phi_deg):
        """
        Linear cone photocurrent impulse response (Angueyra & Rieke 2013 fit).

        Parameters
        ----------
        t : np.ndarray
            Time in seconds.
        scale : float
            Amplitude scaling, pA per R*.
        tau_r, tau_d, tau_p : float
            Rising, damping and period time constants in seconds.
        phi_deg : float
            Phase in degrees.
        """
        rising = (t / tau_r) ** 3 / (1 + t / tau_r)
        return (
            scale
            * rising
            * np.exp(-t / tau_d)
            * np.cos(2 * np.pi * t / tau_p + 2 * np.pi * phi_deg / 360)
        )

    def illuminance_range(self, min_illum: float, max_illum: float) -> np.ndarray:
        """
        Display range for a set of illuminance maps.

        A degenerate range (min == max) is widened by 1% on both ends so that
        normalization by the range stays defined.
        """
        if min_illum == max_illum:
            return np.array([min_illum * 0.99, max_illum * 1.01])

        mean_illuminance = np.mean([min_illum, max_illum])
        illum_mod = max_illum / mean_illuminance - 1
        return mean_illuminance + mean_illuminance * illum_mod * np.array([-1, 1])
