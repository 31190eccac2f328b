"""
Cone and midget RGC receptive field spacing and density as a function of
eccentricity, after Watson (2014) 'A formula for human retinal ganglion cell
receptive field density as a function of visual field location', Journal of
Vision 14(7):15.

Meridians are named in the visual field of the right eye, in the order of
increasing polar angle: temporal (0 deg), superior (90), nasal (180) and
inferior (270). Cone densities come from an external source, queried in
retinal coordinates (per mm2, ISETBio angle convention).
"""

# Built-in
from enum import Enum
from pathlib import Path
from typing import Callable, NamedTuple, Optional

# Third-party
import numpy as np
import pandas as pd
from scipy.interpolate import interp1d

# Local
from earlyvision.retina.retina_math_module import RetinaMath

MERIDIAN_NAMES = (
    "temporal meridian",
    "superior meridian",
    "nasal meridian",
    "inferior meridian",
)

# a_k, r_2k (deg), r_ek (deg), Table 1 in Watson (2014)
MERIDIAN_PARAMS = {
    "temporal meridian": (0.9851, 1.058, 22.14),
    "superior meridian": (0.996, 0.9932, 12.13),
    "nasal meridian": (0.9729, 1.084, 7.633),
    "inferior meridian": (0.9935, 1.035, 16.35),
}

MERIDIAN_COLORS = {
    "temporal meridian": (1.0, 0.0, 0.0),
    "superior meridian": (0.0, 0.0, 1.0),
    "nasal meridian": (0.0, 0.8, 0.0),
    "inferior meridian": (0.2, 0.2, 0.2),
}

# Visual field meridian of the right eye -> (retinal angle, eye, retinal meridian)
# Retinal angles: nasal 0, superior 90, temporal 180, inferior 270
_RETINAL_MERIDIANS = {
    "temporal meridian": (0, "right", "nasal meridian"),
    "superior meridian": (270, "right", "inferior meridian"),
    "nasal meridian": (180, "right", "temporal meridian"),
    "inferior meridian": (90, "right", "superior meridian"),
}

GLOSSARY = {
    "mRGCf": "midget RGC receptive field",
    "g": "RGC",
    "m": "midget RGC",
    "c": "cone",
    "gf": "RGC receptive field",
    "mf": "midget RGC receptive field",
    "dc(0)": "peak cone density (at 0 deg eccentricity)",
    "f0": "fraction of all ganglion cells that are midget at 0 deg eccentricity",
    "alpha": "Conversion factor mm^2 -> deg^2 as a function of eccentricity",
}


class EccentricityUnits(Enum):
    VISUAL_DEG = "visual deg"
    RETINAL_MM = "retinal mm"

    @classmethod
    def parse(cls, units) -> "EccentricityUnits":
        if isinstance(units, cls):
            return units
        try:
            return cls(units)
        except ValueError as e:
            raise ValueError(
                f"Eccentricity units must be one of {[u.value for u in cls]}, "
                f"got {units!r}"
            ) from e


class DensityUnits(Enum):
    VISUAL_DEG2 = "visual deg^2"
    RETINAL_MM2 = "retinal mm^2"

    @classmethod
    def parse(cls, units) -> "DensityUnits":
        if isinstance(units, cls):
            return units
        try:
            return cls(units)
        except ValueError as e:
            raise ValueError(
                f"Density units must be one of {[u.value for u in cls]}, "
                f"got {units!r}"
            ) from e


class SpacingDensity(NamedTuple):
    spacing: np.ndarray
    density: np.ndarray
    retinal_meridian_name: Optional[str] = None


class TabulatedConeDensity:
    """
    Cone density source backed by a table.

    Parameters
    ----------
    table : pd.DataFrame
        Columns ecc_mm, angle_deg and density (cones per mm2), right eye,
        retinal angles nasal 0, superior 90, temporal 180, inferior 270.

    Notes
    -----
    Densities are interpolated linearly in eccentricity along each tabulated
    angle and then linearly in angle. Eccentricities outside the table are
    clamped to the first and last tabulated values.
    """

    required_columns = ("ecc_mm", "angle_deg", "density")

    def __init__(self, table: pd.DataFrame) -> None:
        missing = [c for c in self.required_columns if c not in table.columns]
        if missing:
            raise KeyError(f"Cone density table is missing columns {missing}")
        self.table = table.sort_values(["angle_deg", "ecc_mm"]).reset_index(drop=True)
        self.angles = np.sort(self.table["angle_deg"].unique() % 360)

        self._interpolators = {}
        for angle, group in self.table.groupby("angle_deg"):
            density = group["density"].to_numpy(dtype=float)
            self._interpolators[float(angle) % 360] = interp1d(
                group["ecc_mm"].to_numpy(dtype=float),
                density,
                kind="linear",
                bounds_error=False,
                fill_value=(density[0], density[-1]),
            )

    @classmethod
    def from_csv(cls, path: Path | str) -> "TabulatedConeDensity":
        return cls(pd.read_csv(path))

    def __call__(self, ecc_mm, angle_deg: float, which_eye: str = "right") -> np.ndarray:
        ecc_mm = np.abs(np.asarray(ecc_mm, dtype=float))
        if which_eye not in ("right", "left"):
            raise ValueError(f"which_eye must be 'right' or 'left', got {which_eye!r}")
        angle = float(angle_deg) % 360
        if which_eye == "left":
            # Nasal and temporal swap sides in the left eye
            angle = (180 - angle) % 360

        if len(self.angles) == 1:
            return self._interpolators[self.angles[0]](ecc_mm)

        # Neighboring tabulated angles, wrapping around 360
        upper_idx = np.searchsorted(self.angles, angle) % len(self.angles)
        lower_angle = self.angles[upper_idx - 1]
        upper_angle = self.angles[upper_idx]
        span = (upper_angle - lower_angle) % 360
        weight = 0.0 if span == 0 else ((angle - lower_angle) % 360) / span

        return (1 - weight) * self._interpolators[lower_angle](
            ecc_mm
        ) + weight * self._interpolators[upper_angle](ecc_mm)


class WatsonRGCModel:
    """
    Calculator for Watson (2014) retinal anatomy.

    Parameters
    ----------
    cone_density_source : callable, optional
        f(ecc_mm, angle_deg, which_eye) returning cones per mm2. Required for
        the cone calculations only.
    ecc_degs : array_like, optional
        Default eccentricity support for figures, 0 to 90 deg.
    """

    f0 = 1 / 1.12  # midget fraction of all RGCs at 0 deg
    dc0 = 14804.6  # peak cone density, cones/deg2
    dgf0 = 33162.0  # peak RGC receptive field density, cells/deg2
    rm = 41.03  # midget fraction scale, deg
    foveal_correction_limit = 0.18  # deg

    paper_title_full = (
        "Watson (2014): 'A formula for human RGC receptive field density as a "
        "function of visual field location'"
    )
    paper_title_short = "Watson (2014) RGC model"

    def __init__(
        self,
        cone_density_source: Optional[Callable] = None,
        ecc_degs=None,
        retina_math: Optional[RetinaMath] = None,
    ) -> None:
        self.cone_density_source = cone_density_source
        self.ecc_degs = (
            np.arange(0, 90.001, 0.002) if ecc_degs is None else np.asarray(ecc_degs)
        )
        self.retina_math = retina_math if retina_math is not None else RetinaMath()
        self.glossary = dict(GLOSSARY)
        self.meridian_table = pd.DataFrame(
            [
                {
                    "meridian": name,
                    "a_k": MERIDIAN_PARAMS[name][0],
                    "r_2k": MERIDIAN_PARAMS[name][1],
                    "r_ek": MERIDIAN_PARAMS[name][2],
                    "color": MERIDIAN_COLORS[name],
                    "angle_deg": 90 * idx,
                }
                for idx, name in enumerate(MERIDIAN_NAMES)
            ]
        ).set_index("meridian")

    # Unit conversions, equations A5-A7
    @staticmethod
    def rho_degs_to_mms(ecc_degs):
        ecc_degs = np.asarray(ecc_degs, dtype=float)
        return 0.268 * ecc_degs + 0.0003427 * ecc_degs**2 - 8.3309e-6 * ecc_degs**3

    @staticmethod
    def rho_mms_to_degs(ecc_mm):
        ecc_mm = np.asarray(ecc_mm, dtype=float)
        return (
            3.556 * ecc_mm
            + 0.05993 * ecc_mm**2
            - 0.007358 * ecc_mm**3
            + 0.0003027 * ecc_mm**4
        )

    @staticmethod
    def alpha(ecc_degs):
        """Retinal area per visual area, mm2 per deg2."""
        ecc_degs = np.asarray(ecc_degs, dtype=float)
        return (
            0.0752
            + 5.846e-5 * ecc_degs
            - 1.064e-5 * ecc_degs**2
            + 4.116e-8 * ecc_degs**3
        )

    @staticmethod
    def validate_meridian_name(meridian_name: str) -> str:
        """Return the canonical meridian name, 'temporal' or 'temporal meridian'."""
        name = str(meridian_name).strip().lower()
        if not name.endswith(" meridian"):
            name = f"{name} meridian"
        if name not in MERIDIAN_PARAMS:
            raise ValueError(
                f"Unknown meridian {meridian_name!r}, use one of {list(MERIDIAN_NAMES)}"
            )
        return name

    @staticmethod
    def _as_vector(eccentricities) -> np.ndarray:
        ecc = np.asarray(eccentricities, dtype=float)
        if ecc.ndim == 0:
            return ecc.reshape(1)
        if ecc.ndim == 1:
            return ecc
        if ecc.ndim == 2 and 1 in ecc.shape:
            return ecc.ravel()
        raise ValueError(
            f"Eccentricities must be a 1xN or Nx1 vector, got shape {ecc.shape}"
        )

    def retinal_angle_for_meridian(self, meridian_name: str) -> tuple[int, str, str]:
        """
        Retinal angle, eye and retinal meridian name for a right-eye visual
        field meridian.
        """
        return _RETINAL_MERIDIANS[self.validate_meridian_name(meridian_name)]

    def _eccentricities_in_mm_and_degs(self, eccentricities, ecc_units):
        ecc = self._as_vector(eccentricities)
        match EccentricityUnits.parse(ecc_units):
            case EccentricityUnits.VISUAL_DEG:
                return self.rho_degs_to_mms(ecc), ecc
            case EccentricityUnits.RETINAL_MM:
                return ecc, self.rho_mms_to_degs(ecc)

    def _require_cone_density_source(self) -> Callable:
        if self.cone_density_source is None:
            raise ValueError(
                "No cone density source set, pass cone_density_source to WatsonRGCModel"
            )
        return self.cone_density_source

    def peak_cone_density(self, density_units="visual deg^2") -> float:
        """Watson peak cone density dc(0) in the requested units."""
        match DensityUnits.parse(density_units):
            case DensityUnits.VISUAL_DEG2:
                return self.dc0
            case DensityUnits.RETINAL_MM2:
                return self.dc0 / float(self.alpha(0))

    def cone_rf_spacing_and_density(
        self,
        eccentricities,
        meridian_name: str,
        ecc_units="visual deg",
        density_units="visual deg^2",
    ) -> SpacingDensity:
        """
        Cone receptive field spacing and density along a visual field meridian.

        Parameters
        ----------
        eccentricities : array_like
            1xN or Nx1 vector in ecc_units.
        meridian_name : str
            Right-eye visual field meridian.
        ecc_units : str or EccentricityUnits
            'visual deg' or 'retinal mm'.
        density_units : str or DensityUnits
            'visual deg^2' or 'retinal mm^2'. Spacing is in deg or mm, respectively.

        Returns
        -------
        SpacingDensity
            spacing, density and the retinal meridian name.

        Notes
        -----
        The source peak density is larger than Watson's dc(0). Within 0.18 deg
        the density is lowered linearly, by the full difference at 0 deg and
        by nothing at 0.18 deg, so that there are 2 mRGCs per cone in the fovea.
        """
        density_units = DensityUnits.parse(density_units)
        ecc_mm, ecc_degs = self._eccentricities_in_mm_and_degs(eccentricities, ecc_units)
        angle, which_eye, retinal_meridian_name = self.retinal_angle_for_meridian(
            meridian_name
        )
        source = self._require_cone_density_source()
        density_mm2 = np.array(source(ecc_mm, angle, which_eye), dtype=float)

        # Foveal correction to Watson's peak density
        idx = np.abs(ecc_degs) <= self.foveal_correction_limit
        if np.any(idx):
            alpha0 = float(self.alpha(0))
            source_peak_mm2 = float(np.ravel(source(np.array([0.0]), 0, "right"))[0])
            correction_max = (source_peak_mm2 * alpha0 - self.dc0) / alpha0
            limit = self.foveal_correction_limit
            density_mm2[idx] -= correction_max * (limit - ecc_degs[idx]) / limit

        spacing_mm = self.retina_math.hex_spacing_from_density(density_mm2)

        match density_units:
            case DensityUnits.RETINAL_MM2:
                return SpacingDensity(spacing_mm, density_mm2, retinal_meridian_name)
            case DensityUnits.VISUAL_DEG2:
                spacing_degs = self.rho_mms_to_degs(
                    spacing_mm + ecc_mm
                ) - self.rho_mms_to_degs(ecc_mm)
                density_degs2 = density_mm2 * self.alpha(ecc_degs)
                return SpacingDensity(
                    spacing_degs, density_degs2, retinal_meridian_name
                )

    # Midget RGC receptive fields
    def total_rgc_rf_density(self, ecc_degs, meridian_name: str) -> np.ndarray:
        """RGC receptive field density in cells/deg2, equation 4."""
        a_k, r_2k, r_ek = MERIDIAN_PARAMS[self.validate_meridian_name(meridian_name)]
        r = np.asarray(ecc_degs, dtype=float)
        return self.dgf0 * (
            a_k * (1 + r / r_2k) ** -2 + (1 - a_k) * np.exp(-r / r_ek)
        )

    def midget_rgc_fraction(self, ecc_degs) -> np.ndarray:
        """Fraction of RGCs that are midget, equation 7."""
        r = np.asarray(ecc_degs, dtype=float)
        return self.f0 / (1 + r / self.rm)

    def mrgc_rf_spacing_and_density(
        self,
        eccentricities,
        meridian_name: str,
        ecc_units="visual deg",
        density_units="visual deg^2",
    ) -> SpacingDensity:
        """
        Midget RGC receptive field spacing and density, ON and OFF combined.
        """
        density_units = DensityUnits.parse(density_units)
        ecc_mm, ecc_degs = self._eccentricities_in_mm_and_degs(eccentricities, ecc_units)
        meridian_name = self.validate_meridian_name(meridian_name)

        density_degs2 = self.midget_rgc_fraction(ecc_degs) * self.total_rgc_rf_density(
            ecc_degs, meridian_name
        )
        spacing_degs = self.retina_math.hex_spacing_from_density(density_degs2)
        retinal_meridian_name = _RETINAL_MERIDIANS[meridian_name][2]

        match density_units:
            case DensityUnits.VISUAL_DEG2:
                return SpacingDensity(spacing_degs, density_degs2, retinal_meridian_name)
            case DensityUnits.RETINAL_MM2:
                spacing_mm = self.rho_degs_to_mms(
                    spacing_degs + ecc_degs
                ) - self.rho_degs_to_mms(ecc_degs)
                density_mm2 = density_degs2 / self.alpha(ecc_degs)
                return SpacingDensity(spacing_mm, density_mm2, retinal_meridian_name)

    def on_or_off_mrgc_rf_spacing_and_density(
        self,
        eccentricities,
        meridian_name: str,
        ecc_units="visual deg",
        density_units="visual deg^2",
    ) -> SpacingDensity:
        """Spacing and density of one class, ON or OFF, assuming equal numbers."""
        spacing, density, retinal_meridian_name = self.mrgc_rf_spacing_and_density(
            eccentricities, meridian_name, ecc_units, density_units
        )
        return SpacingDensity(
            np.sqrt(2.0) * spacing, 0.5 * density, retinal_meridian_name
        )

    def interpolated_values_from_meridian_values(
        self, meridian_values, requested_angles
    ) -> np.ndarray:
        """
        Interpolate values given at the four meridians to arbitrary polar angles.

        Parameters
        ----------
        meridian_values : array_like
            [4, n_ecc] values at 0, 90, 180 and 270 deg.
        requested_angles : array_like
            Polar angles in degrees.

        Returns
        -------
        np.ndarray
            [n_angles, n_ecc].
        """
        meridian_values = np.atleast_2d(np.asarray(meridian_values, dtype=float))
        if meridian_values.shape[0] != len(MERIDIAN_NAMES):
            raise ValueError(
                f"Expected values for {len(MERIDIAN_NAMES)} meridians, got "
                f"{meridian_values.shape[0]}"
            )
        angles = np.asarray(requested_angles, dtype=float).ravel() % 360

        # Close the circle so that 270 -> 360 interpolates towards 0
        meridian_angles = np.arange(0, 361, 90)
        closed = np.vstack([meridian_values, meridian_values[:1]])
        return interp1d(meridian_angles, closed, axis=0)(angles)

    def compute_2d_cone_rf_density(
        self, ecc_degs_support, density_units="visual deg^2"
    ) -> tuple[np.ndarray, np.ndarray]:
        """
        Cone receptive field density over the right-eye visual field.

        Parameters
        ----------
        ecc_degs_support : array_like
            1D support in deg for both x and y.

        Returns
        -------
        density : np.ndarray
            [n, n] density at (y, x).
        spatial_support : np.ndarray
            The x and y support in deg.
        """
        support = self._as_vector(ecc_degs_support)
        X, Y = np.meshgrid(support, support)
        radius = np.hypot(X, Y)
        angles = np.degrees(np.arctan2(Y, X)) % 360

        radii = np.unique(radius)
        meridian_values = np.vstack(
            [
                self.cone_rf_spacing_and_density(
                    radii, name, "visual deg", density_units
                ).density
                for name in MERIDIAN_NAMES
            ]
        )

        radius_idx = np.searchsorted(radii, radius.ravel())
        angles = angles.ravel()
        lower = (angles // 90).astype(int) % len(MERIDIAN_NAMES)
        upper = (lower + 1) % len(MERIDIAN_NAMES)
        weight = (angles - 90 * lower) / 90
        density = (1 - weight) * meridian_values[lower, radius_idx] + (
            weight * meridian_values[upper, radius_idx]
        )
        return density.reshape(radius.shape), support
