# Built-in
from pathlib import Path
from typing import Optional

# Third-party
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib import animation

# Local
from earlyvision.calculators.watson_rgc_module import (
    MERIDIAN_COLORS,
    MERIDIAN_NAMES,
    DensityUnits,
    EccentricityUnits,
)


class Viz:
    """
    Methods to visualize sequences, mosaics and the Watson calculators.

    Methods take the object they draw as call parameter and return the plotted
    data in a dict or DataFrame.
    """

    cmap = "gist_earth"

    def __init__(self, config, project_data, retina_math, **kwargs) -> None:
        self._config = config
        self._project_data = project_data
        self._retina_math = retina_math

        for attr, value in kwargs.items():
            setattr(self, attr, value)

        self.cmap_stim = "gray"
        self.cmap_spatial_filter = "bwr"
        self.figure_prefs = {
            "line_width": 1.5,
            "font_size": 14,
            "font_style": "italic",
        }

    @property
    def config(self):
        return self._config

    @property
    def project_data(self):
        return self._project_data

    @property
    def retina_math(self):
        return self._retina_math

    def _figsave(self, figurename="", myformat="png", subfolderpath=""):
        """
        Save the current figure under the output folder.

        Parameters
        ----------
        figurename : str
            File name, with or without extension. A relative path in the name
            overrides subfolderpath.
        myformat : str
            Format used when figurename has no extension.
        subfolderpath : str
            Subfolder under the output folder, created if missing.
        """
        plt.rcParams["svg.fonttype"] = "none"  # Fonts as fonts and not as paths

        figurename = Path(figurename)
        subfolderpath = Path(subfolderpath)
        if figurename.parent != Path("."):
            subfolderpath = figurename.parent
            figurename = Path(figurename.name)

        myformat = myformat.lstrip(".")
        if not str(figurename) or str(figurename) == ".":
            final_filename = f"MyFigure.{myformat}"
            extension = f".{myformat}"
        else:
            extension = figurename.suffix or f".{myformat}"
            final_filename = f"{figurename.stem}{extension}"

        output_folder = Path(self.config.get("output_folder", "."))
        full_subfolderpath = output_folder.joinpath(subfolderpath)
        full_subfolderpath.mkdir(parents=True, exist_ok=True)
        save_path = full_subfolderpath.joinpath(final_filename)

        print(f"Saving figure to {save_path}")
        plt.savefig(
            save_path,
            facecolor="w",
            edgecolor="w",
            format=extension[1:],
            bbox_inches="tight",
            pad_inches=0.1,
        )
        return save_path

    # Input sequences
    def show_sequence(self, sequence, plot_type="weights", savefigname=None):
        """
        Show an OISequence.

        Parameters
        ----------
        sequence : OISequence
            The sequence to show.
        plot_type : str
            'weights' plots the modulation function, 'movie illuminance'
            animates the illuminance maps scaled to 0-256 and 'montage' shows
            the frames normalized by the illuminance range next to the weights.

        Returns
        -------
        dict
            The displayed data.
        """
        if not hasattr(sequence, "modulation_function"):
            raise ValueError(
                f"{type(sequence).__name__} has no modulation function to show"
            )
        time_ms = sequence.time_axis * 1000

        match plot_type.replace(" ", "").lower():
            case "weights":
                fig, ax = plt.subplots(figsize=(6, 4))
                ax.plot(time_ms, sequence.modulation_function)
                ax.set_xlabel("Time (ms)")
                ax.set_ylabel("Weight")
                ax.set_title(f"Composition: {sequence.composition.value}")
                ax.grid(True)
                data = {"time": sequence.time_axis, "weights": sequence.modulation_function}

            case "movieilluminance":
                movie = sequence.illuminance_movie()
                fig, ax = plt.subplots()
                ax.set_axis_off()
                image = ax.imshow(
                    movie[0], cmap=self.cmap_stim, vmin=0, vmax=max(movie.max(), 1)
                )
                ax.set_title(sequence.oi_modulated.name)

                def _update(frame_idx):
                    image.set_data(movie[frame_idx])
                    return (image,)

                anim = animation.FuncAnimation(
                    fig, _update, frames=len(movie), interval=50, blit=True
                )
                data = {"movie": movie, "animation": anim}

            case "montage":
                n_frames = sequence.length
                n_cols = max(int(round(1.3 * np.sqrt(n_frames))), 1)
                n_rows = max(int(round(n_frames / n_cols)), 1)
                illum_range = sequence.illuminance_range()
                if illum_range[1] == illum_range[0]:
                    # All frames dark, widening by a fraction leaves zero width
                    illum_range = np.array([0.0, 1.0])
                illuminance = sequence.illuminance_frames()
                normalized = (illuminance - illum_range[0]) / (
                    illum_range[1] - illum_range[0]
                )

                fig, axes = plt.subplots(
                    n_rows, n_cols + 1, figsize=(17, 7.3), squeeze=False
                )
                axes[0, 0].bar(
                    time_ms,
                    sequence.modulation_function,
                    width=0.9 * np.nanmax([sequence.frame_interval * 1000, 1]),
                    facecolor=(1, 0.5, 0.5),
                    edgecolor=(1, 0, 0),
                )
                axes[0, 0].set_title(f"composition: '{sequence.composition.value}'")
                axes[0, 0].set_ylabel("modulation")

                for ax in axes.ravel()[1:]:
                    ax.set_axis_off()
                for frame_idx in range(n_frames):
                    row = (frame_idx + 1) // (n_cols + 1)
                    col = (frame_idx + 1) % (n_cols + 1)
                    if row >= n_rows:
                        continue
                    ax = axes[row, col]
                    ax.imshow(normalized[frame_idx], cmap="jet", vmin=0, vmax=1)
                    ax.set_title(
                        f"mean illum: {illuminance[frame_idx].mean():2.4f} td",
                        fontsize=10,
                    )
                    ax.set_xlabel(f"frame {frame_idx} ({time_ms[frame_idx]:2.1f}ms)")

                data = {"illuminance_range": illum_range, "frames": normalized}

            case _:
                raise ValueError(f"Unknown plot type {plot_type}")

        if savefigname:
            self._figsave(figurename=savefigname)
        return data

    # Mosaics
    def show_receptive_fields(self, mosaic, savefigname=None):
        """Center, surround and their difference with a horizontal profile."""
        center = mosaic.srf_center
        surround = mosaic.srf_surround
        dog = center - surround
        mid_row = center.shape[0] // 2

        fig, axes = plt.subplots(1, 4, figsize=(16, 4))
        for ax, img, title in zip(
            axes[:3], [center, surround, dog], ["center", "surround", "center - surround"]
        ):
            vmax = np.max(np.abs(img))
            im = ax.imshow(img, cmap=self.cmap_spatial_filter, vmin=-vmax, vmax=vmax)
            ax.set_title(title)
            fig.colorbar(im, ax=ax)
        axes[3].plot(center[mid_row], label="center")
        axes[3].plot(surround[mid_row], label="surround")
        axes[3].plot(dog[mid_row], label="center - surround")
        axes[3].legend()
        fig.suptitle(f"{mosaic.cell_type}, support {mosaic.support}")

        if savefigname:
            self._figsave(figurename=savefigname)
        return {"center": center, "surround": surround, "dog": dog}

    def show_mosaic_responses(
        self, mosaic, response="linear_response", n_cells=5, savefigname=None
    ):
        """
        Response time series of the first n_cells cells in C order.
        """
        values = getattr(mosaic, response, None)
        if values is None:
            raise ValueError(
                f"Mosaic {mosaic.cell_type} has no {response}, compute it first"
            )
        if values.ndim != 3:
            raise ValueError(f"{response} has no time axis, shape {values.shape}")

        traces = values.reshape(-1, values.shape[-1])[:n_cells]
        time_ms = mosaic.time_axis * 1000
        fig, ax = plt.subplots(figsize=(8, 4))
        for idx, trace in enumerate(traces):
            ax.plot(time_ms, trace, label=f"cell {idx}")
        ax.set_xlabel("Time (ms)")
        ax.set_ylabel(response.replace("_", " "))
        ax.set_title(mosaic.cell_type)
        ax.legend()

        if savefigname:
            self._figsave(figurename=savefigname)
        return {"time": mosaic.time_axis, "traces": traces}

    def show_spike_raster(self, spikes, trial=0, savefigname=None):
        """Raster of spikes from generate_spikes for one trial."""
        spike_indices, spike_times = spikes[trial]
        fig, ax = plt.subplots(figsize=(8, 4))
        ax.plot(spike_times * 1000, spike_indices, "|k")
        ax.set_xlabel("Time (ms)")
        ax.set_ylabel("Cell index")
        ax.set_title(f"Trial {trial}")

        if savefigname:
            self._figsave(figurename=savefigname)
        return {"indices": spike_indices, "times": spike_times}

    # Watson (2014)
    def show_cone_density_vs_eccentricity(
        self,
        watson_model,
        eccentricities=None,
        ecc_units="visual deg",
        density_units="visual deg^2",
        meridian_labeling="retinal",
        savefigname=None,
    ) -> pd.DataFrame:
        """
        Cone density along the four meridians, Figure 1 of Watson (2014).
        """
        ecc_units = EccentricityUnits.parse(ecc_units)
        density_units = DensityUnits.parse(density_units)
        if eccentricities is None:
            eccentricities = np.logspace(np.log10(0.15), np.log10(80), 100)
            if ecc_units is EccentricityUnits.RETINAL_MM:
                eccentricities = watson_model.rho_degs_to_mms(eccentricities)

        fig, ax = plt.subplots(figsize=(7, 6))
        rows = []
        for meridian_name in MERIDIAN_NAMES:
            spacing, density, retinal_name = watson_model.cone_rf_spacing_and_density(
                eccentricities, meridian_name, ecc_units, density_units
            )
            label = retinal_name if meridian_labeling == "retinal" else meridian_name
            ax.plot(
                eccentricities,
                density,
                color=MERIDIAN_COLORS[meridian_name],
                linewidth=self.figure_prefs["line_width"],
                label=label,
            )
            rows.append(
                pd.DataFrame(
                    {
                        "eccentricity": eccentricities,
                        "spacing": spacing,
                        "density": density,
                        "meridian": meridian_name,
                        "retinal_meridian": retinal_name,
                    }
                )
            )

        ax.set_xscale("log")
        ax.set_yscale("log")
        ax.set_xlabel(
            f"eccentricity ({ecc_units.value.replace('visual ', '')})",
            fontstyle=self.figure_prefs["font_style"],
        )
        ax.set_ylabel(
            f"density (cones / {density_units.value.replace('visual ', '')})",
            fontstyle=self.figure_prefs["font_style"],
        )
        ax.set_title(watson_model.paper_title_short)
        ax.legend()
        ax.grid(True)

        if savefigname:
            self._figsave(figurename=savefigname)
        return pd.concat(rows, ignore_index=True)

    def show_on_or_off_mrgc_spacing(
        self,
        watson_model,
        eccentricities=None,
        spacing_units="visual deg^2",
        savefigname=None,
    ) -> pd.DataFrame:
        """
        ON or OFF midget RGC receptive field spacing, Figure 11 of Watson (2014).

        Spacing is shown in arcmin for deg units and in microns for mm units.
        """
        spacing_units = DensityUnits.parse(spacing_units)
        if eccentricities is None:
            eccentricities = np.linspace(0, 10, 200)

        if spacing_units is DensityUnits.VISUAL_DEG2:
            scale, ylabel = 60, "spacing (arcmin)"
        else:
            scale, ylabel = 1000, "On or OFF spacing (microns)"

        fig, ax = plt.subplots(figsize=(7, 6))
        rows = []
        for meridian_name in MERIDIAN_NAMES:
            spacing, density, _ = watson_model.on_or_off_mrgc_rf_spacing_and_density(
                eccentricities, meridian_name, "visual deg", spacing_units
            )
            ax.plot(
                eccentricities,
                spacing * scale,
                color=MERIDIAN_COLORS[meridian_name],
                linewidth=self.figure_prefs["line_width"],
                label=meridian_name,
            )
            rows.append(
                pd.DataFrame(
                    {
                        "eccentricity": eccentricities,
                        "spacing": spacing * scale,
                        "density": density,
                        "meridian": meridian_name,
                    }
                )
            )

        ax.set_xlabel("eccentricity (deg)", fontstyle=self.figure_prefs["font_style"])
        ax.set_ylabel(ylabel, fontstyle=self.figure_prefs["font_style"])
        ax.set_title(watson_model.paper_title_short)
        ax.legend(loc="upper left")
        ax.grid(True)

        if savefigname:
            self._figsave(figurename=savefigname)
        return pd.concat(rows, ignore_index=True)

    def show_2d_cone_density(
        self, watson_model, ecc_degs_support=None, savefigname=None
    ):
        """Cone density over the visual field of the right eye."""
        if ecc_degs_support is None:
            ecc_degs_support = np.linspace(-20, 20, 81)
        density, support = watson_model.compute_2d_cone_rf_density(ecc_degs_support)

        fig, ax = plt.subplots(figsize=(6, 6))
        im = ax.imshow(
            np.log10(density),
            extent=[support[0], support[-1], support[0], support[-1]],
            origin="lower",
            cmap=self.cmap,
        )
        fig.colorbar(im, ax=ax, label="log10 density (cones / deg^2)")
        ax.set_xlabel("x (deg)")
        ax.set_ylabel("y (deg)")

        if savefigname:
            self._figsave(figurename=savefigname)
        return {"density": density, "support": support}

    def show_simulation_result(
        self, response="linear_response", savefigname: Optional[str] = None
    ):
        """Responses of each mosaic of the last simulation run."""
        mosaics = self.project_data.simulate_mosaic.get("mosaics", None)
        if not mosaics:
            raise ValueError("No simulation results, run simulate_mosaic first")

        data = {}
        for mosaic in mosaics:
            mosaic_figname = None
            if savefigname:
                # One file per cell type, extension kept
                figname = Path(savefigname)
                mosaic_figname = figname.with_name(
                    f"{figname.stem}_{mosaic.cell_type}{figname.suffix}"
                )
            data[mosaic.cell_type] = self.show_mosaic_responses(
                mosaic, response=response, savefigname=mosaic_figname
            )
        return data
