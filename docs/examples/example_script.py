"""Example usage of earlyvision."""

# Third-party
import matplotlib.pyplot as plt
import numpy as np

# Local
import earlyvision as ev

###################################
###################################
###     Optical image sequence  ###
###################################
###################################

rows, cols = ev.config.cone_mosaic.rows, ev.config.cone_mosaic.cols

# Uniform background and a vertical grating, blended in and out over 100 ms
oi_fixed = ev.OpticalImage("background", np.full((rows, cols), 10.0))
grating = 10.0 * (1 + np.sin(2 * np.pi * np.arange(cols) / 16))
oi_modulated = ev.OpticalImage("grating", np.tile(grating, (rows, 1)))

time_axis = np.arange(100) * 1e-3
modulation_function = np.exp(-0.5 * ((time_axis - 0.05) / 0.015) ** 2)
sequence = ev.OISequence(
    oi_fixed, oi_modulated, modulation_function, time_axis, composition="blend"
)

ev.viz.show_sequence(sequence, plot_type="montage", savefigname=None)

###################################
###################################
###        Mosaic responses     ###
###################################
###################################

ev.config.simulation_parameters.cell_types = ["onmidget", "onparasol", "onsbc"]
mosaics, responses, spikes = ev.simulate_mosaic(sequence)

for mosaic in mosaics:
    ev.viz.show_receptive_fields(mosaic, savefigname=None)
ev.viz.show_simulation_result(response="nonlinear_response", savefigname=None)

# # Stages one at a time, with the torch temporal backend
# mosaic = ev.Mosaic(
#     "offdiffuse", ev.ConeMosaicReference(rows, cols), temporal_backend="torch"
# )
# mosaic.init_space(eccentricity=10.0, spread=2.0)
# mosaic.compute_spatial(sequence)
# mosaic.compute_temporal()
# mosaic.compute_nonlinear()
# print(mosaic.cell_dataframe())

# # Outer segment photocurrent as mosaic input
# isomerizations = 1000 * sequence.frames()  # R*/cone/s
# current = ev.outer_segment.compute(isomerizations, dt=sequence.frame_interval)
# mosaics, responses, spikes = ev.simulate_mosaic(current)

# # Poisson spikes from the generator output
# ev.config.simulation_parameters.spikes.generate = True
# mosaics, responses, spikes = ev.simulate_mosaic(sequence)
# ev.viz.show_spike_raster(spikes["onparasol"], savefigname=None)

plt.show()
