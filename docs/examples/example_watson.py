# Third-party
import matplotlib.pyplot as plt
import numpy as np

# Local
import earlyvision as ev

###############################################
##   Midget RGC spacing, Watson (2014) Fig 11  ###
###############################################

ev.viz.show_on_or_off_mrgc_spacing(ev.watson, savefigname=None)
# ev.viz.show_on_or_off_mrgc_spacing(
#     ev.watson, spacing_units="retinal mm^2", savefigname=None
# )

spacing, density, retinal_meridian = ev.watson.mrgc_rf_spacing_and_density(
    np.array([0.0, 1.0, 10.0]), "temporal meridian"
)
print(f"mRGC density along the {retinal_meridian} of the retina: {density}")

###############################################
##   Cone density, Watson (2014) Fig 1       ###
###############################################

# Needs density_parameters.cone_density_file in retina_parameters.yaml, a csv
# with ecc_mm, angle_deg and density columns in the input folder
if ev.watson.cone_density_source is not None:
    ev.viz.show_cone_density_vs_eccentricity(ev.watson, savefigname=None)
    ev.viz.show_2d_cone_density(ev.watson, savefigname=None)

plt.show()
