"""
Early visual system simulator: optical image sequences, cone outer segment,
bipolar and ganglion cell mosaics, and Watson (2014) retinal anatomy.
"""

# Built-in
import os
from importlib import metadata
from typing import Callable

# Third-party
import tomli

# Local
from .calculators.watson_rgc_module import WatsonRGCModel
from .project.project_conf_module import load_parameters as _load_parameters
from .project.project_manager_module import ProjectManager as _ProjectManager
from .retina.outer_segment_module import OuterSegmentLinear
from .retina.receptive_field_module import ConeMosaicReference
from .retina.retina_math_module import RetinaMath
from .retina.simulate_mosaic_module import Mosaic, MosaicCoordinator
from .stimuli.oi_sequence_module import FrameSequence, OISequence, OpticalImage
from .viz.viz_module import Viz

config = _load_parameters()
PM: _ProjectManager = _ProjectManager(config)

# This connects the top-level earlyvision namespace to the modules. Look here if you are lost.
outer_segment: OuterSegmentLinear = PM.outer_segment
retina_math: RetinaMath = PM.retina_math
simulate_mosaic: Callable = PM.simulate_mosaic.client
viz: Viz = PM.viz
watson: WatsonRGCModel = PM.watson

# Define what is imported when doing: from earlyvision import *
__all__ = [
    "config",
    "ConeMosaicReference",
    "FrameSequence",
    "Mosaic",
    "MosaicCoordinator",
    "OISequence",
    "OpticalImage",
    "outer_segment",
    "retina_math",
    "simulate_mosaic",
    "viz",
    "watson",
]

del (_load_parameters, _ProjectManager)


def get_version():
    pyproject_path = os.path.join(os.path.dirname(__file__), "..", "pyproject.toml")
    if not os.path.exists(pyproject_path):
        # Installed without the source tree
        return metadata.version("earlyvision")
    with open(pyproject_path, "rb") as f:
        data = tomli.load(f)
        return data["project"]["version"]


__version__ = get_version()
