# Third-party
import numpy as np
import pandas as pd
import pytest

# Local
from earlyvision.project.project_utilities_module import PrintableMixin
from earlyvision.retina.outer_segment_module import OuterSegmentLinear
from earlyvision.stimuli.oi_sequence_module import FrameSequence


class _Recording(PrintableMixin):
    def __init__(self):
        self.name = "pilot"
        self.frames = np.zeros((10, 4, 4))
        self.table = pd.DataFrame({"a": [1.0, 2.0]})
        self.params = {"x": 1, "y": 2}
        self.trials = [1, 2, 3]
        self.dt = 0.001234


@pytest.fixture
def printable_instance():
    return _Recording()


class TestPrintableMixin:
    def test_str_lists_attributes(self, printable_instance):
        text = str(printable_instance)

        assert text.startswith("Instance of _Recording")
        assert "Class name: _Recording" in text
        assert "shape: (10, 4, 4)" in text
        assert "shape: (2, 1)" in text
        assert "n keys: 2" in text
        assert "0.00" in text
        assert "pilot" in text

    def test_str_reports_memory(self, printable_instance):
        text = str(printable_instance)
        # 160 float64 values
        assert "0.00 MB" in text

    def test_library_classes_are_printable(self):
        sequence = FrameSequence(np.ones((3, 2, 2)), [0.0, 0.1, 0.2], name="flash")
        assert "time_axis" in str(sequence)
        assert "params" in str(OuterSegmentLinear())
