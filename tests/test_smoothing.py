"""
Tests for the median smoother.
"""

import numpy as np
import pytest

from tmrefine.processing.smoothing import median_filter


class TestMedianFilter:
    def test_ends_pass_through(self):
        scores = [900, 0, 0, 0, 0, 0, 900]
        out = median_filter(scores, 5)
        assert out[0] == 900
        assert out[-1] == 900

    def test_constant_input(self):
        assert median_filter([420] * 12).tolist() == [420] * 12

    def test_length_preserved(self):
        for n in range(0, 9):
            assert len(median_filter(list(range(n)))) == n

    def test_removes_spike(self):
        scores = [100, 100, 100, 900, 100, 100, 100]
        assert median_filter(scores, 5).tolist() == [100] * 7

    def test_shrinking_window(self):
        """Position 1 uses a radius-1 window even with a width-5 filter."""
        scores = [0, 500, 1000, 1000, 1000]
        out = median_filter(scores, 5)
        assert out[1] == 500

    def test_input_not_modified(self):
        scores = np.array([1, 9, 1, 9, 1])
        median_filter(scores, 3)
        assert scores.tolist() == [1, 9, 1, 9, 1]

    @pytest.mark.parametrize("window", [0, 2, -3])
    def test_invalid_window(self, window):
        with pytest.raises(ValueError):
            median_filter([1, 2, 3], window)
