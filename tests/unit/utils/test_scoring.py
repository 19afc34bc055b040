# tests/unit/utils/test_scoring.py

import pytest

from alex_adaptation.utils.scoring import clamp, mean, ema


class TestScoring:

    @pytest.mark.parametrize("value, expected", [(-0.5, 0.0), (0.3, 0.3), (1.7, 1.0)])
    def test_clamp_unit_interval(self, value, expected):
        assert clamp(value) == expected

    def test_clamp_custom_bounds(self):
        assert clamp(150, 1, 100) == 100
        assert clamp(0, 1, 100) == 1

    def test_mean(self):
        assert mean([1, 2, 3]) == 2
        assert mean([]) is None
        assert mean(x for x in (4.0, 6.0)) == 5.0

    def test_ema_first_sample_seeds(self):
        assert ema(0.0, 10.0, 0.1, 1) == 10.0
        assert ema(10.0, 20.0, 0.1, 2) == pytest.approx(11.0)
