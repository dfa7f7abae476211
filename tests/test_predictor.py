from decimal import Decimal

import pytest

from vm_forecast.sim.predictor import INITIAL_PHI1, INITIAL_PHI2, ARPredictor, fixed_forecast

SERIES_A = [0.1, 0.1, 0.2, 0.8]


def test_initial_coefficients():
    p = ARPredictor()
    assert p.coefficients == (INITIAL_PHI1, INITIAL_PHI2)
    assert p.coefficients == (Decimal("-0.509"), Decimal("-0.21"))


def test_fit_yule_walker_reference_series():
    p = ARPredictor()
    phi1, phi2 = p.fit(SERIES_A)
    assert phi1 == Decimal("0.0095582584")
    assert phi2 == Decimal("-0.1039788594")


def test_forecast_reference_series():
    p = ARPredictor()
    assert p.forecast(SERIES_A) == Decimal("0.7953370691")


def test_fit_refits_from_scratch_each_call():
    p = ARPredictor()
    p.fit([0.5, 0.5, 0.5])
    assert p.coefficients == (0, 0)
    p.fit(SERIES_A)
    assert p.phi1 == Decimal("0.0095582584")


def test_constant_series_predicts_itself():
    p = ARPredictor()
    assert p.forecast([0.5, 0.5, 0.5]) == Decimal("0.5")


def test_zero_denominator_uses_raw_numerators():
    p = ARPredictor()
    assert p.forecast([0, 0, 0, 0]) == 0
    assert p.coefficients == (0, 0)


def test_short_series_rejected():
    with pytest.raises(ValueError):
        ARPredictor().fit([0.1, 0.2])


def test_predict_is_clamped():
    p = ARPredictor(phi1=2, phi2=0)
    assert p.predict(0.9, 0.1, 0.1) == 1
    p = ARPredictor(phi1=-3, phi2=0)
    assert p.predict(0.9, 0.1, 0.1) == 0


def test_predict_uses_current_coefficients():
    p = ARPredictor(phi1=0, phi2=0)
    assert p.predict(0.4, 0.9, 0.1) == Decimal("0.4")


def test_fixed_forecast():
    assert fixed_forecast(0.4, 0.5, (Decimal("0.667"), Decimal("0.318"))) == Decimal("0.4258")
    assert fixed_forecast(0.7, 0.6, (1, 1)) == 1
    assert fixed_forecast(0, 0, (1, 1)) == 0


@pytest.mark.parametrize(
    "head, value, count",
    [
        ([0.3], 0.3, 4),
        ([0.1, 0.9], 0.5, 1),
        (SERIES_A, 0.8, 7),
        ([0.2, 0.4, 0.1], 0, 3),
        ([0.6, 0.2, 0.7, 0.1], 0.1, 2),
    ],
)
def test_flat_tail_matches_expanded_series(head, value, count):
    full = ARPredictor()
    expected = full.forecast(list(head) + [value] * count)
    folded = ARPredictor()
    assert folded.forecast(head, value, count) == expected
    assert folded.coefficients == full.coefficients


def test_flat_tail_counts_towards_minimum_length():
    p = ARPredictor()
    p.fit([0.5], 0.5, 2)
    assert p.coefficients == (0, 0)
    with pytest.raises(ValueError):
        p.fit([0.5], 0.5, 1)
