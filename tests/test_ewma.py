import math

import pytest

from event_meter.ewma import DecayingRateEstimator


def test_alpha_derived_from_tick_and_window():
    est = DecayingRateEstimator(window_minutes=5, tick_seconds=5)
    assert est.alpha == pytest.approx(1 - math.exp(-5 / 300))


def test_rate_is_zero_before_first_tick():
    est = DecayingRateEstimator(1)
    est.mark(50)
    assert est.ewma is None
    assert est.rate() == 0.0
    assert est.rate_per_minute() == 0.0
    assert est.uncounted == 50


def test_first_tick_seeds_with_instantaneous_rate():
    est = DecayingRateEstimator(15, tick_seconds=5)
    est.mark(10)
    instantaneous = est.tick()
    assert instantaneous == 2.0
    assert est.rate() == 2.0
    assert est.rate_per_minute() == pytest.approx(120.0)
    assert est.uncounted == 0


def test_idle_ticks_decay_gradually():
    est = DecayingRateEstimator(1, tick_seconds=5)
    est.mark(10)
    est.tick()
    est.tick()
    expected = 2.0 * math.exp(-5 / 60)
    assert est.rate() == pytest.approx(expected)
    assert 0 < est.rate() < 2.0
    previous = est.rate()
    for _ in range(10):
        est.tick()
        assert 0 < est.rate() < previous
        previous = est.rate()


def test_smoothing_formula_applies_after_seed():
    est = DecayingRateEstimator(1, tick_seconds=5)
    est.mark(5)
    est.tick()  # seed at 1.0
    est.mark(25)
    est.tick()  # instantaneous 5.0
    assert est.rate() == pytest.approx(1.0 + est.alpha * (5.0 - 1.0))


def test_longer_windows_decay_slower():
    estimators = {window: DecayingRateEstimator(window) for window in (1, 5, 15)}
    for est in estimators.values():
        est.mark(100)
        est.tick()
        est.tick()
    assert estimators[1].rate() < estimators[5].rate() < estimators[15].rate()


def test_zero_seed_stays_zero():
    est = DecayingRateEstimator(1)
    est.tick()
    est.tick()
    assert est.rate() == 0.0


def test_reset_returns_to_pre_tick_state():
    est = DecayingRateEstimator(5)
    est.mark(3)
    est.tick()
    est.mark(7)
    est.reset()
    assert est.ewma is None
    assert est.uncounted == 0
    assert not est.initialized
    est.mark(5)
    est.tick()
    assert est.rate() == 1.0


def test_invalid_tick_seconds_rejected():
    with pytest.raises(ValueError):
        DecayingRateEstimator(1, tick_seconds=0)
