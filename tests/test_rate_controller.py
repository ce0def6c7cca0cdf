import math

import pytest

from rtpinterceptor.gcc.common import MILLISECOND, SECOND, DelayStats, State, Usage
from rtpinterceptor.gcc.rate_controller import ExponentialMovingAverage, RateController


def stepping_clock(step):
    now = [0]

    def clock():
        now[0] += step
        return now[0]

    return clock


def run_usages(controller, usages):
    outputs = []
    for use in usages:
        result = controller.on_delay_stats(DelayStats(usage=use))
        if result is not None:
            outputs.append(result)
    return outputs


def make_controller(initial=100_000, min_bitrate=1_000, max_bitrate=50_000_000):
    controller = RateController(stepping_clock(SECOND), initial, min_bitrate, max_bitrate)
    controller.on_received_rate(100_000)
    controller.on_rtt(300 * MILLISECOND)
    return controller


def test_empty_produces_nothing():
    assert run_usages(make_controller(), []) == []


def test_increases_multiplicatively_by_8000():
    outputs = run_usages(make_controller(), [Usage.NORMAL, Usage.NORMAL])
    assert outputs[0] == DelayStats(
        usage=Usage.NORMAL,
        state=State.INCREASE,
        target_bitrate=108_000,
        estimate=0,
        threshold=0,
        rtt=300 * MILLISECOND,
    )


def test_first_signal_only_initialises():
    controller = make_controller()
    assert controller.on_delay_stats(DelayStats(usage=Usage.OVER)) is None
    assert controller.target == 100_000


def test_overuse_decreases_to_beta_of_received_rate():
    controller = make_controller()
    outputs = run_usages(controller, [Usage.NORMAL, Usage.OVER])
    assert len(outputs) == 1
    assert outputs[0].state == State.DECREASE
    assert outputs[0].target_bitrate == 85_000
    assert controller.latest_decrease_rate.average == 100_000


def test_underuse_holds():
    controller = make_controller()
    assert run_usages(controller, [Usage.NORMAL, Usage.UNDER]) == []
    assert controller.target == 100_000


def test_target_is_clamped_to_max():
    controller = make_controller(max_bitrate=100_000)
    outputs = run_usages(controller, [Usage.NORMAL, Usage.NORMAL, Usage.NORMAL])
    assert [o.target_bitrate for o in outputs] == [100_000, 100_000]


def test_increase_capped_at_received_rate_when_near_decrease_average():
    controller = RateController(stepping_clock(SECOND), 300_000, 1_000, 50_000_000)
    controller.on_received_rate(100_000)
    controller.latest_decrease_rate.average = 100_000.0
    controller.latest_decrease_rate.std_deviation = 10_000.0
    assert controller.increase(controller.last_update + SECOND) == 150_000


def test_increase_never_below_target():
    controller = RateController(stepping_clock(SECOND), 200_000, 1_000, 50_000_000)
    controller.on_received_rate(10_000)
    assert controller.increase(controller.last_update + SECOND) >= 200_000


def test_ema_first_value_is_average():
    ema = ExponentialMovingAverage()
    ema.update(10.0)
    assert ema.average == 10.0
    assert ema.variance == 0.0


def test_ema_second_value():
    ema = ExponentialMovingAverage()
    ema.update(10.0)
    ema.update(20.0)
    assert ema.average == pytest.approx(19.5)
    assert ema.variance == pytest.approx(4.75)
    assert ema.std_deviation == pytest.approx(math.sqrt(4.75))