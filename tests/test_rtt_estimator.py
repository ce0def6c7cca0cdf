import pytest

from rtpinterceptor.gcc.common import MILLISECOND
from rtpinterceptor.gcc.rtt_estimator import RTTEstimator
from rtpinterceptor.twcc_feedback import Acknowledgment

MS = MILLISECOND


@pytest.mark.parametrize(
    "ack_lists, expected",
    [
        ([], []),
        ([[Acknowledgment(rtt=5 * MS)]] * 4, [5 * MS] * 4),
        ([[]] + [[Acknowledgment(rtt=5 * MS)]] * 4, [5 * MS] * 4),
    ],
    ids=["noACKsNoRTT", "staticRTT", "skipsEmptyLists"],
)
def test_rtt_estimator(ack_lists, expected):
    assert list(RTTEstimator().run(ack_lists)) == expected


def test_uses_minimum_of_each_report_and_averages():
    ack_lists = [
        [Acknowledgment(rtt=10 * MS), Acknowledgment(rtt=2 * MS)],
        [Acknowledgment(rtt=4 * MS)],
    ]
    assert list(RTTEstimator().run(ack_lists)) == [2 * MS, 3 * MS]


def test_history_is_bounded_by_samples():
    ack_lists = [[Acknowledgment(rtt=100 * MS)]] * 50 + [[Acknowledgment(rtt=1 * MS)]] * 100
    assert list(RTTEstimator(samples=100).run(ack_lists))[-1] == 1 * MS