# rtpinterceptor

Composable interceptors for RTP and RTCP traffic, conversion of
transport-wide congestion control (TWCC) feedback into per-packet
acknowledgments, and the building blocks of a delay- and loss-based
Google Congestion Control (GCC) bandwidth estimator.

All durations and timestamps in `rtpinterceptor.twcc_feedback` and
`rtpinterceptor.gcc` are integers in nanoseconds.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Modules

- `rtpinterceptor.rtp`: `Header` (with one-byte and two-byte header
  extensions, `get_extension`, `set_extension`, `marshal_size`, `clone`),
  `Packet`, and `TransportCCExtension` for the transport-wide sequence
  number. Decoding errors raise `RTPError`.
- `rtpinterceptor.rtcp`: `SenderReport`, `TransportLayerCC` with its
  `RunLengthChunk`, `StatusVectorChunk` and `RecvDelta`, `RawPacket` for
  other packet types, and the module functions `unmarshal` (compound packet
  to a list) and `marshal`. Decoding errors raise `RTCPError`.
- `rtpinterceptor.errors`: `MultiError`, whose `contains` looks through
  nested errors and their causes, and `flatten_errors`, which returns a
  `MultiError` of the non-`None` errors or `None`.
- `rtpinterceptor.interceptor`: the abstract `Interceptor`, the
  pass-through `NoOp`, `Chain` which binds its children in order and raises
  a `MultiError` from `close` if any child fails, `StreamInfo`, the
  `RTPWriterFunc` / `RTPReaderFunc` / `RTCPWriterFunc` / `RTCPReaderFunc`
  adapters, and `Attributes`, a dict that caches the decoded RTP header
  (`get_rtp_header`) and RTCP packets (`get_rtcp_packets`).
- `rtpinterceptor.twcc_feedback`: `FeedbackAdapter` records sent packets
  with `on_sent` and turns a `TransportLayerCC` into `Acknowledgment`
  records with `on_transport_cc_feedback`.
- `rtpinterceptor.gcc`:
  - `common`: `Usage`, `State` (with `transition`), `DelayStats`, `clamp`
    and the time unit constants.
  - `kalman`: `Kalman`, the delay gradient filter.
  - `adaptive_threshold`: `AdaptiveThreshold`.
  - `arrival_group`: `ArrivalGroup` and `ArrivalGroupAccumulator`.
  - `slope_estimator`: `SlopeEstimator`.
  - `overuse_detector`: `OveruseDetector`.
  - `rate_calculator`: `RateCalculator`, the received bitrate over a window.
  - `rtt_estimator`: `RTTEstimator`.
  - `rate_controller`: `RateController` and `ExponentialMovingAverage`.
  - `loss_controller`: `LossBasedBandwidthEstimator` and `LossStats`.
  - `pacer`: `NoOpPacer`, which forwards at once, and `LeakyBucketPacer`,
    which sends queued packets from a background thread within a bitrate
    budget; both raise or log `UnknownStreamError` cases for unregistered
    SSRCs.

The stages of the delay-based estimator are generators, so they compose by
chaining iterables.

## Usage

Recording sent packets and mapping feedback onto them:

```python
from rtpinterceptor.rtp import Header, TransportCCExtension
from rtpinterceptor.twcc_feedback import FeedbackAdapter, TWCC_EXTENSION_ATTRIBUTES_KEY

adapter = FeedbackAdapter()
header = Header(ssrc=1)
header.set_extension(1, TransportCCExtension(0).marshal())
adapter.on_sent(0, header, 1200, {TWCC_EXTENSION_ATTRIBUTES_KEY: 1})

# acks = adapter.on_transport_cc_feedback(now_ns, transport_layer_cc)
```

Running acknowledgments through the delay-based pipeline:

```python
from rtpinterceptor.gcc.adaptive_threshold import AdaptiveThreshold
from rtpinterceptor.gcc.arrival_group import ArrivalGroupAccumulator
from rtpinterceptor.gcc.common import MILLISECOND
from rtpinterceptor.gcc.kalman import Kalman
from rtpinterceptor.gcc.overuse_detector import OveruseDetector
from rtpinterceptor.gcc.slope_estimator import SlopeEstimator

groups = ArrivalGroupAccumulator().run(acks)
estimates = SlopeEstimator(Kalman().update_estimate).run(groups)
for stats in OveruseDetector(AdaptiveThreshold(), 10 * MILLISECOND).run(estimates):
    print(stats.usage, stats.estimate)
```

Feed the resulting `DelayStats` into `RateController.on_delay_stats`, after
giving it the received rate (`on_received_rate`) and round-trip time
(`on_rtt`), to obtain a target bitrate; combine it with
`LossBasedBandwidthEstimator.get_estimate` and pass the result to a pacer's
`set_target_bitrate`.

## What this package does not do

There is no ready-made send-side bandwidth estimator object and no
congestion-control interceptor: the stages above are not wired together,
nothing feeds RTCP feedback into them automatically, and no target-bitrate
callback is offered. The package also has no command-line program and does
no networking of its own; reading and writing packets is left to the
readers and writers you bind.