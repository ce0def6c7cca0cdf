import pytest

from rtpinterceptor.interceptor import Attributes
from rtpinterceptor.rtcp import (
    TYPE_TCC_PACKET_NOT_RECEIVED as NOT_RECEIVED,
    TYPE_TCC_PACKET_RECEIVED_LARGE_DELTA as LARGE,
    TYPE_TCC_PACKET_RECEIVED_SMALL_DELTA as SMALL,
    TYPE_TCC_SYMBOL_SIZE_ONE_BIT,
    TYPE_TCC_SYMBOL_SIZE_TWO_BIT,
    RecvDelta,
    RunLengthChunk,
    StatusVectorChunk,
    TransportLayerCC,
)
from rtpinterceptor.rtp import Header, Packet, TransportCCExtension
from rtpinterceptor.twcc_feedback import (
    TWCC_EXTENSION_ATTRIBUTES_KEY,
    Acknowledgment,
    FeedbackAdapter,
    InvalidFeedbackError,
    MissingTWCCExtensionError,
    MissingTWCCExtensionIDError,
)

HDR_EXT_ID = 1
US = 1_000


def packet_with_tcc(sequence):
    pkt = Packet()
    pkt.header.set_extension(HDR_EXT_ID, TransportCCExtension(sequence).marshal())
    return pkt


def attrs():
    return Attributes({TWCC_EXTENSION_ATTRIBUTES_KEY: HDR_EXT_ID})


HEADER_SIZE = packet_with_tcc(0).header.marshal_size()


def adapter_with(sequences, size=0, ts=0):
    adapter = FeedbackAdapter()
    for seq in sequences:
        adapter.on_sent(ts, packet_with_tcc(seq).header, size, attrs())
    return adapter


WRAP = [65534, 65535, 0, 1, 2, 3]


@pytest.mark.parametrize(
    "sent, chunk, deltas, start, expected, ref_time, consumed",
    [
        ([], RunLengthChunk(), [], 0, [], 0, 0),
        (
            list(range(6)),
            RunLengthChunk(SMALL, 6),
            [RecvDelta(SMALL, 0) for _ in range(6)],
            0,
            [Acknowledgment(tlcc=i, size=HEADER_SIZE) for i in range(6)],
            0,
            6,
        ),
        (
            WRAP,
            RunLengthChunk(SMALL, 6),
            [RecvDelta(SMALL, 250) for _ in range(6)],
            65534,
            [
                Acknowledgment(tlcc=seq, size=HEADER_SIZE, arrival=arrival * US)
                for seq, arrival in zip(WRAP, [250, 500, 750, 1000, 1250, 1500])
            ],
            1500 * US,
            6,
        ),
        (
            WRAP,
            RunLengthChunk(NOT_RECEIVED, 6),
            [],
            65534,
            [Acknowledgment(tlcc=seq, size=HEADER_SIZE) for seq in WRAP],
            0,
            0,
        ),
    ],
)
def test_unpack_run_length_chunk(sent, chunk, deltas, start, expected, ref_time, consumed):
    adapter = adapter_with(sent)
    n, ref, acks = adapter.unpack_run_length_chunk(0, start, 0, chunk, deltas)
    assert n == consumed
    assert ref == ref_time
    assert [a.tlcc for a in acks] == sent
    assert acks == expected


@pytest.mark.parametrize(
    "sent, chunk, deltas, start, expected, ref_time, consumed",
    [
        ([], StatusVectorChunk(), [], 0, [], 0, 0),
        (
            list(range(6)),
            StatusVectorChunk(TYPE_TCC_SYMBOL_SIZE_TWO_BIT, [SMALL] * 6),
            [RecvDelta(SMALL, 0) for _ in range(6)],
            0,
            [Acknowledgment(tlcc=i, size=HEADER_SIZE) for i in range(6)],
            0,
            6,
        ),
        (
            WRAP,
            StatusVectorChunk(
                TYPE_TCC_SYMBOL_SIZE_TWO_BIT,
                [SMALL, SMALL, SMALL, SMALL, NOT_RECEIVED, SMALL],
            ),
            [RecvDelta(SMALL, 250) for _ in range(5)],
            65534,
            [
                Acknowledgment(tlcc=seq, size=HEADER_SIZE, arrival=arrival * US)
                for seq, arrival in zip(WRAP, [250, 500, 750, 1000, 0, 1250])
            ],
            1250 * US,
            5,
        ),
    ],
)
def test_unpack_status_vector_chunk(sent, chunk, deltas, start, expected, ref_time, consumed):
    adapter = adapter_with(sent)
    n, ref, acks = adapter.unpack_status_vector_chunk(0, start, 0, chunk, deltas)
    assert n == consumed
    assert ref == ref_time
    assert [a.tlcc for a in acks] == sent
    assert acks == expected


def test_empty_feedback():
    assert FeedbackAdapter().on_transport_cc_feedback(0, TransportLayerCC()) == []


def test_sets_correct_receive_time():
    adapter = adapter_with(range(22), size=1200)
    results = adapter.on_transport_cc_feedback(0, TransportLayerCC(
        packet_status_count=22,
        packet_chunks=[
            StatusVectorChunk(
                TYPE_TCC_SYMBOL_SIZE_TWO_BIT,
                [SMALL, LARGE] + [NOT_RECEIVED] * 5,
            ),
            StatusVectorChunk(TYPE_TCC_SYMBOL_SIZE_ONE_BIT, [SMALL] + [NOT_RECEIVED] * 13),
            RunLengthChunk(SMALL, 1),
        ],
        recv_deltas=[
            RecvDelta(SMALL, 4),
            RecvDelta(LARGE, 100),
            RecvDelta(SMALL, 12),
            RecvDelta(SMALL, 4),
        ],
    ))
    size = HEADER_SIZE + 1200
    assert len(results) == 22
    assert Acknowledgment(0, size, 0, 4 * US, 0) in results
    assert Acknowledgment(1, size, 0, 104 * US, 0) in results
    for i in range(2, 7):
        assert Acknowledgment(i, size, 0, 0, 0) in results
    assert Acknowledgment(7, size, 0, 116 * US, 0) in results
    for i in range(8, 21):
        assert Acknowledgment(i, size, 0, 0, 0) in results
    assert Acknowledgment(21, size, 0, 120 * US, 0) in results


def test_too_many_feedback_reports_for_unsent_packets():
    adapter = FeedbackAdapter()
    results = adapter.on_transport_cc_feedback(0, TransportLayerCC(
        packet_chunks=[
            StatusVectorChunk(TYPE_TCC_SYMBOL_SIZE_TWO_BIT, [SMALL] + [NOT_RECEIVED] * 6),
        ],
        recv_deltas=[RecvDelta(SMALL, 4)],
    ))
    assert results == [Acknowledgment()] * 7


def test_sequence_number_wrap_around():
    adapter = adapter_with([65535, 0], size=1200)
    results = adapter.on_transport_cc_feedback(0, TransportLayerCC(
        base_sequence_number=65535,
        packet_status_count=2,
        packet_chunks=[
            StatusVectorChunk(TYPE_TCC_SYMBOL_SIZE_TWO_BIT, [SMALL, SMALL] + [NOT_RECEIVED] * 5),
        ],
        recv_deltas=[RecvDelta(SMALL, 4), RecvDelta(SMALL, 4)],
    ))
    size = HEADER_SIZE + 1200
    assert len(results) == 7
    assert Acknowledgment(65535, size, 0, 4 * US, 0) in results
    assert Acknowledgment(0, size, 0, 8 * US, 0) in results


def test_ignores_possibly_in_flight_packets():
    adapter = adapter_with(range(8), size=1200)
    results = adapter.on_transport_cc_feedback(0, TransportLayerCC(
        packet_status_count=3,
        packet_chunks=[
            StatusVectorChunk(TYPE_TCC_SYMBOL_SIZE_TWO_BIT, [SMALL] * 3 + [NOT_RECEIVED] * 4),
        ],
        recv_deltas=[RecvDelta(SMALL, 4) for _ in range(3)],
    ))
    size = HEADER_SIZE + 1200
    assert len(results) == 7
    for i in range(3):
        assert Acknowledgment(i, size, 0, (i + 1) * 4 * US, 0) in results
    for i in range(3, 7):
        assert Acknowledgment(i, size, 0, 0, 0) in results


def test_run_length_chunk_feedback():
    adapter = adapter_with(range(20), size=1200)
    results = adapter.on_transport_cc_feedback(0, TransportLayerCC(
        packet_status_count=3,
        packet_chunks=[RunLengthChunk(SMALL, 3)],
        recv_deltas=[RecvDelta(SMALL, 4) for _ in range(3)],
    ))
    assert len(results) == 3


def test_status_vector_chunk_feedback():
    adapter = adapter_with(range(20), size=1200)
    results = adapter.on_transport_cc_feedback(0, TransportLayerCC(
        packet_status_count=3,
        packet_chunks=[
            StatusVectorChunk(TYPE_TCC_SYMBOL_SIZE_ONE_BIT, [SMALL] * 3 + [NOT_RECEIVED] * 11),
        ],
        recv_deltas=[RecvDelta(SMALL, 4) for _ in range(3)],
    ))
    assert len(results) == 14


def test_mixed_run_length_and_status_vector():
    adapter = adapter_with(range(20), size=1200)
    results = adapter.on_transport_cc_feedback(0, TransportLayerCC(
        packet_status_count=10,
        packet_chunks=[
            StatusVectorChunk(TYPE_TCC_SYMBOL_SIZE_TWO_BIT, [SMALL] * 3 + [NOT_RECEIVED] * 4),
            RunLengthChunk(SMALL, 3),
        ],
        recv_deltas=[RecvDelta(SMALL, 4) for _ in range(6)],
    ))
    assert len(results) == 10


def test_invalid_feedback_raises():
    adapter = adapter_with(range(1008, 1030), size=1200)
    feedback = TransportLayerCC(
        base_sequence_number=1008,
        packet_status_count=8,
        reference_time=278,
        fb_pkt_count=170,
        packet_chunks=[
            StatusVectorChunk(TYPE_TCC_SYMBOL_SIZE_TWO_BIT, [SMALL] * 6 + [NOT_RECEIVED]),
            RunLengthChunk(SMALL, 5632),
        ],
        recv_deltas=[
            RecvDelta(SMALL, 25000),
            RecvDelta(SMALL, 0),
            RecvDelta(SMALL, 29500),
            RecvDelta(SMALL, 16750),
            RecvDelta(SMALL, 23500),
            RecvDelta(SMALL, 0),
        ],
    )
    with pytest.raises(InvalidFeedbackError):
        adapter.on_transport_cc_feedback(0, feedback)


def test_unknown_chunk_type_is_invalid():
    with pytest.raises(InvalidFeedbackError):
        FeedbackAdapter().on_transport_cc_feedback(0, TransportLayerCC(packet_chunks=["bogus"]))


def test_rtt_is_set_for_received_packets_only():
    adapter = adapter_with([0, 1], size=100, ts=1_000)
    results = adapter.on_transport_cc_feedback(5_000, TransportLayerCC(
        packet_chunks=[StatusVectorChunk(TYPE_TCC_SYMBOL_SIZE_ONE_BIT, [SMALL, NOT_RECEIVED])],
        recv_deltas=[RecvDelta(SMALL, 250)],
    ))
    assert results == [
        Acknowledgment(0, HEADER_SIZE + 100, 1_000, 250 * US, 4_000),
        Acknowledgment(1, HEADER_SIZE + 100, 1_000, 0, 0),
    ]


def test_reference_time_is_in_64ms_units():
    adapter = adapter_with([0])
    results = adapter.on_transport_cc_feedback(0, TransportLayerCC(
        reference_time=2,
        packet_chunks=[RunLengthChunk(SMALL, 1)],
        recv_deltas=[RecvDelta(SMALL, 250)],
    ))
    assert results[0].arrival == 128_000_000 + 250 * US


def test_on_sent_requires_extension_id():
    with pytest.raises(MissingTWCCExtensionIDError):
        FeedbackAdapter().on_sent(0, packet_with_tcc(1).header, 0, Attributes())
    with pytest.raises(MissingTWCCExtensionIDError):
        FeedbackAdapter().on_sent(0, packet_with_tcc(1).header, 0, None)


def test_on_sent_requires_extension():
    with pytest.raises(MissingTWCCExtensionError):
        FeedbackAdapter().on_sent(0, Header(), 0, attrs())


def test_acknowledgment_string():
    text = str(Acknowledgment(tlcc=7, size=1200))
    assert text.startswith("ACK:\n")
    assert "\tTLCC:\t7\n" in text
    assert "\tSIZE:\t1200\n" in text