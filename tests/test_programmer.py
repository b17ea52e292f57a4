"""Tests for the erase/program/verify state machine."""

import pytest

from rxprog.constants import Command, MemoryArea
from rxprog.data import ImageRecord
from rxprog.exceptions import (
    Cancelled,
    EraseFailed,
    ImageError,
    ModeTransitionRejected,
    SequencingError,
    UnsupportedConfiguration,
    VerificationMismatch,
    WriteFailed,
)
from rxprog.frame import FrameBuilder, encode
from rxprog.negotiator import LinkState
from rxprog.programmer import Programmer, SessionState, paginate
from rxprog.progress import EventKind

from mock_channel import (
    PAGES,
    RECORDS,
    checksum_step,
    erase_steps,
    make_params,
    negotiate_steps,
    program_steps,
    ready_steps,
    sized,
    user_area_checksum,
)


def read_back_steps(pages=PAGES):
    return [
        (FrameBuilder.build_memory_read(MemoryArea.USER_AREA, address, len(data)), sized(0x52, data, width=4))
        for address, data in pages
    ]


def start(target, family, script):
    """Negotiate over a scripted channel and return (channel, programmer, events)."""
    params = make_params(family=family)
    channel, negotiator = target(negotiate_steps() + ready_steps(params) + script)
    negotiator.negotiate(params)
    events = []
    return channel, Programmer(negotiator, params, observer=events.append), events


# === paginate ===

def test_paginate():
    assert list(paginate(RECORDS, 256)) == PAGES


def test_paginate_skips_blank_pages():
    records = [ImageRecord(0x1000, b"\xFF" * 512), ImageRecord(0x1300, b"\x00")]
    assert list(paginate(records, 256)) == [(0x1300, b"\x00" + b"\xFF" * 255)]


def test_paginate_merges_records_in_one_page():
    records = [ImageRecord(0x1000, b"\x01"), ImageRecord(0x10FF, b"\x02\x03")]
    pages = list(paginate(records, 256))
    assert pages == [
        (0x1000, b"\x01" + b"\xFF" * 254 + b"\x02"),
        (0x1100, b"\x03" + b"\xFF" * 255),
    ]


def test_paginate_rejects_descending_records():
    records = [ImageRecord(0x2000, b"\x01"), ImageRecord(0x1000, b"\x02")]
    with pytest.raises(ImageError):
        list(paginate(records, 256))


# === Full runs ===

def test_run_with_checksum_verification(target):
    """Test a three-record image on a checksum-verifying family."""
    script = erase_steps() + program_steps() + [checksum_step(user_area_checksum())]
    channel, programmer, events = start(target, "rx600", script)

    assert programmer.run(RECORDS) == SessionState.COMPLETE
    assert channel.finished

    phases = [e.phase for e in events if e.kind == EventKind.PHASE]
    assert phases == ["READY", "ERASING", "PROGRAMMING", "VERIFYING", "COMPLETE"]

    kinds = [(e.kind, e.phase) for e in events]
    assert kinds == (
        [(EventKind.PHASE, "READY"), (EventKind.PHASE, "ERASING")]
        + [(EventKind.CHUNK, "ERASING")] * 2
        + [(EventKind.PHASE, "PROGRAMMING")]
        + [(EventKind.CHUNK, "PROGRAMMING")] * 4
        + [(EventKind.PHASE, "VERIFYING"), (EventKind.CHUNK, "VERIFYING"), (EventKind.PHASE, "COMPLETE")]
    )

    chunks = [e for e in events if e.kind == EventKind.CHUNK and e.phase == "PROGRAMMING"]
    assert [e.address for e in chunks] == [address for address, _ in PAGES]
    assert [e.done for e in chunks] == [1, 2, 3, 4]
    assert all(e.total == 4 for e in chunks)


def test_run_with_read_back_verification(target):
    script = erase_steps() + program_steps() + read_back_steps()
    channel, programmer, events = start(target, "rx200", script)

    assert programmer.run(RECORDS) == SessionState.COMPLETE
    assert channel.finished
    verify_chunks = [e for e in events if e.kind == EventKind.CHUNK and e.phase == "VERIFYING"]
    assert len(verify_chunks) == 4


def test_run_with_blank_check_erase(target):
    script = [(encode(Command.USER_AREA_BLANK_CHECK), b"\x06")] + program_steps() + [
        checksum_step(user_area_checksum())
    ]
    channel, programmer, events = start(target, "h8sx", script)

    assert programmer.run(RECORDS) == SessionState.COMPLETE
    assert channel.finished


def test_image_checksum(target):
    script = erase_steps() + program_steps()
    channel, programmer, events = start(target, "rx600", script)
    programmer.enter_ready()
    programmer.erase()
    programmer.program(RECORDS)
    assert programmer.image_checksum() == user_area_checksum()


# === Failures ===

def test_checksum_mismatch(target):
    script = erase_steps() + program_steps() + [checksum_step(user_area_checksum() + 1)]
    channel, programmer, events = start(target, "rx600", script)

    with pytest.raises(VerificationMismatch) as exc_info:
        programmer.run(RECORDS)

    assert exc_info.value.address == 0xFFFF0000
    assert programmer.state == SessionState.FAILED
    assert programmer.failure.phase == SessionState.VERIFYING
    assert programmer.failure.error is exc_info.value
    assert channel.finished


def test_read_back_mismatch(target):
    address, data = PAGES[3]
    bad = bytearray(data)
    bad[5] ^= 0xFF
    script = erase_steps() + program_steps() + read_back_steps(PAGES[:3] + [(address, bytes(bad))])
    channel, programmer, events = start(target, "rx200", script)

    with pytest.raises(VerificationMismatch) as exc_info:
        programmer.run(RECORDS)

    assert exc_info.value.address == 0xFFFF8005
    assert programmer.state == SessionState.FAILED


def test_no_operation_after_failure(target):
    script = erase_steps() + program_steps() + [checksum_step(0)]
    channel, programmer, events = start(target, "rx600", script)
    with pytest.raises(VerificationMismatch):
        programmer.run(RECORDS)

    with pytest.raises(SequencingError):
        programmer.verify()
    with pytest.raises(SequencingError):
        programmer.erase()
    with pytest.raises(SequencingError):
        programmer.enter_ready()
    assert channel.finished


def test_wrong_ratio_count_sends_nothing(target):
    """Test that inconsistent parameters are rejected before any frame is sent."""
    params = make_params(family="rx600", ratios=("x4",))
    channel, negotiator = target(negotiate_steps())
    negotiator.negotiate(params)
    sent = len(channel.writes)

    programmer = Programmer(negotiator, params)
    with pytest.raises(UnsupportedConfiguration):
        programmer.enter_ready()

    assert len(channel.writes) == sent
    assert programmer.state == SessionState.IDLE
    assert negotiator.state == LinkState.NEGOTIATED


def test_erase_block_rejected(target):
    script = [
        (encode(Command.ERASURE_SELECTION), b"\x06"),
        (FrameBuilder.build_block_erasure(0), b"\x06"),
        (FrameBuilder.build_block_erasure(1), b"\xD8\x51"),
    ]
    channel, programmer, events = start(target, "rx200", script)
    programmer.enter_ready()

    with pytest.raises(EraseFailed) as exc_info:
        programmer.erase()

    assert exc_info.value.address == 0xFFFF8000
    assert programmer.state == SessionState.FAILED
    assert programmer.failure.phase == SessionState.ERASING
    assert channel.finished


def test_end_erasure_rejected(target):
    script = erase_steps()[:-1] + [(FrameBuilder.build_end_erasure(), b"\xD8\x51")]
    channel, programmer, events = start(target, "rx200", script)
    programmer.enter_ready()

    with pytest.raises(EraseFailed) as exc_info:
        programmer.erase()

    assert exc_info.value.address == 0xFFFF8000
    assert programmer.failure.phase == SessionState.ERASING
    assert channel.finished


def test_area_not_blank(target):
    script = [(encode(Command.USER_AREA_BLANK_CHECK), b"\xCD\x52")]
    channel, programmer, events = start(target, "h8sx", script)
    programmer.enter_ready()
    with pytest.raises(EraseFailed):
        programmer.erase()
    assert programmer.state == SessionState.FAILED


def test_write_rejected(target):
    script = erase_steps() + program_steps()[:2] + [
        (FrameBuilder.build_program(*PAGES[1]), b"\xD0\x2A"),
    ]
    channel, programmer, events = start(target, "rx200", script)
    programmer.enter_ready()
    programmer.erase()

    with pytest.raises(WriteFailed) as exc_info:
        programmer.program(RECORDS)

    assert exc_info.value.address == PAGES[1][0]
    assert programmer.state == SessionState.FAILED
    assert channel.finished


def test_end_programming_rejected(target):
    script = erase_steps() + program_steps()[:-1] + [(FrameBuilder.build_end_programming(), b"\xD0\x53")]
    channel, programmer, events = start(target, "rx200", script)
    programmer.enter_ready()
    programmer.erase()

    with pytest.raises(WriteFailed) as exc_info:
        programmer.program(RECORDS)

    assert exc_info.value.address == PAGES[-1][0]
    assert programmer.failure.phase == SessionState.PROGRAMMING
    assert channel.finished


def test_write_outside_user_area(target):
    channel, programmer, events = start(target, "rx200", erase_steps())
    programmer.enter_ready()
    programmer.erase()

    with pytest.raises(WriteFailed) as exc_info:
        programmer.program([ImageRecord(0x00001000, b"\x01")])

    assert exc_info.value.address == 0x00001000
    assert channel.finished


def test_id_code_protection(target):
    params = make_params()
    steps = ready_steps(params)
    steps[-1] = (steps[-1][0], b"\x16")
    channel, negotiator = target(negotiate_steps() + steps)
    negotiator.negotiate(params)
    programmer = Programmer(negotiator, params)

    with pytest.raises(ModeTransitionRejected):
        programmer.enter_ready()
    assert programmer.state == SessionState.FAILED
    assert programmer.failure.phase == SessionState.READY


def test_phases_out_of_order(target):
    channel, programmer, events = start(target, "rx200", [])
    with pytest.raises(SequencingError):
        programmer.erase()
    with pytest.raises(SequencingError):
        programmer.program(RECORDS)
    assert programmer.state == SessionState.IDLE


def test_enter_ready_needs_negotiated_link(target):
    params = make_params()
    channel, negotiator = target([])
    with pytest.raises(SequencingError):
        Programmer(negotiator, params).enter_ready()
    assert channel.writes == []


def test_params_are_read_only(target):
    channel, programmer, events = start(target, "rx200", [])
    with pytest.raises(AttributeError):
        programmer.params = make_params(family="rx600")


# === Cancellation ===

def test_cancel_between_phases(target):
    """Test that a cancelled phase is never entered."""
    channel, programmer, events = start(target, "rx200", erase_steps())
    programmer.enter_ready()
    programmer.erase()
    sent = len(channel.writes)
    events.clear()

    programmer.negotiator.session.cancel()
    with pytest.raises(Cancelled):
        programmer.program(RECORDS)

    assert programmer.state == SessionState.ERASING
    assert programmer.failure is None
    assert events == []
    assert len(channel.writes) == sent


def test_cancel_mid_program(target):
    """Test that a cancel between chunks stops before the next frame."""
    params = make_params()
    channel, negotiator = target(negotiate_steps() + ready_steps(params) + erase_steps() + program_steps())
    negotiator.negotiate(params)

    def cancel_after_first_chunk(event):
        if event.kind == EventKind.CHUNK and event.phase == "PROGRAMMING":
            negotiator.session.cancel()

    programmer = Programmer(negotiator, params, observer=cancel_after_first_chunk)
    programmer.enter_ready()
    programmer.erase()

    with pytest.raises(Cancelled):
        programmer.program(RECORDS)

    assert programmer.state == SessionState.PROGRAMMING
    assert programmer.failure is None
    assert channel.writes[-1] == FrameBuilder.build_program(*PAGES[0])
