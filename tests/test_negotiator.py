"""Tests for connection negotiation."""

import pytest

from rxprog.exceptions import (
    Cancelled,
    CommandRejected,
    ConfigurationError,
    IncompleteConfiguration,
    NegotiationFailed,
    NegotiationTimeout,
    ResponseTimeout,
    SequencingError,
    UnsupportedConfiguration,
)
from rxprog.frame import FrameBuilder
from rxprog.negotiator import RESET_PROMPT, LinkState, Negotiator
from rxprog.params import ConnectionParameters, LinkConfig
from rxprog.session import Session

from mock_channel import MockChannel, connect_steps, make_params, negotiate_steps, ready_steps


def test_connect(target):
    channel, negotiator = target(connect_steps())
    negotiator.connect()
    assert negotiator.state == LinkState.CONNECTED
    assert negotiator.probe_count == 1
    assert channel.baud_rates == [9600]
    assert channel.finished


def test_probe_bound():
    """Test that probing stops after attempts x baud rates with no answer."""
    config = LinkConfig(probe_attempts=5, probe_interval=0.0, baud_rates=(9600, 4800), auto_reset=True)
    channel = MockChannel()
    negotiator = Negotiator(Session(channel, 0.1), config)

    with pytest.raises(NegotiationTimeout) as exc_info:
        negotiator.connect()

    assert channel.writes == [b"\x00"] * 10
    assert channel.baud_rates == [9600, 4800]
    assert exc_info.value.baud_rates == (9600, 4800)
    assert negotiator.state == LinkState.IDLE


def test_probe_answered_at_lower_rate(target):
    """Test that the next baud rate is tried when one gets no answer."""
    config = LinkConfig(probe_attempts=2, probe_interval=0.0, baud_rates=(9600, 4800), auto_reset=True)
    script = [(b"\x00", b""), (b"\x00", b""), (b"\x00", b"\x00"), (b"\x55", b"\xE6")]
    channel, negotiator = target(script, config=config)
    negotiator.connect()
    assert negotiator.probe_count == 3
    assert channel.baud_rates == [9600, 4800]


def test_probe_ignores_noise(target):
    script = [(b"\x00", b"\x7F"), (b"\x00", b"\x00"), (b"\x55", b"\xE6")]
    channel, negotiator = target(script)
    negotiator.connect()
    assert negotiator.probe_count == 2
    assert channel.finished


def test_bit_rate_matching_failed(target):
    channel, negotiator = target([(b"\x00", b"\x00"), (b"\x55", b"\xFF")])
    with pytest.raises(NegotiationFailed):
        negotiator.connect()
    assert negotiator.state == LinkState.IDLE


def test_bit_rate_matching_no_answer(target):
    channel, negotiator = target([(b"\x00", b"\x00"), (b"\x55", b"")])
    with pytest.raises(ResponseTimeout):
        negotiator.connect()
    assert negotiator.state == LinkState.IDLE


def test_manual_reset_confirmation(target):
    """Test that the operator is asked before anything is sent."""
    prompts = []
    config = LinkConfig(probe_attempts=3, probe_interval=0.0, baud_rates=(9600,), auto_reset=False)

    def confirm(prompt):
        prompts.append((prompt, list(channel.writes), negotiator.state))

    channel, negotiator = target(connect_steps(), config=config, confirm=confirm)
    negotiator.connect()

    assert prompts == [(RESET_PROMPT, [], LinkState.AWAITING_MANUAL_RESET)]
    assert negotiator.state == LinkState.CONNECTED


def test_manual_reset_without_callback(target):
    config = LinkConfig(auto_reset=False)
    channel, negotiator = target(connect_steps(), config=config)
    with pytest.raises(ConfigurationError):
        negotiator.connect()
    assert channel.writes == []


def test_connect_twice(target):
    channel, negotiator = target(connect_steps())
    negotiator.connect()
    with pytest.raises(SequencingError):
        negotiator.connect()


def test_negotiate(target):
    channel, negotiator = target(negotiate_steps())
    negotiator.negotiate(make_params())
    assert negotiator.state == LinkState.NEGOTIATED
    assert negotiator.device == "7805"
    assert negotiator.clock_mode == 0
    assert channel.finished


def test_negotiate_needs_device(target):
    channel, negotiator = target(connect_steps())
    with pytest.raises(IncompleteConfiguration):
        negotiator.negotiate(ConnectionParameters(port="COM3", clock_mode=0))
    assert channel.writes == []


def test_select_device_before_connect(target):
    channel, negotiator = target([])
    with pytest.raises(SequencingError):
        negotiator.select_device("7805")
    assert channel.writes == []


def test_unsupported_device(target):
    """Test that a rejected device is not retried."""
    script = connect_steps() + [(FrameBuilder.build_device_selection("9999"), b"\x90\x21")]
    channel, negotiator = target(script)
    negotiator.connect()
    with pytest.raises(UnsupportedConfiguration):
        negotiator.select_device("9999")
    assert negotiator.state == LinkState.CONNECTED
    assert channel.finished


def test_invalid_device_code(target):
    channel, negotiator = target(connect_steps())
    negotiator.connect()
    with pytest.raises(UnsupportedConfiguration):
        negotiator.select_device("78050")


def test_device_selection_checksum_error(target):
    """Test that a checksum error report is not a configuration error."""
    script = connect_steps() + [(FrameBuilder.build_device_selection("7805"), b"\x90\x11")]
    channel, negotiator = target(script)
    negotiator.connect()
    with pytest.raises(CommandRejected) as exc_info:
        negotiator.select_device("7805")
    assert not isinstance(exc_info.value, UnsupportedConfiguration)
    assert exc_info.value.error_code == 0x11


def test_unsupported_clock_mode(target):
    script = connect_steps() + [
        (FrameBuilder.build_device_selection("7805"), b"\x06"),
        (FrameBuilder.build_clock_mode_selection(7), b"\x91\x22"),
    ]
    channel, negotiator = target(script)
    negotiator.connect()
    negotiator.select_device("7805")
    with pytest.raises(UnsupportedConfiguration):
        negotiator.select_clock_mode(7)
    assert negotiator.state == LinkState.DEVICE_SELECTED


def test_select_bit_rate(target):
    params = make_params()
    channel, negotiator = target(negotiate_steps() + ready_steps(params)[:2])
    negotiator.negotiate(params)
    negotiator.select_bit_rate(params)
    assert negotiator.state == LinkState.BIT_RATE_SELECTED
    assert channel.baud_rates == [9600, 115200]
    assert channel.finished


def test_bit_rate_rejected(target):
    params = make_params()
    bit_rate_frame = ready_steps(params)[0][0]
    channel, negotiator = target(negotiate_steps() + [(bit_rate_frame, b"\xBF\x24")])
    negotiator.negotiate(params)
    with pytest.raises(UnsupportedConfiguration):
        negotiator.select_bit_rate(params)
    assert negotiator.state == LinkState.NEGOTIATED
    assert channel.baud_rates == [9600]


def test_cancelled_before_probe(target):
    channel, negotiator = target(connect_steps())
    negotiator.session.cancel()
    with pytest.raises(Cancelled):
        negotiator.connect()
    assert channel.writes == []
    assert negotiator.state == LinkState.IDLE


def test_select_bit_rate_checks_ratio_count(target):
    """Test that a ratio count not matching the clock lines is never sent."""
    params = make_params(ratios=("x4",))
    channel, negotiator = target(negotiate_steps())
    negotiator.negotiate(params)
    sent = len(channel.writes)

    with pytest.raises(UnsupportedConfiguration):
        negotiator.select_bit_rate(params)

    assert len(channel.writes) == sent
    assert channel.baud_rates == [9600]
    assert negotiator.state == LinkState.NEGOTIATED


def test_enter_programming_state(target):
    params = make_params()
    channel, negotiator = target(negotiate_steps() + ready_steps(params)[:2] + ready_steps(params)[-1:])
    negotiator.negotiate(params)
    negotiator.select_bit_rate(params)
    assert negotiator.enter_programming_state() is False
    assert negotiator.state == LinkState.PROGRAMMING
    assert channel.finished
