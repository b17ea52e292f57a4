"""Shared fixtures: fast link settings and scripted target sessions."""

import pytest

from rxprog.negotiator import Negotiator
from rxprog.params import LinkConfig
from rxprog.session import Session

from mock_channel import MockChannel


@pytest.fixture
def fast_config():
    return LinkConfig(
        probe_attempts=3,
        probe_interval=0.0,
        baud_rates=(9600,),
        response_timeout=0.1,
        erase_timeout=0.1,
        settle_delay=0.0,
        auto_reset=True,
    )


@pytest.fixture
def target(fast_config):
    """Factory returning (channel, negotiator) for a scripted target."""
    def factory(script, config=None, confirm=None):
        channel = MockChannel(script)
        session = Session(channel, response_timeout=0.1)
        return channel, Negotiator(session, config or fast_config, confirm)
    return factory
