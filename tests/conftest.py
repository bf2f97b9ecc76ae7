"""Shared fixtures."""

import pytest

from helpers import FakeTransport, MCPResponder


@pytest.fixture
def responder():
    return MCPResponder()


@pytest.fixture
def fake_factory():
    """transport_factory for ToolServerManager that records every FakeTransport."""

    class Factory:
        def __init__(self):
            self.responders = {}
            self.transports = {}
            self.default = MCPResponder()

        def __call__(self, command):
            transport = FakeTransport(command, responder=self.responders.get(command, self.default))
            self.transports[command] = transport
            return transport

    return Factory()
