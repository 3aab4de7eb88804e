"""Fixtures for testing mprisctl."""

import dbus
import pytest

import mprisctl
from fakes import FakeBus, player


@pytest.fixture
def make_bus(monkeypatch):
    """Build a FakeBus and make :func:`mprisctl.connect` return it."""

    def factory(**statuses):
        bus = FakeBus({player(suffix): dbus.String(status)
                       for suffix, status in statuses.items()})
        monkeypatch.setattr(mprisctl, "connect", lambda: bus)
        return bus

    return factory
