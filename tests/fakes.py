"""Fake session bus for testing mprisctl without a running dbus daemon."""

from collections import namedtuple

import dbus

import mprisctl

Call = namedtuple("Call", ["name", "path", "interface", "member", "args", "kwargs"])


def dbus_error(message="computer says no",
               name="org.freedesktop.DBus.Error.Failed"):
    return dbus.exceptions.DBusException(message, name=name)


class FakeProxy:
    """Stands in for ``dbus.proxies.ProxyObject``.

    ``dbus.Interface`` only ever calls ``get_dbus_method`` on the object
    it wraps, so that's all we need.
    """

    def __init__(self, bus, name, path):
        self.bus = bus
        self.name = name
        self.path = path

    def get_dbus_method(self, member, dbus_interface=None):
        def method(*args, **kwargs):
            return self.bus.handle(
                Call(self.name, self.path, dbus_interface, member, args, kwargs))
        return method


class FakeBus:
    """Records every call and answers like a session bus with mpris players.

    :param players: maps bus names to the reply of their ``PlaybackStatus``
        query, or to an exception to raise instead.
    :param others: additional non-player names on the bus.
    """

    def __init__(self, players=None, others=()):
        self.players = dict(players or {})
        self.others = list(others)
        self.calls = []
        self.failing_objects = set()
        self.failing_calls = {}
        self.list_names_error = None

    def get_object(self, name, path, introspect=True):
        if name in self.failing_objects:
            raise dbus_error("The name {0} has no owner".format(name),
                             "org.freedesktop.DBus.Error.NameHasNoOwner")
        return FakeProxy(self, name, path)

    def handle(self, call):
        self.calls.append(call)
        if (call.name, call.member) in self.failing_calls:
            raise self.failing_calls[call.name, call.member]

        if call.member == "ListNames":
            assert call.name == mprisctl.REGISTRAR_NAME
            assert call.interface == mprisctl.REGISTRAR_IFACE
            if self.list_names_error is not None:
                raise self.list_names_error
            names = [mprisctl.REGISTRAR_NAME, ":1.0", ":1.42"]
            names += self.others
            names += list(self.players)
            return dbus.Array(names, signature="s")

        if call.member == "Get":
            assert call.interface == mprisctl.PROPERTIES_IFACE
            reply = self.players[call.name]
            if isinstance(reply, Exception):
                raise reply
            return reply

        assert call.interface == mprisctl.PLAYER_IFACE
        return None

    def calls_to(self, member):
        return [call for call in self.calls if call.member == member]

    @property
    def dispatched(self):
        """Map of player to method for all player control calls made"""
        return {call.name: call.member for call in self.calls
                if call.interface == mprisctl.PLAYER_IFACE}


def player(suffix):
    return mprisctl.PLAYER_PREFIX + suffix
