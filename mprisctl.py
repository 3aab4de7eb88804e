#!/usr/bin/python3
# encoding=utf-8
# File name: mprisctl.py
# This file is part of: mprisctl
#
# LICENSE
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or (at
# your option) any later version.
#
# This program is distributed in the hope that it will be useful, but
# WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
# General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <http://www.gnu.org/licenses/>.
#
# FEEDBACK & QUESTIONS
#
# For feedback and questions about mprisctl please e-mail one of the
# authors named in the AUTHORS file.
########################################################################
"""
This script controls all mpris-implementing players on the session bus
at once. Instead of naming a player, you name what you want to happen
and the script figures out which of the running players it applies to.

The rules are simple: ``pause`` pauses everything that is playing,
``stop`` stops everything that is playing or paused, ``play`` starts
exactly one player (a paused one if there is one, a stopped one
otherwise) unless something is playing already, and ``next``/``prev``
skip on one playing player. ``playpause`` pauses if anything plays and
plays otherwise.

Where exactly one player is picked out of several candidates, the one
with the lexicographically smallest bus name wins. This is arbitrary,
but at least it's always the same one.
"""

import argparse
import enum
import logging
import math
import sys

import dbus

REGISTRAR_NAME = "org.freedesktop.DBus"
REGISTRAR_PATH = "/org/freedesktop/DBus"
REGISTRAR_IFACE = "org.freedesktop.DBus"

PLAYER_PREFIX = "org.mpris.MediaPlayer2."
PLAYER_PATH = "/org/mpris/MediaPlayer2"
PLAYER_IFACE = "org.mpris.MediaPlayer2.Player"
PROPERTIES_IFACE = "org.freedesktop.DBus.Properties"

EXIT_OK = 0
EXIT_NO_BUS = 1
EXIT_REGISTRAR = 2
EXIT_PROPERTIES_PROXY = 3
EXIT_PLAYER_PROXY = 4
EXIT_USAGE = 127

logger = logging.getLogger("mprisctl")


class PlaybackState(enum.Enum):
    STOPPED = "Stopped"
    PAUSED = "Paused"
    PLAYING = "Playing"


class FatalError(Exception):
    """
    Raised by a pipeline stage if continuing makes no sense. Carries the
    exit code the process should terminate with.
    """

    def __init__(self, message, exit_code):
        super().__init__(message)
        self.exit_code = exit_code


class MalformedReplyError(ValueError):
    pass


class UnknownCommandError(ValueError):
    def __init__(self, command):
        super().__init__("no such command: {0!s}".format(command))
        self.command = command


def _call_kwargs(timeout):
    if timeout is None:
        return {}
    return {"timeout": timeout}


def connect():
    try:
        return dbus.SessionBus()
    except dbus.exceptions.DBusException as err:
        raise FatalError(
            "The user's session bus is not available: {0!s}".format(err),
            EXIT_NO_BUS)


def get_iface(bus, name, path, interface, exit_code):
    """
    Create a proxy for *path* on *name* and wrap it in *interface*.

    Failure to create the proxy is not recoverable and raises
    :class:`FatalError` with *exit_code*.
    """
    try:
        obj = bus.get_object(name, path, introspect=False)
    except dbus.exceptions.DBusException as err:
        raise FatalError(
            "The proxy to {0} ({1}) was not successfully created: {2!s}".format(
                name, interface, err),
            exit_code)
    return dbus.Interface(obj, dbus_interface=interface)


def discover(bus, timeout=None):
    """
    Return the set of bus names of all running mpris players.

    An empty set is a perfectly valid answer. Failing to talk to the bus
    daemon is not, and raises :class:`FatalError`.
    """
    registrar = get_iface(bus, REGISTRAR_NAME, REGISTRAR_PATH,
                          REGISTRAR_IFACE, EXIT_REGISTRAR)
    try:
        names = registrar.ListNames(**_call_kwargs(timeout))
    except dbus.exceptions.DBusException as err:
        raise FatalError(
            "Unable to list the names on the session bus: {0!s}".format(err),
            EXIT_REGISTRAR)

    players = set()
    for name in names:
        if name.startswith(PLAYER_PREFIX):
            logger.debug("found player %s", name)
            players.add(str(name))
    return players


def parse_status(reply):
    """
    Turn the reply of a ``PlaybackStatus`` query into a
    :class:`PlaybackState`.

    The reply must be a single string, or a sequence holding exactly one
    string. Anything else raises :class:`MalformedReplyError`.
    """
    if isinstance(reply, (list, tuple)):
        if len(reply) != 1:
            raise MalformedReplyError(
                "expected a single value, got {0}".format(len(reply)))
        reply = reply[0]
    if not isinstance(reply, str):
        raise MalformedReplyError(
            "expected a string, got {0}".format(type(reply).__name__))
    try:
        return PlaybackState(str(reply))
    except ValueError:
        raise MalformedReplyError("unknown state {0!r}".format(str(reply)))


def aggregate(bus, players, timeout=None):
    """
    Query the playback state of each player in *players*.

    Players which can't be queried or which report nonsense are logged and
    left out of the result. Creating the proxy is expected to work, though;
    if it doesn't, :class:`FatalError` is raised.
    """
    states = {}
    for player in sorted(players):
        props = get_iface(bus, player, PLAYER_PATH, PROPERTIES_IFACE,
                          EXIT_PROPERTIES_PROXY)
        try:
            reply = props.Get(PLAYER_IFACE, "PlaybackStatus",
                              **_call_kwargs(timeout))
        except dbus.exceptions.DBusException as err:
            logger.warning("unable to query state of %s: %s", player, err)
            continue

        try:
            states[player] = parse_status(reply)
        except MalformedReplyError as err:
            logger.warning("unable to determine state of %s: %s", player, err)
            continue
        logger.debug("%s is %s", player, states[player].value)
    return states


def find_players(states, *wanted):
    """Return the players in any of the *wanted* states, sorted by name"""
    return sorted(player for player, state in states.items()
                  if state in wanted)


def resolve_play(states):
    """Start one paused (or else stopped) player, unless one is playing"""
    if find_players(states, PlaybackState.PLAYING):
        return {}
    candidates = (find_players(states, PlaybackState.PAUSED) or
                  find_players(states, PlaybackState.STOPPED))
    if not candidates:
        return {}
    return {candidates[0]: "Play"}


def resolve_pause(states):
    """Pause every playing player"""
    return {player: "Pause"
            for player in find_players(states, PlaybackState.PLAYING)}


def resolve_playpause(states):
    """Pause if anything is playing, play otherwise"""
    if find_players(states, PlaybackState.PLAYING):
        return resolve_pause(states)
    return resolve_play(states)


def resolve_stop(states):
    """Stop every playing or paused player"""
    return {player: "Stop"
            for player in find_players(states, PlaybackState.PLAYING,
                                       PlaybackState.PAUSED)}


def _skip(states, method):
    playing = find_players(states, PlaybackState.PLAYING)
    if not playing:
        return {}
    return {playing[0]: method}


def resolve_next(states):
    """Skip to the next track on one playing player"""
    return _skip(states, "Next")


def resolve_prev(states):
    """Return to the previous track on one playing player"""
    return _skip(states, "Previous")

commands = {
    "play": resolve_play,
    "pause": resolve_pause,
    "playpause": resolve_playpause,
    "stop": resolve_stop,
    "next": resolve_next,
    "prev": resolve_prev,
}


def resolve(command, states):
    """
    Map *command* onto the players in *states*.

    Return a dict mapping bus names to the name of the method to call on
    them. Players which shouldn't be touched are not in the dict. Raises
    :class:`UnknownCommandError` if *command* isn't one of
    :data:`commands`.
    """
    try:
        rule = commands[command]
    except KeyError:
        raise UnknownCommandError(command)
    return rule(states)


def dispatch(bus, plan, timeout=None):
    """
    Invoke the planned methods. Players with an empty method are skipped;
    a failing call is logged and doesn't stop the others.
    """
    for player, method in sorted(plan.items()):
        if not method:
            continue
        iface = get_iface(bus, player, PLAYER_PATH, PLAYER_IFACE,
                          EXIT_PLAYER_PROXY)
        logger.info("calling %s on %s", method, player)
        try:
            getattr(iface, method)(**_call_kwargs(timeout))
        except dbus.exceptions.DBusException as err:
            logger.warning("calling %s on %s failed: %s", method, player, err)


def run(command, bus=None, timeout=None, dry_run=False, out=None):
    """
    Run the whole thing for *command*: find the players, query their
    state, work out what to do and do it.
    """
    out = out or sys.stdout
    if bus is None:
        bus = connect()

    players = discover(bus, timeout)
    if not players:
        print("no player found.", file=out)
        return

    states = aggregate(bus, players, timeout)
    plan = resolve(command, states)
    if not plan:
        logger.info("nothing to do for %s", command)

    if dry_run:
        for player, method in sorted(plan.items()):
            print("{0}: {1}".format(player, method), file=out)
        return

    dispatch(bus, plan, timeout)


class ListCommands(argparse.Action):
    def __init__(self,
                 option_strings=None,
                 dest=None,
                 default=None,
                 required=False,
                 help=None):
        super().__init__(
            option_strings=option_strings,
            dest=dest,
            nargs=0,
            default=default,
            required=required,
            help=help)

    def __call__(self, parser, namespace, values, option_string=None):
        parser.print_help()
        print("available commands:")
        print("\n".join(
            "{kw} -- {doc}".format(kw=kw, doc=func.__doc__)
            for kw, func in commands.items()
        ))
        parser.exit(EXIT_OK)


class Command(object):
    def __init__(self, cmdmap):
        self.cmdmap = cmdmap

    def __repr__(self):
        return "control command"

    def __call__(self, arg):
        if arg not in self.cmdmap:
            raise ValueError("no such command: {0!s}".format(arg))
        return arg


# dbus-python wants the timeout in milliseconds as a C int
MAX_TIMEOUT = 2147483


def positive_float(value):
    v = float(value)
    if not math.isfinite(v) or v <= 0:
        raise ValueError("Timeout must be positive.")
    if v > MAX_TIMEOUT:
        raise ValueError("Timeout must not exceed {0} seconds.".format(MAX_TIMEOUT))
    return v


class ArgumentParser(argparse.ArgumentParser):
    """argparse, but usage errors exit with 127"""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, "{0}: error: {1}\n".format(self.prog, message))


def build_parser(prog=None):
    parser = ArgumentParser(
        prog=prog,
        description="""\
Control all media players implementing the mpris spec from the command
line.""")

    parser.add_argument(
        "-l", "--list-commands",
        help="Print a list of available commands with brief meaning and exit",
        action=ListCommands
    )
    parser.add_argument(
        "-d", "--debug",
        help="Enable debug output",
        action="store_true",
        default=False,
        dest="debug"
    )
    parser.add_argument(
        "-t", "--timeout",
        metavar="SECONDS",
        type=positive_float,
        default=None,
        help="Give up on a single dbus call after SECONDS (default: whatever dbus does)",
        dest="timeout"
    )
    parser.add_argument(
        "-n", "--dry-run",
        help="Print what would be done instead of doing it",
        action="store_true",
        default=False,
        dest="dry_run"
    )
    parser.add_argument(
        "command",
        metavar="COMMAND",
        type=Command(commands),
        help="Command to execute, for a list of valid commands, refer to -l"
    )
    return parser


def main(argv=None, prog=None):
    args = build_parser(prog).parse_args(argv)

    if args.debug:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARN)

    try:
        run(args.command, timeout=args.timeout, dry_run=args.dry_run)
    except FatalError as err:
        print(str(err), file=sys.stderr)
        return err.exit_code
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
