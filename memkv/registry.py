"""Command table shared by every data type: registration, lookup and arity checks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

FLAG_WRITE = 0
FLAG_READ_ONLY = 1

KeyLists = tuple[list[str], list[str]]
Executor = Callable[[Any, list[bytes]], Any]
Prepare = Callable[[Sequence[bytes]], KeyLists]
Undo = Callable[[Any, list[bytes]], list[list[bytes]]]

_NOTHING = slice(0, 0)
_EVERYTHING = slice(None)


class CommandError(Exception):
    """Error reply of a command; the message is what a client would see."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class WrongTypeError(CommandError):
    """A key holds a value of another type than the command expects."""

    MESSAGE = "WRONGTYPE Operation against a key holding the wrong kind of value"

    def __init__(self) -> None:
        super().__init__(self.MESSAGE)


@dataclass(frozen=True)
class Status:
    """A simple status reply such as ``OK`` or a type name."""

    text: str

    def __str__(self) -> str:
        return self.text


OK = Status("OK")


@dataclass(frozen=True)
class Command:
    """One entry of the command table."""

    name: str
    executor: Executor
    prepare: Optional[Prepare]
    undo: Optional[Undo]
    arity: int
    flags: int

    @property
    def read_only(self) -> bool:
        return bool(self.flags & FLAG_READ_ONLY)


_table: dict[str, Command] = {}


def register_command(name, executor, prepare, undo, arity, flags):
    """Register a command under its lower-cased name.

    ``arity`` counts the command name itself; a negative arity ``-n`` means
    at least ``n`` words.
    """
    key = name.lower()
    command = Command(key, executor, prepare, undo, arity, flags)
    _table[key] = command
    return command


def lookup(name):
    """Return the command registered under ``name`` (any case), or None."""
    if isinstance(name, bytes):
        name = name.decode("utf-8", "surrogateescape")
    return _table.get(name.lower())


def is_read_only_command(name):
    """True when ``name`` is a registered read-only command."""
    command = lookup(name)
    return command is not None and command.read_only


def validate_arity(arity, cmd_line):
    """Check the number of words in ``cmd_line`` against ``arity``."""
    count = len(cmd_line)
    if arity >= 0:
        return count == arity
    return count >= -arity


def _key(raw: bytes) -> str:
    return raw.decode("utf-8", "surrogateescape")


def _split(args: Sequence[bytes], writes: slice, reads: slice) -> KeyLists:
    """Decode the arguments picked out by ``writes`` and ``reads`` as keys."""
    return [_key(arg) for arg in args[writes]], [_key(arg) for arg in args[reads]]


def write_first_key(args):
    """The first argument is the key written."""
    return [_key(args[0])], []


def read_first_key(args):
    """The first argument is the key read."""
    return [], [_key(args[0])]


def write_all_keys(args):
    """Every argument is a key written."""
    return _split(args, _EVERYTHING, _NOTHING)


def read_all_keys(args):
    """Every argument is a key read."""
    return _split(args, _NOTHING, _EVERYTHING)


def no_prepare(args):
    """The command touches no specific keys."""
    return _split(args, _NOTHING, _NOTHING)