"""A single keyspace with expiration, and the generic key commands."""

from __future__ import annotations

import math
import re
import time
from collections import deque
from decimal import Decimal
from typing import Any, Callable

from .registry import (
    FLAG_READ_ONLY,
    FLAG_WRITE,
    OK,
    CommandError,
    Status,
    lookup,
    no_prepare,
    read_all_keys,
    read_first_key,
    register_command,
    validate_arity,
    write_all_keys,
    write_first_key,
)

NS_PER_SEC = 1_000_000_000
NS_PER_MS = 1_000_000

_INT_RE = re.compile(rb"[+-]?[0-9]+")
_INT_MIN = -(2**63)
_INT_MAX = 2**63 - 1
_MISSING = object()


def _now_ns() -> int:
    return time.time_ns()


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", "surrogateescape")


def _encode(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    if isinstance(value, str):
        return value.encode("utf-8", "surrogateescape")
    return str(value).encode()


def _parse_int(raw: bytes) -> int:
    if _INT_RE.fullmatch(raw) is None:
        raise CommandError("ERR value is not an integer or out of range")
    value = int(raw)
    if not _INT_MIN <= value <= _INT_MAX:
        raise CommandError("ERR value is not an integer or out of range")
    return value


def _trunc_div(numerator: int, denominator: int) -> int:
    quotient = abs(numerator) // denominator
    return quotient if numerator >= 0 else -quotient


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


class Database:
    """One numbered keyspace: values, expiration times and command execution.

    Expiration times are absolute, in nanoseconds since the Unix epoch.
    Expired keys are dropped lazily when they are next looked at.
    """

    def __init__(self, index=0):
        self.index = index
        self._data: dict[str, Any] = {}
        self._ttl: dict[str, int] = {}
        self.add_aof: Callable[[list[bytes]], None] = lambda line: None

    def _is_expired(self, key: str) -> bool:
        expire_at = self._ttl.get(key)
        return expire_at is not None and _now_ns() > expire_at

    def _purge_expired(self) -> None:
        for key in [key for key in self._ttl if self._is_expired(key)]:
            self.remove(key)

    def __len__(self):
        self._purge_expired()
        return len(self._data)

    def get_entity(self, key):
        """Return the value stored at ``key``, or None when absent or expired."""
        if self._is_expired(key):
            self.remove(key)
            return None
        return self._data.get(key)

    def put_entity(self, key, value):
        """Store ``value`` at ``key``; return 1 if the key is new, else 0."""
        is_new = key not in self._data
        self._data[key] = value
        return int(is_new)

    def remove(self, *args):
        """Remove the given keys with their expiration; return how many existed."""
        removed = 0
        for key in args:
            self._ttl.pop(key, None)
            if self._data.pop(key, _MISSING) is not _MISSING:
                removed += 1
        return removed

    def expire(self, key, expire_at):
        """Make ``key`` expire at ``expire_at`` nanoseconds since the epoch."""
        self._ttl[key] = int(expire_at)

    def persist(self, key):
        """Drop the expiration of ``key``."""
        self._ttl.pop(key, None)

    def expire_time(self, key):
        """Expiration of ``key`` in nanoseconds since the epoch, or None."""
        return self._ttl.get(key)

    def keys(self):
        """All live keys."""
        self._purge_expired()
        return list(self._data)

    def flush(self):
        """Remove every key."""
        self._data.clear()
        self._ttl.clear()

    def execute(self, cmd_line):
        """Run one command line (a list of byte strings) and return its reply."""
        if not cmd_line:
            raise CommandError("ERR empty command")
        name = _decode(cmd_line[0]).lower()
        command = lookup(name)
        if command is None:
            raise CommandError(f"ERR unknown command '{name}'")
        if not validate_arity(command.arity, cmd_line):
            raise CommandError(f"ERR wrong number of arguments for '{name}' command")
        return command.executor(self, list(cmd_line[1:]))

    def undo_log(self, cmd_line):
        """Command lines that would revert ``cmd_line`` if run afterwards."""
        if not cmd_line:
            return []
        command = lookup(_decode(cmd_line[0]))
        if command is None or command.undo is None:
            return []
        return command.undo(self, list(cmd_line[1:]))


def _ttl_cmd(db: Database, key: str) -> list[bytes]:
    expire_at = db.expire_time(key)
    if expire_at is None:
        return [b"PERSIST", _encode(key)]
    return [b"PEXPIREAT", _encode(key), str(_trunc_div(expire_at, NS_PER_MS)).encode()]


def _entity_cmd(key: str, value: Any) -> list[bytes]:
    raw_key = _encode(key)
    if isinstance(value, bytes):
        return [b"SET", raw_key, value]
    if isinstance(value, (list, deque)):
        return [b"RPUSH", raw_key, *(_encode(item) for item in value)]
    if isinstance(value, dict):
        line = [b"HMSET", raw_key]
        for field, field_value in value.items():
            line += [_encode(field), _encode(field_value)]
        return line
    if isinstance(value, (set, frozenset)):
        return [b"SADD", raw_key, *(_encode(member) for member in value)]
    from .sortedsets import SortedSet

    if isinstance(value, SortedSet):
        line = [b"ZADD", raw_key]
        for element in value.range(0, len(value), False):
            line += [_format_float(element.score).encode(), _encode(element.member)]
        return line
    raise CommandError("Err unknown")


def rollback_given_keys(db, *args):
    """Command lines that restore the given keys to their current state."""
    lines: list[list[bytes]] = []
    for key in args:
        value = db.get_entity(key)
        lines.append([b"DEL", _encode(key)])
        if value is not None:
            lines.append(_entity_cmd(key, value))
            lines.append(_ttl_cmd(db, key))
    return lines


def exec_del(db, args):
    """DEL key [key ...]"""
    deleted = db.remove(*(_decode(arg) for arg in args))
    if deleted > 0:
        db.add_aof([b"del", *args])
    return deleted


def undo_del(db, args):
    return rollback_given_keys(db, *(_decode(arg) for arg in args))


def exec_exists(db, args):
    """EXISTS key [key ...]"""
    return sum(1 for arg in args if db.get_entity(_decode(arg)) is not None)


def exec_type(db, args):
    """TYPE key"""
    value = db.get_entity(_decode(args[0]))
    if value is None:
        return Status("none")
    if isinstance(value, bytes):
        return Status("string")
    if isinstance(value, (list, deque)):
        return Status("list")
    if isinstance(value, dict):
        return Status("hash")
    if isinstance(value, (set, frozenset)):
        return Status("set")
    from .sortedsets import SortedSet

    if isinstance(value, SortedSet):
        return Status("zset")
    raise CommandError("Err unknown")


def _prepare_rename(args):
    return [_decode(args[1])], [_decode(args[0])]


def exec_rename(db, args):
    """RENAME source destination"""
    if len(args) != 2:
        raise CommandError("ERR wrong number of arguments for 'rename' command")
    src, dest = _decode(args[0]), _decode(args[1])
    value = db.get_entity(src)
    if value is None:
        raise CommandError("no such key")
    expire_at = db.expire_time(src)
    db.put_entity(dest, value)
    db.remove(src)
    if expire_at is not None:
        db.persist(src)
        db.persist(dest)
        db.expire(dest, expire_at)
    db.add_aof([b"rename", *args])
    return OK


def undo_rename(db, args):
    return rollback_given_keys(db, _decode(args[0]), _decode(args[1]))


def exec_renamenx(db, args):
    """RENAMENX source destination"""
    src, dest = _decode(args[0]), _decode(args[1])
    if db.get_entity(dest) is not None:
        return 0
    value = db.get_entity(src)
    if value is None:
        raise CommandError("no such key")
    expire_at = db.expire_time(src)
    db.remove(src, dest)
    db.put_entity(dest, value)
    if expire_at is not None:
        db.persist(src)
        db.persist(dest)
        db.expire(dest, expire_at)
    db.add_aof([b"renamenx", *args])
    return 1


def _set_expiration(db: Database, raw_key: bytes, expire_at: int) -> int:
    key = _decode(raw_key)
    if db.get_entity(key) is None:
        return 0
    db.expire(key, expire_at)
    db.add_aof(_ttl_cmd(db, key))
    return 1


def exec_expire(db, args):
    """EXPIRE key seconds"""
    seconds = _parse_int(args[1])
    return _set_expiration(db, args[0], _now_ns() + seconds * NS_PER_SEC)


def exec_expireat(db, args):
    """EXPIREAT key unix-seconds"""
    timestamp = _parse_int(args[1])
    return _set_expiration(db, args[0], timestamp * NS_PER_SEC)


def exec_pexpire(db, args):
    """PEXPIRE key milliseconds"""
    millis = _parse_int(args[1])
    return _set_expiration(db, args[0], _now_ns() + millis * NS_PER_MS)


def exec_pexpireat(db, args):
    """PEXPIREAT key unix-milliseconds"""
    timestamp = _parse_int(args[1])
    return _set_expiration(db, args[0], timestamp * NS_PER_MS)


def _expiration(db: Database, raw_key: bytes) -> int | None:
    """-2 for a missing key, -1 when it has no expiration, else None."""
    key = _decode(raw_key)
    if db.get_entity(key) is None:
        return -2
    if db.expire_time(key) is None:
        return -1
    return None


def exec_expiretime(db, args):
    """EXPIRETIME key: absolute expiration in Unix seconds."""
    code = _expiration(db, args[0])
    if code is not None:
        return code
    return db.expire_time(_decode(args[0])) // NS_PER_SEC


def exec_pexpiretime(db, args):
    """PEXPIRETIME key: absolute expiration in Unix milliseconds."""
    code = _expiration(db, args[0])
    if code is not None:
        return code
    return db.expire_time(_decode(args[0])) // NS_PER_MS


def exec_ttl(db, args):
    """TTL key: remaining time to live in seconds."""
    code = _expiration(db, args[0])
    if code is not None:
        return code
    remaining = db.expire_time(_decode(args[0])) - _now_ns()
    return _trunc_div(remaining, NS_PER_SEC)


def exec_pttl(db, args):
    """PTTL key: remaining time to live in milliseconds."""
    code = _expiration(db, args[0])
    if code is not None:
        return code
    remaining = db.expire_time(_decode(args[0])) - _now_ns()
    return _trunc_div(remaining, NS_PER_MS)


def exec_persist(db, args):
    """PERSIST key"""
    key = _decode(args[0])
    if db.get_entity(key) is None or db.expire_time(key) is None:
        return 0
    db.persist(key)
    db.add_aof([b"persist", *args])
    return 1


def _compile_class(chars) -> str:
    negate = False
    items: list[str] = []
    for ch in chars:
        if ch == "^" and not items and not negate:
            negate = True
        elif ch == "]":
            if not items:
                raise ValueError("empty character class")
            return "[" + ("^" if negate else "") + "".join(items) + "]"
        elif ch == "\\":
            escaped = next(chars, None)
            if escaped is None:
                raise ValueError("dangling escape")
            items.append(re.escape(escaped))
        elif ch == "-" and items:
            items.append("-")
        else:
            items.append(re.escape(ch))
    raise ValueError("unterminated character class")


def _compile_pattern(pattern: str) -> re.Pattern:
    parts: list[str] = []
    chars = iter(pattern)
    for ch in chars:
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        elif ch == "\\":
            escaped = next(chars, None)
            if escaped is None:
                raise ValueError("dangling escape")
            parts.append(re.escape(escaped))
        elif ch == "[":
            parts.append(_compile_class(chars))
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts), re.DOTALL)


def exec_keys(db, args):
    """KEYS pattern"""
    try:
        pattern = _compile_pattern(_decode(args[0]))
    except (ValueError, re.error):
        raise CommandError("ERR illegal wildcard") from None
    return [_encode(key) for key in db.keys() if pattern.fullmatch(key)]


def undo_expire(db, args):
    return [_ttl_cmd(db, _decode(args[0]))]


register_command("Del", exec_del, write_all_keys, undo_del, -2, FLAG_WRITE)
register_command("Expire", exec_expire, write_first_key, undo_expire, 3, FLAG_WRITE)
register_command("ExpireAt", exec_expireat, write_first_key, undo_expire, 3, FLAG_WRITE)
register_command("ExpireTime", exec_expiretime, read_first_key, None, 2, FLAG_READ_ONLY)
register_command("PExpire", exec_pexpire, write_first_key, undo_expire, 3, FLAG_WRITE)
register_command("PExpireAt", exec_pexpireat, write_first_key, undo_expire, 3, FLAG_WRITE)
register_command("PExpireTime", exec_pexpiretime, read_first_key, None, 2, FLAG_READ_ONLY)
register_command("TTL", exec_ttl, read_first_key, None, 2, FLAG_READ_ONLY)
register_command("PTTL", exec_pttl, read_first_key, None, 2, FLAG_READ_ONLY)
register_command("Persist", exec_persist, write_first_key, undo_expire, 2, FLAG_WRITE)
register_command("Exists", exec_exists, read_all_keys, None, -2, FLAG_READ_ONLY)
register_command("Type", exec_type, read_first_key, None, 2, FLAG_READ_ONLY)
register_command("Rename", exec_rename, _prepare_rename, undo_rename, 3, FLAG_READ_ONLY)
register_command("RenameNx", exec_renamenx, _prepare_rename, undo_rename, 3, FLAG_READ_ONLY)
register_command("Keys", exec_keys, no_prepare, None, 2, FLAG_READ_ONLY)