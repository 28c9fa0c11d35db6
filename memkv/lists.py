"""List commands: pushes, pops, ranges and in-place edits of list values."""

from __future__ import annotations

from collections import deque
from itertools import islice
from typing import Optional

from .keyspace import _decode, _parse_int, rollback_given_keys
from .registry import (
    FLAG_READ_ONLY,
    FLAG_WRITE,
    OK,
    CommandError,
    WrongTypeError,
    read_first_key,
    register_command,
    write_first_key,
)


def _get_list(db, key: str) -> Optional[deque]:
    """The list at ``key``, None if absent; WrongTypeError for another type."""
    value = db.get_entity(key)
    if value is None:
        return None
    if not isinstance(value, deque):
        raise WrongTypeError()
    return value


def _get_or_init_list(db, key: str) -> deque:
    items = _get_list(db, key)
    if items is None:
        items = deque()
        db.put_entity(key, items)
    return items


def _normalize_index(index: int, size: int) -> Optional[int]:
    """Turn a possibly negative index into a position, or None if out of range."""
    if index < -size or index >= size:
        return None
    return index + size if index < 0 else index


def _range_bounds(start: int, stop: int, size: int) -> Optional[tuple[int, int]]:
    """Half-open bounds for an inclusive [start, stop] range, or None if empty."""
    if start < -size:
        start = 0
    elif start < 0:
        start += size
    elif start >= size:
        return None
    if stop < -size:
        stop = 0
    elif stop < 0:
        stop = size + stop + 1
    elif stop < size:
        stop += 1
    else:
        stop = size
    return start, max(start, stop)


def exec_lindex(db, args):
    """LINDEX key index"""
    index = _parse_int(args[1])
    items = _get_list(db, _decode(args[0]))
    if items is None:
        return None
    position = _normalize_index(index, len(items))
    if position is None:
        return None
    return items[position]


def exec_llen(db, args):
    """LLEN key"""
    items = _get_list(db, _decode(args[0]))
    return 0 if items is None else len(items)


def exec_lpop(db, args):
    """LPOP key"""
    key = _decode(args[0])
    items = _get_list(db, key)
    if items is None:
        return None
    value = items.popleft()
    if not items:
        db.remove(key)
    db.add_aof([b"lpop", *args])
    return value


def undo_lpop(db, args):
    try:
        items = _get_list(db, _decode(args[0]))
    except WrongTypeError:
        return []
    if not items:
        return []
    return [[b"LPUSH", args[0], items[0]]]


def exec_lpush(db, args):
    """LPUSH key element [element ...]"""
    items = _get_or_init_list(db, _decode(args[0]))
    items.extendleft(args[1:])
    db.add_aof([b"lpush", *args])
    return len(items)


def undo_lpush(db, args):
    return [[b"LPOP", args[0]] for _ in args[1:]]


def exec_lpushx(db, args):
    """LPUSHX key element [element ...]"""
    items = _get_list(db, _decode(args[0]))
    if items is None:
        return 0
    items.extendleft(args[1:])
    db.add_aof([b"lpushx", *args])
    return len(items)


def exec_lrange(db, args):
    """LRANGE key start stop"""
    start = _parse_int(args[1])
    stop = _parse_int(args[2])
    items = _get_list(db, _decode(args[0]))
    if items is None:
        return []
    bounds = _range_bounds(start, stop, len(items))
    if bounds is None:
        return []
    return list(islice(items, *bounds))


def _remove_matching(items: deque, value: bytes, limit: Optional[int], from_tail: bool) -> int:
    """Remove up to ``limit`` elements equal to ``value``; None means all."""
    ordered = reversed(items) if from_tail else iter(items)
    kept = []
    removed = 0
    for item in ordered:
        if item == value and (limit is None or removed < limit):
            removed += 1
        else:
            kept.append(item)
    if from_tail:
        kept.reverse()
    items.clear()
    items.extend(kept)
    return removed


def exec_lrem(db, args):
    """LREM key count element"""
    key = _decode(args[0])
    count = _parse_int(args[1])
    value = args[2]
    items = _get_list(db, key)
    if items is None:
        return 0
    if count == 0:
        removed = _remove_matching(items, value, None, False)
    elif count > 0:
        removed = _remove_matching(items, value, count, False)
    else:
        removed = _remove_matching(items, value, -count, True)
    if not items:
        db.remove(key)
    if removed > 0:
        db.add_aof([b"lrem", *args])
    return removed


def exec_lset(db, args):
    """LSET key index element"""
    index = _parse_int(args[1])
    items = _get_list(db, _decode(args[0]))
    if items is None:
        raise CommandError("ERR no such key")
    position = _normalize_index(index, len(items))
    if position is None:
        raise CommandError("ERR index out of range")
    items[position] = args[2]
    db.add_aof([b"lset", *args])
    return OK


def undo_lset(db, args):
    try:
        index = _parse_int(args[1])
        items = _get_list(db, _decode(args[0]))
    except CommandError:
        return []
    if items is None:
        return []
    position = _normalize_index(index, len(items))
    if position is None:
        return []
    return [[b"LSET", args[0], args[1], items[position]]]


def exec_rpop(db, args):
    """RPOP key"""
    key = _decode(args[0])
    items = _get_list(db, key)
    if items is None:
        return None
    value = items.pop()
    if not items:
        db.remove(key)
    db.add_aof([b"rpop", *args])
    return value


def undo_rpop(db, args):
    try:
        items = _get_list(db, _decode(args[0]))
    except WrongTypeError:
        return []
    if not items:
        return []
    return [[b"RPUSH", args[0], items[-1]]]


def _prepare_rpoplpush(args):
    return [_decode(args[0]), _decode(args[1])], []


def exec_rpoplpush(db, args):
    """RPOPLPUSH source destination"""
    source_key = _decode(args[0])
    source = _get_list(db, source_key)
    if source is None:
        return None
    dest = _get_or_init_list(db, _decode(args[1]))
    value = source.pop()
    dest.appendleft(value)
    if not source:
        db.remove(source_key)
    db.add_aof([b"rpoplpush", *args])
    return value


def undo_rpoplpush(db, args):
    try:
        items = _get_list(db, _decode(args[0]))
    except WrongTypeError:
        return []
    if not items:
        return []
    return [[b"RPUSH", args[0], items[-1]], [b"LPOP", args[1]]]


def exec_rpush(db, args):
    """RPUSH key element [element ...]"""
    items = _get_or_init_list(db, _decode(args[0]))
    items.extend(args[1:])
    db.add_aof([b"rpush", *args])
    return len(items)


def undo_rpush(db, args):
    return [[b"RPOP", args[0]] for _ in args[1:]]


def exec_rpushx(db, args):
    """RPUSHX key element [element ...]"""
    if len(args) < 2:
        raise CommandError("ERR wrong number of arguments for 'rpush' command")
    items = _get_list(db, _decode(args[0]))
    if items is None:
        return 0
    items.extend(args[1:])
    db.add_aof([b"rpushx", *args])
    return len(items)


def _rollback_first_key(db, args):
    return rollback_given_keys(db, _decode(args[0]))


register_command("LPush", exec_lpush, write_first_key, undo_lpush, -3, FLAG_WRITE)
register_command("LPushX", exec_lpushx, write_first_key, undo_lpush, -3, FLAG_WRITE)
register_command("RPush", exec_rpush, write_first_key, undo_rpush, -3, FLAG_WRITE)
register_command("RPushX", exec_rpushx, write_first_key, undo_rpush, -3, FLAG_WRITE)
register_command("LPop", exec_lpop, write_first_key, undo_lpop, 2, FLAG_WRITE)
register_command("RPop", exec_rpop, write_first_key, undo_rpop, 2, FLAG_WRITE)
register_command("RPopLPush", exec_rpoplpush, _prepare_rpoplpush, undo_rpoplpush, 3, FLAG_WRITE)
register_command("LRem", exec_lrem, write_first_key, _rollback_first_key, 4, FLAG_WRITE)
register_command("LLen", exec_llen, read_first_key, None, 2, FLAG_READ_ONLY)
register_command("LIndex", exec_lindex, read_first_key, None, 3, FLAG_READ_ONLY)
register_command("LSet", exec_lset, write_first_key, undo_lset, 4, FLAG_WRITE)
register_command("LRange", exec_lrange, read_first_key, None, 4, FLAG_READ_ONLY)