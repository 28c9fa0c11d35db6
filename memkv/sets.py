"""Set commands: membership, random picks and set algebra over stored sets."""

from __future__ import annotations

import random
from typing import Optional

from .keyspace import _decode, _encode, _parse_int, rollback_given_keys
from .registry import (
    FLAG_READ_ONLY,
    FLAG_WRITE,
    CommandError,
    WrongTypeError,
    read_first_key,
    register_command,
    write_first_key,
)


def _get_set(db, key: str) -> Optional[set]:
    """The set at ``key``, None if absent; WrongTypeError for another type."""
    value = db.get_entity(key)
    if value is None:
        return None
    if not isinstance(value, set):
        raise WrongTypeError()
    return value


def _get_or_init_set(db, key: str) -> set:
    members = _get_set(db, key)
    if members is None:
        members = set()
        db.put_entity(key, members)
    return members


def _as_reply(members) -> list[bytes]:
    return [_encode(member) for member in members]


def exec_sadd(db, args):
    """SADD key member [member ...]"""
    members = _get_or_init_set(db, _decode(args[0]))
    added = 0
    for raw in args[1:]:
        member = _decode(raw)
        if member not in members:
            members.add(member)
            added += 1
    db.add_aof([b"sadd", *args])
    return added


def exec_sismember(db, args):
    """SISMEMBER key member"""
    members = _get_set(db, _decode(args[0]))
    if members is None:
        return 0
    return int(_decode(args[1]) in members)


def exec_srem(db, args):
    """SREM key member [member ...]"""
    key = _decode(args[0])
    members = _get_set(db, key)
    if members is None:
        return 0
    removed = 0
    for raw in args[1:]:
        member = _decode(raw)
        if member in members:
            members.discard(member)
            removed += 1
    if not members:
        db.remove(key)
    if removed > 0:
        db.add_aof([b"srem", *args])
    return removed


def exec_spop(db, args):
    """SPOP key [count]"""
    if len(args) not in (1, 2):
        raise CommandError("ERR wrong number of arguments for 'spop' command")
    key = _decode(args[0])
    members = _get_set(db, key)
    if members is None:
        return None
    count = 1
    if len(args) == 2:
        try:
            count = _parse_int(args[1])
        except CommandError:
            count = 0
        if count <= 0:
            raise CommandError("ERR value is out of range, must be positive")
    count = min(count, len(members))
    picked = random.sample(list(members), count)
    for member in picked:
        members.discard(member)
    if count > 0:
        db.add_aof([b"spop", *args])
    return _as_reply(picked)


def exec_scard(db, args):
    """SCARD key"""
    members = _get_set(db, _decode(args[0]))
    return 0 if members is None else len(members)


def exec_smembers(db, args):
    """SMEMBERS key"""
    members = _get_set(db, _decode(args[0]))
    if members is None:
        return []
    return _as_reply(members)


def _intersect(db, keys: list[bytes]) -> set:
    """Intersection of the sets at ``keys``; empty as soon as one is missing."""
    result: Optional[set] = None
    for raw in keys:
        members = _get_set(db, _decode(raw))
        if members is None:
            return set()
        if result is None:
            result = set(members)
        else:
            result &= members
            if not result:
                return set()
    return result if result is not None else set()


def _union(db, keys: list[bytes]) -> Optional[set]:
    """Union of the sets at ``keys``; None when none of them exists."""
    result: Optional[set] = None
    for raw in keys:
        members = _get_set(db, _decode(raw))
        if members is None:
            continue
        if result is None:
            result = set(members)
        else:
            result |= members
    return result


def _diff(db, keys: list[bytes]) -> set:
    """Members of the first set that are in none of the others."""
    result: Optional[set] = None
    for position, raw in enumerate(keys):
        members = _get_set(db, _decode(raw))
        if members is None:
            if position == 0:
                return set()
            continue
        if result is None:
            result = set(members)
        else:
            result -= members
            if not result:
                return set()
    return result if result is not None else set()


def exec_sinter(db, args):
    """SINTER key [key ...]"""
    return _as_reply(_intersect(db, args))


def exec_sinterstore(db, args):
    """SINTERSTORE destination key [key ...]"""
    dest = _decode(args[0])
    result = _intersect(db, args[1:])
    if not result:
        db.remove(dest)
        return 0
    db.put_entity(dest, set(result))
    db.add_aof([b"sinterstore", *args])
    return len(result)


def exec_sunion(db, args):
    """SUNION key [key ...]"""
    result = _union(db, args)
    if result is None:
        return []
    return _as_reply(result)


def exec_sunionstore(db, args):
    """SUNIONSTORE destination key [key ...]"""
    dest = _decode(args[0])
    result = _union(db, args[1:])
    db.remove(dest)
    if result is None:
        return []
    db.put_entity(dest, set(result))
    db.add_aof([b"sunionstore", *args])
    return len(result)


def exec_sdiff(db, args):
    """SDIFF key [key ...]"""
    return _as_reply(_diff(db, args))


def exec_sdiffstore(db, args):
    """SDIFFSTORE destination key [key ...]"""
    dest = _decode(args[0])
    result = _diff(db, args[1:])
    if not result:
        db.remove(dest)
        return 0
    db.put_entity(dest, set(result))
    db.add_aof([b"sdiffstore", *args])
    return len(result)


def exec_srandmember(db, args):
    """SRANDMEMBER key [count]"""
    if len(args) not in (1, 2):
        raise CommandError("ERR wrong number of arguments for 'srandmember' command")
    members = _get_set(db, _decode(args[0]))
    if members is None:
        return None
    pool = list(members)
    if len(args) == 1:
        return _encode(random.choice(pool))
    count = _parse_int(args[1])
    if count > 0:
        return _as_reply(random.sample(pool, min(count, len(pool))))
    if count < 0:
        return _as_reply(random.choices(pool, k=-count))
    return []


def undo_set_change(db, args):
    """Command lines restoring the set at the first argument to its current state."""
    return rollback_given_keys(db, _decode(args[0]))


def _rollback_first_key(db, args):
    return rollback_given_keys(db, _decode(args[0]))


def _prepare_set_calculate(args):
    return [], [_decode(arg) for arg in args]


def _prepare_set_calculate_store(args):
    return [_decode(args[0])], [_decode(arg) for arg in args[1:]]


register_command("SAdd", exec_sadd, write_first_key, undo_set_change, -3, FLAG_WRITE)
register_command("SIsMember", exec_sismember, read_first_key, None, 3, FLAG_READ_ONLY)
register_command("SRem", exec_srem, write_first_key, undo_set_change, -3, FLAG_WRITE)
register_command("SPop", exec_spop, write_first_key, undo_set_change, -2, FLAG_WRITE)
register_command("SCard", exec_scard, read_first_key, None, 2, FLAG_READ_ONLY)
register_command("SMembers", exec_smembers, read_first_key, None, 2, FLAG_READ_ONLY)
register_command("SInter", exec_sinter, _prepare_set_calculate, None, -2, FLAG_READ_ONLY)
register_command(
    "SInterStore", exec_sinterstore, _prepare_set_calculate_store, _rollback_first_key, -3, FLAG_WRITE
)
register_command("SUnion", exec_sunion, _prepare_set_calculate, None, -2, FLAG_READ_ONLY)
register_command(
    "SUnionStore", exec_sunionstore, _prepare_set_calculate_store, _rollback_first_key, -3, FLAG_WRITE
)
register_command("SDiff", exec_sdiff, _prepare_set_calculate, None, -2, FLAG_READ_ONLY)
register_command(
    "SDiffStore", exec_sdiffstore, _prepare_set_calculate_store, _rollback_first_key, -3, FLAG_WRITE
)
register_command("SRandMember", exec_srandmember, read_first_key, None, -2, FLAG_READ_ONLY)