"""Sorted set values and the commands that operate on them."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Optional

from sortedcontainers import SortedList

from .keyspace import _decode, _encode, _format_float, _parse_int, rollback_given_keys
from .lists import _range_bounds
from .registry import (
    FLAG_READ_ONLY,
    FLAG_WRITE,
    CommandError,
    WrongTypeError,
    read_first_key,
    register_command,
    write_first_key,
)

_BORDER_ERROR = "ERR min or max is not a float"
_FLOAT_ERROR = "ERR value is not a valid float"


def _parse_float(text: str) -> float:
    """Parse a float the strict way: no surrounding spaces, no underscores."""
    if not text or text != text.strip() or "_" in text:
        raise ValueError(text)
    return float(text)


@dataclass(frozen=True)
class Element:
    """A member of a sorted set together with its score."""

    member: str
    score: float


@dataclass(frozen=True)
class ScoreBorder:
    """One end of a score range; ``exclude`` makes the end open."""

    value: float
    exclude: bool = False

    def greater(self, score):
        """True when this border lies above ``score`` (or at it, if inclusive)."""
        if self.exclude:
            return self.value > score
        return self.value >= score

    def less(self, score):
        """True when this border lies below ``score`` (or at it, if inclusive)."""
        if self.exclude:
            return self.value < score
        return self.value <= score


def parse_score_border(text):
    """Parse a border such as ``5``, ``(5``, ``-inf`` or ``+inf``."""
    if isinstance(text, bytes):
        text = _decode(text)
    if text in ("inf", "+inf"):
        return ScoreBorder(math.inf)
    if text == "-inf":
        return ScoreBorder(-math.inf)
    exclude = text.startswith("(")
    body = text[1:] if exclude else text
    try:
        value = _parse_float(body)
    except ValueError:
        raise CommandError(_BORDER_ERROR) from None
    return ScoreBorder(value, exclude)


class SortedSet:
    """Members ordered by score, ties broken by member."""

    def __init__(self):
        self._scores: dict[str, float] = {}
        self._entries = SortedList()

    def __len__(self):
        return len(self._scores)

    def __contains__(self, member):
        return member in self._scores

    def __iter__(self):
        return (Element(member, score) for score, member in self._entries)

    def add(self, member, score):
        """Insert or update ``member``; True when it was not present before."""
        old = self._scores.get(member)
        if old is not None:
            if old != score:
                self._entries.remove((old, member))
                self._entries.add((score, member))
                self._scores[member] = score
            return False
        self._scores[member] = score
        self._entries.add((score, member))
        return True

    def get(self, member):
        """The element for ``member``, or None."""
        score = self._scores.get(member)
        if score is None:
            return None
        return Element(member, score)

    def remove(self, member):
        """Remove ``member``; True when it was present."""
        score = self._scores.pop(member, None)
        if score is None:
            return False
        self._entries.remove((score, member))
        return True

    def rank(self, member, desc=False):
        """Zero-based position of ``member``, -1 when absent."""
        score = self._scores.get(member)
        if score is None:
            return -1
        index = self._entries.index((score, member))
        return len(self._entries) - 1 - index if desc else index

    def range(self, start, stop, desc=False):
        """Elements at positions [start, stop), counted from the end if ``desc``."""
        size = len(self._entries)
        if not 0 <= start <= stop <= size:
            raise IndexError(f"illegal range [{start}, {stop}) for size {size}")
        if desc:
            entries = list(reversed(self._entries[size - stop:size - start]))
        else:
            entries = self._entries[start:stop]
        return [Element(member, score) for score, member in entries]

    def _first_index(self, predicate: Callable[[float], bool]) -> int:
        """First position whose score satisfies a predicate that flips once to True."""
        lo, hi = 0, len(self._entries)
        while lo < hi:
            mid = (lo + hi) // 2
            if predicate(self._entries[mid][0]):
                hi = mid
            else:
                lo = mid + 1
        return lo

    def _window(self, low: ScoreBorder, high: ScoreBorder) -> tuple[int, int]:
        first = self._first_index(low.less)
        end = self._first_index(lambda score: not high.greater(score))
        return first, max(first, end)

    def count(self, low, high):
        """Number of members whose score lies between the two borders."""
        first, end = self._window(low, high)
        return end - first

    def range_by_score(self, low, high, offset=0, limit=-1, desc=False):
        """Elements between the borders, skipping ``offset``; negative ``limit`` means all."""
        first, end = self._window(low, high)
        entries = self._entries[first:end]
        if desc:
            entries.reverse()
        entries = entries[max(offset, 0):]
        if limit >= 0:
            entries = entries[:limit]
        return [Element(member, score) for score, member in entries]

    def _drop(self, entries) -> None:
        for score, member in entries:
            self._entries.remove((score, member))
            del self._scores[member]

    def remove_by_score(self, low, high):
        """Remove members between the borders; return how many went."""
        first, end = self._window(low, high)
        doomed = self._entries[first:end]
        self._drop(doomed)
        return len(doomed)

    def remove_by_rank(self, start, stop):
        """Remove members at ascending positions [start, stop); return how many went."""
        doomed = self._entries[start:stop]
        self._drop(doomed)
        return len(doomed)

    def pop_min(self, count):
        """Remove and return the ``count`` lowest elements; count <= 0 takes all."""
        doomed = self._entries[:count] if count > 0 else self._entries[:]
        self._drop(doomed)
        return [Element(member, score) for score, member in doomed]


def _get_sorted_set(db, key: str) -> Optional[SortedSet]:
    value = db.get_entity(key)
    if value is None:
        return None
    if not isinstance(value, SortedSet):
        raise WrongTypeError()
    return value


def _get_or_init_sorted_set(db, key: str) -> SortedSet:
    sorted_set = _get_sorted_set(db, key)
    if sorted_set is None:
        sorted_set = SortedSet()
        db.put_entity(key, sorted_set)
    return sorted_set


def _parse_score(raw: bytes) -> float:
    try:
        value = _parse_float(_decode(raw))
    except ValueError:
        raise CommandError(_FLOAT_ERROR) from None
    if math.isnan(value):
        raise CommandError(_FLOAT_ERROR)
    return value


def _score_bytes(score: float) -> bytes:
    return _format_float(score).encode()


def _flatten(elements, with_scores: bool) -> list[bytes]:
    reply: list[bytes] = []
    for element in elements:
        reply.append(_encode(element.member))
        if with_scores:
            reply.append(_score_bytes(element.score))
    return reply


def _rollback_fields(db, raw_key: bytes, fields: list[bytes]) -> list[list[bytes]]:
    key = _decode(raw_key)
    try:
        sorted_set = _get_sorted_set(db, key)
    except WrongTypeError:
        sorted_set = None
    if sorted_set is None:
        return rollback_given_keys(db, key)
    lines = []
    for raw in fields:
        element = sorted_set.get(_decode(raw))
        if element is None:
            lines.append([b"ZREM", raw_key, raw])
        else:
            lines.append([b"ZADD", raw_key, _score_bytes(element.score), raw])
    return lines


def exec_zadd(db, args):
    """ZADD key score member [score member ...]"""
    if len(args) % 2 != 1:
        raise CommandError("Err syntax error")
    pairs = [
        (_decode(args[i + 1]), _parse_score(args[i]))
        for i in range(1, len(args), 2)
    ]
    sorted_set = _get_or_init_sorted_set(db, _decode(args[0]))
    added = sum(1 for member, score in pairs if sorted_set.add(member, score))
    db.add_aof([b"zadd", *args])
    return added


def undo_zadd(db, args):
    return _rollback_fields(db, args[0], list(args[2::2]))


def exec_zscore(db, args):
    """ZSCORE key member"""
    sorted_set = _get_sorted_set(db, _decode(args[0]))
    if sorted_set is None:
        return None
    element = sorted_set.get(_decode(args[1]))
    if element is None:
        return None
    return _score_bytes(element.score)


def _rank(db, args, desc: bool):
    sorted_set = _get_sorted_set(db, _decode(args[0]))
    if sorted_set is None:
        return None
    rank = sorted_set.rank(_decode(args[1]), desc)
    return None if rank < 0 else rank


def exec_zrank(db, args):
    """ZRANK key member"""
    return _rank(db, args, False)


def exec_zrevrank(db, args):
    """ZREVRANK key member"""
    return _rank(db, args, True)


def exec_zcard(db, args):
    """ZCARD key"""
    sorted_set = _get_sorted_set(db, _decode(args[0]))
    return 0 if sorted_set is None else len(sorted_set)


def _range_by_rank(db, key: str, start: int, stop: int, with_scores: bool, desc: bool):
    sorted_set = _get_sorted_set(db, key)
    if sorted_set is None:
        return []
    bounds = _range_bounds(start, stop, len(sorted_set))
    if bounds is None:
        return []
    return _flatten(sorted_set.range(*bounds, desc), with_scores)


def _parse_rank_range(args, name: str, upper_case_option: bool):
    if len(args) not in (3, 4):
        raise CommandError(f"ERR wrong number of arguments for '{name}' command")
    with_scores = False
    if len(args) == 4:
        option = _decode(args[3])
        if upper_case_option:
            option = option.upper()
        if option != "WITHSCORES":
            raise CommandError("syntax error")
        with_scores = True
    start = _parse_int(args[1])
    stop = _parse_int(args[2])
    return _decode(args[0]), start, stop, with_scores


def exec_zrange(db, args):
    """ZRANGE key start stop [WITHSCORES]"""
    key, start, stop, with_scores = _parse_rank_range(args, "zrange", True)
    return _range_by_rank(db, key, start, stop, with_scores, False)


def exec_zrevrange(db, args):
    """ZREVRANGE key start stop [WITHSCORES]"""
    key, start, stop, with_scores = _parse_rank_range(args, "zrevrange", False)
    return _range_by_rank(db, key, start, stop, with_scores, True)


def exec_zcount(db, args):
    """ZCOUNT key min max"""
    low = parse_score_border(args[1])
    high = parse_score_border(args[2])
    sorted_set = _get_sorted_set(db, _decode(args[0]))
    if sorted_set is None:
        return 0
    return sorted_set.count(low, high)


def _parse_score_options(options) -> tuple[bool, int, int]:
    with_scores = False
    offset, limit = 0, -1
    position = 0
    while position < len(options):
        word = _decode(options[position]).upper()
        if word == "WITHSCORES":
            with_scores = True
            position += 1
        elif word == "LIMIT":
            if len(options) < position + 3:
                raise CommandError("ERR syntax error")
            offset = _parse_int(options[position + 1])
            limit = _parse_int(options[position + 2])
            position += 3
        else:
            raise CommandError("ERR syntax error")
    return with_scores, offset, limit


def _range_by_score(db, args, desc: bool):
    if len(args) < 3:
        raise CommandError("ERR wrong number of arguments for 'zrangebyscore' command")
    if desc:
        high = parse_score_border(args[1])
        low = parse_score_border(args[2])
    else:
        low = parse_score_border(args[1])
        high = parse_score_border(args[2])
    with_scores, offset, limit = _parse_score_options(args[3:])
    sorted_set = _get_sorted_set(db, _decode(args[0]))
    if sorted_set is None:
        return []
    elements = sorted_set.range_by_score(low, high, offset, limit, desc)
    return _flatten(elements, with_scores)


def exec_zrangebyscore(db, args):
    """ZRANGEBYSCORE key min max [WITHSCORES] [LIMIT offset count]"""
    return _range_by_score(db, args, False)


def exec_zrevrangebyscore(db, args):
    """ZREVRANGEBYSCORE key max min [WITHSCORES] [LIMIT offset count]"""
    return _range_by_score(db, args, True)


def exec_zremrangebyscore(db, args):
    """ZREMRANGEBYSCORE key min max"""
    if len(args) != 3:
        raise CommandError("ERR wrong number of arguments for 'zremrangebyscore' command")
    low = parse_score_border(args[1])
    high = parse_score_border(args[2])
    sorted_set = _get_sorted_set(db, _decode(args[0]))
    if sorted_set is None:
        return []
    removed = sorted_set.remove_by_score(low, high)
    if removed > 0:
        db.add_aof([b"zremrangebyscore", *args])
    return removed


def exec_zremrangebyrank(db, args):
    """ZREMRANGEBYRANK key start stop"""
    start = _parse_int(args[1])
    stop = _parse_int(args[2])
    sorted_set = _get_sorted_set(db, _decode(args[0]))
    if sorted_set is None:
        return 0
    bounds = _range_bounds(start, stop, len(sorted_set))
    if bounds is None:
        return 0
    removed = sorted_set.remove_by_rank(*bounds)
    if removed > 0:
        db.add_aof([b"zremrangebyrank", *args])
    return removed


def exec_zpopmin(db, args):
    """ZPOPMIN key [count]"""
    count = _parse_int(args[1]) if len(args) > 1 else 1
    sorted_set = _get_sorted_set(db, _decode(args[0]))
    if sorted_set is None:
        return []
    removed = sorted_set.pop_min(count)
    if removed:
        db.add_aof([b"zpopmin", *args])
    return _flatten(removed, True)


def exec_zrem(db, args):
    """ZREM key member [member ...]"""
    sorted_set = _get_sorted_set(db, _decode(args[0]))
    if sorted_set is None:
        return 0
    deleted = sum(1 for raw in args[1:] if sorted_set.remove(_decode(raw)))
    if deleted > 0:
        db.add_aof([b"zrem", *args])
    return deleted


def undo_zrem(db, args):
    return _rollback_fields(db, args[0], list(args[1:]))


def exec_zincrby(db, args):
    """ZINCRBY key increment member"""
    delta = _parse_score(args[1])
    member = _decode(args[2])
    sorted_set = _get_or_init_sorted_set(db, _decode(args[0]))
    element = sorted_set.get(member)
    if element is None:
        sorted_set.add(member, delta)
        db.add_aof([b"zincrby", *args])
        return args[1]
    score = element.score + delta
    if math.isnan(score):
        raise CommandError("ERR resulting score is not a number (NaN)")
    sorted_set.add(member, score)
    db.add_aof([b"zincrby", *args])
    return _score_bytes(score)


def undo_zincrby(db, args):
    return _rollback_fields(db, args[0], [args[2]])


def _rollback_first_key(db, args):
    return rollback_given_keys(db, _decode(args[0]))


register_command("ZAdd", exec_zadd, write_first_key, undo_zadd, -4, FLAG_WRITE)
register_command("ZScore", exec_zscore, read_first_key, None, 3, FLAG_READ_ONLY)
register_command("ZIncrBy", exec_zincrby, write_first_key, undo_zincrby, 4, FLAG_WRITE)
register_command("ZRank", exec_zrank, read_first_key, None, 3, FLAG_READ_ONLY)
register_command("ZCount", exec_zcount, read_first_key, None, 4, FLAG_READ_ONLY)
register_command("ZRevRank", exec_zrevrank, read_first_key, None, 3, FLAG_READ_ONLY)
register_command("ZCard", exec_zcard, read_first_key, None, 2, FLAG_READ_ONLY)
register_command("ZRange", exec_zrange, read_first_key, None, -4, FLAG_READ_ONLY)
register_command("ZRangeByScore", exec_zrangebyscore, read_first_key, None, -4, FLAG_READ_ONLY)
register_command("ZRevRange", exec_zrevrange, read_first_key, None, -4, FLAG_READ_ONLY)
register_command(
    "ZRevRangeByScore", exec_zrevrangebyscore, read_first_key, None, -4, FLAG_READ_ONLY
)
register_command("ZPopMin", exec_zpopmin, write_first_key, _rollback_first_key, -2, FLAG_WRITE)
register_command("ZRem", exec_zrem, write_first_key, undo_zrem, -3, FLAG_WRITE)
register_command(
    "ZRemRangeByScore", exec_zremrangebyscore, write_first_key, _rollback_first_key, 4, FLAG_WRITE
)
register_command(
    "ZRemRangeByRank", exec_zremrangebyrank, write_first_key, _rollback_first_key, 4, FLAG_WRITE
)