import pytest

from memkv.keyspace import Database
from memkv.lists import (
    exec_lpush,
    exec_rpush,
    undo_lpop,
    undo_lpush,
    undo_lset,
    undo_rpop,
    undo_rpoplpush,
    undo_rpush,
)
from memkv.registry import OK, CommandError, WrongTypeError


def cmd(*words):
    return [w.encode() if isinstance(w, str) else w for w in words]


@pytest.fixture
def db():
    return Database()


SIZE = 100


def values(prefix, n=SIZE):
    return [f"{prefix}{i}".encode() for i in range(n)]


def test_rpush_single(db):
    vals = values("r")
    for i, v in enumerate(vals):
        assert db.execute(cmd("rpush", "k", v)) == i + 1
    assert db.execute(cmd("lrange", "k", "0", "-1")) == vals


def test_rpush_multi(db):
    vals = values("m")
    assert db.execute(cmd("rpush", "k", *vals)) == SIZE
    assert db.execute(cmd("lrange", "k", "0", "-1")) == vals


def test_lpush_single(db):
    vals = values("l")
    for i, v in enumerate(vals):
        assert db.execute(cmd("lpush", "k", v)) == i + 1
    assert db.execute(cmd("lrange", "k", "0", "-1")) == vals[::-1]


def test_lpush_multi(db):
    vals = values("x")
    assert db.execute(cmd("lpush", "k", *vals)) == SIZE
    assert db.execute(cmd("lrange", "k", "0", "-1")) == vals[::-1]


@pytest.mark.parametrize(
    "start,stop,expected",
    [
        ("0", "9", slice(0, 10)),
        ("0", "200", slice(0, SIZE)),
        ("0", "-10", slice(0, SIZE - 10 + 1)),
        ("0", "-200", slice(0, 0)),
        ("-10", "-1", slice(90, SIZE)),
        ("150", "200", slice(0, 0)),
    ],
)
def test_lrange(db, start, stop, expected):
    vals = values("v")
    db.execute(cmd("rpush", "k", *vals))
    assert db.execute(cmd("lrange", "k", start, stop)) == vals[expected]


def test_lrange_missing_key(db):
    assert db.execute(cmd("lrange", "nothing", "0", "-1")) == []


def test_lindex(db):
    vals = values("v")
    db.execute(cmd("rpush", "k", *vals))
    assert db.execute(cmd("llen", "k")) == SIZE
    for i in range(SIZE):
        assert db.execute(cmd("lindex", "k", str(i))) == vals[i]
    for i in range(1, SIZE + 1):
        assert db.execute(cmd("lindex", "k", str(-i))) == vals[SIZE - i]
    assert db.execute(cmd("lindex", "k", str(SIZE))) is None
    assert db.execute(cmd("lindex", "k", str(-SIZE - 1))) is None


def test_lrem(db):
    db.execute(cmd("rpush", "k", "a", "b", "a", "a", "c", "a", "a"))
    assert db.execute(cmd("lrem", "k", "1", "a")) == 1
    assert db.execute(cmd("llen", "k")) == 6
    assert db.execute(cmd("lrem", "k", "-2", "a")) == 2
    assert db.execute(cmd("llen", "k")) == 4
    assert db.execute(cmd("lrange", "k", "0", "-1")) == cmd("b", "a", "a", "c")
    assert db.execute(cmd("lrem", "k", "0", "a")) == 2
    assert db.execute(cmd("llen", "k")) == 2


def test_lrem_removes_empty_list(db):
    db.execute(cmd("rpush", "k", "a", "a"))
    assert db.execute(cmd("lrem", "k", "0", "a")) == 2
    assert db.execute(cmd("exists", "k")) == 0


def test_lset(db):
    base = ["a", "b", "c", "d", "e", "f"]
    db.execute(cmd("rpush", "k", *base))
    size = len(base)
    for i in range(size):
        new = f"pos{i}"
        assert db.execute(cmd("lset", "k", str(i), new)) == OK
        assert db.execute(cmd("lindex", "k", str(i))) == new.encode()
    for i in range(1, size + 1):
        new = f"neg{i}"
        assert db.execute(cmd("lset", "k", str(-i), new)) == OK
        assert db.execute(cmd("lindex", "k", str(size - i))) == new.encode()

    with pytest.raises(CommandError, match="ERR index out of range"):
        db.execute(cmd("lset", "k", str(-size - 2), "z"))
    with pytest.raises(CommandError, match="ERR index out of range"):
        db.execute(cmd("lset", "k", str(size + 1), "z"))
    with pytest.raises(CommandError, match="ERR value is not an integer or out of range"):
        db.execute(cmd("lset", "k", "a", "z"))


def test_lset_missing_key(db):
    with pytest.raises(CommandError, match="ERR no such key"):
        db.execute(cmd("lset", "nothing", "0", "z"))


def test_lpop(db):
    base = ["a", "b", "c", "d", "e", "f"]
    db.execute(cmd("rpush", "k", *base))
    for v in base:
        assert db.execute(cmd("lpop", "k")) == v.encode()
    assert db.execute(cmd("rpop", "k")) is None
    assert db.execute(cmd("exists", "k")) == 0


def test_rpop(db):
    base = ["a", "b", "c", "d", "e", "f"]
    db.execute(cmd("rpush", "k", *base))
    for v in reversed(base):
        assert db.execute(cmd("rpop", "k")) == v.encode()
    assert db.execute(cmd("rpop", "k")) is None


def test_rpoplpush(db):
    base = ["a", "b", "c", "d", "e", "f"]
    db.execute(cmd("rpush", "k1", *base))
    for v in reversed(base):
        assert db.execute(cmd("rpoplpush", "k1", "k2")) == v.encode()
        assert db.execute(cmd("lindex", "k2", "0")) == v.encode()
    assert db.execute(cmd("rpop", "k1")) is None
    assert db.execute(cmd("lrange", "k2", "0", "-1")) == cmd(*base)


def test_rpoplpush_missing_source(db):
    assert db.execute(cmd("rpoplpush", "none", "dest")) is None
    assert db.execute(cmd("exists", "dest")) == 0


def test_rpushx(db):
    assert db.execute(cmd("rpushx", "k", "1")) == 0
    db.execute(cmd("rpush", "k", "1"))
    for i in range(10):
        value = f"value{i}"
        assert db.execute(cmd("rpushx", "k", value)) == i + 2
        assert db.execute(cmd("lindex", "k", "-1")) == value.encode()


def test_lpushx(db):
    assert db.execute(cmd("rpushx", "k", "1")) == 0
    assert db.execute(cmd("lpushx", "k", "1")) == 0
    db.execute(cmd("lpush", "k", "1"))
    for i in range(10):
        value = f"value{i}"
        assert db.execute(cmd("lpushx", "k", value)) == i + 2
        assert db.execute(cmd("lindex", "k", "0")) == value.encode()


def test_wrong_type(db):
    db.put_entity("s", b"string")
    with pytest.raises(WrongTypeError):
        db.execute(cmd("lpush", "s", "a"))
    with pytest.raises(WrongTypeError):
        db.execute(cmd("llen", "s"))


def test_arity_checked(db):
    with pytest.raises(CommandError, match="wrong number of arguments"):
        db.execute(cmd("lpush", "k"))


def test_type_is_list(db):
    exec_rpush(db, cmd("k", "v"))
    assert str(db.execute(cmd("type", "k"))) == "list"


def test_undo_lpush(db):
    line = cmd("lpush", "k", "v")
    db.execute(line)
    undo = undo_lpush(db, line[1:])
    db.execute(line)
    for undo_line in undo:
        db.execute(undo_line)
    assert db.execute(cmd("llen", "k")) == 1


def test_undo_rpush_lines(db):
    assert undo_rpush(db, cmd("k", "a", "b")) == [cmd("RPOP", "k"), cmd("RPOP", "k")]


def test_undo_lpop(db):
    db.execute(cmd("lpush", "k", "v", "v"))
    line = cmd("lpop", "k")
    undo = undo_lpop(db, line[1:])
    db.execute(line)
    for undo_line in undo:
        db.execute(undo_line)
    assert db.execute(cmd("llen", "k")) == 2


def test_undo_lset(db):
    db.execute(cmd("lpush", "k", "old", "old"))
    line = cmd("lset", "k", "1", "new")
    undo = undo_lset(db, line[1:])
    db.execute(line)
    for undo_line in undo:
        db.execute(undo_line)
    assert db.execute(cmd("lindex", "k", "1")) == b"old"


def test_undo_rpop(db):
    db.execute(cmd("rpush", "k", "v", "v"))
    line = cmd("rpop", "k")
    undo = undo_rpop(db, line[1:])
    db.execute(line)
    for undo_line in undo:
        db.execute(undo_line)
    assert db.execute(cmd("llen", "k")) == 2


def test_undo_rpoplpush(db):
    exec_lpush(db, cmd("k1", "v"))
    line = cmd("rpoplpush", "k1", "k2")
    undo = undo_rpoplpush(db, line[1:])
    db.execute(line)
    for undo_line in undo:
        db.execute(undo_line)
    assert db.execute(cmd("llen", "k1")) == 1
    assert db.execute(cmd("llen", "k2")) == 0


def test_undo_lrem_restores_list(db):
    db.execute(cmd("rpush", "k", "a", "b", "a"))
    line = cmd("lrem", "k", "0", "a")
    undo = db.undo_log(line)
    db.execute(line)
    for undo_line in undo:
        db.execute(undo_line)
    assert db.execute(cmd("lrange", "k", "0", "-1")) == cmd("a", "b", "a")