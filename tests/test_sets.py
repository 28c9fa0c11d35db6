import random

import pytest

from memkv import sets
from memkv.keyspace import Database
from memkv.registry import CommandError, WrongTypeError


def cmd(*words):
    return [w if isinstance(w, bytes) else str(w).encode() for w in words]


@pytest.fixture
def db():
    return Database(0)


def fill(db, key, members):
    for member in members:
        db.execute(cmd("sadd", key, member))


def test_sadd_scard_sismember_smembers(db):
    for i in range(100):
        assert db.execute(cmd("sadd", "k", i)) == 1
    assert db.execute(cmd("SCard", "k")) == 100
    for i in range(100):
        assert db.execute(cmd("SIsMember", "k", i)) == 1
    members = db.execute(cmd("SMembers", "k"))
    assert len(members) == 100
    assert set(members) == {str(i).encode() for i in range(100)}


def test_sadd_duplicate_counts_zero(db):
    assert db.execute(cmd("sadd", "k", "a", "a", "b")) == 2
    assert db.execute(cmd("sadd", "k", "a")) == 0


def test_srem(db):
    fill(db, "k", range(100))
    for i in range(100):
        db.execute(cmd("srem", "k", i))
        assert db.execute(cmd("SIsMember", "k", i)) == 0
    assert db.execute(cmd("exists", "k")) == 0


def test_spop(db):
    fill(db, "k", range(100))
    assert len(db.execute(cmd("spop", "k"))) == 1
    current = 99
    while current > 0:
        count = random.randint(1, current)
        popped = db.execute(cmd("spop", "k", count))
        for member in popped:
            assert db.execute(cmd("SIsMember", "k", member)) == 0
        current -= len(popped)
        assert db.execute(cmd("SCard", "k")) == current


def test_spop_missing_and_bad_count(db):
    assert db.execute(cmd("spop", "none")) is None
    fill(db, "k", ["a"])
    with pytest.raises(CommandError, match="must be positive"):
        db.execute(cmd("spop", "k", "0"))
    with pytest.raises(CommandError, match="must be positive"):
        db.execute(cmd("spop", "k", "x"))


def _four_sets(db, step):
    keys = []
    for i in range(4):
        key = f"set{i}"
        keys.append(key)
        fill(db, key, range(i * step, i * step + 100))
    return keys


def test_sinter(db):
    keys = _four_sets(db, 10)
    assert len(db.execute(cmd("sinter", *keys))) == 70
    assert db.execute(cmd("SInterStore", "dest", *keys)) == 70
    assert db.execute(cmd("scard", "dest")) == 70


def test_sinter_empty(db):
    db.execute(cmd("sadd", "k1", "a", "b"))
    db.execute(cmd("sadd", "k1", "1", "2"))
    assert db.execute(cmd("sinter", "k0", "k1", "k2")) == []
    assert db.execute(cmd("sinter", "k1", "k2")) == []
    assert db.execute(cmd("sinterstore", "d1", "k0", "k1", "k2")) == 0
    assert db.execute(cmd("sinterstore", "d2", "k1", "k2")) == 0


def test_sunion(db):
    keys = _four_sets(db, 10)
    assert len(db.execute(cmd("sunion", *keys))) == 130
    assert db.execute(cmd("SUnionStore", "dest", *keys)) == 130


def test_sunion_all_missing(db):
    assert db.execute(cmd("sunion", "a", "b")) == []


def test_sdiff(db):
    keys = []
    for i in range(3):
        key = f"set{i}"
        keys.append(key)
        fill(db, key, range(i * 20, i * 20 + 100))
    assert len(db.execute(cmd("SDiff", *keys))) == 20
    assert db.execute(cmd("SDiffStore", "dest", *keys)) == 20
    assert db.execute(cmd("smembers", "dest")) != []
    assert set(db.execute(cmd("smembers", "dest"))) == {str(i).encode() for i in range(20)}


def test_sdiff_empty(db):
    db.execute(cmd("sadd", "k1", "a", "b"))
    db.execute(cmd("sadd", "k2", "a", "b"))
    assert db.execute(cmd("sdiff", "k0", "k1", "k2")) == []
    assert db.execute(cmd("sdiff", "k1", "k2")) == []
    assert db.execute(cmd("SDiffStore", "d1", "k0", "k1", "k2")) == 0
    assert db.execute(cmd("SDiffStore", "d2", "k1", "k2")) == 0


def test_srandmember(db):
    fill(db, "k", range(100))
    single = db.execute(cmd("SRandMember", "k"))
    assert single in {str(i).encode() for i in range(100)}
    ten = db.execute(cmd("SRandMember", "k", "10"))
    assert len(ten) == 10
    assert len(set(ten)) == 10
    assert len(db.execute(cmd("SRandMember", "k", "110"))) == 100
    assert len(db.execute(cmd("SRandMember", "k", "-10"))) == 10
    assert len(db.execute(cmd("SRandMember", "k", "-110"))) == 110
    assert db.execute(cmd("SRandMember", "k", "0")) == []


def test_wrong_type(db):
    db.put_entity("s", b"value")
    with pytest.raises(WrongTypeError):
        db.execute(cmd("sadd", "s", "a"))
    with pytest.raises(WrongTypeError):
        db.execute(cmd("sinter", "s"))


def test_type_is_set(db):
    db.execute(cmd("sadd", "k", "a"))
    assert str(db.execute(cmd("type", "k"))) == "set"


def test_undo_set_change_restores(db):
    db.execute(cmd("sadd", "k", "a", "b"))
    line = cmd("srem", "k", "a")
    undo = sets.undo_set_change(db, line[1:])
    db.execute(line)
    for undo_line in undo:
        if undo_line[0].lower() in (b"del", b"sadd"):
            db.execute(undo_line)
    assert set(db.execute(cmd("smembers", "k"))) == {b"a", b"b"}