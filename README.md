# memkv

`memkv` is an in-memory key-value engine that runs Redis-style commands
against lists, sets and sorted sets. A `Server` holds several numbered
databases. Any key in a database can be given an expiry time.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Usage

A command line is a list of `bytes`: the command name comes first, then its
arguments. Command names are case-insensitive.

```python
from memkv.server import Connection, Server

server = Server(16)          # 16 databases; 0 or None also gives 16
conn = Connection()          # selected database and MULTI flag of one client

server.execute(conn, [b"RPUSH", b"queue", b"a", b"b", b"c"])    # 3
server.execute(conn, [b"LRANGE", b"queue", b"0", b"-1"])        # [b"a", b"b", b"c"]

server.execute(conn, [b"ZADD", b"board", b"10", b"alice", b"20", b"bob"])   # 2
server.execute(conn, [b"ZRANGE", b"board", b"0", b"-1", b"WITHSCORES"])
# [b"alice", b"10", b"bob", b"20"]

server.execute(conn, [b"EXPIRE", b"queue", b"60"])    # 1
server.execute(conn, [b"TTL", b"queue"])              # seconds left

server.execute(conn, [b"COPY", b"board", b"board", b"DB", b"1"])   # 1
server.execute(conn, [b"SELECT", b"1"])               # Status("OK")
```

Replies are plain Python values:

- integers for counts, lengths, ranks and times;
- `bytes` for a single value;
- lists of `bytes` for several values;
- `None` where no value exists (a missing key, an out-of-range index);
- `memkv.registry.Status` for status replies such as `OK` or a type name
  returned by `TYPE`.

If `conn` is `None`, `Server.execute` uses a fresh `Connection` on
database 0.

One database can also be used directly:

```python
from memkv.keyspace import Database

db = Database(0)
db.execute([b"SADD", b"tags", b"x", b"y"])    # 2
db.execute([b"SMEMBERS", b"tags"])            # [b"x", b"y"] in any order
```

`Database` also offers `get_entity`, `put_entity`, `remove`, `expire`,
`persist`, `expire_time`, `keys`, `flush` and `len()`. Expiry times are
absolute and given in nanoseconds since the Unix epoch. An expired key is
dropped the next time it is looked at.

`Server` also offers `select_db`, `load_db`, `flush_db`, `flush_all` and
`db_size`. `db_size` returns the number of keys and the number of keys that
have an expiry time.

### Errors

A failed command raises `memkv.registry.CommandError`. Its `message` is the
error text a client would see, for example
`ERR value is not an integer or out of range`. A command run on a key that
holds another kind of value raises `memkv.registry.WrongTypeError`, which is
a `CommandError`. An unknown command name and a wrong number of arguments
raise `CommandError` too.

### Undo logs

`Database.undo_log(cmd_line)` returns the command lines that would reverse a
write command. Call it before running the command: it works from the current
state. Running the returned lines after the command rolls the change back.
Commands with no undo return an empty list.

### The command table

`memkv.registry` keeps the table of commands. `lookup(name)` returns a
`Command` (executor, key-preparation function, undo function, arity, flags).
`is_read_only_command(name)` reports whether a command only reads.
`register_command(name, executor, prepare, undo, arity, flags)` adds a
command. An arity of `n` means exactly `n` words including the name, and
`-n` means at least `n` words. The list, set and sorted set commands are
registered when `memkv.server` is imported, or when their own modules
(`memkv.lists`, `memkv.sets`, `memkv.sortedsets`) are imported.

`memkv.sortedsets.SortedSet` is the sorted set value type. It keeps members
ordered by score, with ties ordered by member. `parse_score_border` reads
range ends such as `5`, `(5`, `-inf` and `+inf`.

## Supported commands

- Keys: `DEL`, `EXISTS`, `TYPE`, `RENAME`, `RENAMENX`, `EXPIRE`, `EXPIREAT`,
  `EXPIRETIME`, `PEXPIRE`, `PEXPIREAT`, `PEXPIRETIME`, `TTL`, `PTTL`,
  `PERSIST`, `KEYS`
- Lists: `LPUSH`, `LPUSHX`, `RPUSH`, `RPUSHX`, `LPOP`, `RPOP`, `RPOPLPUSH`,
  `LREM`, `LLEN`, `LINDEX`, `LSET`, `LRANGE`
- Sets: `SADD`, `SISMEMBER`, `SREM`, `SPOP`, `SCARD`, `SMEMBERS`, `SINTER`,
  `SINTERSTORE`, `SUNION`, `SUNIONSTORE`, `SDIFF`, `SDIFFSTORE`, `SRANDMEMBER`
- Sorted sets: `ZADD`, `ZSCORE`, `ZINCRBY`, `ZRANK`, `ZREVRANK`, `ZCOUNT`,
  `ZCARD`, `ZRANGE`, `ZREVRANGE`, `ZRANGEBYSCORE`, `ZREVRANGEBYSCORE`,
  `ZPOPMIN`, `ZREM`, `ZREMRANGEBYSCORE`, `ZREMRANGEBYRANK`
- Server only (through `Server.execute`): `SELECT`, `COPY`, `FLUSHDB`,
  `FLUSHALL`

## What it does not do

`memkv` is an engine inside one Python process. It has these limits:

- No network server and no wire protocol. Commands are run by calling
  `execute`.
- No string or hash commands. There is no `SET`, `GET` or `HSET`. `TYPE`
  recognises `bytes` and `dict` values, but only when they were stored with
  `put_entity`.
- No persistence. Nothing is written to disk or loaded from it. The
  `add_aof` hook on each `Database` receives the write commands, and does
  nothing unless you replace it.
- No authentication, no publish/subscribe, no replication, and no
  `MULTI`/`EXEC` transactions. The `in_multi` flag on `Connection` only
  blocks `SELECT` and `FLUSHDB`.