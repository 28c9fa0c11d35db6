"""A multi-database server: database selection, flushing and cross-database commands."""

from __future__ import annotations

import copy as _copy
import re
from dataclasses import dataclass
from typing import Optional

from . import lists as _lists  # noqa: F401  registers list commands
from . import sets as _sets  # noqa: F401  registers set commands
from . import sortedsets as _sortedsets  # noqa: F401  registers sorted set commands
from .keyspace import Database, _decode
from .registry import OK, CommandError, validate_arity

DEFAULT_DATABASES = 16

_ATOI_RE = re.compile(rb"[+-]?[0-9]+")
_SYNTAX_ERROR = "Err syntax error"
_OUT_OF_RANGE = "ERR DB index is out of range"


def _arg_num_error(name: str) -> CommandError:
    return CommandError(f"ERR wrong number of arguments for '{name}' command")


def _atoi(raw: bytes) -> Optional[int]:
    if _ATOI_RE.fullmatch(raw) is None:
        return None
    return int(raw)


@dataclass
class Connection:
    """Per-client state the server cares about: the selected database and MULTI mode."""

    db_index: int = 0
    in_multi: bool = False


class Server:
    """A set of numbered databases sharing one command dispatcher."""

    def __init__(self, databases=DEFAULT_DATABASES):
        if not databases:
            databases = DEFAULT_DATABASES
        self._dbs: list[Database] = [Database(index) for index in range(databases)]

    def __len__(self):
        return len(self._dbs)

    def execute(self, conn, cmd_line):
        """Run one command line for ``conn`` and return its reply."""
        if conn is None:
            conn = Connection()
        if not cmd_line:
            raise CommandError("ERR empty command")
        name = _decode(cmd_line[0]).lower()
        try:
            if name == "flushall":
                return self.flush_all()
            if name == "flushdb":
                if not validate_arity(1, cmd_line):
                    raise _arg_num_error(name)
                if conn.in_multi:
                    raise CommandError("ERR command 'FlushDB' cannot be used in MULTI")
                return self.flush_db(conn.db_index)
            if name == "select":
                if conn.in_multi:
                    raise CommandError("cannot select database within multi")
                if len(cmd_line) != 2:
                    raise _arg_num_error("select")
                return self.select(conn, list(cmd_line[1:]))
            if name == "copy":
                if len(cmd_line) < 3:
                    raise _arg_num_error("copy")
                return self.copy(conn, list(cmd_line[1:]))
            return self.select_db(conn.db_index).execute(cmd_line)
        except CommandError:
            raise
        except Exception as exc:
            raise CommandError("Err unknown") from exc

    def select_db(self, index):
        """The database at ``index``; CommandError when out of range."""
        if not 0 <= index < len(self._dbs):
            raise CommandError(_OUT_OF_RANGE)
        return self._dbs[index]

    def load_db(self, index, db):
        """Replace the database at ``index`` with ``db``, keeping its append hook."""
        old = self.select_db(index)
        db.index = index
        db.add_aof = old.add_aof
        self._dbs[index] = db
        return OK

    def flush_db(self, index):
        """Replace the database at ``index`` with an empty one."""
        self.select_db(index)
        return self.load_db(index, Database(index))

    def flush_all(self):
        """Empty every database."""
        for index in range(len(self._dbs)):
            self.flush_db(index)
        return OK

    def db_size(self, index):
        """Number of keys and number of keys with an expiration in a database."""
        db = self.select_db(index)
        keys = db.keys()
        with_ttl = sum(1 for key in keys if db.expire_time(key) is not None)
        return len(keys), with_ttl

    def select(self, conn, args):
        """SELECT index"""
        index = _atoi(args[0])
        if index is None:
            raise CommandError("ERR invalid DB index")
        if not 0 <= index < len(self._dbs):
            raise CommandError(_OUT_OF_RANGE)
        conn.db_index = index
        return OK

    def copy(self, conn, args):
        """COPY source destination [DB destination-db] [REPLACE]"""
        db = self.select_db(conn.db_index)
        dest_index = conn.db_index
        replace = False
        src_key, dest_key = _decode(args[0]), _decode(args[1])

        options = iter(args[2:])
        for raw in options:
            option = _decode(raw).lower()
            if option == "db":
                value = next(options, None)
                if value is None:
                    raise CommandError(_SYNTAX_ERROR)
                index = _atoi(value)
                if index is None:
                    raise CommandError(_SYNTAX_ERROR)
                if not 0 <= index < len(self._dbs):
                    raise CommandError(_OUT_OF_RANGE)
                dest_index = index
            elif option == "replace":
                replace = True
            else:
                raise CommandError(_SYNTAX_ERROR)

        if src_key == dest_key and dest_index == conn.db_index:
            raise CommandError("ERR source and destination objects are the same")

        value = db.get_entity(src_key)
        if value is None:
            return 0

        dest_db = self.select_db(dest_index)
        if dest_db.get_entity(dest_key) is not None and not replace:
            return 0

        dest_db.put_entity(dest_key, _copy.deepcopy(value))
        expire_at = db.expire_time(src_key)
        if expire_at is not None:
            dest_db.expire(dest_key, expire_at)
        db.add_aof([b"copy", *args])
        return 1