"""Relational backend: one SQL table used as a key-value store.

The table is expected to exist with a text primary-key column and a binary
value column::

    CREATE TABLE data (key TEXT PRIMARY KEY, value BYTEA);

Listing is emulated with a range predicate over the key column
(``key >= prefix AND key < upper(prefix)``) ordered by key, since the
relational model has no native key ordering.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import (
    Column,
    LargeBinary,
    MetaData,
    Table,
    Text,
    bindparam,
    create_engine,
    delete,
    func,
    insert,
    select,
    text,
    update,
)
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import (
    IntegrityError,
    NoSuchModuleError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.exc import (
    TimeoutError as PoolTimeoutError,
)

from ..errors import (
    AlreadyExistsError,
    ConnectError,
    NotFoundError,
    OperationError,
    OperationTimeoutError,
    PermissionDeniedError,
    UnavailableError,
)
from ..params import RelationalParams
from ..session import EntryMetadata, Session

logger = logging.getLogger(__name__)

_MAX_CODE_POINT = 0x10FFFF
_SURROGATES = range(0xD800, 0xE000)

# SQLite VM instructions between deadline checks
PROGRESS_STEPS = 1000


def prefix_upper_bound(prefix: str) -> str | None:
    """Smallest string greater than every string starting with ``prefix``.

    Returns None when no such bound exists (empty prefix, or a prefix made
    only of the highest code point), meaning the range is open-ended.

    Examples:
        >>> prefix_upper_bound("/a/b/")
        '/a/b0'
    """
    chars = list(prefix)
    while chars:
        code = ord(chars[-1]) + 1
        if code in _SURROGATES:
            code = _SURROGATES.stop
        if code <= _MAX_CODE_POINT:
            chars[-1] = chr(code)
            return "".join(chars)
        chars.pop()
    return None


def _connect_args(dialect: str, timeout: int) -> dict[str, Any]:
    if dialect == "postgresql":
        return {"connect_timeout": timeout, "options": f"-c statement_timeout={timeout * 1000}"}
    if dialect == "sqlite":
        return {"timeout": timeout}
    if dialect in ("mysql", "mariadb"):
        return {"connect_timeout": timeout, "read_timeout": timeout, "write_timeout": timeout}
    return {}


class RelationalSession(Session):
    """Session over an SQLAlchemy engine and a fixed set of statements.

    The engine's connection pool checks out one connection per call, so the
    session is safe for concurrent use.
    """

    scheme = "relational-kv"

    def __init__(self, engine: Engine, table: Table, key_field: str, value_field: str):
        self._engine = engine
        self.table = table
        self._closed = False

        key = table.c[key_field]
        value = table.c[value_field]
        self._key_field = key_field
        self._value_field = value_field

        self._select_value = select(value).where(key == bindparam("p_key"))
        self._select_size = select(func.length(value)).where(key == bindparam("p_key"))
        self._delete = delete(table).where(key == bindparam("p_key"))
        self._delete_many = delete(table).where(key.in_(bindparam("p_keys", expanding=True)))
        self._list_from = select(key).where(key >= bindparam("p_lo")).order_by(key)
        self._list_range = (
            select(key).where(key >= bindparam("p_lo")).where(key < bindparam("p_hi")).order_by(key)
        )
        self._update = update(table).where(key == bindparam("p_key")).values({value_field: bindparam("p_value")})
        self._insert = insert(table).values({key_field: bindparam("p_key"), value_field: bindparam("p_value")})
        self._upsert = self._build_upsert(engine.dialect.name)
        self._set_statement_timeout = text("SELECT set_config('statement_timeout', :p_ms, true)")

    def _build_upsert(self, dialect: str):
        values = {self._key_field: bindparam("p_key"), self._value_field: bindparam("p_value")}
        if dialect in ("postgresql", "sqlite"):
            module = postgresql if dialect == "postgresql" else sqlite
            stmt = module.insert(self.table).values(values)
            return stmt.on_conflict_do_update(
                index_elements=[self.table.c[self._key_field]],
                set_={self._value_field: stmt.excluded[self._value_field]},
            )
        if dialect in ("mysql", "mariadb"):
            stmt = mysql.insert(self.table).values(values)
            return stmt.on_duplicate_key_update({self._value_field: stmt.inserted[self._value_field]})
        return None

    @contextmanager
    def _deadline(self, conn: Connection, timeout: float | None):
        """Bound the statements run on ``conn`` by ``timeout`` seconds.

        PostgreSQL gets a transaction-local ``statement_timeout``. SQLite has
        no statement timeout, so a progress handler interrupts the statement
        once the deadline passes. Other dialects keep the driver timeouts
        set at connect time.
        """
        if timeout is None:
            yield
            return
        dialect = conn.dialect.name
        if dialect == "postgresql":
            conn.execute(self._set_statement_timeout, {"p_ms": str(max(int(timeout * 1000), 1))})
            yield
        elif dialect == "sqlite":
            raw = conn.connection.driver_connection
            deadline = time.monotonic() + timeout
            raw.set_progress_handler(lambda: time.monotonic() > deadline, PROGRESS_STEPS)
            try:
                yield
            finally:
                raw.set_progress_handler(None, 0)
        else:
            logger.debug(f"No per-call statement timeout for dialect {dialect}")
            yield

    @contextmanager
    def _connect(self, timeout: float | None, begin: bool = False):
        context = self._engine.begin() if begin else self._engine.connect()
        with context as conn:
            with self._deadline(conn, timeout):
                yield conn

    @contextmanager
    def _translate(self, operation: str, path: str | None):
        try:
            yield
        except PoolTimeoutError as e:
            raise OperationTimeoutError(path, operation, str(e)) from e
        except IntegrityError as e:
            raise AlreadyExistsError(path, operation, str(e.orig)) from e
        except OperationalError as e:
            message = str(e.orig)
            if "timeout" in message.lower() or message == "interrupted":
                raise OperationTimeoutError(path, operation, message) from e
            if "permission denied" in message.lower():
                raise PermissionDeniedError(path, operation, message) from e
            raise UnavailableError(path, operation, message) from e
        except SQLAlchemyError as e:
            message = str(getattr(e, "orig", None) or e)
            if "permission denied" in message.lower():
                raise PermissionDeniedError(path, operation, message) from e
            raise OperationError(path, operation, message) from e

    def read(self, path: str, timeout: float | None = None) -> bytes:
        with self._translate("read", path):
            with self._connect(timeout) as conn:
                row = conn.execute(self._select_value, {"p_key": path}).first()
        if row is None or row[0] is None:
            raise NotFoundError(path, "read")
        return bytes(row[0])

    def write(self, path: str, data: bytes, timeout: float | None = None) -> None:
        params = {"p_key": path, "p_value": data}
        with self._translate("write", path):
            with self._connect(timeout, begin=True) as conn:
                if self._upsert is not None:
                    conn.execute(self._upsert, params)
                elif conn.execute(self._update, params).rowcount == 0:
                    conn.execute(self._insert, params)
        logger.debug(f"Stored row: {path} ({len(data)} bytes)")

    def delete(self, path: str, timeout: float | None = None) -> None:
        with self._translate("delete", path):
            with self._connect(timeout, begin=True) as conn:
                conn.execute(self._delete, {"p_key": path})

    def delete_many(self, paths: Iterable[str], timeout: float | None = None) -> None:
        keys = list(paths)
        if not keys:
            return
        with self._translate("delete", None):
            with self._connect(timeout, begin=True) as conn:
                conn.execute(self._delete_many, {"p_keys": keys})

    def stat(self, path: str, timeout: float | None = None) -> EntryMetadata:
        with self._translate("stat", path):
            with self._connect(timeout) as conn:
                row = conn.execute(self._select_size, {"p_key": path}).first()
        # a NULL value reads as absent, so it stats as absent too
        if row is None or row[0] is None:
            raise NotFoundError(path, "stat")
        return EntryMetadata(key=path, size=row[0])

    def list(self, prefix: str, timeout: float | None = None) -> Iterator[str]:
        upper = prefix_upper_bound(prefix)
        if upper is None:
            stmt, params = self._list_from, {"p_lo": prefix}
        else:
            stmt, params = self._list_range, {"p_lo": prefix, "p_hi": upper}

        with self._translate("list", prefix):
            with self._connect(timeout) as conn:
                result = conn.execution_options(stream_results=True).execute(stmt, params)
                for (key,) in result:
                    # collations other than binary can widen the range
                    if key.startswith(prefix):
                        yield key

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._engine.dispose()
        logger.debug(f"Disposed engine for table {self.table.name}")


def build_relational_session(params: RelationalParams, client: Engine | None = None) -> RelationalSession:
    """Create a relational session from validated parameters.

    The engine connects lazily; the table is not created or inspected.

    Args:
        params: Validated ``relational-kv`` parameters
        client: Pre-built engine to use instead of creating one

    Raises:
        ConnectError: If the database driver for the dialect is unavailable
    """
    if client is None:
        options: dict[str, Any] = {"connect_args": _connect_args(params.dialect, params.timeout)}
        if params.dialect != "sqlite":
            # sqlite memory databases use a pool without checkout timeouts
            options["pool_timeout"] = params.timeout
        try:
            client = create_engine(params.connection_string, **options)
        except (NoSuchModuleError, ImportError) as e:
            raise ConnectError(
                f"No database driver available for '{params.dialect}': {e}", str(params.scheme)
            ) from e

    table = Table(
        params.table,
        MetaData(),
        Column(params.key_field, Text, primary_key=True),
        Column(params.value_field, LargeBinary),
    )
    logger.info(f"Created relational-kv session for table {params.table} ({params.dialect})")
    return RelationalSession(client, table, params.key_field, params.value_field)
