import logging
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Iterator, TypeVar

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from hospital.core import config
from hospital.core.errors import TransientError

logger = logging.getLogger(__name__)

Base = declarative_base()

T = TypeVar('T')

_schema_lock = Lock()
_schema_checked: set[str] = set()


def build_engine(url: str, **kwargs) -> Engine:
    if url.startswith('sqlite'):
        connect_args = kwargs.pop('connect_args', {})
        connect_args.setdefault('check_same_thread', False)
        connect_args.setdefault('timeout', config.DB_CONNECT_TIMEOUT_SECONDS)
        new_engine = create_engine(url, connect_args=connect_args, echo=config.DB_ECHO, **kwargs)
        _serialize_sqlite_transactions(new_engine)
        return new_engine

    kwargs.setdefault('pool_size', config.DB_POOL_SIZE)
    kwargs.setdefault('pool_pre_ping', True)
    return create_engine(url, echo=config.DB_ECHO, **kwargs)


def _serialize_sqlite_transactions(sqlite_engine: Engine) -> None:
    # SQLite has no row locks. BEGIN IMMEDIATE takes the database write lock up
    # front, so a second booker waits for the first to finish before reading.
    @event.listens_for(sqlite_engine, 'connect')
    def _disable_driver_transactions(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, 'begin')
    def _begin_immediate(connection):
        connection.exec_driver_sql('BEGIN IMMEDIATE')


TRANSIENT_SQLSTATES = {
    '40001',  # serialization_failure
    '40P01',  # deadlock_detected
    '55P03',  # lock_not_available
    '57014',  # query_canceled
    '57P01',  # admin_shutdown
    '57P02',  # crash_shutdown
    '57P03',  # cannot_connect_now
}
TRANSIENT_SQLITE_MESSAGES = (
    'database is locked',
    'database table is locked',
    'unable to open database file',
    'disk i/o error',
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_transient_failure(exc: SQLAlchemyError) -> bool:
    """Lock, timeout and connection failures; schema and SQL faults are not transient."""
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    if not isinstance(exc, OperationalError):
        return False

    sqlstate = getattr(exc.orig, 'pgcode', None) or getattr(exc.orig, 'sqlstate', None)
    if sqlstate:
        return sqlstate in TRANSIENT_SQLSTATES or sqlstate.startswith('08')

    if isinstance(exc.orig, sqlite3.Error):
        message = str(exc.orig).lower()
        return any(fragment in message for fragment in TRANSIENT_SQLITE_MESSAGES)

    # Driver errors without a SQLSTATE come from the connection itself.
    return True


class TransactionExecutor:
    """Runs units of work atomically: commit on success, rollback on any error."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        retry_attempts: int = config.DB_RETRY_ATTEMPTS,
        retry_delay_ms: int = config.DB_RETRY_DELAY_MS,
        lock_timeout_ms: int | None = config.DB_LOCK_TIMEOUT_MS,
    ):
        self.session_factory = session_factory
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay_ms = retry_delay_ms
        self.lock_timeout_ms = lock_timeout_ms

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        session = self.session_factory()
        try:
            try:
                self._apply_lock_timeout(session)
                yield session
                session.flush()
            except SQLAlchemyError as exc:
                session.rollback()
                if is_transient_failure(exc):
                    raise TransientError() from exc
                raise
            except BaseException:
                session.rollback()
                raise

            try:
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                if is_transient_failure(exc):
                    raise TransientError(
                        'The database connection was lost while saving. Check your appointments before retrying.',
                        retryable=False,
                    ) from exc
                raise
        finally:
            session.close()

    def run(self, work: Callable[[Session], T]) -> T:
        attempt = 1
        while True:
            try:
                with self.transaction() as session:
                    return work(session)
            except TransientError as exc:
                if not exc.retryable or attempt >= self.retry_attempts:
                    raise
                logger.warning(
                    'Transient database failure (attempt %s/%s), retrying: %s',
                    attempt,
                    self.retry_attempts,
                    exc.__cause__,
                )
                time.sleep(self.retry_delay_ms / 1000)
                attempt += 1

    def ping(self) -> None:
        with self.transaction() as session:
            session.execute(text('SELECT 1'))

    def wait_until_available(self) -> None:
        for attempt in range(1, self.retry_attempts + 1):
            try:
                self.ping()
                return
            except TransientError:
                if attempt >= self.retry_attempts:
                    raise
                logger.warning(
                    'Database connection failed (attempt %s/%s). Retrying in %sms...',
                    attempt,
                    self.retry_attempts,
                    self.retry_delay_ms,
                )
                time.sleep(self.retry_delay_ms / 1000)

    def _apply_lock_timeout(self, session: Session) -> None:
        if not self.lock_timeout_ms:
            return
        if session.get_bind().dialect.name == 'postgresql':
            session.execute(text(f'SET LOCAL lock_timeout = {int(self.lock_timeout_ms)}'))


def create_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=bind,
    )


engine = build_engine(config.DATABASE_URL)

SessionLocal = create_session_factory(engine)

_default_executor = TransactionExecutor(SessionLocal)


def get_executor() -> TransactionExecutor:
    return _default_executor


def ensure_booking_schema(bind: Engine) -> None:
    key = str(bind.url)
    if key in _schema_checked:
        return

    with _schema_lock:
        if key in _schema_checked:
            return

        inspector = inspect(bind)
        table_names = set(inspector.get_table_names())
        migrations = {
            'available_time': [
                ('DayOfWeek', 'ALTER TABLE available_time ADD COLUMN "DayOfWeek" VARCHAR(16)'),
            ],
            'appointments': [
                ('Notes', 'ALTER TABLE appointments ADD COLUMN "Notes" TEXT'),
                ('IdempotencyKey', 'ALTER TABLE appointments ADD COLUMN "IdempotencyKey" VARCHAR(64)'),
                ('CreatedAt', 'ALTER TABLE appointments ADD COLUMN "CreatedAt" TIMESTAMP WITH TIME ZONE'),
                ('UpdatedAt', 'ALTER TABLE appointments ADD COLUMN "UpdatedAt" TIMESTAMP WITH TIME ZONE'),
            ],
        }
        indexes = {
            'available_time': [
                'CREATE INDEX IF NOT EXISTS idx_available_time_doctor_date '
                'ON available_time("DoctorID", "ScheduleDate", "StartTime")',
            ],
            'appointments': [
                'CREATE INDEX IF NOT EXISTS idx_appointments_patient ON appointments("PatientID")',
                'CREATE INDEX IF NOT EXISTS idx_appointments_slot_status '
                'ON appointments("AvailableTimeID", "Status")',
            ],
        }

        existing_columns = {
            table_name: {column['name'] for column in inspector.get_columns(table_name)}
            for table_name in migrations
            if table_name in table_names
        }

        with bind.begin() as connection:
            for table_name, steps in migrations.items():
                if table_name not in table_names:
                    continue
                for column_name, statement in steps:
                    if column_name not in existing_columns[table_name]:
                        logger.info('Adding missing column %s.%s', table_name, column_name)
                        connection.execute(text(statement))
            for table_name, statements in indexes.items():
                if table_name not in table_names:
                    continue
                for statement in statements:
                    connection.execute(text(statement))

        _schema_checked.add(key)
