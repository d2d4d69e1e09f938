import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator

from posmoni.db.types import ValidatorRecord

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    pass


class ValidatorNotFound(PersistenceError):
    pass


class Repository(ABC):
    """Validator records keyed by validator index"""

    @abstractmethod
    def first_or_create(self, record: ValidatorRecord) -> ValidatorRecord:
        """Stored record with `record.idx` or `record` itself after it is stored"""

    @abstractmethod
    def update(self, record: ValidatorRecord) -> None: ...

    @abstractmethod
    def validator(self, idx: int) -> ValidatorRecord: ...

    @abstractmethod
    def migrate(self) -> None: ...


class SQLiteRepository(Repository):
    COLUMNS = 'idx, balance, missed_atts, missed_atts_total'

    def __init__(self, path: str, timeout: float):
        self._path = path
        self._timeout = timeout
        # Doc: https://docs.python.org/3/library/sqlite3.html#sqlite3.threadsafety
        assert sqlite3.threadsafety > 0, "SQLite is not compiled with thread safety"

    @contextmanager
    def cursor(self) -> Iterator[sqlite3.Cursor]:
        try:
            conn = sqlite3.connect(self._path, check_same_thread=False, timeout=self._timeout)
        except sqlite3.Error as error:
            raise PersistenceError(f'Could not open database {self._path}') from error

        try:
            yield conn.cursor()
            conn.commit()
        except (sqlite3.Error, OverflowError) as error:
            conn.rollback()
            raise PersistenceError(str(error)) from error
        finally:
            conn.close()

    def migrate(self) -> None:
        with self.cursor() as cur:
            cur.execute("PRAGMA journal_mode=WAL;")
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS validators
                (
                    idx               INTEGER PRIMARY KEY,
                    balance           INTEGER NOT NULL,
                    missed_atts       INTEGER NOT NULL DEFAULT 0,
                    missed_atts_total INTEGER NOT NULL DEFAULT 0
                );
                """
            )
        logger.info({'msg': 'Database migrated.', 'path': self._path})

    def first_or_create(self, record: ValidatorRecord) -> ValidatorRecord:
        with self.cursor() as cur:
            cur.execute(
                f"INSERT OR IGNORE INTO validators({self.COLUMNS}) VALUES(?, ?, ?, ?)",
                (record.idx, record.balance, record.missed_atts, record.missed_atts_total),
            )
            cur.execute(f"SELECT {self.COLUMNS} FROM validators WHERE idx=?", (record.idx,))
            row = cur.fetchone()

        return ValidatorRecord(*row)

    def update(self, record: ValidatorRecord) -> None:
        with self.cursor() as cur:
            cur.execute(
                "UPDATE validators SET balance=?, missed_atts=?, missed_atts_total=? WHERE idx=?",
                (record.balance, record.missed_atts, record.missed_atts_total, record.idx),
            )
            updated = cur.rowcount

        if not updated:
            raise ValidatorNotFound(f'Validator {record.idx} is not stored')

    def validator(self, idx: int) -> ValidatorRecord:
        with self.cursor() as cur:
            cur.execute(f"SELECT {self.COLUMNS} FROM validators WHERE idx=?", (idx,))
            row = cur.fetchone()

        if row is None:
            raise ValidatorNotFound(f'Validator {idx} is not stored')

        return ValidatorRecord(*row)


class EmptyRepository(Repository):
    """Repository for runs that never track validators"""

    def first_or_create(self, record: ValidatorRecord) -> ValidatorRecord:
        return record

    def update(self, record: ValidatorRecord) -> None:
        pass

    def validator(self, idx: int) -> ValidatorRecord:
        raise ValidatorNotFound(f'Validator {idx} is not stored')

    def migrate(self) -> None:
        pass
