try:
    import pyodbc
    _has_pyodbc = True
except Exception:
    pyodbc = None
    _has_pyodbc = False

import logging
import os
import sqlite3
import threading
from datetime import datetime
from functools import wraps

from admin_dashboard import DashboardStats, RegistrationRecord
from config import Config
from registration_form import PersonEntry

logger = logging.getLogger(__name__)


def locked(method):
    """Serialise access to the shared connection across request threads."""
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


def _as_datetime(value):
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return datetime.min


class Database:
    def __init__(self, path=None, connection_string=None):
        self._lock = threading.RLock()
        self.connection = None
        self._is_sqlite = False

        if connection_string is None:
            connection_string = Config.SQL_CONNECTION_STRING

        # Attempt SQL Server connection if a connection string is provided and pyodbc is available
        if connection_string and _has_pyodbc:
            try:
                self.connection = pyodbc.connect(connection_string)
                logger.info("Database connection (pyodbc) successful")
            except Exception as e:
                logger.error("pyodbc connection failed: %s", e)
                self.connection = None

        # Fallback to local SQLite file
        if not self.connection:
            db_path = os.path.abspath(path or Config.DATABASE_PATH)
            os.makedirs(os.path.dirname(db_path), exist_ok=True)
            self.connection = sqlite3.connect(db_path, check_same_thread=False)
            self.connection.execute('PRAGMA foreign_keys = ON')
            self._is_sqlite = True
            logger.info("SQLite database connected: %s", db_path)

        self.create_tables()

    @locked
    def create_tables(self):
        # SQL Server T-SQL when connected through pyodbc, SQLite DDL otherwise
        if self._is_sqlite:
            statements = [
                '''
                CREATE TABLE IF NOT EXISTS registrations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    created_at TEXT NOT NULL,
                    contact_firstname TEXT NOT NULL,
                    contact_lastname TEXT NOT NULL,
                    phone_number TEXT NOT NULL,
                    email TEXT NOT NULL,
                    confirmed INTEGER NOT NULL DEFAULT 0
                )
                ''',
                '''
                CREATE TABLE IF NOT EXISTS persons (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    registration_id INTEGER NOT NULL REFERENCES registrations(id) ON DELETE CASCADE,
                    position INTEGER NOT NULL,
                    person_firstname TEXT NOT NULL,
                    person_lastname TEXT NOT NULL,
                    birthdate TEXT NOT NULL,
                    club_membership TEXT NOT NULL
                )
                ''',
            ]
        else:
            statements = [
                """
                IF NOT EXISTS (SELECT * FROM sys.objects WHERE object_id = OBJECT_ID(N'[dbo].[registrations]') AND type in (N'U'))
                BEGIN
                    CREATE TABLE registrations (
                        id INT IDENTITY(1,1) PRIMARY KEY,
                        created_at DATETIME2 NOT NULL,
                        contact_firstname NVARCHAR(100) NOT NULL,
                        contact_lastname NVARCHAR(100) NOT NULL,
                        phone_number NVARCHAR(20) NOT NULL,
                        email NVARCHAR(255) NOT NULL,
                        confirmed BIT NOT NULL DEFAULT 0
                    )
                END
                """,
                """
                IF NOT EXISTS (SELECT * FROM sys.objects WHERE object_id = OBJECT_ID(N'[dbo].[persons]') AND type in (N'U'))
                BEGIN
                    CREATE TABLE persons (
                        id INT IDENTITY(1,1) PRIMARY KEY,
                        registration_id INT NOT NULL REFERENCES registrations(id) ON DELETE CASCADE,
                        position INT NOT NULL,
                        person_firstname NVARCHAR(100) NOT NULL,
                        person_lastname NVARCHAR(100) NOT NULL,
                        birthdate DATE NOT NULL,
                        club_membership NVARCHAR(200) NOT NULL
                    )
                END
                """,
            ]
        cursor = self.connection.cursor()
        try:
            for statement in statements:
                cursor.execute(statement)
            self.connection.commit()
        finally:
            cursor.close()

    @locked
    def close(self):
        if self.connection:
            self.connection.close()
            self.connection = None

    @locked
    def insert_registration(self, submission, created_at=None):
        """Store a submission with its persons and return the new registration id."""
        created_at = created_at or datetime.now()
        cursor = self.connection.cursor()
        try:
            values = (
                created_at.isoformat(sep=' ', timespec='seconds'),
                submission.contact_firstname,
                submission.contact_lastname,
                submission.phone_number,
                submission.email,
            )
            if self._is_sqlite:
                cursor.execute('''
                    INSERT INTO registrations
                    (created_at, contact_firstname, contact_lastname, phone_number, email, confirmed)
                    VALUES (?, ?, ?, ?, ?, 0)
                ''', values)
                registration_id = cursor.lastrowid
            else:
                cursor.execute('''
                    INSERT INTO registrations
                    (created_at, contact_firstname, contact_lastname, phone_number, email, confirmed)
                    OUTPUT INSERTED.id
                    VALUES (?, ?, ?, ?, ?, 0)
                ''', values)
                registration_id = cursor.fetchone()[0]

            for position, person in enumerate(submission.persons, start=1):
                cursor.execute('''
                    INSERT INTO persons
                    (registration_id, position, person_firstname, person_lastname, birthdate, club_membership)
                    VALUES (?, ?, ?, ?, ?, ?)
                ''', (registration_id, position, person.person_firstname, person.person_lastname,
                      person.birthdate, person.club_membership))

            self.connection.commit()
            logger.info("Stored registration %s with %d person(s)", registration_id, len(submission.persons))
            return registration_id
        except Exception:
            self.connection.rollback()
            logger.exception("Error in insert_registration")
            raise
        finally:
            cursor.close()

    def _persons_by_registration(self, cursor):
        cursor.execute('''
            SELECT registration_id, person_firstname, person_lastname, birthdate, club_membership
            FROM persons ORDER BY registration_id, position
        ''')
        persons = {}
        for row in cursor.fetchall():
            persons.setdefault(row[0], []).append(PersonEntry(
                person_firstname=row[1],
                person_lastname=row[2],
                birthdate=str(row[3]),
                club_membership=row[4],
            ))
        return persons

    @locked
    def get_registrations(self):
        """All registrations, newest first."""
        cursor = self.connection.cursor()
        try:
            persons = self._persons_by_registration(cursor)
            cursor.execute('''
                SELECT id, created_at, contact_firstname, contact_lastname, phone_number, email, confirmed
                FROM registrations ORDER BY created_at DESC, id DESC
            ''')
            return [
                RegistrationRecord(
                    id=row[0],
                    created_at=_as_datetime(row[1]),
                    persons=persons.get(row[0], []),
                    contact_firstname=row[2],
                    contact_lastname=row[3],
                    phone_number=row[4],
                    email=row[5],
                    confirmed=bool(row[6]),
                )
                for row in cursor.fetchall()
            ]
        except Exception as e:
            logger.error("Error getting registrations: %s", e)
            return []
        finally:
            cursor.close()

    @locked
    def get_registration(self, registration_id):
        for record in self.get_registrations():
            if record.id == registration_id:
                return record
        return None

    @locked
    def get_stats(self):
        cursor = self.connection.cursor()
        try:
            cursor.execute('SELECT COUNT(*), COALESCE(SUM(CASE WHEN confirmed = 1 THEN 1 ELSE 0 END), 0) FROM registrations')
            total, confirmed = cursor.fetchone()
            cursor.execute('SELECT COUNT(*) FROM persons')
            total_persons = cursor.fetchone()[0]
            return DashboardStats(
                total_registrations=total,
                confirmed_registrations=confirmed,
                total_persons=total_persons,
            )
        except Exception as e:
            logger.error("Error counting registrations: %s", e)
            return DashboardStats()
        finally:
            cursor.close()

    def _execute_write(self, *statements):
        """Run (query, params) pairs in one transaction; return the last rowcount."""
        cursor = self.connection.cursor()
        try:
            for query, params in statements:
                cursor.execute(query, params)
            self.connection.commit()
            return cursor.rowcount
        except Exception:
            self.connection.rollback()
            raise
        finally:
            cursor.close()

    @locked
    def confirm_registration(self, registration_id):
        """Mark a registration confirmed; False if it does not exist."""
        return self._execute_write(
            ('UPDATE registrations SET confirmed = 1 WHERE id = ?', (registration_id,))) > 0

    @locked
    def delete_registration(self, registration_id):
        return self._execute_write(
            ('DELETE FROM persons WHERE registration_id = ?', (registration_id,)),
            ('DELETE FROM registrations WHERE id = ?', (registration_id,)),
        ) > 0

    @locked
    def clear_all_registrations(self):
        """Delete every registration and return how many there were."""
        count = self._execute_write(
            ('DELETE FROM persons', ()),
            ('DELETE FROM registrations', ()),
        )
        logger.info("Cleared %d registrations", count)
        return count
