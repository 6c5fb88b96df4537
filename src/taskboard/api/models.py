from __future__ import annotations

import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any


def now_ts() -> int:
    return int(time.time())


class EmailTaken(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class User:
    id: str
    email: str
    password_hash: str
    created_at: int

    def to_public(self) -> dict[str, Any]:
        return {"id": self.id, "email": self.email}


def connect(db_path: Path) -> sqlite3.Connection:
    con = sqlite3.connect(str(db_path), timeout=30)
    con.row_factory = sqlite3.Row
    con.execute("PRAGMA foreign_keys = ON;")
    return con


class AuthStore:
    """
    Minimal SQLite-backed account store.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init()

    def _conn(self) -> sqlite3.Connection:
        return connect(self.db_path)

    def _init(self) -> None:
        con = self._conn()
        try:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                  id TEXT PRIMARY KEY,
                  email TEXT UNIQUE NOT NULL,
                  password_hash TEXT NOT NULL,
                  created_at INTEGER NOT NULL
                );
                """
            )
            con.commit()
        finally:
            con.close()

    @staticmethod
    def _row_to_user(row: sqlite3.Row | None) -> User | None:
        if row is None:
            return None
        return User(
            id=str(row["id"]),
            email=str(row["email"]),
            password_hash=str(row["password_hash"]),
            created_at=int(row["created_at"]),
        )

    def create_user(self, user: User) -> User:
        con = self._conn()
        try:
            con.execute(
                "INSERT INTO users (id, email, password_hash, created_at) VALUES (?, ?, ?, ?);",
                (user.id, user.email.lower(), user.password_hash, int(user.created_at)),
            )
            con.commit()
        except sqlite3.IntegrityError as ex:
            raise EmailTaken(user.email) from ex
        finally:
            con.close()
        return user

    def get_user(self, user_id: str) -> User | None:
        con = self._conn()
        try:
            row = con.execute("SELECT * FROM users WHERE id = ?;", (str(user_id),)).fetchone()
        finally:
            con.close()
        return self._row_to_user(row)

    def get_user_by_email(self, email: str) -> User | None:
        con = self._conn()
        try:
            row = con.execute(
                "SELECT * FROM users WHERE email = ?;", (str(email).strip().lower(),)
            ).fetchone()
        finally:
            con.close()
        return self._row_to_user(row)
