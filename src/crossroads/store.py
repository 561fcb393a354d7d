"""SQLite-backed persistence for session state."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

from crossroads.models import DecisionRecord, SessionState
from crossroads.queries import (
    build_insert_record_query,
    build_records_query,
    build_session_list_query,
    build_upsert_session_query,
)


class SessionStore:
    """Saves and loads the decision subsystem's state, one row per session.

    The state is stored as the plain JSON fragment produced by
    ``SessionState.to_dict``; decision records are mirrored into their own
    table so history can be queried by tag.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self.db = sqlite3.connect(db_path)
        self.db.row_factory = sqlite3.Row
        self.db.execute("PRAGMA foreign_keys = ON")
        self._init_schema()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path) as f:
            schema = f.read()
        self.db.executescript(schema)
        self.db.commit()

    def close(self) -> None:
        """Close database connection."""
        self.db.close()

    def __enter__(self) -> SessionStore:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def save(self, session_id: str, state: SessionState) -> None:
        """Save a session, replacing whatever was stored under its id."""
        with self.db:
            self.db.execute(
                build_upsert_session_query(),
                {"session_id": session_id, "state": json.dumps(state.to_dict())},
            )
            self.db.execute(
                "DELETE FROM decision_records WHERE session_id = ?", (session_id,)
            )
            self.db.executemany(
                build_insert_record_query(),
                [
                    {
                        "session_id": session_id,
                        "position": position,
                        "decision_id": record.decision_id,
                        "selected_option_id": record.selected_option_id,
                        "timestamp": record.timestamp,
                        "relevance_score": record.relevance_score,
                        "expiration_timestamp": record.expiration_timestamp,
                        "impact_description": record.impact_description,
                        "tags": json.dumps(list(record.tags)),
                        "payload": json.dumps(record.to_dict()),
                    }
                    for position, record in enumerate(state.decision_history)
                ],
            )

    def load(self, session_id: str) -> SessionState | None:
        """Load a saved session, or None if there is none."""
        row = self.db.execute(
            "SELECT state FROM sessions WHERE id = ?", (session_id,)
        ).fetchone()
        if row is None:
            return None
        return SessionState.from_dict(json.loads(row["state"]))

    def delete(self, session_id: str) -> None:
        with self.db:
            self.db.execute("DELETE FROM sessions WHERE id = ?", (session_id,))

    def list_sessions(self) -> list[dict]:
        """List saved sessions with their record counts."""
        rows = self.db.execute(build_session_list_query()).fetchall()
        return [
            {
                "id": row["id"],
                "updated_at": row["updated_at"],
                "record_count": row["record_count"],
            }
            for row in rows
        ]

    def query_records(
        self, session_id: str, tag: str | None = None
    ) -> list[DecisionRecord]:
        """Decision records of a session, optionally only those with ``tag``."""
        params = {"session_id": session_id}
        if tag is not None:
            params["tag"] = tag
        rows = self.db.execute(build_records_query(with_tag=tag is not None), params).fetchall()
        return [DecisionRecord.from_dict(json.loads(row["payload"])) for row in rows]
