from __future__ import annotations

import pytest
from sqlalchemy import text
from sqlmodel import Session

from slotkeeper.database import build_engine
from slotkeeper.scripts.migrate_registration_fields import migrate


@pytest.fixture
def old_engine():
    """Tables as an older release created them: no token, consent or name_key columns."""
    eng = build_engine("sqlite://")
    with Session(eng) as session:
        session.exec(
            text(
                "CREATE TABLE registrations ("
                " id INTEGER PRIMARY KEY, event_id INTEGER NOT NULL, registrant_name VARCHAR NOT NULL,"
                " registrant_email VARCHAR NOT NULL, registrant_phone VARCHAR, created_at DATETIME);"
            )
        )
        session.exec(
            text(
                "CREATE TABLE participants ("
                " id INTEGER PRIMARY KEY, registration_id INTEGER NOT NULL, participant_name VARCHAR NOT NULL);"
            )
        )
        session.exec(
            text(
                "INSERT INTO registrations (id, event_id, registrant_name, registrant_email)"
                " VALUES (1, 1, 'Ann Lee', 'ann@neighbors.org');"
            )
        )
        session.exec(text("INSERT INTO participants (id, registration_id, participant_name) VALUES (1, 1, '  Ann   LEE ');"))
        session.commit()
    yield eng
    eng.dispose()


def _columns(session, table):
    return {str(r[1]) for r in session.exec(text(f"PRAGMA table_info({table});")).all()}


def test_migrate_adds_columns_and_backfills(old_engine):
    with Session(old_engine) as session:
        result = migrate(session)

        assert result["added"] == {
            "manage_token_hash": True,
            "manage_token_expires_at": True,
            "email_opt_in": True,
            "email_opted_out_at": True,
            "email_opt_out_reason": True,
            "name_key": True,
        }
        assert result["backfilled"]["name_key"] == 1
        assert {"manage_token_hash", "email_opt_in"} <= _columns(session, "registrations")

        key = session.exec(text("SELECT name_key FROM participants WHERE id = 1;")).one()[0]
        assert key == "ann lee"
        opt_in = session.exec(text("SELECT email_opt_in FROM registrations WHERE id = 1;")).one()[0]
        assert opt_in == 1


def test_migrate_is_safe_to_rerun(old_engine):
    with Session(old_engine) as session:
        migrate(session)
        session.exec(
            text(
                "INSERT INTO registrations (id, event_id, registrant_name, registrant_email, email_opt_in)"
                " VALUES (2, 1, 'Bob', 'bob@neighbors.org', NULL);"
            )
        )
        session.commit()

        again = migrate(session)

        assert not any(again["added"].values())
        assert again["backfilled"] == {"name_key": 0, "email_opt_in": 1}
