from __future__ import annotations

from typing import Dict, List, Optional

from sqlalchemy import text
from sqlmodel import Session, select

from slotkeeper.database import engine
from slotkeeper.models.participant import Participant, name_key


def _dialect_name(session: Session) -> str:
    return session.get_bind().dialect.name.lower()


def _is_postgres(session: Session) -> bool:
    return _dialect_name(session) in ("postgresql", "postgres")


def _sqlite_columns(session: Session, table: str) -> List[str]:
    rows = session.exec(text(f"PRAGMA table_info({table});")).all()
    # PRAGMA table_info returns: cid, name, type, notnull, dflt_value, pk
    return [str(r[1]) for r in rows]


def _postgres_columns(session: Session, table: str) -> List[str]:
    # assumes default schema 'public'
    rows = session.exec(
        text(
            """
            SELECT column_name
            FROM information_schema.columns
            WHERE table_schema = 'public' AND table_name = :t
            ORDER BY ordinal_position;
            """
        ),
        params={"t": table},
    ).all()
    return [str(r[0]) for r in rows]


def _get_columns(session: Session, table: str) -> List[str]:
    if _is_postgres(session):
        return _postgres_columns(session, table)
    return _sqlite_columns(session, table)


def _add_column_sql(session: Session, table: str, col: str, coltype_sql: str, default_sql: Optional[str] = None) -> str:
    if _is_postgres(session):
        stmt = f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {col} {coltype_sql}"
    else:
        stmt = f"ALTER TABLE {table} ADD COLUMN {col} {coltype_sql}"
    if default_sql is not None:
        stmt += f" DEFAULT {default_sql}"
    return stmt + ";"


def _ensure_columns(session: Session, table: str, wanted: Dict[str, tuple]) -> Dict[str, bool]:
    """
    wanted maps column -> ((postgres_type, postgres_default), (sqlite_type, sqlite_default)).
    Returns {column_name: added?}.
    """
    cols = set(_get_columns(session, table))
    added: Dict[str, bool] = {}
    for col, (pg, lite) in wanted.items():
        if col in cols:
            added[col] = False
            continue
        coltype, default = pg if _is_postgres(session) else lite
        session.exec(text(_add_column_sql(session, table, col, coltype, default)))
        added[col] = True
    return added


def ensure_registration_columns(session: Session) -> Dict[str, bool]:
    """
    Token + email-consent columns on registrations created by older versions.
    """
    return _ensure_columns(
        session,
        "registrations",
        {
            "manage_token_hash": (("VARCHAR", "NULL"), ("VARCHAR", "NULL")),
            "manage_token_expires_at": (("TIMESTAMP", "NULL"), ("DATETIME", "NULL")),
            "email_opt_in": (("BOOLEAN", "TRUE"), ("INTEGER", "1")),
            "email_opted_out_at": (("TIMESTAMP", "NULL"), ("DATETIME", "NULL")),
            "email_opt_out_reason": (("TEXT", "NULL"), ("TEXT", "NULL")),
        },
    )


def ensure_participant_columns(session: Session) -> Dict[str, bool]:
    return _ensure_columns(
        session,
        "participants",
        {"name_key": (("VARCHAR", "''"), ("VARCHAR", "''"))},
    )


def backfill_name_keys(session: Session) -> int:
    """
    Fill name_key for participants that predate it.
    Uses the same normalization as new rows (collapsed whitespace, lower-case).
    """
    rows = session.exec(
        select(Participant).where((Participant.name_key == "") | (Participant.name_key == None))  # noqa: E711
    ).all()
    for p in rows:
        p.name_key = name_key(p.participant_name)
        session.add(p)
    session.flush()
    return len(rows)


def backfill_opt_in(session: Session) -> int:
    value = "TRUE" if _is_postgres(session) else "1"
    r = session.exec(text(f"UPDATE registrations SET email_opt_in = {value} WHERE email_opt_in IS NULL;"))
    return int(getattr(r, "rowcount", 0) or 0)


def migrate(session: Session) -> Dict[str, object]:
    added = {}
    added.update(ensure_registration_columns(session))
    added.update(ensure_participant_columns(session))
    session.commit()

    backfilled = {
        "name_key": backfill_name_keys(session),
        "email_opt_in": backfill_opt_in(session),
    }
    session.commit()
    return {"added": added, "backfilled": backfilled}


def run() -> None:
    """
    Run with:
      python -m slotkeeper.scripts.migrate_registration_fields
    """
    with Session(engine) as session:
        result = migrate(session)

    print("migrate_registration_fields complete")
    print("Added columns:", result["added"])
    print("Backfilled rows:", result["backfilled"])


if __name__ == "__main__":
    run()
