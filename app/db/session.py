from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import InternalError
from app.db.base import SessionLocal


def get_db() -> Iterator[Session]:
    """One session per request; always closed when the response is done."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def commit_or_raise(db: Session) -> None:
    """Commit, or roll back and surface the failure as InternalError."""
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        print(f"[DB] commit failed: {exc!r}", flush=True)
        raise InternalError("Database write failed") from exc
