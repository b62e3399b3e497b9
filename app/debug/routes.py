from pathlib import Path

from fastapi import APIRouter, Depends

from app.commitments.service import CommitmentService
from app.core.deps import get_commitment_service
from app.db.base import engine

router = APIRouter(prefix="/debug", tags=["debug"])


@router.get("/diagnostics/db")
def db_diagnostics():
    """
    DB backend and location, without credentials.
    Only mounted when ENABLE_DEBUG_ROUTES=1.
    """
    url = engine.url
    backend = url.get_backend_name()
    info = {
        "backend": backend,
        "url": url.render_as_string(hide_password=True),
    }

    if backend == "sqlite" and url.database not in (None, "", ":memory:"):
        db_path = Path(url.database).resolve()
        exists = db_path.exists()
        info.update(
            {
                "sqlite_path": str(db_path),
                "sqlite_exists": exists,
                "sqlite_size_bytes": db_path.stat().st_size if exists else 0,
            }
        )
    elif backend != "sqlite":
        info.update({"database": url.database, "host": url.host, "port": url.port, "drivername": url.drivername})

    return info


@router.post("/reminders/sweep")
def sweep_reminders(commitments: CommitmentService = Depends(get_commitment_service)):
    """Run the reminder / due-soon sweep now instead of waiting for the cron job."""
    return commitments.run_reminder_sweep()
