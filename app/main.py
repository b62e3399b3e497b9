import logging

from fastapi import FastAPI

from app.core.config import ENABLE_DEBUG_ROUTES
from app.core.errors import GoalKeeperError, goalkeeper_error_handler
from app.db.base import Base, engine

# Import models so create_all picks them up
from app.auth.models import User, DeviceToken  # noqa: F401
from app.goals.models import Goal, Milestone, GoalComment, GoalReaction  # noqa: F401
from app.commitments.models import Commitment, Reminder  # noqa: F401
from app.achievements.models import Achievement  # noqa: F401
from app.notifications.models import Notification  # noqa: F401

from app.auth.routes import router as auth_router
from app.goals.routes import router as goals_router
from app.commitments.routes import router as commitments_router
from app.notifications.routes import router as notifications_router
from app.social.routes import router as social_router
from app.api.routes import router as api_router

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(name)s %(message)s")

app = FastAPI(title="GoalKeeper", version="0.1.0")

app.add_exception_handler(GoalKeeperError, goalkeeper_error_handler)

# Only expose debug routes (including diagnostics) when explicitly enabled.
if ENABLE_DEBUG_ROUTES:
    from app.debug.routes import router as debug_router
    app.include_router(debug_router)

# Create database tables (still useful in dev; in production prefer Alembic)
Base.metadata.create_all(bind=engine)

# Include routers
app.include_router(auth_router)
app.include_router(goals_router)
app.include_router(commitments_router)
app.include_router(notifications_router)
app.include_router(social_router)
app.include_router(api_router)


@app.get("/", include_in_schema=False)
def root():
    return {"name": "GoalKeeper", "status": "ok"}
