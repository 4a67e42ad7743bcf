"""Top-level API router."""

from fastapi import APIRouter

from app.api.routes.auth import router as auth_router
from app.api.routes.finance import router as finance_router
from app.api.routes.health import router as health_router
from app.api.routes.notifications import router as notifications_router
from app.api.routes.projects import router as projects_router
from app.api.routes.tasks import router as tasks_router
from app.api.routes.teams import router as teams_router
from app.api.routes.users import router as users_router
from app.api.routes.workspace import router as workspace_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router)
api_router.include_router(workspace_router)
api_router.include_router(projects_router)
api_router.include_router(tasks_router)
api_router.include_router(teams_router)
api_router.include_router(users_router)
api_router.include_router(finance_router)
api_router.include_router(notifications_router)
