"""Route handlers for the Web API."""

from spaced_recall.web.routes.health import router as health_router
from spaced_recall.web.routes.users import router as users_router
from spaced_recall.web.routes.subjects import router as subjects_router
from spaced_recall.web.routes.reviews import router as reviews_router
from spaced_recall.web.routes.activities import router as activities_router
from spaced_recall.web.routes.integrations import router as integrations_router
from spaced_recall.web.routes.ai import router as ai_router
from spaced_recall.web.routes.pathways import router as pathways_router

__all__ = [
    "health_router",
    "users_router",
    "subjects_router",
    "reviews_router",
    "activities_router",
    "integrations_router",
    "ai_router",
    "pathways_router",
]
