from fastapi import APIRouter
from app.api.routes import auth, users, assignments, sa_assignments, training_certs, issues, regions, practice_etas, events

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(assignments.router, prefix="/assignments", tags=["assignments"])
api_router.include_router(sa_assignments.router, prefix="/sa-assignments", tags=["sa-assignments"])
api_router.include_router(training_certs.router, prefix="/training-certs", tags=["training-certs"])
api_router.include_router(issues.router, prefix="/issues", tags=["issues"])
api_router.include_router(regions.router, prefix="/regions", tags=["regions"])
api_router.include_router(practice_etas.router, prefix="/practice-etas", tags=["practice-etas"])
api_router.include_router(events.router, tags=["events"])
