"""
API Routes - Combines all route modules into single router.
"""

from fastapi import APIRouter

from portal.api.routes.auth_routes import router as auth_router
from portal.api.routes.student_routes import router as student_router
from portal.api.routes.admin_routes import router as admin_router
from portal.api.routes.group_routes import router as group_router
from portal.api.routes.exam_routes import router as exam_router
from portal.api.routes.registration_routes import router as registration_router
from portal.api.routes.document_routes import router as document_router

# Main API router
api_router = APIRouter()

api_router.include_router(auth_router)
api_router.include_router(student_router)
api_router.include_router(admin_router)
api_router.include_router(group_router)
api_router.include_router(exam_router)
api_router.include_router(registration_router)
api_router.include_router(document_router)
