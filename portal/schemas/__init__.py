"""
Schemas module - Request/Response schemas for API endpoints.
All models live in portal.schemas.schemas.
"""
