"""
Student Portal Backend
Oracle -> PostgreSQL sync plus a REST API for students and administrators.

Architecture:
- Oracle (Apogee): source of truth for students, grades, curriculum
- PostgreSQL: read cache serving the API, plus exam planning and group rules
- FastAPI: student self-service, admin tooling, document verification
"""

__version__ = "1.0.0"
