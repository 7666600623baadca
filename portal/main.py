"""
Student Portal - Main Application

FastAPI backend with:
- PostgreSQL as a read cache of the Apogee (Oracle) student records
- JWT authentication for students and administrators
- Exam planning driven by alphabetical grouping rules
- Public verification of printed documents

Run: uvicorn portal.main:app --reload
"""

import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from portal import __version__
from portal.api.routes import api_router
from portal.core.config import get_settings
from portal.core.errors import add_error_handlers
from portal.core.logging import bind_context, clear_context, get_logger, setup_logging
from portal.db.postgres import Database
from portal.services.documents import DocumentVerifier, SignedTokenVerifier

settings = get_settings()
logger = get_logger(__name__)


def create_app(db: Optional[Database] = None, document_verifier: Optional[DocumentVerifier] = None) -> FastAPI:
    """
    Build the application.

    `db` and `document_verifier` default to the configured PostgreSQL
    database and the signed-token verifier; a database created here is
    disposed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings)
        owns_db = db is None
        if owns_db:
            app.state.db = Database.from_settings(settings)
        logger.info("startup", version=__version__, postgres_host=settings.postgres_host)
        yield
        if owns_db:
            app.state.db.dispose()
        logger.info("shutdown")

    app = FastAPI(
        title="Student Portal",
        description="""
        Student portal backed by a PostgreSQL cache of the Apogee records.

        ## Features
        - **Students**: Profile, grades by semester, pedagogical situation, exam convocations
        - **Admin**: Dashboard, student search, sync monitoring, graduates
        - **Groups**: Alphabetical grouping rules and exam group resolution
        - **Documents**: Public verification of printed transcripts

        ## Databases
        - Oracle (Apogee): source of truth, read by the sync scripts
        - PostgreSQL: cache served by this API
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    if db is not None:
        app.state.db = db
    app.state.document_verifier = document_verifier or SignedTokenVerifier(
        settings.document_secret, settings.jwt_algorithm
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        bind_context(request_id=uuid.uuid4().hex[:12], path=request.url.path)
        try:
            return await call_next(request)
        finally:
            clear_context()

    add_error_handlers(app)

    # Include API routes
    app.include_router(api_router, prefix="/api")

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        postgres_ok = request.app.state.db.test_connection()
        return {
            "status": "healthy" if postgres_ok else "degraded",
            "postgres": "connected" if postgres_ok else "disconnected",
            "version": __version__,
        }

    return app


app = create_app()
