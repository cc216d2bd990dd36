import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ✅ Import All API Routes
from resumeai.api.routes import auth, health, ledger_ws, onboarding, profile, resumes, subscriptions
from resumeai.core.config import CORS_ORIGINS, LOG_LEVEL, RUN_MIGRATIONS
from resumeai.core.errors import ResumeAIError
from resumeai.core.logging_config import setup_logging

logger = logging.getLogger(__name__)


# ============================================
# ✅ STARTUP: LOGGING + SCHEMA
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(log_level=LOG_LEVEL)
    if RUN_MIGRATIONS:
        from resumeai.db.migrate import run_migrations
        run_migrations()
    else:
        from resumeai.db.init_db import init_db
        init_db()
    logger.info("ResumeAI API started")
    yield


# ============================================
# ✅ FASTAPI APP INIT
# ============================================

app = FastAPI(title="ResumeAI", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["Authorization", "Content-Type"],
)


# ============================================
# ✅ DOMAIN ERRORS -> JSON
# ============================================

@app.exception_handler(ResumeAIError)
async def resumeai_error_handler(request: Request, exc: ResumeAIError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ============================================
# ✅ REGISTER ALL ROUTERS
# ============================================

app.include_router(auth.router)
app.include_router(profile.router)
app.include_router(onboarding.router)
app.include_router(subscriptions.router)
app.include_router(resumes.router)
app.include_router(health.router)
app.include_router(ledger_ws.router)


@app.get("/")
def root():
    return {"status": "ResumeAI API running"}
