from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from claimflow.core.config import get_settings
from claimflow.core.logger import setup_logger
from claimflow.api.routers import admin, approvals, chat, directory, drafts, health, mail_actions

settings = get_settings()

setup_logger(settings)

app = FastAPI(
    title=settings.app_name,
    description="Sequential approval workflow for reimbursement claims",
    version=health.VERSION,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(drafts.router, prefix="/api")
app.include_router(approvals.router, prefix="/api")
app.include_router(chat.router, prefix="/api")
app.include_router(admin.router, prefix="/api")
app.include_router(directory.router, prefix="/api")
app.include_router(mail_actions.router)
app.include_router(health.router)


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": health.VERSION,
        "docs": "/docs" if settings.debug else None,
    }
