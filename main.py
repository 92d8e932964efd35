"""
Framework Analyzer Service - Main Application

A FastAPI backend that scrapes a website with Playwright, evaluates it
against several business frameworks in parallel with Claude AI (Anthropic),
tracks every step of the run in Redis, and produces a strategic report plus
manual-retry documents for any framework that could not be evaluated.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from config import settings
from analyzer.pipeline import close_orchestrator
from api.routes import router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

# Initialize FastAPI app
app = FastAPI(title="Framework Analyzer Service")

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include all routes from api/routes.py
app.include_router(router)


@app.on_event("shutdown")
async def shutdown_event():
    """Cancel in-flight analyses and release the Redis pool"""
    await close_orchestrator()
    if settings.RUN_STORE == "redis":
        from core.cache import close_redis_client

        close_redis_client()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, timeout_keep_alive=60, workers=settings.API_WORKERS)
