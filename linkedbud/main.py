import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from linkedbud.config import settings
from linkedbud.deps import init_db
from linkedbud.errors import LinkedbudError
from linkedbud.services import scheduler

# Routers
from linkedbud.routers import auth_linkedin, linkedin_publish, metrics, analytics, posts, articles, scheduler_api

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("linkedbud")

app = FastAPI(title="Linkedbud API", version="1.0.0")

@app.exception_handler(LinkedbudError)
def _linkedbud_error(request: Request, exc: LinkedbudError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

@app.exception_handler(RequestValidationError)
def _validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ())[1:]) or "request"
        message = f"{field}: {first.get('msg', 'invalid value')}"
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})

@app.exception_handler(Exception)
def _unhandled(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})

@app.on_event("startup")
def _startup():
    init_db()
    if settings.metrics_scheduler_enabled:
        scheduler.start()

@app.on_event("shutdown")
def _shutdown():
    scheduler.stop()

@app.get("/")
def root():
    return {"message": "Linkedbud API is running!"}

# Mount routes
app.include_router(auth_linkedin.router)      # /api/linkedin/* (oauth, status, revoke)
app.include_router(linkedin_publish.router)   # /api/linkedin/publish
app.include_router(metrics.router)            # /api/linkedin/metrics*
app.include_router(analytics.router)          # /api/analytics
app.include_router(posts.router)              # /api/posts*
app.include_router(articles.router)           # /api/scrape-article, /api/articles/rss
app.include_router(scheduler_api.router)      # /api/scheduler/*
