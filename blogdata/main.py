import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from blogdata.client import DataClient
from blogdata.config import settings
from blogdata.exceptions import BlogError
from blogdata.middleware import DiagnosticsMiddleware
from blogdata.routers import metrics, pages, posts, users

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Tests install their own client before the app starts.
    owns_client = getattr(app.state, "client", None) is None
    if owns_client:
        app.state.client = DataClient.from_settings(settings)
        await app.state.client.connect()
    yield
    # Shutdown
    if owns_client:
        await app.state.client.dispose()
        app.state.client = None


app = FastAPI(
    title="Blog Data API",
    description="Users, posts and comments over an async ORM with a Redis query cache",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(BlogError)
async def blog_error_handler(request: Request, exc: BlogError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s %s", request.method, request.url.path, exc.message, exc.context)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.kind.value, "message": exc.message},
    )


# Middleware
app.add_middleware(DiagnosticsMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(pages.router)
app.include_router(users.router)
app.include_router(posts.router)
app.include_router(metrics.router)

@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
