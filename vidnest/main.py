import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from pymongo.errors import PyMongoError
from slowapi.middleware import SlowAPIMiddleware

from vidnest import database, storage
from vidnest.config import settings, validate_environment
from vidnest.rate_limit import limiter
from vidnest.responses import api_response, register_error_handlers
from vidnest.routers import (
    comments,
    dashboard,
    likes,
    notifications,
    playlists,
    search,
    subscriptions,
    tweets,
    users,
    videos,
)

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    validate_environment()
    if database.db is None:
        database.init_db()
    try:
        database.ensure_indexes()
    except PyMongoError:
        logger.exception("Could not create database indexes")
    logger.info("VidNest API started (%s, storage: %s)", settings.environment, storage.backend_name())
    yield
    if database.client is not None:
        database.client.close()


app = FastAPI(title="VidNest API", lifespan=lifespan)

app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)
register_error_handlers(app)

for module in (users, videos, tweets, comments, likes, subscriptions, playlists, notifications, search, dashboard):
    app.include_router(module.router, prefix=API_PREFIX)


@app.get("/")
def read_root():
    return {"message": "VidNest backend running"}


@app.get(f"{API_PREFIX}/health")
def health_check():
    status = {
        "backend": "running",
        "database": "not initialized",
        "database_name": None,
        "storage": storage.backend_name(),
        "collections": [],
    }
    if database.db is not None:
        status["database_name"] = database.db.name
        try:
            database.ping()
            status["collections"] = sorted(database.db.list_collection_names())[:10]
            status["database"] = "connected"
        except PyMongoError as e:
            logger.warning("Health check could not reach the database: %s", e)
            status["database"] = "unreachable"
    return api_response(status, "Health check")


@app.get("/stream/{filename}")
def stream_file(filename: str):
    """Serve a locally stored upload."""
    path = storage.local_file_path(filename)
    if not path:
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port)
