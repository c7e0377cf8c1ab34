"""FastAPI application entry point."""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy import text

from filedrop.config import settings
from filedrop.database import async_session, engine, get_db
from filedrop.models import Base
from filedrop.services.errors import FileDropError, NotFoundError
from filedrop.services.file_storage import file_storage
from filedrop.services.reaper import ExpiryReaper


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup, own the expiry reaper for the app's lifetime."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    reaper = ExpiryReaper(async_session, file_storage, settings.REAPER_INTERVAL_SECONDS)
    app.state.reaper = reaper
    reaper.start()

    yield

    # Cleanup
    await reaper.stop()
    await engine.dispose()


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(FileDropError)
    async def _file_drop_error_handler(_request: Request, exc: FileDropError) -> JSONResponse:
        key = "error" if isinstance(exc, NotFoundError) else "message"
        return JSONResponse(status_code=exc.status_code, content={key: exc.message})


app = FastAPI(
    title="FileDrop API",
    version="1.0.0",
    description="Upload file batches, download them singly or zipped; files expire after a retention window.",
    lifespan=lifespan,
)

# CORS
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)


@app.get("/", response_class=PlainTextResponse)
async def index():
    return "Welcome to the File Sharing App!"


@app.get("/api/health")
async def health_check():
    """Verify API and database connectivity."""
    try:
        async for db in get_db():
            await db.execute(text("SELECT 1"))
            return {"status": "ok", "database": "connected"}
    except Exception as e:
        return {"status": "error", "database": str(e)}


# Register routers
from filedrop.routes.uploads import router as uploads_router
app.include_router(uploads_router)
