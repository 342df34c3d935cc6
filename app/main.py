from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from app.core import config
from app.core.errors import add_exception_handlers
from app.routes import auth, directory, messages, profiles
from app.services.local_storage import LocalStorage
from app.services.session_store import SessionStore
from app.services.supabase import create_backend

logging.basicConfig(level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Backend and session store may be provided up front (tests, scripts)
    if getattr(app.state, "backend", None) is None:
        app.state.backend = await create_backend()
    if getattr(app.state, "session_store", None) is None:
        store = SessionStore(
            app.state.backend,
            LocalStorage(config.SESSION_STORE_PATH),
            allowlist=config.SIGNUP_ALLOWLIST,
        )
        await store.restore()
        app.state.session_store = store
    logger.info("Community API started")
    yield
    logger.info("Community API stopped")


app = FastAPI(
    redirect_slashes=False,
    title="Community API",
    description="Session, profiles, member directory and live chat feed for the community app",
    version="1.0.0",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "Messages",
            "description": "Chat history, sending, and the live feed socket",
        },
    ],
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

add_exception_handlers(app)

# Include routers
app.include_router(auth.router, prefix="/auth")
app.include_router(profiles.router, prefix="/profiles")
app.include_router(directory.router, prefix="/directory")
app.include_router(messages.router, prefix="/messages", tags=["Messages"])


@app.get("/health")
def health():
    return {"status": "ok"}
