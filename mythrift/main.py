import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mythrift.config import get_settings
from mythrift.database.connection import close_mongo_connection, connect_to_mongo
from mythrift.repositories.comment_repository import CommentRepository
from mythrift.repositories.conversation_repository import ConversationRepository
from mythrift.repositories.product_repository import ProductRepository
from mythrift.repositories.user_repository import UserRepository
from mythrift.routers.auth import router as auth_router
from mythrift.routers.chat import router as chat_router
from mythrift.routers.comments import router as comments_router
from mythrift.routers.conversations import router as conversations_router
from mythrift.routers.products import router as products_router
from mythrift.routers.users import router as users_router
from mythrift.utils.errors import AppError
from mythrift.utils.logger import setup_logging
from mythrift.utils.realtime_bus import close_bus, get_bus
from mythrift.utils.time_utils import utcnow
from mythrift.utils.websocket_manager import ConnectionManager


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):

    db = await connect_to_mongo()
    for repo in (UserRepository(db), ProductRepository(db), CommentRepository(db), ConversationRepository(db)):
        await repo.ensure_indexes()
    await app.state.gateway.start(await get_bus())
    try:
        yield
    finally:
        await app.state.gateway.close_all()
        await close_bus()
        await close_mongo_connection()


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)

    app = FastAPI(title="MyThrift marketplace API", lifespan=lifespan)
    app.state.gateway = ConnectionManager(channel=settings.realtime_channel)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["GET", "PUT", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Validation error", "details": jsonable_errors(exc)},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(products_router)
    app.include_router(comments_router)
    app.include_router(conversations_router)
    app.include_router(chat_router)

    @app.get("/", tags=["health"])
    async def root():
        return {"message": "MyThrift API is running"}

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "OK", "message": "Server is running", "timestamp": utcnow().isoformat()}

    return app


def jsonable_errors(exc: RequestValidationError):
    # ctx may hold exception objects that JSONResponse cannot encode
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


app = create_app()
