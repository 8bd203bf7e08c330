from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import asyncio
import logging

from matrix_ai.auth.routes import router as auth_router
from matrix_ai.config.settings import settings
from matrix_ai.core.errors import MatrixError
from matrix_ai.core.logging_config import configure_logging
from matrix_ai.core.redis_client import close_redis_pool, ping_redis
from matrix_ai.db.session import init_db
from matrix_ai.events.routes import router as events_router
from matrix_ai.nlp.core.classifier import text_classifier
from matrix_ai.nlp.routes import router as nlp_router

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

# Warmup progress, served at /initialization-status
initialization_status = {
    "classifier": {"status": "not_started", "details": {}},
}


async def initialize_classifier_background():
    """Load (or bootstrap) the text classifier off the event loop."""
    initialization_status["classifier"]["status"] = "initializing"
    logger.info("Classifier initialization started in background...")
    try:
        await asyncio.to_thread(text_classifier.ensure_loaded)
    except Exception as e:
        initialization_status["classifier"]["status"] = "failed"
        initialization_status["classifier"]["details"] = {"error": str(e)}
        logger.error(f"Classifier initialization failed: {e}")
        return

    initialization_status["classifier"]["status"] = "ready"
    initialization_status["classifier"]["details"] = {
        "vocabulary_size": text_classifier.vocabulary_size,
        "categories": len(text_classifier.categories),
    }
    logger.info(f"Classifier ready ({text_classifier.vocabulary_size} tokens in vocabulary)")


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    logger.info(f"Matrix AI {VERSION} starting ({settings.ENVIRONMENT})")

    init_db()

    await ping_redis()

    warmup = asyncio.create_task(initialize_classifier_background())

    yield

    if not warmup.done():
        warmup.cancel()
    await close_redis_pool()
    logger.info("Matrix AI stopped.")


async def matrix_error_handler(request: Request, exc: MatrixError):
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message},
        headers=headers,
    )

async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    message = "Internal server error" if settings.is_production else str(exc)
    return JSONResponse(status_code=500, content={"success": False, "error": message})


def create_app() -> FastAPI:
    app = FastAPI(title="Matrix AI", version=VERSION, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(MatrixError, matrix_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(auth_router, prefix="/auth", tags=["Auth"])
    app.include_router(events_router, prefix="/events", tags=["Events"])
    app.include_router(nlp_router, tags=["Text Analysis"])

    @app.get("/initialization-status")
    def get_initialization_status():
        return {"components": initialization_status}

    @app.get("/health")
    def health():
        return {"status": "ok", "version": VERSION, "component": "Matrix AI"}

    return app


app = create_app()
