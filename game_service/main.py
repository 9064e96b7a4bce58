import logging
import sys
import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from sqlalchemy.exc import SQLAlchemyError

from game_service.config import Settings, load_settings
from game_service.db import create_db_engine, create_session_factory, init_db
from game_service.errors import InternalError, register_exception_handlers
from game_service.routes import auth, scores
from game_service.utils import TokenService

logger = logging.getLogger(__name__)

# --- Métricas Prometheus ---
REQUEST_COUNT = Counter(
    "game_requests_total",
    "Total requests processed by the Math Game API",
    ["method", "endpoint", "status_code"]
)
REQUEST_LATENCY = Histogram(
    "game_request_latency_seconds",
    "Request latency in seconds for the Math Game API",
    ["endpoint"]
)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Construye la aplicación: motor de BD, fábrica de sesiones y servicio de tokens
    quedan en app.state y se comparten (solo lectura) entre peticiones.
    """
    settings = settings or load_settings()

    engine = create_db_engine(settings)
    init_db(engine)

    app = FastAPI(
        title="Math Game API",
        description="Handles player registration, authentication, score submission and the leaderboard.",
        version="1.0.0"
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.token_service = TokenService.from_settings(settings)

    register_exception_handlers(app)

    # --- Middleware para Métricas ---
    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start_time = time.time()
        response = None
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as exc:
            logger.error(f"Unhandled exception during request processing: {exc}", exc_info=True)
            response = JSONResponse(status_code=500, content=InternalError().to_dict())
        finally:
            latency = time.time() - start_time
            endpoint = request.url.path
            final_status_code = getattr(response, 'status_code', status_code)

            REQUEST_LATENCY.labels(endpoint=endpoint).observe(latency)
            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=final_status_code
            ).inc()

        return response

    # --- Endpoints de Salud y Métricas ---
    @app.get("/", response_class=PlainTextResponse, tags=["Monitoring"])
    def index():
        """Liveness message."""
        return "Math Game API is running!"

    @app.get("/metrics", tags=["Monitoring"])
    def metrics():
        """Exposes application metrics for Prometheus."""
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/health", tags=["Monitoring"])
    def health_check():
        """Performs a basic health check of the service."""
        return {"status": "ok", "service": "game_service"}

    app.include_router(auth.router)
    app.include_router(scores.router)

    return app


def main() -> None:
    """Punto de entrada: sin configuración válida o sin base de datos el proceso termina con código 1."""
    import uvicorn

    try:
        settings = load_settings()
    except EnvironmentError as e:
        configure_logging()
        logger.critical(f"Cannot start Math Game API: {e}")
        sys.exit(1)

    configure_logging(settings.log_level)
    try:
        app = create_app(settings)
    except SQLAlchemyError as e:
        logger.critical(f"Cannot start Math Game API, database unavailable: {e}")
        sys.exit(1)

    logger.info(f"Server running on http://{settings.host}:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
