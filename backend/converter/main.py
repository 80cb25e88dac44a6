"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from converter.api.routes import router
from converter.config import CORS_ORIGINS, HOST, PORT, logger as config_logger
from converter.conversion.service import get_conversion_service

logging.getLogger("uvicorn").setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    svc = get_conversion_service()
    types = svc.supported_types()
    config_logger.info("Converter API started (output types: %s)", ", ".join(types))
    yield
    # Items and outputs only live in memory; drop them with the process.
    dropped = len(svc.list_items())
    svc.clear()
    config_logger.info("Converter API shutting down, discarded %d item(s)", dropped)


def create_app() -> FastAPI:
    application = FastAPI(
        title="Image Converter API",
        description="Convert, resize and recomposite images in memory with bounded batch concurrency.",
        version="1.0.0",
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS or ["*"],
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )
    application.include_router(router)
    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("converter.main:app", host=HOST, port=PORT, reload=True)
