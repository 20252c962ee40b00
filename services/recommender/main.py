"""ASGI entrypoint for the NDC package recommender service."""

from fastapi import FastAPI

from .app import create_app
from .config import get_settings

app = create_app()


def get_app() -> FastAPI:
    """Return the FastAPI app instance."""
    return app


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "services.recommender.main:app",
        host=settings.app.host,
        port=settings.app.port,
        reload=False,
    )
