import logging
import sys

from fastapi import FastAPI

from gitshare.apps.api import router
from gitshare.config.settings import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def _configure_logging(level_name: str, debug: bool) -> None:
    """Configure application logging."""
    level = logging.DEBUG if debug else getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("git.cmd").setLevel(logging.INFO if debug else logging.WARNING)


_configure_logging(settings.LOG_LEVEL, settings.DEBUG)

app = FastAPI(
    title="GitShare Sync API",
    version="0.1.0",
    description="Synchronizes a shared folder with a git remote",
)

app.include_router(router.router, prefix="/api")

logger.info("Serving %s (debug=%s)", settings.REPOSITORY_PATH, settings.DEBUG)


@app.get("/health")
async def health_check():
    """
    Simple health check endpoint to confirm the API is running.
    """
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
