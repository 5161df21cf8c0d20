import logging

import uvicorn

from availability_engine.config import get_settings


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def main() -> None:
    """Run the booking panel WebSocket server with uvicorn."""
    settings = get_settings()
    _setup_logging(settings.log_level)
    uvicorn.run(
        "availability_engine.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
