"""Main entry point for Gatekeeper."""

import uvicorn

from gatekeeper.config import get_settings


def main() -> None:
    """Run the Gatekeeper server."""
    settings = get_settings()

    uvicorn.run(
        "gatekeeper.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=False,  # We handle logging ourselves
    )


if __name__ == "__main__":
    main()
