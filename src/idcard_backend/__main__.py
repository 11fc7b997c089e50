"""Start the API server on the configured host and port."""

import uvicorn

from .configuration import get_settings


def main() -> None:
    settings = get_settings()
    config = uvicorn.Config(
        "idcard_backend.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
    server = uvicorn.Server(config)
    server.run()


if __name__ == "__main__":
    main()
