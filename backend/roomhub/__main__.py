"""Run the chat server: ``python -m roomhub``."""
import uvicorn

from roomhub.config import get_config


def main() -> None:
    config = get_config()
    uvicorn.run(
        "roomhub.main:app",
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
    )


if __name__ == "__main__":
    main()
