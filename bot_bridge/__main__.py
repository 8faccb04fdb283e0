import uvicorn

from bot_bridge.config import settings


def main() -> None:
    # create_app installs JSON logging, so plain `uvicorn --factory` gets it too
    uvicorn.run(
        "bot_bridge.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
