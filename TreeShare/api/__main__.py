import uvicorn

from TreeShare.core.config import get_settings


def main():
    settings = get_settings()
    uvicorn.run(
        "TreeShare.api.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=False,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
