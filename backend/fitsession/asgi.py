"""Long-running server entry point: ``uvicorn fitsession.asgi:app``"""

from fitsession.config import get_settings
from fitsession.main import create_app

settings = get_settings()
app = create_app(settings)


def main() -> None:
    import uvicorn

    uvicorn.run(
        "fitsession.asgi:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS,
    )


if __name__ == "__main__":
    main()
