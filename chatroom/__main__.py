from .config import settings


def main() -> None:  # pragma: no cover
    import uvicorn

    uvicorn.run("chatroom.main:app", host=settings.HOST, port=settings.PORT, reload=False)


if __name__ == "__main__":  # pragma: no cover
    main()
