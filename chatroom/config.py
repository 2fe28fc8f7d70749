import os


class Settings:
    def __init__(self) -> None:
        # local SQLite file unless told otherwise
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./chatroom.db")
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

        # recipient meaning "everyone in the room"
        self.BROADCAST_NAME: str = os.getenv("BROADCAST_NAME", "Todos")

        self.SWEEP_INTERVAL_SECONDS: float = float(
            os.getenv("SWEEP_INTERVAL_SECONDS", "1")
        )
        self.INACTIVITY_THRESHOLD_SECONDS: float = float(
            os.getenv("INACTIVITY_THRESHOLD_SECONDS", "10")
        )

        self.CORS_ORIGINS: list[str] = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "*").split(",")
            if origin.strip()
        ]

        self.HOST: str = os.getenv("HOST", "0.0.0.0")
        self.PORT: int = int(os.getenv("PORT", "5000"))


settings = Settings()
