from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ═══════════════════════════════════════════════════
    # Application
    # ═══════════════════════════════════════════════════
    APP_NAME: str = "microlobby"
    VERSION: str = "0.1.0"

    # ═══════════════════════════════════════════════════
    # Logging
    # ═══════════════════════════════════════════════════
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    VERBOSE_LOGGING: bool = True  # default for MicroLobby(verbose_logging=None)

    # ═══════════════════════════════════════════════════
    # Lobby Rules
    # ═══════════════════════════════════════════════════
    SUPPORTED_REGIONS: list[str] = ["us", "eu", "usw", "kr"]
    CHAT_DEDUPE_WINDOW_MS: int = 1000  # identical text inside this window is dropped

    class Config:
        env_file = ".env"
        env_prefix = "MICROLOBBY_"
        extra = "ignore"


_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Singleton Settings instance.

    Every MicroLobby reads its defaults from here, so tests can
    monkeypatch env vars and call reset_settings() to pick them up.
    """
    global _settings
    if not _settings:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    global _settings
    _settings = None
