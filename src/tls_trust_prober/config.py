# config.py
# Configuration settings for the prober

import os


class Settings:
    """Prober settings"""

    APP_NAME: str = "tls-trust-prober"
    DEBUG: bool = os.getenv("DEBUG", "OFF").upper() == "ON"

    # Connect + handshake timeout for every probe, in seconds
    SOCKET_TIMEOUT: float = float(os.getenv("TLS_PROBER_SOCKET_TIMEOUT", "60"))

    # Directory the file based client identity resolver reads from
    IDENTITY_DIR: str | None = os.getenv("TLS_PROBER_IDENTITY_DIR") or None

    # Logging
    LOG_LEVEL: str = os.getenv("TLS_PROBER_LOG_LEVEL", "DEBUG" if DEBUG else "INFO").upper()
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# Global settings instance
settings = Settings()
