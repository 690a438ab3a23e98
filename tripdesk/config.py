"""Configuration management for Tripdesk."""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Application configuration."""

    # Application Settings
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./tripdesk.db")

    # Frontend (Vite dev server by default). The OAuth callback redirects here.
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:5173")
    CORS_ORIGINS: str = os.getenv(
        "CORS_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
    )

    # Google OAuth
    GOOGLE_CLIENT_ID: str = os.getenv("GOOGLE_CLIENT_ID", "")
    GOOGLE_CLIENT_SECRET: str = os.getenv("GOOGLE_CLIENT_SECRET", "")
    GOOGLE_CALLBACK_URL: str = os.getenv("GOOGLE_CALLBACK_URL", "http://localhost:3000/auth/google/callback")

    # Session tokens
    JWT_SECRET: str = os.getenv("JWT_SECRET", "change-me-in-production")
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_EXPIRES_HOURS: int = int(os.getenv("JWT_EXPIRES_HOURS", "24"))
    SESSION_COOKIE_NAME: str = os.getenv("SESSION_COOKIE_NAME", "jwt")
    # Browsers drop Secure cookies over plain http, so this stays off for local dev.
    COOKIE_SECURE: bool = os.getenv("COOKIE_SECURE", "False").lower() == "true"

    # Calendly
    # A personal access token (starts with "cal_") used when a request does not carry its own.
    CALENDLY_ACCESS_TOKEN: str = os.getenv("CALENDLY_ACCESS_TOKEN", "")
    CALENDLY_CLIENT_ID: str = os.getenv("CALENDLY_CLIENT_ID", "")
    CALENDLY_CLIENT_SECRET: str = os.getenv("CALENDLY_CLIENT_SECRET", "")
    CALENDLY_REDIRECT_URL: str = os.getenv("CALENDLY_REDIRECT_URL", "")
    CALENDLY_API_URL: str = os.getenv("CALENDLY_API_URL", "https://api.calendly.com")

    # Outbound HTTP
    HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

    @classmethod
    def has_google_oauth(cls) -> bool:
        """Check if Google OAuth credentials are configured."""
        return bool(cls.GOOGLE_CLIENT_ID and cls.GOOGLE_CLIENT_SECRET)

    @classmethod
    def has_calendly_token(cls) -> bool:
        """Check if a server-side Calendly access token is configured."""
        return bool(cls.CALENDLY_ACCESS_TOKEN)

    @classmethod
    def has_calendly_oauth(cls) -> bool:
        """Check if the Calendly OAuth app is fully configured."""
        return all([
            cls.CALENDLY_CLIENT_ID,
            cls.CALENDLY_CLIENT_SECRET,
            cls.CALENDLY_REDIRECT_URL,
        ])

    @classmethod
    def cors_origins_list(cls) -> list[str]:
        """Parse CORS origins into a list."""
        return [origin.strip() for origin in cls.CORS_ORIGINS.split(",") if origin.strip()]


# Create a global config instance
config = Config()
