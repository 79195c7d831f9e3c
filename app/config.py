"""
Configuration management for the Affiliate Link Pipeline.
Handles environment variables and application settings.
"""
import os
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()


def _split_hosts(raw: str) -> List[str]:
    return [h.strip().lower() for h in raw.split(",") if h.strip()]


class Config:
    """Application configuration loaded from environment variables."""

    # Server settings
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "json")  # json or console

    # Outbound fetch settings
    REQUEST_TIMEOUT: float = float(os.getenv("REQUEST_TIMEOUT", "15"))
    MAX_REDIRECTS: int = int(os.getenv("MAX_REDIRECTS", "5"))
    BOT_RETRY_DELAY: float = float(os.getenv("BOT_RETRY_DELAY", "3"))
    SHORT_LINK_HOSTS: List[str] = _split_hosts(
        os.getenv("SHORT_LINK_HOSTS", "amzn.to,amzn.in,amzn.eu,amzn.asia,a.co")
    )

    # Affiliate settings
    AFFILIATE_TAG: str = os.getenv("AFFILIATE_TAG", "")
    AFFILIATE_TAG_PARAM: str = os.getenv("AFFILIATE_TAG_PARAM", "tag")
    MAX_BULK_URLS: int = int(os.getenv("MAX_BULK_URLS", "10"))

    # Link store (unset = in-memory only)
    LINKS_DATA_FILE: Optional[str] = os.getenv("LINKS_DATA_FILE")

    # Text rewrite via Claude (optional)
    # Loaded from environment variables, NEVER hardcoded
    AI_REWRITE_ENABLED: bool = os.getenv("AI_REWRITE_ENABLED", "false").lower() == "true"
    CLAUDE_API_KEY: Optional[str] = os.getenv("CLAUDE_API_KEY")
    CLAUDE_MODEL: str = os.getenv("CLAUDE_MODEL", "claude-3-5-haiku-20241022")
    REWRITE_TIMEOUT: float = float(os.getenv("REWRITE_TIMEOUT", "20"))

    @classmethod
    def is_rewrite_configured(cls) -> bool:
        """
        Check if the text rewrite collaborator can be built.

        Requires ALL of:
        - AI_REWRITE_ENABLED=true
        - CLAUDE_API_KEY
        """
        return bool(cls.AI_REWRITE_ENABLED and cls.CLAUDE_API_KEY)

    @classmethod
    def get_missing_rewrite_vars(cls) -> list:
        """Return list of missing text rewrite environment variables."""
        missing = []
        if not cls.AI_REWRITE_ENABLED:
            missing.append("AI_REWRITE_ENABLED")
        if not cls.CLAUDE_API_KEY:
            missing.append("CLAUDE_API_KEY")
        return missing


config = Config()
