"""Runtime configuration loaded from environment variables."""

import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    """Storefront settings."""

    api_key: Optional[str] = Field(None, description="Florist One API key")
    api_password: Optional[str] = Field(None, description="Florist One API password")
    florist_api_base: str = Field(
        "https://www.floristone.com/api", description="Florist One REST API base URL"
    )
    storefront_api: str = Field(
        "http://localhost:8080/api", description="Base URL of the local authenticated proxy"
    )
    session_file: str = Field(
        default_factory=lambda: str(Path.home() / ".florist_session.json"),
        description="File holding the current cart session id",
    )
    authorizenet_login_id: Optional[str] = Field(
        None, description="Authorize.Net API login id used for card tokenization"
    )
    customer_ip: str = Field("127.0.0.1", description="Customer IP sent with orders")
    total_debounce: float = Field(0.5, ge=0, description="Quiet period before recomputing totals")
    request_timeout: float = Field(30.0, gt=0, description="HTTP timeout in seconds")
    log_level: str = Field("INFO", description="Logging level")
    port: int = Field(8080, description="Default port of the HTTP proxy")

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.api_password)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        values: dict[str, str] = {}
        mapping = {
            "FLORIST_API_KEY": "api_key",
            "FLORIST_API_PASSWORD": "api_password",
            "FLORIST_API_BASE": "florist_api_base",
            "FLORIST_STOREFRONT_API": "storefront_api",
            "FLORIST_SESSION_FILE": "session_file",
            "AUTHORIZENET_API_LOGIN_ID": "authorizenet_login_id",
            "FLORIST_CUSTOMER_IP": "customer_ip",
            "FLORIST_TOTAL_DEBOUNCE": "total_debounce",
            "FLORIST_REQUEST_TIMEOUT": "request_timeout",
            "FLORIST_LOG_LEVEL": "log_level",
            "PORT": "port",
        }
        for env_name, field_name in mapping.items():
            value = os.environ.get(env_name)
            if value:
                values[field_name] = value
        return cls(**values)

    def log_summary(self) -> None:
        """Log which credentials are configured without revealing them."""
        for name, value in (
            ("FLORIST_API_KEY", self.api_key),
            ("FLORIST_API_PASSWORD", self.api_password),
        ):
            if value:
                logger.info(f"  {name}: Set ({value[:3]}...)")
            else:
                logger.warning(f"  {name}: NOT SET")
        logger.info(f"  Storefront API: {self.storefront_api}")
