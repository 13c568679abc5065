"""Configuration management for the FlowReader sync client.

All configuration comes from environment variables. Uses pydantic-settings
for validation so a missing server URL or a malformed number fails at
startup rather than on the first request.
"""

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    """Client configuration loaded from environment variables."""

    flowreader_url: str = Field(alias="FLOWREADER_URL")
    flowreader_api_path: str = Field(default="/api/v1", alias="FLOWREADER_API_PATH")
    flowreader_email: str | None = Field(default=None, alias="FLOWREADER_EMAIL")
    flowreader_password: SecretStr | None = Field(default=None, alias="FLOWREADER_PASSWORD")
    flowreader_session: SecretStr | None = Field(default=None, alias="FLOWREADER_SESSION")
    page_size: int = Field(default=50, gt=0, le=100, alias="FLOWREADER_PAGE_SIZE")
    request_timeout: float = Field(default=30.0, gt=0, alias="FLOWREADER_REQUEST_TIMEOUT")
    read_retries: int = Field(default=2, ge=0, alias="FLOWREADER_READ_RETRIES")
    reconnect_delay: float = Field(default=5.0, ge=0, alias="FLOWREADER_RECONNECT_DELAY")
    server_host: str = Field(default="127.0.0.1", alias="MCP_SERVER_HOST")
    server_port: int = Field(default=8000, alias="MCP_SERVER_PORT")

    model_config = SettingsConfigDict(
        populate_by_name=True,
        extra="ignore",
    )

    @property
    def api_url(self) -> str:
        return self.flowreader_url.rstrip("/") + self.flowreader_api_path.rstrip("/")

    @property
    def ws_url(self) -> str:
        """Event stream URL: the API URL with its scheme swapped to ws/wss."""
        url = self.api_url
        if url.startswith("https://"):
            url = "wss://" + url[len("https://") :]
        elif url.startswith("http://"):
            url = "ws://" + url[len("http://") :]
        return f"{url}/ws"


def load_config() -> Config:
    """Load and validate config from environment. Raises on missing required vars."""
    return Config()
