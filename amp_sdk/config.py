from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from amp_sdk import constants


class AMPSettings(BaseSettings):
    """SDK configuration. Every field can come from an ``AMP_*`` environment variable."""

    # Credentials
    api_key: str = ''
    account_id: str | None = None
    project_id: str | None = None

    # Endpoint
    base_url: str = constants.DEFAULT_BASE_URL
    ingest_endpoint: str = constants.INGEST_ENDPOINT

    # Batching (times in milliseconds)
    batch_size: int = Field(default=constants.DEFAULT_BATCH_SIZE, ge=1)
    batch_timeout: int = Field(default=constants.DEFAULT_BATCH_TIMEOUT_MS, ge=0)
    max_retries: int = Field(default=constants.DEFAULT_MAX_RETRIES, ge=0)
    retry_base_delay: int = Field(default=constants.DEFAULT_RETRY_BASE_DELAY_MS, ge=0)
    timeout: int = Field(default=constants.DEFAULT_TIMEOUT_MS, gt=0)

    # Behaviour
    disable_auto_flush: bool = False
    debug: bool = False
    print_traces: bool = False

    model_config = SettingsConfigDict(env_file='.env', env_prefix='AMP_', extra='ignore')

    @field_validator('base_url')
    @classmethod
    def _strip_trailing_slashes(cls, value: str) -> str:
        return value.rstrip('/')

    @field_validator('ingest_endpoint')
    @classmethod
    def _leading_slash(cls, value: str) -> str:
        return value if value.startswith('/') else f'/{value}'

    @property
    def ingest_url(self) -> str:
        return f'{self.base_url}{self.ingest_endpoint}'

    @property
    def transcript_url(self) -> str:
        return f'{self.base_url}{constants.TRANSCRIPT_ENDPOINT}'

    @property
    def health_url(self) -> str:
        return f'{self.base_url}{constants.HEALTH_ENDPOINT}'

    def auth_headers(self) -> dict[str, str]:
        return {constants.API_KEY_HEADER: self.api_key}
