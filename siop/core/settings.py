"""Provider settings loaded from environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict

RESPONSE_EXPIRES_IN_DEFAULT = 1000
REFRESH_TOKEN_TTL_DEFAULT = 2_592_000
AUTH_CODE_TTL_DEFAULT = 600
DB_POOL_SIZE_DEFAULT = 5
DB_MAX_OVERFLOW_DEFAULT = 10
DB_PORT_DEFAULT = 5432


class DatabaseSettings(BaseSettings):
    """Connection settings for the consumed-code store."""

    model_config = SettingsConfigDict(env_prefix="SIOP_DB_")

    url: str = ""
    host: str = "localhost"
    port: int = DB_PORT_DEFAULT
    user: str = "siop"
    password: str = "siop"
    database: str = "siop"
    pool_size: int = DB_POOL_SIZE_DEFAULT
    max_overflow: int = DB_MAX_OVERFLOW_DEFAULT

    @property
    def async_url(self) -> str:
        """Return the explicit URL or build an async PostgreSQL one."""
        if self.url:
            return self.url
        return (
            f"postgresql+asyncpg://{self.user}:{self.password}"
            f"@{self.host}:{self.port}/{self.database}"
        )


class SiopSettings(BaseSettings):
    """Identity, key and token-lifetime settings for the provider."""

    model_config = SettingsConfigDict(env_prefix="SIOP_")

    did: str = ""
    signing_kid: str = ""
    signing_alg: str = "ES256K"
    encrypted_private_key: str = ""
    key_encryption_key: str = ""
    response_expires_in: int = RESPONSE_EXPIRES_IN_DEFAULT
    auth_code_ttl: int = AUTH_CODE_TTL_DEFAULT
    refresh_token_ttl: int = REFRESH_TOKEN_TTL_DEFAULT
    issue_refresh_token: bool = True
    log_level: str = "info"
    log_json: bool = False
