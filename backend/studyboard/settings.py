from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	# Seed teacher login for local development
	seed_username: str | None = Field(default=None, validation_alias="SEED_USERNAME")
	seed_password_plain: str | None = Field(default=None, validation_alias="SEED_PASSWORD")

	# IANA zone used to decide which calendar day "today" is
	local_timezone: str = Field(default="UTC", validation_alias="LOCAL_TIMEZONE")
	# max-age for cacheable stats and listing responses
	stats_cache_seconds: int = Field(default=60, validation_alias="STATS_CACHE_SECONDS")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
