from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# Database (plays the part of the hosted relational store)
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# Identity provider: JWTs signed with this secret identify end users
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")

	# NYCologic AI curriculum API. Unset = class import degrades to a no-op
	nycologic_api_url: str | None = Field(default=None, validation_alias="NYCOLOGIC_API_URL")
	nycologic_class_list_timeout: float = Field(default=15.0, validation_alias="NYCOLOGIC_CLASS_LIST_TIMEOUT")
	nycologic_roster_timeout: float = Field(default=10.0, validation_alias="NYCOLOGIC_ROSTER_TIMEOUT")
	# Only the first N external rosters are reconciled per import
	nycologic_roster_fanout: int = Field(default=10, validation_alias="NYCOLOGIC_ROSTER_FANOUT")

	# Fixed shared secrets for the simple webhook variants
	geoblox_api_key: str | None = Field(default=None, validation_alias="GEOBLOX_API_KEY")

	# Transactional email (Brevo)
	brevo_api_key: str | None = Field(default=None, validation_alias="BREVO_API_KEY")
	brevo_api_url: str = Field(default="https://api.brevo.com/v3/smtp/email", validation_alias="BREVO_API_URL")
	mail_sender_name: str = Field(default="NYCologic Scholar", validation_alias="MAIL_SENDER_NAME")
	mail_sender_email: str = Field(default="notifications@scholarquest.app", validation_alias="MAIL_SENDER_EMAIL")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
