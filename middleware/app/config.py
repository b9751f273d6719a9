"""
Application Configuration Management

Loads configuration from environment variables and AWS Secrets Manager.
The financial type and membership tables are configuration data and can be
overridden with JSON-encoded environment variables.
"""

import json
import os
from functools import lru_cache
from typing import Dict, List, Optional, Union

import boto3
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

USE_CUSTOM_FIELD = "use_custom_field"

DEFAULT_LOCAL_AREA_FINANCIAL_TYPES: Dict[str, int] = {
    "MKP USA": 49,
    "Central Plains": 18,
    "Chicago": 19,
    "Colorado": 20,
    "Florida": 21,
    "Greater Carolinas": 23,
    "Hawaii": 25,
    "Heartland": 139,
    "Intermountain": 28,
    "Metro NY Tri-State": 36,
    "Mid Atlantic": 24,
    "Mid America": 27,
    "New England": 34,
    "Northern California": 40,
    "Northwest": 41,
    "Philadelphia": 42,
    "Southern California": 31,
    "South Central": 51,
    "South East": 22,
    "Southwest": 17,
    "St. Louis": 45,
    "Upstate New York": 46,
    "Wisconsin": 48,
}


class Settings(BaseSettings):
    """Application settings with validation"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = Field(default="development", description="Environment name")

    # Application
    app_name: str = Field(default="Givebutter-CiviCRM Middleware")
    app_version: str = Field(default="1.0.0")
    log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)

    # Givebutter
    givebutter_webhook_secret: Optional[str] = Field(
        default=None, description="Shared secret used to sign webhooks"
    )
    givebutter_api_key: Optional[str] = Field(
        default=None, description="Givebutter API key for plan lookups"
    )
    givebutter_api_base_url: str = Field(default="https://api.givebutter.com/v1")
    allow_unsigned_webhooks: bool = Field(
        default=True, description="Accept webhooks that carry no signature header"
    )

    # CiviCRM
    civicrm_base_url: Optional[str] = Field(default=None, description="CiviCRM site URL")
    civicrm_site_key: Optional[str] = Field(default=None, description="CiviCRM site key")
    civicrm_api_key: Optional[str] = Field(default=None, description="CiviCRM user API key")
    civicrm_rest_path: str = Field(default="/sites/all/modules/civicrm/extern/rest.php")
    http_timeout: float = Field(default=30.0)

    # Local area / financial type mapping
    local_area_custom_field: str = Field(default="custom_820")
    local_area_field_title: str = Field(default="Local Area")
    local_area_field_id: int = Field(default=64260)
    default_financial_type_id: int = Field(default=49)
    local_area_financial_types: Dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_LOCAL_AREA_FINANCIAL_TYPES)
    )
    campaign_financial_types: Dict[str, Union[int, str]] = Field(
        default_factory=lambda: {"195519": USE_CUSTOM_FIELD}
    )

    # Contribution
    contribution_status_id: int = Field(default=1, description="Completed")
    payment_instrument_id: int = Field(default=1)
    amount_in_minor_units: bool = Field(
        default=False, description="Divide incoming amounts by 100"
    )

    # Membership
    membership_enabled: bool = Field(default=True)
    membership_type_ids: Dict[str, int] = Field(
        default_factory=lambda: {
            "annual_renewing": 1,
            "monthly_renewing": 2,
            "annual_non_renewing": 3,
        }
    )
    membership_status_id: int = Field(default=2, description="Current")

    # CORS
    cors_origins: List[str] = Field(default=["http://localhost:3000"])
    cors_allow_credentials: bool = Field(default=True)
    cors_allow_methods: List[str] = Field(default=["GET", "POST"])
    cors_allow_headers: List[str] = Field(default=["*"])

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v_upper

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment"""
        valid_envs = ["development", "test", "staging", "production"]
        v_lower = v.lower()
        if v_lower not in valid_envs:
            raise ValueError(f"Environment must be one of {valid_envs}")
        return v_lower

    @field_validator("campaign_financial_types", mode="before")
    @classmethod
    def normalize_campaign_keys(cls, v):
        """Campaign ids arrive as numbers or strings; key the table by string"""
        if isinstance(v, dict):
            return {str(key): value for key, value in v.items()}
        return v

    @field_validator("civicrm_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        return v.rstrip("/") if v else v

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.environment == "development"

    @property
    def is_lambda(self) -> bool:
        """Check if running in AWS Lambda environment"""
        return bool(os.getenv("AWS_LAMBDA_FUNCTION_NAME"))

    @property
    def civicrm_rest_url(self) -> str:
        """Get the CiviCRM APIv3 REST endpoint"""
        return f"{self.civicrm_base_url or ''}{self.civicrm_rest_path}"

    def secrets_present(self) -> Dict[str, bool]:
        """Report which secrets are configured without exposing their values"""
        return {
            "has_givebutter_secret": bool(self.givebutter_webhook_secret),
            "has_givebutter_api_key": bool(self.givebutter_api_key),
            "has_civicrm_url": bool(self.civicrm_base_url),
            "has_site_key": bool(self.civicrm_site_key),
            "has_api_key": bool(self.civicrm_api_key),
        }

    def missing_secrets(self) -> List[str]:
        """Names of unset configuration values the pipeline needs"""
        return [name for name, present in self.secrets_present().items() if not present]


def _fetch_secret_by_arn(arn: str, region: str) -> str:
    """
    Fetch a secret value from AWS Secrets Manager using ARN.

    Args:
        arn: The ARN of the secret
        region: AWS region

    Returns:
        The secret value as a string
    """
    try:
        client = boto3.client("secretsmanager", region_name=region)
        response = client.get_secret_value(SecretId=arn)
        return response.get("SecretString", "")
    except Exception as e:
        raise RuntimeError(f"Failed to retrieve secret from ARN {arn}: {e}")


def _inject_lambda_secrets() -> None:
    """
    Resolve *_ARN environment variables into their plain counterparts.

    GIVEBUTTER_WEBHOOK_SECRET_ARN and GIVEBUTTER_API_KEY_ARN hold plain strings.
    CIVICRM_CREDENTIALS_ARN holds a JSON document with site_key, api_key
    and optionally base_url.
    """
    region = os.getenv("AWS_REGION", "us-east-1")

    plain_secrets = {
        "GIVEBUTTER_WEBHOOK_SECRET": os.getenv("GIVEBUTTER_WEBHOOK_SECRET_ARN"),
        "GIVEBUTTER_API_KEY": os.getenv("GIVEBUTTER_API_KEY_ARN"),
    }
    for env_name, arn in plain_secrets.items():
        if arn and not os.getenv(env_name):
            os.environ[env_name] = _fetch_secret_by_arn(arn, region)

    civicrm_arn = os.getenv("CIVICRM_CREDENTIALS_ARN")
    if civicrm_arn:
        civicrm_secrets = json.loads(_fetch_secret_by_arn(civicrm_arn, region))
        for key in ("site_key", "api_key", "base_url"):
            env_name = f"CIVICRM_{key.upper()}"
            if civicrm_secrets.get(key) and not os.getenv(env_name):
                os.environ[env_name] = civicrm_secrets[key]


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    In Lambda, secrets referenced by ARN environment variables are fetched
    from Secrets Manager and injected as env vars before Settings init.
    """
    if os.getenv("AWS_LAMBDA_FUNCTION_NAME"):
        try:
            _inject_lambda_secrets()
        except Exception as e:
            # Settings still load; /health reports what is missing
            print(f"Error loading secrets from Secrets Manager: {e}")

    return Settings()


# Export singleton instance
settings = get_settings()
