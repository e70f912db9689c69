"""
Application settings using Pydantic.

Provides environment-based configuration loading with STACKWEAVE_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # AWS defaults used when a resource carries no SDK config
    aws_region: str = "us-east-1"
    aws_profile: str | None = None

    # Configuration section used for whole-resource output bindings
    default_config_section: str = "AWS:Resources"

    # CDK synthesis
    cdk_command: str = "cdk"
    cdk_output_dir: str = "cdk.out"

    # CloudFormation polling
    stack_poll_interval: float = 5.0
    stack_timeout: float = 1800.0
    stack_capabilities: list[str] = [
        "CAPABILITY_IAM",
        "CAPABILITY_NAMED_IAM",
        "CAPABILITY_AUTO_EXPAND",
    ]

    # ElastiCache polling
    cache_poll_interval: float = 10.0
    cache_timeout: float = 1200.0

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "STACKWEAVE_"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
