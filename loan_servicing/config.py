"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class ServicingConfig(BaseSettings):
    """Loan servicing back office configuration"""
    
    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    database_path: str = "loan_servicing.db"
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    api_debug: bool = False
    cors_origins: str = "*"  # Comma separated
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    
    # Business rules configuration
    default_frequency: str = "Weekly"
    default_interest_type: str = "Installment"
    overpayment_installment_no: int = 99
    
    # Reminder configuration
    reminder_lead_days: int = 3
    overdue_reminder_delay_days: int = 1
    
    # Notification configuration
    notification_channel: str = "Email"  # Email or WhatsApp
    notification_webhook_url: str = ""  # Empty = log only
    notification_timeout: float = 5.0
    smtp_host: str = ""  # Empty = emails are logged, not sent
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_sender: Optional[str] = None
    
    class Config:
        env_prefix = "LOAN_SERVICING_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = ServicingConfig()


def get_config() -> ServicingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> ServicingConfig:
    """Reload configuration from environment"""
    global config
    config = ServicingConfig()
    return config
