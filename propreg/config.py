"""
Configuration module for the property registry.

Centralizes all configuration with environment variable support
and validation.
"""

import os
from typing import List

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("PROPREG_ENV", "dev")  # dev|stage|prod

# Storage
DB_PATH = os.getenv("PROPREG_DB_PATH", "data/propreg.db")

# Administrator identity (hex Ed25519 public key), captured once at startup
ADMIN_IDENTITY = os.getenv("PROPREG_ADMIN_IDENTITY", "")

# Logging
LOG_LEVEL = os.getenv("PROPREG_LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("PROPREG_LOG_JSON", "true").lower() in ("1", "true", "yes")
LOG_FILE = os.getenv("PROPREG_LOG_FILE", "")

# Rate limits (requests per minute, per identity)
READ_RPM = int(os.getenv("READ_RPM", "600"))
WRITE_RPM = int(os.getenv("WRITE_RPM", "120"))

# Request signing
SIGNATURE_MAX_SKEW_SECONDS = int(os.getenv("SIGNATURE_MAX_SKEW_SECONDS", "300"))
NONCE_TTL_SECONDS = int(os.getenv("NONCE_TTL_SECONDS", "900"))


# ============================================================
# Validation
# ============================================================

def validate_config() -> List[str]:
    """
    Validate configuration and return any issues.
    An empty list means the configuration is usable.
    """
    issues = []

    if ENV not in ("dev", "stage", "prod"):
        issues.append(f"PROPREG_ENV must be dev|stage|prod, got {ENV!r}")

    if not ADMIN_IDENTITY:
        issues.append("PROPREG_ADMIN_IDENTITY is required")

    if SIGNATURE_MAX_SKEW_SECONDS <= 0:
        issues.append("SIGNATURE_MAX_SKEW_SECONDS must be positive")

    if NONCE_TTL_SECONDS < SIGNATURE_MAX_SKEW_SECONDS:
        issues.append("NONCE_TTL_SECONDS must be at least SIGNATURE_MAX_SKEW_SECONDS")

    return issues


# ============================================================
# Feature Flags
# ============================================================

def is_production() -> bool:
    """Check if running in production mode."""
    return ENV == "prod"


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("PROPREG_DEBUG", "").lower() in ("1", "true", "yes")
