"""Centralized configuration for the permission arbiter."""

import os
from typing import Optional


class Config:
    """
    Arbiter configuration with environment variable overrides.

    All configuration values are centralized here with sensible defaults.
    Values can be overridden via environment variables; the engine also
    accepts explicit constructor overrides for the timing values.
    """

    @staticmethod
    def _parse_seconds(name: str, raw: str) -> float:
        """Parse a duration in seconds from an environment string."""
        try:
            return float(raw)
        except ValueError as e:
            raise ValueError(f"Invalid {name} environment variable: {e}")

    # ========================================================================
    # Group Gate
    # ========================================================================
    GROUP_COOLDOWN_SECONDS: float = _parse_seconds.__func__(
        "ARBITER_GROUP_COOLDOWN_SECONDS",
        os.getenv("ARBITER_GROUP_COOLDOWN_SECONDS", "300"),
    )  # 5 minutes
    GROUP_GRACE_PERIOD_SECONDS: float = _parse_seconds.__func__(
        "ARBITER_GROUP_GRACE_PERIOD_SECONDS",
        os.getenv("ARBITER_GROUP_GRACE_PERIOD_SECONDS", "20"),
    )
    DEFAULT_COUNTERPARTY: str = "self"

    # ========================================================================
    # Focus
    # ========================================================================
    FOCUS_QUERY_TIMEOUT: float = _parse_seconds.__func__(
        "ARBITER_FOCUS_QUERY_TIMEOUT",
        os.getenv("ARBITER_FOCUS_QUERY_TIMEOUT", "2"),
    )

    # ========================================================================
    # Audit / Logging
    # ========================================================================
    AUDIT_LOG_PATH: Optional[str] = os.getenv("ARBITER_AUDIT_LOG_PATH") or None
    AUDIT_ROTATION_BYTES: int = int(
        os.getenv("ARBITER_AUDIT_ROTATION_BYTES", str(10 * 1024 * 1024))
    )
    LOG_LEVEL: str = os.getenv("ARBITER_LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> bool:
        """
        Validate configuration consistency.

        Checks:
        - All durations are > 0
        - Audit rotation size is > 0

        Returns:
            True if validation passes

        Raises:
            ValueError: If validation fails
        """
        errors = []

        if cls.GROUP_COOLDOWN_SECONDS <= 0:
            errors.append(
                f"GROUP_COOLDOWN_SECONDS must be > 0, got {cls.GROUP_COOLDOWN_SECONDS}"
            )
        if cls.GROUP_GRACE_PERIOD_SECONDS <= 0:
            errors.append(
                "GROUP_GRACE_PERIOD_SECONDS must be > 0, "
                f"got {cls.GROUP_GRACE_PERIOD_SECONDS}"
            )
        if cls.FOCUS_QUERY_TIMEOUT <= 0:
            errors.append(
                f"FOCUS_QUERY_TIMEOUT must be > 0, got {cls.FOCUS_QUERY_TIMEOUT}"
            )
        if cls.AUDIT_ROTATION_BYTES <= 0:
            errors.append(
                f"AUDIT_ROTATION_BYTES must be > 0, got {cls.AUDIT_ROTATION_BYTES}"
            )
        if not cls.DEFAULT_COUNTERPARTY:
            errors.append("DEFAULT_COUNTERPARTY must not be empty")

        if errors:
            raise ValueError(f"Config validation failed: {'; '.join(errors)}")

        return True
