"""Custom exceptions for the rendering context."""

from pathlib import Path
from typing import Optional


class BuildConfigError(ValueError):
    """
    Exception raised when the build configuration is missing or invalid.

    Attributes:
        message: Error description
        config_path: The configuration file being loaded (if any)
        field_name: The offending configuration field (if known)
    """

    def __init__(
        self,
        message: str,
        config_path: Optional[Path] = None,
        field_name: Optional[str] = None,
    ):
        self.message = message
        self.config_path = config_path
        self.field_name = field_name

        parts = [message]
        if field_name:
            parts.append(f"Field: {field_name}")
        if config_path:
            parts.append(f"Config: {config_path}")

        super().__init__("\n".join(parts))
