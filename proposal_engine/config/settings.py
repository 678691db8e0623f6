"""Proposal engine configuration settings.

Loads configuration from environment variables with sensible defaults.
Nothing here is secret; a local .env file is honoured for development.
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

# Load .env file for local overrides (asset base, log level, debounce tuning)
load_dotenv()


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    # Markup normalization
    asset_base_path: str = field(default_factory=lambda: os.getenv("PROPOSAL_ASSET_BASE", "/templates/proposal"))

    # Template expansion
    max_block_depth: int = field(default_factory=lambda: int(os.getenv("PROPOSAL_MAX_BLOCK_DEPTH", "50")))

    # Auto-fill debounce (1.0 = the built-in 200/350 ms delays)
    auto_fill_debounce_scale: float = field(default_factory=lambda: float(os.getenv("AUTO_FILL_DEBOUNCE_SCALE", "1.0")))

    # Money formatting
    hidden_total_placeholder: str = field(default_factory=lambda: os.getenv("PROPOSAL_HIDDEN_TOTAL_TEXT", "TBD"))
    currency_symbol: str = field(default_factory=lambda: os.getenv("PROPOSAL_CURRENCY_SYMBOL", "$"))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_format: str = field(default_factory=lambda: os.getenv("LOG_FORMAT", "console"))

    def validate(self) -> None:
        """Validate settings values.

        Raises:
            ValueError: If a setting is out of range.
        """
        if self.max_block_depth < 1:
            raise ValueError("PROPOSAL_MAX_BLOCK_DEPTH must be at least 1")
        if self.auto_fill_debounce_scale < 0:
            raise ValueError("AUTO_FILL_DEBOUNCE_SCALE must not be negative")
        if self.log_format not in ("console", "json"):
            raise ValueError("LOG_FORMAT must be 'console' or 'json'")

    def debounce_seconds(self, delay_ms: int) -> float:
        """Convert a rule's debounce in milliseconds to scaled seconds."""
        return (delay_ms / 1000.0) * self.auto_fill_debounce_scale


# Singleton settings instance
settings = Settings()
