"""BuildBid configuration settings.

Loads configuration from environment variables with sensible defaults.
"""

import os
from typing import Optional
from dataclasses import dataclass, field
from dotenv import load_dotenv

# Load .env file for non-secret configuration (emulator hosts, collection names, etc.)
load_dotenv()


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    # Firebase Configuration
    firebase_project_id: Optional[str] = field(default_factory=lambda: os.getenv("FIREBASE_PROJECT_ID"))
    use_firebase_emulators: bool = field(default_factory=lambda: os.getenv("USE_FIREBASE_EMULATORS", "false").lower() == "true")
    firestore_emulator_host: str = field(default_factory=lambda: os.getenv("FIRESTORE_EMULATOR_HOST", "localhost:8081"))

    # Document store: single-table layout keyed on PK/SK
    records_collection: str = field(default_factory=lambda: os.getenv("RECORDS_COLLECTION", "platformRecords"))

    # Quote rules
    default_currency: str = field(default_factory=lambda: os.getenv("DEFAULT_CURRENCY", "GBP"))
    max_breakdown_depth: int = field(default_factory=lambda: int(os.getenv("MAX_BREAKDOWN_DEPTH", "8")))
    estimated_processing_hours: int = field(default_factory=lambda: int(os.getenv("ESTIMATED_PROCESSING_HOURS", "24")))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_json: bool = field(default_factory=lambda: os.getenv("LOG_JSON", "false").lower() == "true")

    def validate(self) -> None:
        """Validate required settings are present.

        Raises:
            ValueError: If required settings are missing.
        """
        if not self.firebase_project_id and not self.use_firebase_emulators:
            raise ValueError("FIREBASE_PROJECT_ID is required in production")
        if self.max_breakdown_depth < 1:
            raise ValueError("MAX_BREAKDOWN_DEPTH must be at least 1")

    @property
    def is_emulator_mode(self) -> bool:
        """Check if running in emulator mode."""
        return self.use_firebase_emulators


# Singleton settings instance
settings = Settings()
