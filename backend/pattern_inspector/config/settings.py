from __future__ import annotations

import os
from pathlib import Path
from typing import List

# Default settings for the Analysis module
# These act as defaults; runtime overrides are stored in <data dir>/analysis/config.json

# Dataset column holding the numeric location identifier (county FIPS code)
LOCATION_COLUMN = "fips"

# Dataset column holding the location display name
LOCATION_NAME_COLUMN = "county"

# Dataset column holding the parent location name; rows are also summarized per parent
PARENT_LOCATION_COLUMN = "state"

# Columns every pattern file must carry (output of the pattern miner)
REQUIRED_PATTERN_COLUMNS = ["keys", "description", "target", "count", "mean", "std", "min", "max"]

# When true, the first malformed pattern fails the whole job instead of being reported and skipped
STRICT_PATTERNS = False

BASE_DIR = Path(__file__).resolve().parents[2]  # -> backend/

class Settings:
    # Storage
    DATA_DIR: Path = Path(os.getenv("INSPECTOR_DATA_DIR", str(BASE_DIR / "data")))
    LOG_DIR: Path = Path(os.getenv("INSPECTOR_LOG_DIR", str(BASE_DIR / "logs")))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Database (run history); defaults to SQLite inside DATA_DIR
    DATABASE_URL: str = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'app.db'}")
    SQLALCHEMY_ECHO: bool = os.getenv("SQLALCHEMY_ECHO", "false").lower() == "true"

    # Upload limits (bytes)
    MAX_DATASET_BYTES: int = int(os.getenv("MAX_DATASET_BYTES", str(50 * 1024 * 1024)))
    MAX_PATTERN_BYTES: int = int(os.getenv("MAX_PATTERN_BYTES", str(1024 * 1024)))

    # Threads used to evaluate patterns; 1 keeps the analysis sequential
    ANALYZE_WORKERS: int = int(os.getenv("ANALYZE_WORKERS", "1"))

    CORS_ORIGINS: List[str] = [
        o.strip()
        for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
        if o.strip()
    ]


settings = Settings()
