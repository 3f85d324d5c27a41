from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

BASE_DIR = Path(__file__).resolve().parents[1]
DEFAULT_DB_PATH = BASE_DIR / "data" / "node_red_survey.duckdb"
DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"]


def _as_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    db_path: Path = DEFAULT_DB_PATH
    schema: str = "survey"
    url_debounce_seconds: float = 0.15
    debug: bool = False
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        origins = [o.strip() for o in env.get("CORS_ORIGINS", "").split(",") if o.strip()]
        return cls(
            db_path=Path(env.get("SURVEY_DB_PATH") or DEFAULT_DB_PATH),
            schema=env.get("SURVEY_SCHEMA") or "survey",
            url_debounce_seconds=float(env.get("URL_DEBOUNCE_SECONDS") or 0.15),
            debug=_as_bool(env.get("SURVEY_DEBUG")),
            cors_origins=origins or list(DEFAULT_CORS_ORIGINS),
        )


settings = Settings.from_env()
