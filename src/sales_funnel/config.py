"""Engine settings from YAML or SALES_FUNNEL_* environment variables."""

import os
from pathlib import Path
from typing import Literal, Optional

try:
    import yaml
except ModuleNotFoundError as e:
    raise ModuleNotFoundError(
        "PyYAML is required for settings loading. Run: pip install pyyaml"
    ) from e
from pydantic import BaseModel, Field, model_validator

ENV_PREFIX = "SALES_FUNNEL_"


class EngineSettings(BaseModel):
    """Runtime configuration for the dashboard engine."""

    page_size: int = Field(default=50, ge=1)
    store_backend: Literal["memory", "supabase"] = "memory"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    timeout_seconds: float = Field(default=30.0, gt=0)
    queue_path: Optional[Path] = None
    currency_symbol: str = "R$"

    @model_validator(mode="after")
    def _check_supabase(self) -> "EngineSettings":
        if self.store_backend == "supabase" and not (self.supabase_url and self.supabase_key):
            raise ValueError("supabase backend requires supabase_url and supabase_key")
        return self

    @classmethod
    def from_yaml(cls, path: str | Path) -> "EngineSettings":
        """Load from YAML. Supports nested (store:) or flat structure."""
        data = yaml.safe_load(Path(path).read_text()) or {}
        store = data.get("store", {}) or {}

        def _get(key: str, nested_key: Optional[str] = None):
            if nested_key and nested_key in store:
                return store[nested_key]
            return data.get(key)

        raw = {
            "page_size": _get("page_size"),
            "store_backend": _get("store_backend", "backend"),
            "supabase_url": _get("supabase_url", "url"),
            "supabase_key": _get("supabase_key", "key"),
            "timeout_seconds": _get("timeout_seconds", "timeout_seconds"),
            "queue_path": _get("queue_path", "queue_path"),
            "currency_symbol": _get("currency_symbol"),
        }
        return cls(**{k: v for k, v in raw.items() if v is not None})

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "EngineSettings":
        """Load from SALES_FUNNEL_* variables; unset variables keep defaults."""
        env = os.environ if environ is None else environ
        raw = {name: env.get(f"{ENV_PREFIX}{name.upper()}") for name in cls.model_fields}
        return cls(**{k: v for k, v in raw.items() if v not in (None, "")})
