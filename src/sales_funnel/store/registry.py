"""Registry for building the configured store backend."""

from typing import Type

from sales_funnel.config import EngineSettings
from sales_funnel.store.base import ActivityStore
from sales_funnel.store.memory_store import InMemoryStore
from sales_funnel.store.supabase_store import SupabaseStore


class StoreRegistry:
    """Maps store_backend names to store classes."""

    _stores: dict[str, Type[ActivityStore]] = {
        "memory": InMemoryStore,
        "supabase": SupabaseStore,
    }

    @classmethod
    def get(cls, backend: str, **kwargs) -> ActivityStore:
        """Instantiate a store for the given backend. kwargs passed to the store __init__."""
        store_cls = cls._stores.get(backend.lower())
        if not store_cls:
            raise ValueError(f"Unknown store backend: {backend}. Available: {list(cls._stores.keys())}")
        return store_cls(**kwargs)

    @classmethod
    def available_backends(cls) -> list[str]:
        return list(cls._stores.keys())


def build_store(settings: EngineSettings) -> ActivityStore:
    """Store described by settings. The memory backend starts empty."""
    if settings.store_backend == "supabase":
        return StoreRegistry.get(
            "supabase",
            url=settings.supabase_url,
            api_key=settings.supabase_key,
            timeout=settings.timeout_seconds,
        )
    return StoreRegistry.get(settings.store_backend)
