"""Store contract, implementations and the local pending-mutation queue."""

from sales_funnel.store.base import ActivityStore
from sales_funnel.store.memory_store import InMemoryStore
from sales_funnel.store.offline_queue import PendingMutation, PendingMutationQueue
from sales_funnel.store.registry import StoreRegistry, build_store
from sales_funnel.store.supabase_store import SupabaseStore

__all__ = [
    "ActivityStore",
    "InMemoryStore",
    "PendingMutation",
    "PendingMutationQueue",
    "StoreRegistry",
    "SupabaseStore",
    "build_store",
]
