"""Persistence adapters"""
from .memory_store import InMemoryStore
from .supabase_client import SupabaseClient

__all__ = ["InMemoryStore", "SupabaseClient"]
