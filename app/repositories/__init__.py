"""Repositories package."""

from app.repositories.intent_store import InMemoryIntentStore, IntentStore

__all__ = ["InMemoryIntentStore", "IntentStore"]
