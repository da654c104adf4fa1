"""Digest delivery: Telegram transport, registry, fan-out and triggers."""
