"""
oauth — OAuth2 orchestration core.

Handles:
  • Provider registry & scope-category resolution
  • Single-use CSRF state (shared SQL table, atomic consume)
  • Authorization URL generation
  • Callback handling (code → token exchange, profile fetch)
  • One-time credential hand-off with optional durable save
  • Fernet encryption of tokens at rest

Every provider is described by a ``ProviderConfig``; one generic
``OAuth2Client`` serves them all.
"""
