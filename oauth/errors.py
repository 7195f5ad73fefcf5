"""
Error taxonomy for the OAuth flow.

Every error carries a short machine ``code``.  Routes never show the
message to the browser; end users only ever see ``error=auth_failed``.
"""

from __future__ import annotations


class OAuthFlowError(Exception):
    """Base class for all terminal OAuth flow failures."""

    code = "auth_failed"


class UnsupportedProvider(OAuthFlowError):
    code = "unsupported_provider"

    def __init__(self, provider: str):
        super().__init__(f"Provider '{provider}' is not supported or not configured")
        self.provider = provider


class InvalidOrExpiredState(OAuthFlowError):
    code = "invalid_state"

    def __init__(self):
        super().__init__("OAuth state is invalid, expired or already used")


class ProviderMismatch(OAuthFlowError):
    code = "provider_mismatch"

    def __init__(self, expected: str, actual: str):
        super().__init__(f"State was issued for '{expected}', callback came from '{actual}'")
        self.expected = expected
        self.actual = actual


class TokenExchangeFailed(OAuthFlowError):
    code = "token_exchange_failed"


class CredentialNotFound(OAuthFlowError):
    code = "not_found_or_expired"

    def __init__(self):
        super().__init__("Credentials not found or expired")


class InvalidScopeRequest(OAuthFlowError):
    code = "invalid_scope"


class InvalidRedirectClient(OAuthFlowError):
    code = "invalid_redirect_client"


class PersistenceFailed(OAuthFlowError):
    """Raised by durable storage; never escapes the finalizer."""

    code = "persistence_failed"
