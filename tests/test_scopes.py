"""
Tests for scope-category resolution.
"""

import pytest

from oauth.errors import InvalidScopeRequest
from oauth.providers import BUILTIN_PROVIDERS
from oauth.schemas import ProviderConfig
from oauth.scopes import resolve_scopes


def _config(name: str) -> ProviderConfig:
    definition = next(d for d in BUILTIN_PROVIDERS if d.name == name)
    return ProviderConfig(**definition.model_dump(), client_id="id", client_secret="secret")


GMAIL_SEND = "https://www.googleapis.com/auth/gmail.send"
GMAIL_READ = "https://www.googleapis.com/auth/gmail.readonly"


class TestResolveScopes:
    def test_defaults_only(self):
        assert resolve_scopes(_config("google")) == ["profile", "email"]

    def test_category_expands_after_defaults(self):
        scopes = resolve_scopes(_config("google"), ["gmail"])
        assert scopes == ["profile", "email", GMAIL_SEND, GMAIL_READ]

    def test_categories_then_literals_in_request_order(self):
        custom = "https://www.googleapis.com/auth/tasks"
        scopes = resolve_scopes(_config("google"), [custom, "sheets", "gmail"])
        assert scopes == [
            "profile",
            "email",
            "https://www.googleapis.com/auth/spreadsheets",
            GMAIL_SEND,
            GMAIL_READ,
            custom,
        ]

    def test_duplicates_removed(self):
        scopes = resolve_scopes(_config("google"), ["gmail", "gmail", GMAIL_SEND, "email"])
        assert scopes.count(GMAIL_SEND) == 1
        assert scopes.count("email") == 1

    def test_unknown_category_kept_as_literal(self):
        scopes = resolve_scopes(_config("github"), ["reposs"])
        assert scopes == ["user:email", "read:user", "reposs"]

    def test_blank_entries_ignored(self):
        assert resolve_scopes(_config("slack"), ["", "  "]) == ["identity.basic"]

    @pytest.mark.parametrize("provider", [d.name for d in BUILTIN_PROVIDERS])
    def test_defaults_always_included(self, provider):
        config = _config(provider)
        requests = [[], list(config.scope_categories), ["nonsense", "x:y"], ["email"]]
        for requested in requests:
            scopes = resolve_scopes(config, requested)
            assert set(config.default_scopes) <= set(scopes)


class TestStrictMode:
    def test_unknown_category_rejected(self):
        with pytest.raises(InvalidScopeRequest):
            resolve_scopes(_config("github"), ["reposs"], strict=True)

    def test_known_literal_accepted(self):
        scopes = resolve_scopes(_config("github"), ["public_repo"], strict=True)
        assert scopes[-1] == "public_repo"

    def test_prefixed_literal_accepted(self):
        custom = "https://www.googleapis.com/auth/tasks"
        assert custom in resolve_scopes(_config("google"), [custom], strict=True)
