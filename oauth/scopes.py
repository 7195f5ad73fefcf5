"""
Scope resolution — turn caller-requested categories into concrete scopes.

Entries are tried as a category first and otherwise taken as a literal
scope string, so a mistyped category degrades into a literal scope the
provider will reject, instead of failing the flow here.  Set
``OAUTH_STRICT_SCOPES=true`` to reject such entries up front.
"""

from __future__ import annotations

from typing import Iterable, List

from oauth.errors import InvalidScopeRequest
from oauth.schemas import ProviderConfig


def resolve_scopes(
    config: ProviderConfig,
    requested: Iterable[str] = (),
    *,
    strict: bool = False,
) -> List[str]:
    """
    Expand *requested* into the scope list sent to the provider.

    Order: provider defaults, then category expansions in request order,
    then literal scopes in request order.  Duplicates keep their first
    position.
    """
    expanded: List[str] = []
    literals: List[str] = []
    known = config.known_scopes() if strict else set()

    for entry in requested:
        entry = entry.strip()
        if not entry:
            continue
        category = config.scope_categories.get(entry)
        if category is not None:
            expanded.extend(category.scopes)
            continue
        if strict and not _is_acceptable_literal(config, entry, known):
            raise InvalidScopeRequest(
                f"Unknown scope category '{entry}' for provider '{config.name}'"
            )
        literals.append(entry)

    return _dedupe([*config.default_scopes, *expanded, *literals])


def _is_acceptable_literal(config: ProviderConfig, entry: str, known: set) -> bool:
    if entry in known:
        return True
    return bool(config.literal_scope_prefix and entry.startswith(config.literal_scope_prefix))


def _dedupe(scopes: Iterable[str]) -> List[str]:
    seen = set()
    out: List[str] = []
    for scope in scopes:
        if scope not in seen:
            seen.add(scope)
            out.append(scope)
    return out
