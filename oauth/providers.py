"""
Built-in provider catalogue.

Static endpoints and scope taxonomy only; client credentials are joined
in by the ProviderRegistry from the configured secret source.
"""

from __future__ import annotations

from typing import List

from oauth.schemas import ProviderDefinition, ScopeCategory

_GOOGLE_API = "https://www.googleapis.com/auth"

GOOGLE = ProviderDefinition(
    name="google",
    display_name="Google",
    authorization_url="https://accounts.google.com/o/oauth2/v2/auth",
    token_url="https://oauth2.googleapis.com/token",
    profile_url="https://www.googleapis.com/oauth2/v1/userinfo",
    default_scopes=["profile", "email"],
    scope_categories={
        "gmail": ScopeCategory(
            label="Gmail",
            scopes=[f"{_GOOGLE_API}/gmail.send", f"{_GOOGLE_API}/gmail.readonly"],
            description="Access to Gmail for sending and reading emails",
        ),
        "sheets": ScopeCategory(
            label="Google Sheets",
            scopes=[f"{_GOOGLE_API}/spreadsheets"],
            description="Access to Google Sheets for reading and writing data",
        ),
        "drive": ScopeCategory(
            label="Google Drive",
            scopes=[f"{_GOOGLE_API}/drive.readonly", f"{_GOOGLE_API}/drive.file"],
            description="Access to Google Drive for file management",
        ),
        "calendar": ScopeCategory(
            label="Google Calendar",
            scopes=[f"{_GOOGLE_API}/calendar", f"{_GOOGLE_API}/calendar.readonly"],
            description="Access to Google Calendar for event management",
        ),
        "youtube": ScopeCategory(
            label="YouTube",
            scopes=[f"{_GOOGLE_API}/youtube.readonly", f"{_GOOGLE_API}/youtube.upload"],
            description="Access to YouTube for video management and analytics",
        ),
    },
    literal_scope_prefix="https://www.googleapis.com/",
    extra_authorize_params={
        "access_type": "offline",   # gets refresh_token
        "prompt": "consent",        # force consent to always get refresh_token
    },
)

GITHUB = ProviderDefinition(
    name="github",
    display_name="GitHub",
    authorization_url="https://github.com/login/oauth/authorize",
    token_url="https://github.com/login/oauth/access_token",
    profile_url="https://api.github.com/user",
    default_scopes=["user:email", "read:user"],
    scope_categories={
        "repos": ScopeCategory(
            label="Repositories",
            scopes=["repo", "public_repo"],
            description="Access to public and private repositories",
        ),
        "admin": ScopeCategory(
            label="Administration",
            scopes=["admin:org", "admin:repo_hook"],
            description="Administrative access to organizations and webhooks",
        ),
        "notifications": ScopeCategory(
            label="Notifications",
            scopes=["notifications", "read:discussion"],
            description="Access to notifications and discussions",
        ),
    },
    profile_headers={"Accept": "application/vnd.github+json"},
)

SLACK = ProviderDefinition(
    name="slack",
    display_name="Slack",
    authorization_url="https://slack.com/oauth/v2/authorize",
    token_url="https://slack.com/api/oauth.v2.access",
    profile_url="https://slack.com/api/users.identity",
    default_scopes=["identity.basic"],
    scope_categories={
        "messages": ScopeCategory(
            label="Messages",
            scopes=["chat:write", "chat:write.public"],
            description="Send messages to channels and users",
        ),
        "channels": ScopeCategory(
            label="Channels",
            scopes=["channels:read", "channels:history", "groups:read"],
            description="Access to channel information and history",
        ),
        "users": ScopeCategory(
            label="Users",
            scopes=["users:read", "users:read.email"],
            description="Access to user information and profiles",
        ),
        "files": ScopeCategory(
            label="Files",
            scopes=["files:read", "files:write"],
            description="Access to files and file management",
        ),
    },
)

FACEBOOK = ProviderDefinition(
    name="facebook",
    display_name="Facebook",
    authorization_url="https://www.facebook.com/v18.0/dialog/oauth",
    token_url="https://graph.facebook.com/v18.0/oauth/access_token",
    profile_url="https://graph.facebook.com/v18.0/me?fields=id,name,email",
    default_scopes=["email", "public_profile"],
    scope_categories={
        "pages": ScopeCategory(
            label="Pages",
            scopes=["pages_show_list", "pages_read_engagement"],
            description="Access to Facebook Pages information",
        ),
        "publishing": ScopeCategory(
            label="Publishing",
            scopes=["pages_manage_posts", "pages_manage_engagement"],
            description="Publish content to Facebook Pages",
        ),
        "instagram": ScopeCategory(
            label="Instagram",
            scopes=["instagram_basic", "instagram_content_publish"],
            description="Access to connected Instagram accounts",
        ),
    },
)

# ── All known providers, add new ones here ─ ──────────────────────────────

BUILTIN_PROVIDERS: List[ProviderDefinition] = [GOOGLE, GITHUB, SLACK, FACEBOOK]
