"""
HTTP-level tests for the /oauth routes.
"""

import json
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from conftest import make_settings, provider_transport
from main import create_app
from oauth.service import OAuthService


def _query(url: str) -> dict:
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


@pytest.fixture
def make_client(tmp_path):
    """Start an app whose provider answers with *token_body*."""
    opened = []

    def _make(token_body=None):
        settings = make_settings(tmp_path)
        service = OAuthService(settings, transport=provider_transport(
            token_body or {"access_token": "T1", "refresh_token": "R1", "expires_in": 3600},
        ))
        test_client = TestClient(create_app(settings, service))
        test_client.__enter__()
        opened.append(test_client)
        return test_client

    yield _make
    for test_client in opened:
        test_client.__exit__(None, None, None)


@pytest.fixture
def client(make_client):
    return make_client()


class TestInitRoutes:
    def test_get_redirects_to_provider(self, client):
        resp = client.get(
            "/oauth/init/google",
            params={"integration_id": "abc", "redirect_client": "http://x/y", "scopes": "gmail"},
            follow_redirects=False,
        )
        assert resp.status_code == 302
        location = resp.headers["location"]
        assert location.startswith("https://accounts.google.com/")
        assert "gmail.send" in _query(location)["scope"]

    def test_get_accepts_json_encoded_scopes(self, client):
        resp = client.get(
            "/oauth/init/google",
            params={"integration_id": "abc", "scopes": json.dumps(["gmail", "drive"])},
            follow_redirects=False,
        )
        scope = _query(resp.headers["location"])["scope"]
        assert "gmail.send" in scope
        assert "drive.readonly" in scope

    def test_post_returns_json(self, client):
        resp = client.post(
            "/oauth/init/github",
            json={"integration_id": "abc", "redirect_client": "http://x/y", "scopes": ["repos"]},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert set(data) == {"redirectUrl", "state"}
        assert _query(data["redirectUrl"])["state"] == data["state"]

    def test_unsupported_provider_get(self, client):
        resp = client.get("/oauth/init/myspace", follow_redirects=False)
        assert resp.status_code == 302
        assert resp.headers["location"] == "http://app.test/integrations?error=auth_failed"

    def test_unsupported_provider_post(self, client):
        resp = client.post("/oauth/init/myspace", json={"integration_id": "abc"})
        assert resp.status_code == 400
        assert resp.json() == {"detail": "auth_failed"}


class TestCallbackRoute:
    def _start(self, client, provider="google", **params):
        data = {"integration_id": "abc", "redirect_client": "http://x/y", "scopes": ["gmail"]}
        data.update(params)
        return client.post(f"/oauth/init/{provider}", json=data).json()["state"]

    def test_full_browser_flow(self, client):
        state = self._start(client)
        resp = client.get(
            "/oauth/google/callback", params={"code": "validcode", "state": state}, follow_redirects=False,
        )
        assert resp.status_code == 302
        location = resp.headers["location"]
        assert location.startswith("http://x/y?")
        credential_id = _query(location)["credential_id"]

        cred = client.get(f"/oauth/credentials/{credential_id}")
        assert cred.status_code == 200
        assert cred.headers["cache-control"] == "no-store"
        body = cred.json()
        assert body["access_token"] == "T1"
        assert body["refresh_token"] == "R1"
        assert body["saved"] is False

        again = client.get(f"/oauth/credentials/{credential_id}")
        assert again.status_code == 404

    def test_retrieval_with_save(self, client):
        state = self._start(client)
        location = client.get(
            "/oauth/google/callback", params={"code": "c", "state": state}, follow_redirects=False,
        ).headers["location"]
        credential_id = _query(location)["credential_id"]

        body = client.get(
            f"/oauth/credentials/{credential_id}", params={"save": "true", "userId": "u1", "name": "Work"},
        ).json()
        assert body["saved"] is True
        assert body["saved_record_id"]

    def test_invalid_state_goes_to_error_page(self, client):
        resp = client.get(
            "/oauth/google/callback", params={"code": "c", "state": "forged"}, follow_redirects=False,
        )
        assert resp.status_code == 302
        assert resp.headers["location"] == "http://app.test/integrations?error=auth_failed"

    def test_provider_mismatch_goes_to_error_page(self, client):
        state = self._start(client, provider="google")
        resp = client.get(
            "/oauth/github/callback", params={"code": "c", "state": state}, follow_redirects=False,
        )
        assert resp.headers["location"].endswith("error=auth_failed")

    def test_denied_consent_consumes_state(self, client):
        state = self._start(client)
        resp = client.get(
            "/oauth/google/callback", params={"error": "access_denied", "state": state}, follow_redirects=False,
        )
        assert resp.headers["location"].endswith("error=auth_failed")
        retry = client.get(
            "/oauth/google/callback", params={"code": "c", "state": state}, follow_redirects=False,
        )
        assert retry.headers["location"].endswith("error=auth_failed")

    def test_scope_list_from_provider_completes(self, make_client):
        client = make_client({"access_token": "T1", "scope": ["a", "b"]})
        state = self._start(client)
        resp = client.get(
            "/oauth/google/callback", params={"code": "c", "state": state}, follow_redirects=False,
        )
        assert resp.status_code == 302
        credential_id = _query(resp.headers["location"])["credential_id"]
        body = client.get(f"/oauth/credentials/{credential_id}").json()
        assert body["granted_scope"] == "a b"

    def test_unexpected_failure_goes_to_error_page(self, client, monkeypatch):
        service = client.app.state.oauth_service

        async def broken_put(credential):
            raise RuntimeError("vault unavailable")

        monkeypatch.setattr(service.vault, "put", broken_put)
        state = self._start(client)
        resp = client.get(
            "/oauth/google/callback", params={"code": "c", "state": state}, follow_redirects=False,
        )
        assert resp.status_code == 302
        assert resp.headers["location"] == "http://app.test/integrations?error=auth_failed"

    def test_unknown_credential_404(self, client):
        assert client.get("/oauth/credentials/does-not-exist").status_code == 404


class TestSavedIntegrationRoutes:
    def _connect(self, client, user_id="u1"):
        state = client.post(
            "/oauth/init/google", json={"integration_id": "abc", "redirect_client": "http://x/y"},
        ).json()["state"]
        location = client.get(
            "/oauth/google/callback", params={"code": "c", "state": state}, follow_redirects=False,
        ).headers["location"]
        credential_id = _query(location)["credential_id"]
        body = client.get(
            f"/oauth/credentials/{credential_id}", params={"save": "true", "userId": user_id, "name": "Work"},
        ).json()
        return body["saved_record_id"]

    def test_list_without_tokens(self, client):
        record_id = self._connect(client)
        items = client.get("/oauth/user-integrations", params={"userId": "u1"}).json()
        assert [i["id"] for i in items] == [record_id]
        assert items[0]["name"] == "Work"
        assert items[0]["provider"] == "google"
        assert "access_token" not in items[0]
        assert "refresh_token" not in items[0]

    def test_credentials_summary(self, client):
        record_id = self._connect(client)
        items = client.get("/oauth/user-credentials", params={"userId": "u1"}).json()
        assert len(items) == 1
        assert set(items[0]) == {
            "id", "user_id", "integration_id", "name", "provider", "created_at", "updated_at",
        }
        assert items[0]["id"] == record_id

    def test_user_id_required(self, client):
        assert client.get("/oauth/user-integrations").status_code == 400
        assert client.get("/oauth/user-credentials").status_code == 400
        assert client.delete("/oauth/user-integrations/x").status_code == 400

    def test_delete(self, client):
        record_id = self._connect(client)
        other = client.delete(f"/oauth/user-integrations/{record_id}", params={"userId": "u2"})
        assert other.status_code == 404

        resp = client.delete(f"/oauth/user-integrations/{record_id}", params={"userId": "u1"})
        assert resp.status_code == 204
        assert client.get("/oauth/user-integrations", params={"userId": "u1"}).json() == []


class TestCatalogueRoutes:
    def test_providers(self, client):
        names = {p["provider"] for p in client.get("/oauth/providers").json()}
        assert names == {"google", "github", "slack", "facebook"}

    def test_provider_scopes(self, client):
        data = client.get("/oauth/providers/google/scopes").json()
        assert data["default"] == ["profile", "email"]
        assert "youtube" in data["categories"]

    def test_unknown_provider_scopes(self, client):
        assert client.get("/oauth/providers/myspace/scopes").status_code == 404


class TestCORS:
    def test_allowed_origin(self, client):
        resp = client.options(
            "/oauth/init/google",
            headers={"Origin": "http://app.test", "Access-Control-Request-Method": "POST"},
        )
        assert resp.headers["access-control-allow-origin"] == "http://app.test"

    def test_other_origin_not_allowed(self, client):
        resp = client.options(
            "/oauth/init/google",
            headers={"Origin": "http://evil.test", "Access-Control-Request-Method": "POST"},
        )
        assert "access-control-allow-origin" not in resp.headers
