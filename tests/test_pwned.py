"""
Tests for the password breach lookup and its endpoint.
"""
import asyncio

import httpx
import pytest

import routers.haveibeenpwned
from utils.pwned import PwnedUpstreamError, check_password, find_suffix_count, hash_parts

PASSWORD_PREFIX = "5BAA6"
PASSWORD_SUFFIX = "1E4C9B93F3F0682250B6CF8331B7EE68FD8"


def _transport(status=200, body="", seen=None):
    def handler(request):
        if seen is not None:
            seen.append(str(request.url))
        return httpx.Response(status, text=body)
    return httpx.MockTransport(handler)


class TestHashing:
    def test_hash_parts(self):
        assert hash_parts("password") == (PASSWORD_PREFIX, PASSWORD_SUFFIX)

    def test_find_suffix_count(self):
        body = f"0018A45C4D1DEF81644B54AB7F969B88D65:1\r\n{PASSWORD_SUFFIX}:3861493\r\n"
        assert find_suffix_count(body, PASSWORD_SUFFIX) == 3861493
        assert find_suffix_count(body, "FFFFF") == 0
        assert find_suffix_count("", PASSWORD_SUFFIX) == 0


class TestCheckPassword:
    def test_compromised_sends_only_prefix(self):
        seen = []
        result = asyncio.run(check_password("password", transport=_transport(body=f"{PASSWORD_SUFFIX}:42", seen=seen)))
        assert result["status"] == "compromised"
        assert result["breachCount"] == 42
        assert result["result"] is True
        assert seen[0].endswith(f"/range/{PASSWORD_PREFIX}")
        assert PASSWORD_SUFFIX not in seen[0]

    def test_safe(self):
        result = asyncio.run(check_password("password", transport=_transport(body="0018A45C4D1DEF81644B54AB7F969B88D65:1")))
        assert result == {"result": False, "message": "Password not found in breaches", "status": "safe"}

    def test_not_found_is_safe(self):
        result = asyncio.run(check_password("password", transport=_transport(status=404)))
        assert result["status"] == "safe"

    def test_upstream_error(self):
        with pytest.raises(PwnedUpstreamError) as exc:
            asyncio.run(check_password("password", transport=_transport(status=503)))
        assert exc.value.status_code == 503


class TestEndpoint:
    def test_missing_password(self, client):
        resp = client.post("/api/haveibeenpwned", json={})
        assert resp.status_code == 400

    def test_result_passthrough(self, client, monkeypatch):
        async def _check(password, transport=None):
            return {"result": True, "message": "Password found in 3 data breaches", "status": "compromised", "breachCount": 3}

        monkeypatch.setattr(routers.haveibeenpwned, "check_password", _check)
        resp = client.post("/api/haveibeenpwned", json={"password": "hunter2"})
        assert resp.status_code == 200
        assert resp.json()["breachCount"] == 3

    def test_upstream_status_forwarded(self, client, monkeypatch):
        async def _check(password, transport=None):
            raise PwnedUpstreamError(429, "Have I Been Pwned API error: 429 Too Many Requests")

        monkeypatch.setattr(routers.haveibeenpwned, "check_password", _check)
        resp = client.post("/api/haveibeenpwned", json={"password": "hunter2"})
        assert resp.status_code == 429
