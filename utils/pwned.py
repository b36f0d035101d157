"""
Password breach lookup using the Pwned Passwords k-anonymity range API.
Only the first 5 hex characters of the SHA-1 hash leave this process.
"""
import hashlib
from typing import Optional, Tuple

import httpx

from core.config import logger, PWNED_RANGE_URL


class PwnedUpstreamError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def hash_parts(password: str) -> Tuple[str, str]:
    digest = hashlib.sha1(password.encode("utf-8")).hexdigest().upper()
    return digest[:5], digest[5:]


def find_suffix_count(range_body: str, suffix: str) -> int:
    """Return the breach count for ``suffix`` in a range response, 0 when absent."""
    for line in (range_body or "").splitlines():
        hash_suffix, _, count = line.strip().partition(":")
        if hash_suffix.upper() == suffix:
            try:
                return int(count.strip() or 0)
            except ValueError:
                return 0
    return 0


async def check_password(password: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> dict:
    prefix, suffix = hash_parts(password)
    url = f"{PWNED_RANGE_URL}/{prefix}"
    async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
        resp = await client.get(url, headers={"User-Agent": "API-Marketplace-Playground/1.0"})

    if resp.status_code == 404:
        return {"result": False, "message": "Password not found in breaches", "status": "safe"}
    if resp.status_code >= 400:
        logger.warning(f"[pwned] upstream returned {resp.status_code}")
        raise PwnedUpstreamError(resp.status_code, f"Have I Been Pwned API error: {resp.status_code} {resp.reason_phrase}")

    count = find_suffix_count(resp.text, suffix)
    if count > 0:
        return {
            "result": True,
            "message": f"Password found in {count} data breaches",
            "status": "compromised",
            "breachCount": count,
        }
    return {"result": False, "message": "Password not found in breaches", "status": "safe"}
