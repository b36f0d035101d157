"""
Best-effort documentation scraper.

Fetches a third-party documentation page and pulls out an overview, a few
example snippets, a short list of requirement/feature bullets, and a guess at
whether the target is a REST API. Failures are returned as data (an ``error``
field on a placeholder result) and never raised to the caller.
"""
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup
from bs4.element import Tag

from core.config import logger, SCRAPE_TIMEOUT_SEC
from utils.url_guard import OutboundTarget, UnsafeURLError, check_outbound_url

BROWSER_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

NO_OVERVIEW = "No overview found. Please visit the official documentation for details."
UNAVAILABLE_OVERVIEW = "Unable to fetch documentation. Please visit the official link."

MAX_EXAMPLES = 10
MAX_REQUIREMENTS = 6
MAX_REDIRECTS = 5

STRIP_SELECTORS = "script, style, nav, footer, header"

OVERVIEW_META_SELECTORS = [
    'meta[name="description"]',
    'meta[property="og:description"]',
]
OVERVIEW_SELECTORS = [".description", ".overview", ".intro", ".lead", "p", ".content p"]

CODE_SELECTORS = [
    "pre code",
    "pre",
    "code",
    ".highlight pre",
    ".code-block",
    ".example",
    ".usage-example",
    ".code-example",
    ".api-example",
]

SECTION_KEYWORDS = [
    "requirement", "feature", "getting started", "prerequisite",
    "installation", "quick start", "authentication", "api key",
    "usage", "example", "endpoint", "method", "rate limit",
    "password", "breach", "security", "hash", "range",
]

REST_PHRASES = ["rest api", "restful", "http api", "api endpoint", "get request", "post request"]

API_EXAMPLE_RE = re.compile(
    r"(GET|POST|PUT|DELETE|PATCH|curl|fetch|axios|http|api|endpoint|request|response|json|xml|range|hash|sha1|pwned)",
    re.IGNORECASE,
)
ERROR_EXAMPLE_RE = re.compile(
    r"(access denied|missing|invalid|improperly formed|error|unauthorized|forbidden)",
    re.IGNORECASE,
)
HTTP_VERB_RE = re.compile(r"\b(GET|POST|PUT|DELETE|PATCH)\b")
WHITESPACE_RE = re.compile(r"\s+")

# Curated content for documentation sites that are known to scrape poorly
KNOWN_DOC_HINTS = [
    {
        "markers": ("haveibeenpwned", "pwned"),
        "examples": [
            "GET https://api.pwnedpasswords.com/range/{first 5 hash chars}",
            'curl -H "hibp-api-key: your-api-key" https://haveibeenpwned.com/api/v3/breachedaccount/test@example.com',
            "GET https://haveibeenpwned.com/api/v3/breachedaccount/{account}",
            "GET https://haveibeenpwned.com/api/v3/breach/{breachName}",
            "GET https://haveibeenpwned.com/api/v3/breaches",
            "GET https://api.pwnedpasswords.com/range/21BD1",
            "curl https://api.pwnedpasswords.com/range/21BD1",
            "GET https://haveibeenpwned.com/api/v3/breachedaccount/test@example.com",
        ],
        "requirements": [
            "Password range API uses first 5 characters of SHA-1 hash",
            "Rate limited to 1 request per 1.5 seconds",
            "No API key needed for password range checking",
            "Supports k-anonymity for password security",
            "Returns breach count for compromised passwords",
        ],
    },
]


class ScrapeFetchError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _clean(text: str) -> str:
    return WHITESPACE_RE.sub(" ", text or "").strip()


def failure_result(error: str) -> Dict[str, Any]:
    return {
        "overview": UNAVAILABLE_OVERVIEW,
        "examples": [],
        "requirements": [],
        "isRestApi": False,
        "error": error,
    }


def _hints_for(url: str) -> List[dict]:
    low = (url or "").lower()
    return [h for h in KNOWN_DOC_HINTS if any(m in low for m in h["markers"])]


def extract_overview(soup: BeautifulSoup) -> str:
    for selector in OVERVIEW_META_SELECTORS:
        tag = soup.select_one(selector)
        content = _clean(tag.get("content", "")) if tag else ""
        if content:
            return content

    for selector in OVERVIEW_SELECTORS:
        tag = soup.select_one(selector)
        if not tag:
            continue
        text = tag.get_text().strip()
        if 50 < len(text) < 500:
            return _clean(text)

    for p in soup.find_all("p"):
        text = p.get_text().strip()
        if 50 < len(text) < 500:
            return _clean(text)
    return ""


def extract_examples(soup: BeautifulSoup, url: str = "") -> List[str]:
    examples: List[str] = []
    for selector in CODE_SELECTORS:
        for el in soup.select(selector):
            text = el.get_text().strip()
            if not (20 < len(text) < 2000):
                continue
            if not API_EXAMPLE_RE.search(text) or ERROR_EXAMPLE_RE.search(text):
                continue
            cleaned = _clean(text)
            if cleaned not in examples:
                examples.append(cleaned)

    for hint in _hints_for(url):
        for example in hint["examples"]:
            if example not in examples:
                examples.append(example)

    if not examples:
        # Nothing looked like an API call; keep any reasonably sized code block
        for el in soup.select("pre code, pre, code"):
            text = el.get_text().strip()
            cleaned = _clean(text)
            if 20 < len(text) < 2000 and cleaned not in examples:
                examples.append(cleaned)

    return examples[:MAX_EXAMPLES]


def extract_requirements(soup: BeautifulSoup, url: str = "") -> List[str]:
    requirements: List[str] = []
    for heading in soup.find_all(["h1", "h2", "h3", "h4", "h5"]):
        heading_text = heading.get_text().lower()
        if not any(k in heading_text for k in SECTION_KEYWORDS):
            continue
        for sibling in heading.find_next_siblings(limit=5):
            if not isinstance(sibling, Tag):
                continue
            if sibling.name in ("ul", "ol"):
                for li in sibling.find_all("li"):
                    text = _clean(li.get_text())
                    if text and 10 < len(text) < 200 and text not in requirements:
                        requirements.append(text)
            elif sibling.name == "p":
                text = _clean(sibling.get_text())
                if text and 20 < len(text) < 300 and text not in requirements:
                    requirements.append(text)

    for hint in _hints_for(url):
        for req in hint["requirements"]:
            if req not in requirements:
                requirements.append(req)

    return requirements[:MAX_REQUIREMENTS]


def detect_rest_api(soup: BeautifulSoup) -> bool:
    body = soup.body or soup
    body_text = body.get_text()
    title_text = soup.title.get_text().lower() if soup.title else ""
    h1_text = " ".join(h.get_text() for h in soup.find_all("h1")).lower()
    body_lower = body_text.lower()
    if any(p in body_lower or p in title_text or p in h1_text for p in REST_PHRASES):
        return True
    return bool(HTTP_VERB_RE.search(body_text))


def parse_documentation(html: str, url: str = "") -> Dict[str, Any]:
    """Extract the scrape result from already-fetched HTML."""
    soup = BeautifulSoup(html or "", "html.parser")
    for el in soup.select(STRIP_SELECTORS):
        el.decompose()

    overview = extract_overview(soup)
    return {
        "overview": overview or NO_OVERVIEW,
        "examples": extract_examples(soup, url),
        "requirements": extract_requirements(soup, url),
        "isRestApi": detect_rest_api(soup),
    }


async def fetch_html(
    url: str,
    timeout: float = SCRAPE_TIMEOUT_SEC,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    guard: Optional[Callable[[str], Awaitable[Optional[OutboundTarget]]]] = None,
) -> str:
    """Single GET with manual redirect handling so every hop passes the guard.

    Each hop connects to the address the guard vetted, so the host is not
    resolved a second time by the HTTP client.
    """
    guard = guard or check_outbound_url
    current = url
    async with httpx.AsyncClient(timeout=timeout, headers=BROWSER_HEADERS, transport=transport) as client:
        for _ in range(MAX_REDIRECTS + 1):
            target = await guard(current)
            if target is not None:
                pinned_url, host_header, extensions = target.request_args()
                resp = await client.get(pinned_url, headers=host_header, extensions=extensions, follow_redirects=False)
            else:
                resp = await client.get(current, follow_redirects=False)
            if resp.is_redirect:
                location = resp.headers.get("location")
                if not location:
                    break
                current = urljoin(current, location)
                continue
            if resp.status_code >= 400:
                raise ScrapeFetchError(f"Request failed with status code {resp.status_code}", resp.status_code)
            return resp.text
    raise ScrapeFetchError("Too many redirects")


async def scrape_docs(
    url: str,
    timeout: float = SCRAPE_TIMEOUT_SEC,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    guard: Optional[Callable[[str], Awaitable[Optional[OutboundTarget]]]] = None,
) -> Dict[str, Any]:
    try:
        html = await fetch_html(url, timeout=timeout, transport=transport, guard=guard)
        return parse_documentation(html, url)
    except UnsafeURLError as ex:
        logger.warning(f"[scrape] blocked {url}: {ex}")
        return failure_result(f"URL not allowed: {ex}")
    except httpx.TimeoutException:
        logger.warning(f"[scrape] timeout fetching {url}")
        return failure_result("Request timeout - the website took too long to respond")
    except ScrapeFetchError as ex:
        logger.warning(f"[scrape] {url}: {ex}")
        if ex.status_code in (401, 403):
            return failure_result("Access denied - the website blocked the scraping request")
        return failure_result(f"Failed to scrape URL: {ex}")
    except Exception as ex:
        logger.error(f"[scrape] error scraping {url}: {ex}")
        return failure_result(f"Failed to scrape URL: {ex}")
