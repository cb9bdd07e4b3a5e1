from __future__ import annotations

from urllib.parse import parse_qs, urlparse

SEARCH_ENGINES = ("google.", "bing.", "yahoo.", "duckduckgo.", "baidu.", "yandex.", "ecosia.")
SOCIAL_SITES = (
    "facebook.",
    "twitter.",
    "x.com",
    "t.co",
    "linkedin.",
    "instagram.",
    "reddit.",
    "youtube.",
    "tiktok.",
    "pinterest.",
)

SOCIAL_SOURCES = {
    "facebook",
    "twitter",
    "x",
    "linkedin",
    "instagram",
    "reddit",
    "youtube",
    "tiktok",
    "pinterest",
}

PAID_MEDIUMS = {"cpc", "ppc", "paid", "paidsearch", "paid_search", "display", "cpm", "banner"}


def _host(url: str | None) -> str:
    if not url:
        return ""
    return (urlparse(url).hostname or "").lower()


def _matches(host: str, patterns: tuple[str, ...]) -> bool:
    # "google." matches any google TLD; "x.com" matches the domain and its subdomains
    for p in patterns:
        if p.endswith("."):
            if host.startswith(p) or f".{p}" in host:
                return True
        elif host == p or host.endswith(f".{p}"):
            return True
    return False


def detect_channel(url: str | None = None, referrer: str | None = None) -> str:
    """
    Acquisition channel for a landing page.

    utm parameters win; otherwise the referrer host decides; no referrer is "direct".
    """
    if url:
        query = parse_qs(urlparse(url).query)
        medium = (query.get("utm_medium") or [""])[0].strip().lower()
        source = (query.get("utm_source") or [""])[0].strip().lower()
        if medium in PAID_MEDIUMS:
            return "paid_search" if medium in {"cpc", "ppc", "paidsearch", "paid_search"} else "paid"
        if medium == "email" or source in {"email", "newsletter"}:
            return "email"
        if medium == "social" or source in SOCIAL_SOURCES:
            return "social"
        if medium == "affiliate":
            return "affiliate"
        if medium or source:
            return "campaign"

    ref_host = _host(referrer)
    if not ref_host:
        return "direct"
    if ref_host == _host(url):
        return "direct"
    if _matches(ref_host, SEARCH_ENGINES):
        return "organic_search"
    if _matches(ref_host, SOCIAL_SITES):
        return "social"
    return "referral"
