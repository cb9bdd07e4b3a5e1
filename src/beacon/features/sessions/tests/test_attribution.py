from __future__ import annotations

import pytest

from beacon.features.sessions.attribution import detect_channel


@pytest.mark.parametrize(
    ("url", "referrer", "expected"),
    [
        ("https://shop.test/", None, "direct"),
        ("https://shop.test/", "https://shop.test/other", "direct"),
        ("https://shop.test/", "https://www.google.com/search?q=x", "organic_search"),
        ("https://shop.test/", "https://duckduckgo.com/", "organic_search"),
        ("https://shop.test/", "https://t.co/abc", "social"),
        ("https://shop.test/", "https://www.linkedin.com/feed", "social"),
        ("https://shop.test/", "https://fox.com/news", "referral"),
        ("https://shop.test/?utm_medium=cpc&utm_source=google", None, "paid_search"),
        ("https://shop.test/?utm_medium=display", None, "paid"),
        ("https://shop.test/?utm_source=newsletter", None, "email"),
        ("https://shop.test/?utm_source=facebook", "https://www.google.com/", "social"),
        ("https://shop.test/?utm_medium=affiliate", None, "affiliate"),
        ("https://shop.test/?utm_campaign=x&utm_source=partner", None, "campaign"),
    ],
)
def test_detect_channel(url: str, referrer: str | None, expected: str) -> None:
    assert detect_channel(url, referrer) == expected
