"""
Affiliate URL Builder for the Affiliate Link Pipeline.
"""
from urllib.parse import parse_qsl, quote, urlsplit


def has_tag_param(url: str, param: str = "tag") -> bool:
    try:
        query = urlsplit(url).query
    except ValueError:
        return False
    return any(key == param for key, _ in parse_qsl(query, keep_blank_values=True))


def build_affiliate_url(canonical_url: str, tag: str, param: str = "tag") -> str:
    """
    Append the partner tag to a canonical URL.

    Idempotent: a URL that already carries the tag parameter is returned
    unchanged. An empty tag or an unparseable URL leaves the URL untouched.
    """
    if not tag or has_tag_param(canonical_url, param):
        return canonical_url

    base, _, fragment = canonical_url.partition("#")
    try:
        query = urlsplit(base).query
    except ValueError:
        return canonical_url
    separator = "&" if query else "?"
    if base.endswith("?") or base.endswith("&"):
        separator = ""
    url = f"{base}{separator}{param}={quote(tag, safe='-_.~')}"
    return f"{url}#{fragment}" if fragment else url
