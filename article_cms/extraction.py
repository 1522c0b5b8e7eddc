"""
Find CDN image URLs in article content.

Content may be HTML, markdown or plain text; only URLs on a configured CDN
host are returned. Nothing here touches the database.
"""
import re
from functools import lru_cache

from .conf import cms_settings

# A URL runs until whitespace, a quote, an angle bracket or a closing paren.
URL_TAIL = r"""[^\s"'<>)]+"""


@lru_cache(maxsize=32)
def build_url_pattern(hosts):
    """Compile the URL regex for a tuple of CDN hosts."""
    alternatives = "|".join(re.escape(host.strip("/")) for host in hosts)
    return re.compile(rf"https?://(?:{alternatives})/{URL_TAIL}", re.IGNORECASE)


def _pattern(hosts=None):
    if hosts is None:
        hosts = cms_settings.CDN_HOSTS
    return build_url_pattern(tuple(hosts))


def is_cdn_url(url, hosts=None):
    """Check whether ``url`` is an image URL on one of the CDN hosts."""
    if not url:
        return False
    return _pattern(hosts).fullmatch(url.strip()) is not None


def extract_image_urls(content, featured_image_url=None, hosts=None):
    """
    Return the set of CDN image URLs referenced by an article.

    Args:
        content: article body (HTML, markdown or text); None is allowed
        featured_image_url: hero image URL, included if it is a CDN URL
        hosts: CDN hostnames to match; defaults to the CDN_HOSTS setting

    Returns:
        set of URL strings
    """
    pattern = _pattern(hosts)
    urls = set(pattern.findall(content or ""))
    if featured_image_url and is_cdn_url(featured_image_url, hosts):
        urls.add(featured_image_url.strip())
    return urls
