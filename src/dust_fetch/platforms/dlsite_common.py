"""
Shared DLSite constants and URL helpers
"""

from typing import Dict, Optional

BASE_ORIGIN = "https://www.dlsite.com"

USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36'
)


def ensure_absolute_url(url: Optional[str]) -> Optional[str]:
    """
    Make a DLSite URL absolute

    Args:
        url (str): Protocol-relative, root-relative, bare relative or absolute URL

    Returns:
        Optional[str]: Absolute URL, or None for an empty input
    """
    if not url:
        return None

    if url.startswith('//'):
        return f"https:{url}"
    if url.lower().startswith(('http://', 'https://')):
        return url
    if url.startswith('/'):
        return f"{BASE_ORIGIN}{url}"
    return f"{BASE_ORIGIN}/{url}"


def build_headers(locale: str) -> Dict[str, str]:
    """Browser-like request headers for the given locale"""
    return {
        'User-Agent': USER_AGENT,
        'Accept-Language': 'en-US,en;q=0.9' if locale == 'en_US' else locale,
        'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8',
        'Accept-Encoding': 'gzip, deflate',
    }


def build_cookies(locale: str) -> Dict[str, str]:
    """Cookies that skip the age gate and pin the site language"""
    cookies = {'adultchecked': '1'}
    if locale == 'en_US':
        cookies['locale'] = 'en_US'
    return cookies


def cookie_header(cookies: Dict[str, str]) -> str:
    return '; '.join(f"{key}={value}" for key, value in cookies.items())


def work_page_url(product_id: str, category: str = 'maniax') -> str:
    return f"{BASE_ORIGIN}/{category}/work/=/product_id/{product_id}.html"


def announce_page_url(product_id: str, category: str = 'maniax') -> str:
    return f"{BASE_ORIGIN}/{category}/announce/=/product_id/{product_id}.html"


def product_info_url(product_id: str, locale: str) -> str:
    return f"{BASE_ORIGIN}/maniax/product/info/ajax?product_id={product_id}&locale={locale}"
