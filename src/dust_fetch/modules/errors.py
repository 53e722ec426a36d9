"""
Error types for Dust Fetch.

Fetch-level errors are recoverable: callers convert them into a missing
source. VPN errors are fatal to the VPN feature only.
"""

from typing import Optional


class DustError(Exception):
    """Base class for all Dust Fetch errors"""


class IdentifierNotFoundError(DustError):
    """No product id pattern was found in the supplied string"""

    def __init__(self, text: str):
        super().__init__(f"No valid DLSite product ID found: {text}")
        self.text = text


class MetadataFetchError(DustError):
    """A metadata source could not be fetched"""

    def __init__(self, message: str, product_id: Optional[str] = None, url: Optional[str] = None):
        super().__init__(message)
        self.product_id = product_id
        self.url = url


class NotFoundError(MetadataFetchError):
    """The API response has no entry for the product id"""


class NoAccessibleUrlError(MetadataFetchError):
    """Every candidate product page URL failed"""

    def __init__(self, product_id: str, urls):
        super().__init__(f"Could not retrieve details for {product_id}", product_id=product_id)
        self.urls = list(urls)


class DownloadError(DustError):
    """A download returned a non-success HTTP status"""

    def __init__(self, url: str, status: int):
        super().__init__(f"Download failed: HTTP {status} - {url}")
        self.url = url
        self.status = status


class VPNError(DustError):
    """Generic VPN tunnel failure"""


class ExecutableNotFoundError(VPNError):
    """No OpenVPN binary exists on any candidate path"""


class TunnelTimeoutError(VPNError):
    """The tunnel did not reach the connected state in time"""


class AuthFailedError(VPNError):
    """The tunnel rejected the supplied credentials"""


class VPNConnectionRefusedError(VPNError):
    """The VPN server refused the connection"""
