"""
DLSite Client for Dust Fetch
Fetches the AJAX product info and the work page for a product, downloads the
cover and merges everything into one game record.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..config.app_config import AppConfig
from ..modules.errors import (
    DownloadError,
    IdentifierNotFoundError,
    MetadataFetchError,
    NoAccessibleUrlError,
    NotFoundError,
)
from ..modules.logger_config import setup_logger
from ..modules.network_manager import NETWORK_ERRORS, NetworkManager
from .dlsite_common import (
    BASE_ORIGIN,
    announce_page_url,
    build_cookies,
    build_headers,
    cookie_header,
    ensure_absolute_url,
    product_info_url,
    work_page_url,
)
from .dlsite_parser import extract_fields
from .image_downloader import ImageDownloader
from .product_id import extract_product_id_from_path, resolve_product_id
from .record_synthesizer import RecordSynthesizer, first_non_empty


class DLSiteClient:
    """Client for the DLSite product info endpoint and work pages"""

    def __init__(self, network_manager: NetworkManager,
                 image_downloader: Optional[ImageDownloader] = None,
                 synthesizer: Optional[RecordSynthesizer] = None,
                 locale: str = AppConfig.DLSITE_DEFAULT_LOCALE,
                 download_covers: bool = AppConfig.DLSITE_DOWNLOAD_COVERS,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize the DLSite client

        Args:
            network_manager (NetworkManager): Dispatcher for all requests
            image_downloader (ImageDownloader, optional): Cover downloader, created if omitted
            synthesizer (RecordSynthesizer, optional): Record builder, created if omitted
            locale (str): "en_US" or "ja_JP"
            download_covers (bool): Whether get_game_info downloads the cover
            logger (logging.Logger, optional): Logger to use instead of the default one
        """
        self.logger = logger or setup_logger('DLSiteClient', 'dlsite.log')
        self.network_manager = network_manager
        self.locale = locale
        self.download_covers = download_covers

        self.headers = build_headers(locale)
        self.cookies = build_cookies(locale)

        self.image_downloader = image_downloader or ImageDownloader(network_manager, locale=locale, logger=self.logger)
        self.synthesizer = synthesizer or RecordSynthesizer(logger=self.logger)

        self.logger.info(f"DLSite client initialized (locale: {self.locale})")

    def _request_headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = dict(self.headers)
        headers['Cookie'] = cookie_header(self.cookies)
        if extra:
            headers.update(extra)
        return headers

    def _normalize_id(self, product_id: str) -> str:
        try:
            return resolve_product_id(product_id)
        except IdentifierNotFoundError:
            self.logger.debug(f"Could not normalize product ID, using as given: {product_id}")
            return product_id

    def extract_dlsite_id(self, path: str) -> Optional[str]:
        """
        Extract DLSite ID from file path or folder name

        Args:
            path (str): File or folder path

        Returns:
            Optional[str]: DLSite ID if found, None otherwise
        """
        dlsite_id = extract_product_id_from_path(path)
        if dlsite_id:
            self.logger.info(f"Extracted DLSite ID: {dlsite_id} from path: {path}")
        else:
            self.logger.debug(f"No DLSite ID found in path: {path}")
        return dlsite_id

    def build_work_urls(self, product_id: str, category: str = AppConfig.DLSITE_DEFAULT_CATEGORY) -> List[str]:
        """Candidate work page URLs, released page first"""
        urls = [work_page_url(product_id, category), announce_page_url(product_id, category)]
        if self.locale == 'en_US':
            urls = [f"{url}{'&' if '?' in url else '?'}locale=en_US" for url in urls]
        return urls

    async def fetch_api_record(self, product_id: str) -> Dict[str, Any]:
        """
        Retrieve basic product information from the AJAX endpoint

        Args:
            product_id (str): DLSite product ID

        Returns:
            Dict[str, Any]: The product's entry, with an absolute work_image

        Raises:
            MetadataFetchError: On network failure or non-success status
            NotFoundError: If the response has no entry for the product
        """
        product_id = self._normalize_id(product_id)
        url = product_info_url(product_id, self.locale)
        self.logger.info(f"Retrieving product information for {product_id}")

        try:
            response = await self.network_manager.dispatch(url, headers=self._request_headers())
        except NETWORK_ERRORS as e:
            raise MetadataFetchError(f"Request failed for {product_id}: {e}", product_id=product_id, url=url) from e

        if not response.ok:
            raise MetadataFetchError(f"HTTP error: {response.status}", product_id=product_id, url=url)

        try:
            data = response.json()
        except ValueError as e:
            raise MetadataFetchError(f"Invalid product info response for {product_id}", product_id=product_id, url=url) from e

        if not isinstance(data, dict) or not data.get(product_id):
            raise NotFoundError(f"No product information found for: {product_id}", product_id=product_id, url=url)

        record = dict(data[product_id])
        if record.get('work_image'):
            record['work_image'] = ensure_absolute_url(record['work_image'])

        self.logger.info(f"Product information retrieved for {product_id}: {record.get('work_name', 'Unknown')}")
        return record

    async def fetch_html_record(self, product_id: str,
                                category: str = AppConfig.DLSITE_DEFAULT_CATEGORY) -> Tuple[str, str]:
        """
        Fetch the work page, trying the released page then the announce page

        Args:
            product_id (str): DLSite product ID
            category (str): DLSite category, e.g. "maniax"

        Returns:
            Tuple[str, str]: Page HTML and the URL it came from

        Raises:
            NoAccessibleUrlError: If every candidate URL failed
        """
        urls = self.build_work_urls(product_id, category)
        headers = self._request_headers({'Referer': f"{BASE_ORIGIN}/{category}/"})

        for url in urls:
            self.logger.debug(f"Trying URL: {url}")
            try:
                response = await self.network_manager.dispatch(url, headers=headers)
            except NETWORK_ERRORS as e:
                self.logger.warning(f"Error fetching {url}: {e}")
                continue

            if response.ok:
                html = response.text()
                self.logger.info(f"Work page received for {product_id}: {url} ({len(html)} chars)")
                return html, url

            self.logger.warning(f"Work page {url} returned HTTP {response.status}")

        raise NoAccessibleUrlError(product_id, urls)

    async def get_work_details(self, product_id: str,
                               category: str = AppConfig.DLSITE_DEFAULT_CATEGORY) -> Dict[str, Any]:
        """Fetch and parse the work page"""
        html, final_url = await self.fetch_html_record(product_id, category)
        return extract_fields(html, final_url, logger=self.logger)

    def _settle(self, source: str, result: Any, product_id: str) -> Optional[Dict[str, Any]]:
        """Turn a gathered fetch result into a source dict, or None if the fetch failed"""
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, (MetadataFetchError,) + NETWORK_ERRORS):
            self.logger.warning(f"Could not retrieve {source} data for {product_id}: {result}")
            return None
        if isinstance(result, BaseException):
            raise result
        return result

    async def _download_cover(self, url: Optional[str], product_id: str, sequence_id: Optional[int]) -> str:
        if not url or not self.download_covers:
            return ''

        try:
            return await self.image_downloader.download_image(url, product_id, sequence_id) or ''
        except (DownloadError,) + NETWORK_ERRORS as e:
            self.logger.warning(f"Failed to download cover image for {product_id}: {e}")
            return ''

    async def get_game_info(self, product_id: str, category: str = AppConfig.DLSITE_DEFAULT_CATEGORY,
                            sequence_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Get complete game information for a product

        The AJAX endpoint and the work page are fetched concurrently; a
        failing source is treated as missing.

        Args:
            product_id (str): DLSite product ID (e.g., "RJ01347095")
            category (str): DLSite category
            sequence_id (int, optional): Caller supplied ordinal for IDs and file names

        Returns:
            Dict[str, Any]: Result with success status and gameInfo
        """
        product_id = self._normalize_id(product_id)

        try:
            self.logger.info(f"Fetching DLSite info for {product_id} (category: {category})")

            api_result, html_result = await asyncio.gather(
                self.fetch_api_record(product_id),
                self.get_work_details(product_id, category),
                return_exceptions=True,
            )
            api_record = self._settle('API', api_result, product_id)
            html_fields = self._settle('work page', html_result, product_id)

            cover_url = first_non_empty(
                html_fields.get('coverImage') if html_fields else None,
                api_record.get('work_image') if api_record else None,
                '',
            )
            cover_path = await self._download_cover(cover_url, product_id, sequence_id)

            record = self.synthesizer.synthesize(
                api_record=api_record,
                html_fields=html_fields,
                sequence_id=sequence_id,
                product_id=product_id,
                cover_image=cover_path,
            )

            if api_record is None and html_fields is None:
                message = f'No metadata sources available for {product_id}, using placeholders'
            else:
                message = f'Fetched DLSite information for {product_id}'

            self.logger.info(f"Successfully fetched info for {product_id}: {record.title}")
            return {
                'success': True,
                'message': message,
                'gameInfo': record.to_dict(),
                'sources': {
                    'api': api_record is not None,
                    'html': html_fields is not None,
                },
            }

        except Exception as e:
            self.logger.error(f"Error fetching DLSite info for {product_id}: {e}")
            fallback = self.synthesizer.synthesize(sequence_id=sequence_id, product_id=product_id)
            return {
                'success': False,
                'message': f'Error fetching DLSite information: {e}',
                'gameInfo': fallback.to_dict(),
            }
