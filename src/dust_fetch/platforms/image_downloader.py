"""
Image downloader for DLSite covers
Downloads through the NetworkManager (so VPN routing and retries apply)
and stores files in the centralized covers directory.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import urlparse

import aiofiles

from ..config.app_config import AppConfig
from ..modules.logger_config import setup_logger
from ..modules.network_manager import NetworkManager
from .dlsite_common import BASE_ORIGIN, build_headers, ensure_absolute_url
from .product_id import find_product_id

IMAGE_EXTENSIONS = ['.jpg', '.jpeg', '.png', '.gif', '.webp']
DEFAULT_EXTENSION = '.jpg'


class ImageDownloader:
    """Downloads cover images once per URL and names them deterministically"""

    def __init__(self, network_manager: NetworkManager, assets_dir: Optional[str] = None,
                 locale: str = AppConfig.DLSITE_DEFAULT_LOCALE, logger: Optional[logging.Logger] = None):
        """
        Initialize the image downloader

        Args:
            network_manager (NetworkManager): Dispatcher used for every download
            assets_dir (str, optional): Target directory, defaults to the covers directory
            locale (str): Locale for the request headers
            logger (logging.Logger, optional): Logger to use instead of the default one
        """
        self.network_manager = network_manager
        self.assets_dir = Path(assets_dir) if assets_dir else None
        self.logger = logger or setup_logger('ImageDownloader', 'dlsite.log')

        self.headers = build_headers(locale)
        self.headers['Referer'] = f"{BASE_ORIGIN}/"
        self.headers['Accept'] = 'image/webp,image/apng,image/*,*/*;q=0.8'

        # Absolute URL -> relative local path
        self.image_cache: Dict[str, str] = {}
        self._pending: Dict[str, asyncio.Future] = {}

    def _target_dir(self) -> Path:
        if self.assets_dir is not None:
            self.assets_dir.mkdir(parents=True, exist_ok=True)
            return self.assets_dir
        return Path(AppConfig.get_covers_dir())

    @staticmethod
    def build_filename(product_id: str, sequence_id: Optional[int], url: str) -> str:
        """
        Deterministic file name for a downloaded image

        Args:
            product_id (str): Product ID used in the name
            sequence_id (int, optional): Ordinal, written as 5-digit hex
            url (str): Image URL, used for the extension

        Returns:
            str: e.g. "0002a_dlsite_RJ01347095.jpg"
        """
        prefix = f"{sequence_id:05x}" if sequence_id is not None else '00001'

        extension = os.path.splitext(urlparse(url).path)[1].lower()
        if extension not in IMAGE_EXTENSIONS:
            extension = DEFAULT_EXTENSION

        return f"{prefix}_dlsite_{product_id}{extension}"

    async def _resolve_target(self, directory: Path, filename: str, content: bytes) -> Path:
        """
        Pick the path to write to

        An existing file with identical content is reused. Otherwise numeric
        suffixes (_1, _2, ...) are tried until a free or identical file is found.
        """
        stem, extension = os.path.splitext(filename)
        candidate = directory / filename
        counter = 0

        while candidate.exists():
            async with aiofiles.open(candidate, 'rb') as f:
                existing = await f.read()
            if existing == content:
                return candidate

            counter += 1
            candidate = directory / f"{stem}_{counter}{extension}"

        if counter:
            self.logger.warning(f"Image file {filename} already exists with different content, using {candidate.name}")
        return candidate

    async def download_image(self, url: Optional[str], product_id: Optional[str] = None,
                             sequence_id: Optional[int] = None) -> Optional[str]:
        """
        Download an image and save it locally

        Args:
            url (str): Image URL, relative URLs are resolved against dlsite.com
            product_id (str, optional): Product ID for the file name, taken from the URL if omitted
            sequence_id (int, optional): Ordinal for the file name

        Returns:
            Optional[str]: Relative path of the saved image, None if no URL was given

        Raises:
            DownloadError: If the server answers with a non-success status
        """
        absolute_url = ensure_absolute_url(url)
        if not absolute_url:
            self.logger.warning("No image URL provided for download")
            return None

        if absolute_url in self.image_cache:
            self.logger.debug(f"Image cache hit: {absolute_url}")
            return self.image_cache[absolute_url]

        # Concurrent callers for the same URL share one download
        pending = self._pending.get(absolute_url)
        if pending is None:
            pending = asyncio.ensure_future(self._download_and_store(absolute_url, product_id, sequence_id))
            self._pending[absolute_url] = pending
            pending.add_done_callback(lambda _: self._pending.pop(absolute_url, None))
        else:
            self.logger.debug(f"Image download already in progress: {absolute_url}")

        return await asyncio.shield(pending)

    async def _download_and_store(self, absolute_url: str, product_id: Optional[str],
                                  sequence_id: Optional[int]) -> str:
        if not product_id:
            product_id = find_product_id(absolute_url) or 'unknown'
            self.logger.info(f"No product ID given for image, using: {product_id}")

        self.logger.info(f"Downloading image {absolute_url} for {product_id}")
        content = await self.network_manager.download_file(absolute_url, headers=self.headers)

        filename = self.build_filename(product_id, sequence_id, absolute_url)
        target = await self._resolve_target(self._target_dir(), filename, content)

        if not target.exists():
            async with aiofiles.open(target, 'wb') as f:
                await f.write(content)

        relative_path = AppConfig.get_relative_cover_path(target.name)
        self.image_cache[absolute_url] = relative_path

        self.logger.info(f"Image saved: {relative_path} ({len(content)} bytes)")
        return relative_path

    def clear_cache(self):
        self.image_cache.clear()
