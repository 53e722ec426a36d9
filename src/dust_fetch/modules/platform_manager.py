"""
Platform Manager for Dust Fetch
Entry points per game platform: detail lookups and folder scans.
"""

import asyncio
import logging
import os
import re
from typing import Any, Dict, List, Optional

from ..config.app_config import AppConfig
from ..platforms.dlsite_client import DLSiteClient
from ..platforms.product_id import find_product_id, resolve_product_id
from .errors import IdentifierNotFoundError, MetadataFetchError
from .file_manager import FileManager
from .logger_config import setup_logger
from .network_manager import NetworkManager

STEAM_MARKER_FILES = ['steam_api.dll', 'steam_api64.dll', 'steam_appid.txt']
ITCHIO_URL_PATTERN = re.compile(r'https?://[^\s"]+itch\.io/[^\s"]+')


class PlatformManager:
    """Routes game lookups and folder scans to the right platform"""

    def __init__(self, network_manager: NetworkManager, dlsite_client: Optional[DLSiteClient] = None,
                 file_manager: Optional[FileManager] = None, logger: Optional[logging.Logger] = None):
        """
        Initialize Platform Manager

        Args:
            network_manager (NetworkManager): Shared request dispatcher
            dlsite_client (DLSiteClient, optional): DLSite client, created if omitted
            file_manager (FileManager, optional): Executable finder, created if omitted
            logger (logging.Logger, optional): Logger to use instead of the default one
        """
        self.logger = logger or setup_logger('PlatformManager', 'platform_manager.log')
        self.network_manager = network_manager
        self.dlsite_client = dlsite_client or DLSiteClient(network_manager)
        self.file_manager = file_manager or FileManager()

    async def fetch_dlsite_game_details(self, raw_identifier: str,
                                        category: str = AppConfig.DLSITE_DEFAULT_CATEGORY,
                                        sequence_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Look up a DLSite game from any string containing its product ID

        Args:
            raw_identifier (str): Product ID, path or URL
            category (str): DLSite category
            sequence_id (int, optional): Caller supplied ordinal

        Returns:
            Dict[str, Any]: Result with success status and gameInfo
        """
        try:
            product_id = resolve_product_id(raw_identifier)
        except IdentifierNotFoundError as e:
            self.logger.warning(f"{e}, using input as given")
            product_id = raw_identifier

        self.logger.info(f"Searching for DLSite game {product_id} (category: {category}, sequence: {sequence_id})")
        return await self.dlsite_client.get_game_info(product_id, category, sequence_id)

    async def fetch_steam_game_details(self, app_id: str) -> Dict[str, Any]:
        """Placeholder Steam record until a Steam client exists"""
        self.logger.info(f"Searching for Steam game {app_id}")
        game_info = {
            'title': f'Steam Game {app_id}',
            'developer': 'Unknown Developer',
            'publisher': 'Steam',
            'genre': 'Other',
            'description': f'A game from Steam with ID {app_id}',
            'coverImage': f'https://cdn.cloudflare.steamstatic.com/steam/apps/{app_id}/header.jpg',
            'source': 'Steam',
            'steamAppId': app_id,
        }
        return {'success': True, 'message': 'Steam details are not fetched yet', 'gameInfo': game_info}

    async def fetch_itchio_game_details(self, url: str) -> Dict[str, Any]:
        """Placeholder Itch.io record until an Itch.io client exists"""
        self.logger.info(f"Searching for Itch.io game {url}")
        game_info = {
            'title': 'Itch.io Game',
            'developer': 'Unknown Developer',
            'publisher': 'Itch.io',
            'genre': 'Indie',
            'description': f'A game from Itch.io with URL {url}',
            'coverImage': '',
            'source': 'Itch.io',
            'itchioUrl': url,
        }
        return {'success': True, 'message': 'Itch.io details are not fetched yet', 'gameInfo': game_info}

    async def fetch_many(self, identifiers: List[str], category: str = AppConfig.DLSITE_DEFAULT_CATEGORY,
                         concurrency: int = AppConfig.BATCH_CONCURRENCY) -> List[Dict[str, Any]]:
        """
        Look up several DLSite games with bounded concurrency

        Args:
            identifiers (list): Raw identifiers; the list position + 1 is used as sequence id
            category (str): DLSite category
            concurrency (int): Maximum lookups in flight

        Returns:
            list: One result per identifier, in input order
        """
        semaphore = asyncio.Semaphore(concurrency)

        async def fetch(index, identifier):
            async with semaphore:
                return await self.fetch_dlsite_game_details(identifier, category, index + 1)

        return await asyncio.gather(*(fetch(i, identifier) for i, identifier in enumerate(identifiers)))

    def _list_subdirectories(self, folder_path: str) -> List[str]:
        return sorted(
            entry for entry in os.listdir(folder_path)
            if os.path.isdir(os.path.join(folder_path, entry))
        )

    def _scanned_game(self, title: str, dir_path: str, executables: List[str], genre: str, source: str) -> Dict[str, Any]:
        return {
            'title': title,
            'directory': dir_path,
            'executable': executables[0] if executables else '',
            'executablePath': dir_path,
            'genre': genre,
            'source': source,
            'installed': True,
        }

    async def scan_folder_for_games(self, folder_path: str, platform: str = 'other') -> Dict[str, Any]:
        """
        Scan the subdirectories of a folder for games of one platform

        Args:
            folder_path (str): Folder containing one directory per game
            platform (str): "dlsite", "steam", "itchio" or anything else for a generic scan

        Returns:
            Dict[str, Any]: Result with success status and the found games
        """
        self.logger.info(f"Starting {platform} folder scan: {folder_path}")

        scanners = {
            'dlsite': (self._scan_dlsite_directory, 'DLSite'),
            'steam': (self._scan_steam_directory, 'Steam'),
            'itchio': (self._scan_itchio_directory, 'Itch.io'),
            'itch.io': (self._scan_itchio_directory, 'Itch.io'),
        }
        scanner, label = scanners.get(platform.lower(), (self._scan_generic_directory, None))

        try:
            directories = self._list_subdirectories(folder_path)
        except OSError as e:
            self.logger.error(f"Error scanning folder {folder_path}: {e}")
            return {'success': False, 'games': [], 'message': f'Error: {e}'}

        games = []
        for name in directories:
            dir_path = os.path.join(folder_path, name)
            try:
                game = await scanner(name, dir_path)
            except OSError as e:
                self.logger.warning(f"Error scanning directory {dir_path}: {e}")
                continue
            if game:
                games.append(game)

        self.logger.info(f"Folder scan completed: {len(games)} games found in {folder_path}")
        return {
            'success': True,
            'games': games,
            'message': f"{len(games)} {label + ' ' if label else ''}games found",
        }

    async def _scan_dlsite_directory(self, name: str, dir_path: str) -> Optional[Dict[str, Any]]:
        executables = self.file_manager.find_executables(dir_path)

        product_id = self.dlsite_client.extract_dlsite_id(dir_path) or find_product_id(name)
        if not product_id:
            for executable in executables:
                product_id = find_product_id(os.path.basename(executable))
                if product_id:
                    break
        if not product_id:
            return None

        self.logger.info(f"DLSite ID {product_id} found in directory {name}")
        game = self._scanned_game(f'DLSite Game {product_id}', dir_path, executables, 'Visual Novel', 'DLSite')
        game['dlsiteId'] = product_id

        # Only the API record is fetched to keep scans fast
        try:
            api_record = await self.dlsite_client.fetch_api_record(product_id)
        except MetadataFetchError as e:
            self.logger.warning(f"Could not retrieve API details for {product_id}: {e}")
            return game

        game['title'] = api_record.get('work_name') or game['title']
        game['developer'] = api_record.get('maker_name') or 'Unknown Developer'
        game['publisher'] = 'DLSite'
        return game

    async def _scan_steam_directory(self, name: str, dir_path: str) -> Optional[Dict[str, Any]]:
        files = os.listdir(dir_path)
        if not any(marker in files for marker in STEAM_MARKER_FILES):
            return None

        game = self._scanned_game(name, dir_path, self.file_manager.find_executables(dir_path), 'Other', 'Steam')
        game['steamAppId'] = None

        if 'steam_appid.txt' in files:
            try:
                with open(os.path.join(dir_path, 'steam_appid.txt'), 'r', encoding='utf-8') as f:
                    game['steamAppId'] = f.read().strip() or None
            except OSError as e:
                self.logger.warning(f"Could not read steam_appid.txt in {name}: {e}")

        self.logger.info(f"Steam game found in directory {name} (app id: {game['steamAppId']})")
        return game

    async def _scan_itchio_directory(self, name: str, dir_path: str) -> Optional[Dict[str, Any]]:
        files = os.listdir(dir_path)
        if '.itch' not in files and 'itch.io' not in name.lower():
            return None

        game = self._scanned_game(name, dir_path, self.file_manager.find_executables(dir_path), 'Indie', 'Itch.io')
        game['itchioUrl'] = None

        if '.itch' in files and os.path.isfile(os.path.join(dir_path, '.itch')):
            try:
                with open(os.path.join(dir_path, '.itch'), 'r', encoding='utf-8', errors='replace') as f:
                    match = ITCHIO_URL_PATTERN.search(f.read())
                if match:
                    game['itchioUrl'] = match.group(0)
            except OSError as e:
                self.logger.warning(f"Could not read .itch file in {name}: {e}")

        self.logger.info(f"Itch.io game found in directory {name}")
        return game

    async def _scan_generic_directory(self, name: str, dir_path: str) -> Optional[Dict[str, Any]]:
        executables = self.file_manager.find_executables(dir_path)
        if not executables:
            return None

        self.logger.info(f"Potential game found in directory {name}")
        return self._scanned_game(name, dir_path, executables, 'Other', 'Other')
