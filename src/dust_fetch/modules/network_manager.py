"""
Network Manager for Dust Fetch
Sends every outbound request of the application, through the VPN's SOCKS
proxy when the tunnel is up and directly otherwise, with bounded retries.
"""

import asyncio
import errno
import json
import logging
import socket
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

import aiohttp
from aiohttp_socks import ProxyConnector, ProxyError

from ..config.app_config import AppConfig
from .errors import DownloadError
from .logger_config import setup_logger
from .vpn_manager import VPNManager, VpnTunnelState

RETRYABLE_ERRNOS = {
    errno.ECONNRESET,
    errno.ETIMEDOUT,
    errno.ECONNREFUSED,
    errno.EHOSTUNREACH,
}

ProgressCallback = Callable[[Dict[str, int]], None]

# Errors a dispatch can raise once its attempts are exhausted
NETWORK_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError, ProxyError)


@dataclass
class FetchResponse:
    """Fully read HTTP response"""
    status: int
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b''

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self, encoding: str = 'utf-8') -> str:
        return self.body.decode(encoding, errors='replace')

    def json(self) -> Any:
        return json.loads(self.text())


async def _read_with_progress(response: aiohttp.ClientResponse, progress_callback: ProgressCallback) -> bytes:
    total = response.content_length
    downloaded = 0
    chunks = []

    async for chunk in response.content.iter_chunked(64 * 1024):
        chunks.append(chunk)
        downloaded += len(chunk)
        if total:
            progress_callback({
                'downloaded': downloaded,
                'total': total,
                'percentage': round(downloaded / total * 100),
            })

    return b''.join(chunks)


class NetworkManager:
    """Request dispatcher with optional VPN routing"""

    def __init__(self, vpn_manager: Optional[VPNManager] = None, logger: Optional[logging.Logger] = None,
                 max_attempts: int = AppConfig.MAX_ATTEMPTS, retry_delay: float = AppConfig.RETRY_DELAY):
        """
        Initialize Network Manager

        Args:
            vpn_manager (VPNManager, optional): Tunnel controller, a fresh one is created if omitted
            logger (logging.Logger, optional): Logger to use instead of the default one
            max_attempts (int): Total attempts per request, including the first
            retry_delay (float): Fixed delay in seconds between attempts
        """
        self.logger = logger or setup_logger('NetworkManager', 'network_manager.log')
        self.vpn_manager = vpn_manager if vpn_manager is not None else VPNManager()
        self.use_vpn = False
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

    def _sync_vpn_state(self):
        """Turn VPN routing off once the tunnel process has gone away"""
        if self.use_vpn and self.vpn_manager.state == VpnTunnelState.DISCONNECTED:
            self.logger.warning("VPN tunnel is down, disabling VPN routing")
            self.use_vpn = False

    def _select_proxy(self) -> Optional[str]:
        """SOCKS proxy URL to route through, or None for a direct request"""
        self._sync_vpn_state()
        if not self.use_vpn or not self.vpn_manager.is_connected:
            return None

        proxy_url = self.vpn_manager.get_proxy_url()
        if not proxy_url:
            self.logger.debug("VPN connected but no SOCKS proxy available, using direct connection")
            return None
        return proxy_url

    def should_retry(self, error: BaseException) -> bool:
        """
        Decide whether a failed attempt is worth repeating

        Only transient connection failures qualify. DNS failures and HTTP
        statuses are never retried.

        Args:
            error (BaseException): Error raised by the attempt

        Returns:
            bool: True if the request should be sent again
        """
        if isinstance(error, socket.gaierror):
            return False
        if isinstance(error, aiohttp.ClientConnectorError) and isinstance(error.os_error, socket.gaierror):
            return False
        if isinstance(error, (asyncio.TimeoutError, aiohttp.ServerDisconnectedError,
                              ConnectionResetError, ConnectionRefusedError)):
            return True
        if isinstance(error, OSError):
            return error.errno in RETRYABLE_ERRNOS
        return False

    async def _send(self, method: str, url: str, headers: Dict[str, str], timeout: float,
                    proxy_url: Optional[str] = None,
                    progress_callback: Optional[ProgressCallback] = None) -> FetchResponse:
        connector = ProxyConnector.from_url(proxy_url) if proxy_url else None
        client_timeout = aiohttp.ClientTimeout(total=timeout)

        async with aiohttp.ClientSession(connector=connector, timeout=client_timeout) as session:
            async with session.request(method, url, headers=headers) as response:
                if progress_callback is None:
                    body = await response.read()
                else:
                    body = await _read_with_progress(response, progress_callback)

                return FetchResponse(
                    status=response.status,
                    url=str(response.url),
                    headers=dict(response.headers),
                    body=body,
                )

    async def dispatch(self, url: str, method: str = 'GET', headers: Optional[Dict[str, str]] = None,
                       timeout: Optional[float] = None,
                       progress_callback: Optional[ProgressCallback] = None) -> FetchResponse:
        """
        Send a request, retrying transient connection failures

        Args:
            url (str): Absolute URL
            method (str): HTTP method
            headers (dict, optional): Request headers
            timeout (float, optional): Total timeout in seconds, defaults to REQUEST_TIMEOUT
            progress_callback (callable, optional): Receives progress dicts while the body is read

        Returns:
            FetchResponse: Response of any HTTP status

        Raises:
            aiohttp.ClientError, asyncio.TimeoutError, OSError: When the last attempt fails
        """
        timeout = timeout or AppConfig.REQUEST_TIMEOUT
        headers = dict(headers or {})

        for attempt in range(1, self.max_attempts + 1):
            proxy_url = self._select_proxy()
            route = 'vpn' if proxy_url else 'direct'
            start = time.monotonic()

            try:
                response = await self._send(method, url, headers, timeout, proxy_url, progress_callback)
            except NETWORK_ERRORS as e:
                elapsed = int((time.monotonic() - start) * 1000)
                self.logger.warning(
                    f"{method} {url} [{route}] failed after {elapsed}ms "
                    f"(attempt {attempt}/{self.max_attempts}): {type(e).__name__}: {e}"
                )
                if attempt < self.max_attempts and self.should_retry(e):
                    await asyncio.sleep(self.retry_delay)
                    continue
                raise

            elapsed = int((time.monotonic() - start) * 1000)
            self.logger.debug(f"{method} {url} [{route}] -> {response.status} in {elapsed}ms")
            return response

    async def download_file(self, url: str, headers: Optional[Dict[str, str]] = None,
                            progress_callback: Optional[ProgressCallback] = None) -> bytes:
        """
        Download a file into memory

        Args:
            url (str): File URL
            headers (dict, optional): Request headers
            progress_callback (callable, optional): Receives {'downloaded', 'total', 'percentage'}

        Returns:
            bytes: File content

        Raises:
            DownloadError: If the server answers with a non-success status
        """
        response = await self.dispatch(
            url,
            headers=headers,
            timeout=AppConfig.DOWNLOAD_TIMEOUT,
            progress_callback=progress_callback,
        )

        if not response.ok:
            self.logger.error(f"Download failed: HTTP {response.status} - {url}")
            raise DownloadError(url, response.status)

        return response.body

    async def dispatch_batch(self, requests: List[Union[str, Dict[str, Any]]],
                             concurrency: int = AppConfig.BATCH_CONCURRENCY) -> List[Dict[str, Any]]:
        """
        Dispatch several requests with bounded concurrency

        Args:
            requests (list): URLs or dicts with 'url' and optional 'method'/'headers'
            concurrency (int): Maximum requests in flight

        Returns:
            list: One result dict per request, in input order
        """
        semaphore = asyncio.Semaphore(concurrency)

        async def run(request):
            if isinstance(request, str):
                request = {'url': request}
            url = request['url']
            async with semaphore:
                try:
                    response = await self.dispatch(
                        url,
                        method=request.get('method', 'GET'),
                        headers=request.get('headers'),
                    )
                    return {'url': url, 'success': True, 'response': response}
                except NETWORK_ERRORS as e:
                    return {'url': url, 'success': False, 'error': str(e) or type(e).__name__}

        return await asyncio.gather(*(run(request) for request in requests))

    async def enable_vpn(self, config_path: str, username: Optional[str] = None,
                         password: Optional[str] = None) -> Dict[str, Any]:
        """
        Connect the tunnel and route subsequent requests through it

        Returns:
            dict: Result with success status
        """
        try:
            self.logger.info("Enabling VPN for Dust Fetch traffic")
            await self.vpn_manager.connect(config_path, username, password)
            self.use_vpn = True

            return {
                'success': True,
                'message': 'VPN connected',
                'hasProxy': self.vpn_manager.get_proxy_url() is not None,
            }

        except Exception as e:
            self.logger.error(f"VPN connection failed: {e}")
            self.use_vpn = False
            return {
                'success': False,
                'message': str(e) or 'VPN connection failed',
                'error': type(e).__name__,
            }

    async def disable_vpn(self) -> Dict[str, Any]:
        """
        Disconnect the tunnel and go back to direct requests

        Returns:
            dict: Result with success status
        """
        try:
            await self.vpn_manager.disconnect()
            self.use_vpn = False
            self.logger.info("VPN disabled")
            return {'success': True, 'message': 'VPN disconnected'}

        except Exception as e:
            self.logger.error(f"Error disabling VPN: {e}")
            return {
                'success': False,
                'message': f'Error disabling VPN: {e}',
                'error': type(e).__name__,
            }

    def get_vpn_status(self) -> Dict[str, Any]:
        self._sync_vpn_state()
        status = self.vpn_manager.get_status()
        status['enabled'] = self.use_vpn
        return status

    def is_vpn_enabled(self) -> bool:
        self._sync_vpn_state()
        return self.use_vpn and self.vpn_manager.is_connected

    def get_vpn_logs(self) -> List[str]:
        return self.vpn_manager.get_logs()

    async def test_vpn_connection(self) -> Dict[str, Any]:
        """
        Check which public IP requests leave from while the VPN is enabled

        Returns:
            dict: Result with success status and the observed IP
        """
        if not self.is_vpn_enabled():
            return {'success': False, 'message': 'VPN is not enabled'}

        try:
            response = await self.dispatch(AppConfig.VPN_PROXY_PROBE_URL, timeout=10)
            if not response.ok:
                return {'success': False, 'message': f'VPN test failed: HTTP {response.status}'}

            data = response.json()
            return {
                'success': True,
                'message': 'VPN connection works',
                'vpnIP': data.get('origin'),
                'viaProxy': self._select_proxy() is not None,
            }

        except Exception as e:
            self.logger.error(f"VPN test error: {e}")
            return {'success': False, 'message': f'VPN test error: {e}'}
