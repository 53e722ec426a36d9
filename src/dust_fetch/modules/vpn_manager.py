"""
VPN Manager for Dust Fetch
Runs an OpenVPN process for this application only, tracks its state from the
process output and exposes a local SOCKS proxy once the tunnel is up.
"""

import asyncio
import logging
import os
import platform
import shutil
import tempfile
from collections import deque
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiohttp
from aiohttp_socks import ProxyConnectionError, ProxyConnector, ProxyError, ProxyTimeoutError

from ..config.app_config import PROJECT_ROOT, AppConfig
from .errors import (
    AuthFailedError,
    ExecutableNotFoundError,
    TunnelTimeoutError,
    VPNConnectionRefusedError,
    VPNError,
)
from .logger_config import setup_logger


class VpnTunnelState(Enum):
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    RECONNECTING = 'reconnecting'
    AUTH_FAILED = 'auth_failed'
    CONNECTION_REFUSED = 'connection_refused'
    ERROR = 'error'


# Output substring -> resulting state, checked in order
OUTPUT_STATE_MARKERS = [
    ('Initialization Sequence Completed', VpnTunnelState.CONNECTED),
    ('CONNECTED,SUCCESS', VpnTunnelState.CONNECTED),
    ('AUTH_FAILED', VpnTunnelState.AUTH_FAILED),
    ('RECONNECTING', VpnTunnelState.RECONNECTING),
    ('Connection refused', VpnTunnelState.CONNECTION_REFUSED),
]

MAX_LOG_LINES = 1000


class VPNManager:
    """Manages an OpenVPN tunnel process and its SOCKS proxy"""

    def __init__(self, logger: Optional[logging.Logger] = None,
                 proxy_host: str = AppConfig.SOCKS_PROXY_HOST,
                 proxy_port: int = AppConfig.SOCKS_PROXY_PORT,
                 connect_timeout: float = AppConfig.VPN_CONNECT_TIMEOUT,
                 terminate_grace: float = AppConfig.VPN_TERMINATE_GRACE):
        """
        Initialize VPN Manager

        Args:
            logger (logging.Logger, optional): Logger to use instead of the default one
            proxy_host (str): Host of the SOCKS proxy exposed by the tunnel
            proxy_port (int): Port of the SOCKS proxy exposed by the tunnel
            connect_timeout (float): Seconds to wait for the tunnel to come up
            terminate_grace (float): Seconds to wait after SIGTERM before killing
        """
        self.logger = logger or setup_logger('VPNManager', 'vpn_manager.log')

        self.proxy_host = proxy_host
        self.proxy_port = proxy_port
        self.connect_timeout = connect_timeout
        self.terminate_grace = terminate_grace
        self.poll_interval = 0.25

        # Tunnel state, only written by this class
        self.state = VpnTunnelState.DISCONNECTED
        self.vpn_process: Optional[asyncio.subprocess.Process] = None
        self.proxy_url: Optional[str] = None
        self.auth_file_path: Optional[str] = None
        self.current_config: Optional[str] = None
        self.connection_start_time: Optional[datetime] = None
        self.last_error: Optional[str] = None

        self.log_buffer = deque(maxlen=MAX_LOG_LINES)
        self._tasks: List[asyncio.Task] = []

        self.openvpn_paths = self._get_openvpn_paths()

    @property
    def is_connected(self) -> bool:
        return self.state == VpnTunnelState.CONNECTED

    def _get_openvpn_paths(self) -> List[str]:
        """Platform specific OpenVPN locations, in probe order"""
        system = platform.system()

        if system == 'Windows':
            return [
                str(PROJECT_ROOT / 'bin' / 'openvpn' / 'openvpn.exe'),
                r"C:\Program Files\OpenVPN\bin\openvpn.exe",
                r"C:\Program Files (x86)\OpenVPN\bin\openvpn.exe",
            ]
        elif system == 'Darwin':
            return [
                '/usr/local/bin/openvpn',
                '/opt/homebrew/bin/openvpn',
                '/Applications/Tunnelblick.app/Contents/Resources/openvpn/openvpn-2.5.8/openvpn',
            ]
        return [
            '/usr/sbin/openvpn',
            '/usr/bin/openvpn',
            '/usr/local/bin/openvpn',
        ]

    def find_openvpn_executable(self) -> str:
        """
        Find the OpenVPN executable on the system

        Returns:
            str: Path to the executable

        Raises:
            ExecutableNotFoundError: If no candidate path exists
        """
        for path in self.openvpn_paths:
            if os.path.exists(path):
                self.logger.info(f"OpenVPN found: {path}")
                return path

        found = shutil.which('openvpn')
        if found:
            self.logger.info(f"OpenVPN found on PATH: {found}")
            return found

        raise ExecutableNotFoundError('OpenVPN executable not found. Please install OpenVPN.')

    def _create_auth_file(self, username: str, password: str) -> str:
        """Write credentials to a file only the current user can read"""
        fd, path = tempfile.mkstemp(prefix='auth_', suffix='.txt', dir=AppConfig.get_vpn_dir())
        os.chmod(path, 0o600)
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(f"{username}\n{password}\n")
        return path

    def _cleanup_auth_file(self):
        if not self.auth_file_path:
            return
        try:
            os.remove(self.auth_file_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            self.logger.warning(f"Could not delete auth file {self.auth_file_path}: {e}")
        self.auth_file_path = None

    def build_openvpn_args(self, config_path: str) -> List[str]:
        """Build the OpenVPN argument list; the tunnel never takes over the default route"""
        args = [
            '--config', config_path,
            '--verb', '3',
            '--script-security', '2',
            '--disable-occ',
            '--pull-filter', 'ignore', 'redirect-gateway',
        ]

        if self.auth_file_path:
            args.extend(['--auth-user-pass', self.auth_file_path])

        if platform.system() == 'Windows':
            args.extend(['--dev-type', 'tun'])

        return args

    def parse_openvpn_output(self, line: str):
        """Update the tunnel state from one line of OpenVPN output"""
        for marker, new_state in OUTPUT_STATE_MARKERS:
            if marker in line:
                if new_state != self.state:
                    self.logger.info(f"VPN state: {self.state.value} -> {new_state.value}")
                self.state = new_state
                return

    def _add_to_log(self, stream: str, message: str):
        timestamp = datetime.now().isoformat()
        self.log_buffer.append(f"[{timestamp}] {stream}: {message}")

    async def _spawn_process(self, executable: str, args: List[str], cwd: Optional[str]) -> asyncio.subprocess.Process:
        return await asyncio.create_subprocess_exec(
            executable, *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )

    async def _read_stream(self, stream: asyncio.StreamReader, label: str):
        while True:
            line = await stream.readline()
            if not line:
                break
            text = line.decode('utf-8', errors='replace').rstrip()
            if text:
                self._add_to_log(label, text)
                self.parse_openvpn_output(text)

    async def _watch_process(self, process: asyncio.subprocess.Process):
        code = await process.wait()
        self.logger.info(f"VPN process exited with code {code}")
        self._add_to_log('EXIT', f"code {code}")

        if self.vpn_process is not process:
            return
        if self.state in (VpnTunnelState.CONNECTING, VpnTunnelState.RECONNECTING):
            self.state = VpnTunnelState.ERROR
        elif self.state == VpnTunnelState.CONNECTED:
            self.logger.warning("VPN process exited while connected")
            self.state = VpnTunnelState.DISCONNECTED
            self.current_config = None
            self.connection_start_time = None
            self._cleanup_auth_file()
        self.proxy_url = None

    async def connect(self, config_path: str, username: Optional[str] = None, password: Optional[str] = None):
        """
        Start the tunnel and wait until it is connected

        Args:
            config_path (str): Path to the OpenVPN configuration file
            username (str, optional): VPN username
            password (str, optional): VPN password

        Raises:
            ExecutableNotFoundError: OpenVPN is not installed
            AuthFailedError: The server rejected the credentials
            VPNConnectionRefusedError: The server refused the connection
            TunnelTimeoutError: The tunnel did not come up in time
            VPNError: Any other tunnel failure
        """
        if self.state in (VpnTunnelState.CONNECTED, VpnTunnelState.CONNECTING):
            raise VPNError(f'VPN is already {self.state.value}')

        if not os.path.exists(config_path):
            raise VPNError(f'VPN configuration file not found: {config_path}')

        # A tunnel left reconnecting or refused still owns a live process
        if self.vpn_process is not None:
            self.logger.info(f"Stopping previous OpenVPN process (state: {self.state.value})")
            await self._teardown()

        self.state = VpnTunnelState.CONNECTING
        self.last_error = None

        try:
            openvpn_exe = self.find_openvpn_executable()

            if username and password:
                self.auth_file_path = self._create_auth_file(username, password)

            args = self.build_openvpn_args(config_path)
            self.logger.info(f"Starting OpenVPN: {openvpn_exe} {' '.join(args)}")

            self.vpn_process = await self._spawn_process(
                openvpn_exe, args, os.path.dirname(os.path.abspath(config_path))
            )
            self.logger.info(f"OpenVPN process started with PID: {self.vpn_process.pid}")

            self._tasks = [
                asyncio.ensure_future(self._read_stream(self.vpn_process.stdout, 'STDOUT')),
                asyncio.ensure_future(self._read_stream(self.vpn_process.stderr, 'STDERR')),
                asyncio.ensure_future(self._watch_process(self.vpn_process)),
            ]

            await self._wait_for_connection()

        except Exception as e:
            self.last_error = str(e)
            self.logger.error(f"VPN connection failed: {e}")
            await self._teardown()
            self.state = VpnTunnelState.DISCONNECTED
            raise

        self.current_config = config_path
        self.connection_start_time = datetime.now()
        self.logger.info("VPN connection established")

        await self._setup_socks_proxy()

    async def _wait_for_connection(self):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.connect_timeout

        while True:
            if self.state == VpnTunnelState.CONNECTED:
                return
            if self.state == VpnTunnelState.AUTH_FAILED:
                raise AuthFailedError('VPN authentication failed')
            if self.state == VpnTunnelState.CONNECTION_REFUSED:
                raise VPNConnectionRefusedError('VPN server refused the connection')
            if self.state == VpnTunnelState.ERROR:
                raise VPNError('VPN process failed before the tunnel came up')
            if loop.time() >= deadline:
                self.state = VpnTunnelState.ERROR
                raise TunnelTimeoutError(f'VPN connection timeout after {self.connect_timeout}s')
            await asyncio.sleep(self.poll_interval)

    async def _setup_socks_proxy(self):
        """Best-effort check that the tunnel's SOCKS proxy answers"""
        candidate = f"socks5://{self.proxy_host}:{self.proxy_port}"
        try:
            reachable = await self._probe_proxy(candidate)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError,
                ProxyError, ProxyConnectionError, ProxyTimeoutError) as e:
            self.logger.debug(f"SOCKS proxy probe failed: {e}")
            reachable = False

        if reachable:
            self.proxy_url = candidate
            self.logger.info(f"SOCKS proxy active: {candidate}")
        else:
            self.proxy_url = None
            self.logger.warning("SOCKS proxy not available, requests will go out directly (degraded mode)")

    async def _probe_proxy(self, proxy_url: str) -> bool:
        connector = ProxyConnector.from_url(proxy_url)
        timeout = aiohttp.ClientTimeout(total=AppConfig.VPN_PROXY_PROBE_TIMEOUT)
        async with aiohttp.ClientSession(connector=connector, timeout=timeout) as session:
            async with session.get(AppConfig.VPN_PROXY_PROBE_URL) as response:
                if response.status != 200:
                    return False
                data = await response.json(content_type=None)
                self.logger.info(f"SOCKS proxy active. VPN IP: {data.get('origin')}")
                return True

    async def disconnect(self):
        """Stop the tunnel. Calling this while disconnected is a no-op."""
        if self.vpn_process is None and self.state == VpnTunnelState.DISCONNECTED and not self.auth_file_path:
            return

        self.logger.info("Disconnecting from VPN")
        await self._teardown()
        self.state = VpnTunnelState.DISCONNECTED
        self.logger.info("VPN disconnected")

    async def _teardown(self):
        # Detached first so the watcher does not report this exit as unexpected
        process = self.vpn_process
        self.vpn_process = None

        if process is not None and process.returncode is None:
            try:
                process.terminate()
                try:
                    await asyncio.wait_for(process.wait(), timeout=self.terminate_grace)
                except asyncio.TimeoutError:
                    self.logger.warning("OpenVPN process did not terminate gracefully, forcing kill")
                    process.kill()
                    await process.wait()
            except ProcessLookupError:
                pass

        for task in self._tasks:
            if not task.done():
                task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        self.proxy_url = None
        self.current_config = None
        self.connection_start_time = None
        self._cleanup_auth_file()

    def get_proxy_url(self) -> Optional[str]:
        return self.proxy_url

    def get_status(self) -> Dict[str, Any]:
        """Get current VPN status; safe to call at any time"""
        duration = None
        if self.is_connected and self.connection_start_time:
            duration = int((datetime.now() - self.connection_start_time).total_seconds())

        return {
            'state': self.state.value,
            'connected': self.is_connected,
            'hasProxy': self.proxy_url is not None,
            'processAlive': self.vpn_process is not None and self.vpn_process.returncode is None,
            'configFile': self.current_config,
            'connectionDuration': duration,
            'lastError': self.last_error,
            'logs': list(self.log_buffer)[-50:],
        }

    def get_logs(self) -> List[str]:
        return list(self.log_buffer)

    async def cleanup(self):
        """Cleanup VPN manager resources"""
        await self.disconnect()
        self.logger.info("VPN Manager cleanup completed")
