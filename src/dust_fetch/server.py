#!/usr/bin/env python3
"""
Dust Fetch - Backend Server
HTTP API for the Dust Game Manager frontend: DLSite lookups, folder scans
and the application-only VPN.
"""

import argparse
import asyncio
import logging
import sys
import threading
from typing import Any, Coroutine, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS

from . import __version__
from .config.app_config import AppConfig
from .modules.logger_config import cleanup_old_logs, set_log_level, setup_logger
from .modules.network_manager import NetworkManager
from .modules.platform_manager import PlatformManager

APP_LOGGERS = [
    'DustFetchServer', 'NetworkManager', 'VPNManager', 'PlatformManager',
    'FileManager', 'DLSiteClient', 'ImageDownloader', 'RecordSynthesizer',
]


class DustFetchServer:
    """Flask server with one background event loop for all async work"""

    def __init__(self, host: str = AppConfig.DEFAULT_HOST, port: int = AppConfig.DEFAULT_PORT,
                 debug: bool = False, network_manager: Optional[NetworkManager] = None,
                 platform_manager: Optional[PlatformManager] = None):
        """
        Initialize the Dust Fetch server

        Args:
            host (str): Server host address
            port (int): Server port number
            debug (bool): Enable debug mode
            network_manager (NetworkManager, optional): Shared dispatcher, created if omitted
            platform_manager (PlatformManager, optional): Platform entry points, created if omitted
        """
        self.host = host
        self.port = port
        self.debug = debug
        self.logger = setup_logger('DustFetchServer', 'backend.log')

        # Every coroutine runs on this loop so the VPN process and its readers
        # stay on the loop that created them
        self.loop = asyncio.new_event_loop()
        self._stopped = False
        self._loop_thread = threading.Thread(target=self._run_loop, name='dust-fetch-loop', daemon=True)
        self._loop_thread.start()

        self.network_manager = network_manager or NetworkManager()
        self.platform_manager = platform_manager or PlatformManager(self.network_manager)

        self.app = Flask(__name__)
        CORS(self.app)
        self._setup_routes()

    def _run_loop(self):
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def _run(self, coro: Coroutine) -> Any:
        """Run a coroutine on the background loop and wait for its result"""
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result()

    def _setup_routes(self):
        """Setup all API routes"""

        @self.app.route('/api/status', methods=['GET'])
        def get_status():
            """Health check endpoint with VPN status"""
            return jsonify({
                'success': True,
                'status': 'online',
                'message': f'{AppConfig.APP_NAME} backend is running',
                'version': __version__,
                'vpn': self.network_manager.get_vpn_status(),
            })

        @self.app.route('/api/dlsite/info/<dlsite_id>', methods=['GET'])
        def get_dlsite_info(dlsite_id):
            """Get game information from DLSite"""
            try:
                category = request.args.get('category', AppConfig.DLSITE_DEFAULT_CATEGORY)
                sequence_id = request.args.get('sequenceId', type=int)

                result = self._run(
                    self.platform_manager.fetch_dlsite_game_details(dlsite_id, category, sequence_id)
                )
                return jsonify(result)
            except Exception as e:
                self.logger.error(f"Error getting DLSite info for {dlsite_id}: {e}")
                return jsonify({
                    'success': False,
                    'message': f'Error retrieving DLSite information: {str(e)}'
                }), 500

        @self.app.route('/api/steam/info/<app_id>', methods=['GET'])
        def get_steam_info(app_id):
            """Get game information from Steam"""
            return jsonify(self._run(self.platform_manager.fetch_steam_game_details(app_id)))

        @self.app.route('/api/itchio/info', methods=['GET'])
        def get_itchio_info():
            """Get game information from Itch.io"""
            url = request.args.get('url')
            if not url:
                return jsonify({
                    'success': False,
                    'message': 'Missing url parameter'
                }), 400

            return jsonify(self._run(self.platform_manager.fetch_itchio_game_details(url)))

        @self.app.route('/api/games/scan', methods=['POST'])
        def scan_games():
            """Scan a folder for games of one platform"""
            data = request.get_json(silent=True) or {}
            folder_path = data.get('folderPath')
            if not folder_path:
                return jsonify({
                    'success': False,
                    'message': 'Missing folderPath'
                }), 400

            try:
                result = self._run(
                    self.platform_manager.scan_folder_for_games(folder_path, data.get('platform', 'other'))
                )
                return jsonify(result)
            except Exception as e:
                self.logger.error(f"Error scanning {folder_path}: {e}")
                return jsonify({
                    'success': False,
                    'games': [],
                    'message': f'Error scanning folder: {str(e)}'
                }), 500

        @self.app.route('/api/vpn/status', methods=['GET'])
        def get_vpn_status():
            """Get current VPN connection status"""
            return jsonify({
                'success': True,
                'status': self.network_manager.get_vpn_status()
            })

        @self.app.route('/api/vpn/logs', methods=['GET'])
        def get_vpn_logs():
            return jsonify({
                'success': True,
                'logs': self.network_manager.get_vpn_logs()
            })

        @self.app.route('/api/vpn/connect', methods=['POST'])
        def connect_vpn():
            """Connect the application VPN"""
            data = request.get_json(silent=True) or {}
            config_file = data.get('configFile')
            if not config_file:
                return jsonify({
                    'success': False,
                    'message': 'Missing configFile'
                }), 400

            result = self._run(
                self.network_manager.enable_vpn(config_file, data.get('username'), data.get('password'))
            )
            return jsonify(result)

        @self.app.route('/api/vpn/disconnect', methods=['POST'])
        def disconnect_vpn():
            """Disconnect the application VPN"""
            return jsonify(self._run(self.network_manager.disable_vpn()))

        @self.app.route('/api/vpn/test', methods=['POST'])
        def test_vpn():
            """Check the public IP seen through the VPN"""
            return jsonify(self._run(self.network_manager.test_vpn_connection()))

        # Error handlers
        @self.app.errorhandler(404)
        def not_found(error):
            return jsonify({
                'success': False,
                'message': 'API endpoint not found'
            }), 404

        @self.app.errorhandler(500)
        def internal_error(error):
            return jsonify({
                'success': False,
                'message': 'Internal server error'
            }), 500

    async def cleanup(self):
        """Disconnect the VPN if it is up"""
        await self.network_manager.vpn_manager.cleanup()

    def shutdown(self):
        """Run cleanup and stop the background loop"""
        if self._stopped:
            return
        self._stopped = True
        try:
            self._run(self.cleanup())
        finally:
            self.loop.call_soon_threadsafe(self.loop.stop)
            self._loop_thread.join(timeout=5)

    def run(self) -> bool:
        """Start the Flask server"""
        self.logger.info(f"Starting {AppConfig.APP_NAME} v{__version__} on http://{self.host}:{self.port}")

        removed = cleanup_old_logs()
        if removed:
            self.logger.info(f"Removed {removed} old log files")

        if self.debug:
            for name in APP_LOGGERS:
                set_log_level(name, logging.DEBUG)
        else:
            logging.getLogger('werkzeug').setLevel(logging.WARNING)

        try:
            self.app.run(
                host=self.host,
                port=self.port,
                debug=self.debug,
                threaded=True,
                use_reloader=False,
            )
        except OSError as e:
            self.logger.error(f"Error starting server: {e}")
            return False
        finally:
            self.shutdown()

        return True


def main():
    """Console entry point"""
    parser = argparse.ArgumentParser(description=f'{AppConfig.APP_NAME} backend server')
    parser.add_argument('--host', default=AppConfig.DEFAULT_HOST, help='Host address')
    parser.add_argument('--port', type=int, default=AppConfig.DEFAULT_PORT, help='Port number')
    parser.add_argument('--debug', action='store_true', help='Enable debug mode')
    args = parser.parse_args()

    server = DustFetchServer(host=args.host, port=args.port, debug=args.debug)

    try:
        success = server.run()
    except KeyboardInterrupt:
        server.logger.info("Shutting down server")
        server.shutdown()
        success = True

    sys.exit(0 if success else 1)


if __name__ == '__main__':
    main()
