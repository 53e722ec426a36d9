"""
Tests for the HTTP API, with the managers mocked.
"""
from unittest.mock import AsyncMock, Mock

import pytest

from dust_fetch.server import DustFetchServer

VPN_STATUS = {'state': 'disconnected', 'connected': False, 'hasProxy': False, 'enabled': False}


@pytest.fixture
def network_manager():
    manager = Mock()
    manager.get_vpn_status = Mock(return_value=VPN_STATUS)
    manager.get_vpn_logs = Mock(return_value=['line'])
    manager.enable_vpn = AsyncMock(return_value={'success': True, 'message': 'VPN enabled', 'hasProxy': False})
    manager.disable_vpn = AsyncMock(return_value={'success': True, 'message': 'VPN disabled'})
    manager.test_vpn_connection = AsyncMock(return_value={'success': False, 'message': 'VPN is not enabled'})
    manager.vpn_manager.cleanup = AsyncMock()
    return manager


@pytest.fixture
def platform_manager():
    manager = Mock()
    manager.fetch_dlsite_game_details = AsyncMock(
        return_value={'success': True, 'message': 'ok', 'gameInfo': {'dlsiteId': 'RJ01347095'}}
    )
    manager.fetch_steam_game_details = AsyncMock(return_value={'success': True, 'gameInfo': {'steamAppId': '620'}})
    manager.fetch_itchio_game_details = AsyncMock(return_value={'success': True, 'gameInfo': {}})
    manager.scan_folder_for_games = AsyncMock(return_value={'success': True, 'games': [], 'message': '0 games found'})
    return manager


@pytest.fixture
def server(network_manager, platform_manager):
    server = DustFetchServer(network_manager=network_manager, platform_manager=platform_manager)
    yield server
    server.shutdown()


@pytest.fixture
def client(server):
    return server.app.test_client()


def test_status(client):
    response = client.get('/api/status')

    assert response.status_code == 200
    data = response.get_json()
    assert data['success'] is True
    assert data['status'] == 'online'
    assert data['vpn'] == VPN_STATUS


def test_unknown_route_returns_json_404(client):
    response = client.get('/api/nothing')

    assert response.status_code == 404
    assert response.get_json()['success'] is False


def test_dlsite_info_passes_query_args(client, platform_manager):
    response = client.get('/api/dlsite/info/RJ01347095?category=pro&sequenceId=42')

    assert response.status_code == 200
    assert response.get_json()['gameInfo']['dlsiteId'] == 'RJ01347095'
    platform_manager.fetch_dlsite_game_details.assert_awaited_once_with('RJ01347095', 'pro', 42)


def test_dlsite_info_error(client, platform_manager):
    platform_manager.fetch_dlsite_game_details.side_effect = RuntimeError('boom')

    response = client.get('/api/dlsite/info/RJ01347095')

    assert response.status_code == 500
    assert 'boom' in response.get_json()['message']


def test_steam_info(client):
    response = client.get('/api/steam/info/620')
    assert response.get_json()['gameInfo']['steamAppId'] == '620'


def test_itchio_info_requires_url(client, platform_manager):
    assert client.get('/api/itchio/info').status_code == 400

    response = client.get('/api/itchio/info?url=https://dev.itch.io/game')
    assert response.status_code == 200
    platform_manager.fetch_itchio_game_details.assert_awaited_once_with('https://dev.itch.io/game')


def test_scan_requires_folder(client, platform_manager):
    assert client.post('/api/games/scan', json={}).status_code == 400

    response = client.post('/api/games/scan', json={'folderPath': '/games', 'platform': 'steam'})
    assert response.get_json()['success'] is True
    platform_manager.scan_folder_for_games.assert_awaited_once_with('/games', 'steam')


def test_vpn_routes(client, network_manager):
    assert client.get('/api/vpn/status').get_json() == {'success': True, 'status': VPN_STATUS}
    assert client.get('/api/vpn/logs').get_json()['logs'] == ['line']
    assert client.post('/api/vpn/disconnect').get_json()['success'] is True
    assert client.post('/api/vpn/test').get_json()['success'] is False


def test_vpn_connect(client, network_manager):
    assert client.post('/api/vpn/connect', json={}).status_code == 400

    response = client.post('/api/vpn/connect', json={
        'configFile': '/etc/openvpn/client.ovpn', 'username': 'user', 'password': 'secret',
    })

    assert response.get_json()['success'] is True
    network_manager.enable_vpn.assert_awaited_once_with('/etc/openvpn/client.ovpn', 'user', 'secret')


def test_shutdown_runs_cleanup(server, network_manager):
    server.shutdown()

    network_manager.vpn_manager.cleanup.assert_awaited_once()
    # A second shutdown is a no-op
    server.shutdown()
