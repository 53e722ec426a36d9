"""
Tests for the DLSite client, with the dispatcher stubbed out.
"""
import json
from unittest.mock import AsyncMock, Mock

import pytest

from dust_fetch.modules.errors import (
    DownloadError,
    MetadataFetchError,
    NoAccessibleUrlError,
    NotFoundError,
)
from dust_fetch.platforms.dlsite_client import DLSiteClient
from dust_fetch.platforms.image_downloader import ImageDownloader
from dust_fetch.platforms.product_id import resolve_product_id

PRODUCT_ID = 'RJ01347095'
API_RECORD = {
    PRODUCT_ID: {
        'work_name': 'Example Title',
        'maker_name': 'Example Circle',
        'work_image': '//img.dlsite.jp/modpub/images2/work/doujin/RJ01348000/RJ01347095_img_main.jpg',
    }
}


def _router(make_response, api_status=200, api_body=None, html_status=200, html_body=''):
    """Answer product info and work page requests by URL."""
    async def dispatch(url, method='GET', headers=None, timeout=None, progress_callback=None):
        if 'product/info/ajax' in url:
            body = json.dumps(API_RECORD if api_body is None else api_body)
            return make_response(api_status, body, url=url)
        return make_response(html_status, html_body, url=url)
    return dispatch


@pytest.fixture
def network_manager():
    manager = Mock()
    manager.dispatch = AsyncMock()
    manager.download_file = AsyncMock(return_value=b'cover-bytes')
    return manager


@pytest.fixture
def client(network_manager, tmp_path, logger):
    downloader = ImageDownloader(network_manager, assets_dir=str(tmp_path), logger=logger)
    return DLSiteClient(network_manager, image_downloader=downloader, logger=logger)


def test_build_work_urls(client):
    assert client.build_work_urls(PRODUCT_ID, 'maniax') == [
        'https://www.dlsite.com/maniax/work/=/product_id/RJ01347095.html?locale=en_US',
        'https://www.dlsite.com/maniax/announce/=/product_id/RJ01347095.html?locale=en_US',
    ]


def test_extract_dlsite_id(client):
    assert client.extract_dlsite_id('/games/RJ01347095 Example') == PRODUCT_ID
    assert client.extract_dlsite_id('/games/untitled') is None


@pytest.mark.asyncio
async def test_fetch_api_record(client, network_manager, make_response):
    network_manager.dispatch.side_effect = _router(make_response)

    record = await client.fetch_api_record(PRODUCT_ID)

    assert record['work_name'] == 'Example Title'
    assert record['work_image'].startswith('https://img.dlsite.jp/')
    headers = network_manager.dispatch.await_args.kwargs['headers']
    assert 'adultchecked=1' in headers['Cookie']


@pytest.mark.asyncio
async def test_fetch_api_record_http_error(client, network_manager, make_response):
    network_manager.dispatch.side_effect = _router(make_response, api_status=500)

    with pytest.raises(MetadataFetchError) as exc_info:
        await client.fetch_api_record(PRODUCT_ID)

    assert 'HTTP error: 500' in str(exc_info.value)


@pytest.mark.asyncio
@pytest.mark.parametrize('body', [[], {}, {'RJ999999': {'work_name': 'Other'}}])
async def test_fetch_api_record_not_found(client, network_manager, make_response, body):
    network_manager.dispatch.side_effect = _router(make_response, api_body=body)

    with pytest.raises(NotFoundError):
        await client.fetch_api_record(PRODUCT_ID)


@pytest.mark.asyncio
async def test_fetch_api_record_network_error(client, network_manager):
    network_manager.dispatch.side_effect = ConnectionResetError()

    with pytest.raises(MetadataFetchError):
        await client.fetch_api_record(PRODUCT_ID)


@pytest.mark.asyncio
async def test_fetch_html_falls_back_to_announce_page(client, network_manager, make_response):
    responses = [make_response(404), make_response(200, '<html>announce</html>')]
    network_manager.dispatch.side_effect = responses

    html, url = await client.fetch_html_record(PRODUCT_ID)

    assert html == '<html>announce</html>'
    assert '/announce/' in url


@pytest.mark.asyncio
async def test_fetch_html_no_accessible_url(client, network_manager, make_response):
    network_manager.dispatch.side_effect = [make_response(404), ConnectionResetError()]

    with pytest.raises(NoAccessibleUrlError) as exc_info:
        await client.fetch_html_record(PRODUCT_ID)

    assert len(exc_info.value.urls) == 2


@pytest.mark.asyncio
async def test_get_game_info_end_to_end(client, network_manager, make_response, load_fixture, tmp_path):
    product_id = resolve_product_id('some/path/RJ01347095/readme.txt')
    network_manager.dispatch.side_effect = _router(make_response, html_body=load_fixture('work_page_en.html'))

    result = await client.get_game_info(product_id, sequence_id=1)

    assert result['success'] is True
    assert result['sources'] == {'api': True, 'html': True}
    info = result['gameInfo']
    assert info['title'] == 'Example Title'
    assert info['developer'] == 'Example Circle'
    assert info['genre'] == 'Drama'
    assert info['dlsiteVoiceActors'] == ['Jane Doe']
    assert info['dlsiteId'] == PRODUCT_ID
    assert info['id'] == '00001_dlsite_rj01347095'
    assert info['coverImage'] == 'data/covers/00001_dlsite_RJ01347095.jpg'
    assert (tmp_path / '00001_dlsite_RJ01347095.jpg').read_bytes() == b'cover-bytes'


@pytest.mark.asyncio
async def test_get_game_info_cover_failure_keeps_record(client, network_manager, make_response, load_fixture):
    network_manager.dispatch.side_effect = _router(make_response, html_body=load_fixture('work_page_en.html'))
    network_manager.download_file.side_effect = DownloadError('https://img.dlsite.jp/x.jpg', 404)

    result = await client.get_game_info(PRODUCT_ID)

    assert result['success'] is True
    assert result['gameInfo']['coverImage'] == ''
    assert result['gameInfo']['title'] == 'Example Title'


@pytest.mark.asyncio
async def test_get_game_info_api_only(client, network_manager, make_response):
    network_manager.dispatch.side_effect = _router(make_response, html_status=404)

    result = await client.get_game_info(PRODUCT_ID)

    assert result['success'] is True
    assert result['sources'] == {'api': True, 'html': False}
    assert result['gameInfo']['title'] == 'Example Title'
    assert result['gameInfo']['developer'] == 'Example Circle'


@pytest.mark.asyncio
async def test_get_game_info_without_sources(client, network_manager):
    """Test a product with no reachable source still yields a placeholder record."""
    network_manager.dispatch.side_effect = ConnectionResetError()

    result = await client.get_game_info(PRODUCT_ID)

    assert result['success'] is True
    assert result['sources'] == {'api': False, 'html': False}
    assert result['gameInfo']['title'] == f'DLSite Game {PRODUCT_ID}'
    assert result['gameInfo']['coverImage'] == ''
    network_manager.download_file.assert_not_awaited()


@pytest.mark.asyncio
async def test_get_game_info_unexpected_error(client, network_manager, make_response):
    network_manager.dispatch.side_effect = _router(make_response)
    fallback = client.synthesizer.synthesize(product_id=PRODUCT_ID)
    client.synthesizer.synthesize = Mock(side_effect=[ValueError('boom'), fallback])

    result = await client.get_game_info(PRODUCT_ID)

    assert result['success'] is False
    assert 'boom' in result['message']
    assert 'gameInfo' in result
