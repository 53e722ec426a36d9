"""
Tests for cover image downloads.
"""
import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from dust_fetch.modules.errors import DownloadError
from dust_fetch.platforms.image_downloader import ImageDownloader

COVER_URL = '//img.dlsite.jp/modpub/images2/work/doujin/RJ01348000/RJ01347095_img_main.jpg'


@pytest.fixture
def network_manager():
    manager = Mock()
    manager.download_file = AsyncMock(return_value=b'image-bytes')
    return manager


@pytest.fixture
def downloader(network_manager, tmp_path, logger):
    return ImageDownloader(network_manager, assets_dir=str(tmp_path), logger=logger)


def test_build_filename():
    assert ImageDownloader.build_filename('RJ01347095', 42, 'https://x/a.jpg') == '0002a_dlsite_RJ01347095.jpg'
    assert ImageDownloader.build_filename('RJ01347095', None, 'https://x/a.PNG') == '00001_dlsite_RJ01347095.png'
    assert ImageDownloader.build_filename('RJ01347095', 1, 'https://x/a') == '00001_dlsite_RJ01347095.jpg'


@pytest.mark.asyncio
async def test_download_writes_file(downloader, network_manager, tmp_path):
    path = await downloader.download_image(COVER_URL, 'RJ01347095', 42)

    assert path == 'data/covers/0002a_dlsite_RJ01347095.jpg'
    assert (tmp_path / '0002a_dlsite_RJ01347095.jpg').read_bytes() == b'image-bytes'

    url = network_manager.download_file.await_args.args[0]
    assert url == 'https:' + COVER_URL
    assert network_manager.download_file.await_args.kwargs['headers']['Referer'] == 'https://www.dlsite.com/'


@pytest.mark.asyncio
async def test_same_url_is_downloaded_once(downloader, network_manager):
    first = await downloader.download_image(COVER_URL, 'RJ01347095', 1)
    second = await downloader.download_image(COVER_URL, 'RJ01347095', 1)

    assert first == second
    assert network_manager.download_file.await_count == 1


@pytest.mark.asyncio
async def test_empty_url_returns_none(downloader, network_manager):
    assert await downloader.download_image('') is None
    assert await downloader.download_image(None) is None
    network_manager.download_file.assert_not_awaited()


@pytest.mark.asyncio
async def test_product_id_taken_from_url(downloader, tmp_path):
    path = await downloader.download_image('https://img.dlsite.jp/work/RJ123456_img_main.webp')
    assert path == 'data/covers/00001_dlsite_RJ123456.webp'


@pytest.mark.asyncio
async def test_existing_file_with_other_content_gets_suffix(downloader, tmp_path):
    (tmp_path / '00001_dlsite_RJ01347095.jpg').write_bytes(b'other')

    path = await downloader.download_image(COVER_URL, 'RJ01347095', 1)

    assert path == 'data/covers/00001_dlsite_RJ01347095_1.jpg'
    assert (tmp_path / '00001_dlsite_RJ01347095.jpg').read_bytes() == b'other'
    assert (tmp_path / '00001_dlsite_RJ01347095_1.jpg').read_bytes() == b'image-bytes'


@pytest.mark.asyncio
async def test_existing_identical_file_is_reused(downloader, tmp_path):
    (tmp_path / '00001_dlsite_RJ01347095.jpg').write_bytes(b'image-bytes')

    path = await downloader.download_image(COVER_URL, 'RJ01347095', 1)

    assert path == 'data/covers/00001_dlsite_RJ01347095.jpg'
    assert sorted(p.name for p in tmp_path.iterdir()) == ['00001_dlsite_RJ01347095.jpg']


@pytest.mark.asyncio
async def test_download_error_propagates(downloader, network_manager):
    network_manager.download_file.side_effect = DownloadError('https://img.dlsite.jp/x.jpg', 404)

    with pytest.raises(DownloadError):
        await downloader.download_image(COVER_URL, 'RJ01347095', 1)

    assert downloader.image_cache == {}


@pytest.mark.asyncio
async def test_clear_cache_downloads_again(downloader, network_manager):
    await downloader.download_image(COVER_URL, 'RJ01347095', 1)
    downloader.clear_cache()
    await downloader.download_image(COVER_URL, 'RJ01347095', 1)

    assert network_manager.download_file.await_count == 2


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_download(downloader, network_manager, tmp_path):
    async def slow_download(url, headers=None):
        await asyncio.sleep(0.01)
        return b'image-bytes'

    network_manager.download_file.side_effect = slow_download

    paths = await asyncio.gather(*(
        downloader.download_image(COVER_URL, 'RJ01347095', seq) for seq in (1, 2, 3)
    ))

    assert network_manager.download_file.await_count == 1
    assert paths == ['data/covers/00001_dlsite_RJ01347095.jpg'] * 3
    assert [p.name for p in tmp_path.iterdir()] == ['00001_dlsite_RJ01347095.jpg']


@pytest.mark.asyncio
async def test_concurrent_requests_share_download_error(downloader, network_manager):
    async def failing_download(url, headers=None):
        await asyncio.sleep(0.01)
        raise DownloadError(url, 503)

    network_manager.download_file.side_effect = failing_download

    results = await asyncio.gather(
        downloader.download_image(COVER_URL, 'RJ01347095', 1),
        downloader.download_image(COVER_URL, 'RJ01347095', 2),
        return_exceptions=True,
    )

    assert all(isinstance(r, DownloadError) for r in results)
    assert network_manager.download_file.await_count == 1


def test_build_filename_sequence_zero():
    assert ImageDownloader.build_filename('RJ01347095', 0, 'https://x/a.jpg') == '00000_dlsite_RJ01347095.jpg'
