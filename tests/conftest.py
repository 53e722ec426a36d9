"""
Shared fixtures for Dust Fetch tests.
"""
import logging
import os
import sys
import tempfile
from pathlib import Path

# Make the src/ layout importable without installing, and keep test data out of the project
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))
os.environ.setdefault('DUST_DATA_DIR', tempfile.mkdtemp(prefix='dust_fetch_tests_'))

import pytest

from dust_fetch.modules.network_manager import FetchResponse

FIXTURES_DIR = Path(__file__).parent / 'fixtures'


@pytest.fixture
def logger():
    """Plain logger without file handlers."""
    return logging.getLogger('dust_fetch.tests')


@pytest.fixture
def load_fixture():
    """Read an HTML fixture by file name."""
    def _load(name):
        return (FIXTURES_DIR / name).read_text(encoding='utf-8')
    return _load


@pytest.fixture
def make_response():
    """Build a FetchResponse for a stubbed dispatch."""
    def _make(status=200, body=b'', url='https://www.dlsite.com/'):
        if isinstance(body, str):
            body = body.encode('utf-8')
        return FetchResponse(status=status, url=url, headers={}, body=body)
    return _make
