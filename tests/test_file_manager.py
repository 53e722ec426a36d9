"""
Tests for executable detection.
"""
import pytest

from dust_fetch.modules.file_manager import FileManager


@pytest.fixture
def file_manager(logger):
    return FileManager(logger=logger, max_depth=2)


def test_find_executables_sorted_by_priority(file_manager, tmp_path):
    (tmp_path / 'zzz.jar').write_text('')
    (tmp_path / 'Game.jar').write_text('')
    (tmp_path / 'notes.txt').write_text('')

    assert file_manager.find_executables(str(tmp_path)) == ['Game.jar', 'zzz.jar']


def test_find_executables_respects_depth(file_manager, tmp_path):
    deep = tmp_path / 'a' / 'b' / 'c'
    deep.mkdir(parents=True)
    (tmp_path / 'a' / 'start.jar').write_text('')
    (deep / 'hidden.jar').write_text('')

    found = file_manager.find_executables(str(tmp_path))

    assert found == [str((tmp_path / 'a' / 'start.jar').relative_to(tmp_path))]


def test_find_executables_missing_directory(file_manager, tmp_path):
    assert file_manager.find_executables(str(tmp_path / 'missing')) == []
