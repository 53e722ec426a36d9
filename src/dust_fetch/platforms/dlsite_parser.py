"""
DLSite work page parser
Extracts the work outline table, cover, description and sample images
from a product page into a flat field dictionary.
"""

import logging
import re
from enum import Enum
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from .dlsite_common import ensure_absolute_url


class HtmlField(str, Enum):
    RELEASE_DATE = 'release_date'
    UPDATE_DATE = 'update_date'
    VOICE_ACTOR = 'voice_actor'
    AGE_RATING = 'age_rating'
    PRODUCT_FORMAT = 'product_format'
    FILE_FORMAT = 'file_format'
    LANGUAGE = 'language'
    FILE_SIZE = 'file_size'
    GENRE = 'genre'
    AUTHOR = 'author'
    SCENARIO = 'scenario'
    ILLUSTRATION = 'illustration'
    PUBLISHER = 'publisher'


# Work outline header label (English and Japanese pages) -> field
FIELD_LABELS = {
    'Release date': HtmlField.RELEASE_DATE,
    '販売日': HtmlField.RELEASE_DATE,
    'Update information': HtmlField.UPDATE_DATE,
    '更新情報': HtmlField.UPDATE_DATE,
    'Voice Actor': HtmlField.VOICE_ACTOR,
    '声優': HtmlField.VOICE_ACTOR,
    'Age': HtmlField.AGE_RATING,
    '年齢指定': HtmlField.AGE_RATING,
    'Product format': HtmlField.PRODUCT_FORMAT,
    '作品形式': HtmlField.PRODUCT_FORMAT,
    'File format': HtmlField.FILE_FORMAT,
    'ファイル形式': HtmlField.FILE_FORMAT,
    'Supported languages': HtmlField.LANGUAGE,
    '対応言語': HtmlField.LANGUAGE,
    'File size': HtmlField.FILE_SIZE,
    'ファイル容量': HtmlField.FILE_SIZE,
    'Genre': HtmlField.GENRE,
    'ジャンル': HtmlField.GENRE,
    'Author': HtmlField.AUTHOR,
    '作者': HtmlField.AUTHOR,
    'Scenario': HtmlField.SCENARIO,
    'シナリオ': HtmlField.SCENARIO,
    'Illustration': HtmlField.ILLUSTRATION,
    'イラスト': HtmlField.ILLUSTRATION,
    'Publisher': HtmlField.PUBLISHER,
    '出版社名': HtmlField.PUBLISHER,
    'Brand': HtmlField.PUBLISHER,
    'ブランド名': HtmlField.PUBLISHER,
}

LIST_FIELDS = (
    HtmlField.AUTHOR,
    HtmlField.SCENARIO,
    HtmlField.ILLUSTRATION,
    HtmlField.VOICE_ACTOR,
    HtmlField.GENRE,
)

FORMAT_FIELDS = (
    HtmlField.PRODUCT_FORMAT,
    HtmlField.FILE_FORMAT,
    HtmlField.AGE_RATING,
    HtmlField.LANGUAGE,
)

SCALAR_KEYS = (
    'work_name', 'circle', 'publisher', 'coverImage', 'release_date', 'update_date',
    'file_size', 'product_format', 'file_format', 'age_rating', 'language', 'description',
)

LIST_KEYS = (
    'author', 'scenario', 'illustration', 'voice_actor', 'genre', 'tags', 'sample_images',
)

COVER_SELECTORS = [
    '#work_left .product-slider-data div img',
    '.product-slider-data div[data-src]',
    '.product_image img',
    '.work_image img',
    'meta[property="og:image"]',
]

DESCRIPTION_SELECTORS = ['.work_parts_text', '.product_outline', '.work_article .work_parts_text']

CHARACTER_SECTION_PATTERN = re.compile(
    r'(?:キャラクター紹介|Character Introduction)\s*(.*?)(?=エロステータス|エンディング|$)',
    re.DOTALL,
)

LIST_SEPARATORS = re.compile(r'[,/、，]')
UPDATE_LABEL_SUFFIX = re.compile(r'\s*(?:Update information|更新情報)\s*$')


def _collapse(text: Optional[str]) -> str:
    return re.sub(r'\s+', ' ', text or '').strip()


def _link_texts(cell) -> List[str]:
    texts = []
    for link in cell.find_all('a'):
        text = _collapse(link.get_text())
        if text:
            texts.append(text)
    return texts


def _parse_list_cell(cell) -> List[str]:
    values = _link_texts(cell)
    if values:
        return values

    cell_text = _collapse(cell.get_text())
    return [part.strip() for part in LIST_SEPARATORS.split(cell_text) if part.strip()]


def _parse_format_cell(cell) -> str:
    values = []
    for element in cell.find_all(attrs={'title': True}):
        title = _collapse(element.get('title'))
        if title and title not in values:
            values.append(title)

    if not values:
        values = _link_texts(cell)

    if values:
        return ', '.join(values)
    return _collapse(cell.get_text())


def _parse_scalar_cell(field: HtmlField, cell) -> str:
    text = _collapse(cell.get_text())
    if field == HtmlField.UPDATE_DATE:
        text = UPDATE_LABEL_SUFFIX.sub('', text).strip()
    return text


def _extract_cover(soup) -> str:
    for selector in COVER_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        src = element.get('src') or element.get('data-src') or element.get('content')
        if src:
            return ensure_absolute_url(src.strip()) or ''
    return ''


def _extract_description(soup) -> str:
    parts = soup.select('.work_parts')
    parts_text = '\n'.join(part.get_text() for part in parts)

    if len(parts_text) > 100:
        match = CHARACTER_SECTION_PATTERN.search(parts_text)
        if match:
            description = _collapse(match.group(1))
            if description:
                return description

    for selector in DESCRIPTION_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        text = _collapse(element.get_text())
        if len(text) > 50:
            return text

    return ''


def _extract_sample_images(soup) -> List[str]:
    images = []
    for element in soup.select('.product-slider-data div, .work_sample img'):
        src = element.get('data-src') or element.get('src')
        if not src or '_img_main' in src:
            continue
        absolute = ensure_absolute_url(src.strip())
        if absolute and absolute not in images:
            images.append(absolute)
    return images


def empty_fields() -> Dict[str, Any]:
    """Field dictionary with every key present and no values"""
    fields: Dict[str, Any] = {key: '' for key in SCALAR_KEYS}
    fields.update({key: [] for key in LIST_KEYS})
    return fields


def extract_fields(html: str, base_url: Optional[str] = None,
                   logger: Optional[logging.Logger] = None) -> Dict[str, Any]:
    """
    Parse a DLSite work page

    Args:
        html (str): Page HTML
        base_url (str, optional): URL the page was fetched from, for logging
        logger (logging.Logger, optional): Logger for the parse summary

    Returns:
        Dict[str, Any]: Field name -> str or list of str. Every known field is
        present; table rows with unknown headers are ignored.
    """
    soup = BeautifulSoup(html or '', 'html.parser')
    fields = empty_fields()

    title = soup.select_one('#work_name')
    if title is not None:
        fields['work_name'] = _collapse(title.get_text())

    maker = soup.select_one('span.maker_name a') or soup.select_one('span.maker_name')
    if maker is not None:
        fields['circle'] = _collapse(maker.get_text())

    fields['coverImage'] = _extract_cover(soup)

    for row in soup.select('#work_outline tr'):
        header = row.find('th')
        cell = row.find('td')
        if header is None or cell is None:
            continue

        field = FIELD_LABELS.get(_collapse(header.get_text()))
        if field is None:
            continue

        if field in LIST_FIELDS:
            fields[field.value] = _parse_list_cell(cell)
        elif field in FORMAT_FIELDS:
            fields[field.value] = _parse_format_cell(cell)
        else:
            fields[field.value] = _parse_scalar_cell(field, cell)

    fields['description'] = _extract_description(soup)
    fields['sample_images'] = _extract_sample_images(soup)
    fields['tags'] = list(fields['genre'])

    (logger or logging.getLogger(__name__)).debug(
        f"Parsed work page {base_url or ''}: title='{fields['work_name']}', "
        f"genres={len(fields['genre'])}, samples={len(fields['sample_images'])}"
    )
    return fields
