"""
Game record synthesis
Merges the AJAX API record and the parsed work page into one game record.
Either source may be missing; the result is always complete.
"""

import logging
import random
import string
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..modules.logger_config import setup_logger
from .dlsite_common import work_page_url
from .product_id import find_product_id

# Technical labels that DLSite lists as genres; kept literal as shown on the site
GENRE_EXCLUSIONS = [
    'R18', 'All-ages',
    'Role-playing', 'Visual Novel', 'Simulation', 'Adventure', 'Action', 'Strategy',
    'Voice', 'Music', 'Sound',
    'Application', 'HTML', 'Flash', 'Unity',
    'Japanese', 'English', 'Chinese', 'Korean',
    'Windows', 'Mac', 'Android', 'iOS',
]

TAG_EXCLUSIONS = ['R18', 'Application', 'Japanese', 'Role-playing', 'Voice']

DEFAULT_GENRE = 'Visual Novel'
SOURCE_NAME = 'DLSite'


def first_non_empty(*values: Any) -> Any:
    """
    Return the first value that is not None, empty or whitespace only

    Args:
        *values: Candidates in precedence order; the last one is usually a placeholder

    Returns:
        Any: First non-empty candidate, or the last candidate if all are empty
    """
    for value in values:
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        if isinstance(value, (list, tuple, dict)) and not value:
            continue
        return value
    return values[-1] if values else None


def generate_game_id(product_id: Optional[str], sequence_id: Optional[int] = None) -> str:
    """
    Generate the stable game ID for a product

    Args:
        product_id (str): DLSite product ID
        sequence_id (int, optional): Caller supplied ordinal, zero padded as a prefix

    Returns:
        str: e.g. "00042_dlsite_rj01347095", or a random ID when no product ID is known
    """
    if not product_id:
        suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=6))
        return f"dlsite_{int(time.time() * 1000)}_{suffix}"

    prefix = f"{sequence_id:05d}_" if sequence_id is not None else ''
    return f"{prefix}dlsite_{product_id.lower()}"


def _text(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, (list, tuple)):
        return ', '.join(str(item) for item in value if item)
    return str(value).strip()


def _string_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(item) for item in value if item]


def _filter(values: Iterable[str], exclusions: Iterable[str]) -> List[str]:
    excluded = set(exclusions)
    return [value for value in values if value not in excluded]


def _dedupe(values: Iterable[str]) -> List[str]:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


@dataclass(frozen=True)
class GameMetadataRecord:
    """Normalized game record, one per product"""
    id: str
    title: str
    developer: str
    publisher: str
    genre: str
    description: str
    language: str
    release_date: str
    update_date: str
    file_size: str
    product_format: str
    file_format: str
    age_rating: str
    cover_image: str
    dlsite_id: str
    dlsite_url: str
    dlsite_circle: str
    source: str = SOURCE_NAME
    genre_list: List[str] = field(default_factory=list)
    sample_images: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    authors: List[str] = field(default_factory=list)
    illustrators: List[str] = field(default_factory=list)
    scenario: List[str] = field(default_factory=list)
    voice_actors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Record in the persisted camelCase game info format"""
        data = asdict(self)
        return {
            'id': data['id'],
            'title': data['title'],
            'developer': data['developer'],
            'publisher': data['publisher'],
            'genre': data['genre'],
            'genreList': data['genre_list'],
            'description': data['description'],
            'language': data['language'],
            'releaseDate': data['release_date'],
            'updateDate': data['update_date'],
            'fileSize': data['file_size'],
            'productFormat': data['product_format'],
            'fileFormat': data['file_format'],
            'ageRating': data['age_rating'],
            'coverImage': data['cover_image'],
            'sampleImages': data['sample_images'],
            'source': data['source'],
            'tags': data['tags'],
            'authors': data['authors'],
            'illustrators': data['illustrators'],
            'scenario': data['scenario'],
            'dlsiteId': data['dlsite_id'],
            'dlsiteUrl': data['dlsite_url'],
            'dlsiteCircle': data['dlsite_circle'],
            'dlsiteTags': list(data['tags']),
            'dlsiteVoiceActors': data['voice_actors'],
            'dlsiteReleaseDate': data['release_date'],
            'dlsiteUpdateDate': data['update_date'],
            'dlsiteFileSize': data['file_size'],
            'dlsiteAgeRating': data['age_rating'],
            'dlsiteProductFormat': data['product_format'],
            'dlsiteFileFormat': data['file_format'],
        }


class RecordSynthesizer:
    """Builds GameMetadataRecord objects from partial sources"""

    def __init__(self, genre_exclusions: Optional[Iterable[str]] = None,
                 tag_exclusions: Optional[Iterable[str]] = None,
                 logger: Optional[logging.Logger] = None):
        self.genre_exclusions = list(GENRE_EXCLUSIONS if genre_exclusions is None else genre_exclusions)
        self.tag_exclusions = list(TAG_EXCLUSIONS if tag_exclusions is None else tag_exclusions)
        self.logger = logger or setup_logger('RecordSynthesizer', 'dlsite.log')

    def synthesize(self, api_record: Optional[Dict[str, Any]] = None,
                   html_fields: Optional[Dict[str, Any]] = None,
                   sequence_id: Optional[int] = None,
                   product_id: Optional[str] = None,
                   cover_image: Optional[str] = '') -> GameMetadataRecord:
        """
        Merge API and HTML data into a game record

        HTML values win over API values, which win over placeholders.

        Args:
            api_record (dict, optional): Entry from the AJAX product info endpoint
            html_fields (dict, optional): Output of the work page parser
            sequence_id (int, optional): Caller supplied ordinal for the game ID
            product_id (str, optional): Product ID, taken from the API record if omitted
            cover_image (str, optional): Local path of the downloaded cover

        Returns:
            GameMetadataRecord: Complete record
        """
        api = api_record or {}
        html = html_fields or {}

        product_id = first_non_empty(
            product_id,
            api.get('product_id'),
            api.get('workno'),
            find_product_id(api.get('work_image')),
            '',
        )
        if product_id:
            product_id = str(product_id).upper()

        genres = _filter(_string_list(html.get('genre')), self.genre_exclusions)
        tags = _dedupe(genres + _filter(_string_list(html.get('tags')), self.tag_exclusions))

        def from_html(key):
            return _text(html.get(key))

        def from_api(key):
            return _text(api.get(key))

        record = GameMetadataRecord(
            id=generate_game_id(product_id, sequence_id),
            title=first_non_empty(from_html('work_name'), from_api('work_name'), f"DLSite Game {product_id}"),
            developer=first_non_empty(from_html('circle'), from_api('maker_name'), 'Unknown Developer'),
            publisher=first_non_empty(from_html('publisher'), from_html('circle'), from_api('maker_name'), SOURCE_NAME),
            genre=genres[0] if genres else DEFAULT_GENRE,
            description=first_non_empty(
                from_html('description'), from_api('description'), f"A game from DLSite with ID {product_id}"
            ),
            language=first_non_empty(from_html('language'), 'Japanese'),
            release_date=first_non_empty(from_html('release_date'), from_api('regist_date'), ''),
            update_date=from_html('update_date'),
            file_size=from_html('file_size'),
            product_format=from_html('product_format'),
            file_format=first_non_empty(from_html('file_format'), from_api('file_format'), 'Unknown'),
            age_rating=first_non_empty(from_html('age_rating'), from_api('age_rating'), 'R18'),
            cover_image=cover_image or '',
            dlsite_id=product_id or '',
            dlsite_url=work_page_url(product_id) if product_id else '',
            dlsite_circle=first_non_empty(from_html('circle'), from_api('maker_name'), ''),
            genre_list=genres,
            sample_images=_string_list(html.get('sample_images')),
            tags=tags,
            authors=_string_list(html.get('author')),
            illustrators=_string_list(html.get('illustration')),
            scenario=_string_list(html.get('scenario')),
            voice_actors=_string_list(html.get('voice_actor')),
        )

        self.logger.info(
            f"Record created: {record.id} '{record.title}' "
            f"(cover: {'yes' if record.cover_image else 'no'}, tags: {len(record.tags)}, "
            f"voice actors: {len(record.voice_actors)})"
        )
        return record
