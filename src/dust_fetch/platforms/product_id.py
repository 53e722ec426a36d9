"""
DLSite product ID extraction and validation
"""

import os
import re
from typing import Optional

from ..modules.errors import IdentifierNotFoundError

# RJ/BJ/VJ followed by 6-8 digits; a longer digit run is not an ID
PRODUCT_ID_PATTERN = re.compile(r'[BRV]J\d{6,8}(?!\d)', re.IGNORECASE)
PRODUCT_ID_FULL_PATTERN = re.compile(r'[BRV]J\d{6,8}')


def find_product_id(text: Optional[str]) -> Optional[str]:
    """
    Find the first DLSite product ID in a string

    Args:
        text (str): Any string, e.g. a file path or URL

    Returns:
        Optional[str]: Upper-cased product ID, or None
    """
    if not text:
        return None

    match = PRODUCT_ID_PATTERN.search(text)
    if match:
        return match.group(0).upper()
    return None


def resolve_product_id(text: str) -> str:
    """
    Resolve a raw identifier string to a normalized product ID

    Args:
        text (str): Raw identifier, e.g. "some/path/rj01347095/readme.txt"

    Returns:
        str: Upper-cased product ID, e.g. "RJ01347095"

    Raises:
        IdentifierNotFoundError: If the string contains no product ID
    """
    product_id = find_product_id(text)
    if product_id is None:
        raise IdentifierNotFoundError(text)
    return product_id


def is_valid_product_id(value: Optional[str]) -> bool:
    """True if the whole value is a product ID (case-insensitive)"""
    if not value:
        return False
    return PRODUCT_ID_FULL_PATTERN.fullmatch(value.upper()) is not None


def extract_product_id_from_path(folder_path: str) -> Optional[str]:
    """Look for a product ID in the full path, then in the last path component"""
    product_id = find_product_id(folder_path)
    if product_id:
        return product_id
    return find_product_id(os.path.basename(os.path.normpath(folder_path)))
