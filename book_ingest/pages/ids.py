"""Page identifier generation."""

import secrets
import string
import time
from typing import Union

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
_SUFFIX_LENGTH = 9


def generate_page_id(book_id: Union[str, int], page_number: int) -> str:
    """
    Build a page id of the form ``page_<bookId>_<pageNumber>_<ms>_<suffix>``.

    Uniqueness is probabilistic: a millisecond timestamp plus nine random
    base-36 characters (about 1e14 combinations per millisecond). Nothing
    is coordinated globally.
    """
    timestamp = time.time_ns() // 1_000_000
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"page_{book_id}_{page_number}_{timestamp}_{suffix}"
