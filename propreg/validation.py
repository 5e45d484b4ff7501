"""
Payload validation for property records.

Each check is a pure predicate over its input and returns True (valid)
or False (invalid). `check_record_fields` runs them in the fixed order
name -> volume -> summary -> categories and raises on the first failure,
so the reported kind is reproducible for any combination of bad inputs.
"""

from typing import Any, Sequence

from .errors import FailureKind, RegistryError

NAME_MAX_LENGTH = 64
SUMMARY_MAX_LENGTH = 128
VOLUME_UPPER_BOUND = 1_000_000_000
CATEGORY_MAX_COUNT = 10
CATEGORY_LABEL_MAX_LENGTH = 32


def _text_within(value: Any, max_length: int) -> bool:
    return isinstance(value, str) and 0 < len(value) <= max_length


def name_valid(name: Any) -> bool:
    """A name is non-empty text of at most 64 characters."""
    return _text_within(name, NAME_MAX_LENGTH)


def summary_valid(summary: Any) -> bool:
    """A summary is non-empty text of at most 128 characters."""
    return _text_within(summary, SUMMARY_MAX_LENGTH)


def volume_valid(volume: Any) -> bool:
    """
    A volume is an integer strictly between 0 and 1,000,000,000.

    Booleans are rejected even though they are ints in Python.
    """
    if isinstance(volume, bool) or not isinstance(volume, int):
        return False
    return 0 < volume < VOLUME_UPPER_BOUND


def categories_valid(categories: Any) -> bool:
    """
    Evaluate the category list predicate.

    The list must be an ordered sequence of 1 to 10 labels, each label
    non-empty text of at most 32 characters. A bare string is not a
    sequence of labels.

    Args:
        categories: Candidate category labels

    Returns:
        True if the list is well formed, False otherwise
    """
    if isinstance(categories, (str, bytes)) or not isinstance(categories, Sequence):
        return False
    if not 0 < len(categories) <= CATEGORY_MAX_COUNT:
        return False
    return all(_text_within(label, CATEGORY_LABEL_MAX_LENGTH) for label in categories)


def check_record_fields(name: Any, volume: Any, summary: Any, categories: Any) -> None:
    """
    Validate a full record payload.

    Raises:
        RegistryError: INVALID_NAME for a bad name or summary,
            INVALID_VOLUME for a bad volume, INVALID_CATEGORY_FORMAT
            for a bad category list
    """
    if not name_valid(name):
        raise RegistryError(FailureKind.INVALID_NAME, "name must be 1-64 characters")
    if not volume_valid(volume):
        raise RegistryError(FailureKind.INVALID_VOLUME, "volume must be between 1 and 999999999")
    if not summary_valid(summary):
        raise RegistryError(FailureKind.INVALID_NAME, "summary must be 1-128 characters")
    if not categories_valid(categories):
        raise RegistryError(
            FailureKind.INVALID_CATEGORY_FORMAT,
            "categories must be 1-10 labels of 1-32 characters"
        )
