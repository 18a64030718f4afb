"""
Small helpers shared by the client, the config layer and the table fetcher.
"""

import re
from typing import Optional
from urllib.parse import quote

from .exceptions import ConfigurationError

# OAI-PMH date format patterns
DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')
DATETIME_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$')


def get_date_granularity(date_str: Optional[str]) -> Optional[str]:
    """
    Get granularity of an OAI-PMH date.

    OAI-PMH supports two granularities:
    - Day: YYYY-MM-DD
    - Second: YYYY-MM-DDThh:mm:ssZ

    Returns:
        'day', 'second', or None if the string is not an OAI-PMH date
    """
    if not date_str:
        return None
    if DATE_PATTERN.match(date_str):
        return 'day'
    if DATETIME_PATTERN.match(date_str):
        return 'second'
    return None


def validate_date_range(from_date: Optional[str], until_date: Optional[str]) -> None:
    """
    Validate the from/until harvesting bounds.

    Both dates must be valid OAI-PMH dates of the same granularity and
    from_date must not be later than until_date.

    Raises:
        ConfigurationError: If the range is invalid
    """
    for label, value in (('from', from_date), ('until', until_date)):
        if value and get_date_granularity(value) is None:
            raise ConfigurationError(
                f"Invalid {label} date format: {value}. "
                "Use YYYY-MM-DD or YYYY-MM-DDThh:mm:ssZ"
            )

    if from_date and until_date:
        from_granularity = get_date_granularity(from_date)
        until_granularity = get_date_granularity(until_date)
        if from_granularity != until_granularity:
            raise ConfigurationError(
                "from and until dates must use the same granularity. "
                f"Got {from_granularity} and {until_granularity}"
            )
        # ISO dates compare correctly as strings
        if from_date > until_date:
            raise ConfigurationError(
                f"from date ({from_date}) must be <= until date ({until_date})"
            )


def uri_join(base_url: str, object_name: str) -> str:
    """
    Append an object name to a base URL.

    >>> uri_join('https://example.org/pids', 'PIDS_MSK_UTF8.csv')
    'https://example.org/pids/PIDS_MSK_UTF8.csv'
    """
    return f"{base_url.rstrip('/')}/{quote(object_name.lstrip('/'))}"


def is_http_url(url: Optional[str]) -> bool:
    return bool(url) and url.startswith(('http://', 'https://'))
