"""
msk_harvest - OAI-PMH importer for the MSK collection with PID lookup tables.

Quick usage:
    >>> import msk_harvest
    >>> with msk_harvest.open(
    ...     endpoint='https://endpoint.msk.be/oai',
    ...     set='2011',
    ...     pid_module='lwp',
    ...     pid_lwp_base_url='https://example.org/pids/',
    ... ) as harvest:
    ...     for record in harvest:
    ...         print(record['_id'])

Records only, no lookup tables:
    >>> from msk_harvest import EndpointConfig, OAIClient
    >>> client = OAIClient(EndpointConfig('https://example.org/oai', metadata_prefix='oai_dc'))
    >>> for record in client.list_records():
    ...     print(record['title'])
"""

from typing import Iterator, Optional

from .client import OAIClient
from .config import EndpointConfig, ImporterConfig
from .record import RawRecord, Page
from .parser import OAIParser
from .handlers import Handler, HANDLERS, register_handler, resolve_handler
from .importer import Harvest, Importer
from .tables import (
    DEFAULT_TABLES,
    LookupTable,
    LookupTableSpec,
    ObjectStoreSource,
    UrlSource,
    fetch,
    load,
)
from .exceptions import (
    HarvestError,
    ConfigurationError,
    TransportError,
    ProtocolError,
    OaiProtocolError,
    BadArgumentError,
    BadVerbError,
    BadResumptionTokenError,
    CannotDisseminateFormatError,
    IdDoesNotExistError,
    NoRecordsMatchError,
    NoMetadataFormatsError,
    NoSetHierarchyError,
    TableError,
    FetchError,
    LoadError,
)

__version__ = '0.1.0'

__all__ = [
    # Convenience functions
    'open',
    'harvest',

    # Importer
    'Importer',
    'ImporterConfig',
    'Harvest',

    # OAI-PMH
    'OAIClient',
    'EndpointConfig',
    'OAIParser',
    'RawRecord',
    'Page',

    # Handlers
    'Handler',
    'HANDLERS',
    'register_handler',
    'resolve_handler',

    # Lookup tables
    'DEFAULT_TABLES',
    'LookupTable',
    'LookupTableSpec',
    'ObjectStoreSource',
    'UrlSource',
    'fetch',
    'load',

    # Exceptions
    'HarvestError',
    'ConfigurationError',
    'TransportError',
    'ProtocolError',
    'OaiProtocolError',
    'BadArgumentError',
    'BadVerbError',
    'BadResumptionTokenError',
    'CannotDisseminateFormatError',
    'IdDoesNotExistError',
    'NoRecordsMatchError',
    'NoMetadataFormatsError',
    'NoSetHierarchyError',
    'TableError',
    'FetchError',
    'LoadError',
]


# ==================== Convenience Functions ====================

def open(**options) -> Harvest:
    """
    Prepare the lookup tables and return a harvest ready to iterate.

    Args:
        **options: Importer options (endpoint, metadata_prefix, set, from,
            until, handler, username, password, pid_*)

    Example:
        >>> harvest = msk_harvest.open(endpoint='https://endpoint.msk.be/oai',
        ...                            pid_rcf_container_name='datahub')
    """
    return Importer(ImporterConfig.from_mapping(options)).open()


def harvest(
    url: str,
    metadata_prefix: str = 'oai_lido',
    set_spec: Optional[str] = None,
    from_date: Optional[str] = None,
    until_date: Optional[str] = None,
    handler=None,
    **kwargs
) -> Iterator[dict]:
    """
    Iterate over structured records of an endpoint, without lookup tables.

    Args:
        url: OAI-PMH endpoint URL
        metadata_prefix: Metadata format (default: oai_lido)
        set_spec: Optional set to harvest from
        from_date: Optional start date (YYYY-MM-DD)
        until_date: Optional end date (YYYY-MM-DD)
        handler: Optional handler name, object or callable
        **kwargs: Additional EndpointConfig fields (username, password, ...)
    """
    config = EndpointConfig(
        url=url,
        metadata_prefix=metadata_prefix,
        set_spec=set_spec,
        from_date=from_date,
        until_date=until_date,
        **kwargs
    )
    with OAIClient(config, handler=handler) as client:
        yield from client.list_records()
