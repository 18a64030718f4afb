"""
The MSK importer: lookup tables first, then the record stream.

Example:
    >>> config = ImporterConfig(
    ...     endpoint='https://endpoint.msk.be/oai',
    ...     set_spec='2011',
    ...     pid_module='rcf',
    ...     pid_username='datahub',
    ...     pid_password='datahub',
    ...     pid_rcf_container_name='datahub',
    ... )
    >>> with Importer(config).open() as harvest:
    ...     aat = harvest.tables['aat']
    ...     for record in harvest:
    ...         print(record['_id'])
"""

import logging
from typing import Any, Dict, Iterator, Optional

import requests

from .client import OAIClient
from .config import ImporterConfig
from .handlers import resolve_handler
from .tables import LookupTable, fetch, load

logger = logging.getLogger(__name__)


class Harvest:
    """
    A ready-to-iterate harvest with its lookup tables.

    Iterating yields structured records. The stream is forward-only:
    iterating a second time continues where the first pass stopped.
    """

    def __init__(self, client: OAIClient, tables: Dict[str, LookupTable]) -> None:
        self.client = client
        self.tables = tables
        self._records: Optional[Iterator[Dict[str, Any]]] = None

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        if self._records is None:
            self._records = self.client.list_records()
        return self._records

    def close(self) -> None:
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


class Importer:
    """Builds a Harvest from an ImporterConfig."""

    def __init__(self, config: ImporterConfig, session: Optional[requests.Session] = None) -> None:
        self.config = config
        self._session = session

    def prepare(self) -> Dict[str, LookupTable]:
        """
        Fetch and load every lookup table, one after the other.

        Raises:
            FetchError, LoadError: On the first table that fails
        """
        self.config.validate_tables()
        tables: Dict[str, LookupTable] = {}
        for spec in self.config.tables:
            logger.info('Creating "%s" temporary table.', spec.name)
            source = self.config.source_for(spec.object_name)
            path = fetch(source, directory=self.config.table_directory, session=self._session)
            tables[spec.name] = load(
                path,
                name=spec.name,
                key_column=spec.key_column,
                directory=self.config.table_directory,
            )
            logger.debug('Table "%s" ready at %s', spec.name, tables[spec.name].path)
        return tables

    def open(self, prepare_tables: bool = True) -> Harvest:
        """
        Validate the config, prepare the tables and return the harvest.

        No OAI-PMH request is made here; the first page is fetched when
        iteration starts.

        Raises:
            ConfigurationError: Before any I/O
            FetchError, LoadError: While preparing the tables
        """
        self.config.validate(tables=prepare_tables)
        endpoint = self.config.endpoint_config()
        handler = resolve_handler(self.config.handler, endpoint.metadata_prefix)

        tables = self.prepare() if prepare_tables else {}

        client = OAIClient(endpoint, handler=handler, session=self._session)
        return Harvest(client, tables)
