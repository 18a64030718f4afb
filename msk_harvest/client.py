"""
OAI-PMH ListRecords client.

Pages through a repository with resumption tokens and hands every record to
a handler. Follows the OAI-PMH v2.0 protocol:
https://www.openarchives.org/OAI/openarchivesprotocol.html
"""

import logging
import warnings
from collections.abc import Mapping
from typing import Any, Dict, Iterator, Optional

import requests

from .config import EndpointConfig
from .exceptions import NoRecordsMatchError, TransportError
from .handlers import Handler, resolve_handler
from .parser import OAIParser
from .record import Page, RawRecord

logger = logging.getLogger(__name__)


class OAIClient:
    """
    Lazy ListRecords harvester for one endpoint.

    Pages are requested one at a time, only when the consumer has used up
    the previous one. Nothing is retried: a failed request ends the harvest.

    Example:
        >>> config = EndpointConfig('https://example.org/oai', set_spec='2011')
        >>> with OAIClient(config) as client:
        ...     for record in client.list_records():
        ...         print(record['_id'])
    """

    def __init__(
        self,
        config: EndpointConfig,
        handler: Any = None,
        session: Optional[requests.Session] = None,
        requests_args: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.config = config
        self.handler: Handler = resolve_handler(handler, config.metadata_prefix)
        self.requests_args = dict(requests_args or {})
        self._parser = OAIParser()
        self._owns_session = session is None
        self._session = session if session is not None else requests.Session()

    def _request(self, params: Dict[str, str]) -> requests.Response:
        """
        Execute one OAI-PMH request.

        Raises:
            TransportError: On connection errors, timeouts and HTTP error statuses
        """
        url = self.config.url
        # Per-request auth so resumption requests carry it too
        kwargs: Dict[str, Any] = {'auth': self.config.auth, 'timeout': self.config.timeout}
        kwargs.update(self.requests_args)
        try:
            if self.config.http_method == 'GET':
                response = self._session.get(url, params=params, **kwargs)
            else:
                response = self._session.post(url, data=params, **kwargs)
            response.raise_for_status()
            return response
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            failed_url = e.response.url if e.response is not None else url
            raise TransportError(
                f"HTTP {status} from {failed_url}", url=failed_url, status=status
            ) from e
        except requests.RequestException as e:
            raise TransportError(f"Request to {url} failed: {e}", url=url) from e

    def list_records_page(
        self,
        resumption_token: Optional[str] = None,
        set_spec: Optional[str] = None,
        from_date: Optional[str] = None,
        until_date: Optional[str] = None,
    ) -> Page:
        """
        Retrieve a single page of raw records.

        Args:
            resumption_token: Token from the previous page. When given, it is
                the only argument sent besides the verb.
            set_spec, from_date, until_date: Ignored with a warning when a
                resumption token is given; the token already carries them.

        Returns:
            Page with records and pagination info.
        """
        if resumption_token:
            if any([set_spec, from_date, until_date]):
                warnings.warn(
                    "resumption_token provided; set_spec, from_date, until_date ignored",
                    UserWarning,
                    stacklevel=2
                )
            params = {'verb': 'ListRecords', 'resumptionToken': resumption_token}
        else:
            params = self.config.list_params()
            if set_spec:
                params['set'] = set_spec
            if from_date:
                params['from'] = from_date
            if until_date:
                params['until'] = until_date

        response = self._request(params)
        page = self._parser.parse_records(response.content, url=response.url)
        logger.debug(
            "Fetched %d records from %s (token=%s, completeListSize=%s)",
            len(page), self.config.url, page.resumption_token, page.complete_list_size
        )
        return page

    def iter_pages(self, ignore_no_records: bool = False) -> Iterator[Page]:
        """
        Iterate over pages until a response has no resumption token.

        Args:
            ignore_no_records: Treat noRecordsMatch on the first request as
                an empty harvest instead of an error.
        """
        try:
            page = self.list_records_page()
        except NoRecordsMatchError:
            if not ignore_no_records:
                raise
            logger.info("No records match the request to %s", self.config.url)
            return

        while True:
            yield page
            if not page.has_more:
                break
            page = self.list_records_page(resumption_token=page.resumption_token)

    def iter_raw(self, ignore_no_records: bool = False) -> Iterator[RawRecord]:
        """Iterate over raw records across all pages."""
        for page in self.iter_pages(ignore_no_records=ignore_no_records):
            yield from page

    def parse(self, record: RawRecord) -> Dict[str, Any]:
        """Turn a raw record into a structured one with the harvest handler."""
        data = record.envelope()
        if record.deleted:
            return data
        parsed = self.handler.parse(record)
        if isinstance(parsed, Mapping):
            data.update(parsed)
        else:
            data['_metadata'] = parsed
        return data

    def list_records(self, ignore_no_records: bool = False) -> Iterator[Dict[str, Any]]:
        """
        Iterate over all structured records, handling pagination automatically.

        Yields:
            Dicts with _id, _datestamp, _setSpec (and _status for deleted
            records) merged with the handler output.

        Raises:
            TransportError, ProtocolError, OaiProtocolError
        """
        count = 0
        for record in self.iter_raw(ignore_no_records=ignore_no_records):
            count += 1
            yield self.parse(record)
        logger.info("Harvested %d records from %s", count, self.config.url)

    # ==================== Context Manager ====================

    def close(self) -> None:
        """Close the HTTP session if the client opened it."""
        if self._owns_session:
            self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
