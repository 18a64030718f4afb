"""
OAI-PMH XML parser.

Turns a ListRecords response into a Page of RawRecords. Metadata is left
as lxml elements; turning it into structured values is the handler's job.
"""

from typing import List, NamedTuple, Optional, Tuple

from lxml import etree

from .exceptions import OAI_ERROR_MAP, OaiProtocolError, ProtocolError
from .record import Page, RawRecord


class HeaderInfo(NamedTuple):
    """Parsed OAI-PMH record header."""
    identifier: str
    datestamp: str
    set_specs: List[str]
    deleted: bool


class OAIParser:
    """
    Parses ListRecords responses.

    Example:
        >>> parser = OAIParser()
        >>> page = parser.parse_records(xml_content)
        >>> for record in page:
        ...     print(record.identifier)
    """

    OAI_NS = 'http://www.openarchives.org/OAI/2.0/'

    def __init__(self) -> None:
        self._parser = etree.XMLParser(resolve_entities=False, no_network=True)

    def _oai(self, tag: str) -> str:
        """Build OAI namespace-qualified tag."""
        return f'{{{self.OAI_NS}}}{tag}'

    def _parse_xml(self, xml_content, url: Optional[str] = None):
        """
        Parse response body to an lxml element.

        Raises:
            ProtocolError: If the body is not well-formed XML
        """
        if isinstance(xml_content, str):
            xml_content = xml_content.encode('utf-8')
        if not xml_content or not xml_content.strip():
            raise ProtocolError("Empty response body", url=url)
        try:
            return etree.fromstring(xml_content, self._parser)
        except etree.XMLSyntaxError as e:
            raise ProtocolError(f"Malformed XML in response: {e}", url=url) from e

    def _check_oai_errors(self, root, url: Optional[str] = None) -> None:
        """
        Raise the matching exception if the response holds an <error> element.

        Raises:
            OaiProtocolError: If an error element is found in the response
        """
        error = root.find(self._oai('error'))
        if error is None:
            return

        code = error.get('code', 'unknown')
        message = error.text.strip() if error.text else ''

        exc_class = OAI_ERROR_MAP.get(code)
        if exc_class is None:
            raise OaiProtocolError(code, message, url=url)
        raise exc_class(message, url=url)

    def _parse_header(self, header) -> HeaderInfo:
        """Parse OAI-PMH record header element."""
        status = header.get('status', '')
        identifier = header.findtext(self._oai('identifier'), '').strip()
        datestamp = header.findtext(self._oai('datestamp'), '').strip()
        set_specs = [
            elem.text.strip() for elem in header.findall(self._oai('setSpec'))
            if elem.text
        ]
        return HeaderInfo(
            identifier=identifier,
            datestamp=datestamp,
            set_specs=set_specs,
            deleted=(status == 'deleted')
        )

    def _extract_resumption_token(self, token_elem) -> Optional[str]:
        """An empty resumptionToken element marks the last page."""
        if token_elem is not None and token_elem.text and token_elem.text.strip():
            return token_elem.text.strip()
        return None

    def _extract_pagination_info(self, token_elem) -> Tuple[Optional[int], Optional[int]]:
        """Extract completeListSize and cursor from resumptionToken."""
        if token_elem is None:
            return None, None

        complete_size = token_elem.get('completeListSize')
        cursor = token_elem.get('cursor')

        try:
            return (
                int(complete_size) if complete_size else None,
                int(cursor) if cursor else None
            )
        except ValueError:
            return None, None

    def parse_records(self, xml_content, url: Optional[str] = None) -> Page:
        """
        Parse a ListRecords response.

        The whole page is parsed before it is returned, so callers never
        see a partially-read page.

        Args:
            xml_content: Raw XML (str or bytes) from the OAI-PMH response
            url: Request URL, attached to raised errors

        Returns:
            Page containing raw records and pagination info

        Raises:
            ProtocolError: If the response is not OAI-PMH XML
            OaiProtocolError: If the response contains an OAI-PMH error
        """
        root = self._parse_xml(xml_content, url=url)
        if root.tag != self._oai('OAI-PMH'):
            raise ProtocolError(f"Unexpected root element {root.tag}", url=url)
        self._check_oai_errors(root, url=url)

        list_records = root.find(self._oai('ListRecords'))
        if list_records is None:
            raise ProtocolError("ListRecords element not found in response", url=url)

        records = []
        for record_elem in list_records.findall(self._oai('record')):
            record = self._parse_record(record_elem)
            if record is not None:
                records.append(record)

        token_elem = list_records.find(self._oai('resumptionToken'))
        complete_list_size, cursor = self._extract_pagination_info(token_elem)

        return Page(
            records=records,
            resumption_token=self._extract_resumption_token(token_elem),
            complete_list_size=complete_list_size,
            cursor=cursor
        )

    def _parse_record(self, record_elem) -> Optional[RawRecord]:
        """Parse a single record element."""
        header_elem = record_elem.find(self._oai('header'))
        if header_elem is None:
            return None

        header = self._parse_header(header_elem)

        payload = None
        metadata_elem = record_elem.find(self._oai('metadata'))
        if metadata_elem is not None and not header.deleted:
            # Skip comments and processing instructions
            children = [c for c in metadata_elem if isinstance(c.tag, str)]
            if children:
                payload = children[0]

        return RawRecord(
            identifier=header.identifier,
            datestamp=header.datestamp,
            set_specs=header.set_specs,
            deleted=header.deleted,
            element=record_elem,
            metadata=payload,
        )
