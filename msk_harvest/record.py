"""
RawRecord and Page classes for ListRecords responses.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from lxml import etree


@dataclass
class RawRecord:
    """
    A single OAI-PMH record as it came off the wire.

    Holds the header fields and the lxml elements so a handler can
    turn the metadata into whatever structure it likes.

    Attributes:
        identifier: OAI identifier from the header
        datestamp: Header datestamp
        set_specs: setSpec values from the header
        deleted: True when the header has status="deleted"
        element: The <record> element
        metadata: The first child of <metadata>, None for deleted records
    """
    identifier: str
    datestamp: str
    set_specs: List[str] = field(default_factory=list)
    deleted: bool = False
    element: Optional[Any] = field(default=None, repr=False)
    metadata: Optional[Any] = field(default=None, repr=False)

    def metadata_xml(self) -> Optional[str]:
        """
        Serialized metadata payload, or None if there is none.

        The copy drops namespaces inherited from the OAI envelope that the
        payload does not use, and the whitespace that follows it.
        """
        if self.metadata is None:
            return None
        payload = copy.deepcopy(self.metadata)
        etree.cleanup_namespaces(payload)
        return etree.tostring(payload, encoding='unicode', with_tail=False)

    def envelope(self) -> Dict[str, Any]:
        """Header fields in the shape merged into every structured record."""
        data: Dict[str, Any] = {
            '_id': self.identifier,
            '_datestamp': self.datestamp,
            '_setSpec': list(self.set_specs),
        }
        if self.deleted:
            data['_status'] = 'deleted'
        return data


@dataclass
class Page:
    """
    One ListRecords response: its records plus pagination info.

    Example:
        >>> page = client.list_records_page()
        >>> for record in page:
        ...     print(record.identifier)
        >>> if page.has_more:
        ...     page = client.list_records_page(resumption_token=page.resumption_token)
    """
    records: List[RawRecord] = field(default_factory=list)
    resumption_token: Optional[str] = None
    complete_list_size: Optional[int] = None
    cursor: Optional[int] = None

    def __iter__(self) -> Iterator[RawRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def __getitem__(self, index: int) -> RawRecord:
        return self.records[index]

    @property
    def has_more(self) -> bool:
        """True if there are more pages to fetch."""
        return bool(self.resumption_token)
