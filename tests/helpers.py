"""
Builders for OAI-PMH responses and fake HTTP traffic used across the tests.
"""

from typing import List, Optional
from urllib.parse import parse_qs, urlsplit

import requests

OAI_NS = 'http://www.openarchives.org/OAI/2.0/'


def lido_record(number: int, deleted: bool = False, set_spec: str = '2011') -> str:
    identifier = f'oai:msk.be:{number}'
    status = ' status="deleted"' if deleted else ''
    header = (
        f'<header{status}><identifier>{identifier}</identifier>'
        f'<datestamp>2017-05-0{number % 9 + 1}</datestamp>'
        f'<setSpec>{set_spec}</setSpec></header>'
    )
    if deleted:
        return f'<record>{header}</record>'
    return (
        f'<record>{header}<metadata>'
        '<lido:lido xmlns:lido="http://www.lido-schema.org">'
        f'<lido:lidoRecID lido:type="local">MSK-{number}</lido:lidoRecID>'
        '<lido:descriptiveMetadata><lido:objectIdentificationWrap><lido:titleWrap>'
        f'<lido:titleSet><lido:appellationValue>Work {number}</lido:appellationValue></lido:titleSet>'
        '</lido:titleWrap></lido:objectIdentificationWrap></lido:descriptiveMetadata>'
        '</lido:lido>'
        '</metadata></record>'
    )


def dc_record(identifier: str, title: str, creators: List[str]) -> str:
    creator_xml = ''.join(f'<dc:creator>{c}</dc:creator>' for c in creators)
    return (
        f'<record><header><identifier>{identifier}</identifier>'
        '<datestamp>2020-01-01</datestamp></header><metadata>'
        '<oai_dc:dc xmlns:oai_dc="http://www.openarchives.org/OAI/2.0/oai_dc/" '
        'xmlns:dc="http://purl.org/dc/elements/1.1/">'
        f'<dc:title>{title}</dc:title>{creator_xml}'
        '</oai_dc:dc></metadata></record>'
    )


def list_records_xml(
    records: List[str],
    token: Optional[str] = None,
    complete_list_size: Optional[int] = None,
    cursor: Optional[int] = None,
    empty_token: bool = False,
) -> str:
    token_xml = ''
    attrs = ''
    if complete_list_size is not None:
        attrs += f' completeListSize="{complete_list_size}"'
    if cursor is not None:
        attrs += f' cursor="{cursor}"'
    if token:
        token_xml = f'<resumptionToken{attrs}>{token}</resumptionToken>'
    elif empty_token:
        token_xml = f'<resumptionToken{attrs}/>'
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<OAI-PMH xmlns="{OAI_NS}">'
        '<responseDate>2017-05-01T12:00:00Z</responseDate>'
        '<request verb="ListRecords">https://example.org/oai</request>'
        f'<ListRecords>{"".join(records)}{token_xml}</ListRecords>'
        '</OAI-PMH>'
    )


def oai_error_xml(code: str, message: str = '') -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<OAI-PMH xmlns="{OAI_NS}">'
        '<responseDate>2017-05-01T12:00:00Z</responseDate>'
        '<request verb="ListRecords">https://example.org/oai</request>'
        f'<error code="{code}">{message}</error>'
        '</OAI-PMH>'
    )


def make_response(body, status: int = 200, url: str = 'https://example.org/oai', headers=None):
    """A real requests.Response carrying body."""
    response = requests.Response()
    response.status_code = status
    response._content = body.encode('utf-8') if isinstance(body, str) else body
    response.url = url
    response.encoding = 'utf-8'
    if headers:
        response.headers.update(headers)
    return response


def query_params(url: str) -> dict:
    """Query string of url as a flat dict."""
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


def pages_for(counts: List[int], first_number: int = 1) -> List[str]:
    """ListRecords bodies with the given record counts, chained by tokens."""
    bodies = []
    number = first_number
    total = sum(counts)
    for index, count in enumerate(counts):
        records = [lido_record(n) for n in range(number, number + count)]
        last = index == len(counts) - 1
        bodies.append(list_records_xml(
            records,
            token=None if last else f'token-{index + 1}',
            complete_list_size=total,
            cursor=number - 1,
            empty_token=last,
        ))
        number += count
    return bodies
