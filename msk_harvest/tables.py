"""
Lookup tables fetched from a remote CSV.

A lookup table is downloaded either from an object store container or from
a plain web site, written to a temporary directory and loaded into its own
SQLite file, where downstream fixes can query it by column.

Example:
    >>> source = UrlSource('https://example.org/pids/', 'PIDS_MSK_UTF8.csv')
    >>> table = load(fetch(source), name='pids')
    >>> table.lookup('object_number', '1234')
"""

import csv
import logging
import os
import re
import sqlite3
import tempfile
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

import boto3
import pandas as pd
import requests
from botocore.exceptions import BotoCoreError, ClientError
from requests.auth import HTTPBasicAuth

from .exceptions import ConfigurationError, FetchError, LoadError
from .utils import uri_join

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30

_REALM_PATTERN = re.compile(r'realm="([^"]*)"', re.IGNORECASE)


# ==================== Sources ====================

@dataclass(frozen=True)
class ObjectStoreSource:
    """
    A CSV stored as an object in an object store container.

    The username and password are used as the access key pair.
    """
    container: str
    object_name: str
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    endpoint_url: Optional[str] = None
    region: Optional[str] = None

    def describe(self) -> str:
        return f"{self.container}/{self.object_name}"


@dataclass(frozen=True)
class UrlSource:
    """
    A CSV published on a web site under base_url.

    If realm is set, credentials are only sent when the server asks for
    them with a matching Basic realm.
    """
    base_url: str
    object_name: str
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    realm: Optional[str] = None

    @property
    def url(self) -> str:
        return uri_join(self.base_url, self.object_name)

    def describe(self) -> str:
        return self.url


RemoteSource = Union[ObjectStoreSource, UrlSource]


@dataclass(frozen=True)
class LookupTableSpec:
    """Name of a lookup table, the object it comes from and its key column."""
    name: str
    object_name: str
    key_column: Optional[str] = None


DEFAULT_TABLES = (
    LookupTableSpec('pids', 'PIDS_MSK_UTF8.csv'),
    LookupTableSpec('creators', 'CREATORS_MSK_UTF8.csv'),
    LookupTableSpec('aat', 'AAT_UTF8.csv', key_column='record - object_name'),
)


def default_directory() -> Path:
    """Directory holding downloaded CSVs and table files for this process."""
    return Path(tempfile.gettempdir()) / 'msk_harvest'


# ==================== Fetching ====================

def fetch(
    source: RemoteSource,
    directory: Optional[Path] = None,
    session: Optional[requests.Session] = None,
    timeout: int = DEFAULT_TIMEOUT,
) -> Path:
    """
    Download a CSV to <directory>/<object_name>.

    Args:
        source: Where the CSV lives
        directory: Target directory (default: default_directory())
        session: requests session to use for UrlSource downloads
        timeout: HTTP timeout in seconds

    Returns:
        Path of the downloaded file

    Raises:
        FetchError: On network, authentication or HTTP status failures
    """
    if isinstance(source, ObjectStoreSource):
        payload = _fetch_object(source)
    elif isinstance(source, UrlSource):
        payload = _fetch_url(source, session, timeout)
    else:
        raise ConfigurationError(f"Unsupported source: {source!r}")

    directory = Path(directory) if directory else default_directory()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / Path(source.object_name).name

    # Write next to the target first so a failed write leaves no half file
    partial = path.with_name(path.name + '.part')
    partial.write_bytes(payload)
    os.replace(partial, path)

    logger.debug("Fetched %s (%d bytes) to %s", source.describe(), len(payload), path)
    return path


def _fetch_object(source: ObjectStoreSource) -> bytes:
    try:
        client = boto3.client(
            's3',
            aws_access_key_id=source.username,
            aws_secret_access_key=source.password,
            endpoint_url=source.endpoint_url,
            region_name=source.region,
        )
        response = client.get_object(Bucket=source.container, Key=source.object_name)
        return response['Body'].read()
    except ClientError as e:
        error = e.response.get('Error', {})
        status = e.response.get('ResponseMetadata', {}).get('HTTPStatusCode')
        raise FetchError(
            f"Could not download {source.describe()}: "
            f"{error.get('Code', 'error')} {error.get('Message', '')}".rstrip(),
            source=source.describe(),
            status=status,
        ) from e
    except BotoCoreError as e:
        raise FetchError(
            f"Could not download {source.describe()}: {e}",
            source=source.describe(),
        ) from e


def _challenge_realm(response: requests.Response) -> Optional[str]:
    match = _REALM_PATTERN.search(response.headers.get('WWW-Authenticate', ''))
    return match.group(1) if match else None


def _fetch_url(
    source: UrlSource,
    session: Optional[requests.Session],
    timeout: int,
) -> bytes:
    url = source.url
    auth = None
    if source.username:
        auth = HTTPBasicAuth(source.username, source.password or '')

    own_session = session is None
    if own_session:
        session = requests.Session()

    try:
        if auth is not None and source.realm:
            response = session.get(url, timeout=timeout)
            if response.status_code == 401 and _challenge_realm(response) == source.realm:
                response = session.get(url, auth=auth, timeout=timeout)
        else:
            response = session.get(url, auth=auth, timeout=timeout)
        response.raise_for_status()
        return response.content
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else None
        raise FetchError(f"Could not download {url}: HTTP {status}", source=url, status=status) from e
    except requests.RequestException as e:
        raise FetchError(f"Could not download {url}: {e}", source=url) from e
    finally:
        if own_session:
            session.close()


# ==================== Loading ====================

def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


class LookupTable:
    """
    Read-only view on a loaded lookup table.

    Every query opens the SQLite file read-only, so one table can be read
    from several consumers at once.

    Example:
        >>> table.columns
        ['record - object_name', 'term', 'aat_id']
        >>> table.get('schilderij')['aat_id']
        '300033618'
    """

    def __init__(self, name: str, path: Path, columns: List[str], key_column: Optional[str] = None):
        self.name = name
        self.path = Path(path)
        self.columns = list(columns)
        self.key_column = key_column

    def __repr__(self) -> str:
        return f"LookupTable(name={self.name!r}, path={str(self.path)!r})"

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(f"{self.path.resolve().as_uri()}?mode=ro", uri=True)
        conn.row_factory = sqlite3.Row
        return conn

    def _query(self, sql: str, params=()) -> List[Dict[str, Any]]:
        with closing(self._connect()) as conn:
            return [dict(row) for row in conn.execute(sql, params)]

    def __len__(self) -> int:
        with closing(self._connect()) as conn:
            return conn.execute(f'SELECT COUNT(*) FROM {_quote(self.name)}').fetchone()[0]

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(self._query(f'SELECT * FROM {_quote(self.name)} ORDER BY rowid'))

    def lookup(self, column: str, value: str) -> List[Dict[str, Any]]:
        """All rows whose column equals value."""
        if column not in self.columns:
            raise KeyError(f"Table {self.name!r} has no column {column!r}")
        return self._query(
            f'SELECT * FROM {_quote(self.name)} WHERE {_quote(column)} = ? ORDER BY rowid',
            (value,),
        )

    def get(self, key: str, default: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """Row whose key column equals key."""
        if self.key_column is None:
            raise ValueError(f"Table {self.name!r} has no key column")
        rows = self.lookup(self.key_column, key)
        return rows[0] if rows else default


def load(
    path: Union[str, Path],
    name: Optional[str] = None,
    key_column: Optional[str] = None,
    directory: Optional[Path] = None,
) -> LookupTable:
    """
    Load a UTF-8 CSV with a header row into a fresh SQLite table.

    Args:
        path: CSV file
        name: Table name (default: file stem)
        key_column: Column that must be unique; it gets a UNIQUE index
        directory: Where <name>.sqlite is written (default: next to the CSV)

    Returns:
        LookupTable

    Raises:
        LoadError: If the CSV is malformed or the key column has duplicates
    """
    path = Path(path)
    name = name or path.stem
    directory = Path(directory) if directory else path.parent

    frame = _read_csv(path)
    columns = [str(c) for c in frame.columns]

    if key_column is not None:
        if key_column not in columns:
            raise LoadError(f"{path}: key column {key_column!r} not in header {columns}", path=str(path))
        duplicates = frame[key_column][frame[key_column].duplicated()].unique().tolist()
        if duplicates:
            raise LoadError(
                f"{path}: duplicate values in key column {key_column!r}: {duplicates[:5]}",
                path=str(path),
            )

    directory.mkdir(parents=True, exist_ok=True)
    db_path = directory / f"{name}.sqlite"
    partial = db_path.with_name(db_path.name + '.part')
    if partial.exists():
        partial.unlink()

    try:
        with closing(sqlite3.connect(partial)) as conn:
            frame.to_sql(name, conn, index=False)
            if key_column is not None:
                conn.execute(
                    f'CREATE UNIQUE INDEX {_quote(name + "_key")} '
                    f'ON {_quote(name)} ({_quote(key_column)})'
                )
            conn.commit()
    except (sqlite3.Error, ValueError) as e:
        if partial.exists():
            partial.unlink()
        raise LoadError(f"{path}: could not create table {name!r}: {e}", path=str(path)) from e
    os.replace(partial, db_path)

    logger.debug("Loaded %d rows from %s into %s", len(frame), path, db_path)
    return LookupTable(name, db_path, columns, key_column)


def _read_csv(path: Path) -> pd.DataFrame:
    """
    Read every cell as text; the first row holds the column names.

    Reading with header=None lets the parser reject rows that are longer
    than the header instead of guessing an index column.
    """
    try:
        frame = pd.read_csv(
            path,
            header=None,
            dtype=str,
            keep_default_na=False,
            encoding='utf-8-sig',
        )
    except FileNotFoundError as e:
        raise LoadError(f"{path}: file not found", path=str(path)) from e
    except pd.errors.EmptyDataError as e:
        raise LoadError(f"{path}: empty CSV", path=str(path)) from e
    except UnicodeDecodeError as e:
        raise LoadError(f"{path}: not UTF-8 encoded: {e}", path=str(path)) from e
    except pd.errors.ParserError as e:
        raise LoadError(f"{path}: column count mismatch: {e}", path=str(path)) from e

    header = frame.iloc[0].tolist()
    if any(pd.isna(c) or c == '' for c in header):
        raise LoadError(f"{path}: empty column name in header", path=str(path))
    if len(set(header)) != len(header):
        raise LoadError(f"{path}: duplicate column names in header {header}", path=str(path))
    _check_widths(path, len(header))

    rows = frame.iloc[1:].reset_index(drop=True)
    rows.columns = header
    return rows


def _check_widths(path: Path, width: int) -> None:
    """The parser pads short rows with '', so count the fields of every record."""
    with open(path, encoding='utf-8-sig', newline='') as f:
        reader = csv.reader(f)
        for fields in reader:
            # Blank lines are skipped by the parser as well
            if fields and len(fields) != width:
                raise LoadError(
                    f"{path}: column count mismatch on line {reader.line_num}, "
                    f"expected {width} fields, got {len(fields)}",
                    path=str(path),
                )
