"""
Configuration for the OAI-PMH endpoint and the lookup table sources.

ImporterConfig mirrors the options of an importer block in a pipeline file:

    [importer]
    endpoint = https://endpoint.msk.be/oai
    metadata_prefix = oai_lido
    set = 2011
    pid_module = rcf
    pid_username = datahub
    pid_password = datahub
    pid_rcf_container_name = datahub
"""

import configparser
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

from .exceptions import ConfigurationError
from .tables import (
    DEFAULT_TABLES,
    LookupTableSpec,
    ObjectStoreSource,
    RemoteSource,
    UrlSource,
)
from .utils import is_http_url, validate_date_range

DEFAULT_METADATA_PREFIX = 'oai_lido'
PID_MODULES = ('rcf', 'lwp')
ENV_PREFIX = 'MSK_'

# Option names that are Python keywords or too generic as attribute names
_OPTION_ALIASES = {
    'set': 'set_spec',
    'from': 'from_date',
    'until': 'until_date',
}


def read_ini(path, section: str = 'importer') -> Dict[str, str]:
    """Options from one section of an INI pipeline file."""
    parser = configparser.ConfigParser(interpolation=None)
    if not parser.read(path, encoding='utf-8'):
        raise ConfigurationError(f"Cannot read config file: {path}")
    if not parser.has_section(section):
        raise ConfigurationError(f"Section [{section}] not found in {path}")
    return dict(parser.items(section))


def read_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Options from MSK_<OPTION> environment variables, e.g. MSK_ENDPOINT."""
    environ = os.environ if environ is None else environ
    known = ({f.name for f in fields(ImporterConfig)} | set(_OPTION_ALIASES)) - {'tables'}
    options = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX):].lower()
        if name in known:
            options[name] = value
    return options


@dataclass(frozen=True)
class EndpointConfig:
    """
    Everything needed to page through ListRecords on one endpoint.

    Raises ConfigurationError on construction if the url, prefix, or date
    range is unusable.
    """
    url: str
    metadata_prefix: str = DEFAULT_METADATA_PREFIX
    set_spec: Optional[str] = None
    from_date: Optional[str] = None
    until_date: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    http_method: str = 'GET'
    timeout: int = 30

    def __post_init__(self) -> None:
        if not self.url:
            raise ConfigurationError("endpoint URL must not be empty")
        if not is_http_url(self.url):
            raise ConfigurationError(f"endpoint URL must start with http:// or https://: {self.url}")
        if not self.metadata_prefix:
            raise ConfigurationError("metadata_prefix must not be empty")
        if self.http_method not in ('GET', 'POST'):
            raise ConfigurationError("HTTP method must be 'GET' or 'POST'")
        validate_date_range(self.from_date, self.until_date)

    @property
    def auth(self):
        """(username, password) for basic auth, or None."""
        if self.username:
            return (self.username, self.password or '')
        return None

    def list_params(self) -> Dict[str, str]:
        """Parameters of the first ListRecords request."""
        params = {'verb': 'ListRecords', 'metadataPrefix': self.metadata_prefix}
        if self.set_spec:
            params['set'] = self.set_spec
        if self.from_date:
            params['from'] = self.from_date
        if self.until_date:
            params['until'] = self.until_date
        return params


@dataclass
class ImporterConfig:
    """All importer options. See the module docstring for an example."""
    endpoint: Optional[str] = None
    metadata_prefix: str = DEFAULT_METADATA_PREFIX
    handler: Any = None
    set_spec: Optional[str] = None
    from_date: Optional[str] = None
    until_date: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    pid_module: str = 'rcf'
    pid_username: Optional[str] = None
    pid_password: Optional[str] = field(default=None, repr=False)
    pid_lwp_realm: Optional[str] = None
    pid_lwp_base_url: Optional[str] = None
    pid_rcf_container_name: Optional[str] = None
    pid_rcf_endpoint_url: Optional[str] = None
    pid_rcf_region: Optional[str] = None
    tables: Sequence[LookupTableSpec] = DEFAULT_TABLES
    table_directory: Optional[Path] = None

    # ==================== Constructors ====================

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> 'ImporterConfig':
        """
        Build from a dict of option names.

        Accepts both 'set'/'from'/'until' and set_spec/from_date/until_date.
        Empty strings count as unset.

        Raises:
            ConfigurationError: On unknown options
        """
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in options.items():
            name = _OPTION_ALIASES.get(key, key)
            if name not in known:
                raise ConfigurationError(f"Unknown option: {key}")
            if value is None or value == '':
                continue
            kwargs[name] = value
        if 'table_directory' in kwargs:
            kwargs['table_directory'] = Path(kwargs['table_directory'])
        return cls(**kwargs)

    @classmethod
    def from_ini(cls, path, section: str = 'importer') -> 'ImporterConfig':
        """Read options from one section of an INI pipeline file."""
        return cls.from_mapping(read_ini(path, section))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'ImporterConfig':
        """Read MSK_<OPTION> environment variables, e.g. MSK_ENDPOINT."""
        return cls.from_mapping(read_env(environ))

    # ==================== Validation ====================

    def validate(self, tables: bool = True) -> None:
        """
        Check the options before any I/O.

        Args:
            tables: Also check the lookup table options

        Raises:
            ConfigurationError: If an option is missing or invalid
        """
        if not self.endpoint:
            raise ConfigurationError("endpoint is required")
        self.endpoint_config()
        if tables:
            self.validate_tables()

    def validate_tables(self) -> None:
        if self.pid_module not in PID_MODULES:
            raise ConfigurationError(
                f"pid_module must be one of {', '.join(PID_MODULES)}, got {self.pid_module!r}"
            )
        if self.pid_module == 'rcf' and not self.pid_rcf_container_name:
            raise ConfigurationError("pid_rcf_container_name is required for pid_module 'rcf'")
        if self.pid_module == 'lwp' and not self.pid_lwp_base_url:
            raise ConfigurationError("pid_lwp_base_url is required for pid_module 'lwp'")
        if self.pid_module == 'lwp' and not is_http_url(self.pid_lwp_base_url):
            raise ConfigurationError(
                f"pid_lwp_base_url must start with http:// or https://: {self.pid_lwp_base_url}"
            )
        names = [spec.name for spec in self.tables]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Duplicate lookup table names: {names}")

    # ==================== Derived values ====================

    def endpoint_config(self) -> EndpointConfig:
        if not self.endpoint:
            raise ConfigurationError("endpoint is required")
        return EndpointConfig(
            url=self.endpoint,
            metadata_prefix=self.metadata_prefix,
            set_spec=self.set_spec,
            from_date=self.from_date,
            until_date=self.until_date,
            username=self.username,
            password=self.password,
        )

    def source_for(self, object_name: str) -> RemoteSource:
        """Remote descriptor of one lookup table CSV for the chosen pid_module."""
        if self.pid_module == 'rcf':
            return ObjectStoreSource(
                container=self.pid_rcf_container_name,
                object_name=object_name,
                username=self.pid_username,
                password=self.pid_password,
                endpoint_url=self.pid_rcf_endpoint_url,
                region=self.pid_rcf_region,
            )
        if self.pid_module == 'lwp':
            return UrlSource(
                base_url=self.pid_lwp_base_url,
                object_name=object_name,
                username=self.pid_username,
                password=self.pid_password,
                realm=self.pid_lwp_realm,
            )
        raise ConfigurationError(f"Unknown pid_module: {self.pid_module!r}")
