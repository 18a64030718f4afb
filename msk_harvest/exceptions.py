"""
Exceptions raised by msk_harvest.

OAI-PMH protocol errors follow the error codes defined by OAI-PMH v2.0:
https://www.openarchives.org/OAI/openarchivesprotocol.html#ErrorConditions
"""

from typing import Optional


class HarvestError(Exception):
    """Base class for all msk_harvest errors."""


class ConfigurationError(HarvestError):
    """Missing or invalid setup, detected before any I/O happens."""


class TransportError(HarvestError):
    """
    Network-level failure talking to the OAI-PMH endpoint.

    Covers timeouts, refused connections and HTTP error statuses.
    Never retried by the client.
    """

    def __init__(self, message: str, url: Optional[str] = None, status: Optional[int] = None):
        self.url = url
        self.status = status
        super().__init__(message)


class ProtocolError(HarvestError):
    """The endpoint answered with something that is not valid OAI-PMH XML."""

    def __init__(self, message: str, url: Optional[str] = None):
        self.url = url
        super().__init__(message)


# ==================== OAI-PMH Protocol Errors ====================

class OaiProtocolError(ProtocolError):
    """
    Error reported by the endpoint in an OAI-PMH <error> element.

    These errors are returned in the XML response body, not as HTTP status codes.
    """

    def __init__(self, code: str, message: str = '', url: Optional[str] = None):
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}" if message else code, url=url)


class BadArgumentError(OaiProtocolError):
    """
    The request includes illegal arguments, is missing required arguments,
    includes a repeated argument, or values for arguments have an illegal syntax.
    """

    def __init__(self, message: str = '', url: Optional[str] = None):
        super().__init__('badArgument', message, url=url)


class BadVerbError(OaiProtocolError):
    """Value of the verb argument is not a legal OAI-PMH verb."""

    def __init__(self, message: str = '', url: Optional[str] = None):
        super().__init__('badVerb', message, url=url)


class BadResumptionTokenError(OaiProtocolError):
    """The value of the resumptionToken argument is invalid or expired."""

    def __init__(self, message: str = '', url: Optional[str] = None):
        super().__init__('badResumptionToken', message, url=url)


class CannotDisseminateFormatError(OaiProtocolError):
    """
    The metadata format identified by the metadataPrefix argument
    is not supported by the item or by the repository.
    """

    def __init__(self, message: str = '', url: Optional[str] = None):
        super().__init__('cannotDisseminateFormat', message, url=url)


class IdDoesNotExistError(OaiProtocolError):
    """The value of the identifier argument is unknown or illegal."""

    def __init__(self, message: str = '', url: Optional[str] = None):
        super().__init__('idDoesNotExist', message, url=url)


class NoRecordsMatchError(OaiProtocolError):
    """
    The combination of the values of the from, until, set and metadataPrefix
    arguments results in an empty list.
    """

    def __init__(self, message: str = '', url: Optional[str] = None):
        super().__init__('noRecordsMatch', message, url=url)


class NoMetadataFormatsError(OaiProtocolError):
    """There are no metadata formats available for the specified item."""

    def __init__(self, message: str = '', url: Optional[str] = None):
        super().__init__('noMetadataFormats', message, url=url)


class NoSetHierarchyError(OaiProtocolError):
    """The repository does not support sets."""

    def __init__(self, message: str = '', url: Optional[str] = None):
        super().__init__('noSetHierarchy', message, url=url)


# Mapping from OAI-PMH error codes to exception classes
OAI_ERROR_MAP = {
    'badArgument': BadArgumentError,
    'badVerb': BadVerbError,
    'badResumptionToken': BadResumptionTokenError,
    'cannotDisseminateFormat': CannotDisseminateFormatError,
    'idDoesNotExist': IdDoesNotExistError,
    'noRecordsMatch': NoRecordsMatchError,
    'noMetadataFormats': NoMetadataFormatsError,
    'noSetHierarchy': NoSetHierarchyError,
}


# ==================== Lookup table errors ====================

class TableError(HarvestError):
    """Base class for lookup table acquisition errors."""


class FetchError(TableError):
    """A lookup table CSV could not be downloaded (network, auth or status)."""

    def __init__(self, message: str, source: Optional[str] = None, status: Optional[int] = None):
        self.source = source
        self.status = status
        super().__init__(message)


class LoadError(TableError):
    """A downloaded CSV could not be loaded into a local table."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)
