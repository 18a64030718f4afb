"""
Record handlers.

A handler turns the metadata of a RawRecord into a plain dict. Handlers are
looked up by name in a registry; new ones can be added with the
register_handler decorator:

    >>> @register_handler('my_format')
    ... class MyHandler(Handler):
    ...     def parse(self, record):
    ...         return {'title': record.metadata.findtext('title')}

By default the handler is inferred from the metadata prefix: oai_dc, marcxml
and mods have their own parsers, any LIDO prefix uses the LIDO parser and
everything else falls back to the generic struct parser.
"""

import importlib
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .exceptions import ConfigurationError
from .record import RawRecord

DC_NS = 'http://purl.org/dc/elements/1.1/'

HANDLERS: Dict[str, type] = {}


def register_handler(name: str) -> Callable[[type], type]:
    """Class decorator registering a handler under name."""
    def decorator(cls: type) -> type:
        HANDLERS[name] = cls
        return cls
    return decorator


def _parse_clark_notation(tag: str) -> Tuple[Optional[str], str]:
    """Split {namespace}localname into (namespace, localname)."""
    if tag.startswith('{'):
        ns_uri, local_name = tag[1:].split('}', 1)
        return ns_uri, local_name
    return None, tag


def _local_name(tag: str) -> str:
    return _parse_clark_notation(tag)[1]


def _elements(elem):
    """Child elements, skipping comments and processing instructions."""
    return [child for child in elem if isinstance(child.tag, str)]


def _text(elem) -> str:
    return elem.text.strip() if elem.text else ''


def flatten_leaves(elem, prefix: str = '') -> Dict[str, List[str]]:
    """
    Collect leaf text keyed by the path of local names below elem.

    Only leaf elements (with text, no children) become values, so
    <a><b><c>x</c></b><d>y</d></a> gives {'b/c': ['x'], 'd': ['y']}.
    """
    result: Dict[str, List[str]] = defaultdict(list)

    def walk(node, path):
        for child in _elements(node):
            child_path = f"{path}/{_local_name(child.tag)}" if path else _local_name(child.tag)
            children = _elements(child)
            if children:
                walk(child, child_path)
            elif _text(child):
                result[child_path].append(_text(child))

    walk(elem, prefix)
    return dict(result)


class Handler:
    """Base class for record handlers."""

    name = 'handler'

    def parse(self, record: RawRecord) -> Dict[str, Any]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class FunctionHandler(Handler):
    """Wraps a plain callable taking a RawRecord."""

    def __init__(self, func: Callable[[RawRecord], Any]) -> None:
        self.func = func
        self.name = getattr(func, '__name__', 'function')

    def parse(self, record: RawRecord) -> Any:
        return self.func(record)


class ObjectHandler(Handler):
    """Wraps a caller-supplied object that has a parse method."""

    def __init__(self, obj: Any) -> None:
        self.obj = obj
        self.name = type(obj).__name__

    def parse(self, record: RawRecord) -> Any:
        return self.obj.parse(record)


@register_handler('oai_dc')
class DublinCoreHandler(Handler):
    """Simple Dublin Core: each dc element becomes a list of strings."""

    name = 'oai_dc'

    def parse(self, record: RawRecord) -> Dict[str, List[str]]:
        data: Dict[str, List[str]] = defaultdict(list)
        if record.metadata is None:
            return {}
        for elem in record.metadata.iter():
            if not isinstance(elem.tag, str):
                continue
            ns_uri, local_name = _parse_clark_notation(elem.tag)
            if ns_uri == DC_NS and _text(elem):
                data[local_name].append(_text(elem))
        return dict(data)


@register_handler('marcxml')
class MarcXMLHandler(Handler):
    """
    MARCXML to a list of fields.

    Every field is [tag, ind1, ind2, code, value, code, value, ...];
    the leader and control fields use '_' as their only subfield code.
    """

    name = 'marcxml'

    def _find_record(self, elem):
        if _local_name(elem.tag) == 'record':
            return elem
        for child in elem.iter():
            if isinstance(child.tag, str) and _local_name(child.tag) == 'record':
                return child
        return None

    def parse(self, record: RawRecord) -> Dict[str, Any]:
        marc = self._find_record(record.metadata) if record.metadata is not None else None
        fields: List[List[str]] = []
        data: Dict[str, Any] = {'_id': record.identifier, 'record': fields}
        if marc is None:
            return data

        for field in _elements(marc):
            kind = _local_name(field.tag)
            if kind == 'leader':
                fields.append(['LDR', ' ', ' ', '_', field.text or ''])
            elif kind == 'controlfield':
                tag = field.get('tag', '')
                fields.append([tag, ' ', ' ', '_', field.text or ''])
                if tag == '001' and _text(field):
                    data['_id'] = _text(field)
            elif kind == 'datafield':
                row = [field.get('tag', ''), field.get('ind1', ' '), field.get('ind2', ' ')]
                for subfield in _elements(field):
                    row.extend([subfield.get('code', ''), subfield.text or ''])
                fields.append(row)
        return data


@register_handler('mods')
class ModsHandler(Handler):
    """MODS leaf values keyed by element path, e.g. 'titleInfo/title'."""

    name = 'mods'

    def parse(self, record: RawRecord) -> Dict[str, List[str]]:
        if record.metadata is None:
            return {}
        return flatten_leaves(record.metadata)


@register_handler('lido')
class LidoHandler(Handler):
    """
    LIDO leaf values keyed by element path below the <lido> element.

    A <lidoWrap> around a single record is unwrapped. lidoRecID and
    objectPublishedID are always present, possibly empty.
    """

    name = 'lido'

    def parse(self, record: RawRecord) -> Dict[str, List[str]]:
        lido = record.metadata
        if lido is None:
            return {}
        if _local_name(lido.tag) == 'lidoWrap':
            wrapped = [c for c in _elements(lido) if _local_name(c.tag) == 'lido']
            if wrapped:
                lido = wrapped[0]

        data = flatten_leaves(lido)
        data.setdefault('lidoRecID', [])
        data.setdefault('objectPublishedID', [])
        return data


@register_handler('struct')
class StructHandler(Handler):
    """
    Generic structure: [name, {attributes}, [children]].

    Children are nested lists for elements and strings for text.
    """

    name = 'struct'

    def _convert(self, elem) -> list:
        attrs = {_local_name(key): value for key, value in elem.attrib.items()}
        children: List[Union[str, list]] = []
        if _text(elem):
            children.append(_text(elem))
        for child in elem:
            if isinstance(child.tag, str):
                children.append(self._convert(child))
            if child.tail and child.tail.strip():
                children.append(child.tail.strip())
        return [_local_name(elem.tag), attrs, children]

    def parse(self, record: RawRecord) -> Dict[str, Any]:
        if record.metadata is None:
            return {}
        return {'_metadata': self._convert(record.metadata)}


@register_handler('raw')
class RawHandler(Handler):
    """The metadata XML exactly as received."""

    name = 'raw'

    def parse(self, record: RawRecord) -> Dict[str, Optional[str]]:
        return {'_metadata': record.metadata_xml()}


# Metadata prefixes with a dedicated parser
PREFIX_HANDLERS = {
    'oai_dc': 'oai_dc',
    'marcxml': 'marcxml',
    'mods': 'mods',
}


def default_handler_name(metadata_prefix: str) -> str:
    """Registered handler name used for a metadata prefix."""
    if metadata_prefix in PREFIX_HANDLERS:
        return PREFIX_HANDLERS[metadata_prefix]
    if 'lido' in metadata_prefix.lower():
        return 'lido'
    return 'struct'


def _import_handler(path: str) -> type:
    module_name, _, attr = path.rpartition('.')
    if not module_name:
        raise ConfigurationError(f"Handler path must be module.Class, got {path!r}")
    try:
        module = importlib.import_module(module_name)
        return getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot import handler {path!r}: {e}") from e


def resolve_handler(spec: Any, metadata_prefix: str) -> Handler:
    """
    Pick the handler for a harvest.

    Args:
        spec: None (infer from prefix), a registered name, '+module.Class',
            a Handler class, an object with a parse method, or a callable
            taking a RawRecord
        metadata_prefix: The prefix being harvested

    Returns:
        Handler instance used for every record of the harvest

    Raises:
        ConfigurationError: If the handler cannot be resolved
    """
    if spec is None or spec == '':
        spec = default_handler_name(metadata_prefix)

    if isinstance(spec, str):
        if spec.startswith('+'):
            target = _import_handler(spec[1:])
        elif spec in HANDLERS:
            target = HANDLERS[spec]
        else:
            raise ConfigurationError(
                f"Unknown handler {spec!r}. Known handlers: {', '.join(sorted(HANDLERS))}"
            )
        if isinstance(target, type):
            try:
                spec = target()
            except TypeError as e:
                raise ConfigurationError(f"Cannot instantiate handler {target.__name__}: {e}") from e
        else:
            spec = target

    if isinstance(spec, type):
        spec = spec()

    if isinstance(spec, Handler):
        return spec
    if hasattr(spec, 'parse') and callable(spec.parse):
        return ObjectHandler(spec)
    if callable(spec):
        return FunctionHandler(spec)
    raise ConfigurationError(f"Handler must be a name, an object with parse() or a callable: {spec!r}")
