#!/usr/bin/env python3
"""
Generic XML to dataclass decoding for NETCONF replies.

A reply shape is a dataclass whose fields carry their XML tag in the field
metadata (see xml_field). decode_reply() locates the shape's root element in
the reply payload and fills the dataclass recursively, so adding a new RPC
reply type only needs a new dataclass.

Supported field types:
- str:            element text, whitespace stripped ("" when absent)
- int:            element text parsed as integer (0 when absent)
- bool:           presence flag, True when the element exists
- Optional[bool]: None when absent, True for an empty element, else parsed
- a shape:        nested element decoded recursively
- List[shape] / List[str]: every matching child element
"""

import dataclasses
import typing
from typing import Any, List, Optional, Type, TypeVar

from lxml import etree

from junos_netconf.utils.error_handling import ProtocolError

T = TypeVar("T")

_TRUE_TEXT = ("true", "1", "yes")
_FALSE_TEXT = ("false", "0", "no")


def xml_field(tag: str, default: Any = ""):
    """Declare a dataclass field mapped to the child element `tag`"""
    return dataclasses.field(default=default, metadata={"xml": tag})


def xml_list(tag: str):
    """Declare a list field collecting every child element `tag`"""
    return dataclasses.field(default_factory=list, metadata={"xml": tag})


def xml_nested(tag: str, shape: Type):
    """Declare a field holding one nested reply shape"""
    return dataclasses.field(default_factory=shape, metadata={"xml": tag})


def parse_xml(payload: str) -> etree._Element:
    """
    Parse a reply payload that may hold several top-level elements.

    Namespaces are removed so shapes match on local tag names only.

    Raises:
        ProtocolError: payload is not well-formed XML
    """
    parser = etree.XMLParser(remove_blank_text=True, recover=False, resolve_entities=False)
    try:
        root = etree.fromstring(f"<reply-data>{payload}</reply-data>".encode("utf-8"), parser)
    except etree.XMLSyntaxError as e:
        raise ProtocolError(f"failed to parse XML reply: {e}", payload)
    return strip_namespaces(root)


def strip_namespaces(root: etree._Element) -> etree._Element:
    for element in root.iter():
        if isinstance(element.tag, str):
            element.tag = etree.QName(element).localname
    etree.cleanup_namespaces(root)
    return root


def _text(element: etree._Element) -> str:
    return (element.text or "").strip()


def _decode_scalar(hint: Any, element: Optional[etree._Element], tag: str, payload: str):
    if hint is str:
        return _text(element) if element is not None else ""
    if hint is int:
        if element is None or not _text(element):
            return 0
        try:
            return int(_text(element))
        except ValueError:
            raise ProtocolError(f"invalid integer in <{tag}>: {_text(element)!r}", payload)
    if hint is bool:
        return element is not None
    raise TypeError(f"unsupported field type for <{tag}>: {hint!r}")


def _decode_optional_bool(element: Optional[etree._Element], tag: str, payload: str) -> Optional[bool]:
    if element is None:
        return None
    value = _text(element).lower()
    if not value or value in _TRUE_TEXT:
        return True
    if value in _FALSE_TEXT:
        return False
    raise ProtocolError(f"invalid boolean in <{tag}>: {value!r}", payload)


def _decode_element(shape: Type[T], element: etree._Element, payload: str) -> T:
    hints = typing.get_type_hints(shape)
    values = {}
    for f in dataclasses.fields(shape):
        tag = f.metadata.get("xml")
        if tag is None:
            continue
        hint = hints[f.name]
        origin = typing.get_origin(hint)
        args = typing.get_args(hint)

        if origin in (list, List):
            item_type = args[0]
            children = element.findall(tag)
            if dataclasses.is_dataclass(item_type):
                values[f.name] = [_decode_element(item_type, c, payload) for c in children]
            else:
                values[f.name] = [_decode_scalar(item_type, c, tag, payload) for c in children]
        elif origin is typing.Union and set(args) == {bool, type(None)}:
            values[f.name] = _decode_optional_bool(element.find(tag), tag, payload)
        elif dataclasses.is_dataclass(hint):
            child = element.find(tag)
            if child is None:
                child = etree.Element("empty")
            values[f.name] = _decode_element(hint, child, payload)
        else:
            values[f.name] = _decode_scalar(hint, element.find(tag), tag, payload)
    return shape(**values)


def find_root(root: etree._Element, tag: str) -> Optional[etree._Element]:
    """First element named `tag`, the reply wrapper itself included"""
    if root.tag == tag:
        return root
    return next(root.iter(tag), None)


def decode_element(element: etree._Element, shape: Type[T], payload: str = "") -> T:
    """Decode an already-parsed element into `shape`"""
    return _decode_element(shape, element, payload)


def decode_reply(payload: str, shape: Type[T]) -> T:
    """
    Decode the data of an rpc-reply into a reply shape.

    Args:
        payload: Inner XML of the rpc-reply element
        shape: Dataclass with an XML_TAG class attribute naming its root element

    Returns:
        Populated instance of `shape`

    Raises:
        ProtocolError: malformed XML or root element missing
    """
    root = parse_xml(payload)
    element = find_root(root, shape.XML_TAG)
    if element is None:
        raise ProtocolError(f"<{shape.XML_TAG}> not found in reply", payload)
    return _decode_element(shape, element, payload)
