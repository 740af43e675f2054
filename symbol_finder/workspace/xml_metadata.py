"""
Schema-aware parsing of ``AxClass`` and ``AxTable`` metadata files.

Optional elements (labels, return types, EDTs, ...) may be missing and fall
back to defaults.  Structural problems raise
:class:`~symbol_finder.errors.MetadataParseError`: XML that does not parse,
an unexpected root element, or a method or field entry without a name.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Optional

from ..errors import MetadataParseError
from .models import (
    ClassMetadata, FieldMetadata, FileMetadata, MethodMetadata,
    TableMetadata, WorkspaceFileType,
)

_XSI_TYPE = "{http://www.w3.org/2001/XMLSchema-instance}type"

_ROOT_TAGS = {
    WorkspaceFileType.CLASS: "AxClass",
    WorkspaceFileType.TABLE: "AxTable",
}


def _local(tag: str) -> str:
    """Drop a ``{namespace}`` prefix from an element tag."""
    return tag.rsplit("}", 1)[-1]


def _children(elem: ET.Element, name: str) -> list[ET.Element]:
    return [c for c in elem if _local(c.tag) == name]


def _child(elem: ET.Element, name: str) -> Optional[ET.Element]:
    for c in elem:
        if _local(c.tag) == name:
            return c
    return None


def _text(elem: ET.Element, name: str) -> Optional[str]:
    c = _child(elem, name)
    if c is None or c.text is None:
        return None
    value = c.text.strip()
    return value or None


def _properties(elem: ET.Element, keys: tuple[str, ...]) -> dict:
    props = {}
    for key in keys:
        value = _text(elem, key)
        if value is not None:
            props[key] = value
    return props


def _required_name(elem: ET.Element, what: str, path: str) -> str:
    name = _text(elem, "Name")
    if name is None:
        raise MetadataParseError(path, f"{what} entry without a Name")
    return name


def _parse_methods(node: ET.Element, path: str) -> tuple[MethodMetadata, ...]:
    methods: list[MethodMetadata] = []
    for info in _children(node, "MethodInfo"):
        methods.append(MethodMetadata(
            name=_required_name(info, "MethodInfo", path),
            return_type=_text(info, "ReturnType") or "void",
            params=_text(info, "Parameters") or "",
            is_static=_text(info, "Static") == "Yes",
        ))
    # Full source exports keep methods under SourceCode/Methods/Method
    source = _child(node, "SourceCode")
    container = _child(source, "Methods") if source is not None else None
    if container is not None:
        for m in _children(container, "Method"):
            methods.append(MethodMetadata(name=_required_name(m, "Method", path)))
    return tuple(methods)


def _parse_class(node: ET.Element, path: str) -> ClassMetadata:
    implements = tuple(
        c.text.strip() for c in _children(node, "Implements")
        if c.text and c.text.strip()
    )
    properties = _properties(node, ("Label", "IsAbstract", "IsFinal"))
    return ClassMetadata(
        extends=_text(node, "Extends"),
        implements=implements,
        methods=_parse_methods(node, path),
        properties=properties,
    )


def _field_type(field: ET.Element) -> str:
    explicit = _text(field, "Type")
    if explicit:
        return explicit
    xsi = field.get(_XSI_TYPE)
    if xsi:
        # AxTableFieldString -> String
        return xsi[len("AxTableField"):] if xsi.startswith("AxTableField") else xsi
    return "String"


def _parse_table(node: ET.Element, path: str) -> TableMetadata:
    fields: list[FieldMetadata] = []
    container = _child(node, "Fields")
    if container is not None:
        for f in _children(container, "AxTableField"):
            fields.append(FieldMetadata(
                name=_required_name(f, "AxTableField", path),
                type=_field_type(f),
                edt=_text(f, "ExtendedDataType"),
                mandatory=_text(f, "Mandatory") == "Yes",
            ))
    properties = _properties(node, ("TableGroup", "TitleField1", "TitleField2"))
    return TableMetadata(
        label=_text(node, "Label"),
        fields=tuple(fields),
        methods=_parse_methods(node, path),
        properties=properties,
    )


def parse_metadata(content: str, file_type: str, path: str = "<string>") -> Optional[FileMetadata]:
    """
    Parse the XML *content* of a workspace file of type *file_type*.

    Parameters
    ----------
    content:
        The file's UTF-8 text.
    file_type:
        A :class:`WorkspaceFileType` value.  Only classes and tables carry
        structured metadata; other types return None without parsing.
    path:
        Used in error messages only.

    Returns
    -------
    ClassMetadata | TableMetadata | None

    Raises
    ------
    MetadataParseError
        When the XML is malformed or its shape does not match *file_type*.
    """
    expected = _ROOT_TAGS.get(file_type)
    if expected is None:
        return None
    try:
        root = ET.fromstring(content)
    except ET.ParseError as exc:
        raise MetadataParseError(path, f"malformed XML: {exc}") from exc

    if _local(root.tag) != expected:
        raise MetadataParseError(
            path, f"expected <{expected}> root element, found <{_local(root.tag)}>"
        )
    if file_type == WorkspaceFileType.CLASS:
        return _parse_class(root, path)
    return _parse_table(root, path)
