"""
Record shapes for locally discovered workspace files and their metadata.

All records are frozen: a rescan or an on-demand parse produces new
instances rather than mutating existing ones.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union


class WorkspaceFileType:
    CLASS = "class"
    TABLE = "table"
    FORM = "form"
    ENUM = "enum"
    UNKNOWN = "unknown"

    ALL: frozenset[str] = frozenset({CLASS, TABLE, FORM, ENUM, UNKNOWN})


@dataclass(frozen=True)
class MethodMetadata:
    name: str
    return_type: str = "void"
    params: str = ""
    is_static: bool = False

    @property
    def signature(self) -> str:
        prefix = "static " if self.is_static else ""
        return f"{prefix}{self.return_type} {self.name}({self.params})"


@dataclass(frozen=True)
class FieldMetadata:
    name: str
    type: str = "String"
    edt: Optional[str] = None
    mandatory: bool = False


@dataclass(frozen=True)
class ClassMetadata:
    """Structured content of an ``AxClass`` file."""
    extends: Optional[str] = None
    implements: tuple[str, ...] = ()
    methods: tuple[MethodMetadata, ...] = ()
    properties: dict = field(default_factory=dict)


@dataclass(frozen=True)
class TableMetadata:
    """Structured content of an ``AxTable`` file."""
    label: Optional[str] = None
    fields: tuple[FieldMetadata, ...] = ()
    methods: tuple[MethodMetadata, ...] = ()
    properties: dict = field(default_factory=dict)


FileMetadata = Union[ClassMetadata, TableMetadata]


@dataclass(frozen=True)
class MetadataResult:
    """
    Outcome of parsing one workspace file on demand.

    Exactly one of three states:

    - ``parsed`` — *metadata* is set
    - ``absent`` — the file type carries no structured metadata
    - ``error``  — reading or parsing failed; *error* says why
    """
    metadata: Optional[FileMetadata] = None
    error: Optional[str] = None

    PARSED = "parsed"
    ABSENT = "absent"
    ERROR = "error"

    @property
    def status(self) -> str:
        if self.error is not None:
            return self.ERROR
        if self.metadata is not None:
            return self.PARSED
        return self.ABSENT


@dataclass(frozen=True)
class WorkspaceFile:
    """
    A metadata file found under a workspace root.

    ``name`` is the file name without extension; ``type`` comes from the
    ``AxClass`` / ``AxTable`` / ``AxForm`` / ``AxEnum`` directory the file
    lives in.  ``metadata`` is only filled by an explicit parse.
    """
    path: str
    name: str
    type: str                       # see WorkspaceFileType
    last_modified: float
    metadata: Optional[FileMetadata] = None
    metadata_error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "name": self.name,
            "type": self.type,
            "last_modified": self.last_modified,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WorkspaceFile":
        return cls(
            path=data["path"],
            name=data["name"],
            type=data.get("type", WorkspaceFileType.UNKNOWN),
            last_modified=float(data.get("last_modified", 0.0)),
        )
