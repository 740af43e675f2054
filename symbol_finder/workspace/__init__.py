"""
Workspace layer: live discovery of local metadata files, on-demand metadata
parsing, path validation and change watching.
"""

from .models import (
    ClassMetadata, FieldMetadata, MetadataResult, MethodMetadata,
    TableMetadata, WorkspaceFile, WorkspaceFileType,
)
from .paths import validate_workspace_path
from .scanner import ScanCacheEntry, WorkspaceScanner, detect_file_type

__all__ = [
    "ClassMetadata", "FieldMetadata", "MetadataResult", "MethodMetadata",
    "TableMetadata", "WorkspaceFile", "WorkspaceFileType",
    "ScanCacheEntry", "WorkspaceScanner", "detect_file_type",
    "validate_workspace_path",
]
