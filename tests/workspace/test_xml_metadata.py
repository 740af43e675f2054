"""
Unit tests for symbol_finder.workspace.xml_metadata
"""

from __future__ import annotations

import pytest

from symbol_finder.errors import MetadataParseError
from symbol_finder.workspace.models import ClassMetadata, TableMetadata, WorkspaceFileType
from symbol_finder.workspace.xml_metadata import parse_metadata


_CLASS_XML = """<?xml version="1.0" encoding="utf-8"?>
<AxClass xmlns:i="http://www.w3.org/2001/XMLSchema-instance">
    <Name>CustInvoiceHelper</Name>
    <Extends>RunBase</Extends>
    <Implements>SysPackable</Implements>
    <Implements>SysSaveable</Implements>
    <Label>@SYS1234</Label>
    <IsFinal>Yes</IsFinal>
    <MethodInfo>
        <Name>construct</Name>
        <ReturnType>CustInvoiceHelper</ReturnType>
        <Static>Yes</Static>
    </MethodInfo>
    <MethodInfo>
        <Name>run</Name>
        <Parameters>boolean _force</Parameters>
    </MethodInfo>
    <SourceCode>
        <Methods>
            <Method>
                <Name>pack</Name>
                <Source><![CDATA[public container pack() { return conNull(); }]]></Source>
            </Method>
        </Methods>
    </SourceCode>
</AxClass>
"""

_TABLE_XML = """<?xml version="1.0" encoding="utf-8"?>
<AxTable xmlns:i="http://www.w3.org/2001/XMLSchema-instance">
    <Name>CustTable</Name>
    <Label>@SYS11307</Label>
    <TableGroup>Main</TableGroup>
    <TitleField1>AccountNum</TitleField1>
    <Fields>
        <AxTableField xmlns="" i:type="AxTableFieldString">
            <Name>AccountNum</Name>
            <ExtendedDataType>CustAccount</ExtendedDataType>
            <Mandatory>Yes</Mandatory>
        </AxTableField>
        <AxTableField xmlns="" i:type="AxTableFieldReal">
            <Name>CreditMax</Name>
        </AxTableField>
        <AxTableField>
            <Name>Blocked</Name>
            <Type>Enum</Type>
        </AxTableField>
    </Fields>
</AxTable>
"""


class TestParseClass:

    def test_full_class(self):
        meta = parse_metadata(_CLASS_XML, WorkspaceFileType.CLASS)
        assert isinstance(meta, ClassMetadata)
        assert meta.extends == "RunBase"
        assert meta.implements == ("SysPackable", "SysSaveable")
        assert meta.properties == {"Label": "@SYS1234", "IsFinal": "Yes"}
        assert [m.name for m in meta.methods] == ["construct", "run", "pack"]

    def test_method_details(self):
        meta = parse_metadata(_CLASS_XML, WorkspaceFileType.CLASS)
        construct, run, pack = meta.methods
        assert construct.is_static
        assert construct.signature == "static CustInvoiceHelper construct()"
        assert run.signature == "void run(boolean _force)"
        assert pack.return_type == "void"

    def test_minimal_class(self):
        meta = parse_metadata("<AxClass><Name>Empty</Name></AxClass>", WorkspaceFileType.CLASS)
        assert meta == ClassMetadata()


class TestParseTable:

    def test_full_table(self):
        meta = parse_metadata(_TABLE_XML, WorkspaceFileType.TABLE)
        assert isinstance(meta, TableMetadata)
        assert meta.label == "@SYS11307"
        assert meta.properties == {"TableGroup": "Main", "TitleField1": "AccountNum"}

    def test_fields(self):
        meta = parse_metadata(_TABLE_XML, WorkspaceFileType.TABLE)
        account, credit, blocked = meta.fields
        assert (account.name, account.type, account.edt, account.mandatory) == (
            "AccountNum", "String", "CustAccount", True,
        )
        assert credit.type == "Real"
        assert not credit.mandatory
        assert blocked.type == "Enum"

    def test_minimal_table(self):
        meta = parse_metadata("<AxTable/>", WorkspaceFileType.TABLE)
        assert meta == TableMetadata()


class TestParseErrors:

    def test_types_without_metadata(self):
        for file_type in (WorkspaceFileType.FORM, WorkspaceFileType.ENUM,
                          WorkspaceFileType.UNKNOWN):
            assert parse_metadata("not even xml", file_type) is None

    def test_malformed_xml(self):
        with pytest.raises(MetadataParseError) as exc_info:
            parse_metadata("<AxClass><Name>", WorkspaceFileType.CLASS, path="Broken.xml")
        assert exc_info.value.path == "Broken.xml"
        assert "malformed XML" in exc_info.value.reason

    def test_wrong_root(self):
        with pytest.raises(MetadataParseError, match="expected <AxTable>"):
            parse_metadata("<AxClass/>", WorkspaceFileType.TABLE)

    def test_method_without_name(self):
        with pytest.raises(MetadataParseError, match="without a Name"):
            parse_metadata("<AxClass><MethodInfo/></AxClass>", WorkspaceFileType.CLASS)
