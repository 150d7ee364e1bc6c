"""
Tests for Postman Collection v2.1 export.

Covers collection structure, JavaScript extraction scripts and file I/O.
"""

import json
from unittest.mock import mock_open, patch

import pytest

from tracechain.chain.assembler import (
    SOURCE_BODY,
    SOURCE_COOKIE,
    SOURCE_FORM,
    SOURCE_HEADER,
    CollectionItem,
    DeclaredVariable,
    ExtractionInstruction,
    ReplayCollection,
    UrlParts,
)
from tracechain.chain.errors import OutputWriteFailure
from tracechain.export.postman import (
    POSTMAN_SCHEMA,
    PostmanExporter,
    extraction_expression,
    extraction_script,
    jsonpath_to_js,
    path_to_js,
)


@pytest.fixture
def collection():
    return ReplayCollection(
        name="Checkout",
        items=[
            CollectionItem(
                name="Log in",
                method="POST",
                url=UrlParts(
                    raw="https://api.example.com:8443/login",
                    protocol="https",
                    host="api.example.com",
                    port="8443",
                    path=["login"],
                ),
                headers=[("Content-Type", "application/json"), ("Content-Length", "42"), (":authority", "api")],
                body='{"username": "{{username}}"}',
                content_type="application/json",
                extractions=[ExtractionInstruction("auth_token", SOURCE_BODY, "data.token")],
            ),
            CollectionItem(
                name="Get order",
                method="GET",
                url=UrlParts(
                    raw="https://api.example.com/orders/{{order_id}}?expand=items",
                    protocol="https",
                    host="api.example.com",
                    path=["orders", "{{order_id}}"],
                    query=[("expand", "items")],
                ),
                headers=[("Authorization", "Bearer {{auth_token}}")],
                interaction_index=1,
            ),
        ],
        variables=[
            DeclaredVariable(name="auth_token", description="data.token"),
            DeclaredVariable(name="username", description="Declared value", initial_value="alice",
                             init_script="pm.collectionVariables.set('username', pm.environment.get('USER'));"),
        ],
    )


class TestJavaScriptRendering:
    """Test locator to JavaScript translation."""

    @pytest.mark.parametrize("path,expected", [
        ("token", "responseJson.token"),
        ("data.items[0].id", "responseJson.data.items[0].id"),
        ("[0].id", "responseJson[0].id"),
        ('["a.b"]["x-y"]', 'responseJson["a.b"]["x-y"]'),
    ])
    def test_plain_paths(self, path, expected):
        """Test plain paths become property accessors."""
        assert path_to_js(path) == expected

    def test_jsonpath_filter_becomes_find(self):
        """Test equality filters render as Array.find."""
        js = jsonpath_to_js("$.offers[?(@.type == 'primary')].id")

        assert js == 'responseJson.offers.find(item => item.type === "primary").id'

    def test_jsonpath_numeric_and_nested_filter(self):
        """Test numeric literals and nested filter fields."""
        js = jsonpath_to_js("$['data'].rows[?(@.meta.rank == 1)].value")

        assert js == "responseJson.data.rows.find(item => item.meta.rank === 1).value"

    def test_unsupported_jsonpath(self):
        """Test recursive descent is not translated."""
        with pytest.raises(ValueError):
            jsonpath_to_js("$..id")

    def test_header_cookie_and_form_expressions(self):
        """Test non-body sources use the Postman sandbox helpers."""
        assert extraction_expression(ExtractionInstruction("t", SOURCE_HEADER, "X-Token")) == \
            'pm.response.headers.get("X-Token")'
        assert extraction_expression(ExtractionInstruction("s", SOURCE_COOKIE, "SESSIONID")) == \
            'pm.cookies.get("SESSIONID")'
        assert extraction_expression(ExtractionInstruction("c", SOURCE_FORM, "code[1]")) == \
            '[].concat(responseForm["code"])[1]'

    def test_authorization_header_drops_bearer(self):
        """Test a bearer prefix is stripped from Authorization headers."""
        expression = extraction_expression(ExtractionInstruction("t", SOURCE_HEADER, "Authorization"))

        assert expression.endswith(".replace(/^Bearer /i, '')")


class TestExtractionScript:
    """Test generated test scripts."""

    def test_each_variable_has_own_try_catch(self):
        """Test one try/catch per variable."""
        lines = extraction_script([
            ExtractionInstruction("a", SOURCE_BODY, "a"),
            ExtractionInstruction("b", SOURCE_HEADER, "X-B"),
        ])

        assert lines[0] == "var responseJson = pm.response.json();"
        assert lines.count("try {") == 2
        assert lines.count("} catch (e) {") == 2
        assert '  pm.collectionVariables.set("a", value);' in lines
        assert '  pm.collectionVariables.set("b", value);' in lines

    def test_form_source_parses_querystring(self):
        """Test form responses are parsed with querystring."""
        lines = extraction_script([ExtractionInstruction("code", SOURCE_FORM, "code[0]")])

        assert "require('querystring')" in lines[0]
        assert not any("pm.response.json()" in line for line in lines)

    def test_unverified_and_unsupported_locators(self):
        """Test unverified instructions are marked and untranslatable ones throw at runtime."""
        lines = extraction_script([ExtractionInstruction("x", SOURCE_BODY, "$..id", verified=False)])

        assert "  // locator did not match the recorded response" in lines
        assert any(line.startswith("  throw new Error(") for line in lines)


class TestPostmanExporterBuild:
    """Test collection document structure."""

    def test_info_and_schema(self, collection):
        """Test collection metadata."""
        document = PostmanExporter.build(collection)

        assert document["info"] == {"name": "Checkout", "schema": POSTMAN_SCHEMA}
        assert len(document["item"]) == 2

    def test_headers_filtered(self, collection):
        """Test content-length and pseudo-headers are dropped."""
        headers = PostmanExporter.build(collection)["item"][0]["request"]["header"]

        assert headers == [{"key": "Content-Type", "value": "application/json"}]

    def test_url_object(self, collection):
        """Test URL parts map to Postman's URL object."""
        first, second = [item["request"]["url"] for item in PostmanExporter.build(collection)["item"]]

        assert first["host"] == ["api", "example", "com"]
        assert first["port"] == "8443"
        assert second["path"] == ["orders", "{{order_id}}"]
        assert second["query"] == [{"key": "expand", "value": "items"}]
        assert "port" not in second

    def test_body(self, collection):
        """Test raw bodies with JSON language hints."""
        request = PostmanExporter.build(collection)["item"][0]["request"]

        assert request["body"]["mode"] == "raw"
        assert request["body"]["raw"] == '{"username": "{{username}}"}'
        assert request["body"]["options"] == {"raw": {"language": "json"}}

    def test_test_event_only_with_extractions(self, collection):
        """Test items without extractions carry no event."""
        first, second = PostmanExporter.build(collection)["item"]

        assert first["event"][0]["listen"] == "test"
        assert "responseJson.data.token" in "\n".join(first["event"][0]["script"]["exec"])
        assert "event" not in second

    def test_variables_and_prerequest(self, collection):
        """Test collection variables and init scripts."""
        document = PostmanExporter.build(collection)

        assert document["variable"] == [
            {"key": "auth_token", "value": "", "description": "data.token"},
            {"key": "username", "value": "alice", "description": "Declared value"},
        ]
        prerequest = document["event"][0]
        assert prerequest["listen"] == "prerequest"
        assert prerequest["script"]["exec"][0] == "// username"

    def test_empty_collection(self):
        """Test an empty collection has no variables or events."""
        document = PostmanExporter.build(ReplayCollection(name="Empty"))

        assert document["item"] == []
        assert "variable" not in document
        assert "event" not in document

    def test_document_is_json_serializable(self, collection):
        """Test the built document survives a JSON dump."""
        assert json.loads(json.dumps(PostmanExporter.build(collection)))["info"]["name"] == "Checkout"


class TestPostmanExporterFileIO:
    """Test writing collections."""

    def test_writes_file(self, collection, tmp_path):
        """Test the collection is written as UTF-8 JSON."""
        output = tmp_path / "nested" / "collection.json"

        PostmanExporter.export(collection, str(output))

        data = json.loads(output.read_text(encoding='utf-8'))
        assert data["info"]["name"] == "Checkout"

    def test_prints_export_summary(self, collection, tmp_path, capsys):
        """Test prints summary message."""
        PostmanExporter.export(collection, str(tmp_path / "out.json"))

        captured = capsys.readouterr()
        assert "✓ Exported 2 requests" in captured.out

    @patch('builtins.open', side_effect=OSError("disk full"))
    @patch('pathlib.Path.mkdir')
    def test_write_error_is_fatal(self, mock_mkdir, mock_file, collection):
        """Test OS errors become OutputWriteFailure."""
        with pytest.raises(OutputWriteFailure):
            PostmanExporter.export(collection, "/tmp/out.json")

    @patch('pathlib.Path.mkdir', side_effect=PermissionError("read-only"))
    def test_mkdir_error_is_fatal(self, mock_mkdir, collection):
        """Test directory creation errors become OutputWriteFailure."""
        with pytest.raises(OutputWriteFailure):
            PostmanExporter.export(collection, "/readonly/out.json")

    @patch('builtins.open', new_callable=mock_open)
    @patch('pathlib.Path.mkdir')
    def test_serialization_error_is_fatal(self, mock_mkdir, mock_file, collection):
        """Test unserializable content becomes OutputWriteFailure before writing."""
        collection.variables[0].initial_value = object()

        with pytest.raises(OutputWriteFailure):
            PostmanExporter.export(collection, "/tmp/out.json")
        mock_file.assert_not_called()
