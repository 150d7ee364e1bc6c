"""
Postman Collection v2.1 export for TraceChain.

Renders a ReplayCollection as a Postman collection:
- requests with chain values already replaced by {{variable}} placeholders
- a test script per item that stores the values its response originates
- collection variables, plus a collection-level pre-request script for
  declared values that come with an initializer
"""

import json
import re
from pathlib import Path
from typing import Any, Dict, List

from ..chain.assembler import (
    SOURCE_BODY,
    SOURCE_COOKIE,
    SOURCE_FORM,
    SOURCE_HEADER,
    CollectionItem,
    ExtractionInstruction,
    ReplayCollection,
    UrlParts,
)
from ..chain.errors import OutputWriteFailure
from ..chain.locator import is_simple_path, parse_path

POSTMAN_SCHEMA = "https://schema.getpostman.com/json/collection/v2.1.0/collection.json"

# Never copied into the collection; Postman computes them itself
SKIPPED_HEADERS = {'content-length'}

JS_IDENTIFIER = re.compile(r'^[A-Za-z_$][A-Za-z0-9_$]*$')

# One step of the JSONPath subset we can render as JavaScript
_JSONPATH_STEP = re.compile(r"""
      \.(?P<key>[A-Za-z_$][\w$-]*)
    | \[(?P<index>\d+)\]
    | \[\s*(?P<quoted>'[^']*'|"[^"]*")\s*\]
    | \[\?\(\s*@(?P<field>(?:\.[A-Za-z_$][\w$]*)+)\s*==\s*
        (?P<literal>'[^']*'|"[^"]*"|-?\d+(?:\.\d+)?|true|false|null)\s*\)\]
""", re.VERBOSE)

# A form locator is the field name plus its occurrence index
_FORM_LOCATOR = re.compile(r'^(?P<field>.*)\[(?P<index>\d+)\]$')


def js_string(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def _js_member(key: str) -> str:
    return f".{key}" if JS_IDENTIFIER.match(key) else f"[{js_string(key)}]"


def jsonpath_to_js(expression: str, root: str = "responseJson") -> str:
    """
    Translate a JSONPath expression into a JavaScript accessor.

    Supports keys, indices, quoted keys and equality filters, which become
    ``.find(...)``:

        $.items[?(@.type == 'primary')].id
        -> responseJson.items.find(item => item.type === "primary").id

    Raises:
        ValueError: If the expression uses anything outside that subset
    """
    expression = expression.strip()
    if not expression.startswith('$'):
        raise ValueError(f"Not a JSONPath expression: {expression!r}")

    parts = [root]
    pos = 1
    while pos < len(expression):
        match = _JSONPATH_STEP.match(expression, pos)
        if not match:
            raise ValueError(f"Unsupported JSONPath at {pos} in {expression!r}")
        pos = match.end()

        if match.group('key') is not None:
            parts.append(_js_member(match.group('key')))
        elif match.group('index') is not None:
            parts.append(f"[{match.group('index')}]")
        elif match.group('quoted') is not None:
            parts.append(_js_member(match.group('quoted')[1:-1]))
        else:
            literal = match.group('literal')
            if literal[0] in '\'"':
                literal = js_string(literal[1:-1])
            field_access = ''.join(_js_member(k) for k in match.group('field').split('.') if k)
            parts.append(f".find(item => item{field_access} === {literal})")

    return ''.join(parts)


def path_to_js(path: str, root: str = "responseJson") -> str:
    """Translate a plain locator path (``data.items[0].id``) into a JavaScript accessor."""
    parts = [root]
    for token in parse_path(path):
        parts.append(f"[{token}]" if isinstance(token, int) else _js_member(token))
    return ''.join(parts)


def extraction_expression(instruction: ExtractionInstruction) -> str:
    """
    JavaScript expression reading one instruction's value from the response.

    Raises:
        ValueError: If the locator cannot be rendered
    """
    locator = instruction.locator

    if instruction.source == SOURCE_BODY:
        if is_simple_path(locator):
            return path_to_js(locator)
        return jsonpath_to_js(locator)

    if instruction.source == SOURCE_HEADER:
        expression = f"pm.response.headers.get({js_string(locator)})"
        if locator.lower() == 'authorization':
            expression += ".replace(/^Bearer /i, '')"
        return expression

    if instruction.source == SOURCE_COOKIE:
        return f"pm.cookies.get({js_string(locator)})"

    if instruction.source == SOURCE_FORM:
        match = _FORM_LOCATOR.match(locator)
        field, index = (match.group('field'), match.group('index')) if match else (locator, '0')
        return f"[].concat(responseForm[{js_string(field)}])[{index}]"

    raise ValueError(f"Unknown extraction source: {instruction.source}")


def extraction_script(extractions: List[ExtractionInstruction]) -> List[str]:
    """
    Script lines storing each extracted variable.

    Every variable gets its own try/catch so one failing locator does not
    stop the others.
    """
    sources = {e.source for e in extractions}
    lines = []
    if SOURCE_BODY in sources:
        lines.append("var responseJson = pm.response.json();")
    if SOURCE_FORM in sources:
        lines.append("var responseForm = require('querystring').parse(pm.response.text());")

    for instruction in extractions:
        name = js_string(instruction.variable)
        lines.append("try {")
        if not instruction.verified:
            lines.append("  // locator did not match the recorded response")
        try:
            lines.append(f"  var value = {extraction_expression(instruction)};")
        except ValueError:
            lines.append(f"  throw new Error({js_string('Unsupported locator: ' + instruction.locator)});")
        lines.append(f"  pm.collectionVariables.set({name}, value);")
        lines.append(f"  console.log({js_string('Variable ' + instruction.variable + ':')}, value);")
        lines.append("} catch (e) {")
        lines.append(f"  console.error({js_string('Error extracting variable ' + instruction.variable + ':')}, e);")
        lines.append("}")

    return lines


class PostmanExporter:
    """
    Exports a ReplayCollection to Postman Collection v2.1 format.
    """

    @staticmethod
    def build(collection: ReplayCollection) -> Dict[str, Any]:
        """Build the collection document without writing it."""
        document: Dict[str, Any] = {
            "info": {
                "name": collection.name,
                "schema": POSTMAN_SCHEMA
            },
            "item": [PostmanExporter._item(item) for item in collection.items],
        }

        variables = []
        init_lines = []
        for variable in collection.variables:
            entry = {"key": variable.name, "value": variable.initial_value or ""}
            if variable.description:
                entry["description"] = variable.description
            variables.append(entry)

            if variable.init_script:
                init_lines.append(f"// {variable.name}")
                init_lines.extend(variable.init_script.splitlines())

        if variables:
            document["variable"] = variables
        if init_lines:
            document["event"] = [PostmanExporter._event("prerequest", init_lines)]

        return document

    @staticmethod
    def export(collection: ReplayCollection, output_path: str) -> None:
        """
        Write the collection to ``output_path``.

        Raises:
            OutputWriteFailure: If the directory or file cannot be written, or
                the document cannot be serialized
        """
        output_file = Path(output_path)
        try:
            output_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            print(f"❌ Error creating directory {output_file.parent}: {e}", flush=True)
            raise OutputWriteFailure(f"Cannot create {output_file.parent}: {e}") from e

        try:
            content = json.dumps(PostmanExporter.build(collection), indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            print(f"❌ Error serializing collection: {e}", flush=True)
            raise OutputWriteFailure(f"Cannot serialize collection: {e}") from e

        try:
            with open(output_file, 'w', encoding='utf-8') as f:
                f.write(content)
        except OSError as e:
            print(f"❌ Error writing to {output_path}: {e}", flush=True)
            raise OutputWriteFailure(f"Cannot write {output_path}: {e}") from e

        print(f"✓ Exported {len(collection.items)} requests → {output_path}", flush=True)

    @staticmethod
    def _item(item: CollectionItem) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "method": item.method,
            "header": [
                {"key": name, "value": value}
                for name, value in item.headers
                if name.lower() not in SKIPPED_HEADERS and not name.startswith(':')
            ],
            "url": PostmanExporter._url(item.url),
        }

        if item.body:
            body: Dict[str, Any] = {"mode": "raw", "raw": item.body}
            if item.content_type and 'json' in item.content_type.lower():
                body["options"] = {"raw": {"language": "json"}}
            request["body"] = body

        result: Dict[str, Any] = {"name": item.name, "request": request}
        if item.extractions:
            result["event"] = [PostmanExporter._event("test", extraction_script(item.extractions))]
        return result

    @staticmethod
    def _url(url: UrlParts) -> Dict[str, Any]:
        if not url.host:
            return {"raw": url.raw}

        url_obj: Dict[str, Any] = {
            "raw": url.raw,
            "protocol": url.protocol,
            "host": url.host.split('.'),
            "path": url.path,
        }
        if url.port:
            url_obj["port"] = url.port
        if url.query:
            url_obj["query"] = [{"key": k, "value": v} for k, v in url.query]
        return url_obj

    @staticmethod
    def _event(listen: str, lines: List[str]) -> Dict[str, Any]:
        return {
            "listen": listen,
            "script": {
                "type": "text/javascript",
                "exec": lines
            }
        }
