"""
TraceChain Capture Loader

Decodes capture files into Interactions, in file order:

- HAR 1.2: {"log": {"entries": [...]}}
- TraceTap logs: {"requests": [...]}, {"captures": [...]} or [...] of records
  with method/url/req_headers/req_body/status/resp_headers/resp_body
"""

import base64
import binascii
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlencode

from ..chain.models import Interaction, Request, Response

logger = logging.getLogger("tracechain.capture")

# Body mime types worth decoding from base64
_TEXTUAL_MARKERS = ('json', 'text', 'xml', 'x-www-form-urlencoded', 'javascript')


def _header_pairs(headers: Any) -> Tuple[Tuple[str, str], ...]:
    """HAR lists ({name, value}) and TraceTap dicts both become (name, value) pairs."""
    if isinstance(headers, dict):
        return tuple((str(k), str(v)) for k, v in headers.items())
    if isinstance(headers, list):
        return tuple(
            (str(h.get('name', '')), str(h.get('value', '')))
            for h in headers
            if isinstance(h, dict) and h.get('name')
        )
    return ()


def _content_type(headers: Tuple[Tuple[str, str], ...], mime_type: Optional[str] = None) -> Optional[str]:
    if mime_type:
        return mime_type
    for name, value in headers:
        if name.lower() == 'content-type':
            return value
    return None


class CaptureLoader:
    """
    Standardized loader for capture files.

    This is the single source of truth for turning a capture file into
    Interactions; everything downstream assumes its ordering.

    Example:
        loader = CaptureLoader("session.har")
        interactions = loader.load()
    """

    def __init__(self, file_path: str):
        self.file_path = Path(file_path)

    def load(self) -> List[Interaction]:
        """
        Load interactions from a HAR or TraceTap JSON file.

        Raises:
            FileNotFoundError: If capture file doesn't exist
            ValueError: If JSON format is invalid or unrecognized
        """
        if not self.file_path.exists():
            raise FileNotFoundError(f"Capture file not found: {self.file_path}")

        with open(self.file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        return self.from_data(data, source=str(self.file_path))

    @classmethod
    def from_data(cls, data: Any, source: str = '<data>') -> List[Interaction]:
        """Decode already-parsed capture data."""
        if isinstance(data, dict):
            if isinstance(data.get('log'), dict):
                return cls.from_har_entries(data['log'].get('entries', []))
            if 'requests' in data:
                return cls.from_records(data['requests'])
            if 'captures' in data:
                return cls.from_records(data['captures'])
            raise ValueError(
                f"Unexpected JSON format in {source}. "
                f"Expected a HAR file, a dict with 'requests' or 'captures', "
                f"or a list of captures. Found keys: {list(data.keys())}"
            )
        if isinstance(data, list):
            return cls.from_records(data)
        raise ValueError(
            f"Unexpected JSON format in {source}. "
            f"Expected dict or list, got {type(data).__name__}"
        )

    @staticmethod
    def load_from_file(file_path: str) -> List[Interaction]:
        return CaptureLoader(file_path).load()

    @classmethod
    def from_har_entries(cls, entries: Iterable[Dict[str, Any]]) -> List[Interaction]:
        interactions = []
        for entry in entries:
            request = entry.get('request') or {}
            response = entry.get('response') or {}
            if not request.get('url'):
                logger.warning("Skipping HAR entry without a request URL")
                continue

            req_headers = _header_pairs(request.get('headers'))
            post_data = request.get('postData') or {}
            req_body = post_data.get('text')
            if not req_body and post_data.get('params'):
                req_body = urlencode([(p.get('name', ''), p.get('value', '')) for p in post_data['params']])

            content = response.get('content') or {}
            resp_headers = _header_pairs(response.get('headers'))

            interactions.append(Interaction(
                index=len(interactions),
                request=Request(
                    method=request.get('method', 'GET'),
                    url=request['url'],
                    headers=req_headers,
                    body=req_body or None,
                    content_type=_content_type(req_headers, post_data.get('mimeType'))
                ),
                response=Response(
                    status=int(response.get('status') or 0),
                    headers=resp_headers,
                    body=cls._har_content_text(content),
                    content_type=_content_type(resp_headers, content.get('mimeType'))
                )
            ))

        logger.info(f"Loaded {len(interactions)} interactions from HAR")
        return interactions

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> List[Interaction]:
        interactions = []
        skipped = 0
        for record in records:
            if not cls.validate_record(record):
                skipped += 1
                continue

            req_headers = _header_pairs(record.get('req_headers'))
            resp_headers = _header_pairs(record.get('resp_headers'))
            resp_body = record.get('resp_body', record.get('res_body', record.get('response_body')))

            interactions.append(Interaction(
                index=len(interactions),
                request=Request(
                    method=record['method'],
                    url=record['url'],
                    headers=req_headers,
                    body=cls._text(record.get('req_body')),
                    content_type=_content_type(req_headers)
                ),
                response=Response(
                    status=int(record.get('status') or 0),
                    headers=resp_headers,
                    body=cls._text(resp_body),
                    content_type=_content_type(resp_headers)
                )
            ))

        if skipped:
            logger.warning(f"Skipped {skipped} invalid captures")
        logger.info(f"Loaded {len(interactions)} interactions from capture log")
        return interactions

    @staticmethod
    def validate_record(record: Any) -> bool:
        """A record needs at least a URL and a method."""
        return isinstance(record, dict) and all(record.get(f) for f in ('url', 'method'))

    @staticmethod
    def _text(body: Any) -> Optional[str]:
        if body is None or body == '':
            return None
        if isinstance(body, (dict, list)):
            return json.dumps(body)
        return str(body)

    @staticmethod
    def _har_content_text(content: Dict[str, Any]) -> Optional[str]:
        text = content.get('text')
        if not text:
            return None
        if content.get('encoding') != 'base64':
            return text

        mime_type = (content.get('mimeType') or '').lower()
        if not any(marker in mime_type for marker in _TEXTUAL_MARKERS):
            return None
        try:
            return base64.b64decode(text).decode('utf-8', errors='replace')
        except (binascii.Error, ValueError):
            logger.warning("Could not decode base64 response body")
            return None
