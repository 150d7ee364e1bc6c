"""
Shared fixtures for TraceChain tests.
"""

import json

import pytest

from tracechain.chain.models import Interaction, Request, Response


def make_interaction(
    index,
    method='GET',
    url='https://api.example.com/',
    req_headers=None,
    req_body=None,
    req_content_type=None,
    status=200,
    resp_headers=None,
    resp_body=None,
    resp_content_type=None
):
    """Build an Interaction; dict/list bodies are JSON-encoded with a JSON content type."""
    if isinstance(req_body, (dict, list)):
        req_body = json.dumps(req_body)
        req_content_type = req_content_type or 'application/json'
    if isinstance(resp_body, (dict, list)):
        resp_body = json.dumps(resp_body)
        resp_content_type = resp_content_type or 'application/json'

    return Interaction(
        index=index,
        request=Request(
            method=method,
            url=url,
            headers=tuple((req_headers or {}).items()),
            body=req_body,
            content_type=req_content_type
        ),
        response=Response(
            status=status,
            headers=tuple((resp_headers or {}).items()),
            body=resp_body,
            content_type=resp_content_type
        )
    )


@pytest.fixture
def interaction_factory():
    """Factory for Interactions (see make_interaction)."""
    return make_interaction


@pytest.fixture
def login_flow():
    """Login returns a token; the next call sends it as a bearer token."""
    return [
        make_interaction(
            0,
            method='POST',
            url='https://api.example.com/login',
            req_body={'username': 'alice', 'password': 'hunter2'},
            resp_body={'token': 'abc123'}
        ),
        make_interaction(
            1,
            url='https://api.example.com/profile',
            req_headers={'Authorization': 'Bearer abc123'},
            resp_body={'name': 'Alice'}
        ),
    ]


@pytest.fixture
def order_flow():
    """Create an order, then fetch and pay for it by id."""
    return [
        make_interaction(
            0,
            method='POST',
            url='https://shop.example.com/api/orders',
            req_body={'sku': 'WIDGET-1', 'quantity': 2},
            status=201,
            resp_body={'order': {'id': 'ord_7f3a9c', 'total': 4999}},
            resp_headers={'X-Session-Token': 'sess-5551234'}
        ),
        make_interaction(
            1,
            url='https://shop.example.com/api/orders/ord_7f3a9c',
            req_headers={'X-Session-Token': 'sess-5551234'},
            resp_body={'id': 'ord_7f3a9c', 'status': 'pending'}
        ),
        make_interaction(
            2,
            method='POST',
            url='https://shop.example.com/api/payments?order=ord_7f3a9c',
            req_headers={'X-Session-Token': 'sess-5551234'},
            req_body={'order_id': 'ord_7f3a9c', 'amount': 4999},
            resp_body={'payment': 'pay_001', 'state': 'captured'}
        ),
    ]
