"""
Tests for the collection assembler: request rewriting, extraction
instructions and declared variables.
"""

import pytest

from tracechain.chain.assembler import (
    SOURCE_BODY,
    SOURCE_COOKIE,
    SOURCE_HEADER,
    CollectionAssembler,
)
from tracechain.chain.collaborators import OfflineNamingCollaborator
from tracechain.chain.detector import ChainDetector
from tracechain.chain.diagnostics import DiagnosticLog
from tracechain.chain.extractor import ValueExtractor
from tracechain.chain.models import DeclaredValue
from tracechain.chain.naming import assign_chain_names


def named_chains(interactions, declared=()):
    extracted = ValueExtractor().extract_all(interactions)
    detector = ChainDetector()
    chains = detector.merge_declared(detector.detect(extracted), extracted, declared)
    assign_chain_names(chains, interactions, OfflineNamingCollaborator())
    return chains


@pytest.fixture
def diagnostics():
    return DiagnosticLog()


@pytest.fixture
def order_collection(order_flow, diagnostics):
    chains = named_chains(order_flow)
    return CollectionAssembler(diagnostics).assemble(order_flow, chains, name="Orders")


class TestRequestRewriting:
    """Test placeholders in rewritten requests."""

    def test_origin_request_is_untouched(self, order_collection, order_flow):
        """Test the request that produced the values is not rewritten."""
        item = order_collection.items[0]

        assert item.url.raw == order_flow[0].request.url
        assert item.body == order_flow[0].request.body

    def test_path_segment_substituted(self, order_collection):
        """Test ids in the path become placeholders in raw URL and segments."""
        url = order_collection.items[1].url

        assert url.raw == "https://shop.example.com/api/orders/{{order_id}}"
        assert url.path == ["api", "orders", "{{order_id}}"]
        assert url.host == "shop.example.com"
        assert url.protocol == "https"

    def test_headers_substituted(self, order_collection):
        """Test header values become placeholders."""
        assert order_collection.items[1].headers == [("X-Session-Token", "{{X_Session_Token}}")]

    def test_query_and_body_substituted(self, order_collection):
        """Test query values and JSON bodies are rewritten."""
        item = order_collection.items[2]

        assert item.url.query == [("order", "{{order_id}}")]
        assert item.url.raw == "https://shop.example.com/api/payments?order={{order_id}}"
        assert item.body == '{"order_id": "{{order_id}}", "amount": {{total}}}'

    def test_bearer_header(self, login_flow):
        """Test the bearer token is replaced inside the Authorization header."""
        collection = CollectionAssembler().assemble(login_flow, named_chains(login_flow))

        assert collection.items[1].headers == [("Authorization", "Bearer {{token}}")]

    def test_form_body_uses_encoded_value(self, interaction_factory):
        """Test URL-encoded spellings in form bodies are matched."""
        interactions = [
            interaction_factory(0, method='POST', resp_body={"token": "a b+c/d=="}),
            interaction_factory(
                1, method='POST', req_body="token=a+b%2Bc%2Fd%3D%3D&keep=1",
                req_content_type="application/x-www-form-urlencoded"
            ),
        ]

        collection = CollectionAssembler().assemble(interactions, named_chains(interactions))

        assert collection.items[1].body == "token={{token}}&keep=1"

    def test_mixed_case_host(self, interaction_factory):
        """Test the host field and the raw URL get the same substitution."""
        interactions = [
            interaction_factory(0, resp_body={"server": "Tenant42.Example.com"}),
            interaction_factory(1, url='https://Tenant42.Example.com:8443/items'),
        ]

        collection = CollectionAssembler().assemble(interactions, named_chains(interactions))
        url = collection.items[1].url

        assert url.raw == "https://{{server}}:8443/items"
        assert url.host == "{{server}}"
        assert url.port == "8443"

    def test_item_names(self, order_flow):
        """Test explicit request names are used, with method/path as fallback."""
        collection = CollectionAssembler().assemble(order_flow, named_chains(order_flow), ["Create order"])

        assert [item.name for item in collection.items] == [
            "Create order", "GET /api/orders/ord_7f3a9c", "POST /api/payments"
        ]

    def test_unnamed_chains_rejected(self, order_flow):
        """Test assembly requires names on every chain."""
        extracted = ValueExtractor().extract_all(order_flow)
        chains = ChainDetector().detect(extracted)

        with pytest.raises(ValueError):
            CollectionAssembler().assemble(order_flow, chains)


class TestExtractionInstructions:
    """Test per-response extraction instructions."""

    def test_instructions_on_origin_only(self, order_collection):
        """Test only the producing response gets instructions."""
        assert [len(item.extractions) for item in order_collection.items] == [3, 0, 0]

    def test_instruction_sources_and_locators(self, order_collection):
        """Test body and header instructions carry the right locators."""
        instructions = {e.variable: e for e in order_collection.items[0].extractions}

        assert instructions["order_id"].source == SOURCE_BODY
        assert instructions["order_id"].locator == "order.id"
        assert instructions["X_Session_Token"].source == SOURCE_HEADER
        assert instructions["X_Session_Token"].locator == "X-Session-Token"
        assert all(e.verified for e in instructions.values())

    def test_cookie_instruction(self, interaction_factory):
        """Test Set-Cookie origins extract by cookie name."""
        interactions = [
            interaction_factory(0, method='POST', resp_headers={'Set-Cookie': 'SESSIONID=s3cr3t-s3ss; Path=/'}),
            interaction_factory(1, req_headers={'Cookie': 'SESSIONID=s3cr3t-s3ss'}),
        ]

        collection = CollectionAssembler().assemble(interactions, named_chains(interactions))

        instruction = collection.items[0].extractions[0]
        assert instruction.source == SOURCE_COOKIE
        assert instruction.locator == "SESSIONID"
        assert collection.items[1].headers == [("Cookie", "SESSIONID={{sessionid}}")]

    def test_failed_verification_is_diagnosed(self, order_flow, diagnostics):
        """Test a locator that no longer matches is flagged, not fatal."""
        chains = named_chains(order_flow)
        chains[0].origin.path = "order.total"

        collection = CollectionAssembler(diagnostics).assemble(order_flow, chains)

        instructions = {e.variable: e for e in collection.items[0].extractions}
        assert not instructions["order_id"].verified
        assert instructions["total"].verified
        assert diagnostics.has('LocatorResolutionMismatch', stage='assemble')


class TestDeclaredVariables:
    """Test collection variables."""

    def test_detected_variables(self, order_collection):
        """Test one variable per chain with its origin locator as description."""
        variables = {v.name: v for v in order_collection.variables}

        assert set(variables) == {"order_id", "total", "X_Session_Token"}
        assert variables["order_id"].description == "order.id"
        assert variables["order_id"].initial_value is None

    def test_external_variable_has_initial_value(self, login_flow):
        """Test declared values carry their literal as initial value."""
        chains = named_chains(login_flow, [DeclaredValue(name="username", value="alice")])

        collection = CollectionAssembler().assemble(login_flow, chains)

        variable = [v for v in collection.variables if v.name == "username"][0]
        assert variable.initial_value == "alice"
        assert variable.description == "Declared value"
        assert '"username": "{{username}}"' in collection.items[0].body

    def test_to_dict(self, order_collection):
        """Test the collection serializes to plain data."""
        data = order_collection.to_dict()

        assert data["name"] == "Orders"
        assert data["items"][1]["url"]["path"][-1] == "{{order_id}}"
