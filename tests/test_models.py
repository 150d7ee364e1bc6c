"""
Tests for the data model and diagnostics log.
"""

import logging

import pytest

from tracechain.chain.diagnostics import DiagnosticLog
from tracechain.chain.models import (
    Chain,
    Direction,
    ExtractedValue,
    LiteralValue,
    Request,
    ValueKind,
    ValueLocation,
)


class TestLiteralValue:
    """Test tagging and canonical stringification."""

    @pytest.mark.parametrize("raw,kind,canonical", [
        ("abc", ValueKind.STRING, "abc"),
        (42, ValueKind.NUMBER, "42"),
        (1234.0, ValueKind.NUMBER, "1234"),
        (12.5, ValueKind.NUMBER, "12.5"),
        (1e21, ValueKind.NUMBER, "1e+21"),
        (True, ValueKind.BOOLEAN, "true"),
        (None, ValueKind.NULL, "null"),
    ])
    def test_canonical(self, raw, kind, canonical):
        """Test each kind renders one way only."""
        value = LiteralValue.of(raw)

        assert value.kind is kind
        assert value.canonical() == canonical
        assert str(value) == canonical

    def test_rejects_containers(self):
        """Test only scalars can be tagged."""
        with pytest.raises(TypeError):
            LiteralValue.of({"a": 1})


class TestRequestHeaders:
    """Test header lookup."""

    def test_case_insensitive(self):
        """Test header lookup ignores case and returns the first match."""
        request = Request("GET", "https://x", headers=(("X-Id", "1"), ("x-id", "2")))

        assert request.header("x-ID") == "1"
        assert request.header("missing") is None


class TestChain:
    """Test chain availability."""

    def test_availability(self):
        """Test a chain is available only after its origin interaction."""
        origin = ExtractedValue(LiteralValue.string("v123"), "id", ValueLocation.BODY_JSON, Direction.RESPONSE, 2)
        chain = Chain(id=0, value="v123", usages=[origin], origin=origin)

        assert not chain.is_available_to(1)
        assert not chain.is_available_to(2)
        assert chain.is_available_to(3)
        assert Chain(id=1, value="x", external=True).is_available_to(0)

    def test_to_dict(self):
        """Test chains serialize without object references."""
        origin = ExtractedValue(LiteralValue.string("v123"), "id", ValueLocation.BODY_JSON, Direction.RESPONSE, 0)
        data = Chain(id=0, value="v123", usages=[origin], origin=origin, name="thing_id").to_dict()

        assert data["origin"]["location"] == "body_json"
        assert data["usages"][0]["direction"] == "response"


class TestDiagnosticLog:
    """Test structured diagnostics."""

    def test_record_and_query(self):
        """Test entries can be queried by kind and stage."""
        log = DiagnosticLog()
        log.record('extract', 'MalformedBody', 'bad json', interaction_index=2)
        log.record('naming', 'CollaboratorFailure', 'timeout')

        assert len(log) == 2
        assert log.has('MalformedBody')
        assert not log.has('MalformedBody', stage='naming')
        assert [d.kind for d in log.by_stage('naming')] == ['CollaboratorFailure']
        assert log.to_list()[0]["interaction_index"] == 2

    def test_logs_warning(self, caplog):
        """Test each diagnostic is logged at WARNING."""
        with caplog.at_level(logging.WARNING, logger="tracechain.diagnostics"):
            DiagnosticLog().record('stabilize', 'LocatorResolutionMismatch', 'no match', interaction_index=0)

        assert "LocatorResolutionMismatch" in caplog.text
        assert "interaction #0" in caplog.text
