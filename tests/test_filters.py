"""
Tests for the interestingness filter.
"""

import pytest

from tracechain.chain.config import ChainConfig
from tracechain.chain.filters import InterestingnessFilter
from tracechain.chain.models import Direction, ExtractedValue, LiteralValue, ValueLocation


def value(raw, path="field", location=ValueLocation.BODY_JSON, header_name=None):
    return ExtractedValue(LiteralValue.of(raw), path, location, Direction.RESPONSE, 0, header_name=header_name)


@pytest.fixture
def value_filter():
    return InterestingnessFilter(ChainConfig())


class TestInterestingnessFilter:
    """Test which values are worth chaining."""

    @pytest.mark.parametrize("raw", [None, True, False])
    def test_null_and_booleans_rejected(self, value_filter, raw):
        """Test null and booleans never chain."""
        assert not value_filter(value(raw))

    def test_short_strings_rejected(self, value_filter):
        """Test strings under the minimum length are dropped."""
        assert not value_filter(value("abc"))
        assert value_filter(value("abcd"))

    def test_small_numbers_rejected(self, value_filter):
        """Test numbers must exceed the threshold in magnitude."""
        assert not value_filter(value(1000))
        assert not value_filter(value(-999.5))
        assert value_filter(value(1001))
        assert value_filter(value(-50000))
        assert value_filter(value(1234.5))

    @pytest.mark.parametrize("path", ["@type", "data.__typename", "items[0].$type"])
    def test_discriminator_keys_rejected(self, value_filter, path):
        """Test type-discriminator values are dropped even when long."""
        assert not value_filter(value("com.example.Order", path=path))

    def test_content_type_header_rejected(self, value_filter):
        """Test the Content-Type header never chains."""
        assert not value_filter(value(
            "application/json", path="Content-Type", location=ValueLocation.HEADER, header_name="Content-Type"
        ))

    def test_custom_thresholds(self):
        """Test thresholds come from config."""
        lenient = InterestingnessFilter(ChainConfig(min_string_length=2, numeric_threshold=10))

        assert lenient(value("ab"))
        assert lenient(value(11))

    def test_deterministic(self, value_filter):
        """Test the same value always gets the same answer."""
        candidate = value("ord_12345", path="order.id")

        assert len({value_filter(candidate) for _ in range(5)}) == 1
        assert value_filter.is_interesting(candidate) == value_filter(candidate)
