import pytest

from amounts import MAX_AMOUNT_CENTS, cents_to_input, format_currency, parse_amount


def test_parse_amount_accepts_common_input() -> None:
    assert parse_amount("123.45") == 12345
    assert parse_amount("$1,234.50") == 123450
    assert parse_amount(" 7 ") == 700


@pytest.mark.parametrize("value", ["", None, "0", "-3", "abc", "0.004", "nan"])
def test_parse_amount_rejects_non_positive_or_garbage(value) -> None:
    with pytest.raises(ValueError, match="positive number"):
        parse_amount(value)


def test_format_currency() -> None:
    assert format_currency(123456) == "$1,234.56"
    assert format_currency(0) == "$0.00"
    assert format_currency(-500) == "-$5.00"
    assert cents_to_input(12345) == "123.45"
    assert cents_to_input(None) == ""


@pytest.mark.parametrize("value", ["1e30", "100000000000000000000", "10000000000.01"])
def test_parse_amount_rejects_oversized_values(value) -> None:
    with pytest.raises(ValueError, match="at most"):
        parse_amount(value)


def test_parse_amount_accepts_the_ceiling() -> None:
    assert parse_amount("10,000,000,000") == MAX_AMOUNT_CENTS
    with pytest.raises(ValueError, match="positive number"):
        parse_amount("-1e30")
