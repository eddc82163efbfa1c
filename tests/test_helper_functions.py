from woo_supply.misc.helper_functions import format_currency, format_number


def test_format_number_suffixes():
    assert format_number(2_700_000_000) == "2.70B"
    assert format_number(699_999_850) == "700.00M"
    assert format_number(1_500) == "1.50K"
    assert format_number(42.5) == "42.50"
    assert format_number(-100) == "-100.00"
    assert format_number(None) == "N/A"


def test_format_currency():
    assert format_currency(300_000_000) == "$300.00M"
    assert format_currency(1_234.5) == "$1,234.50"
    assert format_currency(None) == "N/A"
