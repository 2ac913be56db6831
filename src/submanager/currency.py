"""Currency display helpers."""

CURRENCY_SYMBOLS = {
    "CNY": "¥",
    "USD": "$",
    "EUR": "€",
    "JPY": "¥",
    "GBP": "£",
    "AUD": "A$",
    "CAD": "C$",
    "CHF": "CHF",
    "HKD": "HK$",
    "SGD": "S$",
}

DEFAULT_CURRENCY = "CNY"


def currency_symbol(code: str) -> str:
    """Symbol for a currency code, or the code itself when unknown."""
    return CURRENCY_SYMBOLS.get(code, code)


def format_currency(amount: float, currency: str) -> str:
    """Format as symbol + amount with two decimals, e.g. "$9.99"."""
    return f"{currency_symbol(currency)}{amount:.2f}"
