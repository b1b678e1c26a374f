"""
Summary Engine

Deterministic totals over one account's expenses.
No I/O, no hidden state: the same account always gives the same stats.
"""

from decimal import ROUND_DOWN, Decimal

from expensy.models.expense import CardAccount, CategoryTotal, SummaryStats


ZERO = Decimal("0.00")
HUNDRED = Decimal(100)

UNCATEGORIZED = "Uncategorized"

CURRENCY_SYMBOLS = {
    "BRL": "R$",
    "USD": "US$",
    "EUR": "€",
    "GBP": "£",
}


def _percentage(part: Decimal, whole: Decimal) -> Decimal:
    """part / whole as a percentage in [0, 100]; 0 when whole is 0."""
    if whole <= 0:
        return ZERO
    value = part * HUNDRED / whole
    return max(ZERO, min(HUNDRED, value))


def compute_summary(account: CardAccount) -> SummaryStats:
    """
    Compute SummaryStats for one account.

    total      = sum of all amounts
    reconciled = sum of amounts with a receipt attached
    pending    = total - reconciled
    completion = reconciled / total * 100, or 0 for an empty account
    """
    total = ZERO
    reconciled = ZERO
    reconciled_count = 0

    for expense in account.expenses:
        total += expense.amount
        if expense.receipt_attached:
            reconciled += expense.amount
            reconciled_count += 1

    return SummaryStats(
        total_amount=total,
        reconciled_amount=reconciled,
        pending_amount=total - reconciled,
        completion_percentage=_percentage(reconciled, total),
        expense_count=len(account.expenses),
        reconciled_count=reconciled_count,
    )


def summarize_by_category(account: CardAccount) -> list[CategoryTotal]:
    """
    Per-category spend, largest first.

    Expenses without a category are grouped under UNCATEGORIZED.
    Ties keep the order in which the category first appeared.
    """
    amounts: dict[str, Decimal] = {}
    counts: dict[str, int] = {}

    for expense in account.expenses:
        category = expense.category or UNCATEGORIZED
        amounts[category] = amounts.get(category, ZERO) + expense.amount
        counts[category] = counts.get(category, 0) + 1

    total = sum(amounts.values(), ZERO)
    ordered = sorted(amounts.items(), key=lambda item: item[1], reverse=True)

    return [
        CategoryTotal(
            category=category,
            amount=amount,
            expense_count=counts[category],
            share_percentage=_percentage(amount, total),
        )
        for category, amount in ordered
    ]


def format_currency(amount: Decimal, currency: str = "BRL") -> str:
    """
    Format an amount for display, pt-BR style.

    >>> format_currency(Decimal("1234.5"))
    'R$ 1.234,50'
    """
    symbol = CURRENCY_SYMBOLS.get(currency.upper(), currency.upper())
    value = Decimal(amount).quantize(Decimal("0.01"))
    sign = "-" if value < 0 else ""
    # Format with US separators, then swap them
    digits = f"{abs(value):,.2f}"
    digits = digits.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{sign}{symbol} {digits}"


def format_percentage(value: Decimal) -> str:
    """
    Percentage for display, no decimals.

    Rounds down, so "100%" only shows once everything is reconciled.
    """
    return f"{Decimal(value).quantize(Decimal('1'), rounding=ROUND_DOWN)}%"
