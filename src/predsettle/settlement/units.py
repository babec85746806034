"""Value units: integer wei amounts, ether parsing and formatting."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, localcontext

WEI_PER_ETHER = 10**18
ETHER_DECIMALS = 18

# Fixed-point scale for reward-per-unit accumulators
SCALE = 10**18

ZERO_ADDRESS = "0x" + "0" * 40


def _shift(amount: Decimal, places: int) -> Decimal:
    """Move the decimal point exactly; precision grows with the operand."""
    with localcontext() as ctx:
        ctx.prec = len(amount.as_tuple().digits) + abs(places) + 2
        return amount.scaleb(places)


def parse_ether(value: str | int | Decimal) -> int:
    """Convert an ether amount ("2.3", Decimal, or whole int) to integer wei. Never rounds."""
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"Invalid ether amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Invalid ether amount: {value!r}")
    wei = _shift(amount, ETHER_DECIMALS)
    if wei != wei.to_integral_value():
        raise ValueError(f"Ether amount has more than 18 decimals: {value!r}")
    return int(wei)


def format_ether(wei: int) -> str:
    """Render integer wei as a plain ether string without trailing zeros."""
    text = format(_shift(Decimal(wei), -ETHER_DECIMALS), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def is_zero_address(account: str | None) -> bool:
    return not account or account.lower() == ZERO_ADDRESS
