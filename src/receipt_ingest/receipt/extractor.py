from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from ..models import LineItem, PaymentInfo, PaymentMethod

UNKNOWN_MERCHANT = "Unknown Merchant"

AMOUNT_PATTERN = re.compile(r"\$?(\d+\.\d{1,2})(?!\d)")
DATE_PATTERN = re.compile(r"(?<!\d)(\d{1,2}[/-]\d{1,2}[/-]\d{2,4})(?!\d)")
_MERCHANT = re.compile(r"^([A-Z][A-Z\s&'.-]+)")
_MASKED_CARD = re.compile(r"(?:[*X#]{2,}[\s-]*)+(\d{4})\b")

DATE_FORMATS: tuple[str, ...] = ("%m/%d/%Y", "%m-%d-%Y", "%m/%d/%y", "%m-%d-%y")
MAX_PLAUSIBLE_AMOUNT = Decimal("10000")

# Order matters: a receipt mentioning both CASH and CARD is treated as cash.
PAYMENT_KEYWORDS: tuple[tuple[str, PaymentMethod], ...] = (
    ("CASH", PaymentMethod.CASH),
    ("CARD", PaymentMethod.CARD),
    ("VISA", PaymentMethod.CARD),
    ("MASTERCARD", PaymentMethod.CARD),
    ("DEBIT", PaymentMethod.DEBIT),
)
CARD_NETWORKS: tuple[str, ...] = ("MASTERCARD", "VISA", "AMEX", "DISCOVER")

# A summary label followed directly by its figure; "TIP TOP BREAD 2.50" stays an item.
_SUMMARY_LINE = re.compile(
    r"^(?:SALES\s+|GRAND\s+|US\s+)?"
    r"(?:SUB\s*TOTAL|TOTAL|TAX|CHANGE|BALANCE|TIP|GRATUITY|AMOUNT\s+DUE|"
    r"CASH|VISA|MASTERCARD|AMEX|DISCOVER|DEBIT|CREDIT|CARD|TENDER)"
    r"(?:\s+(?:DUE|TENDERED|PAID))?"
    r"[\s:]*(?:[*X#]+\s*\d{4}\s*)?\$?\d+\.\d{1,2}\b"
)
_TAX_LINE = re.compile(r"^(?:SALES\s+)?TAX[\s:]*\$?\d")
_TIP_LINE = re.compile(r"^(?:TIP|GRATUITY)[\s:]*\$?\d")


@dataclass(frozen=True, slots=True)
class ExtractedFields:
    merchant: str
    amount: Decimal
    date: date
    items: list[LineItem] = field(default_factory=list)
    payment_info: PaymentInfo = field(default_factory=PaymentInfo)


def extract_fields(text: str, *, today: date | None = None) -> ExtractedFields:
    """Parse recognized receipt text into candidate fields.

    Each field is found independently; a miss on one never blocks the
    others, it just yields that field's default.
    """
    return ExtractedFields(
        merchant=extract_merchant(text),
        amount=extract_amount(text),
        date=extract_date(text, today=today),
        items=extract_items(text),
        payment_info=extract_payment_info(text),
    )


def extract_merchant(text: str) -> str:
    for line in text.splitlines():
        line = line.strip()
        if 3 < len(line) < 50:
            m = _MERCHANT.match(line.upper())
            if m:
                return m.group(1).strip()
    return UNKNOWN_MERCHANT


def find_amounts(text: str) -> list[Decimal]:
    amounts: list[Decimal] = []
    for m in AMOUNT_PATTERN.finditer(text):
        value = _to_decimal(m.group(1))
        if value is not None:
            amounts.append(value)
    return amounts


def extract_amount(text: str) -> Decimal:
    # The grand total is usually the largest figure printed on a receipt.
    plausible = [a for a in find_amounts(text) if Decimal("0") < a < MAX_PLAUSIBLE_AMOUNT]
    if not plausible:
        return Decimal("0")
    return max(plausible)


def extract_date(text: str, *, today: date | None = None) -> date:
    for m in DATE_PATTERN.finditer(text):
        parsed = parse_date_token(m.group(1))
        if parsed is not None:
            return parsed
    return today or date.today()


def parse_date_token(token: str) -> date | None:
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(token, fmt).date()
        except ValueError:
            continue
    return None


def extract_items(text: str) -> list[LineItem]:
    items: list[LineItem] = []
    for line in text.splitlines():
        line = line.strip()
        if len(line) <= 3 or _is_summary_line(line):
            continue
        m = AMOUNT_PATTERN.search(line)
        if not m:
            continue
        name = line[: m.start()].strip()
        price = _to_decimal(m.group(1))
        if not name or price is None or price <= 0:
            continue
        items.append(LineItem(name=name, quantity=1, unit_price=price, total_price=price))
    return items


def extract_payment_info(text: str) -> PaymentInfo:
    upper = text.upper()

    method = PaymentMethod.UNKNOWN
    for keyword, candidate in PAYMENT_KEYWORDS:
        if keyword in upper:
            method = candidate
            break

    card_type = next((network for network in CARD_NETWORKS if network in upper), None)

    masked = _MASKED_CARD.search(upper)
    last_four = masked.group(1) if masked else None

    return PaymentInfo(
        method=method,
        card_type=card_type,
        last_four_digits=last_four,
        tax=_labelled_amount(upper, _TAX_LINE),
        tip=_labelled_amount(upper, _TIP_LINE),
    )


def _labelled_amount(upper_text: str, label: re.Pattern[str]) -> Decimal | None:
    for line in upper_text.splitlines():
        if not label.match(line.strip()):
            continue
        amounts = find_amounts(line)
        if amounts:
            return amounts[-1]
    return None


def _is_summary_line(line: str) -> bool:
    return _SUMMARY_LINE.match(line.upper()) is not None


def _to_decimal(value: str) -> Decimal | None:
    try:
        return Decimal(value)
    except InvalidOperation:
        return None
