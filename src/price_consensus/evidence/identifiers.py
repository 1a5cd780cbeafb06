"""
Structured identifier extraction (VIN, ISBN, card number) from free text.
"""

import re
from collections.abc import Mapping

VIN_RE = re.compile(r'\b[A-HJ-NPR-Z0-9]{17}\b')
ISBN_RE = re.compile(r'(?:ISBN[:\s-]*)?\b(\d{13}|\d{9}[\dX])\b', re.IGNORECASE)
CARD_NUMBER_RE = re.compile(r'#?(\d{1,4})\s*[/\\]\s*(\d{1,4})')


def find_vin(text: str) -> str | None:
    """First 17-character VIN candidate with at least three digits."""
    for match in VIN_RE.finditer(text.upper()):
        candidate = match.group(0)
        if sum(ch.isdigit() for ch in candidate) >= 3:
            return candidate
    return None


def find_isbn(text: str) -> str | None:
    match = ISBN_RE.search(text)
    return match.group(1).upper() if match else None


def find_card_number(text: str) -> str | None:
    match = CARD_NUMBER_RE.search(text)
    return f'{match.group(1)}/{match.group(2)}' if match else None


def extract_identifiers(
    *texts: str | None,
    reported: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """
    Merge provider-reported identifiers with ones found in free text.

    Reported values win; text scanning only fills gaps. Keys are
    normalized to ``vin``, ``isbn`` and ``card_number``; other reported
    keys pass through unchanged.
    """
    identifiers: dict[str, str] = {}
    for key, value in (reported or {}).items():
        if not value:
            continue
        norm = key.strip().lower().replace(' ', '_')
        if norm in ('cardnumber', 'card_number', 'card_no'):
            norm = 'card_number'
        identifiers[norm] = str(value).strip()

    joined = ' '.join(t for t in texts if t)
    if 'vin' not in identifiers:
        vin = find_vin(joined)
        if vin:
            identifiers['vin'] = vin
    if 'isbn' not in identifiers:
        isbn = find_isbn(joined)
        if isbn:
            identifiers['isbn'] = isbn
    if 'card_number' not in identifiers:
        card = find_card_number(joined)
        if card:
            identifiers['card_number'] = card

    if 'vin' in identifiers and find_vin(identifiers['vin']) is None:
        del identifiers['vin']
    return identifiers
