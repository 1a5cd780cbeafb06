"""
Identification prompt.

Identification only: providers name the item, its category, condition and
any printed identifiers. Pricing happens later, grounded in evidence.
"""

IDENTIFY_RESPONSE_SCHEMA = """{
  "itemName": "specific name including brand, model, edition, year",
  "category": "one of: coins, lego, trading_cards, books, comics, video_games, vinyl_records, sneakers, vehicles, watches, jewelry, electronics, toys, art, household, collectibles, general",
  "condition": "mint | excellent | good | fair | poor",
  "description": "one or two sentences on what is visible",
  "identifiers": {"vin": "...", "isbn": "...", "cardNumber": "...", "upc": "..."},
  "confidence": 0.0
}"""


def build_identify_prompt(
    item_name_hint: str | None = None,
    category_hint: str | None = None,
    condition_hint: str | None = None,
    additional_context: str | None = None,
) -> str:
    """
    Build the identification prompt.

    Args:
        item_name_hint: What the user thinks the item is
        category_hint: User-selected category, if any
        condition_hint: User-stated condition, if any
        additional_context: Free text from the user

    Returns:
        Prompt text asking for JSON matching IDENTIFY_RESPONSE_SCHEMA
    """
    lines = [
        'Identify the item shown in the attached image(s) as precisely as possible.',
        'Do NOT estimate a price. Only identify.',
        '',
        'Rules:',
        '- Name the actual item (brand, model, set, edition, year). Never answer with',
        '  generic words like "item", "object" or "unknown".',
        '- Read any visible serial numbers, VINs, ISBNs, card numbers or barcodes',
        '  into "identifiers". Omit identifiers you cannot read.',
        '- confidence is 0.0 to 1.0 and reflects how sure you are of the identification.',
    ]

    context_lines = []
    if item_name_hint:
        context_lines.append(f'- User hint: "{item_name_hint}"')
    if category_hint:
        context_lines.append(f'- Category hint: {category_hint}')
    if condition_hint:
        context_lines.append(f'- Stated condition: {condition_hint}')
    if additional_context:
        context_lines.append(f'- Additional context: {additional_context}')
    if context_lines:
        lines += ['', 'Context from the user (verify against the image):', *context_lines]

    lines += ['', 'Respond with JSON only, in this shape:', IDENTIFY_RESPONSE_SCHEMA]
    return '\n'.join(lines)
