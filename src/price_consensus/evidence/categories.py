"""
Category detection and category -> authority source routing.

Priority: AI-detected category (the model saw the image), then the user's
category hint, then structured identifiers, then name keywords, then
``general``.
"""

import re
from collections.abc import Mapping

GENERAL = 'general'

SUPPORTED_CATEGORIES = frozenset({
    'coins', 'lego', 'trading_cards', 'books', 'comics', 'video_games',
    'vinyl_records', 'sneakers', 'vehicles', 'watches', 'jewelry',
    'electronics', 'toys', 'art', 'household', 'collectibles', GENERAL,
})

CATEGORY_ALIASES: dict[str, str] = {
    'banknotes': 'coins',
    'currency': 'coins',
    'building_blocks': 'lego',
    'pokemon': 'trading_cards',
    'pokemon_cards': 'trading_cards',
    'sports_cards': 'trading_cards',
    'mtg_cards': 'trading_cards',
    'graded_cards': 'trading_cards',
    'rare_books': 'books',
    'textbooks': 'books',
    'manga': 'comics',
    'graphic_novels': 'comics',
    'retro_games': 'video_games',
    'game_consoles': 'video_games',
    'vinyl': 'vinyl_records',
    'records': 'vinyl_records',
    'music': 'vinyl_records',
    'shoes': 'sneakers',
    'cars': 'vehicles',
    'trucks': 'vehicles',
    'motorcycles': 'vehicles',
    'automotive': 'vehicles',
    'action_figures': 'toys',
    'antiques': 'collectibles',
    'vintage': 'collectibles',
    'appliances': 'household',
    'kitchen': 'household',
    'tools': 'household',
}

# Order matters: vinyl must be tested before vehicles
CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ('vinyl_records', ('vinyl', 'lp', 'record album', '33 rpm', '45 rpm')),
    ('lego', ('lego',)),
    ('trading_cards', (
        'pokemon card', 'trading card', 'tcg', 'rookie card', 'yu-gi-oh',
        'magic the gathering', 'mtg', 'holo',
    )),
    ('comics', ('comic', 'manga', 'graphic novel')),
    ('books', ('book', 'hardcover', 'paperback', 'first edition', 'novel', 'isbn')),
    ('coins', ('coin', 'silver dollar', 'half dollar', 'penny', 'banknote')),
    ('video_games', ('nintendo', 'playstation', 'xbox', 'sega', 'video game', 'game boy')),
    ('sneakers', ('sneaker', 'sneakers', 'jordan', 'yeezy', 'air max', 'dunk')),
    ('vehicles', ('vin', 'sedan', 'truck', 'motorcycle', 'coupe', 'pickup', 'suv')),
    ('watches', ('watch', 'rolex', 'omega', 'seiko', 'chronograph')),
    ('jewelry', ('necklace', 'ring', 'bracelet', 'earrings', 'pendant')),
    ('electronics', ('iphone', 'laptop', 'camera', 'headphones', 'ipad', 'tablet')),
    ('toys', ('action figure', 'funko', 'hot wheels', 'barbie', 'plush')),
)

AUTHORITY_SOURCES: dict[str, tuple[str, ...]] = {
    'vehicles': ('nhtsa',),
    'books': ('google_books',),
    'trading_cards': ('pokemon_tcg',),
    'coins': ('numista',),
    'vinyl_records': ('discogs',),
    'lego': ('brickset',),
}


def normalize_category(raw: str | None) -> str:
    """Map free-form category text onto a supported category."""
    if not raw:
        return GENERAL
    key = re.sub(r'[\s\-/]+', '_', raw.strip().lower())
    if key in SUPPORTED_CATEGORIES:
        return key
    if key in CATEGORY_ALIASES:
        return CATEGORY_ALIASES[key]
    for alias, category in CATEGORY_ALIASES.items():
        if alias in key:
            return category
    for category in SUPPORTED_CATEGORIES:
        if category != GENERAL and category in key:
            return category
    return GENERAL


def _keyword_category(item_name: str) -> str | None:
    name = item_name.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        for keyword in keywords:
            if re.search(rf'\b{re.escape(keyword)}\b', name):
                return category
    return None


def detect_category(
    item_name: str,
    category_hint: str | None = None,
    ai_category: str | None = None,
    identifiers: Mapping[str, str] | None = None,
) -> str:
    """
    Resolve the item's category.

    Args:
        item_name: Identified (or hinted) item name
        category_hint: Category chosen by the caller
        ai_category: Category reported by the identifying provider
        identifiers: Structured identifiers (a VIN implies a vehicle)

    Returns:
        One of SUPPORTED_CATEGORIES
    """
    for candidate in (ai_category, category_hint):
        category = normalize_category(candidate)
        if category != GENERAL:
            return category

    if identifiers:
        if identifiers.get('vin'):
            return 'vehicles'
        if identifiers.get('isbn'):
            return 'books'

    return _keyword_category(item_name) or GENERAL


def authority_sources_for(category: str) -> tuple[str, ...]:
    """Names of authority sources relevant to a category."""
    return AUTHORITY_SOURCES.get(category, ())
