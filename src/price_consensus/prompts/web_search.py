"""
Web price search prompt for search-grounded providers.
"""

WEB_SEARCH_RESPONSE_SCHEMA = """{
  "itemName": "...",
  "estimatedValue": 0.00,
  "confidence": 0.0,
  "averagePrice": 0.00,
  "medianPrice": 0.00,
  "recentSold": [0.00],
  "valuation_factors": ["source and price, e.g. 'eBay sold 2024-05: $45'"]
}"""


def build_web_search_prompt(item_name: str, category: str) -> str:
    """Ask a search-capable model for recent real-world prices."""
    return '\n'.join([
        f'Search the web for recent sold prices of: {item_name} (category: {category}).',
        'Prefer completed sales over asking prices. Cite where each price came from',
        'in valuation_factors. If you find nothing reliable, return estimatedValue 0.',
        '',
        'Respond with JSON only, in this shape:',
        WEB_SEARCH_RESPONSE_SCHEMA,
    ])
