from typing import List
from urllib.parse import quote

from snapshop.schemas.scan import ShoppingLink

# (store, search URL prefix); the item name is appended percent-encoded
SEARCH_ENDPOINTS = (
    ("Google Shopping", "https://www.google.com/search?tbm=shop&q="),
    ("eBay", "https://www.ebay.com/sch/i.html?_nkw="),
    ("Amazon", "https://www.amazon.com/s?k="),
)


def _encode_component(s: str) -> str:
    # Same reserved set as JS encodeURIComponent
    return quote(s, safe="-_.!~*'()")


def build_shopping_links(item_name: str) -> List[ShoppingLink]:
    q = _encode_component((item_name or "").strip())
    return [ShoppingLink(store=store, url=f"{prefix}{q}") for store, prefix in SEARCH_ENDPOINTS]
