"""Selector tables and regular expressions shared by the extraction strategies."""

import re

# Price text with a currency symbol, e.g. "$1,299.99", "£ 45", "€12.50"
CURRENCY_RE = re.compile(r"(?:US)?[$£€]\s?(\d[\d,]*(?:\.\d{1,2})?)")
# Bare number inside an element already known to hold a price
BARE_PRICE_RE = re.compile(r"\$?([\d,]+\.?\d*)")

# Short text that is nothing but a price (used to anchor the price scan)
PRICE_ONLY_RE = re.compile(r"^\s*(?:from\s+|now\s+|sale\s+)?(?:US)?[$£€]\s?\d[\d,]*(?:\.\d{1,2})?\s*$", re.I)
MAX_PRICE_TEXT = 30

RATING_RE = re.compile(r"(\d(?:\.\d+)?)\s*(?:out of|/)\s*5")
RATING_NUMBER_RE = re.compile(r"(\d+\.?\d*)")
REVIEW_COUNT_RE = re.compile(r"(\d[\d,]*)\s*(?:reviews?|ratings?|customer)", re.I)

OUT_OF_STOCK_PHRASES = ("out of stock", "sold out", "currently unavailable", "no longer available")
IN_STOCK_PHRASES = ("in stock", "add to cart", "add to bag")

MIN_TITLE_LENGTH = 5
MAX_DESCRIPTION_LENGTH = 300
MAX_FEATURES = 8

# Stage caps
MAX_CARDS = 15
MAX_PRICE_ANCHORS = 60
MAX_IMAGE_LINKS = 40
MAX_ANCESTOR_LEVELS = 5
MIN_REPEATED_ITEMS = 3
MAX_CONTAINER_TEXT = 2000

TITLE_SELECTORS = (
    "[itemprop=name]",
    "[class*=product-title]",
    "[class*=product-name]",
    "[data-test*=title]",
    "[data-testid*=title]",
    "h2",
    "h3",
    "h4",
    "[class*=title]",
    "[class*=name]",
    "h1",
    "a[title]",
    "a",
)

DESCRIPTION_SELECTORS = (
    "[itemprop=description]",
    "[class*=desc]",
    "[class*=summary]",
    "[class*=subtitle]",
    "p",
)

RATING_SELECTORS = (
    "[itemprop=ratingValue]",
    "[aria-label*='out of 5']",
    "[class*=rating]",
    "[class*=stars]",
)

REVIEW_COUNT_SELECTORS = (
    "[itemprop=reviewCount]",
    "[class*=review-count]",
    "[class*=reviews]",
)

# Generic product-card patterns, most specific first
CARD_SELECTORS = (
    "[itemtype*='schema.org/Product']",
    "[data-product]",
    "[data-product-id]",
    "[data-sku]",
    "[data-item]",
    ".product-card",
    ".product-item",
    ".product-tile",
    "[class*=product-card]",
    "[class*=productCard]",
    "[class*=product-tile]",
    "[class*=ProductCard]",
    "article[class*=product]",
    "li[class*=product]",
    "div[class*=product-item]",
)

# List/grid containers whose direct children might be product cards
REPEATED_CONTAINER_SELECTORS = (
    "ul > li",
    "ol > li",
    "[class*=grid] > div",
    "[class*=grid] > article",
    "[class*=results] > div",
    "[class*=list] > div",
    "[role=list] > [role=listitem]",
)

SPONSORED_SELECTORS = (
    ".s-label-popover-default",
    "[data-component-type=sp-sponsored-result]",
    "[data-sponsored]",
    "[aria-label=Sponsored]",
    "[class*=sponsored-label]",
    "[class*=sponsoredLabel]",
)
SPONSORED_LABELS = frozenset({"sponsored", "ad", "advertisement", "promoted"})
SPONSORED_URL_RE = re.compile(
    r"/sponsored/|/sspa/|/slredirect/|/gp/r\.html|aax-us-|/adclick|/clicktracker|doubleclick\.net|googlesyndication",
    re.I,
)

PLACEHOLDER_HREF_PREFIXES = ("#", "javascript:", "mailto:", "tel:")
PLACEHOLDER_IMAGE_HINTS = ("placeholder", "spacer", "blank.gif", "pixel", "1x1", "transparent", "loading")

# URL paths that usually mean a product detail page
DETAIL_PATH_RES = tuple(
    re.compile(p, re.I)
    for p in (
        r"/dp/[A-Z0-9]{10}",
        r"/gp/product/[A-Z0-9]+",
        r"/site/[^/]+/\d+\.p",
        r"/ip/(?:[^/]+/)?\d+",
        r"/p/[\w-]+",
        r"/pd/[\w-]+",
        r"/products?/[\w-]+",
        r"/item/[\w-]+",
        r"/itm/\d+",
        r"/listing/\d+",
    )
)

# Single product page selectors, decreasing specificity
SINGLE_TITLE_SELECTORS = (
    "#productTitle",
    "[itemprop=name]",
    "h1[class*=product]",
    "h1[data-test*=title]",
    "h1[data-testid*=title]",
    "[class*=product-title]",
    "[class*=productTitle]",
    "[class*=product-name]",
)
SINGLE_PRICE_SELECTORS = (
    "[itemprop=price]",
    ".priceToPay .a-offscreen",
    "#corePrice_feature_div .a-offscreen",
    "[data-test*=price]",
    "[data-testid*=price]",
    "[class*=product-price]",
    "[class*=productPrice]",
    "[class*=current-price]",
    "[class*=sale-price]",
    "[class*=price]",
)
SINGLE_IMAGE_SELECTORS = (
    "[itemprop=image]",
    "#landingImage",
    "[class*=product-image] img",
    "[class*=gallery] img",
    "meta[property='og:image']",
    "main img",
)
SINGLE_DESCRIPTION_SELECTORS = (
    "[itemprop=description]",
    "#productDescription",
    "[class*=product-description]",
    "meta[name=description]",
)
SINGLE_FEATURE_SELECTORS = (
    "#feature-bullets li",
    "[class*=feature] li",
    "[class*=highlights] li",
    "[class*=bullets] li",
)
