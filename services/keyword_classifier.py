# FILE: services/keyword_classifier.py
"""
Static category -> keyword table.

- Deterministic, free and offline
- Used by the waterfall (tier 3) for categorization
- Used by the expense parser only for merchant discovery (the gazetteer)
- Longest keyword wins; ties go to the earliest match, then the category name,
  so the outcome never depends on table order
"""

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import List, Mapping, Optional, Tuple


_CATEGORY_KEYWORDS = {
    "Coffee & Tea": ("starbucks", "coffee", "cafe", "latte", "espresso", "tea", "boba", "dutch bros", "peets", "dunkin"),
    "Groceries": ("grocery", "groceries", "costco", "trader joe", "whole foods", "safeway", "kroger", "albertsons", "ralphs", "vons", "aldi", "sprouts", "food4less"),
    "Dining Out": ("restaurant", "dining", "dinner", "lunch", "brunch", "dine", "ihop", "applebee", "chili", "olive garden", "cheesecake factory", "chipotle", "panera", "subway", "panda express"),
    "Bars & Drinks": ("bar", "pub", "brewery", "wine", "beer", "cocktail", "nightclub"),
    "Snacks & Convenience": ("snack", "convenience", "7-eleven", "7eleven", "circle k", "ampm", "wawa", "sheetz"),
    "Gas & Fuel": ("gas", "fuel", "shell", "chevron", "exxon", "mobil", "bp", "arco", "costco gas", "gasoline", "texaco", "76"),
    "EV Charging": ("ev charging", "supercharger", "supercharging", "tesla charging", "chargepoint", "electrify america", "evgo", "blink"),
    "Car Payment": ("car payment", "auto payment", "vehicle payment", "car note"),
    "Car Insurance": ("car insurance", "auto insurance", "geico", "progressive", "state farm auto", "allstate auto"),
    "Repairs & Maintenance": ("oil change", "tire", "brake", "mechanic", "auto repair", "car wash", "car repair", "smog", "alignment"),
    "Registration": ("registration", "dmv", "vehicle registration"),
    "Parking & Tolls": ("parking", "toll", "meter", "fastrak", "parkwhiz"),
    "Rent": ("rent", "apartment rent"),
    "Mortgage": ("mortgage", "home loan"),
    "Home Insurance": ("home insurance", "homeowner insurance", "renters insurance"),
    "Furniture & Decor": ("furniture", "ikea", "wayfair", "crate and barrel", "pottery barn", "decor"),
    "Cleaning & Supplies": ("cleaning supplies", "paper towel", "detergent", "lysol"),
    "Electric": ("electric", "electricity", "edison", "power bill", "sce", "pg&e"),
    "Water": ("water bill", "water utility", "water department"),
    "Internet": ("internet", "wifi", "spectrum", "att internet", "xfinity", "comcast", "frontier"),
    "Phone": ("phone bill", "tmobile", "t-mobile", "verizon", "att phone", "mint mobile", "cricket"),
    "Trash & Sewer": ("trash", "sewer", "waste management", "garbage"),
    "Doctor & Co-pay": ("doctor", "copay", "co-pay", "physician", "clinic", "urgent care", "kaiser"),
    "Pharmacy": ("pharmacy", "cvs", "walgreens", "rite aid", "prescription", "medication", "medicine"),
    "Dental": ("dentist", "dental", "orthodontist", "teeth"),
    "Vision": ("eye doctor", "optometrist", "glasses", "contacts", "lenscrafters", "vision"),
    "Mental Health": ("therapist", "therapy", "counseling", "psychiatrist", "mental health"),
    "Fitness & Gym": ("gym", "fitness", "planet fitness", "la fitness", "equinox", "crossfit", "yoga", "peloton", "24 hour fitness"),
    "Amazon": ("amazon",),
    "eBay": ("ebay",),
    "General Online Retail": ("online order", "shein", "temu", "etsy", "shopify"),
    "Digital Purchases": ("itunes", "google play", "digital", "ebook"),
    "App Purchases": ("app store", "in-app", "app purchase"),
    "Streaming": ("netflix", "hulu", "disney+", "disney plus", "hbo", "paramount", "peacock", "apple tv", "youtube premium", "spotify", "pandora", "tidal"),
    "Movies & Events": ("movie", "cinema", "amc", "regal", "concert", "ticketmaster", "stubhub", "live nation"),
    "Games": ("game", "playstation", "xbox", "nintendo", "steam", "gaming"),
    "Books & Music": ("book", "kindle", "audible", "barnes noble", "music"),
    "Apps & Software": ("software", "subscription", "adobe", "microsoft", "dropbox", "icloud", "google one", "chatgpt", "openai"),
    "Memberships": ("membership", "costco membership", "sam club", "amazon prime", "prime membership"),
    "Meal Kits": ("hello fresh", "blue apron", "home chef", "meal kit"),
    "Fixed Bills": ("bill", "payment due"),
    "Debt Payments": ("debt", "loan payment"),
    "Credit Cards": ("credit card payment", "visa payment", "mastercard payment", "amex payment", "chase payment", "capital one payment"),
    "Student Loans": ("student loan", "student debt", "navient", "sallie mae", "nelnet", "mohela"),
    "Personal Loans": ("personal loan", "sofi loan", "lending club", "prosper loan"),
    "Medical Debt": ("medical bill", "hospital bill", "medical debt", "medical payment"),
    "Clothing & Shoes": ("clothing", "clothes", "shoes", "nike", "adidas", "zara", "h&m", "ross", "tjmaxx", "marshalls", "foot locker"),
    "Accessories": ("watch", "jewelry", "sunglasses", "belt", "handbag", "purse", "wallet", "bracelet", "necklace", "earring", "cologne", "perfume"),
    "Electronics": ("electronics", "best buy", "apple store", "computer", "laptop", "phone case"),
    "Personal Care & Beauty": ("salon", "haircut", "barber", "nails", "spa", "sephora", "ulta", "beauty"),
    "Home Goods": ("home goods", "homegoods", "bed bath", "target home", "home depot", "lowes", "ace hardware", "roofing", "plumber", "plumbing", "hvac", "contractor", "handyman", "home repair", "house repair"),
    "General Retail": ("nordstrom", "nordstrom rack", "target", "walmart", "dollar tree", "dollar general", "five below", "big lots", "macy"),
    "Childcare": ("daycare", "childcare", "babysitter", "nanny"),
    "School & Tuition": ("tuition", "school", "university", "college", "education"),
    "Activities": ("soccer", "baseball", "dance class", "piano", "karate", "swim class", "kids activity"),
    "Kids Clothing": ("kids clothes", "children clothing", "oshkosh", "gap kids", "old navy kids"),
    "Pet Food": ("pet food", "dog food", "cat food", "chewy"),
    "Vet": ("vet", "veterinarian", "animal hospital", "pet doctor"),
    "Grooming": ("pet grooming", "dog grooming", "cat grooming"),
    "Pet Supplies": ("pet supplies", "petco", "petsmart", "pet store"),
    "Pet Insurance": ("pet insurance", "trupanion", "embrace pet"),
    "Flights": ("flight", "airline", "airfare", "united airlines", "delta", "southwest", "american airlines", "jetblue", "spirit airlines"),
    "Hotels & Lodging": ("hotel", "motel", "airbnb", "vrbo", "lodging", "resort", "marriott", "hilton", "hyatt"),
    "Night Life": ("nightlife", "night out", "club", "lounge", "happy hour"),
    "Weekend Trips": ("weekend trip", "road trip", "getaway", "day trip"),
    "Vacation Activities": ("excursion", "sightseeing", "attraction", "theme park", "disneyland", "disney world", "universal studios"),
    "Miscellaneous": ("lotto", "lottery", "gift card", "donation", "charity", "birthday gift", "holiday gift"),
}

CATEGORY_KEYWORDS: Mapping[str, Tuple[str, ...]] = MappingProxyType(_CATEGORY_KEYWORDS)

FALLBACK_CATEGORY = "Miscellaneous"


def _boundary_pattern(keyword: str) -> re.Pattern:
    # \b breaks on keywords ending in punctuation ("disney+"), so use lookarounds
    return re.compile(rf"(?<!\w){re.escape(keyword)}(?!\w)", re.IGNORECASE)


# (keyword, category, compiled pattern), longest keyword first
_KEYWORD_INDEX: Tuple[Tuple[str, str, re.Pattern], ...] = tuple(
    sorted(
        (
            (kw, category, _boundary_pattern(kw))
            for category, keywords in _CATEGORY_KEYWORDS.items()
            for kw in keywords
        ),
        key=lambda item: (-len(item[0]), item[0], item[1]),
    )
)

# Gazetteer used for merchant discovery: keywords of 3+ chars holding a letter
KNOWN_MERCHANTS: Tuple[Tuple[str, re.Pattern], ...] = tuple(
    (kw, pattern)
    for kw, _category, pattern in _KEYWORD_INDEX
    if len(kw) >= 3 and re.search(r"[a-z]", kw)
)


@dataclass(frozen=True)
class KnownMerchant:
    name: str      # as written by the user
    keyword: str   # gazetteer keyword that matched


def match_category_by_keyword(text: str | None) -> Optional[str]:
    """
    Return the category whose keyword is the longest match in `text`.
    """
    if not text:
        return None

    best: Optional[Tuple[int, int, str]] = None
    for kw, category, pattern in _KEYWORD_INDEX:
        if best is not None and len(kw) < -best[0]:
            break
        m = pattern.search(text)
        if not m:
            continue
        candidate = (-len(kw), m.start(), category)
        if best is None or candidate < best:
            best = candidate

    return best[2] if best else None


def find_known_merchant(text: str) -> Optional[KnownMerchant]:
    """
    Longest gazetteer keyword found in `text`, returned with the user's casing.
    """
    for kw, pattern in KNOWN_MERCHANTS:
        m = pattern.search(text)
        if m:
            return KnownMerchant(name=text[m.start():m.end()].strip(), keyword=kw)
    return None


def category_names() -> List[str]:
    """Default category set, in table order (used for seeding)."""
    return list(_CATEGORY_KEYWORDS.keys())
