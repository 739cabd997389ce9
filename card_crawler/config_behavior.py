# card_crawler/config_behavior.py
"""
Central configuration for card_crawler. This file contains all tunable lists, keywords, and heuristics used by
parser.py, urls.py, triage.py, relevance.py, aggregator.py, enrich.py and validator.py.

Config is organized into seven sections:
1. PARSER CONFIG     -> controls HTML text extraction
2. URL CONFIG        -> repairs and rejection signatures for raw hrefs
3. TRIAGE CONFIG     -> ignore / priority / category rule tables for links
4. RELEVANCE CONFIG  -> keyword tables for scoring fetched page text
5. SCHEMA CONFIG     -> the card record fields and their merge kinds
6. ENRICH CONFIG     -> keyword tables for the card field heuristics
7. VALIDATION CONFIG -> required fields and value formats for the merged record
"""

from __future__ import annotations
from typing import Dict, List, Tuple


# ======================================================================
# ============================ PARSER CONFIG ============================
# ======================================================================

"""
Configuration used ONLY by parser.py to:
- Remove nav/footer/sidebar chrome before text extraction
- Skip anchors that can never lead to a page
"""

# Tags whose content is never page text
PARSER_DROP_TAGS: List[str] = [
    "script", "style", "noscript", "iframe", "object", "embed", "form",
]

# Substrings commonly found in class/id/role attributes for non-content blocks
PARSER_BAD_CONTAINER_HINTS: List[str] = [
    "nav",
    "menu",
    "footer",
    "sidebar",
    "side-bar",
    "breadcrumb",
    "advertisement",
    "cookie",
]

# Structural tags that hold site chrome rather than product content
PARSER_CHROME_TAGS: List[str] = ["nav", "footer", "aside"]

# hrefs starting with these are skipped at extraction time
PARSER_SKIP_HREF_PREFIXES: Tuple[str, ...] = ("javascript:", "mailto:", "tel:", "#")


# ======================================================================
# ============================== URL CONFIG =============================
# ======================================================================

"""
Configuration used ONLY by urls.py to:
- Repair known character-duplication corruptions in the bank's link feed
- Reject URLs that still carry a corruption signature after repair
"""

# Literal substring repairs, applied in order until nothing changes
URL_REPAIRS: List[Tuple[str, str]] = [
    ("CCredit", "Credit"),
    ("Carrds", "Cards"),
    ("Creditt", "Credit"),
    ("CCard", "Card"),
    ("Supeer", "Super"),
    ("Preemium", "Premium"),
    ("Premiuum", "Premium"),
    ("immediiate", "immediate"),
    ("nationnal", "national"),
    ("remitnnow", "remitnow"),
    ("ttime", "time"),
    ("Cardds", "Cards"),
    ("Creddit", "Credit"),
    ("ppay", "pay"),
    ("donattions", "donations"),
    ("%%20", "%20"),
    ("%20%20", "%20"),
]

# Case-insensitive regexes; a URL still matching one of these is dropped
URL_CORRUPTION_SIGNATURES: List[str] = [
    r"creddit",
    r"cardds",
    r"traansfer",
    r"milllennia",
    r"commmercial",
    r"busiiness",
    r"ccredit",
    r"uusers",
    r"\.pdf.*\.pdf",
]

# Template-injection markers left behind by un-rendered CMS placeholders
URL_TEMPLATE_MARKERS: List[str] = ["{{", "}}", "%7b%7b", "%7d%7d"]

URL_MAX_LENGTH: int = 2000



# ======================================================================
# ============================ TRIAGE CONFIG ============================
# ======================================================================

"""
Configuration used ONLY by triage.py to:
- Drop irrelevant routes, static assets and off-topic site sections
- Weight links towards fees / terms / benefits content
- Assign one category per link (first match wins)
"""

# Regexes searched against the canonical URL
TRIAGE_IGNORE_PATTERNS: List[str] = [
    r"/login",
    r"/netbanking",
    r"/mycards",
    r"/careers",
    r"/investor-relations",
    r"/press-releases",
    r"/money-transfer",
    r"/upi",
    r"/donation",
    r"/remittance",
    r"/forex",
    r"/bill-pay",
    r"/recharge",
    r"/fastag",
    r"/demat",
    r"/mutual-fund",
    r"/loan",
    r"/deposit",
    r"/savings",
    r"/current-account",
    r"/debit-card",
    r"/business-card",
    r"/commercial-card",
    r"/tax",
    r"/insurance(?!.*credit)",
    r"/personal-loan",
    r"/home-loan",
    r"/search",
    r"/sitemap",
    r"/privacy-policy",
    r"/cookie-policy",
    r"/contact",
    r"/about",
    r"\.css$",
    r"\.js$",
    r"\.jpe?g$",
    r"\.png$",
    r"\.gif$",
    r"\.svg$",
    r"\.ico$",
    r"\.(zip|mp4|mp3)$",
]

# (regex, weight); case-insensitive, every match adds its weight
TRIAGE_PRIORITY_PATTERNS: List[Tuple[str, int]] = [
    (r"regalia.*gold", 25),
    (r"credit.*card", 20),
    (r"fees.*charges", 18),
    (r"terms.*conditions", 15),
    (r"tnc", 15),
    (r"benefits", 12),
    (r"\.pdf$", 12),
    (r"rewards", 10),
    (r"cashback", 10),
    (r"points", 9),
    (r"features", 9),
    (r"eligibility", 8),
    (r"insurance", 8),
    (r"coverage", 8),
    (r"pricing", 8),
    (r"offers", 8),
    (r"apply", 7),
    (r"lounge", 7),
    (r"milestone", 7),
]

# (category, regex); ordered, first match wins, "general" otherwise
TRIAGE_CATEGORIES: List[Tuple[str, str]] = [
    ("fees", r"fees|charges|pricing"),
    ("terms", r"terms|tnc|conditions"),
    ("benefits", r"benefits|features|offers"),
    ("rewards", r"rewards|cashback|points"),
    ("eligibility", r"eligibility|requirements|criteria"),
    ("insurance", r"insurance|coverage|protection"),
    ("pdf", r"\.pdf$"),
    ("application", r"apply|application"),
]

TRIAGE_DEFAULT_CATEGORY: str = "general"



# ======================================================================
# ========================== RELEVANCE CONFIG ===========================
# ======================================================================

"""
Configuration used ONLY by relevance.py to:
- Score fetched page text for credit-card relevance
- Reject pages below MIN_RELEVANCE_SCORE
"""

# Path tokens that identify the product being crawled: (token, bonus)
RELEVANCE_URL_TOKENS: List[Tuple[str, int]] = [
    ("regalia", 8),
    ("gold", 3),
]

# Bonus when the path mentions both "credit" and "card"
RELEVANCE_CREDIT_CARD_URL_BONUS: int = 5

# Every occurrence scores 2 points
RELEVANCE_HIGH_PRIORITY_KEYWORDS: List[str] = [
    "regalia gold", "credit card", "fees", "charges", "benefits",
    "rewards", "cashback", "points", "eligibility", "terms", "conditions",
]

# Every occurrence scores 1 point
RELEVANCE_MEDIUM_PRIORITY_KEYWORDS: List[str] = [
    "insurance", "coverage", "lounge", "milestone", "features",
    "offers", "annual", "joining", "waiver",
]

# Each keyword present costs 3 points, once
RELEVANCE_OFF_TOPIC_KEYWORDS: List[str] = [
    "money transfer", "upi", "donation", "remittance", "forex",
    "bill pay", "recharge", "fastag", "demat", "mutual fund",
]

RELEVANCE_OFF_TOPIC_PENALTY: int = 3

# Pages that link documents are usually the fee / terms pages
RELEVANCE_DOCUMENT_HINTS: List[str] = [".pdf", "download"]
RELEVANCE_DOCUMENT_BONUS: int = 2

MIN_RELEVANCE_SCORE: int = 3



# ======================================================================
# ============================ SCHEMA CONFIG ============================
# ======================================================================

"""
Configuration used by aggregator.py to:
- Initialize an empty card record
- Decide how each field merges (scalar / collection / object)
"""

CARD_SCHEMA: Dict[str, str] = {
    "card_name": "scalar",
    "annual_fee": "scalar",
    "joining_fee": "scalar",
    "rewards": "collection",
    "benefits": "collection",
    "eligibility_criteria": "collection",
    "documents_required": "collection",
    "interest_rate": "scalar",
    "other_charges": "collection",
    "links": "object",
    "card_type": "scalar",
    "credit_limit": "scalar",
    "welcome_benefits": "collection",
    "milestone_benefits": "collection",
    "lounge_access": "object",
    "insurance": "object",
    "redemption_options": "collection",
    "foreign_currency_markup": "scalar",
    "contact_info": "object",
}



# ======================================================================
# ============================ ENRICH CONFIG ============================
# ======================================================================

"""
Configuration used ONLY by enrich.py to:
- Pick sentences that belong to each collection field of the card record
"""

# A sentence mentioning any keyword is collected into the field
FIELD_SENTENCE_KEYWORDS: Dict[str, List[str]] = {
    "rewards": [
        "reward point", "reward points", "cashback", "points per",
        "earn points", "accelerated rewards",
    ],
    "benefits": [
        "complimentary", "benefit", "privilege", "concierge",
        "membership", "fuel surcharge waiver",
    ],
    "eligibility_criteria": [
        "eligibility", "age", "income", "salaried", "self-employed",
        "self employed", "itr",
    ],
    "documents_required": [
        "pan card", "address proof", "identity proof", "salary slip",
        "bank statement", "form 16", "aadhaar", "passport",
    ],
    "other_charges": [
        "late payment", "cash advance", "over limit", "overlimit",
        "reissue", "rent payment fee", "finance charges",
    ],
    "welcome_benefits": [
        "welcome benefit", "welcome gift", "welcome offer", "joining benefit",
    ],
    "milestone_benefits": [
        "milestone", "on spends of", "annual spends",
    ],
    "redemption_options": [
        "redeem", "redemption", "smartbuy", "airmiles", "air miles",
    ],
}

# Collected sentences outside this length range are discarded
FIELD_SENTENCE_MIN_LEN: int = 20
FIELD_SENTENCE_MAX_LEN: int = 300

# Cap on sentences kept per field per source
FIELD_SENTENCE_LIMIT: int = 10



# ======================================================================
# ========================== VALIDATION CONFIG ==========================
# ======================================================================

"""
Configuration used ONLY by validator.py to:
- Name the fields a usable card record must have
- Recognise fee / percentage / phone formats
- Flag implausible amounts
"""

VALIDATION_REQUIRED_FIELDS: List[str] = ["card_name", "annual_fee", "joining_fee"]

VALIDATION_AMOUNT_FIELDS: List[str] = ["annual_fee", "joining_fee"]

# Whole-value amount formats, e.g. "₹2,500", "Rs 500", "2,500.00"
VALIDATION_AMOUNT_PATTERNS: List[str] = [
    r"^₹\s*[0-9][0-9,]*(?:\.[0-9]+)?$",
    r"^(?:rs\.?|inr)\s*[0-9][0-9,]*(?:\.[0-9]+)?$",
    r"^[0-9][0-9,]*(?:\.[0-9]+)?$",
]

# A percentage figure somewhere in the value ("3.75% per month", "2%")
VALIDATION_PERCENTAGE_PATTERN: str = r"\d+(?:\.\d+)?\s*%"

# Charge descriptions that are fine without an amount
VALIDATION_CHARGE_HINTS: List[str] = [
    r"late\s*payment", r"penalty", r"overdue", r"cash\s*advance",
    r"balance\s*transfer", r"over\s*-?limit", r"finance\s*charge",
]

VALIDATION_PHONE_PATTERNS: List[str] = [
    r"^\d{10}$",
    r"^\d{12}$",
    r"^\+91\d{10}$",
    r"^1800\d{4}(?:\d{3})?$",
    r"^1860\d{4}(?:\d{3})?$",
]

VALIDATION_EMAIL_PATTERN: str = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

# Amounts above these are reported as warnings
VALIDATION_MAX_ANNUAL_FEE: int = 100000
VALIDATION_MAX_JOINING_FEE: int = 50000

# Score = percentage of filled fields minus these per finding
VALIDATION_ERROR_PENALTY: float = 5.0
VALIDATION_WARNING_PENALTY: float = 1.0
