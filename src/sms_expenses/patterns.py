"""
Rule tables for SMS transaction alerts.

Everything the classifier, extractor and categorizer match against lives
here, so the whole heuristic model can be read in one place.

Supported formats:
- Amounts: Rs.450, Rs 2,499.00, INR 120.00, ₹99, 450 INR
- Dates: 26-12-24, 26/12/2024, 26.12.24
- Merchants: "at <name>", "to <name>", "merchant <name>", "UPI/<vpa>/"
"""

import re

from .schemas.expense_candidate import Category, PaymentMethod

# Keywords that mark a message as a transaction alert at all
TRANSACTION_KEYWORDS = [
    "debited",
    "credited",
    "spent",
    "paid",
    "withdrawn",
    "transaction",
    "purchase",
    "payment",
    "debit",
    "credit",
    "upi",
    "transferred",
    "transfer",
    "sent",
    "received",
    "card",
    "atm",
    "pos",
    "imps",
    "neft",
]

# Money leaving the account
EXPENSE_KEYWORDS = [
    "debited",
    "spent",
    "paid",
    "withdrawn",
    "purchase",
    "payment",
    "debit",
    "sent",
    "transfer",
]

# Money entering the account; any of these vetoes an expense
CREDIT_KEYWORDS = ["credited", "received", "refund"]

# Sender IDs of banks and wallets (matched as case-insensitive substrings)
TRUSTED_SENDERS = [
    "SBI",
    "HDFC",
    "ICICI",
    "AXIS",
    "KOTAK",
    "PNB",
    "BOB",
    "CANARA",
    "UNION",
    "INDIAN",
    "PAYTM",
    "PHONEPE",
    "GPAY",
    "BHIM",
    "AMAZONPAY",
]

# Category keyword sets, in tie-break order (earlier wins on equal score)
CATEGORY_KEYWORDS: dict[Category, list[str]] = {
    Category.FOOD: [
        "restaurant", "cafe", "food", "zomato", "swiggy", "dominos", "pizza",
        "burger", "mcd", "kfc", "subway", "starbucks", "dunkin", "cafe coffee day",
        "ccd", "barbeque", "biryani", "kitchen", "dhaba", "hotel",
    ],
    Category.TRANSPORT: [
        "uber", "ola", "rapido", "metro", "petrol", "fuel", "gas", "parking",
        "toll", "taxi", "cab", "auto", "bus", "train", "irctc", "paytm toll",
        "fastag", "bharatpe",
    ],
    Category.SHOPPING: [
        "amazon", "flipkart", "myntra", "ajio", "meesho", "shopping", "mall",
        "store", "shop", "market", "online", "retail", "supermarket", "walmart",
        "target", "big bazaar", "dmart", "reliance", "grocery",
    ],
    Category.BILLS: [
        "electricity", "water", "gas", "bill", "recharge", "mobile", "internet",
        "broadband", "wifi", "postpaid", "utility", "rent", "emi", "loan",
        "insurance", "airtel", "jio", "vodafone", "bsnl", "tata sky", "dish",
    ],
    Category.ENTERTAINMENT: [
        "movie", "netflix", "amazon prime", "hotstar", "spotify", "youtube",
        "cinema", "pvr", "inox", "gaming", "game", "entertainment", "concert",
        "event", "ticket", "bookmyshow", "paytm movies",
    ],
    Category.HEALTH: [
        "hospital", "clinic", "pharmacy", "medicine", "doctor", "health",
        "medical", "apollo", "fortis", "max", "medlife", "pharmeasy", "1mg",
        "netmeds", "lab", "diagnostic", "therapy",
    ],
}

# Payment method keywords, in precedence order (first hit wins)
PAYMENT_METHOD_KEYWORDS: list[tuple[PaymentMethod, list[str]]] = [
    (PaymentMethod.UPI, ["upi", "gpay", "phonepe", "paytm", "bhim"]),
    (PaymentMethod.CARD, ["card", "pos", "swipe"]),
    (PaymentMethod.CASH, ["atm", "cash"]),
    (PaymentMethod.NET_BANKING, ["neft", "imps", "rtgs", "net banking"]),
]

DEFAULT_PAYMENT_METHOD = PaymentMethod.CARD

# Currency marker: INR, Rs, Rs. or the rupee sign. The lookbehind keeps
# "rs" inside words ("hours 10") from counting as a currency.
_CURRENCY = r"(?:(?<![a-z])(?:inr|rs\.?)|₹)"
_NUMBER = r"(\d[\d,]*(?:\.\d{2})?)"

# Amount patterns (strict priority order)
AMOUNT_PATTERNS = [
    (re.compile(_CURRENCY + r"\s*" + _NUMBER, re.IGNORECASE), "currency_prefix"),
    (re.compile(_NUMBER + r"\s*" + _CURRENCY, re.IGNORECASE), "currency_suffix"),
    (
        re.compile(
            r"(?:debited|paid|spent|withdrawn)\s+" + _CURRENCY + r"?\s*" + _NUMBER,
            re.IGNORECASE,
        ),
        "verb_adjacent",
    ),
]

# The classifier only accepts messages carrying an explicit currency amount
CURRENCY_AMOUNT_PATTERNS = [pattern for pattern, name in AMOUNT_PATTERNS[:2]]

# Merchant patterns (strict priority order)
MERCHANT_PATTERNS = [
    (
        re.compile(
            r"\b(?:at|to)\s+([A-Z][A-Z\s&.-]*?)(?=\s+on\b|\s+for\b|\.|\s+upi\b|\s+via\b|$)",
            re.IGNORECASE,
        ),
        "at_to",
    ),
    (
        re.compile(
            r"\bmerchant\s+([A-Z][A-Z\s&.-]*?)(?=\s+on\b|\s+for\b|\.|\s+ref\b|$)",
            re.IGNORECASE,
        ),
        "merchant_keyword",
    ),
    (
        re.compile(r"UPI/([A-Za-z0-9@.\s]+?)(?=/|\.|\s+on\b)", re.IGNORECASE),
        "upi_vpa",
    ),
]

# Accepted merchant length (trimmed), exclusive bounds
MERCHANT_MIN_LENGTH = 2
MERCHANT_MAX_LENGTH = 50

# Date pattern: DD-MM-YY, DD/MM/YYYY, DD.MM.YY
DATE_PATTERN = re.compile(r"\b(\d{1,2})[-/.](\d{1,2})[-/.](\d{4}|\d{2})(?!\d)")
