"""
Merchant Normalizer
===================

Maps a raw payment descriptor ("ADDISONLEE*1234", "WWW.FOO.CO.UK",
"SQ *CORNER CAFE 0042") to the canonical merchant identity used for grouping,
alias matching and the discovery list.

The known-merchant table is an ordered sequence of (predicate, canonical name)
pairs evaluated first-match-wins. Specific entries sit above generic ones so a
short token never swallows a longer brand (all VIRGIN entries are spelled out,
PUREGYM precedes GYM, congestion charges precede TFL). Every canonical name
must resolve to its own entry when normalised again.
"""

import logging
import re
from typing import Callable, List, NamedTuple, Optional

logger = logging.getLogger(__name__)

Predicate = Callable[[str], bool]


class MerchantRule(NamedTuple):
    matches: Predicate
    canonical: str


def contains(*patterns: str) -> Predicate:
    """Match when any pattern is a prefix or substring of the name."""
    def _match(name: str) -> bool:
        return any(name.startswith(p) or p in name for p in patterns)
    return _match


def word(*tokens: str) -> Predicate:
    """Match when any token appears without a letter or digit on either side."""
    regex = re.compile(
        r"(?<![A-Z0-9])(?:" + "|".join(re.escape(t) for t in tokens) + r")(?![A-Z0-9])"
    )

    def _match(name: str) -> bool:
        return regex.search(name) is not None
    return _match


def exact_or_prefix(exact: str, *prefixes: str) -> Predicate:
    """Match the whole name, or a name starting with one of the prefixes."""
    def _match(name: str) -> bool:
        return name == exact or any(name.startswith(p) for p in prefixes)
    return _match


def any_of(*predicates: Predicate) -> Predicate:
    def _match(name: str) -> bool:
        return any(p(name) for p in predicates)
    return _match


MERCHANT_RULES: List[MerchantRule] = [
    # Travel & transport
    MerchantRule(contains("AMAZON", "AMZN"), "Amazon"),
    MerchantRule(any_of(contains("BRITISH AIRWAYS", "BRITISH AWYS", "BA HOLIDAYS"), word("BA.COM")),
                 "British Airways"),
    MerchantRule(contains("TRAINLINE"), "Trainline"),
    MerchantRule(contains("ADDISONLEE", "ADDISON LEE"), "Addison Lee"),
    MerchantRule(contains("BLACKLANE"), "Blacklane"),
    MerchantRule(word("UBER"), "Uber"),
    # Groceries
    MerchantRule(contains("TESCO"), "Tesco"),
    MerchantRule(contains("SAINSBURY"), "Sainsbury's"),
    MerchantRule(contains("WAITROSE"), "Waitrose"),
    MerchantRule(word("ASDA"), "Asda"),
    MerchantRule(contains("MORRISON"), "Morrisons"),
    MerchantRule(any_of(contains("MARKS & SPENCER", "MARKS&SPENCER", "MARKS AND SPENCER"), word("M&S")),
                 "Marks & Spencer"),
    # Department stores & fashion
    MerchantRule(contains("JOHN LEWIS", "JOHNLEWIS"), "John Lewis"),
    MerchantRule(contains("SELFRIDGES"), "Selfridges"),
    MerchantRule(contains("HARRODS"), "Harrods"),
    MerchantRule(contains("NET-A-PORTER", "NET A PORTER", "NETAPORTER"), "Net-a-Porter"),
    MerchantRule(contains("MR PORTER", "MRPORTER"), "Mr Porter"),
    # Hotels & holidays
    MerchantRule(contains("BOOKING.COM", "BOOKINGCOM"), "Booking.com"),
    MerchantRule(contains("AIRBNB"), "Airbnb"),
    MerchantRule(contains("EXPEDIA"), "Expedia"),
    MerchantRule(contains("HILTON"), "Hilton"),
    MerchantRule(contains("MARRIOTT"), "Marriott"),
    MerchantRule(contains("PREMIER INN", "PREMIERINN"), "Premier Inn"),
    MerchantRule(any_of(contains("HOLIDAY INN", "CROWNE PLAZA"), word("IHG")), "IHG Hotels"),
    # Virgin brands are kept apart; there is no bare VIRGIN entry
    MerchantRule(contains("VIRGIN ATLANTIC"), "Virgin Atlantic"),
    MerchantRule(contains("VIRGIN TRAINS", "VIRGINTRAIN"), "Virgin Trains"),
    MerchantRule(contains("VIRGIN ACTIVE", "VIRGINACTIVE"), "Virgin Active"),
    MerchantRule(contains("VIRGIN MEDIA", "VIRGINMEDIA"), "Virgin Media"),
    # Airlines
    MerchantRule(contains("EASYJET", "EASY JET"), "easyJet"),
    MerchantRule(contains("RYANAIR"), "Ryanair"),
    MerchantRule(word("JET2"), "Jet2"),
    # Food & gifting
    MerchantRule(contains("DELIVEROO"), "Deliveroo"),
    MerchantRule(contains("JUST EAT", "JUSTEAT", "JUST-EAT"), "Just Eat"),
    MerchantRule(contains("SUSHISAMBA"), "Sushisamba"),
    MerchantRule(contains("BLOOMANDWILD", "BLOOM & WILD", "BLOOM AND WILD"), "Bloom & Wild"),
    MerchantRule(contains("CURZON"), "Curzon"),
    MerchantRule(contains("NOTONTHEHIGHSTREET"), "Notonthehighstreet"),
    MerchantRule(contains("THORTFUL"), "Thortful"),
    MerchantRule(contains("MOONPIG"), "Moonpig"),
    # Subscriptions & tech
    MerchantRule(contains("SPOTIFY"), "Spotify"),
    MerchantRule(contains("NETFLIX"), "Netflix"),
    MerchantRule(any_of(word("APPLE"), contains("APL*")), "Apple"),
    MerchantRule(word("GOOGLE"), "Google"),
    MerchantRule(any_of(contains("MICROSOFT"), word("MSFT")), "Microsoft"),
    MerchantRule(word("ZOOM"), "Zoom"),
    MerchantRule(contains("DROPBOX"), "Dropbox"),
    MerchantRule(contains("PAYPAL"), "PayPal"),
    # Coffee
    MerchantRule(contains("STARBUCKS"), "Starbucks"),
    MerchantRule(any_of(contains("COSTA COFFEE"), word("COSTA")), "Costa Coffee"),
    MerchantRule(any_of(contains("PRET A MANGER", "PRETAMANGER"), word("PRET")), "Pret a Manger"),
    # Health & beauty
    MerchantRule(word("BOOTS"), "Boots"),
    MerchantRule(contains("SUPERDRUG"), "Superdrug"),
    MerchantRule(contains("SPACE NK", "SPACENK"), "Space NK"),
    MerchantRule(contains("CULT BEAUTY", "CULTBEAUTY"), "Cult Beauty"),
    MerchantRule(contains("PUREGYM", "PURE GYM"), "PureGym"),
    MerchantRule(contains("DAVID LLOYD", "DAVIDLLOYD"), "David Lloyd"),
    MerchantRule(any_of(contains("GYMBOX"), word("GYM")), "Gym"),
    # Motoring & utilities
    MerchantRule(any_of(contains("CONGESTION"), word("ULEZ")), "Congestion/ULEZ"),
    MerchantRule(any_of(contains("TRANSPORT FOR LONDON", "OYSTER"), word("TFL")), "TfL"),
    MerchantRule(any_of(contains("PARKING"), word("NCP")), "Parking"),
    MerchantRule(contains("DVLA"), "DVLA"),
    MerchantRule(contains("OCTOPUS ENERGY", "OCTOPUS ENERG"), "Octopus Energy"),
    MerchantRule(contains("BRITISH GAS", "BRITISHGAS"), "British Gas"),
    MerchantRule(word("O2"), "O2"),
    MerchantRule(contains("VODAFONE"), "Vodafone"),
    MerchantRule(exact_or_prefix("EE", "EE *", "EE LIMITED"), "EE"),
    MerchantRule(word("SKY"), "Sky"),
    # Home & high street
    MerchantRule(word("IKEA"), "IKEA"),
    MerchantRule(contains("ARGOS"), "Argos"),
    MerchantRule(contains("CURRYS"), "Currys"),
    MerchantRule(word("ASOS"), "ASOS"),
    MerchantRule(word("ZARA"), "Zara"),
    MerchantRule(contains("UNIQLO"), "Uniqlo"),
    MerchantRule(contains("PRIMARK"), "Primark"),
    MerchantRule(any_of(word("H&M"), contains("H & M")), "H&M"),
    MerchantRule(contains("TK MAXX", "TKMAXX", "TJ MAXX"), "TK Maxx"),
    MerchantRule(any_of(word("B&Q"), contains("B & Q", "BANDQ")), "B&Q"),
    MerchantRule(contains("SCREWFIX"), "Screwfix"),
    MerchantRule(contains("WICKES"), "Wickes"),
]

_LEADING_NOISE = re.compile(r"^(?:WWW\.|SP\s+|SQ\s*\*)")
_TRAILING_DOMAIN = re.compile(r"\.(?:COM|CO\.UK)$")
_TRAILING_SYMBOLS = re.compile(r"[*#]+$")
_TRAILING_DIGITS = re.compile(r"\d+$")


def match_known_merchant(name: str) -> Optional[str]:
    """Canonical name of the first table entry matching an uppercased name."""
    for rule in MERCHANT_RULES:
        if rule.matches(name):
            return rule.canonical
    return None


def clean_descriptor(name: str) -> str:
    """Strip processor prefixes, domains, store numbers and stray symbols until stable."""
    previous = None
    while name != previous:
        previous = name
        name = _LEADING_NOISE.sub("", name).strip()
        name = _TRAILING_DOMAIN.sub("", name).strip()
        name = _TRAILING_SYMBOLS.sub("", name).strip()
        name = _TRAILING_DIGITS.sub("", name).strip()
    return name


def title_case(name: str) -> str:
    return " ".join(token[0] + token[1:].lower() for token in name.split())


def normalise_merchant(raw: str) -> str:
    """
    Canonical merchant identity for a raw descriptor.

    Known merchants resolve through MERCHANT_RULES; anything else is cleaned
    and title-cased for display. normalise_merchant(normalise_merchant(x))
    always equals normalise_merchant(x).
    """
    name = " ".join((raw or "").upper().split())
    if not name:
        return ""

    canonical = match_known_merchant(name)
    if canonical:
        return canonical

    cleaned = clean_descriptor(name)
    if not cleaned:
        # Nothing but noise (e.g. a bare store number); keep it as-is
        return title_case(name)

    canonical = match_known_merchant(cleaned)
    if canonical:
        return canonical

    return title_case(cleaned)
