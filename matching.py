"""
Alias Matcher
=============

Two-phase merchant → partner matching, run once per upload over the unique
merchant descriptors in the file and against signed partners only.

Phase 1 (exact alias): a merchant belongs to the first partner in roster
order with an alias that prefixes or is contained in the merchant's identity.

Phase 2 (fuzzy): merchants left over are scored against partner names after
both are reduced to a compact form. The best partner at or above the minimum
score is proposed together with a suggested alias. Proposals are only
suggestions; each one moves pending -> confirmed | dismissed under human
review, and confirmation re-checks that the partner is still signed.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from exceptions import IneligiblePartnerError, ValidationError
from merchants import normalise_merchant
from models import (
    FUZZY_EXACT_SCORE,
    FUZZY_MERCHANT_CONTAINS_CEILING,
    FUZZY_MIN_OVERLAP,
    FUZZY_MIN_SCORE,
    FUZZY_OVERLAP_CEILING,
    FUZZY_PARTNER_CONTAINS_CEILING,
    MatchState,
    Partner,
)
from utils import round_half_up

logger = logging.getLogger(__name__)

_AFTER_STAR = re.compile(r"\*.*$")
_WHITESPACE = re.compile(r"\s+")
_DOMAIN_SUFFIX = re.compile(r"\.(?:COM|CO\.UK|CO\.JP|CO)$")
_PUNCTUATION = re.compile(r"[.,\-_']")
_LEGAL_SUFFIX = re.compile(r"(?:LTD|LIMITED|LLC|INC|PLC|CORP|CORPORATION)$")


# ============================================================================
# Phase 1: exact alias matching
# ============================================================================

def merchant_match_keys(merchant_name: str, raw_descriptor: Optional[str] = None) -> Tuple[str, ...]:
    """
    Uppercased forms of a merchant that aliases are tested against.

    The canonical identity, the same identity without spaces (confirmed
    aliases are stored in compact form) and, when known, the raw descriptor.
    """
    canonical = merchant_name.upper().strip()
    keys = [canonical, _WHITESPACE.sub("", canonical)]
    if raw_descriptor:
        keys.append(raw_descriptor.upper().strip())
    return tuple(dict.fromkeys(k for k in keys if k))


def find_matching_partner(
    merchant_name: str,
    partners: Sequence[Partner],
    raw_descriptor: Optional[str] = None,
) -> Optional[Partner]:
    """
    First partner (in roster order) with an alias matching the merchant.

    Ties between partners are not resolved further; roster order decides.
    """
    keys = merchant_match_keys(merchant_name, raw_descriptor)

    for partner in partners:
        for alias in partner.aliases:
            normalised_alias = alias.upper().strip()
            if not normalised_alias:
                continue
            if any(key.startswith(normalised_alias) or normalised_alias in key for key in keys):
                logger.debug(f"Alias match: {merchant_name!r} -> {partner.name!r} via {alias!r}")
                return partner

    return None


# ============================================================================
# Phase 2: fuzzy matching
# ============================================================================

def normalise_for_fuzzy_matching(name: str) -> str:
    """
    Compact form of a name for fuzzy comparison and suggested aliases.

    "ADDISONLEE* EXTRA" -> "ADDISONLEE", "Acme Travel Ltd." -> "ACMETRAVEL",
    "bloomandwild.co.uk" -> "BLOOMANDWILD".
    """
    text = (name or "").upper()
    text = _AFTER_STAR.sub("", text)
    text = _WHITESPACE.sub("", text)
    text = _DOMAIN_SUFFIX.sub("", text)
    text = _PUNCTUATION.sub("", text)
    text = _LEGAL_SUFFIX.sub("", text)
    return text.strip()


def longest_common_substring(a: str, b: str) -> int:
    """Length of the longest run of characters shared by a and b."""
    if not a or not b:
        return 0
    best = 0
    previous = [0] * (len(b) + 1)
    for i in range(1, len(a) + 1):
        current = [0] * (len(b) + 1)
        for j in range(1, len(b) + 1):
            if a[i - 1] == b[j - 1]:
                current[j] = previous[j - 1] + 1
                if current[j] > best:
                    best = current[j]
        previous = current
    return best


def calculate_fuzzy_score(
    merchant_name: str,
    partner_name: str,
    merchant_contains_ceiling: int = FUZZY_MERCHANT_CONTAINS_CEILING,
    partner_contains_ceiling: int = FUZZY_PARTNER_CONTAINS_CEILING,
    overlap_ceiling: int = FUZZY_OVERLAP_CEILING,
    min_overlap: int = FUZZY_MIN_OVERLAP,
) -> int:
    """
    Score (0-100) how likely a merchant descriptor belongs to a partner.

    Not symmetric: a merchant that wraps the partner's name scores on the
    90-point scale, a partner name that wraps the merchant on the 80-point
    scale. Other overlaps of at least six characters score on a 60-point
    scale.
    """
    merchant = normalise_for_fuzzy_matching(merchant_name)
    partner = normalise_for_fuzzy_matching(partner_name)

    if not merchant or not partner:
        return 0

    if merchant == partner:
        return FUZZY_EXACT_SCORE

    if partner in merchant:
        return round_half_up(len(partner) / len(merchant) * merchant_contains_ceiling)

    if merchant in partner:
        return round_half_up(len(merchant) / len(partner) * partner_contains_ceiling)

    overlap = longest_common_substring(merchant, partner)
    if overlap >= min_overlap:
        return round_half_up(overlap / max(len(merchant), len(partner)) * overlap_ceiling)

    return 0


@dataclass
class FuzzyMatch:
    """A proposed merchant -> partner link awaiting review."""
    merchant_name: str
    partner: Partner
    score: int
    suggested_alias: str
    state: MatchState = MatchState.PENDING

    @property
    def is_pending(self) -> bool:
        return self.state == MatchState.PENDING

    @property
    def is_confirmed(self) -> bool:
        return self.state == MatchState.CONFIRMED

    def confirm(self, current_partner: Optional[Partner] = None) -> None:
        """
        Accept the proposal.

        Args:
            current_partner: freshly loaded copy of the proposed partner; its
                status may have changed since the proposal was made

        Raises:
            ValidationError: if the match was already reviewed or the partner differs
            IneligiblePartnerError: if the partner is no longer signed
        """
        self._require_pending()
        partner = current_partner or self.partner
        if partner.id != self.partner.id:
            raise ValidationError(
                f"Cannot confirm {self.merchant_name!r} against a different partner",
                field="partner_id",
                value=partner.id,
            )
        if not partner.is_signed:
            raise IneligiblePartnerError(partner.id, f"status is {partner.status.value}")
        self.partner = partner
        self.state = MatchState.CONFIRMED

    def dismiss(self) -> None:
        """Reject the proposal; the merchant stays a discovery candidate."""
        self._require_pending()
        self.state = MatchState.DISMISSED

    def _require_pending(self) -> None:
        if not self.is_pending:
            raise ValidationError(
                f"Match for {self.merchant_name!r} is already {self.state.value}",
                field="state",
                value=self.state.value,
            )


def find_fuzzy_matches(
    merchant_names: Iterable[str],
    partners: Sequence[Partner],
    min_score: int = FUZZY_MIN_SCORE,
) -> List[FuzzyMatch]:
    """Best partner at or above min_score for each merchant, highest score first."""
    matches = []

    for merchant_name in merchant_names:
        best_partner = None
        best_score = 0
        for partner in partners:
            score = calculate_fuzzy_score(merchant_name, partner.name)
            if score >= min_score and (best_partner is None or score > best_score):
                best_partner, best_score = partner, score

        if best_partner is not None:
            matches.append(FuzzyMatch(
                merchant_name=merchant_name,
                partner=best_partner,
                score=best_score,
                suggested_alias=normalise_for_fuzzy_matching(merchant_name),
            ))

    return sorted(matches, key=lambda m: m.score, reverse=True)


# ============================================================================
# Both phases
# ============================================================================

@dataclass
class MatchReport:
    """Outcome of matching one upload's merchants."""
    exact_matches: Dict[str, Partner] = field(default_factory=dict)
    proposals: List[FuzzyMatch] = field(default_factory=list)
    unmatched: List[str] = field(default_factory=list)

    @property
    def pending(self) -> List[FuzzyMatch]:
        return [m for m in self.proposals if m.is_pending]

    @property
    def confirmed(self) -> List[FuzzyMatch]:
        return [m for m in self.proposals if m.is_confirmed]

    def proposal_for(self, merchant_name: str) -> Optional[FuzzyMatch]:
        for match in self.proposals:
            if match.merchant_name == merchant_name:
                return match
        return None


def match_merchants(
    merchant_names: Iterable[str],
    partners: Sequence[Partner],
    min_score: int = FUZZY_MIN_SCORE,
) -> MatchReport:
    """
    Run exact alias matching, then fuzzy matching on what is left.

    Args:
        merchant_names: raw merchant descriptors; duplicates are collapsed
        partners: full roster; only signed partners take part
        min_score: fuzzy threshold

    Returns:
        MatchReport keyed by raw descriptor
    """
    signed = [p for p in partners if p.is_signed]
    report = MatchReport()
    leftover = []

    for merchant_name in dict.fromkeys(merchant_names):
        partner = find_matching_partner(normalise_merchant(merchant_name), signed, merchant_name)
        if partner:
            report.exact_matches[merchant_name] = partner
        else:
            leftover.append(merchant_name)

    report.proposals = find_fuzzy_matches(leftover, signed, min_score)
    proposed = {m.merchant_name for m in report.proposals}
    report.unmatched = [m for m in leftover if m not in proposed]

    logger.info(
        f"Matched merchants: {len(report.exact_matches)} by alias, "
        f"{len(report.proposals)} fuzzy proposals, {len(report.unmatched)} unmatched"
    )
    return report
