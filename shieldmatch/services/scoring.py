"""Contractor scoring and selection for disaster claims

Scoring is a pure function of the project, the candidate list and the
current time. Each rule adds points and a human-readable reason; the
reasons are later quoted in invitations ("Why you were selected").
"""

import logging
import math
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from shieldmatch.db.models import ContractorCapacity, Peril
from shieldmatch.schemas.matching import ContractorProfile, ProjectDetails, ScoredContractor

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

AVAILABILITY_POINTS = 10
TRADE_MATCH_POINTS = 25
ZIP_MATCH_POINTS = 30
CITY_MATCH_POINTS = 25
STATE_MATCH_POINTS = 15
EMERGENCY_POINTS = 10
QUICK_RESPONSE_POINTS = 5
PREFERRED_DATE_POINTS = 5
ONLINE_SCHEDULING_POINTS = 5

DEFAULT_MAX_MATCHES = 3

PERIL_TRADES: dict[Peril, frozenset[str]] = {
    Peril.FLOOD: frozenset({"water_mitigation", "rebuild"}),
    Peril.WATER: frozenset({"water_mitigation", "mold"}),
    Peril.WIND: frozenset({"rebuild", "roofing"}),
    Peril.FIRE: frozenset({"rebuild", "smoke_restoration"}),
    Peril.MOLD: frozenset({"mold", "water_mitigation"}),
    Peril.OTHER: frozenset({"rebuild"}),
}
FALLBACK_TRADES = frozenset({"rebuild"})


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _whole_days(delta_seconds: float) -> int:
    return math.floor(delta_seconds / SECONDS_PER_DAY)


def relevant_trades(peril: Peril | str) -> frozenset[str]:
    """Trades that can remediate the given peril"""
    try:
        return PERIL_TRADES[Peril(peril)]
    except ValueError:
        return FALLBACK_TRADES


def _geographic_bonus(project: ProjectDetails, contractor: ContractorProfile) -> tuple[int, str | None]:
    areas = {area.strip().lower() for area in contractor.service_areas}

    # First match wins: zip, then city, then state
    if project.zip.strip().lower() in areas:
        return ZIP_MATCH_POINTS, "Serves your ZIP code"
    if project.city.strip().lower() in areas:
        return CITY_MATCH_POINTS, "Serves your city"
    if project.state.strip().lower() in areas:
        return STATE_MATCH_POINTS, "Serves your state"
    return 0, None


def _score_one(
    project: ProjectDetails,
    contractor: ContractorProfile,
    now: datetime,
) -> ScoredContractor:
    score = 0
    reasons: list[str] = []

    score += AVAILABILITY_POINTS
    reasons.append("Available")

    if relevant_trades(project.peril) & set(contractor.trades):
        score += TRADE_MATCH_POINTS
        reasons.append(f"Specialized in {project.peril.value} damage")

    geo_points, geo_reason = _geographic_bonus(project, contractor)
    if geo_reason:
        score += geo_points
        reasons.append(geo_reason)

    days_since_incident = _whole_days((now - _utc(project.incident_at)).total_seconds())
    if days_since_incident <= 1:
        score += EMERGENCY_POINTS
        reasons.append("Emergency response available")
    elif days_since_incident <= 3:
        score += QUICK_RESPONSE_POINTS
        reasons.append("Quick response available")

    if project.preferred_date is not None:
        days_until_preferred = _whole_days((_utc(project.preferred_date) - now).total_seconds())
        if 1 <= days_until_preferred <= 7:
            score += PREFERRED_DATE_POINTS
            reasons.append("Available for preferred date")

    if contractor.calendly_url:
        score += ONLINE_SCHEDULING_POINTS
        reasons.append("Online scheduling available")

    return ScoredContractor(contractor=contractor, score=score, reasons=reasons)


def score_contractors(
    project: Any,
    contractors: Iterable[Any],
    now: datetime | None = None,
) -> list[ScoredContractor]:
    """Rank contractors for a project.

    Accepts ORM rows or schema instances. Paused contractors are dropped
    before scoring, contractors scoring zero or less are dropped after, and
    the result is sorted by descending score. Ties keep their input order.
    """
    project_details = ProjectDetails.model_validate(project)
    now = _utc(now or datetime.now(timezone.utc))

    scored = []
    for candidate in contractors:
        profile = ContractorProfile.model_validate(candidate)
        if profile.capacity != ContractorCapacity.ACTIVE:
            continue
        scored.append(_score_one(project_details, profile, now))

    ranked = sorted(
        (match for match in scored if match.score > 0),
        key=lambda match: match.score,
        reverse=True,
    )
    logger.debug(
        f"Scored {len(ranked)} contractors for project {project_details.id} "
        f"({project_details.peril.value} in {project_details.zip})"
    )
    return ranked


def select_top_contractors(
    ranked: list[ScoredContractor],
    max_count: int = DEFAULT_MAX_MATCHES,
) -> list[ScoredContractor]:
    """Take the first max_count entries of an already ranked list"""
    if max_count <= 0:
        return []
    return ranked[:max_count]
