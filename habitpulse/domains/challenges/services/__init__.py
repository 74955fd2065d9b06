"""Challenge services: definitions, membership intervals, habit tags and progress."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Set, Tuple

from flask import current_app
from sqlalchemy import or_

from habitpulse.core.errors import InvariantViolation, ValidationError
from habitpulse.core.users.models import Organization
from habitpulse.core.users.services import get_user
from habitpulse.core.utils.dates import as_aware_utc, local_day, utcnow
from habitpulse.domains.challenges.aggregator import (
    ChallengeParticipant,
    ChallengeProgress,
    ChallengeProgressAggregator,
)
from habitpulse.domains.challenges.events import (
    CHALLENGES_CHALLENGE_CREATED,
    CHALLENGES_MEMBER_JOINED,
    CHALLENGES_MEMBER_LEFT,
)
from habitpulse.domains.challenges.models.challenge_models import (
    Challenge,
    ChallengeHabit,
    ChallengeMembership,
)
from habitpulse.domains.habits.ledger import completion_ledger
from habitpulse.domains.habits.models.habit_models import Habit
from habitpulse.extensions import db
from habitpulse.platform.outbox import enqueue as enqueue_outbox

challenge_aggregator = ChallengeProgressAggregator(completion_ledger)


def _user_tz(user) -> str:
    return user.timezone or current_app.config.get("DEFAULT_TIMEZONE", "UTC")


def _require_user(user_id: int):
    user = get_user(user_id)
    if not user:
        raise ValidationError("not_found", "user")
    return user


def get_challenge(challenge_id: int) -> Optional[Challenge]:
    return db.session.get(Challenge, challenge_id)


def _require_challenge(challenge_id: int) -> Challenge:
    challenge = get_challenge(challenge_id)
    if not challenge:
        raise ValidationError("not_found", "challenge")
    return challenge


def create_challenge(
    creator_id: int,
    *,
    title: str,
    description: str | None = None,
    organization_id: int | None = None,
    start_day: date | None = None,
    end_day: date | None = None,
    partial_credit: bool = False,
) -> Challenge:
    creator = _require_user(creator_id)
    title_norm = (title or "").strip()
    if not title_norm:
        raise ValidationError("validation_error", "title")
    if organization_id is not None:
        if not db.session.get(Organization, organization_id):
            raise ValidationError("not_found", "organization")
        if creator.organization_id != organization_id:
            raise InvariantViolation("not_in_organization")
    start = start_day or local_day(utcnow(), _user_tz(creator))
    if end_day is not None and end_day < start:
        raise ValidationError("validation_error", "end_day")

    challenge = Challenge(
        title=title_norm,
        description=(description or "").strip() or None,
        creator_id=creator_id,
        organization_id=organization_id,
        start_day=start,
        end_day=end_day,
        partial_credit=bool(partial_credit),
    )
    db.session.add(challenge)
    db.session.flush()
    enqueue_outbox(
        CHALLENGES_CHALLENGE_CREATED,
        {
            "challenge_id": challenge.id,
            "creator_id": creator_id,
            "organization_id": organization_id,
            "start_day": start.isoformat(),
            "end_day": end_day.isoformat() if end_day else None,
        },
        user_id=creator_id,
    )
    db.session.commit()
    return challenge


def open_membership(challenge_id: int, user_id: int) -> Optional[ChallengeMembership]:
    return ChallengeMembership.query.filter_by(
        challenge_id=challenge_id, user_id=user_id, left_at=None
    ).first()


def join_challenge(
    user_id: int,
    challenge_id: int,
    joined_at: Optional[datetime] = None,
) -> ChallengeMembership:
    """Open a membership interval; joining twice returns the open one."""
    user = _require_user(user_id)
    challenge = _require_challenge(challenge_id)
    existing = open_membership(challenge_id, user_id)
    if existing:
        return existing
    if challenge.organization_id is not None and user.organization_id != challenge.organization_id:
        raise InvariantViolation("not_in_organization")
    joined_at = as_aware_utc(joined_at or utcnow())
    day = local_day(joined_at, _user_tz(user))
    if challenge.end_day is not None and day > challenge.end_day:
        raise InvariantViolation("challenge_ended", challenge.end_day.isoformat())

    membership = ChallengeMembership(
        challenge_id=challenge_id,
        user_id=user_id,
        joined_at=joined_at.replace(tzinfo=None),
        joined_day=day,
    )
    db.session.add(membership)
    enqueue_outbox(
        CHALLENGES_MEMBER_JOINED,
        {"challenge_id": challenge_id, "user_id": user_id, "joined_day": day.isoformat()},
        user_id=user_id,
    )
    db.session.commit()
    return membership


def leave_challenge(user_id: int, challenge_id: int, left_at: Optional[datetime] = None) -> bool:
    """Close the open interval. The row stays for audit and past credit."""
    user = _require_user(user_id)
    _require_challenge(challenge_id)
    membership = open_membership(challenge_id, user_id)
    if not membership:
        return False
    left_at = as_aware_utc(left_at or utcnow())
    membership.left_at = left_at.replace(tzinfo=None)
    membership.left_day = max(local_day(left_at, _user_tz(user)), membership.joined_day)
    enqueue_outbox(
        CHALLENGES_MEMBER_LEFT,
        {
            "challenge_id": challenge_id,
            "user_id": user_id,
            "left_day": membership.left_day.isoformat(),
        },
        user_id=user_id,
    )
    db.session.commit()
    return True


def tag_habit(user_id: int, challenge_id: int, habit_id: int, weight: float = 1.0) -> ChallengeHabit:
    _require_challenge(challenge_id)
    if not open_membership(challenge_id, user_id):
        raise InvariantViolation("not_member")
    habit = Habit.query.filter_by(id=habit_id, user_id=user_id).first()
    if not habit:
        raise ValidationError("not_found", "habit")
    if habit.is_deleted:
        raise InvariantViolation("habit_deleted")
    if weight is None or weight <= 0:
        raise ValidationError("validation_error", "weight")
    if ChallengeHabit.query.filter_by(challenge_id=challenge_id, habit_id=habit_id).first():
        raise ValidationError("duplicate")
    link = ChallengeHabit(challenge_id=challenge_id, habit_id=habit_id, user_id=user_id, weight=weight)
    db.session.add(link)
    db.session.commit()
    return link


def set_leaderboard_opt_out(user_id: int, challenge_id: int, opt_out: bool) -> ChallengeMembership:
    _require_challenge(challenge_id)
    membership = open_membership(challenge_id, user_id)
    if not membership:
        raise ValidationError("not_found", "membership")
    membership.opt_out_of_leaderboard = bool(opt_out)
    db.session.commit()
    return membership


def challenge_membership(challenge_id: int) -> Set[ChallengeParticipant]:
    """Membership collaborator: current participants of a challenge."""
    return challenge_aggregator.participants(challenge_id)


def get_progress(challenge_id: int, user_id: int, as_of: Optional[date] = None) -> ChallengeProgress:
    challenge = _require_challenge(challenge_id)
    if as_of is None:
        user = get_user(user_id)
        tz_name = _user_tz(user) if user else current_app.config.get("DEFAULT_TIMEZONE", "UTC")
        as_of = local_day(utcnow(), tz_name)
    return challenge_aggregator.progress(challenge, user_id, as_of)


CHALLENGE_STATUSES = ("active", "upcoming", "ended")


def list_challenges(
    viewer_id: int,
    *,
    as_of: Optional[date] = None,
    status: Optional[str] = None,
    organization_id: Optional[int] = None,
    mine: bool = False,
    search: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[Challenge], int]:
    """Challenges the viewer can see: platform-wide ones plus their organization's.

    ``status`` is judged against ``as_of`` (the viewer's local today by default);
    ``mine`` keeps challenges the viewer currently belongs to. Newest start first.
    """
    viewer = _require_user(viewer_id)
    if status is not None and status not in CHALLENGE_STATUSES:
        raise ValidationError("validation_error", "status")
    as_of = as_of or local_day(utcnow(), _user_tz(viewer))

    visible = Challenge.organization_id.is_(None)
    if viewer.organization_id is not None:
        visible = or_(visible, Challenge.organization_id == viewer.organization_id)
    query = Challenge.query.filter(visible)
    if organization_id is not None:
        if organization_id != viewer.organization_id:
            raise ValidationError("not_found", "organization")
        query = query.filter(Challenge.organization_id == organization_id)
    if status == "active":
        query = query.filter(Challenge.running_on(as_of))
    elif status == "upcoming":
        query = query.filter(Challenge.start_day > as_of)
    elif status == "ended":
        query = query.filter(Challenge.end_day.isnot(None), Challenge.end_day < as_of)
    if mine:
        joined = db.session.query(ChallengeMembership.challenge_id).filter(
            ChallengeMembership.user_id == viewer_id, ChallengeMembership.left_at.is_(None)
        )
        query = query.filter(Challenge.id.in_(joined))
    if search:
        query = query.filter(Challenge.title.ilike(f"%{search.strip()}%"))

    total = query.count()
    page = query.order_by(Challenge.start_day.desc(), Challenge.id.desc()).offset(offset).limit(limit).all()
    return page, total


def challenge_detail(challenge_id: int) -> Optional[dict]:
    challenge = get_challenge(challenge_id)
    if not challenge:
        return None
    return {
        "challenge": challenge,
        "participant_count": len(challenge_membership(challenge_id)),
        "habit_count": len(challenge.habit_links),
    }
