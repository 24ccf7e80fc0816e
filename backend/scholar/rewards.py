"""
XP and coin awards.

A claim names an activity the caller finished (practice set, study goal or
assignment attempt). The activity row is checked for ownership, state, score
and reward caps; then the claim, the balance update and the ledger entry are
written in one commit. A claim key per student+activity makes every activity
claimable once.
"""

from __future__ import annotations
import logging
from typing import Any, Dict

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import AppError, ErrorCode, NotFoundError, ValidationFailed, forbidden_error
from .models import Assignment, Attempt, AuthUser, PracticeSet, RewardClaim, RewardLedger, StudentProfile
from .schemas import AwardRewardsRequest


logger = logging.getLogger(__name__)

PRACTICE_MINIMUM_SCORE = 60
STUDY_GOAL_MAX_XP = 25
STUDY_GOAL_MAX_COINS = 10
REWARDABLE_ATTEMPT_STATES = ("submitted", "verified")


def _check_caps(claim: AwardRewardsRequest, max_xp: int, max_coins: int) -> None:
	if claim.xp_amount > max_xp or claim.coin_amount > max_coins:
		raise AppError(
			ErrorCode.REWARDS_EXCEED_LIMIT,
			f"Requested rewards exceed allowed amounts ({max_xp} XP, {max_coins} coins)",
			{"max_xp": max_xp, "max_coins": max_coins},
		)


def _check_practice_set(db: Session, user: AuthUser, claim: AwardRewardsRequest) -> None:
	ps = db.get(PracticeSet, claim.reference_id)
	if ps is None:
		raise NotFoundError("Practice set")
	if ps.student_id != user.id:
		raise forbidden_error("Practice set does not belong to this user")
	if ps.status != "completed":
		raise AppError(ErrorCode.NOT_COMPLETED, "Practice set is not completed")
	if not ps.score or ps.score < PRACTICE_MINIMUM_SCORE:
		raise AppError(
			ErrorCode.THRESHOLD_NOT_MET,
			f"Score does not meet the minimum threshold ({PRACTICE_MINIMUM_SCORE}%)",
			{"score": ps.score, "required": PRACTICE_MINIMUM_SCORE},
		)
	_check_caps(claim, ps.xp_reward, ps.coin_reward)


def _check_study_goal(db: Session, user: AuthUser, claim: AwardRewardsRequest) -> None:
	if claim.validation_data is None or claim.validation_data.goal_index is None:
		raise ValidationFailed("Missing goal index", {"validation_data.goal_index": ["Field required"]})
	_check_caps(claim, STUDY_GOAL_MAX_XP, STUDY_GOAL_MAX_COINS)


def _check_attempt(db: Session, user: AuthUser, claim: AwardRewardsRequest) -> None:
	attempt = db.get(Attempt, claim.reference_id)
	if attempt is None:
		raise NotFoundError("Attempt")
	if attempt.student_id != user.id:
		raise forbidden_error("Attempt does not belong to this user")
	if attempt.status not in REWARDABLE_ATTEMPT_STATES:
		raise AppError(
			ErrorCode.INVALID_STATE,
			"Attempt is not in a valid state for rewards",
			{"status": attempt.status},
		)
	assignment = db.get(Assignment, attempt.assignment_id)
	if assignment is not None:
		_check_caps(claim, assignment.xp_reward, assignment.coin_reward)


CLAIM_CHECKS = {
	"practice_set": _check_practice_set,
	"study_goal": _check_study_goal,
	"assignment": _check_attempt,
}


def claim_key(student_id: str, claim_type: str, reference_id: str) -> str:
	return f"{student_id}:{claim_type}:{reference_id}"


def _already_claimed() -> AppError:
	return AppError(ErrorCode.ALREADY_CLAIMED, "Rewards already claimed for this activity")


def award_rewards(db: Session, user: AuthUser, claim: AwardRewardsRequest) -> Dict[str, Any]:
	CLAIM_CHECKS[claim.claim_type](db, user, claim)

	key = claim_key(user.id, claim.claim_type, claim.reference_id)
	if db.query(RewardClaim.id).filter(RewardClaim.claim_key == key).first() is not None:
		raise _already_claimed()

	profile = db.query(StudentProfile).filter(StudentProfile.user_id == user.id).first()
	if profile is None:
		raise NotFoundError("Student profile")

	db.add(RewardClaim(
		student_id=user.id,
		claim_type=claim.claim_type,
		reference_id=claim.reference_id,
		claim_key=key,
		xp_awarded=claim.xp_amount,
		coins_awarded=claim.coin_amount,
	))
	profile.xp = (profile.xp or 0) + claim.xp_amount
	profile.coins = (profile.coins or 0) + claim.coin_amount
	db.add(RewardLedger(
		student_id=user.id,
		xp_delta=claim.xp_amount,
		coin_delta=claim.coin_amount,
		reason=claim.reason,
	))
	try:
		db.commit()
	except IntegrityError:
		# A concurrent request claimed the same activity first
		db.rollback()
		raise _already_claimed()

	logger.info("Awarded %d XP / %d coins to %s for %s", claim.xp_amount, claim.coin_amount, user.id, key)
	return {
		"xp_awarded": claim.xp_amount,
		"coins_awarded": claim.coin_amount,
		"new_xp_total": profile.xp,
		"new_coins_total": profile.coins,
	}
