from __future__ import annotations
import logging
from typing import Any

from fastapi import APIRouter, Request

from ..cors import CORS_HEADERS
from ..effects import run_best_effort
from ..pipeline import ALL_METHODS, RequestContext, create_handler, require_method, with_body_validation
from ..rewards import award_rewards
from ..schemas import AwardRewardsRequest
from ..students import create_notification


logger = logging.getLogger(__name__)

router = APIRouter(tags=["rewards"])


async def award_rewards_endpoint(request: Request, ctx: RequestContext) -> Any:
	claim: AwardRewardsRequest = ctx.body
	result = award_rewards(ctx.db, ctx.user, claim)
	result["notification_sent"] = await run_best_effort(
		"reward notification",
		create_notification,
		ctx.db,
		ctx.user.id,
		"reward_received",
		"Rewards Earned!",
		f"You earned {claim.xp_amount} XP and {claim.coin_amount} coins!",
		data={"xp": claim.xp_amount, "coins": claim.coin_amount, "reason": claim.reason},
	)
	return result


router.add_api_route(
	"/award-rewards",
	create_handler(
		award_rewards_endpoint,
		middleware=[require_method("POST"), *with_body_validation(AwardRewardsRequest)],
		cors=CORS_HEADERS,
	),
	methods=ALL_METHODS,
)
