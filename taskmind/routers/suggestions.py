from fastapi import APIRouter, Depends, HTTPException, Request, status

from taskmind.config import settings
from taskmind.dependencies import get_current_user, get_llm_provider
from taskmind.models.user import User
from taskmind.schemas.suggestion import (
    SuggestionErrorResponse,
    SuggestionRequest,
    SuggestionResponse,
)
from taskmind.services.llm_provider import LLMProvider
from taskmind.services.suggestion_service import SuggestionQuotaExceeded, suggest_task

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post(
    "/suggest",
    response_model=SuggestionResponse,
    responses={502: {"model": SuggestionErrorResponse}, 503: {"model": SuggestionErrorResponse}},
)
async def suggest(
    data: SuggestionRequest,
    req: Request,
    user: User = Depends(get_current_user),
    provider: LLMProvider | None = Depends(get_llm_provider),
):
    """Break a task description into a title, subtasks, priority and estimate."""
    try:
        suggestion = await suggest_task(
            provider,
            data.task_description,
            user.id,
            redis_client=getattr(req.app.state, "redis", None),
            daily_limit=settings.AI_DAILY_LIMIT,
        )
    except SuggestionQuotaExceeded as e:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(e))

    return {"suggestions": suggestion.to_dict()}
