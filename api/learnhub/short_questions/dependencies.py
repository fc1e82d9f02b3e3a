"""FastAPI dependencies for short-answer questions."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import ShortQuestionService


async def get_short_question_service(request: Request) -> ShortQuestionService:
    """Get short question service from app state."""
    service = getattr(request.app.state, "short_question_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Short question service not available",
        )
    return service


ShortQuestionServiceDep = Annotated[
    ShortQuestionService, Depends(get_short_question_service)
]
