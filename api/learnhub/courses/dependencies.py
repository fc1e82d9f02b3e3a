"""FastAPI dependencies for course management."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from learnhub.courses.service import CourseService


async def get_course_service(request: Request) -> CourseService:
    """Course service installed on app state by the lifespan."""
    service = getattr(request.app.state, "course_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Course service not available",
        )
    return service


CourseServiceDep = Annotated[CourseService, Depends(get_course_service)]
