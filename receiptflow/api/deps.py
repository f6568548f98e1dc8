"""Request dependencies."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from receiptflow.services.runtime import Runtime


def get_runtime(request: Request) -> Runtime:
    """Return the component graph built during application startup."""
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting up",
        )
    return runtime


RuntimeDep = Annotated[Runtime, Depends(get_runtime)]
