"""FastAPI dependencies for progress tracking."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import ProgressAggregator


async def get_progress_aggregator(request: Request) -> ProgressAggregator:
    """Get progress aggregator from app state.

    Raises:
        HTTPException(503): If the service was not initialized
    """
    app_state = request.app.state
    aggregator = getattr(app_state, "progress_aggregator", None)
    if aggregator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Servico de progresso nao disponivel",
        )
    return aggregator


# Type alias for dependency injection
ProgressAggregatorDep = Annotated[ProgressAggregator, Depends(get_progress_aggregator)]
