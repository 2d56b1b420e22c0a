"""FastAPI dependencies for lesson authorization.

Services are built once in the application lifespan and stored on
``app.state``; these getters hand them to the routes.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .chain import AutoChainTrigger
from .evaluator import AuthorizationEvaluator
from .grants import GrantService
from .workflow import RequestWorkflow


def _from_state(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Servico de autorizacao nao disponivel",
        )
    return service


async def get_evaluator(request: Request) -> AuthorizationEvaluator:
    return _from_state(request, "authorization_evaluator")


async def get_workflow(request: Request) -> RequestWorkflow:
    return _from_state(request, "request_workflow")


async def get_grant_service(request: Request) -> GrantService:
    return _from_state(request, "grant_service")


async def get_auto_chain(request: Request) -> AutoChainTrigger | None:
    """The auto-chain is optional; completions work without it."""
    return getattr(request.app.state, "auto_chain", None)


# Type aliases for dependency injection
EvaluatorDep = Annotated[AuthorizationEvaluator, Depends(get_evaluator)]
WorkflowDep = Annotated[RequestWorkflow, Depends(get_workflow)]
GrantServiceDep = Annotated[GrantService, Depends(get_grant_service)]
AutoChainDep = Annotated[AutoChainTrigger | None, Depends(get_auto_chain)]
