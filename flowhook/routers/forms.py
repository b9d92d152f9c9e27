from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from flowhook.dependencies import get_resolver
from flowhook.schemas.webhook import FormDecisionRequest, FormDecisionResponse
from flowhook.services.result import ErrorCode
from flowhook.services.waiting_service import WaitingStateResolver

router = APIRouter(prefix="/forms", tags=["forms"])


@router.post("/{form_instance_id}/decision", response_model=FormDecisionResponse)
async def decide_form(
    form_instance_id: UUID,
    request: FormDecisionRequest,
    resolver: WaitingStateResolver = Depends(get_resolver),
):
    """Record an approval decision and resume the workflow waiting on it."""
    result = await resolver.continue_after_form_approval(form_instance_id, request.status, request.decided_by)

    if not result.ok:
        await resolver.store.rollback()
        if result.error_code in {ErrorCode.FORM_NOT_FOUND, ErrorCode.EXECUTION_NOT_FOUND}:
            raise HTTPException(status_code=404, detail=result.error)
        if result.error_code == ErrorCode.ENGINE_ERROR:
            raise HTTPException(status_code=502, detail=result.error)
        if result.error_code == ErrorCode.NOT_WAITING:
            return FormDecisionResponse(
                success=False,
                form_instance_id=form_instance_id,
                execution_id=result.value,
                message=result.error,
            )
        raise HTTPException(status_code=400, detail=result.error)

    await resolver.store.commit()
    return FormDecisionResponse(
        success=True,
        form_instance_id=form_instance_id,
        execution_id=result.value,
        message=f"Form {request.status.lower()}",
    )
