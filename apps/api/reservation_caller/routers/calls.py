"""Call management endpoints for operators and the approval channel."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ..core.errors import CallEngineError, CallNotFoundError, InvalidDecisionError, OutboundCallError
from ..dependencies import get_call_service
from ..schemas import calls as schemas
from ..services.calls import CallService, StartCallResult

router = APIRouter()


def _http_error(exc: CallEngineError) -> HTTPException:
    """Translate engine errors into HTTP responses."""

    if isinstance(exc, CallNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, OutboundCallError):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": str(exc), "call_id": exc.call_id},
        )
    if isinstance(exc, InvalidDecisionError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _start_response(result: StartCallResult, response: Response) -> schemas.StartCallResponse:
    if result.idempotent:
        response.status_code = status.HTTP_200_OK
        message = "Call already exists for this request id"
    elif result.simulated:
        response.status_code = status.HTTP_202_ACCEPTED
        message = "Call queued (simulation mode)"
    else:
        response.status_code = status.HTTP_202_ACCEPTED
        message = "Call queued"
    return schemas.StartCallResponse(
        message=message,
        call_id=result.call.id,
        status=result.call.status,
        simulated=result.simulated,
        idempotent=result.idempotent,
        telephony_ref=result.session_ref,
    )


@router.get("/calls", response_model=schemas.CallListResponse)
async def list_calls(service: CallService = Depends(get_call_service)) -> schemas.CallListResponse:
    """Fail stale calls, then return every call newest first."""

    stale_sweep = await service.sweep()
    return schemas.CallListResponse(calls=await service.list_calls(), stale_sweep=stale_sweep)


@router.post("/calls/start", response_model=schemas.StartCallResponse)
async def start_call(
    payload: schemas.ReservationRequest,
    response: Response,
    service: CallService = Depends(get_call_service),
) -> schemas.StartCallResponse:
    """Create a reservation call and dial the business."""

    await service.sweep()
    try:
        result = await service.start_call(payload)
    except CallEngineError as exc:
        raise _http_error(exc) from exc
    return _start_response(result, response)


@router.post("/calls/start-personal", response_model=schemas.StartCallResponse)
async def start_personal_call(
    payload: schemas.PersonalCallRequest,
    response: Response,
    service: CallService = Depends(get_call_service),
) -> schemas.StartCallResponse:
    """Place a scripted personal call whose answer is relayed to the operator."""

    await service.sweep()
    try:
        result = await service.start_personal_call(payload)
    except CallEngineError as exc:
        raise _http_error(exc) from exc
    return _start_response(result, response)


@router.post("/calls/timeout-sweep", response_model=schemas.SweepResult)
async def timeout_sweep(service: CallService = Depends(get_call_service)) -> schemas.SweepResult:
    return await service.sweep()


@router.get("/calls/{call_id}", response_model=schemas.CallResponse)
async def get_call(call_id: str, service: CallService = Depends(get_call_service)) -> schemas.CallResponse:
    try:
        call = await service.get_call(call_id)
    except CallEngineError as exc:
        raise _http_error(exc) from exc
    return schemas.CallResponse(call=call)


@router.post("/calls/{call_id}/decision", response_model=schemas.CallResponse)
async def apply_decision(
    call_id: str,
    payload: schemas.DecisionRequest,
    service: CallService = Depends(get_call_service),
) -> schemas.CallResponse:
    """Apply an approve, revise or cancel decision."""

    try:
        call = await service.apply_decision(call_id, payload.decision, payload.notes)
    except CallEngineError as exc:
        raise _http_error(exc) from exc
    return schemas.CallResponse(call=call)


@router.post("/calls/{call_id}/recall", response_model=schemas.RecallResponse)
async def recall(
    call_id: str,
    payload: schemas.RecallRequest,
    service: CallService = Depends(get_call_service),
) -> schemas.RecallResponse:
    """Merge revised terms and dial the business again."""

    patch = schemas.ReservationPatch(
        date=payload.date,
        time_preferred=payload.time_preferred,
        party_size=payload.party_size,
    )
    try:
        result = await service.run_recall(call_id, patch, payload.notes)
    except CallEngineError as exc:
        raise _http_error(exc) from exc
    return schemas.RecallResponse(simulated=result.simulated, call=result.call, telephony_ref=result.session_ref)


@router.post("/calls/{call_id}/proposed-outcome", response_model=schemas.CallResponse)
async def propose_outcome(
    call_id: str,
    payload: schemas.ProposedOutcomeRequest,
    service: CallService = Depends(get_call_service),
) -> schemas.CallResponse:
    """Record a proposed outcome from a free-text note."""

    try:
        call = await service.propose_outcome(call_id, payload.note)
    except CallEngineError as exc:
        raise _http_error(exc) from exc
    return schemas.CallResponse(call=call)


@router.post("/operator/decision", response_model=schemas.CallResponse)
async def operator_decision(
    payload: schemas.OperatorDecisionRequest,
    service: CallService = Depends(get_call_service),
) -> schemas.CallResponse:
    """Decision callback from the approval channel."""

    try:
        call = await service.apply_decision(payload.call_id, payload.decision, payload.notes)
    except CallEngineError as exc:
        raise _http_error(exc) from exc
    return schemas.CallResponse(call=call)
