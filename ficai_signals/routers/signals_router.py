from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ficai_signals import signals
from ficai_signals.auth import Identity
from ficai_signals.database import get_db
from ficai_signals.dependencies import get_current_account, get_optional_account
from ficai_signals.schemas import EmptyResponse, PatchSignalsRequest, SignalsResponse, TagSignalsResponse

router = APIRouter(prefix="/v1", tags=["signals"])


@router.get("/signals", response_model=SignalsResponse)
def get_signals(
    url: str = Query(..., min_length=1),
    identity: Optional[Identity] = Depends(get_optional_account),
    db: Session = Depends(get_db),
):
    """
    Aggregated signals for a document. Logged in callers also get their
    own vote per tag in mySignal.
    """
    account_id = identity.account_id if identity else None
    tags = signals.aggregate_signals(db, url, account_id)
    return SignalsResponse(tags=[TagSignalsResponse.model_validate(t) for t in tags])


@router.patch("/signals", response_model=EmptyResponse)
def patch_signals(
    request: PatchSignalsRequest,
    identity: Identity = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    """
    Vote for (add), against (rm) or withdraw votes on (erase) tags.
    """
    signals.patch_signals(
        db, identity.account_id, request.url,
        add=request.add, rm=request.rm, erase=request.erase,
    )
    return EmptyResponse()
