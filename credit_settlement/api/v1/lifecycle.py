"""POST /v1/lifecycle/tick - run the repayment lifecycle sweep on demand"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session

from credit_settlement.api.dependencies import get_notification_dispatcher, get_request_id
from credit_settlement.api.v1.errors import to_http_exception
from credit_settlement.api.v1.notifications import event_to_response
from credit_settlement.api.v1.schemas import LifecycleTickResponse
from credit_settlement.domain.exceptions import DomainException
from credit_settlement.infrastructure.clients.notifications import NotificationDispatcher
from credit_settlement.infrastructure.database.session import get_db
from credit_settlement.services.lifecycle_tracker import LifecycleTracker
from credit_settlement.utils.date_utils import today

router = APIRouter()


@router.post("/lifecycle/tick", response_model=LifecycleTickResponse)
def run_lifecycle_tick(
    background_tasks: BackgroundTasks,
    request: Request,
    as_of: Optional[date] = Query(None, description="Sweep date, defaults to today"),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """
    Same pass as the background sweep.

    Returns only notifications emitted by this call; transitions already
    made by an earlier sweep are not repeated.
    """
    request_id = get_request_id(request)
    as_of = as_of or today()

    try:
        events = LifecycleTracker(db).tick(as_of)
    except DomainException as e:
        raise to_http_exception(e, request_id)

    if events:
        background_tasks.add_task(dispatcher.send_all, events)
    return LifecycleTickResponse(as_of=as_of, notifications=[event_to_response(e) for e in events])
