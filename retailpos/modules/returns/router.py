from fastapi import APIRouter, Depends, Query, status
from uuid import UUID
from typing import Optional
from sqlalchemy.orm import Session

from retailpos.core.config import settings
from retailpos.dependencies.dbDependencies import get_db
from retailpos.dependencies.actorDependencies import get_actor
from retailpos.common.schemas import Actor
from retailpos.modules.returns.service import ReturnService
from retailpos.modules.returns.models import ReturnType
from retailpos.modules.returns.schemas import ReturnCreate, ReturnOut, ReturnList

returns_router = APIRouter(prefix="/returns", tags=["Returns"])


@returns_router.get("/", response_model=ReturnList)
def list_returns(
    return_type: Optional[ReturnType] = Query(None),
    product_id: Optional[UUID] = Query(None),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    returns, total = ReturnService(db).list_returns(return_type, product_id, limit, offset)
    return ReturnList(returns=[ReturnOut.model_validate(r) for r in returns], total=total)


@returns_router.post("/", response_model=ReturnOut, status_code=status.HTTP_201_CREATED)
def create_return(
    data: ReturnCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Process a customer or supplier return."""
    return ReturnService(db).process_return(data, actor)
