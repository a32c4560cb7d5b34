# linkedbud/routers/analytics.py
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from linkedbud.auth.session import get_current_user_id
from linkedbud.deps import get_db
from linkedbud.services import analytics

router = APIRouter(prefix="/api/analytics", tags=["analytics"])

@router.get("")
def get_analytics(
    period: str = "30d",
    context: str = "all",
    sort_column: str = Query("impressions", alias="sortColumn"),
    sort_direction: str = Query("desc", alias="sortDirection"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return analytics.aggregate(
        db, user_id,
        period=period,
        context=context,
        sort_column=sort_column,
        sort_direction=sort_direction,
        start_date=start_date,
        end_date=end_date,
    )
