from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from linkedbud.deps import require_cron_secret
from linkedbud.services import scheduler

router = APIRouter(prefix="/api/scheduler", tags=["scheduler"], dependencies=[Depends(require_cron_secret)])

@router.post("/run")
def run_now() -> Dict[str, Any]:
    return scheduler.run_once()

@router.post("/start")
def start(cron: Optional[str] = None) -> Dict[str, Any]:
    # default: METRICS_CRON. Standard 5-field cron, UTC: m h dom mon dow
    return scheduler.start(cron)

@router.post("/stop")
def stop() -> Dict[str, Any]:
    return scheduler.stop()

@router.get("/status")
def status() -> Dict[str, Any]:
    return scheduler.status()
