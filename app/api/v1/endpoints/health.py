# app/api/v1/endpoints/health.py
from fastapi import APIRouter

from app.scheduler import get_scheduler_status

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok", "scheduler": get_scheduler_status()}
