"""
API base information.

GET {API_BASE}
"""
from fastapi import APIRouter

from app.core.config import get_api_base

router = APIRouter()

API_VERSION = "1.0.0"


@router.get("")
async def api_info():
    return {"status": "ok", "base": get_api_base(), "version": API_VERSION}
