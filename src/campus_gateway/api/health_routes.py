from fastapi import APIRouter, Depends

from ..config import Settings
from .dependencies import get_settings

router = APIRouter(tags=["health"])

@router.get("/health")
def health(config: Settings = Depends(get_settings)):
    return {"status": "ok", "primary_server": config.primary_server}
