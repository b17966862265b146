from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from stocksense.dependencies import get_db, get_services, require_company, require_operator
from stocksense.routers.errors import service_errors
from stocksense.schemas.rfid import EntryModeUpdate
from stocksense.schemas.voice import VoiceCommandRequest
from stocksense.services.container import InventoryServices
from stocksense.services.product_service import home_summary

router = APIRouter(prefix="/inventory", tags=["Inventory"])


@router.get("/home")
def get_home(
    db: Session = Depends(get_db),
    company_id: int = Depends(require_company),
    services: InventoryServices = Depends(get_services),
):
    with service_errors():
        return home_summary(db, company_id, window_days=services.settings.EXPIRING_WINDOW_DAYS)


@router.patch("/rfid-mode")
def set_rfid_mode(
    payload: EntryModeUpdate,
    services: InventoryServices = Depends(get_services),
    _auth=Depends(require_operator),
):
    if payload.entry_mode is None:
        raise HTTPException(status_code=400, detail="The 'entry_mode' field is required")
    services.entry_mode.set(payload.entry_mode)
    return {
        "message": "Entry mode enabled" if payload.entry_mode else "Entry mode disabled",
        "entry_mode": payload.entry_mode,
    }


@router.get("/rfid-mode")
def get_rfid_mode(
    services: InventoryServices = Depends(get_services),
    _auth=Depends(require_operator),
):
    return {"entry_mode": services.entry_mode.get()}


@router.post("/voice-command")
def voice_command(
    payload: VoiceCommandRequest,
    db: Session = Depends(get_db),
    company_id: int = Depends(require_company),
    services: InventoryServices = Depends(get_services),
):
    with service_errors():
        return services.voice.handle(db, company_id, payload.command)
