import base64
import binascii
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel

from quant_ninja.Oracle.groq_oracle import GroqOracle, OracleUnavailableError, get_oracle
from quant_ninja.Oracle.parsing import parse_observations
from quant_ninja.Services.settlement import SettlementReport, SettlementRunner
from .models import Bet, BetStatus, BookExposure, FinancialSnapshot, RawObservation
from .service import LedgerService, get_ledger_service

router = APIRouter(prefix="/ledger", tags=["Ledger"])


def get_service():
    return get_ledger_service()


def get_oracle_or_503():
    try:
        return get_oracle()
    except OracleUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))


class AdmitResponse(BaseModel):
    accepted: int
    rejected: int = 0
    valid: bool = True


class ScanRequest(BaseModel):
    image: str  # base64, optionally a data: URL


@router.get("/bets", response_model=list[Bet])
def list_bets(status: Optional[BetStatus] = None, service: LedgerService = Depends(get_service)):
    return service.bets(status)


@router.get("/metrics", response_model=FinancialSnapshot)
def get_metrics(service: LedgerService = Depends(get_service)):
    return service.metrics()


@router.get("/exposure", response_model=list[BookExposure])
def get_exposure(service: LedgerService = Depends(get_service)):
    """
    Trade count per tracked bookmaker.
    """
    return service.exposure()


@router.post("/admit", response_model=AdmitResponse)
def admit_candidates(records: list[Any] = Body(...), service: LedgerService = Depends(get_service)):
    """
    Admit raw `{event, market, odds, ev, bookie}` records.
    Malformed records are counted and dropped, never stored.
    """
    candidates, rejected = parse_observations(records)
    accepted = service.admit(candidates, source="manual")
    return AdmitResponse(accepted=accepted, rejected=rejected)


@router.post("/scan", response_model=AdmitResponse)
async def scan_screenshot(
    request: ScanRequest,
    service: LedgerService = Depends(get_service),
    oracle: GroqOracle = Depends(get_oracle_or_503),
):
    image = request.image
    payload = image.split(",", 1)[1] if image.startswith("data:") else image
    try:
        base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="Image must be base64 encoded")

    result = await oracle.extract_candidates(image)
    if not result.valid:
        return AdmitResponse(accepted=0, rejected=result.rejected, valid=False)

    accepted = service.admit(result.candidates, source="scan")
    return AdmitResponse(accepted=accepted, rejected=result.rejected)


@router.get("/discover", response_model=list[RawObservation])
async def discover_from_web(oracle: GroqOracle = Depends(get_oracle_or_503)):
    """
    Web sweep without placing anything. The client picks lines and
    sends them back through /admit.
    """
    return await oracle.search_candidates()


@router.post("/sync", response_model=AdmitResponse)
async def sync_from_web(
    service: LedgerService = Depends(get_service),
    oracle: GroqOracle = Depends(get_oracle_or_503),
):
    candidates = await oracle.search_candidates()
    accepted = service.admit(candidates, source="web")
    return AdmitResponse(accepted=accepted)


@router.post("/settle", response_model=SettlementReport)
async def settle_pending(
    service: LedgerService = Depends(get_service),
    oracle: GroqOracle = Depends(get_oracle_or_503),
):
    """
    One verification pass over the oldest pending positions.
    """
    return await service.settle_pending(SettlementRunner(oracle))


@router.delete("/bets/{bet_id}")
def delete_bet(bet_id: str, service: LedgerService = Depends(get_service)):
    if not service.remove(bet_id):
        raise HTTPException(status_code=404, detail=f"Position {bet_id} not found")
    return {"status": "success", "removed": bet_id}


@router.post("/reset")
def reset_ledger(service: LedgerService = Depends(get_service)):
    # Note: wipes the persisted snapshot as well as the session.
    service.reset()
    return {"status": "success"}
