"""Participant-facing assessment endpoints: session loading, registration, submission."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool

from .config import Settings, get_settings
from .session_access import RegistrationRequest, load_session, register_participant
from .submission_service import SubmitRequest, submit_assessment


router = APIRouter(prefix="/api/assessments", tags=["assessments"])


@router.get("/session")
def get_session(
    token: Optional[str] = Query(default=None),
    group: bool = Query(default=False),
) -> Dict[str, Any]:
    return load_session(token, is_group_link=group)


@router.post("/register")
def register(payload: RegistrationRequest) -> Dict[str, Any]:
    return register_participant(payload)


@router.post("/submit")
async def submit(payload: SubmitRequest, settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    # The narrative call blocks on the text-generation service; keep it off the event loop.
    result = await run_in_threadpool(submit_assessment, payload, settings=settings)
    return result.model_dump(mode="json", by_alias=True)


__all__ = ["router"]
