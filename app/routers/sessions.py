from typing import Optional
from fastapi import APIRouter, Depends
from app.core.sessions import SessionStore, get_session_store
from app.schemas.schemas import SessionCreate, SessionResponse

router = APIRouter(prefix="/v1/sessions", tags=["Sessions"])


@router.post("", status_code=201, response_model=SessionResponse)
async def create_session(payload: Optional[SessionCreate] = None,
                         store: SessionStore = Depends(get_session_store)):
    """Start a payment session, seeded with the demo instruments unless told otherwise."""
    seed = payload.seed_instruments if payload else None
    session = store.create(seed_instruments=seed)
    return session.snapshot()


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, store: SessionStore = Depends(get_session_store)):
    return store.get(session_id).snapshot()


@router.delete("/{session_id}", status_code=204)
async def end_session(session_id: str, store: SessionStore = Depends(get_session_store)):
    store.end(session_id)
