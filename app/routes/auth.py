from fastapi import APIRouter, Depends
from app.dependencies.auth import current_session, get_session_store
from app.schemas.auth import LoginRequest, Session, SessionResponse, SignupRequest
from app.services.session_store import SessionStore

router = APIRouter()


@router.post("/login", response_model=SessionResponse)
async def login(payload: LoginRequest, store: SessionStore = Depends(get_session_store)):
    session = await store.login(payload.email, payload.password)
    return SessionResponse.from_session(session)


@router.post("/signup", response_model=SessionResponse, status_code=201)
async def signup(payload: SignupRequest, store: SessionStore = Depends(get_session_store)):
    session = await store.signup(payload.email, payload.password, payload.name)
    return SessionResponse.from_session(session)


@router.post("/logout")
async def logout(store: SessionStore = Depends(get_session_store)):
    await store.logout()
    return {"message": "Logged out"}


@router.get("/me", response_model=SessionResponse)
def get_me(session: Session = Depends(current_session)):
    return SessionResponse.from_session(session)
