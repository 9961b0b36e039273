import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from atsscanner.db.session import get_db
from atsscanner.db.models.user import User
from atsscanner.core.network import get_client_ip
from atsscanner.core.security import hash_password, verify_password, create_access_token
from atsscanner.schemas.auth import SignupRequest, SignupResponse, TokenResponse
from atsscanner.services.profile_service import record_login_attempt

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/signup", response_model=SignupResponse)
def signup(body: SignupRequest, db: Session = Depends(get_db)):
    email = body.email.strip().lower()
    existing_user = db.query(User).filter(User.email == email).first()
    if existing_user:
        raise HTTPException(status_code=400, detail="Email already registered")

    user = User(
        username=body.username,
        email=email,
        password_hash=hash_password(body.password),
    )

    db.add(user)
    db.commit()
    db.refresh(user)

    return {
        "message": "User created successfully",
        "user_id": user.id
    }


@router.post("/login", response_model=TokenResponse)
def login(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    # OAuth2 form sends "username", but we treat it as email
    user = db.query(User).filter(User.email == form_data.username.strip().lower()).first()

    if not user:
        logger.warning(f"Login failed for unknown email: ip={get_client_ip(request)}")
        raise HTTPException(status_code=401, detail="Invalid credentials")

    is_successful = verify_password(form_data.password, user.password_hash)
    record_login_attempt(
        db,
        user,
        get_client_ip(request),
        request.headers.get("User-Agent"),
        is_successful
    )
    if not is_successful:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = create_access_token({"sub": user.email})

    return {
        "access_token": token,
        "token_type": "bearer"
    }
