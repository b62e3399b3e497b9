import re

from fastapi import APIRouter, Depends, HTTPException, Form
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.achievements.service import AchievementService
from app.auth.models import User
from app.core.deps import get_achievement_service
from app.core.security import hash_password, verify_password, create_access_token, ACCESS_TOKEN_EXPIRE_MINUTES
from app.db.session import get_db

router = APIRouter(prefix="/auth", tags=["auth"])

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6


def _token_response(user: User, status_code: int = 200) -> JSONResponse:
    token = create_access_token(user.id)
    response = JSONResponse(
        status_code=status_code,
        content={"access_token": token, "user": {"id": user.id, "email": user.email, "name": user.name}},
    )
    response.set_cookie(
        "access_token",
        token,
        httponly=True,
        samesite="lax",
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        path="/",
    )
    return response


# =========================
# SIGNUP
# =========================
@router.post("/signup")
def signup(
    email: str = Form(...),
    name: str = Form(...),
    password: str = Form(...),
    db: Session = Depends(get_db),
    achievements: AchievementService = Depends(get_achievement_service),
):
    email = email.strip().lower()
    if not EMAIL_RE.match(email):
        raise HTTPException(status_code=400, detail="Please enter a valid email address")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if not name.strip():
        raise HTTPException(status_code=400, detail="Please enter a valid name")

    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=400, detail="An account with this email already exists")

    user = User(
        email=email,
        name=name.strip(),
        password_hash=hash_password(password),
    )

    db.add(user)
    db.commit()
    db.refresh(user)
    print(f"[AUTH] signup user={user.id}", flush=True)

    achievements.create_initial_achievements(user.id)
    return _token_response(user, status_code=201)


# =========================
# LOGIN
# =========================
@router.post("/login")
def login(
    email: str = Form(...),
    password: str = Form(...),
    db: Session = Depends(get_db),
):
    user = db.query(User).filter(User.email == email.strip().lower()).first()

    if not user or not verify_password(password, user.password_hash):
        print("[AUTH] Invalid credentials for:", email, flush=True)
        raise HTTPException(status_code=401, detail="Invalid credentials")

    print(f"[AUTH] Login successful for user={user.id}", flush=True)
    return _token_response(user)


@router.post("/logout")
def logout():
    response = JSONResponse(content={"success": True})
    response.delete_cookie("access_token", path="/")
    return response
