from fastapi import APIRouter, Depends, Form, Request
from sqlalchemy.orm import Session

from bodyshop.auth_utils import authenticate_user
from bodyshop.database import get_db
from bodyshop.errors import BodyshopError
from bodyshop.models.user import User as UserSchema

router = APIRouter(tags=["auth"])


# --- ROUTE 1: LOGIN ---
@router.post("/login", name="login_process")
def login_process(
    request: Request,
    username: str = Form(...),
    password: str = Form(...),
    db: Session = Depends(get_db),
):
    """Checks the credentials and stores the staff user in the session."""
    user = authenticate_user(db, username, password)
    if user is None:
        raise BodyshopError("Invalid username or password", status_code=401)

    request.session["user"] = user.username
    return {"success": True, "user": UserSchema.model_validate(user)}


# --- ROUTE 2: LOGOUT ---
@router.post("/logout", name="logout")
def logout(request: Request):
    request.session.clear()
    return {"success": True}
