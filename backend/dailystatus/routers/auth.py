from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, EmailStr, Field
from datetime import datetime, timezone
from ..db.mongo import db
from ..core.security import verify_password, create_access_token, hash_password
from ..dependencies.auth import get_current_user

router = APIRouter(prefix="/auth", tags=["auth"])

class LoginBody(BaseModel):
    email: EmailStr
    password: str

class ChangePasswordBody(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6)

def public_user(user: dict) -> dict:
    return {
        "user_id": user["user_id"],
        "name": user.get("name"),
        "email": user.get("email", ""),
        "role": user.get("role", "employee"),
        "teams": user.get("teams", []),
        "projects": user.get("projects", []),
        "created_at": user.get("created_at"),
        "last_login_at": user.get("last_login_at"),
    }

@router.post("/login")
async def login(body: LoginBody):
    email = body.email.lower().strip()
    user = await db()["users"].find_one({"email": email})
    if not user or not verify_password(body.password, user.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Invalid email/password")

    await db()["users"].update_one(
        {"user_id": user["user_id"]},
        {"$set": {"last_login_at": datetime.now(timezone.utc)}}
    )

    token = create_access_token({"sub": user["user_id"], "role": user.get("role", "employee")})
    return {"access_token": token, "token_type": "bearer", "user": public_user(user)}

@router.get("/me")
async def me(user=Depends(get_current_user)):
    return public_user(user)

@router.post("/change-password")
async def change_password(body: ChangePasswordBody, user=Depends(get_current_user)):
    if not verify_password(body.current_password, user.get("password_hash", "")):
        raise HTTPException(status_code=400, detail="Wrong current password")

    await db()["users"].update_one(
        {"user_id": user["user_id"]},
        {
            "$set": {
                "password_hash": hash_password(body.new_password),
                "updated_at": datetime.now(timezone.utc),
            }
        }
    )
    return {"message": "Password updated"}
