from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from ..core.security import decode_token
from ..db.mongo import db
from ..services.access import Actor, Admin, Manager, actor_from_user

bearer = HTTPBearer()

async def get_current_user(creds: HTTPAuthorizationCredentials = Depends(bearer)):
    token = creds.credentials
    try:
        payload = decode_token(token)
        user_id = payload.get("sub")
        if not user_id:
            raise ValueError("no sub")
    except Exception:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = await db()["users"].find_one({"user_id": user_id}, {"_id": 0})
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user

async def get_actor(user=Depends(get_current_user)) -> Actor:
    """The caller as an access-control actor (Admin, Manager or Employee)."""
    return actor_from_user(user)

async def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    if not isinstance(actor, Admin):
        raise HTTPException(status_code=403, detail="Admin access required")
    return actor

async def require_manager(actor: Actor = Depends(get_actor)) -> Actor:
    if not isinstance(actor, (Admin, Manager)):
        raise HTTPException(status_code=403, detail="Manager access required")
    return actor
