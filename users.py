import logging
from datetime import timedelta
from typing import Optional

from fastapi import HTTPException

import config
from database import create_document, db, to_object_id, utcnow
from lockout import LockoutState
from schemas import AdminUserUpdate, AuditLog, RegisterInput, User, UserUpdate
from security import create_access_token, hash_password, public_user, verify_password

logger = logging.getLogger(__name__)


def _get_user_doc(user_id: str, not_found: str = "User not found") -> dict:
    user = db["user"].find_one({"_id": to_object_id(user_id, "user ID")})
    if not user:
        raise HTTPException(status_code=404, detail=not_found)
    return user


def _record_audit(user_id: str, action: str, admin_user_id: Optional[str] = None, **fields):
    entry = AuditLog(user_id=user_id, action=action, timestamp=utcnow(), admin_user_id=admin_user_id, **fields)
    db["audit_log"].insert_one(entry.model_dump())
    logger.info("Audit %s on user %s by %s", action, user_id, admin_user_id)


def _save_lockout(user_id, state: LockoutState):
    db["user"].update_one({"_id": user_id}, {"$set": {"lockout": state.model_dump(), "updated_at": utcnow()}})


def register_user(payload: RegisterInput) -> dict:
    email = payload.email.lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="Email already exists")
    if db["user"].find_one({"username": payload.username}):
        raise HTTPException(status_code=400, detail="Username already exists")
    user = User(
        username=payload.username,
        email=email,
        password_hash=hash_password(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
        address=payload.address,
        phone_number=payload.phone_number,
    )
    user_id = create_document("user", user)
    logger.info("Registered user %s (%s)", user_id, payload.username)
    return public_user(db["user"].find_one({"_id": to_object_id(user_id)}))


def login_user(email: str, password: str) -> dict:
    """
    Check credentials against the lockout state.

    Order of checks: permanent lock, unexpired temporary lock, stale counter
    reset, password. The new lockout state is written once per attempt.
    """
    user = db["user"].find_one({"email": email.lower()})
    if not user:
        # Keep message generic for security
        raise HTTPException(status_code=401, detail="Invalid credentials")

    now = utcnow()
    state = LockoutState.from_user(user)
    status = state.status(now)
    if status == "permanently_locked":
        raise HTTPException(
            status_code=403,
            detail="Account locked permanently. Please contact admin to unlock your account.",
        )
    if status == "temporarily_locked":
        raise HTTPException(
            status_code=423,
            detail=f"Account locked temporarily. Please try again in {state.remaining_lock_minutes(now)} minutes.",
        )

    if state.is_stale(now, timedelta(minutes=config.FAILED_ATTEMPT_RESET_MINUTES)):
        state = state.cleared()

    if not verify_password(password, user.get("password_hash", "")):
        state = state.register_failure(
            now, config.MAX_LOGIN_ATTEMPTS, timedelta(minutes=config.TEMPORARY_LOCK_MINUTES)
        )
        _save_lockout(user["_id"], state)
        if state.permanently_locked:
            logger.warning("User %s permanently locked after repeated failed logins", user["_id"])
            raise HTTPException(
                status_code=403,
                detail="You have failed too many times. Your account has been permanently locked. "
                       "Please contact admin to unlock your account.",
            )
        if state.status(now) == "temporarily_locked":
            logger.warning("User %s temporarily locked until %s", user["_id"], state.lock_until)
            raise HTTPException(
                status_code=423,
                detail="Account locked temporarily due to too many failed login attempts. "
                       f"Try again in {config.TEMPORARY_LOCK_MINUTES} minutes.",
            )
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if not LockoutState.from_user(user).is_clear():
        _save_lockout(user["_id"], LockoutState())

    token = create_access_token({"sub": str(user["_id"]), "is_admin": bool(user.get("is_admin"))})
    return {"token": token, "user": public_user(user)}


def list_users() -> list:
    return [public_user(u) for u in db["user"].find({}).sort("created_at", 1)]


def get_user(user_id: str) -> dict:
    return public_user(_get_user_doc(user_id))


def _apply_profile_update(user_id: str, update: dict) -> dict:
    oid = to_object_id(user_id, "user ID")
    if update.get("email"):
        update["email"] = update["email"].lower()
        existing = db["user"].find_one({"email": update["email"]})
        if existing and existing["_id"] != oid:
            raise HTTPException(status_code=400, detail="Email is already taken")
    if update.get("password"):
        update["password_hash"] = hash_password(update.pop("password"))
    else:
        update.pop("password", None)
    update["updated_at"] = utcnow()
    res = db["user"].update_one({"_id": oid}, {"$set": update})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    return public_user(db["user"].find_one({"_id": oid}))


def update_user(user_id: str, payload: UserUpdate) -> dict:
    """Profile update by the user; username and admin flag stay untouched."""
    update = payload.model_dump(exclude_unset=True, exclude_none=True)
    return _apply_profile_update(user_id, update)


def admin_update_user(user_id: str, payload: AdminUserUpdate, admin_user_id: str) -> dict:
    update = payload.model_dump(exclude_unset=True, exclude_none=True)
    logged_fields = {k: v for k, v in update.items() if k != "password"}
    if "password" in update:
        logged_fields["password_changed"] = True
    updated = _apply_profile_update(user_id, update)
    _record_audit(user_id, "ADMIN_USER_UPDATE", admin_user_id, updated_fields=logged_fields)
    return updated


def admin_change_username(user_id: str, new_username: str, admin_user_id: str, reason: str) -> dict:
    if not new_username.strip():
        raise HTTPException(status_code=400, detail="New username cannot be empty")
    if not reason.strip():
        raise HTTPException(status_code=400, detail="Reason for change is required")
    user = _get_user_doc(user_id)
    existing = db["user"].find_one({"username": new_username})
    if existing and existing["_id"] != user["_id"]:
        raise HTTPException(status_code=400, detail="Username is already taken")
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"username": new_username, "updated_at": utcnow()}})
    _record_audit(user_id, "USERNAME_CHANGE", admin_user_id, new_username=new_username, reason=reason)
    return public_user(db["user"].find_one({"_id": user["_id"]}))


def delete_user(user_id: str, admin_user_id: str) -> dict:
    user = _get_user_doc(user_id)
    db["user"].delete_one({"_id": user["_id"]})
    _record_audit(user_id, "USER_DELETE", admin_user_id)
    return public_user(user)


def unlock_user_account(user_id: str, admin_user_id: str, reason: Optional[str] = None) -> dict:
    """Clear every lockout field, the only way out of a permanent lock."""
    user = _get_user_doc(user_id, not_found="User to unlock not found.")
    _save_lockout(user["_id"], LockoutState())
    _record_audit(
        user_id,
        "ACCOUNT_UNLOCK",
        admin_user_id,
        reason=reason,
        description=f"Account unlocked by admin. Reason: {reason or 'No reason provided.'}",
    )
    return public_user(db["user"].find_one({"_id": user["_id"]}))
