import logging
from datetime import timedelta
from typing import Optional

import bcrypt
import jwt
from bson.objectid import ObjectId
from email_validator import EmailNotValidError, validate_email
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from config import Settings
from database import create_document, now, serialize_doc
from schemas import User as UserSchema

logger = logging.getLogger(__name__)

JWT_ALGO = "HS256"
# bcrypt ignores everything past this many bytes
MAX_PASSWORD_BYTES = 72
PROFILE_FIELDS = ("name", "bio", "profileImage", "phoneNumber", "gender", "dateOfBirth")

security = HTTPBearer(auto_error=False)


# ----------------------- Models -----------------------
class SignupBody(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginBody(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ProfileUpdateBody(BaseModel):
    name: Optional[str] = None
    bio: Optional[str] = None
    profileImage: Optional[str] = None
    phoneNumber: Optional[str] = None
    gender: Optional[str] = None
    dateOfBirth: Optional[str] = None


# ----------------------- Utils -----------------------
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def normalize_name(name: Optional[str]) -> str:
    """Trim, collapse inner whitespace and capitalize every word."""
    words = (name or "").split()
    return " ".join(w[:1].upper() + w[1:].lower() for w in words)


def hash_password(password: str, rounds: int) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        return False


def create_token(user: dict, settings: Settings) -> str:
    issued = now()
    claims = {
        "userId": str(user["_id"]),
        "email": user["email"],
        "name": user.get("name", ""),
        "role": user.get("role", "user"),
        "iat": issued,
        "exp": issued + timedelta(days=settings.token_expire_days),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=JWT_ALGO)


def decode_token(token: str, secret: str) -> dict:
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGO],
            options={"require": ["exp", "userId", "role"]},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def public_user(doc: dict) -> dict:
    user = serialize_doc(doc)
    user.pop("passwordHash", None)
    user.pop("cart", None)
    return user


def _session(user: dict, settings: Settings) -> dict:
    return {"token": create_token(user, settings), "user": public_user(user)}


# ----------------------- Access control -----------------------
def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
) -> dict:
    """Verify the bearer token and attach its claims to the request."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        claims = decode_token(credentials.credentials, settings.jwt_secret)
    except HTTPException as e:
        logger.warning("Rejected token on %s %s: %s", request.method, request.url.path, e.detail)
        raise
    request.state.user = claims
    return claims


def require_admin(request: Request, user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != "admin":
        logger.warning("Denied admin access to %s for %s", request.url.path, user.get("email"))
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def user_object_id(user: dict) -> ObjectId:
    user_id = user.get("userId")
    if not ObjectId.is_valid(user_id):
        raise HTTPException(status_code=401, detail="Invalid token payload")
    return ObjectId(user_id)


# ----------------------- Credential service -----------------------
def signup(db: Database, settings: Settings, body: SignupBody) -> dict:
    email = normalize_email(body.email)
    name = normalize_name(body.name)
    password = body.password or ""
    if not email or not name or not password:
        raise HTTPException(status_code=400, detail="Name, email and password are required")
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        raise HTTPException(status_code=400, detail="Invalid email address")
    if len(password.encode()) > MAX_PASSWORD_BYTES:
        raise HTTPException(status_code=400, detail="Password is too long")

    users = db["user"]
    if users.find_one({"email": email}):
        raise HTTPException(status_code=409, detail="Email already registered")
    user = UserSchema(
        name=name,
        email=email,
        passwordHash=hash_password(password, settings.bcrypt_rounds),
        role="user",
    )
    try:
        user_id = create_document(db, "user", user)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="Email already registered")

    logger.info("New user signed up: %s", email)
    return _session(users.find_one({"_id": ObjectId(user_id)}), settings)


def login(db: Database, settings: Settings, body: LoginBody) -> dict:
    email = normalize_email(body.email)
    if not email or not body.password:
        raise HTTPException(status_code=400, detail="Email and password are required")
    user = db["user"].find_one({"email": email})
    if not user or not verify_password(body.password, user.get("passwordHash", "")):
        logger.warning("Failed login for %s", email)
        raise HTTPException(status_code=401, detail="Invalid email or password")
    logger.info("User logged in: %s", email)
    return _session(user, settings)


def get_profile(db: Database, user_id: ObjectId) -> dict:
    user = db["user"].find_one({"_id": user_id})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return public_user(user)


def update_profile(db: Database, settings: Settings, user_id: ObjectId, body: ProfileUpdateBody) -> dict:
    update = {k: v for k, v in body.model_dump(exclude_none=True).items() if k in PROFILE_FIELDS}
    if "name" in update:
        update["name"] = normalize_name(update["name"])
        if not update["name"]:
            raise HTTPException(status_code=400, detail="Name cannot be empty")
    if not update:
        raise HTTPException(status_code=400, detail="No profile fields to update")
    update["updatedAt"] = now()
    user = db["user"].find_one_and_update(
        {"_id": user_id},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return _session(user, settings)


def ensure_admin(db: Database, settings: Settings):
    """Create or promote the configured bootstrap admin account."""
    email = normalize_email(settings.admin_email)
    if not email or not settings.admin_password:
        return
    users = db["user"]
    existing = users.find_one({"email": email})
    if existing:
        if existing.get("role") != "admin":
            users.update_one({"_id": existing["_id"]}, {"$set": {"role": "admin", "updatedAt": now()}})
            logger.info("Promoted %s to admin", email)
        return
    admin = UserSchema(
        name="Admin",
        email=email,
        passwordHash=hash_password(settings.admin_password, settings.bcrypt_rounds),
        role="admin",
    )
    create_document(db, "user", admin)
    logger.info("Created bootstrap admin %s", email)
