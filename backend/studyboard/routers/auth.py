from datetime import datetime, timedelta, timezone
from typing import Optional, Dict

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from jose import jwt
from passlib.context import CryptContext
from pydantic import BaseModel, Field
import logging
import uuid

from ..settings import settings
from sqlalchemy.orm import Session
from ..db import get_db
from ..deps import NO_STORE, get_identity_service, get_store
from ..identity import Forbidden, Identity, IdentityService, InvalidToken, Role, require_role
from ..models import AuthUser, AuthSession
from ..schemas import CamelModel
from ..store import RecordStore

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger(__name__)
logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
# auto_error off so a missing header gets our own 401 body
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)



class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class Me(CamelModel):
	id: str
	username: str
	role: Optional[Role] = None
	display_name: str = ""


_users: Dict[str, str] = {}


def _truncate_for_bcrypt(password: str) -> str:
	# bcrypt only looks at the first 72 bytes
	password_bytes = password.encode('utf-8')
	if len(password_bytes) > 72:
		password_bytes = password_bytes[:72]
	return password_bytes.decode('utf-8', errors='ignore')


def hash_password(password: str) -> str:
	return pwd_context.hash(_truncate_for_bcrypt(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	return pwd_context.verify(_truncate_for_bcrypt(plain_password), hashed_password)


def _ensure_seed_user(db: Session) -> None:
	username = settings.seed_username
	password = settings.seed_password_plain
	if not username or not password:
		return
	if username not in _users:
		_users[username] = hash_password(password)
	if db.get(AuthUser, username) is None:
		# The seed login always acts as a teacher
		store = RecordStore(db)
		user_id = store.create_profile(role=Role.TEACHER.value, display_name=username, commit=False)
		db.add(AuthUser(username=username, password_hash=_users[username], user_id=user_id))
		db.commit()
		logger.info("created seed teacher %s", username)


def authenticate_user(db: Session, username: str, password: str) -> Optional[AuthUser]:
	user_row = db.get(AuthUser, username)
	if user_row and verify_password(password, user_row.password_hash):
		return user_row
	# Fallback to seed in-memory user for dev convenience
	if username == settings.seed_username:
		_ensure_seed_user(db)
		hashed = _users.get(username)
		if hashed and verify_password(password, hashed):
			return db.get(AuthUser, username)
	return None


def _resolve_expiry(expires_delta: Optional[timedelta]) -> datetime:
	"""Return a safe JWT expiry timestamp.

	Uses the configured lifetime when no explicit delta is given, falling back
	to a generous but finite default.
	"""
	delta = expires_delta
	if delta is None:
		minutes = getattr(settings, "access_token_expire_minutes", None)
		if isinstance(minutes, int) and minutes > 0:
			delta = timedelta(minutes=minutes)
		else:
			delta = timedelta(days=30)
	now = datetime.now(timezone.utc)
	try:
		return now + delta
	except OverflowError:
		# Cap at far future but within datetime bounds
		return datetime.max.replace(tzinfo=timezone.utc)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	expire = _resolve_expiry(expires_delta)
	to_encode.update({"exp": expire})
	encoded_jwt = jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
	return encoded_jwt


def issue_token(db: Session, username: str) -> str:
	"""Create a session row and a token bound to it."""
	session_id = uuid.uuid4().hex
	access_token = create_access_token({"sub": username, "jti": session_id})
	db.merge(AuthSession(session_id=session_id, username=username))
	db.commit()
	return access_token


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	user = authenticate_user(db, form_data.username, form_data.password)
	if not user:
		raise HTTPException(status_code=401, detail="Incorrect username or password")
	return Token(access_token=issue_token(db, user.username))


def get_current_identity(
	token: Optional[str] = Depends(oauth2_scheme),
	identities: IdentityService = Depends(get_identity_service),
) -> Identity:
	if not token:
		raise HTTPException(status_code=401, detail="Missing bearer token", headers=NO_STORE)
	try:
		return identities.identify(token)
	except InvalidToken:
		raise HTTPException(status_code=401, detail="Invalid token", headers=NO_STORE)


def _guard(identity: Identity, role: Role) -> Identity:
	try:
		return require_role(identity, role)
	except Forbidden:
		raise HTTPException(status_code=403, detail="Forbidden", headers=NO_STORE)


def require_teacher(identity: Identity = Depends(get_current_identity)) -> Identity:
	return _guard(identity, Role.TEACHER)


def require_student(identity: Identity = Depends(get_current_identity)) -> Identity:
	return _guard(identity, Role.STUDENT)


@router.get("/me", response_model=Me)
async def me(identity: Identity = Depends(get_current_identity), store: RecordStore = Depends(get_store), db: Session = Depends(get_db)):
	profile = store.get_profile(identity.user_id) or {}
	login_row = db.query(AuthUser).filter(AuthUser.user_id == identity.user_id).first()
	return Me(
		id=identity.user_id,
		username=login_row.username if login_row else "",
		role=identity.role,
		display_name=profile.get("display_name") or "",
	)


class RegisterRequest(CamelModel):
	username: str
	password: str
	role: Role = Role.STUDENT
	display_name: str = ""
	email: Optional[str] = None
	grade_id: Optional[str] = None
	student_number: Optional[int] = Field(default=None, ge=0)


@router.post("/register", status_code=201)
async def register(req: RegisterRequest, db: Session = Depends(get_db), store: RecordStore = Depends(get_store)):
	username = (req.username or "").strip()
	password = req.password or ""
	if not username or not password:
		raise HTTPException(status_code=400, detail="username and password are required")
	if len(username) < 3 or len(username) > 128:
		raise HTTPException(status_code=400, detail="username must be 3-128 characters")
	if req.role is Role.STUDENT and not req.grade_id:
		raise HTTPException(status_code=400, detail="gradeId is required for students")
	# Check exists
	existing = db.get(AuthUser, username)
	if existing:
		raise HTTPException(status_code=409, detail="username already exists")
	user_id = store.create_profile(
		role=req.role.value,
		display_name=(req.display_name or username).strip(),
		email=(req.email or "").strip() or None,
		grade_id=req.grade_id if req.role is Role.STUDENT else None,
		student_number=req.student_number if req.role is Role.STUDENT else None,
		commit=False,
	)
	db.add(AuthUser(username=username, password_hash=hash_password(password), user_id=user_id))
	db.commit()
	logger.info("registered %s %s as %s", req.role.value, username, user_id)
	return {"ok": True, "id": user_id}
