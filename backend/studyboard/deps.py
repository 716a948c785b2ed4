from __future__ import annotations
from datetime import datetime, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo

from fastapi import Depends, Response
from sqlalchemy.orm import Session

from .db import get_db
from .identity import IdentityService
from .settings import settings
from .store import RecordStore

NO_STORE = {"Cache-Control": "no-store"}


@lru_cache(maxsize=None)
def _zone(name: str) -> tzinfo:
	return ZoneInfo(name)


def get_local_tz() -> tzinfo:
	return _zone(settings.local_timezone)


def get_now(tz: tzinfo = Depends(get_local_tz)) -> datetime:
	return datetime.now(tz)


def get_store(db: Session = Depends(get_db), tz: tzinfo = Depends(get_local_tz)) -> RecordStore:
	return RecordStore(db, tz=tz)


def get_identity_service(db: Session = Depends(get_db)) -> IdentityService:
	return IdentityService(db)


def mark_cacheable(response: Response) -> None:
	response.headers["Cache-Control"] = f"private, max-age={settings.stats_cache_seconds}"
