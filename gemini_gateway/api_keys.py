from __future__ import annotations

import secrets
import string
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from threading import Lock
from typing import Any

from fastapi import APIRouter, Body, Request

KEY_LENGTH = 32
KEY_ALPHABET = string.ascii_letters + string.digits
DEFAULT_KEY_TTL = timedelta(days=30)


class ApiKeyNotFoundError(LookupError):
    def __init__(self, key: str) -> None:
        super().__init__("API key not found")
        self.key = key


@dataclass(slots=True)
class ApiKey:
    key: str
    expires_at: datetime
    is_blocked: bool = False
    usage_count: int = 0
    last_used: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "expiresAt": self.expires_at.isoformat(),
            "isBlocked": self.is_blocked,
            "usageCount": self.usage_count,
            "lastUsed": self.last_used.isoformat() if self.last_used else None,
        }


def generate_key_value(length: int = KEY_LENGTH) -> str:
    return "".join(secrets.choice(KEY_ALPHABET) for _ in range(length))


class ApiKeyRegistry:
    """In-memory API key store; contents are lost on restart.

    Mutating lookups of unknown keys raise ``ApiKeyNotFoundError`` except
    ``increment_usage``, which ignores them. Returned records are copies.
    """

    def __init__(self, ttl: timedelta = DEFAULT_KEY_TTL) -> None:
        self._ttl = ttl
        self._keys: dict[str, ApiKey] = {}
        self._lock = Lock()

    def generate(self) -> ApiKey:
        with self._lock:
            key = generate_key_value()
            while key in self._keys:
                key = generate_key_value()
            record = ApiKey(key=key, expires_at=datetime.now(UTC) + self._ttl)
            self._keys[key] = record
            return replace(record)

    def list(self) -> list[ApiKey]:
        with self._lock:
            return [replace(record) for record in self._keys.values()]

    def _require(self, key: str) -> ApiKey:
        record = self._keys.get(key)
        if record is None:
            raise ApiKeyNotFoundError(key)
        return record

    def block(self, key: str) -> ApiKey:
        with self._lock:
            record = self._require(key)
            record.is_blocked = True
            return replace(record)

    def unblock(self, key: str) -> ApiKey:
        with self._lock:
            record = self._require(key)
            record.is_blocked = False
            return replace(record)

    def update_expiration(self, key: str, expires_at: datetime) -> ApiKey:
        with self._lock:
            record = self._require(key)
            record.expires_at = expires_at
            return replace(record)

    def increment_usage(self, key: str) -> None:
        with self._lock:
            record = self._keys.get(key)
            if record is None:
                return
            record.usage_count += 1
            record.last_used = datetime.now(UTC)


router = APIRouter(prefix="/api-key", tags=["api-key"])


def _registry(request: Request) -> ApiKeyRegistry:
    return request.app.state.api_key_registry


@router.get("")
async def list_api_keys(request: Request) -> list[dict[str, Any]]:
    return [record.to_dict() for record in _registry(request).list()]


@router.post("/generate")
async def generate_api_key(request: Request) -> dict[str, Any]:
    return _registry(request).generate().to_dict()


@router.patch("/{key}/block")
async def block_api_key(key: str, request: Request) -> dict[str, Any]:
    return _registry(request).block(key).to_dict()


@router.patch("/{key}/unblock")
async def unblock_api_key(key: str, request: Request) -> dict[str, Any]:
    return _registry(request).unblock(key).to_dict()


@router.patch("/{key}/expiration")
async def update_api_key_expiration(
    key: str,
    request: Request,
    expires_at: datetime = Body(alias="expiresAt", embed=True),
) -> dict[str, Any]:
    return _registry(request).update_expiration(key, expires_at).to_dict()
