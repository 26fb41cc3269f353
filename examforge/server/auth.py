"""Bearer-token identity for examiner routes."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from examforge.core.config import Settings
from examforge.core.errors import AuthError

bearer = HTTPBearer(auto_error=False)


class ExaminerAuth:
    """Issues and verifies HS256 tokens whose ``sub`` is the examiner id."""

    def __init__(self, settings: Settings) -> None:
        self._secret = settings.auth_secret.get_secret_value()
        self._algorithm = settings.auth_algorithm
        self._ttl_minutes = settings.access_token_expire_minutes

    def create_access_token(self, examiner_id: str, ttl_minutes: int | None = None) -> str:
        now = datetime.now(timezone.utc)
        ttl = self._ttl_minutes if ttl_minutes is None else ttl_minutes
        payload = {
            "sub": examiner_id,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=ttl)).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def decode(self, token: str) -> str:
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise AuthError("Token has expired.") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthError("Invalid token.") from exc
        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject.strip():
            raise AuthError("Token does not identify an examiner.")
        return subject

    def dependency(self):
        def get_current_examiner(
            creds: HTTPAuthorizationCredentials | None = Depends(bearer),
        ) -> str:
            if creds is None or not creds.credentials:
                raise AuthError("Missing bearer token.")
            return self.decode(creds.credentials)

        return get_current_examiner
