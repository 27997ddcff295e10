"""Signed session-id cookie."""
from typing import Optional

from fastapi import Response
from itsdangerous import BadSignature, TimestampSigner


class SessionCookie:
    """
    Carries the session id to the client, signed with itsdangerous.

    An unsigned, tampered or expired value reads back as no session.
    """

    def __init__(
        self,
        secret_key: str,
        name: str = "session",
        max_age: int = 86400 * 7,
        secure: bool = False,
        httponly: bool = True,
        domain: Optional[str] = None,
    ):
        self.signer = TimestampSigner(secret_key, salt="session-cookie")
        self.name = name
        self.max_age = max_age
        self.secure = secure
        self.httponly = httponly
        self.domain = domain

    def sign(self, session_id: str) -> str:
        return self.signer.sign(session_id).decode("utf-8")

    def unsign(self, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        try:
            return self.signer.unsign(value, max_age=self.max_age).decode("utf-8")
        except BadSignature:  # includes SignatureExpired
            return None

    def set(self, response: Response, session_id: str) -> None:
        response.set_cookie(
            key=self.name,
            value=self.sign(session_id),
            max_age=self.max_age,
            httponly=self.httponly,
            samesite="lax",
            secure=self.secure,
            domain=self.domain,
        )

    def clear(self, response: Response) -> None:
        response.delete_cookie(
            self.name,
            httponly=self.httponly,
            samesite="lax",
            secure=self.secure,
            domain=self.domain,
        )
