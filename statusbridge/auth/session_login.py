"""Interactive Revolt login used to obtain a session token."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
import getpass
import re
import sys

import httpx
from pydantic import BaseModel, ValidationError

from statusbridge.errors import LoginError
from statusbridge.integrations.revolt_client import DEFAULT_API_URL
from statusbridge.integrations.schemas import (
    AuthifierErrorBody,
    LoginDisabled,
    LoginMfaRequired,
    LoginRequest,
    LoginResponse,
    LoginSuccess,
    MfaRequest,
    login_response_adapter,
)
from statusbridge.logging import get_logger

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
RECOVERY_CODE_PATTERN = re.compile(r"^[a-z0-9]{5}-[a-z0-9]{5}$")
TOTP_PATTERN = re.compile(r"^[0-9]{6}$")
SESSION_FRIENDLY_NAME = f"statusbridge on {sys.platform}"

_AUTH_ERROR_MESSAGES: dict[str, str] = {
    "UnverifiedAccount": "The account you are trying to log in to is unverified.",
    "InvalidToken": "Incorrect 2FA code provided.",
    "InvalidCredentials": "Invalid login credentials provided.",
    "CompromisedPassword": (
        "The entered password is compromised. "
        "Please ensure you have entered the correct password."
    ),
    "ShortPassword": (
        "The entered password is too short. Please ensure you have entered the correct password."
    ),
    "Blacklisted": (
        "The entered email is blacklisted. Please ensure you have entered the correct email."
    ),
    "LockedOut": "This account is locked out. Please try again some time later.",
}

SUCCESS_MESSAGE_TEMPLATE = """
Session token successfully acquired!

To complete setup:
1. Open your configuration file
2. Locate the `revolt: session_token:` line
3. Replace it with:
   session_token: "{token}"

If you are connecting to a custom Revolt instance (--api-url), also set
revolt: api_url: <instance-url>

SECURITY WARNING
Your session token grants complete access to your account. Never share it
and prefer storing it in a file referenced by `session_token_file` or the
STATUSBRIDGE_REVOLT__SESSION_TOKEN_FILE environment variable.
"""

Reader = Callable[[str], str]
Writer = Callable[[str], None]
Validator = Callable[[str], str | None]


@dataclass(slots=True)
class SessionLoginClient:
    """Thin client for ``POST /auth/session/login``."""

    api_url: str = DEFAULT_API_URL
    timeout_ms: int = 10_000
    transport: httpx.AsyncBaseTransport | None = None
    _client: httpx.AsyncClient | None = field(default=None, init=False, repr=False)

    async def login(self, email: str, password: str) -> LoginResponse:
        body = LoginRequest(email=email, password=password, friendly_name=SESSION_FRIENDLY_NAME)
        return await self._post(body)

    async def submit_mfa(self, ticket: str, code: str) -> LoginResponse:
        if TOTP_PATTERN.match(code):
            mfa_response = {"totp_code": code}
        else:
            mfa_response = {"recovery_code": code}
        body = MfaRequest(
            mfa_ticket=ticket, mfa_response=mfa_response, friendly_name=SESSION_FRIENDLY_NAME
        )
        return await self._post(body)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _post(self, body: BaseModel) -> LoginResponse:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.api_url.rstrip("/"),
                timeout=max(self.timeout_ms, 100) / 1000,
                transport=self.transport,
            )
        try:
            response = await self._client.post(
                "/auth/session/login", json=body.model_dump(exclude_none=True)
            )
        except httpx.HTTPError as exc:
            raise LoginError(f"Login request failed: {exc}") from exc

        status = response.status_code
        if status in (httpx.codes.OK, httpx.codes.NO_CONTENT):
            try:
                return login_response_adapter.validate_python(response.json())
            except (ValueError, ValidationError) as exc:
                raise LoginError("Revolt returned an unexpected login response") from exc
        if status in (httpx.codes.BAD_REQUEST, httpx.codes.UNAUTHORIZED, httpx.codes.FORBIDDEN):
            raise LoginError(_describe_auth_error(response))
        raise LoginError(f"Unexpected status code received: {status}")


def _describe_auth_error(response: httpx.Response) -> str:
    try:
        error = AuthifierErrorBody.model_validate(response.json())
    except (ValueError, ValidationError):
        return f"Login rejected with status {response.status_code}"
    return _AUTH_ERROR_MESSAGES.get(error.type, f"Login rejected: {error.type}")


def validate_email(value: str) -> str | None:
    return None if EMAIL_PATTERN.match(value) else "Invalid e-mail address."


def validate_password(value: str) -> str | None:
    return None if value else "Password cannot be empty."


def validate_totp(value: str) -> str | None:
    return None if TOTP_PATTERN.match(value) else "Invalid TOTP code."


def validate_totp_or_recovery(value: str) -> str | None:
    if TOTP_PATTERN.match(value) or RECOVERY_CODE_PATTERN.match(value):
        return None
    return "Invalid recovery or TOTP code."


def _ask(reader: Reader, writer: Writer, prompt: str, validate: Validator) -> str:
    while True:
        value = reader(prompt).strip()
        problem = validate(value)
        if problem is None:
            return value
        writer(problem)


async def acquire_session_token(
    *,
    api_url: str = DEFAULT_API_URL,
    reader: Reader = input,
    secret_reader: Reader = getpass.getpass,
    writer: Writer = print,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str | None:
    """Walk the user through login (and 2FA) and print the session token.

    Returns the token, or ``None`` when login is disabled for the account or
    the user interrupted a prompt.
    """

    client = SessionLoginClient(api_url=api_url, transport=transport)
    try:
        try:
            email = _ask(reader, writer, "E-mail: ", validate_email)
            password = _ask(secret_reader, writer, "Password: ", validate_password)
        except (KeyboardInterrupt, EOFError):
            return None

        result = await client.login(email, password)
        if isinstance(result, LoginMfaRequired):
            if len(result.allowed_methods) > 1:
                prompt = "Enter 2FA authentication or recovery code: "
                validator = validate_totp_or_recovery
            else:
                prompt = "Enter 2FA authentication code: "
                validator = validate_totp
            try:
                code = _ask(reader, writer, prompt, validator)
            except (KeyboardInterrupt, EOFError):
                return None
            result = await client.submit_mfa(result.ticket, code)

        if isinstance(result, LoginDisabled):
            writer("Login is disabled on this account.")
            return None
        if not isinstance(result, LoginSuccess):
            raise LoginError("Revolt requested another verification step after 2FA")

        logger.info("Acquired a Revolt session token")
        writer(SUCCESS_MESSAGE_TEMPLATE.format(token=result.token))
        return result.token
    finally:
        await client.aclose()


__all__ = [
    "SessionLoginClient",
    "acquire_session_token",
    "validate_email",
    "validate_totp",
    "validate_totp_or_recovery",
]
