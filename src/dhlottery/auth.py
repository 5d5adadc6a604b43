"""
DH Lottery login handshake.

1. GET /login to obtain the DHJSESSIONID cookie
2. GET /login/selectRsaModulus.do for a fresh RSA public key
3. POST the RSA-encrypted id and password to /login/securityLoginCheck.do
4. Classify the answer (redirect, cookie, page markers)
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Optional
from urllib.parse import urlencode

from pydantic import ValidationError

from common.errors import AuthError, AuthErrorKind, LotteryError, describe
from common.rsa import RsaPublicKey, encrypt_with_key
from common.session import CookieSession, SessionResponse

from .constants import MAIN_ORIGIN, USER_AGENT
from .models import Credentials, RsaModulusResponse


logger = logging.getLogger(__name__)

LOGIN_PAGE_URL = f"{MAIN_ORIGIN}/login"
RSA_MODULUS_URL = f"{MAIN_ORIGIN}/login/selectRsaModulus.do"
LOGIN_URL = f"{MAIN_ORIGIN}/login/securityLoginCheck.do"

SESSION_COOKIE = "DHJSESSIONID"
SUCCESS_COOKIE = "userId"
SUCCESS_MARKER = "isLoggedIn = true"
FAILURE_MARKER = "isLoggedIn = false"
GENERIC_REJECTION = "아이디 또는 비밀번호가 일치하지 않습니다."

# Inline errors rendered by the login page, most specific first.
_ALERT_PATTERN = re.compile(r"""\$\.alert\(['"]([^'"]+)['"]\)""")
_ERROR_VAR_PATTERN = re.compile(r"const errorMessage = '([^']+)'")


class AuthState(str, Enum):
    INIT = "init"
    SESSION_BOOTSTRAPPED = "session_bootstrapped"
    KEY_FETCHED = "key_fetched"
    SUBMITTED = "submitted"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"
    ERRORED = "errored"


def _network_error(step: str, exc: BaseException) -> AuthError:
    return AuthError(AuthErrorKind.NETWORK, f"{step} failed: {describe(exc)}", cause=exc)


def init_session(session: CookieSession) -> AuthState:
    try:
        resp = session.send(
            LOGIN_PAGE_URL,
            headers={"Accept-Charset": "UTF-8", "User-Agent": USER_AGENT},
        )
        if resp.status_code != 200:
            raise AuthError(
                AuthErrorKind.SESSION_INIT,
                f"Session initialization failed with status {resp.status_code}",
            )
        if not session.get_cookie(SESSION_COOKIE):
            raise AuthError(
                AuthErrorKind.SESSION_INIT,
                f"{SESSION_COOKIE} cookie was not set during initialization",
            )
    except LotteryError:
        raise
    except Exception as exc:
        raise _network_error("Session initialization", exc) from exc
    logger.debug("Session initialized; cookies=%s", sorted(session.cookies))
    return AuthState.SESSION_BOOTSTRAPPED


def fetch_rsa_key(session: CookieSession) -> RsaPublicKey:
    try:
        resp = session.send(
            RSA_MODULUS_URL,
            headers={
                "Accept": "application/json, text/javascript, */*; q=0.01",
                "Content-Type": "application/json;charset=UTF-8",
                "User-Agent": USER_AGENT,
                "X-Requested-With": "XMLHttpRequest",
                "Referer": LOGIN_PAGE_URL,
                "ajax": "true",
            },
        )
        if resp.status_code != 200:
            raise AuthError(
                AuthErrorKind.KEY_FETCH, f"RSA key fetch failed with status {resp.status_code}"
            )
        try:
            payload = RsaModulusResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise AuthError(
                AuthErrorKind.KEY_FETCH, "Invalid RSA key response format", cause=exc
            ) from exc
        data = payload.data
        if data is None or not data.rsa_modulus or not data.public_exponent:
            raise AuthError(AuthErrorKind.KEY_FETCH, "Invalid RSA key response format")
    except LotteryError:
        raise
    except Exception as exc:
        raise _network_error("RSA key fetch", exc) from exc
    logger.debug("RSA key fetched; modulus hex length=%d", len(data.rsa_modulus))
    return RsaPublicKey(modulus=data.rsa_modulus, exponent=data.public_exponent)


def classify_login_response(session: CookieSession, resp: SessionResponse) -> AuthState:
    """
    Map the login POST response to AUTHENTICATED, or raise.

    Several conditions can hold at once (a failure page may also set cookies),
    so the checks run in a fixed priority order.
    """
    # Success is a redirect with an empty body; never read it.
    if resp.is_redirect:
        logger.info("Login successful (redirect %s)", resp.status_code)
        return AuthState.AUTHENTICATED

    if session.get_cookie(SUCCESS_COOKIE):
        logger.info("Login successful (session cookie)")
        return AuthState.AUTHENTICATED

    body = resp.text("utf-8")
    if SUCCESS_MARKER in body:
        logger.info("Login successful (page marker)")
        return AuthState.AUTHENTICATED

    message = _extract_inline_error(body)
    if message is not None:
        raise AuthError(AuthErrorKind.INVALID_CREDENTIALS, message)

    if FAILURE_MARKER in body:
        raise AuthError(AuthErrorKind.INVALID_CREDENTIALS, GENERIC_REJECTION)

    raise AuthError(
        AuthErrorKind.UNEXPECTED_RESPONSE,
        f"Unexpected login response (HTTP {resp.status_code})",
    )


def _extract_inline_error(body: str) -> Optional[str]:
    match = _ALERT_PATTERN.search(body)
    if match:
        return match.group(1)
    match = _ERROR_VAR_PATTERN.search(body)
    if match:
        return match.group(1)
    return None


def login(session: CookieSession, credentials: Credentials) -> AuthState:
    """
    Run the full handshake on `session`.

    Returns AuthState.AUTHENTICATED; rejection and every other failure raise
    AuthError (INVALID_CREDENTIALS for a rejection).
    """
    state = AuthState.INIT
    try:
        state = init_session(session)
        key = fetch_rsa_key(session)
        state = AuthState.KEY_FETCHED

        user_id = credentials.user_id.get_secret_value()
        password = credentials.password.get_secret_value()
        form = urlencode(
            {
                "userId": encrypt_with_key(user_id, key),
                "userPswdEncn": encrypt_with_key(password, key),
                "inpUserId": user_id,
            }
        )
        resp = session.send(
            LOGIN_URL,
            method="POST",
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "User-Agent": USER_AGENT,
                "Origin": MAIN_ORIGIN,
                "Referer": LOGIN_PAGE_URL,
                "Upgrade-Insecure-Requests": "1",
                "Cache-Control": "max-age=0",
            },
            content=form,
        )
        state = AuthState.SUBMITTED
        return classify_login_response(session, resp)
    except LotteryError as err:
        final = (
            AuthState.REJECTED
            if err.kind is AuthErrorKind.INVALID_CREDENTIALS
            else AuthState.ERRORED
        )
        logger.warning("Login %s after %s: %s", final.value, state.value, err.message)
        raise
    except Exception as exc:
        logger.warning("Login errored after %s: %s", state.value, exc)
        raise _network_error("Login", exc) from exc


__all__ = [
    "AuthState",
    "classify_login_response",
    "fetch_rsa_key",
    "init_session",
    "login",
]
