from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple, Union

import httpx


logger = logging.getLogger(__name__)

TextEncoding = Literal["utf-8", "euc-kr"]

# Pages labelled euc-kr are really windows-949, as browsers decode them;
# strict KS X 1001 would turn extended Hangul into U+FFFD.
_CODECS: Dict[str, str] = {"utf-8": "utf-8", "euc-kr": "cp949"}


def parse_set_cookie(value: str) -> Tuple[str, str]:
    """
    Extract `(name, value)` from one Set-Cookie header value.

    Only the first `name=value` segment is read; attributes such as Path or
    HttpOnly are ignored. The pair is split on the first `=` so values like
    `AQ==` survive intact.
    """
    pair = value.split(";", 1)[0].strip()
    name, _, cookie_value = pair.partition("=")
    return name.strip(), cookie_value.strip()


@dataclass(frozen=True)
class SessionResponse:
    """Raw response with deferred, caller-selected text decoding."""

    status_code: int
    headers: httpx.Headers
    content: bytes
    url: str = ""

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status_code < 400

    @property
    def location(self) -> Optional[str]:
        return self.headers.get("location")

    def text(self, encoding: TextEncoding = "utf-8") -> str:
        return self.content.decode(_CODECS[encoding], errors="replace")

    def json(self) -> Any:
        return json.loads(self.content.decode("utf-8"))


class CookieSession:
    """
    HTTP session that replays cookies captured from earlier responses.

    Notes
    - Redirects are never followed. Login and warm-up handshakes set cookies on
      intermediate 3xx responses, so callers get those responses as-is.
    - The cookie store is a flat name -> value map across all hosts of the
      operator, in first-seen order. httpx's own jar is kept empty so the
      `Cookie` header built here is the only one sent.
    - One attempt per call: no retries, no pooling guarantees beyond httpx's.
    """

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=False)
        self._cookies: Dict[str, str] = {}

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "CookieSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --------------- Cookies ---------------
    @property
    def cookies(self) -> Dict[str, str]:
        return dict(self._cookies)

    def get_cookie(self, name: str) -> Optional[str]:
        return self._cookies.get(name)

    def cookie_header(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self._cookies.items())

    def clear_cookies(self) -> None:
        self._cookies.clear()

    # --------------- Requests ---------------
    def send(
        self,
        url: str,
        *,
        method: str = "GET",
        headers: Optional[Mapping[str, str]] = None,
        content: Optional[Union[str, bytes]] = None,
    ) -> SessionResponse:
        """
        Send one request, replaying stored cookies and capturing new ones.

        Transport failures surface as `httpx.HTTPError`; classification is the
        caller's job.
        """
        request_headers: Dict[str, str] = dict(headers or {})
        cookie_header = self.cookie_header()
        if cookie_header:
            request_headers["Cookie"] = cookie_header

        request = self._client.build_request(
            method, url, headers=request_headers, content=content
        )
        try:
            resp = self._client.send(request, follow_redirects=False)
        finally:
            # httpx would otherwise replay cookies from its own jar next time
            self._client.cookies.clear()

        try:
            body = resp.read()
        finally:
            resp.close()

        self._capture(resp.headers.get_list("set-cookie"))
        logger.debug("%s %s -> %s", method, url, resp.status_code)
        return SessionResponse(
            status_code=resp.status_code,
            headers=resp.headers,
            content=body,
            url=str(resp.url),
        )

    def _capture(self, set_cookie_values: List[str]) -> None:
        for raw in set_cookie_values:
            name, value = parse_set_cookie(raw)
            if not name:
                continue
            self._cookies[name] = value


__all__ = ["CookieSession", "SessionResponse", "TextEncoding", "parse_set_cookie"]
