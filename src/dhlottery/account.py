from __future__ import annotations

from bs4 import BeautifulSoup, NavigableString

from common.errors import AccountError, AccountErrorKind
from common.session import CookieSession

from .constants import USER_AGENT, WWW_ORIGIN
from .models import AccountInfo


ACCOUNT_URL = f"{WWW_ORIGIN}/myPage.do?method=myPage"


def _digits(text: str) -> str:
    return text.replace(",", "").strip()


def parse_balance(html: str) -> int:
    """Deposit balance from `<dd><strong>12,000</strong>원</dd>`."""
    soup = BeautifulSoup(html, "html5lib")
    for dd in soup.find_all("dd"):
        strong = dd.find("strong")
        if strong is None or not dd.get_text(strip=True).endswith("원"):
            continue
        value = _digits(strong.get_text(strip=True))
        if value.isdigit():
            return int(value)
    raise AccountError(
        AccountErrorKind.PARSE_BALANCE_FAILED, "Failed to parse balance from account page"
    )


def parse_round(html: str) -> int:
    """Current round from `제<strong>1234</strong>회`."""
    soup = BeautifulSoup(html, "html5lib")
    for strong in soup.find_all("strong"):
        before, after = strong.previous_sibling, strong.next_sibling
        if not (isinstance(before, NavigableString) and before.rstrip().endswith("제")):
            continue
        if not (isinstance(after, NavigableString) and after.lstrip().startswith("회")):
            continue
        value = strong.get_text(strip=True)
        if value.isdigit():
            return int(value)
    raise AccountError(
        AccountErrorKind.PARSE_ROUND_FAILED, "Failed to parse lottery round from account page"
    )


def get_account_info(session: CookieSession) -> AccountInfo:
    """Fetch the my-page and read the deposit balance and the current round."""
    resp = session.send(ACCOUNT_URL, headers={"User-Agent": USER_AGENT})
    if resp.status_code != 200:
        raise AccountError(
            AccountErrorKind.FETCH_FAILED,
            f"Failed to fetch account page: HTTP {resp.status_code}",
        )

    html = resp.text()
    balance = parse_balance(html)
    current_round = parse_round(html)

    if balance < 0:
        raise AccountError(AccountErrorKind.INVALID_DATA, f"Invalid balance: {balance} (must be >= 0)")
    if current_round <= 0:
        raise AccountError(
            AccountErrorKind.INVALID_DATA, f"Invalid round: {current_round} (must be > 0)"
        )
    return AccountInfo(balance=balance, current_round=current_round)
