from __future__ import annotations

import logging

import httpx

from common.alerts import NotificationPayload, format_krw
from common.notifier import NotificationSink
from common.session import CookieSession

from .account import get_account_info
from .constants import CHARGE_AMOUNT, MIN_DEPOSIT_AMOUNT, USER_AGENT, WWW_ORIGIN


logger = logging.getLogger(__name__)

# K-Bank virtual account page for a manual top-up. Opening it prepares the
# transfer on the site; no money moves until the user pays in.
CHARGE_INIT_URL = (
    f"{WWW_ORIGIN}/kbank.do?method=kbankProcess&PayMethod=VBANK"
    "&VBankAccountName=%EB%8F%99%ED%96%89%EB%B3%B5%EA%B6%8C&LicenseKey=&VBankExpDate="
    f"&GoodsAmt={CHARGE_AMOUNT}"
)


def _initialize_charge_page(session: CookieSession) -> bool:
    try:
        resp = session.send(CHARGE_INIT_URL, headers={"User-Agent": USER_AGENT})
    except httpx.HTTPError as exc:
        logger.error("Error initializing charge page: %s", exc)
        return False
    if resp.status_code != 200:
        logger.error("Failed to initialize charge page: HTTP %s", resp.status_code)
        return False
    return True


def check_deposit(session: CookieSession, notifier: NotificationSink) -> bool:
    """
    Return True when the balance covers one purchase run.

    Account page failures propagate: without a trustworthy balance nothing
    should be bought.
    """
    info = get_account_info(session)
    if info.balance >= MIN_DEPOSIT_AMOUNT:
        logger.info("Deposit sufficient: %s", info.balance)
        return True

    logger.info("Insufficient balance: %s < %s", info.balance, MIN_DEPOSIT_AMOUNT)

    if not _initialize_charge_page(session):
        notifier.notify(
            NotificationPayload(
                type="error",
                title="Charge Initialization Failed",
                message="충전 페이지 초기화에 실패했습니다. 수동으로 입금해주세요.",
                details={
                    "currentBalance": format_krw(info.balance),
                    "minimumRequired": format_krw(MIN_DEPOSIT_AMOUNT),
                },
            )
        )
        return False

    notifier.notify(
        NotificationPayload(
            type="warning",
            title="Insufficient Balance",
            message="잔액이 부족하여 로또 구매를 진행할 수 없습니다. 입금 후 다음 스케줄에서 재시도됩니다.",
            details={
                "currentBalance": format_krw(info.balance),
                "minimumRequired": format_krw(MIN_DEPOSIT_AMOUNT),
                "chargeAmount": format_krw(CHARGE_AMOUNT),
            },
        )
    )
    return False
