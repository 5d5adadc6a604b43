from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class Credentials(BaseModel):
    """Login secrets. Both values render as '**********' in repr and logs."""

    model_config = ConfigDict(frozen=True)

    user_id: SecretStr
    password: SecretStr


# --------------- Wire payloads ---------------
class _Wire(BaseModel):
    # The site mixes numeric and string JSON values for the same fields
    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )


class RsaModulusData(_Wire):
    rsa_modulus: Optional[str] = Field(default=None, alias="rsaModulus")
    public_exponent: Optional[str] = Field(default=None, alias="publicExponent")


class RsaModulusResponse(_Wire):
    code: Optional[str] = None
    msg: Optional[str] = None
    data: Optional[RsaModulusData] = None


class ElResult(_Wire):
    result_code: str = Field(default="", alias="resultCode")
    result_msg: str = Field(default="", alias="resultMsg")


class ElRoundRemainTime(ElResult):
    round_no: str = Field(default="", alias="ROUND")
    draw_date: str = Field(default="", alias="DRAW_DATE")


class ElDeposit(ElResult):
    deposit: str = ""


class ElDuplicateRound(_Wire):
    double_round: str = Field(default="", alias="doubleRound")
    double_cnt: str = Field(default="", alias="doubleCnt")


class ElCheckMyReserve(ElResult):
    double_round: Optional[List[ElDuplicateRound]] = Field(default=None, alias="doubleRound")


class ElAddMyReserve(ElResult):
    reserve_order_no: Optional[str] = Field(default=None, alias="reserveOrderNo")
    reserve_order_date: Optional[str] = Field(default=None, alias="reserveOrderDate")


class PurchaseReady(_Wire):
    direct_yn: str = ""
    ready_ip: str = ""
    ready_time: str = ""
    ready_cnt: str = ""


class PurchaseResultBody(_Wire):
    result_code: str = Field(default="", alias="resultCode")
    result_msg: str = Field(default="", alias="resultMsg")


class PurchaseResult(_Wire):
    login_yn: Optional[str] = Field(default=None, alias="loginYn")
    result: PurchaseResultBody


# --------------- Domain values ---------------
class AccountInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    balance: int = Field(..., description="Deposit balance in KRW")
    current_round: int = Field(..., description="Current Lotto 6/45 round")


class WinningResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    round_number: int
    rank: int
    prize_amount: int
    match_count: Optional[int] = None


class ReservationContext(BaseModel):
    """Values gathered step by step while reserving next week's pension ticket."""

    current_round: int
    next_round: int
    next_draw_date: str = Field(..., description="YYYY.MM.DD, the site's own format")
    deposit: Optional[int] = None


# --------------- Outcomes ---------------
class _Outcome(BaseModel):
    model_config = ConfigDict(frozen=True)


class ReserveSuccess(_Outcome):
    status: Literal["success"] = "success"
    success: Literal[True] = True
    skipped: Literal[False] = False
    target_round: int
    total_amount: int
    ticket_count: int
    message: str
    reserve_order_no: Optional[str] = None
    reserve_order_date: Optional[str] = None


class ReserveSkipped(_Outcome):
    status: Literal["skipped"] = "skipped"
    success: Literal[True] = True
    skipped: Literal[True] = True
    target_round: int
    total_amount: int
    ticket_count: int
    message: str
    duplicate_rounds: Tuple[str, ...] = ()


class ReserveFailure(_Outcome):
    status: Literal["failure"] = "failure"
    success: Literal[False] = False
    skipped: Literal[False] = False
    target_round: Optional[int] = None
    error: str
    code: Optional[str] = None


ReserveOutcome = Annotated[
    Union[ReserveSuccess, ReserveSkipped, ReserveFailure],
    Field(discriminator="status"),
]


class PurchaseSuccess(_Outcome):
    success: Literal[True] = True
    round_number: int
    game_count: int
    total_amount: int
    purchase_date: str
    message: str


class PurchaseFailure(_Outcome):
    success: Literal[False] = False
    error: str
    code: Optional[str] = None


PurchaseOutcome = Union[PurchaseSuccess, PurchaseFailure]
