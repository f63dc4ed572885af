"""
Typed records for Coinbase Pro responses.

The exchange sends most numbers as JSON strings ("0.0010000000") and
timestamps in a couple of formats ("2019-11-20T10:45:02.123Z",
"2019-11-20 10:45:02.123456+00"); the annotated types below convert both
while pydantic validates the rest of the shape.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Annotated, Any, Optional

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field

_TIMESTAMP_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[T ](\d{2}:\d{2}:\d{2})(?:\.(\d+))?"
    r"(Z|[+-]\d{2}(?::?\d{2})?)?$"
)


def _number(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ValueError(f"expected a number or numeric string, got {type(value).__name__}")
    return value


def _timestamp(value: Any) -> Any:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValueError(f"expected a timestamp string, got {type(value).__name__}")

    m = _TIMESTAMP_RE.match(value.strip())
    if m is None:
        raise ValueError(f"unrecognised timestamp: {value!r}")

    date_part, time_part, fraction, offset = m.groups()
    normalized = f"{date_part}T{time_part}"
    if fraction:
        # keep microsecond precision only
        normalized += "." + fraction[:6]
    if offset and offset != "Z":
        digits = offset[1:].replace(":", "")
        offset = f"{offset[0]}{digits[:2]}:{digits[2:4] or '00'}"
    return normalized + (offset or "")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _id_text(value: Any) -> Any:
    # ledger and trade ids come as numbers on some endpoints
    return str(value) if isinstance(value, int) and not isinstance(value, bool) else value


ExchangeFloat = Annotated[float, BeforeValidator(_number)]
ExchangeDatetime = Annotated[datetime, BeforeValidator(_timestamp), AfterValidator(_as_utc)]
IdText = Annotated[str, BeforeValidator(_id_text)]


class ExchangeModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class ErrorMessage(ExchangeModel):
    """Body of every non-2xx response."""

    message: str


class OrderId(ExchangeModel):
    id: str


class FeeEstimate(ExchangeModel):
    fee: ExchangeFloat


class Account(ExchangeModel):
    id: str
    currency: str
    balance: ExchangeFloat
    available: ExchangeFloat
    hold: ExchangeFloat
    profile_id: str
    trading_enabled: bool


class AccountHistoryDetails(ExchangeModel):
    # only "match" and "fee" entries reference an order
    order_id: Optional[str] = None
    trade_id: Optional[IdText] = None
    product_id: Optional[str] = None
    transfer_id: Optional[str] = None
    transfer_type: Optional[str] = None


class AccountHistory(ExchangeModel):
    """One ledger entry of an account."""

    id: IdText
    created_at: ExchangeDatetime
    amount: ExchangeFloat
    balance: ExchangeFloat
    type: str
    details: AccountHistoryDetails = AccountHistoryDetails()


class OrderInfo(ExchangeModel):
    id: str
    product_id: str
    side: str
    type: str
    created_at: ExchangeDatetime
    fill_fees: ExchangeFloat
    filled_size: ExchangeFloat
    executed_value: ExchangeFloat
    status: str
    settled: bool
    post_only: bool = False
    # market orders carry neither price nor time_in_force, funds-based ones no size
    price: Optional[ExchangeFloat] = None
    size: Optional[ExchangeFloat] = None
    funds: Optional[ExchangeFloat] = None
    time_in_force: Optional[str] = None
    stp: Optional[str] = None


class Fill(ExchangeModel):
    trade_id: int = Field(strict=True)
    product_id: str
    price: ExchangeFloat
    size: ExchangeFloat
    order_id: str
    created_at: ExchangeDatetime
    liquidity: str
    fee: ExchangeFloat
    settled: bool
    side: str


class Fees(ExchangeModel):
    """Current maker & taker fee rates and the 30-day trailing volume."""

    maker_fee_rate: ExchangeFloat
    taker_fee_rate: ExchangeFloat
    usd_volume: Optional[ExchangeFloat] = None


class Profile(ExchangeModel):
    id: str
    user_id: str
    name: str
    active: bool
    is_default: bool
    created_at: ExchangeDatetime


class ReportParams(ExchangeModel):
    start_date: ExchangeDatetime
    end_date: ExchangeDatetime


class ReportInfo(ExchangeModel):
    """Status of an asynchronously generated report; poll by id until ready."""

    id: str
    type: str
    status: str
    created_at: Optional[ExchangeDatetime] = None
    completed_at: Optional[ExchangeDatetime] = None
    expires_at: Optional[ExchangeDatetime] = None
    file_url: Optional[str] = None
    params: Optional[ReportParams] = None


class DepositInfo(ExchangeModel):
    id: str
    amount: ExchangeFloat
    currency: str
    payout_at: Optional[ExchangeDatetime] = None


class WithdrawInfo(ExchangeModel):
    id: str
    amount: ExchangeFloat
    currency: str


class StablecoinConversion(ExchangeModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    amount: ExchangeFloat
    from_account_id: str
    to_account_id: str
    from_currency: str = Field(alias="from")
    to_currency: str = Field(alias="to")
