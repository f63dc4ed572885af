from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Union

Amount = Union[float, str, Decimal]


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class TimeInForce(str, Enum):
    GOOD_TILL_CANCELED = "GTC"
    GOOD_TILL_TIME = "GTT"
    IMMEDIATE_OR_CANCEL = "IOC"
    FILL_OR_KILL = "FOK"


class CancelAfter(str, Enum):
    MIN = "min"
    HOUR = "hour"
    DAY = "day"


class SelfTradePrevention(str, Enum):
    DECREASE_AND_CANCEL = "dc"
    CANCEL_OLDEST = "co"
    CANCEL_NEWEST = "cn"
    CANCEL_BOTH = "cb"


class StopType(str, Enum):
    LOSS = "loss"
    ENTRY = "entry"


class ReportType(str, Enum):
    FILLS = "fills"
    ACCOUNT = "account"


class ReportFormat(str, Enum):
    PDF = "pdf"
    CSV = "csv"


def format_amount(value: Amount) -> str:
    # str(1e-05) would give exponent notation, the exchange wants plain decimals
    if isinstance(value, bool):
        raise TypeError("amount must be numeric")
    if isinstance(value, float):
        value = Decimal(str(value))
    return format(Decimal(value), "f")


def _utc(value: datetime) -> datetime:
    # naive datetimes are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_date(value: datetime) -> str:
    return _utc(value).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


@dataclass(frozen=True)
class Order:
    """
    Order request body for ``POST /orders``.

    Build one with ``Order.limit``, ``Order.market`` or ``Order.stop_limit`` rather
    than filling fields by hand; ``to_dict`` drops every unset field.
    """

    side: OrderSide
    product_id: str
    type: str
    price: Amount | None = None
    size: Amount | None = None
    funds: Amount | None = None
    time_in_force: TimeInForce | None = None
    cancel_after: CancelAfter | None = None
    post_only: bool | None = None
    stop: StopType | None = None
    stop_price: Amount | None = None
    client_oid: str | None = None
    stp: SelfTradePrevention | None = None

    @classmethod
    def limit(
        cls,
        side: OrderSide,
        product_id: str,
        price: Amount,
        size: Amount,
        *,
        time_in_force: TimeInForce | None = None,
        cancel_after: CancelAfter | None = None,
        post_only: bool | None = None,
        client_oid: str | None = None,
        stp: SelfTradePrevention | None = None,
    ) -> Order:
        if cancel_after is not None and time_in_force is not TimeInForce.GOOD_TILL_TIME:
            raise ValueError("cancel_after requires time_in_force=GTT")
        if post_only and time_in_force in (TimeInForce.IMMEDIATE_OR_CANCEL, TimeInForce.FILL_OR_KILL):
            raise ValueError("post_only is invalid with IOC or FOK orders")
        return cls(
            side=side,
            product_id=product_id,
            type="limit",
            price=price,
            size=size,
            time_in_force=time_in_force,
            cancel_after=cancel_after,
            post_only=post_only,
            client_oid=client_oid,
            stp=stp,
        )

    @classmethod
    def market(
        cls,
        side: OrderSide,
        product_id: str,
        *,
        size: Amount | None = None,
        funds: Amount | None = None,
        client_oid: str | None = None,
        stp: SelfTradePrevention | None = None,
    ) -> Order:
        if (size is None) == (funds is None):
            raise ValueError("market orders take exactly one of size or funds")
        return cls(
            side=side,
            product_id=product_id,
            type="market",
            size=size,
            funds=funds,
            client_oid=client_oid,
            stp=stp,
        )

    @classmethod
    def stop_limit(
        cls,
        side: OrderSide,
        product_id: str,
        price: Amount,
        size: Amount,
        stop_price: Amount,
        stop: StopType,
        *,
        client_oid: str | None = None,
        stp: SelfTradePrevention | None = None,
    ) -> Order:
        """Stop-limit order: a limit order placed once ``stop_price`` is reached."""
        return cls(
            side=side,
            product_id=product_id,
            type="limit",
            price=price,
            size=size,
            stop=stop,
            stop_price=stop_price,
            client_oid=client_oid,
            stp=stp,
        )

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "side": OrderSide(self.side).value,
            "product_id": self.product_id,
            "type": self.type,
        }
        for name in ("price", "size", "funds", "stop_price"):
            value = getattr(self, name)
            if value is not None:
                body[name] = format_amount(value)
        for name in ("time_in_force", "cancel_after", "stop", "stp"):
            value = getattr(self, name)
            if value is not None:
                body[name] = value.value
        if self.post_only is not None:
            body["post_only"] = self.post_only
        if self.client_oid is not None:
            body["client_oid"] = self.client_oid
        return body


@dataclass(frozen=True)
class Report:
    """Request body for ``POST /reports``."""

    type: ReportType
    start_date: datetime
    end_date: datetime
    product_id: str | None = None
    account_id: str | None = None
    format: ReportFormat = ReportFormat.PDF
    email: str | None = None

    @classmethod
    def fills(
        cls,
        start_date: datetime,
        end_date: datetime,
        product_id: str = "ALL",
        *,
        format: ReportFormat = ReportFormat.PDF,
        email: str | None = None,
    ) -> Report:
        return cls(ReportType.FILLS, start_date, end_date, product_id=product_id, format=format, email=email)

    @classmethod
    def account(
        cls,
        start_date: datetime,
        end_date: datetime,
        account_id: str,
        *,
        format: ReportFormat = ReportFormat.PDF,
        email: str | None = None,
    ) -> Report:
        return cls(ReportType.ACCOUNT, start_date, end_date, account_id=account_id, format=format, email=email)

    def to_dict(self) -> dict[str, Any]:
        if _utc(self.end_date) < _utc(self.start_date):
            raise ValueError("report end_date is before start_date")
        body: dict[str, Any] = {
            "type": self.type.value,
            "start_date": format_date(self.start_date),
            "end_date": format_date(self.end_date),
        }
        if self.type is ReportType.FILLS:
            body["product_id"] = self.product_id
        else:
            body["account_id"] = self.account_id
        body["format"] = self.format.value
        if self.email is not None:
            body["email"] = self.email
        return body
