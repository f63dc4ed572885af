from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from .client import SANDBOX_URL, BaseClient, CoinbaseConfig, Credentials, build_query, path_segment
from .models import (
    Account,
    AccountHistory,
    DepositInfo,
    FeeEstimate,
    Fees,
    Fill,
    OrderId,
    OrderInfo,
    Profile,
    ReportInfo,
    StablecoinConversion,
    WithdrawInfo,
)
from .orders import Amount, Order, Report, format_amount

logger = logging.getLogger(__name__)

# the exchange caps transfer listings at 100 entries
MAX_TRANSFER_LIMIT = 100


class DepositType(str, Enum):
    DEPOSIT = "deposit"
    INTERNAL_DEPOSIT = "internal_deposit"


class WithdrawType(str, Enum):
    WITHDRAW = "withdraw"
    INTERNAL_WITHDRAW = "internal_withdraw"


class BeforeOrAfter(str, Enum):
    BEFORE = "before"
    AFTER = "after"


@dataclass(frozen=True)
class TransferCursor:
    """
    ``before``/``after`` bound for transfer listings.

    ``before`` returns transfers created after the cursor, oldest first;
    ``after`` returns transfers created before it, newest first.
    """

    direction: BeforeOrAfter
    value: str

    @classmethod
    def before(cls, value: str) -> TransferCursor:
        return cls(BeforeOrAfter.BEFORE, value)

    @classmethod
    def after(cls, value: str) -> TransferCursor:
        return cls(BeforeOrAfter.AFTER, value)


class PrivateClient(BaseClient):
    """Authenticated access to accounts, orders, transfers, reports and profiles."""

    @classmethod
    def sandbox(
        cls,
        credentials: Credentials,
        *,
        session: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> PrivateClient:
        return cls(credentials, CoinbaseConfig(base_url=SANDBOX_URL), session=session, timeout=timeout)

    @classmethod
    def from_env(
        cls,
        *,
        session: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> PrivateClient:
        """Credentials from CB_API_KEY / CB_API_SECRET / CB_API_PASSPHRASE; CB_SANDBOX=1 picks the sandbox."""
        credentials = Credentials.from_env()
        if os.environ.get("CB_SANDBOX") == "1":
            logger.info("Using sandbox endpoint %s", SANDBOX_URL)
            return cls.sandbox(credentials, session=session, timeout=timeout)
        return cls(credentials, session=session, timeout=timeout)

    # ---------- query helpers ----------
    @staticmethod
    def _transfers_path(
        transfer_type: Enum | None,
        profile_id: str | None,
        before_or_after: TransferCursor | None,
        limit: int | None,
    ) -> str:
        pairs: list[tuple[str, Any]] = [
            ("type", transfer_type.value if transfer_type is not None else None),
            ("profile_id", profile_id),
        ]
        if before_or_after is not None:
            pairs.append((before_or_after.direction.value, before_or_after.value))
        if limit is not None:
            pairs.append(("limit", min(limit, MAX_TRANSFER_LIMIT)))
        return "/transfers/" + build_query(pairs)

    # ---------- accounts ----------
    async def get_accounts(self) -> list[Account]:
        """Trading accounts of the API key's profile."""
        return await self._get("/accounts", list[Account])

    async def get_account(self, account_id: str) -> Account:
        return await self._get(f"/accounts/{path_segment(account_id)}", Account)

    async def get_account_history(self, account_id: str) -> list[AccountHistory]:
        """Ledger entries of an account, newest first."""
        return await self._get(f"/accounts/{path_segment(account_id)}/ledger", list[AccountHistory])

    # ---------- orders ----------
    async def place_order(self, order: Order) -> str:
        """Place a limit, market or stop order; returns the new order id."""
        created = await self._post("/orders", order.to_dict(), OrderId)
        return created.id

    async def cancel_order(self, order_id: str) -> str:
        return await self._delete(f"/orders/{path_segment(order_id)}", str)

    async def cancel_order_by_oid(self, oid: str) -> str:
        return await self._delete(f"/orders/client:{path_segment(oid)}", str)

    async def cancel_orders(self, product_id: str | None = None) -> list[str]:
        """Cancel every open order, optionally only those of one product."""
        path = "/orders" + build_query([("product_id", product_id)])
        return await self._delete(path, list[str])

    async def get_orders(self) -> list[OrderInfo]:
        return await self._get("/orders", list[OrderInfo])

    async def get_order(self, order_id: str) -> OrderInfo:
        return await self._get(f"/orders/{path_segment(order_id)}", OrderInfo)

    async def get_order_by_oid(self, oid: str) -> OrderInfo:
        return await self._get(f"/orders/client:{path_segment(oid)}", OrderInfo)

    # ---------- fills ----------
    async def get_fills_by_order_id(self, order_id: str) -> list[Fill]:
        return await self._get("/fills" + build_query([("order_id", order_id)]), list[Fill])

    async def get_fills_by_product_id(self, product_id: str) -> list[Fill]:
        return await self._get("/fills" + build_query([("product_id", product_id)]), list[Fill])

    # ---------- limits ----------
    async def get_limits(self) -> Any:
        """Payment method transfer limits and buy/sell limits per currency."""
        return await self._get("/users/self/exchange-limits")

    # ---------- deposits ----------
    async def get_deposits(
        self,
        deposit_type: DepositType | None = None,
        profile_id: str | None = None,
        before_or_after: TransferCursor | None = None,
        limit: int | None = None,
    ) -> Any:
        """
        Deposits of the API key's profile, newest first.

        deposit_type: deposit, or internal_deposit for transfers between portfolios
        profile_id: restrict to this profile instead of the default one
        before_or_after: cursor bound, see TransferCursor
        limit: number of entries, capped at 100
        """
        return await self._get(self._transfers_path(deposit_type, profile_id, before_or_after, limit))

    async def get_deposit(self, transfer_id: str) -> Any:
        return await self._get(f"/transfers/{path_segment(transfer_id)}")

    async def get_payment_methods(self) -> Any:
        return await self._get("/payment-methods")

    async def deposit_funds(self, amount: Amount, currency: str, payment_method_id: str) -> DepositInfo:
        """Deposit funds from a payment method."""
        body = {"amount": format_amount(amount), "currency": currency, "payment_method_id": payment_method_id}
        return await self._post("/deposits/payment-method", body, DepositInfo)

    async def deposit_funds_from_coinbase(self, amount: Amount, currency: str, coinbase_account_id: str) -> DepositInfo:
        body = {"amount": format_amount(amount), "currency": currency, "coinbase_account_id": coinbase_account_id}
        return await self._post("/deposits/coinbase-account", body, DepositInfo)

    async def get_coinbase_accounts(self) -> Any:
        return await self._get("/coinbase-accounts")

    async def generate_crypto_deposit_address(self, coinbase_account_id: str) -> Any:
        return await self._post(f"/coinbase-accounts/{path_segment(coinbase_account_id)}/addresses")

    # ---------- withdrawals ----------
    async def get_withdrawals(
        self,
        withdraw_type: WithdrawType | None = None,
        profile_id: str | None = None,
        before_or_after: TransferCursor | None = None,
        limit: int | None = None,
    ) -> Any:
        """Withdrawals of the API key's profile; parameters as in get_deposits."""
        return await self._get(self._transfers_path(withdraw_type, profile_id, before_or_after, limit))

    async def get_withdrawal(self, transfer_id: str) -> Any:
        return await self._get(f"/transfers/{path_segment(transfer_id)}")

    async def withdraw_to_coinbase(self, amount: Amount, currency: str, coinbase_account_id: str) -> WithdrawInfo:
        body = {"amount": format_amount(amount), "currency": currency, "coinbase_account_id": coinbase_account_id}
        return await self._post("/withdrawals/coinbase-account", body, WithdrawInfo)

    async def withdraw_to_crypto_address(
        self,
        amount: Amount,
        currency: str,
        crypto_address: str,
        destination_tag: str | None = None,
        no_destination_tag: bool | None = None,
        add_network_fee_to_total: bool | None = None,
    ) -> WithdrawInfo:
        """
        Withdraw funds to a crypto address.

        destination_tag: tag for currencies that support one
        no_destination_tag: opt out of a destination tag; required when none is given
        add_network_fee_to_total: add the network fee on top of amount instead of deducting it
        """
        body: dict[str, Any] = {"amount": format_amount(amount), "currency": currency, "crypto_address": crypto_address}
        optional = {
            "destination_tag": destination_tag,
            "no_destination_tag": no_destination_tag,
            "add_network_fee_to_total": add_network_fee_to_total,
        }
        body.update({k: v for k, v in optional.items() if v is not None})
        return await self._post("/withdrawals/crypto", body, WithdrawInfo)

    # ---------- fees ----------
    async def get_fees(self) -> Fees:
        """Current maker & taker fee rates and 30-day trailing volume."""
        return await self._get("/fees", Fees)

    async def get_fee_estimate(self, currency: str, crypto_address: str) -> float:
        """Network fee estimate for sending to ``crypto_address``."""
        path = "/withdrawals/fee-estimate" + build_query([("currency", currency), ("crypto_address", crypto_address)])
        estimate = await self._get(path, FeeEstimate)
        return estimate.fee

    # ---------- conversions ----------
    async def convert_stablecoin(self, from_currency_id: str, to_currency_id: str, amount: Amount) -> StablecoinConversion:
        body = {"from": from_currency_id, "to": to_currency_id, "amount": format_amount(amount)}
        return await self._post("/conversions", body, StablecoinConversion)

    # ---------- reports ----------
    async def create_report(self, report: Report) -> ReportInfo:
        """Request a report; it is generated asynchronously, poll with get_report."""
        return await self._post("/reports", report.to_dict(), ReportInfo)

    async def get_report(self, report_id: str) -> ReportInfo:
        return await self._get(f"/reports/{path_segment(report_id)}", ReportInfo)

    # ---------- profiles ----------
    async def get_profiles(self) -> list[Profile]:
        return await self._get("/profiles", list[Profile])

    async def get_profile(self, profile_id: str) -> Profile:
        return await self._get(f"/profiles/{path_segment(profile_id)}", Profile)

    async def create_profile_transfer(self, from_profile: str, to_profile: str, currency: str, amount: Amount) -> str:
        """Move funds between two profiles of the same user; returns the raw response text."""
        body = {"from": from_profile, "to": to_profile, "currency": currency, "amount": format_amount(amount)}
        response = await self._post_raw("/profiles/transfer", body)
        # success bodies are not JSON, only the error payload is decoded
        self._raise_for_status(response)
        return response.text

    # ---------- oracle ----------
    async def oracle(self) -> Any:
        """Signed prices ready to be posted on-chain to Open Oracle contracts."""
        return await self._get("/oracle")
