import json
from datetime import datetime, timezone

import httpx
import pytest

from coinbase_client.client import Credentials, build_query
from coinbase_client.models import Account, ReportInfo, WithdrawInfo
from coinbase_client.orders import Report
from coinbase_client.private_client import (
    DepositType,
    PrivateClient,
    TransferCursor,
    WithdrawType,
)

SECRET = "c2VjcmV0LWtleS1mb3ItdGVzdHM="

ACCOUNT = {
    "id": "71452118-efc7-4cc4-8780-a5e22d4baa53",
    "currency": "BTC",
    "balance": "0.0000000000000000",
    "available": "0.0000000000000000",
    "hold": "0.0000000000000000",
    "profile_id": "75da88c5-05bf-4f54-bc85-5c775bd68254",
    "trading_enabled": True,
}


def make_client(handler):
    session = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PrivateClient(Credentials("APIKEY", SECRET, "PASSPHRASE"), session=session)


def recording_client(response_json=None, status_code=200):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(status_code, json=response_json if response_json is not None else {})

    return make_client(handler), seen


def signed_path(request):
    return request.url.raw_path.decode("ascii")


def test_build_query_skips_absent_values():
    assert build_query([]) == ""
    assert build_query([("a", None), ("b", None)]) == ""
    assert build_query([("a", None), ("b", 2), ("c", "x")]) == "?b=2&c=x"


@pytest.mark.asyncio
async def test_get_deposits_query_order_and_limit_clamp():
    c, seen = recording_client([])

    await c.get_deposits(DepositType.DEPOSIT, "p1", None, 500)

    assert signed_path(seen[0]) == "/transfers/?type=deposit&profile_id=p1&limit=100"


@pytest.mark.asyncio
async def test_get_deposits_without_parameters_has_no_query():
    c, seen = recording_client([])

    await c.get_deposits(None, None, None, None)

    assert signed_path(seen[0]) == "/transfers/"


@pytest.mark.asyncio
async def test_get_deposits_first_present_parameter_gets_question_mark():
    c, seen = recording_client([])

    await c.get_deposits(None, "p1", TransferCursor.before("2019-01-01"), 20)

    assert signed_path(seen[0]) == "/transfers/?profile_id=p1&before=2019-01-01&limit=20"


@pytest.mark.asyncio
async def test_get_withdrawals_query():
    c, seen = recording_client([])

    await c.get_withdrawals(WithdrawType.INTERNAL_WITHDRAW, None, TransferCursor.after("cursor-9"), None)

    assert signed_path(seen[0]) == "/transfers/?type=internal_withdraw&after=cursor-9"


@pytest.mark.asyncio
async def test_signed_path_includes_query_string(monkeypatch):
    c, seen = recording_client([])
    monkeypatch.setattr(c, "_timestamp", lambda: "1700000000")

    await c.get_fills_by_order_id("abc")

    request = seen[0]
    assert signed_path(request) == "/fills?order_id=abc"
    assert request.headers["CB-ACCESS-SIGN"] == c.sign_message("/fills?order_id=abc", None, "1700000000", "GET")


@pytest.mark.asyncio
async def test_get_accounts_decodes_models():
    c, seen = recording_client([ACCOUNT])

    accounts = await c.get_accounts()

    assert accounts == [Account.model_validate(ACCOUNT)]
    assert accounts[0].currency == "BTC"
    assert accounts[0].balance == 0.0
    assert accounts[0].trading_enabled is True


@pytest.mark.asyncio
async def test_cancel_order_by_oid_path():
    c, seen = recording_client("abc")

    out = await c.cancel_order_by_oid("my-oid")

    assert out == "abc"
    assert seen[0].method == "DELETE"
    assert signed_path(seen[0]) == "/orders/client:my-oid"


@pytest.mark.asyncio
async def test_path_ids_are_escaped_and_signed_as_sent(monkeypatch):
    c, seen = recording_client(ACCOUNT)
    monkeypatch.setattr(c, "_timestamp", lambda: "1700000000")

    await c.get_account("abc def")

    request = seen[0]
    assert signed_path(request) == "/accounts/abc%20def"
    assert request.headers["CB-ACCESS-SIGN"] == c.sign_message(signed_path(request), None, "1700000000", "GET")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "call,expected",
    [
        (lambda c: c.cancel_order("a/b"), "/orders/a%2Fb"),
        (lambda c: c.cancel_order_by_oid("x?y"), "/orders/client:x%3Fy"),
        (lambda c: c.get_withdrawal("w#1"), "/transfers/w%231"),
        (lambda c: c.get_deposit("t 1"), "/transfers/t%201"),
    ],
)
async def test_reserved_characters_in_ids_stay_in_one_segment(call, expected):
    c, seen = recording_client("ok")

    await call(c)

    assert signed_path(seen[0]) == expected


@pytest.mark.asyncio
async def test_cancel_orders_for_product():
    c, seen = recording_client(["a", "b"])

    out = await c.cancel_orders("BTC-USD")

    assert out == ["a", "b"]
    assert signed_path(seen[0]) == "/orders?product_id=BTC-USD"


@pytest.mark.asyncio
async def test_withdraw_to_crypto_address_uses_crypto_endpoint_and_drops_unset_fields():
    c, seen = recording_client({"id": "593533d2-ff31-46e0-b22e-ca754147a96a", "amount": "10.00", "currency": "BTC"})

    out = await c.withdraw_to_crypto_address(10, "BTC", "0x5ad5769cd04681FeD900BCE3DDc877B50E83d469")

    assert out == WithdrawInfo(id="593533d2-ff31-46e0-b22e-ca754147a96a", amount=10.0, currency="BTC")
    assert signed_path(seen[0]) == "/withdrawals/crypto"
    assert json.loads(seen[0].content) == {
        "amount": "10",
        "currency": "BTC",
        "crypto_address": "0x5ad5769cd04681FeD900BCE3DDc877B50E83d469",
    }


@pytest.mark.asyncio
async def test_generate_crypto_deposit_address_posts_without_body():
    c, seen = recording_client({"address": "0x5ad5769cd04681FeD900BCE3DDc877B50E83d469"})

    out = await c.generate_crypto_deposit_address("acct-1")

    assert out["address"].startswith("0x")
    assert seen[0].method == "POST"
    assert seen[0].content == b""
    assert "Content-Type" not in seen[0].headers


@pytest.mark.asyncio
async def test_get_fee_estimate_returns_float():
    c, seen = recording_client({"fee": 0.01})

    out = await c.get_fee_estimate("ETH", "0x5ad5")

    assert out == 0.01
    assert signed_path(seen[0]) == "/withdrawals/fee-estimate?currency=ETH&crypto_address=0x5ad5"


@pytest.mark.asyncio
async def test_create_report_posts_body_and_decodes_info():
    c, seen = recording_client(
        {
            "id": "0428b97b-bec1-429e-a94c-59232926778d",
            "type": "fills",
            "status": "pending",
            "created_at": "2015-01-06T10:34:47.000Z",
            "completed_at": None,
            "expires_at": "2015-01-13T10:35:47.000Z",
            "file_url": None,
            "params": {
                "start_date": "2014-11-01T00:00:00.000Z",
                "end_date": "2014-11-30T23:59:59.000Z",
            },
        }
    )
    report = Report.fills(
        datetime(2014, 11, 1, tzinfo=timezone.utc),
        datetime(2014, 11, 30, 23, 59, 59, tzinfo=timezone.utc),
        "BTC-USD",
    )

    info = await c.create_report(report)

    assert isinstance(info, ReportInfo)
    assert info.status == "pending"
    assert info.completed_at is None
    assert info.params.end_date == datetime(2014, 11, 30, 23, 59, 59, tzinfo=timezone.utc)
    assert json.loads(seen[0].content) == {
        "type": "fills",
        "start_date": "2014-11-01T00:00:00.000Z",
        "end_date": "2014-11-30T23:59:59.000Z",
        "product_id": "BTC-USD",
        "format": "pdf",
    }


@pytest.mark.asyncio
async def test_convert_stablecoin():
    c, seen = recording_client(
        {
            "id": "8942caee-f9d5-4600-a894-4811268545db",
            "amount": "10000.00",
            "from_account_id": "7849cc79-8b01-4793-9345-bc6b5f08acce",
            "to_account_id": "105c3e58-0898-4106-8283-dc5781cda07b",
            "from": "USD",
            "to": "USDC",
        }
    )

    out = await c.convert_stablecoin("USD", "USDC", "10000.00")

    assert out.amount == 10000.0
    assert out.to_currency == "USDC"
    assert json.loads(seen[0].content) == {"from": "USD", "to": "USDC", "amount": "10000.00"}


def test_from_env(monkeypatch):
    monkeypatch.setenv("CB_API_KEY", "APIKEY")
    monkeypatch.setenv("CB_API_SECRET", SECRET)
    monkeypatch.setenv("CB_API_PASSPHRASE", "PASSPHRASE")
    monkeypatch.setenv("CB_SANDBOX", "1")

    c = PrivateClient.from_env(session=httpx.AsyncClient())

    assert c.credentials.key == "APIKEY"
    assert c.base_url == "https://api-public.sandbox.pro.coinbase.com"


def test_from_env_missing_variable(monkeypatch):
    from coinbase_client.errors import CoinbaseConfigError

    monkeypatch.delenv("CB_API_KEY", raising=False)

    with pytest.raises(CoinbaseConfigError, match="CB_API_KEY"):
        Credentials.from_env()


@pytest.mark.asyncio
async def test_client_closes_owned_session():
    async with PrivateClient(Credentials("APIKEY", SECRET, "PASSPHRASE")) as c:
        session = c.session
    assert session.is_closed


def test_from_env_passes_timeout(monkeypatch):
    monkeypatch.setenv("CB_API_KEY", "APIKEY")
    monkeypatch.setenv("CB_API_SECRET", SECRET)
    monkeypatch.setenv("CB_API_PASSPHRASE", "PASSPHRASE")
    monkeypatch.delenv("CB_SANDBOX", raising=False)

    c = PrivateClient.from_env(timeout=2.5)

    assert c.base_url == "https://api.pro.coinbase.com"
    assert c.session.timeout == httpx.Timeout(2.5)
