"""JSON API endpoints for balance, price and market queries."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from dexa.exceptions import InvalidRequestError
from dexa.models import (
    CustomPeriod,
    Market,
    MarketFilter,
    Page,
    PredefinedPeriod,
    TimeFrame,
    TimeRange,
)

router = APIRouter()


def _decimal_to_str(obj: Any) -> Any:
    """Recursively convert Decimal and datetime values to strings for JSON serialization."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {k: _decimal_to_str(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_decimal_to_str(item) for item in obj]
    return obj


async def _read_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except Exception:
        raise InvalidRequestError("Invalid JSON body") from None
    if not isinstance(body, dict):
        raise InvalidRequestError("JSON body must be an object")
    return body


def _parse_time_range(body: dict[str, Any]) -> TimeRange:
    raw = body.get("time_range")
    if not isinstance(raw, dict):
        raise InvalidRequestError("Missing required field: time_range")

    predefined = None
    if raw.get("predefined_period") is not None:
        try:
            value = int(raw["predefined_period"])
            # 0 is the unset enum value
            predefined = PredefinedPeriod(value) if value != 0 else None
        except (TypeError, ValueError):
            raise InvalidRequestError(
                f"invalid predefined period: {raw['predefined_period']!r}"
            ) from None

    custom = None
    if raw.get("custom_period") is not None:
        period = raw["custom_period"]
        if not isinstance(period, dict):
            raise InvalidRequestError("custom_period must be an object")
        custom = CustomPeriod(
            start_date=str(period.get("start_date", "")),
            end_date=str(period.get("end_date", "")),
        )

    return TimeRange(predefined_period=predefined, custom_period=custom)


def _parse_page(body: dict[str, Any]) -> Page | None:
    raw = body.get("page")
    if raw is None:
        return None
    try:
        return Page(number=int(raw.get("number", 1)), size=int(raw.get("size", 0)))
    except (AttributeError, TypeError, ValueError):
        raise InvalidRequestError(f"invalid page: {raw!r}") from None


def _parse_time_frame(body: dict[str, Any]) -> TimeFrame | None:
    raw = body.get("time_frame")
    if not raw:
        return None
    try:
        return TimeFrame(str(raw).lower())
    except ValueError:
        raise InvalidRequestError(f"invalid time frame: {raw!r}") from None


def _parse_market_ids(body: dict[str, Any]) -> list[str]:
    raw = body.get("market_ids") or []
    if not isinstance(raw, list):
        raise InvalidRequestError("market_ids must be a list")
    return [str(market_id) for market_id in raw]


def _market_to_dict(market: Market) -> dict[str, Any]:
    return {
        "id": market.id,
        "provider_name": market.provider_name,
        "url": market.url,
        "base_asset": market.base_asset,
        "quote_asset": market.quote_asset,
        "active": market.active,
    }


@router.get("/health")
async def health() -> JSONResponse:
    return JSONResponse(content={"status": "ok"})


@router.post("/v1/balances")
async def get_balances(request: Request) -> JSONResponse:
    """Bucketed balances per market.

    Body: time_range (required), market_ids, page, time_frame.
    """
    body = await _read_body(request)
    result = await request.app.state.balance_service.get_balances(
        _parse_time_range(body),
        _parse_page(body),
        _parse_time_frame(body),
        *_parse_market_ids(body),
    )

    content = {
        "market_balances": {
            market_id: [
                {
                    "base_balance": b.base_balance,
                    "quote_balance": b.quote_balance,
                    "time": b.time,
                }
                for b in balances
            ]
            for market_id, balances in result.markets_balances.items()
        }
    }
    return JSONResponse(content=_decimal_to_str(content))


@router.post("/v1/prices")
async def get_prices(request: Request) -> JSONResponse:
    """Bucketed prices per market with reference-currency legs and per-pair VWAPs.

    Body: time_range (required), market_ids, page, time_frame, reference_currency.
    """
    body = await _read_body(request)
    result = await request.app.state.price_service.get_prices(
        _parse_time_range(body),
        _parse_page(body),
        str(body.get("reference_currency") or ""),
        _parse_time_frame(body),
        *_parse_market_ids(body),
    )

    content = {
        "market_prices": {
            market_id: [
                {
                    "base_price": p.base_price,
                    "base_reference_price": p.base_reference_price,
                    "quote_price": p.quote_price,
                    "quote_reference_price": p.quote_reference_price,
                    "time": p.time,
                }
                for p in prices
            ]
            for market_id, prices in result.markets_prices.items()
        },
        "average_prices": [
            {
                "market_ids": avg.market_ids,
                "average_price": avg.average_price,
                "average_reference_price": avg.average_reference_price,
            }
            for avg in result.average_prices
        ],
    }
    return JSONResponse(content=_decimal_to_str(content))


@router.post("/v1/markets")
async def list_markets(request: Request) -> JSONResponse:
    """Catalog markets matching any of the given filters.

    Body: market_filters (list of {url, base_asset, quote_asset}), page.
    """
    body = await _read_body(request)
    raw_filters = body.get("market_filters") or []
    if not isinstance(raw_filters, list):
        raise InvalidRequestError("market_filters must be a list")

    filters = [
        MarketFilter(
            url=str(f.get("url", "")),
            base_asset=str(f.get("base_asset", "")),
            quote_asset=str(f.get("quote_asset", "")),
        )
        for f in raw_filters
        if isinstance(f, dict)
    ]
    markets = await request.app.state.market_service.list_markets(filters, _parse_page(body))
    return JSONResponse(content={"markets": [_market_to_dict(m) for m in markets]})
