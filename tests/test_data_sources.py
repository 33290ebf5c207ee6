import asyncio

import aiohttp
import pytest

from config import DEFAULT_CONFIG
from conftest import NOW, FakeResponse, FakeSession
from data_sources import (
    BIRDEYE_TOKENLIST_URL,
    DEXSCREENER_BASE_URL,
    RAYDIUM_PAIRS_URL,
    SHYFT_TOKENS_URL,
    BirdeyeSource,
    DexScreenerSource,
    RaydiumSource,
    ShyftSource,
    build_sources,
    pick_main_pair,
    record_from_dexscreener_pair,
)

SEARCH_URL = f"{DEXSCREENER_BASE_URL}/search"


def dex_pair(address="MintA", chain="solana", liquidity=12_000, created_ms=(NOW - 1800) * 1000, **overrides):
    pair = {
        "chainId": chain,
        "dexId": "raydium",
        "pairAddress": f"Pair{address}",
        "baseToken": {"address": address, "symbol": "PEPE", "name": "Pepe"},
        "priceUsd": "0.00012",
        "liquidity": {"usd": liquidity},
        "volume": {"h24": 30_000},
        "priceChange": {"m5": 3.5, "h1": -2.0, "h24": 40},
        "txns": {"h24": {"buys": 120, "sells": 40}},
        "marketCap": 90_000,
        "pairCreatedAt": created_ms,
    }
    pair.update(overrides)
    return pair


@pytest.fixture
def config():
    return dict(DEFAULT_CONFIG, SHYFT_API_KEY="shyft-key")


def test_dexscreener_pair_is_normalized():
    record = record_from_dexscreener_pair(dex_pair())

    assert record.address == "MintA"
    assert record.symbol == "PEPE"
    assert record.price_usd == pytest.approx(0.00012)
    assert record.liquidity_usd == 12_000
    assert record.volume_24h_usd == 30_000
    assert record.market_cap_usd == 90_000
    assert record.created_at == pytest.approx(NOW - 1800)
    assert record.price_change.m5 == 3.5 and record.price_change.h1 == -2.0
    assert (record.buys_24h, record.sells_24h) == (120, 40)
    assert record.pair_address == "PairMintA"


def test_missing_fields_default_to_zero_or_unknown():
    record = record_from_dexscreener_pair({"baseToken": {"address": "MintB"}})

    assert record.price_usd == 0
    assert record.liquidity_usd == 0
    assert record.volume_24h_usd == 0
    assert record.market_cap_usd is None
    assert record.created_at is None
    assert record.symbol == ""


def test_pair_without_address_is_rejected():
    with pytest.raises(ValueError):
        record_from_dexscreener_pair({"baseToken": {}})


def test_pick_main_pair_prefers_liquidity():
    pairs = [dex_pair("A", liquidity=10), dex_pair("B", liquidity=500), dex_pair("C", liquidity=None)]

    assert pick_main_pair(pairs)["baseToken"]["address"] == "B"
    assert pick_main_pair([]) is None


def test_dexscreener_filters_chain_and_sorts_newest_first(run, config):
    payload = {"pairs": [
        dex_pair("Old", created_ms=(NOW - 5000) * 1000),
        dex_pair("Eth", chain="ethereum"),
        dex_pair("New", created_ms=(NOW - 60) * 1000),
    ]}
    session = FakeSession({SEARCH_URL: FakeResponse(payload=payload)})

    records = run(DexScreenerSource(config).fetch(session))

    assert [r.address for r in records] == ["New", "Old"]
    assert all(r.source == "DexScreener" for r in records)
    assert session.calls[0]["params"] == {"q": "USDC SOL"}
    assert isinstance(session.calls[0]["timeout"], aiohttp.ClientTimeout)
    assert session.calls[0]["timeout"].total == 10


def test_dexscreener_null_pairs_is_empty(run, config):
    session = FakeSession({SEARCH_URL: FakeResponse(payload={"pairs": None})})

    assert run(DexScreenerSource(config).fetch(session)) == []


def test_http_500_gives_empty_result(run, config):
    source = DexScreenerSource(config)
    session = FakeSession({SEARCH_URL: FakeResponse(status=500)})

    records = run(source.fetch(session))

    assert records == []
    assert source.stats["failures"] == 1
    assert source.stats["requests"] == 1


@pytest.mark.parametrize("error", [
    asyncio.TimeoutError(),
    aiohttp.ClientConnectionError("connection reset"),
])
def test_transport_errors_give_empty_result(run, config, error):
    source = DexScreenerSource(config)

    assert run(source.fetch(FakeSession({SEARCH_URL: error}))) == []
    assert source.stats["failures"] == 1


def test_invalid_json_gives_empty_result(run, config):
    session = FakeSession({SEARCH_URL: FakeResponse(json_error=ValueError("Expecting value"))})

    assert run(DexScreenerSource(config).fetch(session)) == []


@pytest.mark.parametrize("payload", [[], "oops", {"pairs": {"not": "a list"}}])
def test_unexpected_shape_gives_empty_result(run, config, payload):
    session = FakeSession({SEARCH_URL: FakeResponse(payload=payload)})

    assert run(DexScreenerSource(config).fetch(session)) == []


def test_one_bad_item_does_not_discard_the_batch(run, config):
    payload = {"pairs": [dex_pair("Good"), {"chainId": "solana", "baseToken": None}, "garbage"]}
    session = FakeSession({SEARCH_URL: FakeResponse(payload=payload)})

    records = run(DexScreenerSource(config).fetch(session))

    assert [r.address for r in records] == ["Good"]


def test_each_fetch_requeries_the_provider(run, config):
    session = FakeSession({SEARCH_URL: FakeResponse(payload={"pairs": [dex_pair()]})})
    source = DexScreenerSource(config)

    run(source.fetch(session))
    run(source.fetch(session))

    assert len(session.calls) == 2


def test_raydium_keeps_pairs_with_age(run, config):
    payload = [
        {"name": "WIF/SOL", "ammId": "Amm1", "baseMint": "MintW", "price": 1.5,
         "liquidity": 40_000, "volume24h": 90_000, "timeDiff": 600},
        {"name": "OLD/SOL", "ammId": "Amm2", "baseMint": "MintO", "price": 2, "liquidity": 1e6},
        {"name": "BAD/SOL", "ammId": "Amm3", "timeDiff": 100},
    ]
    session = FakeSession({RAYDIUM_PAIRS_URL: FakeResponse(payload=payload)})

    records = run(RaydiumSource(config, clock=lambda: NOW).fetch(session))

    assert len(records) == 1
    record = records[0]
    assert record.address == "MintW"
    assert record.symbol == "WIF"
    assert record.created_at == NOW - 600
    assert record.pair_address == "Amm1"
    assert record.liquidity_usd == 40_000


def test_raydium_unexpected_shape(run, config):
    session = FakeSession({RAYDIUM_PAIRS_URL: FakeResponse(payload={"data": []})})

    assert run(RaydiumSource(config).fetch(session)) == []


def test_birdeye_tokens_and_api_key_header(run, config):
    config["BIRDEYE_API_KEY"] = "bird-key"
    payload = {"data": {"tokens": [
        {"address": "MintB", "symbol": "BONK", "name": "Bonk", "price": 0.00002,
         "liquidity": 800_000, "v24hUSD": 2_000_000, "mc": 1.2e9, "v24hChangePercent": -4.2},
        {"symbol": "NOADDR"},
    ]}}
    session = FakeSession({BIRDEYE_TOKENLIST_URL: FakeResponse(payload=payload)})

    records = run(BirdeyeSource(config).fetch(session))

    assert [r.address for r in records] == ["MintB"]
    assert records[0].volume_24h_usd == 2_000_000
    assert records[0].market_cap_usd == 1.2e9
    assert records[0].created_at is None
    assert records[0].price_change.h24 == -4.2
    assert session.calls[0]["headers"]["X-API-KEY"] == "bird-key"
    assert session.calls[0]["params"]["sort_by"] == "v24hUSD"


def test_birdeye_without_key_sends_no_key_header(run, config):
    session = FakeSession({BIRDEYE_TOKENLIST_URL: FakeResponse(payload={"data": {"tokens": []}})})

    run(BirdeyeSource(config).fetch(session))

    assert "X-API-KEY" not in session.calls[0]["headers"]


def test_shyft_enriches_addresses_with_dexscreener(run, config):
    config["SHYFT_LOOKUP_LIMIT"] = 2
    routes = {
        SHYFT_TOKENS_URL: FakeResponse(payload={"success": True, "result": [
            {"address": "S1"}, {"address": "S2"}, {"address": "S3"},
        ]}),
        f"{DEXSCREENER_BASE_URL}/tokens/S1": FakeResponse(payload={"pairs": [
            dex_pair("S1", liquidity=100), dex_pair("S1", liquidity=9_000, pairAddress="Main"),
        ]}),
        f"{DEXSCREENER_BASE_URL}/tokens/S2": FakeResponse(status=502),
    }
    session = FakeSession(routes)

    records = run(ShyftSource(config).fetch(session))

    assert len(records) == 1
    assert records[0].address == "S1"
    assert records[0].pair_address == "Main"
    assert records[0].source == "Shyft"
    assert session.calls[0]["headers"] == {"x-api-key": "shyft-key"}
    # S3 is past the lookup limit
    assert not any(call["url"].endswith("/S3") for call in session.calls)


def test_shyft_unsuccessful_answer(run, config):
    session = FakeSession({SHYFT_TOKENS_URL: FakeResponse(payload={"success": False, "message": "bad key"})})

    assert run(ShyftSource(config).fetch(session)) == []


def test_build_sources_honours_flags(config):
    names = [s.name for s in build_sources(config)]
    assert names == ["DexScreener", "Raydium", "Birdeye", "Shyft"]

    config.update(ENABLE_RAYDIUM=False, SHYFT_API_KEY="")
    assert [s.name for s in build_sources(config)] == ["DexScreener", "Birdeye"]
