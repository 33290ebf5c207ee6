"""
Module de sources de données pour le radar de lancements
Fournit une interface commune pour récupérer des tokens depuis DexScreener, Raydium, Birdeye et Shyft
"""

import asyncio
import aiohttp
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from errors import MalformedPayload, ProviderUnavailable, SourceError
from models import PriceChange, TokenRecord

logger = logging.getLogger("data_sources")

DEXSCREENER_BASE_URL = "https://api.dexscreener.com/latest/dex"
RAYDIUM_PAIRS_URL = "https://api.raydium.io/v2/main/pairs"
BIRDEYE_TOKENLIST_URL = "https://public-api.birdeye.so/defi/tokenlist"
SHYFT_TOKENS_URL = "https://api.shyft.to/sol/v1/token/all_tokens"

# Les erreurs de parsing d'un élément isolé: on saute l'élément, pas la réponse
ITEM_ERRORS = (AttributeError, KeyError, TypeError, ValueError)


def safe_float(value: Any, default: float = 0.0) -> float:
    """Convertit en float sans jamais lever d'exception"""
    try:
        return float(value) if value is not None else default
    except (ValueError, TypeError):
        return default


def optional_float(value: Any) -> Optional[float]:
    """Comme safe_float, mais None signifie 'inconnu'"""
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def safe_int(value: Any, default: int = 0) -> int:
    try:
        return int(value) if value is not None else default
    except (ValueError, TypeError):
        return default


def record_from_dexscreener_pair(pair: Dict[str, Any], source: str = "dexscreener") -> TokenRecord:
    """
    Convertit une paire DexScreener en TokenRecord

    Args:
        pair: Paire brute renvoyée par l'API DexScreener
        source: Nom de la source à inscrire dans le record

    Returns:
        TokenRecord normalisé
    """
    base_token = pair.get("baseToken") or {}
    address = base_token.get("address") or ""
    if not address:
        raise ValueError("pair without base token address")

    liquidity = pair.get("liquidity") or {}
    volume = pair.get("volume") or {}
    price_change = pair.get("priceChange") or {}
    h24_txns = (pair.get("txns") or {}).get("h24") or {}

    # DexScreener donne pairCreatedAt en millisecondes
    created_ms = optional_float(pair.get("pairCreatedAt"))

    return TokenRecord(
        address=address,
        symbol=base_token.get("symbol") or "",
        name=base_token.get("name") or "",
        price_usd=safe_float(pair.get("priceUsd")),
        liquidity_usd=safe_float(liquidity.get("usd")),
        volume_24h_usd=safe_float(volume.get("h24")),
        market_cap_usd=optional_float(pair.get("marketCap") or pair.get("fdv")),
        created_at=created_ms / 1000 if created_ms else None,
        price_change=PriceChange(
            m5=safe_float(price_change.get("m5")),
            h1=safe_float(price_change.get("h1")),
            h24=safe_float(price_change.get("h24")),
        ),
        pair_address=pair.get("pairAddress"),
        dex=pair.get("dexId"),
        buys_24h=safe_int(h24_txns.get("buys")),
        sells_24h=safe_int(h24_txns.get("sells")),
        source=source,
    )


def pick_main_pair(pairs: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """La paire principale d'un token est celle qui a le plus de liquidité"""
    if not pairs:
        return None
    return max(pairs, key=lambda p: safe_float((p.get("liquidity") or {}).get("usd")))


class TokenSource(ABC):
    """
    Source de données pour les tokens

    Chaque appel à fetch() interroge à nouveau le fournisseur et renvoie une liste finie
    de TokenRecord. fetch() ne lève jamais: erreur réseau, timeout, statut HTTP != 200 ou
    réponse inattendue donnent une liste vide et un warning dans les logs.
    """

    name = "unknown"

    def __init__(self, config: Dict[str, Any], clock: Callable[[], float] = time.time):
        self.config = config
        self.clock = clock
        self.timeout = aiohttp.ClientTimeout(total=config.get("HTTP_TIMEOUT_SECONDS", 10))
        self.stats = {
            "requests": 0,
            "failures": 0,
            "records": 0,
            "last_update": 0.0,
        }

    async def fetch(self, session: aiohttp.ClientSession) -> List[TokenRecord]:
        """
        Récupère les tokens de la source

        Args:
            session: Session aiohttp partagée par la boucle de scan

        Returns:
            Liste des tokens normalisés (vide en cas d'erreur)
        """
        try:
            records = list(await self._collect(session))
        except SourceError as e:
            self.stats["failures"] += 1
            logger.warning(f"⚠️ {e}")
            return []
        except Exception as e:
            self.stats["failures"] += 1
            logger.warning(f"⚠️ [{self.name}] Unexpected error while fetching: {e!r}")
            return []

        self.stats["records"] += len(records)
        self.stats["last_update"] = self.clock()
        logger.info(f"✅ {self.name}: {len(records)} tokens")
        return records

    async def _collect(self, session: aiohttp.ClientSession) -> Iterable[TokenRecord]:
        payload = await self._fetch_payload(session)
        return self._parse(payload)

    @abstractmethod
    async def _fetch_payload(self, session: aiohttp.ClientSession) -> Any:
        """Effectue la (ou les) requête(s) HTTP et renvoie le JSON brut"""

    @abstractmethod
    def _parse(self, payload: Any) -> Iterator[TokenRecord]:
        """Transforme la réponse brute en TokenRecord, élément par élément"""

    async def _get_json(self, session: aiohttp.ClientSession, url: str,
                        params: Optional[Dict[str, Any]] = None,
                        headers: Optional[Dict[str, str]] = None) -> Any:
        """
        GET HTTP avec le timeout configuré

        Raises:
            ProviderUnavailable: erreur réseau, timeout ou statut != 200
            MalformedPayload: le corps n'est pas du JSON
        """
        self.stats["requests"] += 1
        try:
            async with session.get(url, params=params, headers=headers, timeout=self.timeout) as response:
                if response.status != 200:
                    raise ProviderUnavailable(self.name, f"HTTP {response.status}: {url}")
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise MalformedPayload(self.name, f"Invalid JSON from {url}: {e}") from e
        except asyncio.TimeoutError as e:
            raise ProviderUnavailable(self.name, f"Timeout: {url}") from e
        except aiohttp.ClientError as e:
            raise ProviderUnavailable(self.name, f"Request error: {e}") from e

    def _parse_items(self, items: Iterable[Any], convert: Callable[[Any], Optional[TokenRecord]]) -> Iterator[TokenRecord]:
        for item in items:
            try:
                record = convert(item)
            except ITEM_ERRORS as e:
                logger.debug(f"[{self.name}] item skipped: {e}")
                continue
            if record is not None:
                yield record

    def get_stats(self) -> Dict[str, Any]:
        return dict(self.stats, source=self.name)


class DexScreenerSource(TokenSource):
    """Paires récentes via l'endpoint de recherche DexScreener (pas de clé API)"""

    name = "DexScreener"

    def __init__(self, config: Dict[str, Any], clock: Callable[[], float] = time.time):
        super().__init__(config, clock)
        self.base_url = config.get("DEXSCREENER_BASE_URL", DEXSCREENER_BASE_URL).rstrip("/")
        self.query = config.get("DEXSCREENER_QUERY", "USDC SOL")
        self.chain = config.get("CHAIN_ID", "solana")

    async def _fetch_payload(self, session):
        return await self._get_json(
            session,
            f"{self.base_url}/search",
            params={"q": self.query},
            headers={"Accept": "application/json"},
        )

    def _parse(self, payload):
        if not isinstance(payload, dict) or not isinstance(payload.get("pairs") or [], list):
            raise MalformedPayload(self.name, "expected an object with a 'pairs' list")

        pairs = [p for p in payload.get("pairs") or [] if isinstance(p, dict) and p.get("chainId") == self.chain]
        # Les plus récentes d'abord
        pairs.sort(key=lambda p: safe_float(p.get("pairCreatedAt")), reverse=True)
        return self._parse_items(pairs, lambda p: record_from_dexscreener_pair(p, source=self.name))


class RaydiumSource(TokenSource):
    """
    Liste complète des paires Raydium
    Seules les paires qui annoncent un âge (timeDiff, en secondes) sont considérées comme des lancements
    """

    name = "Raydium"

    def __init__(self, config: Dict[str, Any], clock: Callable[[], float] = time.time):
        super().__init__(config, clock)
        self.url = config.get("RAYDIUM_PAIRS_URL", RAYDIUM_PAIRS_URL)

    async def _fetch_payload(self, session):
        return await self._get_json(session, self.url)

    def _parse(self, payload):
        if not isinstance(payload, list):
            raise MalformedPayload(self.name, "expected a list of pairs")
        now = self.clock()
        return self._parse_items(payload, lambda pair: self._to_record(pair, now))

    def _to_record(self, pair: Dict[str, Any], now: float) -> Optional[TokenRecord]:
        time_diff = optional_float(pair.get("timeDiff"))
        address = pair.get("baseMint")
        if not time_diff or not address:
            return None

        # "SYMBOL/SOL" -> "SYMBOL"
        pair_name = pair.get("name") or ""
        symbol = pair_name.split("/")[0] if pair_name else ""

        return TokenRecord(
            address=address,
            symbol=symbol,
            name=pair_name or "New Token",
            price_usd=safe_float(pair.get("price")),
            liquidity_usd=safe_float(pair.get("liquidity")),
            volume_24h_usd=safe_float(pair.get("volume24h")),
            market_cap_usd=optional_float(pair.get("marketCap")),
            created_at=now - time_diff,
            pair_address=pair.get("ammId"),
            dex="raydium",
            source=self.name,
        )


class BirdeyeSource(TokenSource):
    """Token list Birdeye triée par volume 24h (clé API optionnelle)"""

    name = "Birdeye"

    def __init__(self, config: Dict[str, Any], clock: Callable[[], float] = time.time):
        super().__init__(config, clock)
        self.url = config.get("BIRDEYE_TOKENLIST_URL", BIRDEYE_TOKENLIST_URL)
        self.api_key = config.get("BIRDEYE_API_KEY", "")
        self.chain = config.get("CHAIN_ID", "solana")
        self.limit = config.get("BIRDEYE_LIMIT", 50)

    async def _fetch_payload(self, session):
        headers = {"Accept": "application/json", "x-chain": self.chain}
        if self.api_key:
            headers["X-API-KEY"] = self.api_key
        params = {"sort_by": "v24hUSD", "sort_type": "desc", "offset": 0, "limit": self.limit}
        return await self._get_json(session, self.url, params=params, headers=headers)

    def _parse(self, payload):
        data = payload.get("data") if isinstance(payload, dict) else None
        tokens = data.get("tokens") if isinstance(data, dict) else None
        if not isinstance(tokens, list):
            raise MalformedPayload(self.name, "expected data.tokens list")
        return self._parse_items(tokens, self._to_record)

    def _to_record(self, token: Dict[str, Any]) -> Optional[TokenRecord]:
        address = token.get("address")
        if not address:
            return None
        return TokenRecord(
            address=address,
            symbol=token.get("symbol") or "",
            name=token.get("name") or "",
            price_usd=safe_float(token.get("price")),
            liquidity_usd=safe_float(token.get("liquidity")),
            volume_24h_usd=safe_float(token.get("v24hUSD")),
            market_cap_usd=optional_float(token.get("mc")),
            price_change=PriceChange(h24=safe_float(token.get("v24hChangePercent"))),
            source=self.name,
        )


class ShyftSource(TokenSource):
    """
    Derniers tokens connus de Shyft (clé API requise)
    Shyft ne donne pas de données de marché: chaque adresse est enrichie via DexScreener
    """

    name = "Shyft"

    def __init__(self, config: Dict[str, Any], clock: Callable[[], float] = time.time):
        super().__init__(config, clock)
        self.url = config.get("SHYFT_TOKENS_URL", SHYFT_TOKENS_URL)
        self.api_key = config.get("SHYFT_API_KEY", "")
        self.lookup_limit = config.get("SHYFT_LOOKUP_LIMIT", 5)
        self.dexscreener_url = config.get("DEXSCREENER_BASE_URL", DEXSCREENER_BASE_URL).rstrip("/")

    async def _fetch_payload(self, session):
        return await self._get_json(
            session,
            self.url,
            params={"network": "mainnet-beta", "page": 1, "size": 20},
            headers={"x-api-key": self.api_key},
        )

    def _parse(self, payload):
        if not isinstance(payload, dict) or not payload.get("success") or not isinstance(payload.get("result"), list):
            raise MalformedPayload(self.name, "expected {success: true, result: [...]}")
        for token in payload["result"]:
            if isinstance(token, dict) and token.get("address"):
                yield token["address"]

    async def _collect(self, session):
        addresses = list(self._parse(await self._fetch_payload(session)))[:self.lookup_limit]
        if not addresses:
            return []

        # Une requête DexScreener par adresse, en parallèle; un échec n'annule pas les autres
        results = await asyncio.gather(
            *(self._lookup(session, address) for address in addresses),
            return_exceptions=True,
        )
        records = []
        for address, result in zip(addresses, results):
            if isinstance(result, Exception):
                logger.debug(f"[{self.name}] lookup failed for {address}: {result}")
            elif result is not None:
                records.append(result)
        return records

    async def _lookup(self, session, address: str) -> Optional[TokenRecord]:
        data = await self._get_json(session, f"{self.dexscreener_url}/tokens/{address}")
        pair = pick_main_pair((data or {}).get("pairs") or [])
        if pair is None:
            return None
        return record_from_dexscreener_pair(pair, source=self.name)


def build_sources(config: Dict[str, Any]) -> List[TokenSource]:
    """
    Instancie les sources activées dans la configuration

    Returns:
        Liste des sources actives
    """
    sources: List[TokenSource] = []
    if config.get("ENABLE_DEXSCREENER", True):
        sources.append(DexScreenerSource(config))
    if config.get("ENABLE_RAYDIUM", True):
        sources.append(RaydiumSource(config))
    if config.get("ENABLE_BIRDEYE", True):
        sources.append(BirdeyeSource(config))
    if config.get("ENABLE_SHYFT", True):
        if config.get("SHYFT_API_KEY"):
            sources.append(ShyftSource(config))
        else:
            logger.warning("⚠️ Shyft API not configured - source disabled")

    logger.info(f"Initialized {len(sources)} sources: {', '.join(s.name for s in sources)}")
    return sources
