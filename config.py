"""
Configuration du radar de lancements Solana
"""

import os
import json
import logging
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

logger = logging.getLogger("config")

CONFIG_FILE = "config.json"

# Configuration par défaut
DEFAULT_CONFIG = {
    # Scan & Timing
    "SCAN_INTERVAL_SECONDS": 20,
    "ERROR_COOLDOWN_SECONDS": 60,
    "HTTP_TIMEOUT_SECONDS": 10,
    "HEARTBEAT_INTERVAL_SECONDS": 300,
    "PERFORMANCE_CHECK_DELAY_SECONDS": 3600,
    "PERFORMANCE_REPORT_INTERVAL_HOURS": 6,

    # Filtering
    "MIN_LIQUIDITY_USD": 100,
    "MAX_TOKEN_AGE_SECONDS": 7200,
    "MAX_MARKET_CAP_USD": 10_000_000,
    "MIN_SYMBOL_LENGTH": 2,
    "MAX_SYMBOL_LENGTH": 10,
    "MAX_ALERTS_PER_SOURCE": 5,

    # Scoring (seuil minimal du score -> niveau)
    "RISK_LEVEL_THRESHOLDS": {"VERY_LOW": 90, "LOW": 70, "MODERATE": 50, "HIGH": 30},

    # Sources
    "CHAIN_ID": "solana",
    "ENABLE_DEXSCREENER": True,
    "DEXSCREENER_QUERY": "USDC SOL",
    "ENABLE_RAYDIUM": True,
    "ENABLE_BIRDEYE": True,
    "BIRDEYE_API_KEY": "",
    "ENABLE_SHYFT": True,
    "SHYFT_API_KEY": "",
    "SHYFT_LOOKUP_LIMIT": 5,

    # Notifier
    "ENABLE_TELEGRAM": False,
    "TELEGRAM_BOT_TOKEN": "",
    "TELEGRAM_CHAT_ID": "",
    "SEND_STARTUP_ALERT": True,

    # Déduplication
    "SEEN_TTL_SECONDS": 0,
    "SEEN_MAX_ENTRIES": 50_000,

    # System
    "TOKEN_CACHE_FILE": "token_cache.json",
    "TOKEN_CACHE_TTL_SECONDS": 1800,
    "LOG_LEVEL": "INFO",
}

# Clés qui doivent rester strictement positives
POSITIVE_KEYS = (
    "SCAN_INTERVAL_SECONDS",
    "ERROR_COOLDOWN_SECONDS",
    "HTTP_TIMEOUT_SECONDS",
    "HEARTBEAT_INTERVAL_SECONDS",
    "SEEN_MAX_ENTRIES",
)


def load_config(config_file: Optional[str] = None) -> Dict[str, Any]:
    """
    Point d'entrée unique de la configuration du radar.

    Ordre de résolution:
        1. .env chargé dans l'environnement
        2. USE_ENV_CONFIG=true -> variables d'environnement uniquement
        3. sinon config.json (écrit avec les valeurs par défaut s'il est absent)

    Les clés absentes reprennent leur valeur par défaut, puis la configuration est validée.
    """
    path = config_file or CONFIG_FILE
    load_dotenv()

    if os.environ.get("USE_ENV_CONFIG", "").lower() == "true":
        logger.info("Configuration lue depuis l'environnement (USE_ENV_CONFIG)")
        overrides = load_config_from_env()
    elif not os.path.exists(path):
        save_config(DEFAULT_CONFIG, path)
        overrides = {}
    else:
        overrides = _read_json(path)

    config = {**DEFAULT_CONFIG, **overrides}
    for problem in validate_config(config):
        logger.warning(f"Configuration: {problem}")
    return config


def _read_json(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"{path} illisible ({e}), valeurs par défaut utilisées")
        return {}
    if not isinstance(data, dict):
        logger.error(f"{path} doit contenir un objet JSON, valeurs par défaut utilisées")
        return {}
    logger.info(f"Configuration chargée: {path}")
    return data


def _parse_env_value(raw: str, default: Any) -> Any:
    # bool avant int: bool est une sous-classe de int
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, dict):
        value = json.loads(raw)
        if not isinstance(value, dict):
            raise ValueError("objet JSON attendu")
        return value
    return raw


def load_config_from_env() -> Dict[str, Any]:
    """Une variable d'environnement par clé de DEFAULT_CONFIG; une valeur invalide garde le défaut."""
    config = {}
    for key, default_value in DEFAULT_CONFIG.items():
        raw = os.environ.get(key)
        if raw is None:
            config[key] = default_value
            continue
        try:
            config[key] = _parse_env_value(raw, default_value)
        except ValueError as e:
            logger.warning(f"{key}={raw!r} ignoré ({e}), défaut: {default_value!r}")
            config[key] = default_value
    return config


def validate_config(config: Dict[str, Any]) -> List[str]:
    """
    Vérifie la cohérence des réglages sans rien modifier.

    Returns:
        Liste des problèmes détectés (vide si tout va bien)
    """
    problems = []
    for key in POSITIVE_KEYS:
        value = config.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            problems.append(f"{key} doit être un nombre positif (reçu {value!r})")

    if config.get("MIN_SYMBOL_LENGTH", 0) > config.get("MAX_SYMBOL_LENGTH", 0):
        problems.append("MIN_SYMBOL_LENGTH dépasse MAX_SYMBOL_LENGTH")

    thresholds = config.get("RISK_LEVEL_THRESHOLDS")
    if not isinstance(thresholds, dict):
        problems.append("RISK_LEVEL_THRESHOLDS doit être un objet {niveau: score minimal}")
    else:
        for level, minimum in thresholds.items():
            if level not in DEFAULT_CONFIG["RISK_LEVEL_THRESHOLDS"]:
                problems.append(f"Niveau de risque inconnu: {level}")
            elif isinstance(minimum, bool) or not isinstance(minimum, (int, float)) or not 0 <= minimum <= 100:
                problems.append(f"Seuil {level} hors de 0..100: {minimum!r}")

    if config.get("ENABLE_TELEGRAM") and not (config.get("TELEGRAM_BOT_TOKEN") and config.get("TELEGRAM_CHAT_ID")):
        problems.append("ENABLE_TELEGRAM sans TELEGRAM_BOT_TOKEN/TELEGRAM_CHAT_ID: alertes envoyées dans les logs")

    return problems


def save_config(config: Dict[str, Any], config_file: Optional[str] = None) -> bool:
    """Écrit la configuration en JSON indenté. Retourne False si l'écriture échoue."""
    path = config_file or CONFIG_FILE
    try:
        with open(path, "w") as f:
            json.dump(config, f, indent=2)
    except OSError as e:
        logger.error(f"Impossible d'écrire {path}: {e}")
        return False
    logger.info(f"Configuration écrite: {path}")
    return True
