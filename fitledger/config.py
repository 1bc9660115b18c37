"""
Configuration for the fitness ledger client.

Defaults live in ``CONFIG``; any key can be overridden through a
``FITLEDGER_<KEY>`` environment variable (``NUM_RUNS`` is also read
without the prefix).
"""

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_DURATION_SECONDS = 10 * 24 * 60 * 60  # 10 days

CONFIG = {
    # Ledger contract and chain identity
    "contract_address": "0x8fdb26641d14a80fccbe87bf455338dd9c539a50",
    "chain_id": 11155111,

    # Decryption authorization
    "duration_seconds": DEFAULT_DURATION_SECONDS,
    "submit_timeout_seconds": 120.0,
    # encrypted inputs not verified by the ledger within this window are dropped
    "pending_ttl_seconds": 3600.0,

    # Crypto context
    "plaintext_modulus": 65537,
    "multiplicative_depth": 1,

    # Ledger transport: "memory" or "fabric"
    "ledger": "memory",
    "channel": "mychannel",
    "chaincode": "fitledger",
    "fabric_profile": "connection-org1.json",
    "fabric_org": "org1.example.com",
    "fabric_user": "Admin",
    "fabric_peers": "peer0.org1.example.com",
    "fabric_key": "priv_sk",
    "fabric_cert": "",

    # Workflow
    "num_runs": 3,
    "data_dir": Path("fitledger_performance_data"),
    "debug": False,
}

_ENV_PREFIX = "FITLEDGER_"


def _coerce(key, raw):
    default = CONFIG[key]
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, Path):
        return Path(raw)
    return raw


def load_config(environ=None):
    """Return a copy of ``CONFIG`` with environment overrides applied."""
    environ = os.environ if environ is None else environ
    config = dict(CONFIG)

    for key in CONFIG:
        raw = environ.get(_ENV_PREFIX + key.upper())
        if raw is None and key == "num_runs":
            raw = environ.get("NUM_RUNS")
        if raw is None:
            continue
        try:
            config[key] = _coerce(key, raw)
        except ValueError:
            logger.warning("[CONFIG] Ignoring invalid value %r for %s", raw, key)

    if config["num_runs"] < 1:
        config["num_runs"] = CONFIG["num_runs"]
    return config


def configure_logging(debug=False):
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
