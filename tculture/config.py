"""
Ledger configuration loaded from `<data_dir>/config.toml`.

Example:

    [authority]
    governor = "gov"
    oracle = "oracle"
    minter = "studio"        # optional; omit to let anyone mint

    [pricing]
    alpha = 100
    beta = 50
    gamma = 20
    min_unit_price = 1
    int_bits = 256
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore

from .governance import Authority
from .pricing import DEFAULT_WEIGHTS, MIN_UNIT_PRICE, PricingWeights
from .util import DEFAULT_INT_BITS

CONFIG_FILENAME = "config.toml"
DATA_DIRNAME = ".tculture"
DEFAULT_AUTHORITY = "governor"


@dataclass(frozen=True)
class LedgerConfig:
    authority: Authority = field(default_factory=lambda: Authority(DEFAULT_AUTHORITY, DEFAULT_AUTHORITY))
    weights: PricingWeights = DEFAULT_WEIGHTS
    min_unit_price: int = MIN_UNIT_PRICE
    int_bits: int = DEFAULT_INT_BITS


def _coerce_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _int_key(section: dict[str, Any], key: str, default: int, *, minimum: int = 0) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    if value < minimum:
        raise ValueError(f"{key} must be >= {minimum}, got {value}")
    return value


def _str_key(section: dict[str, Any], key: str, default: str | None) -> str | None:
    value = section.get(key, default)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} must be a non-empty string")
    return value.strip()


def parse_config(data: dict[str, Any]) -> LedgerConfig:
    """Build a LedgerConfig from parsed TOML."""
    auth = _coerce_dict(data.get("authority"))
    governor = _str_key(auth, "governor", DEFAULT_AUTHORITY)
    oracle = _str_key(auth, "oracle", governor)
    minter = _str_key(auth, "minter", None)

    pricing = _coerce_dict(data.get("pricing"))
    weights = PricingWeights(
        alpha=_int_key(pricing, "alpha", DEFAULT_WEIGHTS.alpha),
        beta=_int_key(pricing, "beta", DEFAULT_WEIGHTS.beta),
        gamma=_int_key(pricing, "gamma", DEFAULT_WEIGHTS.gamma),
    )
    int_bits = _int_key(pricing, "int_bits", DEFAULT_INT_BITS, minimum=8)
    weights.validate(bits=int_bits)

    return LedgerConfig(
        authority=Authority(governor=governor, oracle=oracle, minter=minter),
        weights=weights,
        min_unit_price=_int_key(pricing, "min_unit_price", MIN_UNIT_PRICE, minimum=1),
        int_bits=int_bits,
    )


def load_config(data_dir: Path) -> LedgerConfig:
    """
    Load `config.toml` from a data directory.

    A missing file yields the defaults.

    Raises:
        ValueError: If the TOML is malformed or a key has the wrong type
    """
    path = data_dir / CONFIG_FILENAME
    if not path.exists():
        return LedgerConfig()
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Malformed {path}: {e}") from e
    return parse_config(data)


def render_config(config: LedgerConfig) -> str:
    """Serialize a config back to TOML text."""
    a = config.authority
    lines = [
        "[authority]",
        f"governor = {json.dumps(a.governor)}",
        f"oracle = {json.dumps(a.oracle)}",
    ]
    if a.minter is not None:
        lines.append(f"minter = {json.dumps(a.minter)}")
    lines.extend([
        "",
        "[pricing]",
        f"alpha = {config.weights.alpha}",
        f"beta = {config.weights.beta}",
        f"gamma = {config.weights.gamma}",
        f"min_unit_price = {config.min_unit_price}",
        f"int_bits = {config.int_bits}",
    ])
    return "\n".join(lines) + "\n"


def write_config(data_dir: Path, config: LedgerConfig) -> Path:
    data_dir.mkdir(parents=True, exist_ok=True)
    path = data_dir / CONFIG_FILENAME
    path.write_text(render_config(config), encoding="utf-8")
    return path
