from __future__ import annotations
"""
Strategies for short-code generation in clicktrack_platform.

Provided strategies:
- HexStrategy: random bytes rendered as lowercase hex, truncated to L (default 8, i.e. 4 bytes)
- RandomStrategy: random Base62 string of length L

Common helpers:
- _safe_len: Resolve/normalize desired code length from argument/config (clamped to [4, 32])

Configuration (via clicktrack_platform.config.settings):
- CODE_STRATEGY: "hex" (default) or "random"
- CODE_LENGTH: default length (8; clamped 4..32)

Codes are random, so uniqueness is not guaranteed by construction. The
LinkManager checks each candidate against the links collection and retries.
"""

import logging
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Type

from clicktrack_platform.config import settings

log = logging.getLogger(__name__)

_BASE62_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _safe_len(length: Optional[int]) -> int:
    """Resolve desired code length from arg or config, clamped to [4, 32]."""
    L = int(length) if length is not None else int(getattr(settings, "CODE_LENGTH", 8))
    return max(4, min(32, L))


class BaseStrategy(ABC):
    """Abstract base for code generation strategies."""
    @abstractmethod
    def generate(self, *, length: Optional[int] = None) -> str:
        """Generate a short code of the requested (clamped) length."""
        raise NotImplementedError


@dataclass(frozen=True)
class HexStrategy(BaseStrategy):
    """Random bytes -> lowercase hex. Length 8 gives 32 bits of entropy."""
    def generate(self, *, length: Optional[int] = None) -> str:
        L = _safe_len(length)
        return secrets.token_hex((L + 1) // 2)[:L]


@dataclass(frozen=True)
class RandomStrategy(BaseStrategy):
    """Random Base62 codes; denser than hex for the same length."""
    def generate(self, *, length: Optional[int] = None) -> str:
        L = _safe_len(length)
        return "".join(secrets.choice(_BASE62_ALPHABET) for _ in range(L))


# Strategy registry and factory
STRATEGY_REGISTRY: Dict[str, Type[BaseStrategy]] = {
    "hex": HexStrategy,
    "random": RandomStrategy,
    "rand": RandomStrategy,
    "base62": RandomStrategy,
}


def get_strategy_from_config(name: Optional[str] = None) -> BaseStrategy:
    """Resolve the active strategy from parameter or settings.CODE_STRATEGY."""
    key = (name or getattr(settings, "CODE_STRATEGY", "hex") or "hex").strip().lower()
    cls = STRATEGY_REGISTRY.get(key)
    if cls is None:
        log.warning("Unknown code strategy %r, using hex", key)
        cls = HexStrategy
    log.debug("Using code strategy: %s -> %s", key, cls.__name__)
    return cls()
