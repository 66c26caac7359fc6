"""BoostConfiguration — weights and regex rules that drive the relevance scorer.

Rules are data: a configuration can be loaded from a versioned JSON
document (``load_boost_config``) and tested independently of the scoring
code.  Keys may be given in ``snake_case`` or ``camelCase``.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from embedvault.exceptions import ConfigurationError

_PATTERN_FIELDS = (
    "method_implementation_patterns",
    "implementation_content_patterns",
    "implementation_signature_patterns",
)

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _to_snake(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


@dataclass(frozen=True, slots=True)
class PatternRule:
    """A regex matched against lower-cased chunk text, worth *boost* on a hit."""

    pattern: re.Pattern[str]
    boost: float

    @classmethod
    def compile(cls, pattern: str, boost: float) -> PatternRule:
        try:
            compiled = re.compile(pattern)
        except re.error as e:
            msg = f"Invalid boost pattern {pattern!r}: {e}"
            raise ConfigurationError(msg) from e
        return cls(pattern=compiled, boost=float(boost))

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None

    def to_dict(self) -> dict[str, Any]:
        return {"pattern": self.pattern.pattern, "boost": self.boost}


def _rules(*specs: tuple[str, float]) -> tuple[PatternRule, ...]:
    return tuple(PatternRule.compile(p, b) for p, b in specs)


@dataclass(frozen=True, slots=True)
class BoostConfiguration:
    """Static weights for :func:`embedvault.scoring.entity_name_relevance_boost`.

    Never mutated at runtime; build a new instance (``dataclasses.replace``
    or :meth:`from_dict`) to tune.
    """

    name: str = "default"
    version: int = 1

    entity_name_exact_match_boost: float = 0.2
    entity_name_partial_match_boost: float = 0.1
    entity_name_fuzzy_match_threshold: float = 0.7
    entity_name_fuzzy_match_boost: float = 0.1

    implementation_boost_multiplier: float = 1.5
    file_name_match_boost: float = 0.08
    directory_match_boost: float = 0.04

    substantial_content_threshold: int = 200
    substantial_content_boost: float = 0.03
    large_content_threshold: int = 800
    large_content_boost: float = 0.05

    language_match_boost: float = 0.03
    code_type_match_boost: float = 0.04
    implementation_vs_declaration_boost: float = 0.05

    max_total_boost: float = 0.5

    implementation_diversification_threshold: float = 0.5
    entity_boost_multiplier: float = 0.1

    method_implementation_patterns: tuple[PatternRule, ...] = field(
        default_factory=lambda: _rules(
            (r"\b(?:async\s+)?(?:def|function|func|fn)\s+\w+\s*\(", 0.1),
            (r"\b(?:public|private|protected|static)\s+(?:async\s+)?\w+\s*\([^)]*\)\s*[:{]", 0.08),
            (r"\b(?:this|self)\.\w+\s*=", 0.05),
        )
    )
    implementation_content_patterns: tuple[PatternRule, ...] = field(
        default_factory=lambda: _rules(
            (r"\breturn\b", 0.05),
            (r"\b(?:if|for|while|switch|try)\b", 0.05),
            (r"\bawait\b", 0.03),
            (r"\b(?:throw|raise)\b", 0.03),
        )
    )
    implementation_signature_patterns: tuple[PatternRule, ...] = field(
        default_factory=lambda: _rules(
            (r"\b(?:async\s+)?def\s+\w+\s*\(", 0.15),
            (r"\b(?:async\s+)?function\s+\w+\s*\(", 0.15),
            (r"\b(?:public|private|protected)\s+(?:async\s+)?\w+\s*\(", 0.12),
            (r"\bclass\s+\w+", 0.1),
        )
    )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BoostConfiguration:
        """Build a configuration from a JSON-style mapping.

        Missing keys keep their defaults.  Unknown keys and invalid regexes
        raise :class:`ConfigurationError`.
        """
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for raw_key, value in data.items():
            key = _to_snake(raw_key)
            if key not in known:
                msg = f"Unknown boost configuration key: {raw_key!r}"
                raise ConfigurationError(msg)
            if key in _PATTERN_FIELDS:
                kwargs[key] = tuple(_rule_from_dict(rule) for rule in value)
            else:
                kwargs[key] = value
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in _PATTERN_FIELDS:
                out[f.name] = [rule.to_dict() for rule in value]
            else:
                out[f.name] = value
        return out


def _rule_from_dict(rule: Any) -> PatternRule:
    if not isinstance(rule, dict) or "pattern" not in rule or "boost" not in rule:
        msg = f"Pattern rule must have 'pattern' and 'boost': {rule!r}"
        raise ConfigurationError(msg)
    return PatternRule.compile(rule["pattern"], rule["boost"])


def load_boost_config(path: str | Path) -> BoostConfiguration:
    """Read a :class:`BoostConfiguration` from a JSON file."""
    try:
        data = json.loads(Path(path).read_text())
    except (OSError, ValueError) as e:
        msg = f"Cannot read boost configuration from {path}: {e}"
        raise ConfigurationError(msg) from e
    if not isinstance(data, dict):
        msg = f"Boost configuration in {path} must be a JSON object"
        raise ConfigurationError(msg)
    return BoostConfiguration.from_dict(data)


DEFAULT_BOOST_CONFIG = BoostConfiguration()
