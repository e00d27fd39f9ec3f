"""
Scoring engine: weighted linear normalization with per-factor explanations.

score_record() is pure. Every numeric field with a non-zero effective weight
is normalized to [0, 1], multiplied by its weight, and summed; the final score
is that sum over the maximum achievable sum, scaled to 0-100.

Missing or non-numeric values are skipped, not errors. Source data is
expected to drift from the schema.
"""
import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from siteiq.errors import InvalidArgumentError
from siteiq.pipeline.schema import DIRECTION_MINIMIZE, ResolvedSchema


@dataclass
class ExplanationFactor:
    name: str
    value: float
    weight: float
    contribution: float
    direction: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'value': self.value,
            'weight': self.weight,
            'contribution': self.contribution,
            'direction': self.direction,
            'reason': self.reason,
        }


@dataclass
class Explanation:
    factors: List[ExplanationFactor] = field(default_factory=list)
    summary: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {'factors': [f.to_dict() for f in self.factors], 'summary': self.summary}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> 'Explanation':
        data = data or {}
        return cls(
            factors=[ExplanationFactor(**f) for f in data.get('factors') or []],
            summary=data.get('summary', ''),
        )


@dataclass
class ScoredResult:
    """One record's outcome. `ranking` stays 0 until rank_results() runs."""
    record_id: str
    final_score: float
    raw_score: float
    explanation: Explanation
    ranking: int = 0


# ── Scoring ───────────────────────────────────────────────────────────────────

def score_record(values: Mapping[str, Any], schema: ResolvedSchema) -> Tuple[float, float, Explanation]:
    """
    Score one record's field values.

    Returns (raw_score, final_score, explanation). Raises InvalidArgumentError
    when the schema is missing or the record has no values at all.
    """
    if schema is None:
        raise InvalidArgumentError("resolved schema cannot be None")
    if not values:
        raise InvalidArgumentError("record values cannot be empty")

    factors = []
    total = 0.0
    max_possible = 0.0

    for name, fd in schema.fields.items():
        if not fd.is_numeric:
            continue
        weight = schema.effective_weight(name)
        if weight == 0:
            continue
        if name not in values:
            continue

        number = _to_float(values[name])
        if number is None:
            continue

        normalized = normalize_value(number, fd.min, fd.max, fd.direction)
        contribution = normalized * weight
        total += contribution
        max_possible += weight

        factors.append(ExplanationFactor(
            name=name,
            value=number,
            weight=weight,
            contribution=contribution,
            direction=fd.direction,
            reason=_reason(name, number, normalized, fd.direction),
        ))

    final = (total / max_possible) * 100 if max_possible > 0 else 0.0
    final = max(0.0, min(100.0, final))

    factors.sort(key=lambda f: abs(f.contribution), reverse=True)
    return total, final, Explanation(factors=factors, summary=_summary(factors, final))


def _to_float(value) -> Optional[float]:
    """Numbers pass through; strings must parse as a JSON number. Anything else is None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            return None
        if isinstance(parsed, bool) or not isinstance(parsed, (int, float)):
            return None
        number = float(parsed)
    else:
        return None
    return number if math.isfinite(number) else None


def normalize_value(value: float, lo: Optional[float], hi: Optional[float], direction: str) -> float:
    """Map a raw value to [0, 1] relative to its bounds and direction."""
    if lo is None or hi is None:
        # No bounds: treat 100 as the reference scale
        return max(0.0, min(1.0, value / 100.0))

    if hi == lo:
        return 0.5

    normalized = max(0.0, min(1.0, (value - lo) / (hi - lo)))
    if direction == DIRECTION_MINIMIZE:
        normalized = 1.0 - normalized
    return normalized


def _quality(normalized: float) -> str:
    if normalized >= 0.75:
        return 'excellent'
    if normalized >= 0.5:
        return 'good'
    if normalized >= 0.25:
        return 'fair'
    return 'poor'


def _readable(name: str) -> str:
    return ' '.join(word[:1].upper() + word[1:] for word in name.replace('_', ' ').split(' '))


def _reason(name: str, value: float, normalized: float, direction: str) -> str:
    better = 'lower is better' if direction == DIRECTION_MINIMIZE else 'higher is better'
    return (f"{_readable(name)} value is {value:.2f}, which is {_quality(normalized)} "
            f"for this metric ({better})")


def _summary(factors: List[ExplanationFactor], final_score: float) -> str:
    if not factors:
        return "No scoring factors contributed to this record's score."

    top = [f.name.replace('_', ' ') for f in factors[:3] if f.contribution > 0]
    if not top:
        return f"Final score is {final_score:.1f} based on weighted factor analysis."

    summary = f"Final score is {final_score:.1f}."
    if len(top) == 1:
        summary += f" The primary contributing factor is {top[0]}."
    elif len(top) == 2:
        summary += f" Top contributing factors are {top[0]} and {top[1]}."
    else:
        summary += f" Top contributing factors are {', '.join(top[:-1])}, and {top[-1]}."
    return summary


# ── Ranking ───────────────────────────────────────────────────────────────────

def rank_results(results: List[ScoredResult]) -> List[ScoredResult]:
    """
    Order by final score descending, ties by record id ascending, and assign
    dense 1-based rankings. Returns a new list; the input list is not reordered.
    """
    ordered = sorted(results, key=lambda r: (-r.final_score, r.record_id))
    for i, result in enumerate(ordered, start=1):
        result.ranking = i
    return ordered
