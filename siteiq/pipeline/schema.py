"""
Schema resolution: global field definitions merged with a tenant override.

Config documents look like:

    {
        "identifier_column": "site_id",      # legacy key: "site_id_column"
        "fields": {
            "unemployment_rate": {"type": "percentage", "min": 0, "max": 100,
                                  "weight": 1.0, "direction": "maximize"},
            ...
        },
        "weights": {"unemployment_rate": 1.3}   # tenant overrides only
    }

Weight precedence, highest first: tenant standalone weight, tenant field's own
weight, global field's own weight.
"""
import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

from siteiq.errors import ConfigurationError


# ── Field vocabulary ──────────────────────────────────────────────────────────

FIELD_TYPES = ('percentage', 'index', 'integer', 'numeric', 'population', 'text', 'identifier')

# Only these types take part in scoring
NUMERIC_TYPES = frozenset({'percentage', 'index', 'integer', 'numeric', 'population'})

DIRECTION_MAXIMIZE = 'maximize'
DIRECTION_MINIMIZE = 'minimize'
DIRECTIONS = (DIRECTION_MAXIMIZE, DIRECTION_MINIMIZE)

IDENTIFIER_KEYS = ('identifier_column', 'site_id_column')


@dataclass(frozen=True)
class FieldDef:
    """One column's contract: type, bounds, weight and optimization direction."""
    type: str
    required: bool = False
    min: Optional[float] = None
    max: Optional[float] = None
    weight: float = 0.0
    direction: str = DIRECTION_MAXIMIZE
    description: str = ''

    @property
    def is_numeric(self) -> bool:
        return self.type in NUMERIC_TYPES

    @classmethod
    def from_dict(cls, name: str, data: Any) -> 'FieldDef':
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"field '{name}' must be a mapping, got {type(data).__name__}")

        field_type = data.get('type')
        if field_type not in FIELD_TYPES:
            raise ConfigurationError(f"field '{name}' has unknown type: {field_type!r}")

        direction = data.get('direction') or DIRECTION_MAXIMIZE
        if direction not in DIRECTIONS:
            raise ConfigurationError(f"field '{name}' has unknown direction: {direction!r}")

        return cls(
            type=field_type,
            required=bool(data.get('required', False)),
            min=_optional_number(name, 'min', data.get('min')),
            max=_optional_number(name, 'max', data.get('max')),
            weight=_optional_number(name, 'weight', data.get('weight')) or 0.0,
            direction=direction,
            description=data.get('description') or '',
        )

    def to_dict(self) -> Dict[str, Any]:
        out = {'type': self.type, 'required': self.required,
               'weight': self.weight, 'direction': self.direction}
        if self.min is not None:
            out['min'] = self.min
        if self.max is not None:
            out['max'] = self.max
        if self.description:
            out['description'] = self.description
        return out


def _optional_number(field_name, key, value):
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"field '{field_name}' has non-numeric {key}: {value!r}")
    return float(value)


@dataclass(frozen=True)
class ResolvedSchema:
    """
    The merged, run-ready configuration. Read-only once built: `fields` and
    `weights` are exposed as mapping proxies.
    """
    fields: Mapping[str, FieldDef]
    identifier_column: str
    weights: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'fields', MappingProxyType(dict(self.fields)))
        object.__setattr__(self, 'weights', MappingProxyType(dict(self.weights)))

    def effective_weight(self, name: str) -> float:
        if name in self.weights:
            return self.weights[name]
        fd = self.fields.get(name)
        return fd.weight if fd else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'identifier_column': self.identifier_column,
            'fields': {name: fd.to_dict() for name, fd in self.fields.items()},
            'weights': dict(self.weights),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'ResolvedSchema':
        """Rebuild a schema from its serialized form (e.g. a run's snapshot)."""
        fields = {name: FieldDef.from_dict(name, fd) for name, fd in (data.get('fields') or {}).items()}
        return cls(fields=fields,
                   identifier_column=data.get('identifier_column', ''),
                   weights=data.get('weights') or {})


# ── Resolution ────────────────────────────────────────────────────────────────

ConfigInput = Union[None, str, bytes, Mapping[str, Any]]


def _parse(raw: ConfigInput, label: str) -> Optional[Mapping[str, Any]]:
    if raw is None:
        return None
    if isinstance(raw, (str, bytes)):
        if not raw.strip():
            return None
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise ConfigurationError(f"failed to parse {label} config: {e}") from e
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"{label} config must be a mapping, got {type(raw).__name__}")
    return raw


def _identifier(cfg: Mapping[str, Any]) -> Optional[str]:
    for key in IDENTIFIER_KEYS:
        if cfg.get(key):
            return cfg[key]
    return None


def _parse_fields(cfg: Mapping[str, Any], label: str) -> Dict[str, FieldDef]:
    raw_fields = cfg.get('fields') or {}
    if not isinstance(raw_fields, Mapping):
        raise ConfigurationError(f"{label} config 'fields' must be a mapping")
    return {name: FieldDef.from_dict(name, fd) for name, fd in raw_fields.items()}


def resolve_schema(global_config: ConfigInput, tenant_override: ConfigInput = None) -> ResolvedSchema:
    """
    Merge the global config with an optional tenant override.

    Accepts mappings or JSON text. Raises ConfigurationError if the global
    config has no identifier column or no fields, or if the override's
    `weights` names a field that does not exist after merging.
    """
    global_cfg = _parse(global_config, 'global')
    if global_cfg is None:
        raise ConfigurationError("global config is missing")

    identifier_column = _identifier(global_cfg)
    if not identifier_column:
        raise ConfigurationError("global config missing identifier column")

    fields = _parse_fields(global_cfg, 'global')
    if not fields:
        raise ConfigurationError("global config has no fields defined")

    weights = {name: fd.weight for name, fd in fields.items()}

    tenant_cfg = _parse(tenant_override, 'tenant')
    if tenant_cfg is not None:
        tenant_identifier = _identifier(tenant_cfg)
        if tenant_identifier:
            identifier_column = tenant_identifier

        for name, fd in _parse_fields(tenant_cfg, 'tenant').items():
            fields[name] = fd
            weights[name] = fd.weight

        tenant_weights = tenant_cfg.get('weights') or {}
        if not isinstance(tenant_weights, Mapping):
            raise ConfigurationError("tenant config 'weights' must be a mapping")
        for name, weight in tenant_weights.items():
            if name not in fields:
                raise ConfigurationError(f"cannot override weight for non-existent field: {name}")
            if isinstance(weight, bool) or not isinstance(weight, (int, float)):
                raise ConfigurationError(f"weight for field '{name}' must be a number, got {weight!r}")
            weights[name] = float(weight)

    return ResolvedSchema(fields=fields, identifier_column=identifier_column, weights=weights)
