"""
Schema Classification

Decides which query types can share a merged UNION ALL statement.

Two query types are merge-compatible when they declare the same ordered list
of output fields. The comparison is done on a signature string such as
"name:string,pageviews:number". Field order matters and is never normalised:
UNION ALL matches columns by position.
"""

from typing import Dict, List, Optional

from sitelens.query.registry import QueryConfig, QueryRegistry

SIGNATURE_SEPARATOR = ","


def schema_signature(config: QueryConfig) -> Optional[str]:
    """Return the schema signature of `config`, or None if it declares no output fields."""
    fields = config.output_fields
    if not fields:
        return None
    return SIGNATURE_SEPARATOR.join(f"{f.name}:{f.type}" for f in fields)


# =============================================================================
# Introspection
# =============================================================================

def are_queries_compatible(registry: QueryRegistry, type_a: str, type_b: str) -> bool:
    """True if both types are registered and share a non-empty signature."""
    config_a, config_b = registry.get(type_a), registry.get(type_b)
    if config_a is None or config_b is None:
        return False

    sig_a, sig_b = schema_signature(config_a), schema_signature(config_b)
    return bool(sig_a and sig_b and sig_a == sig_b)


def get_compatible_queries(registry: QueryRegistry, query_type: str) -> List[str]:
    """All other registered types sharing `query_type`'s signature."""
    config = registry.get(query_type)
    signature = schema_signature(config) if config else None
    if not signature:
        return []

    return [
        other for other, other_config in registry.items()
        if other != query_type and schema_signature(other_config) == signature
    ]


def get_schema_groups(registry: QueryRegistry) -> Dict[str, List[str]]:
    """Map every non-empty signature to the types declaring it."""
    groups: Dict[str, List[str]] = {}
    for query_type, config in registry.items():
        signature = schema_signature(config)
        if not signature:
            continue
        groups.setdefault(signature, []).append(query_type)
    return groups
