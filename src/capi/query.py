"""Query parameter builder for list endpoints."""

from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlencode


def _merge(existing: Tuple[str, ...], values: Iterable[str]) -> Tuple[str, ...]:
    merged = list(existing)
    for value in values:
        if value not in merged:
            merged.append(value)
    return tuple(merged)


@dataclass(frozen=True)
class QueryParams:
    """Immutable set of list-endpoint query parameters.

    Every ``with_*`` method returns a new instance. Multiple values for one
    key are rendered as a single comma-joined parameter, e.g. ``names=a,b``.
    """

    page: Optional[int] = None
    per_page: Optional[int] = None
    order_by: Optional[str] = None
    label_selector: Optional[str] = None
    include: Tuple[str, ...] = ()
    fields: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()
    filters: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()

    def with_page(self, page: int) -> "QueryParams":
        if page < 1:
            raise ValueError(f"page must be positive, got {page}")
        return replace(self, page=page)

    def with_per_page(self, per_page: int) -> "QueryParams":
        if per_page < 1:
            raise ValueError(f"per_page must be positive, got {per_page}")
        return replace(self, per_page=per_page)

    def with_order_by(self, order_by: str) -> "QueryParams":
        return replace(self, order_by=order_by)

    def with_label_selector(self, selector: str) -> "QueryParams":
        return replace(self, label_selector=selector)

    def with_include(self, *resources: str) -> "QueryParams":
        return replace(self, include=_merge(self.include, resources))

    def with_fields(self, resource: str, *names: str) -> "QueryParams":
        """Select the fields returned for an included resource (replaces)."""
        kept = tuple((r, v) for r, v in self.fields if r != resource)
        return replace(self, fields=kept + ((resource, tuple(names)),))

    def with_filter(self, name: str, *values: str) -> "QueryParams":
        """Add values to a filter; repeated calls accumulate."""
        updated = []
        found = False
        for key, existing in self.filters:
            if key == name:
                existing = _merge(existing, values)
                found = True
            updated.append((key, existing))
        if not found:
            updated.append((name, _merge((), values)))
        return replace(self, filters=tuple(updated))

    @property
    def filter_map(self) -> Dict[str, List[str]]:
        return {key: list(values) for key, values in self.filters}

    def to_pairs(self) -> List[Tuple[str, str]]:
        pairs: List[Tuple[str, str]] = []
        if self.page is not None:
            pairs.append(("page", str(self.page)))
        if self.per_page is not None:
            pairs.append(("per_page", str(self.per_page)))
        if self.order_by:
            pairs.append(("order_by", self.order_by))
        if self.label_selector:
            pairs.append(("label_selector", self.label_selector))
        if self.include:
            pairs.append(("include", ",".join(self.include)))
        for resource, names in self.fields:
            if names:
                pairs.append((f"fields[{resource}]", ",".join(names)))
        for key, values in self.filters:
            if values:
                pairs.append((key, ",".join(values)))
        return pairs

    def to_wire_query(self) -> str:
        return urlencode(self.to_pairs(), safe=",[]")

    def __bool__(self) -> bool:
        return bool(self.to_pairs())
