from __future__ import annotations

from dataclasses import dataclass

from src.tenancy.domain.exceptions import InvalidStoreIdError

# Values that front-ends send when a store id was never resolved.
_SENTINELS = frozenset({"undefined", "null", "none", "nan"})


@dataclass(frozen=True, slots=True)
class StoreId:
    """Value object for a store identifier; rejects empty and sentinel values."""
    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise InvalidStoreIdError("Store ID must be a string", details={"store_id": repr(self.value)})
        stripped = self.value.strip()
        if not stripped or stripped.lower() in _SENTINELS:
            raise InvalidStoreIdError("Store ID is required", details={"store_id": self.value})
        object.__setattr__(self, "value", stripped)

    def __str__(self) -> str:
        return self.value


def validate_store_id(store_id: object) -> str:
    return StoreId(store_id).value  # type: ignore[arg-type]
