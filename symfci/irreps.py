from __future__ import annotations

from dataclasses import dataclass

# Abelian point groups with irreps ordered so that the direct product is the
# bitwise XOR of the irrep indices.
_GROUP_LABELS: dict[str, tuple[str, ...]] = {
    "c1": ("A",),
    "ci": ("Ag", "Au"),
    "c2": ("A", "B"),
    "cs": ("Ap", "App"),
    "d2": ("A", "B1", "B2", "B3"),
    "c2v": ("A1", "A2", "B1", "B2"),
    "c2h": ("Ag", "Bg", "Au", "Bu"),
    "d2h": ("Ag", "B1g", "B2g", "B3g", "Au", "B1u", "B2u", "B3u"),
}

GROUPS: tuple[str, ...] = tuple(_GROUP_LABELS)


def irrep_product(a: int, b: int) -> int:
    """Direct product of two Abelian irreps."""

    return int(a) ^ int(b)


@dataclass(frozen=True)
class Irreps:
    """Irreducible representations of an Abelian point group.

    Attributes
    ----------
    group : str
        Schoenflies symbol, one of ``c1, ci, c2, cs, d2, c2v, c2h, d2h``.
    """

    group: str = "c1"

    def __post_init__(self) -> None:
        key = str(self.group).strip().lower()
        if key not in _GROUP_LABELS:
            raise ValueError(f"unsupported point group {self.group!r}; expected one of {GROUPS}")
        object.__setattr__(self, "group", key)

    @classmethod
    def from_number(cls, number: int) -> "Irreps":
        """Build from the group index in :data:`GROUPS` order."""

        number = int(number)
        if number < 0 or number >= len(GROUPS):
            raise ValueError("group number out of range")
        return cls(GROUPS[number])

    @property
    def nirrep(self) -> int:
        return len(_GROUP_LABELS[self.group])

    @property
    def labels(self) -> tuple[str, ...]:
        return _GROUP_LABELS[self.group]

    def label(self, irrep: int) -> str:
        self.check(irrep)
        return _GROUP_LABELS[self.group][int(irrep)]

    def check(self, irrep: int) -> int:
        irrep = int(irrep)
        if irrep < 0 or irrep >= self.nirrep:
            raise ValueError(f"irrep {irrep} out of range for group {self.group} (nirrep={self.nirrep})")
        return irrep

    @staticmethod
    def product(a: int, b: int) -> int:
        return irrep_product(a, b)
