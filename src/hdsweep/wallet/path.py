"""
BIP32 derivation paths.

Paths are rooted at "M" (public derivation result) or "m" (private), e.g.
"M/9999'/0/5". The first step selects the service key branch and is the only
hardened step; the remaining steps stay non-hardened so a service xpub can
derive the same child public key the private key holder derives.
"""

from __future__ import annotations

from dataclasses import dataclass

from hdsweep.constants import HARDENED
from hdsweep.errors import InvalidPath


@dataclass(frozen=True)
class PathStep:
    index: int
    hardened: bool = False

    @property
    def child_number(self) -> int:
        return self.index + HARDENED if self.hardened else self.index

    def __str__(self) -> str:
        return f"{self.index}'" if self.hardened else str(self.index)


@dataclass(frozen=True)
class DerivationPath:
    steps: tuple[PathStep, ...] = ()
    public: bool = True

    @classmethod
    def parse(cls, path: str | DerivationPath) -> DerivationPath:
        """Parse "M/0'/0/5" style notation. ' or h mark a hardened step."""
        if isinstance(path, DerivationPath):
            return path
        if not isinstance(path, str):
            raise InvalidPath(f"Path must be a string, got {type(path).__name__}")

        parts = path.strip().split("/")
        root = parts[0]
        if root not in ("m", "M"):
            raise InvalidPath(f"Path must start with 'm' or 'M': {path!r}")

        steps = []
        for part in parts[1:]:
            hardened = part.endswith(("'", "h", "H"))
            index_str = part[:-1] if hardened else part
            if not (index_str.isascii() and index_str.isdigit()):
                raise InvalidPath(f"Invalid path element {part!r} in {path!r}")
            index = int(index_str)
            if index >= HARDENED:
                raise InvalidPath(f"Path index out of range: {part!r}")
            steps.append(PathStep(index, hardened))

        return cls(tuple(steps), public=root == "M")

    def __str__(self) -> str:
        return "/".join([("M" if self.public else "m")] + [str(step) for step in self.steps])

    def __len__(self) -> int:
        return len(self.steps)

    def to_public(self) -> DerivationPath:
        return DerivationPath(self.steps, public=True)

    def to_private(self) -> DerivationPath:
        return DerivationPath(self.steps, public=False)

    def unhardened(self) -> DerivationPath:
        """Same path with every hardened marker stripped."""
        return DerivationPath(tuple(PathStep(s.index) for s in self.steps), public=self.public)

    def child(self, index: int, hardened: bool = False) -> DerivationPath:
        return DerivationPath(self.steps + (PathStep(index, hardened),), public=self.public)

    def relative_to(self, prefix: DerivationPath) -> DerivationPath:
        """Steps remaining after ``prefix``; the root marker is ignored."""
        if self.steps[: len(prefix.steps)] != prefix.steps:
            raise InvalidPath(f"Path {self} is not below {prefix}")
        return DerivationPath(self.steps[len(prefix.steps) :], public=self.public)

    @property
    def service_key_index(self) -> int:
        if not self.steps:
            raise InvalidPath(f"Path {self} has no service key index")
        return self.steps[0].index

    @property
    def service_root(self) -> DerivationPath:
        """The hardened M/keyIndex' node the service xpub sits at."""
        return DerivationPath((PathStep(self.service_key_index, True),), public=True)


def receive_path(key_index: int, index: int, chain: int = 0) -> DerivationPath:
    """M/keyIndex'/chain/index"""
    return DerivationPath((PathStep(key_index, True), PathStep(chain), PathStep(index)))
