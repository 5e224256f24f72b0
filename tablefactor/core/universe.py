"""
tablefactor/core/universe.py

Finite variables, the universe that mints them, and domain helpers.

A Variable is compared by identity. Its integer id is assigned by the
Universe in creation order and is used only to give domains a
deterministic ordering.
"""

from __future__ import annotations

from typing import AbstractSet, Dict, FrozenSet, Iterable, List, Optional, Tuple

from tablefactor.errors import InvalidArgumentError, PreconditionError


class Variable:
    """
    A discrete variable with a fixed arity.

    Attributes:
        id: Universe-assigned ordering key
        name: Human-readable label
        arity: Number of values the variable takes (values are 0..arity-1)
    """

    __slots__ = ("id", "name", "arity")

    def __init__(self, id: int, name: str, arity: int):
        if arity < 1:
            raise PreconditionError(f"Variable {name!r} needs arity >= 1, got {arity}")
        self.id = id
        self.name = name
        self.arity = arity

    def size(self) -> int:
        return self.arity

    def __lt__(self, other: "Variable") -> bool:
        return self.id < other.id

    def __repr__(self) -> str:
        return f"Variable({self.name!r}, arity={self.arity})"


Domain = FrozenSet[Variable]


def make_domain(vars_: Iterable[Variable]) -> Domain:
    """Build a domain (unordered, duplicate-free) from variables."""
    return frozenset(vars_)


def ordered(domain: Iterable[Variable]) -> Tuple[Variable, ...]:
    """Return canonical (id-sorted) ordering of variables."""
    return tuple(sorted(set(domain)))


def num_assignments(domain: Iterable[Variable]) -> int:
    """Number of joint assignments to the given variables."""
    n = 1
    for v in set(domain):
        n *= v.arity
    return n


def includes(a: AbstractSet[Variable], b: AbstractSet[Variable]) -> bool:
    """True if domain a contains every variable of b."""
    return a >= b


class Universe:
    """
    Factory and registry for variables.

    Variables minted by one universe get strictly increasing ids, so
    ordering by id reproduces creation order.
    """

    def __init__(self):
        self._vars: List[Variable] = []
        self._by_name: Dict[str, Variable] = {}

    def new_finite_variable(self, arity: int, name: Optional[str] = None) -> Variable:
        """
        Create a new variable.

        Args:
            arity: Number of values
            name: Optional unique name (defaults to "v<id>")

        Returns:
            The new Variable
        """
        vid = len(self._vars)
        if name is None:
            name = f"v{vid}"
        if name in self._by_name:
            raise InvalidArgumentError(f"Universe already has a variable named {name!r}")
        var = Variable(vid, name, arity)
        self._vars.append(var)
        self._by_name[name] = var
        return var

    def new_finite_variables(self, n: int, arity: int, prefix: str = "x") -> List[Variable]:
        """Create n variables named prefix0..prefix{n-1} with the same arity."""
        return [self.new_finite_variable(arity, f"{prefix}{i}") for i in range(n)]

    def var(self, name: str) -> Variable:
        """Get variable by name."""
        return self._by_name[name]

    def has_var(self, name: str) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._vars)

    def __iter__(self):
        return iter(self._vars)
