"""
randomness.py - Randomness sources for winner selection

Winner selection never reaches for a global random generator: the caller
injects a RandomnessSource, which picks one index into the entrant list.

Two sources are provided:
- SeededRandomness: a seeded random.Random. Deterministic, for tests and
  simulations.
- LedgerEntropy: hashes ledger metadata together with the entrant list, the
  way on-chain lotteries derive "randomness" from block data. Anyone who can
  read the ledger can predict (and anyone who can order transactions can
  steer) the result. It is NOT cryptographically secure and must not be used
  where fairness has to hold against an adversary.
"""

from __future__ import annotations
import hashlib
import random
from typing import Optional, Protocol, Sequence

from .core import LedgerView, _canonicalize


class RandomnessSource(Protocol):
    """Picks an index into a non-empty entrant list."""

    def select_index(self, view: LedgerView, players: Sequence[str]) -> int:
        ...


class SeededRandomness:
    """
    Uniform selection from a seeded random.Random.

    Two instances created with the same seed pick the same sequence of
    indices for the same sequence of draws.
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._rng = random.Random(seed)

    def select_index(self, view: LedgerView, players: Sequence[str]) -> int:
        if not players:
            raise ValueError("cannot select from an empty player list")
        return self._rng.randrange(len(players))

    def __repr__(self) -> str:
        return f"SeededRandomness(seed={self.seed!r})"


class LedgerEntropy:
    """
    Pseudo-random selection derived from ledger metadata.

    index = sha256(current_time, sequence_number, players) mod len(players)

    Deterministic for a given ledger state and entrant list. Predictable, and
    NOT cryptographically secure.
    """

    def select_index(self, view: LedgerView, players: Sequence[str]) -> int:
        if not players:
            raise ValueError("cannot select from an empty player list")
        material = _canonicalize([view.current_time, view.sequence_number, list(players)])
        digest = hashlib.sha256(material.encode()).digest()
        return int.from_bytes(digest, "big") % len(players)

    def __repr__(self) -> str:
        return "LedgerEntropy()"
