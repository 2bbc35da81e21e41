"""Canonical match records handed to the prediction engine by the provider."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional


def _finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def _norm(name: Optional[str]) -> str:
    return (name or "").strip().lower()


@dataclass(frozen=True)
class Participant:
    """One side of a ranked 1v1 match."""

    name: str
    uuid: Optional[str] = None
    elo_after: Optional[float] = None
    elo_delta: Optional[float] = None

    @property
    def key(self) -> str:
        return _norm(self.name)

    def matches(self, player: str) -> bool:
        """True when ``player`` is this participant's name or uuid."""
        target = _norm(player)
        if not target:
            return False
        return self.key == target or (self.uuid is not None and _norm(self.uuid) == target)


@dataclass(frozen=True)
class RawMatchRecord:
    """A single ranked match as reported by the match history API."""

    played_at_ms: int
    participants: tuple[Participant, ...] = field(default_factory=tuple)
    match_id: Optional[str] = None
    winner_uuid: Optional[str] = None
    duration_ms: Optional[float] = None

    def find_participant(self, player: str) -> Optional[Participant]:
        for participant in self.participants:
            if participant.matches(player):
                return participant
        return None

    def opponent_of(self, participant: Participant) -> Optional[Participant]:
        for other in self.participants:
            if other is not participant:
                return other
        return None


def resolve_winner(record: RawMatchRecord) -> Optional[Participant]:
    """Decide who won ``record``, or ``None`` when it cannot be told.

    Uses the explicit winner uuid when it names a participant. Otherwise
    falls back to the rating deltas of the first two participants: with
    both deltas known the larger one wins if it is positive and strictly
    greater; with only one known its sign decides.
    """
    players = list(record.participants[:2])
    if record.winner_uuid:
        for participant in players:
            if participant.uuid and participant.uuid == record.winner_uuid:
                return participant

    if len(players) < 2:
        # A lone participant can still be resolved from its own delta.
        if players and _finite(players[0].elo_delta) and players[0].elo_delta > 0:
            return players[0]
        return None

    one, two = players
    known = [p for p in players if _finite(p.elo_delta)]
    if len(known) == 2:
        top, second = sorted(known, key=lambda p: p.elo_delta, reverse=True)
        if top.elo_delta > second.elo_delta and top.elo_delta > 0:
            return top
        return None
    if len(known) == 1:
        only = known[0]
        other = two if only is one else one
        if only.elo_delta > 0:
            return only
        if only.elo_delta < 0:
            return other
    return None


def resolve_outcome(record: RawMatchRecord, participant: Participant) -> Optional[bool]:
    """Win/loss for ``participant`` under the same rule as ``resolve_winner``."""
    winner = resolve_winner(record)
    if winner is not None:
        return winner is participant
    if (
        len(record.participants) < 2
        and _finite(participant.elo_delta)
        and participant.elo_delta < 0
    ):
        return False
    return None
