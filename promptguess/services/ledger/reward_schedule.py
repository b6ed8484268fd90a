"""Halving token-emission schedule.

Each correct guess mints the current reward. When the cumulative total
reaches the halving threshold, the reward is halved (never below 1) and the
total restarts from the excess over the threshold.
"""

from dataclasses import dataclass
from typing import Iterator

from promptguess.lib.exceptions import InvalidInputError

MIN_REWARD = 1


@dataclass(frozen=True)
class EmissionTriple:
    total_minted: int
    current_reward: int
    halving_threshold: int


@dataclass(frozen=True)
class RewardTransition:
    reward: int
    total_minted: int
    current_reward: int
    halving_threshold: int
    halved: bool

    @property
    def triple(self) -> EmissionTriple:
        return EmissionTriple(
            total_minted=self.total_minted,
            current_reward=self.current_reward,
            halving_threshold=self.halving_threshold,
        )


class RewardSchedule:
    def validate(self, state: EmissionTriple) -> None:
        if state.current_reward < MIN_REWARD:
            raise InvalidInputError(
                "Current reward must be positive",
                {"current_reward": state.current_reward},
            )
        if state.halving_threshold <= 0:
            raise InvalidInputError(
                "Halving threshold must be positive",
                {"halving_threshold": state.halving_threshold},
            )
        if state.total_minted < 0:
            raise InvalidInputError(
                "Total minted cannot be negative",
                {"total_minted": state.total_minted},
            )

    def apply(self, state: EmissionTriple) -> RewardTransition:
        """Compute the state after one reward event.

        The returned ``reward`` is the amount issued for this event, which is
        always the reward that was current before any halving it triggers.
        """
        self.validate(state)
        reward = state.current_reward
        new_total = state.total_minted + reward

        if new_total >= state.halving_threshold:
            return RewardTransition(
                reward=reward,
                total_minted=new_total - state.halving_threshold,
                current_reward=max(MIN_REWARD, reward // 2),
                halving_threshold=state.halving_threshold,
                halved=True,
            )

        return RewardTransition(
            reward=reward,
            total_minted=new_total,
            current_reward=reward,
            halving_threshold=state.halving_threshold,
            halved=False,
        )

    def project(self, state: EmissionTriple, events: int) -> Iterator[RewardTransition]:
        """Yield the transition produced by each of ``events`` reward events."""
        if events < 0:
            raise InvalidInputError("Event count cannot be negative", {"events": events})
        for _ in range(events):
            transition = self.apply(state)
            state = transition.triple
            yield transition

    def run(self, state: EmissionTriple, events: int) -> EmissionTriple:
        """Apply ``events`` reward events and return the final triple."""
        for transition in self.project(state, events):
            state = transition.triple
        return state

    def total_issued(self, state: EmissionTriple, events: int) -> int:
        return sum(t.reward for t in self.project(state, events))
