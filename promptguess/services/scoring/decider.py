from dataclasses import dataclass
from typing import Optional

from promptguess.backend.models import ScoringAlgorithm
from promptguess.config import config
from promptguess.lib.exceptions import InvalidInputError


@dataclass(frozen=True)
class Decision:
    is_correct: bool
    score: float
    threshold: float


class CorrectnessDecider:
    """Turns a similarity score into a correct/incorrect decision.

    Lexical algorithms share one threshold on the 0-100 scale; the embedding
    algorithm has its own threshold on the cosine scale.
    """

    def __init__(
        self,
        lexical_threshold: Optional[float] = None,
        semantic_threshold: Optional[float] = None,
    ):
        if lexical_threshold is None:
            lexical_threshold = config.scoring.lexical_threshold
        if semantic_threshold is None:
            semantic_threshold = config.scoring.semantic_threshold

        if not 0 <= lexical_threshold <= 100:
            raise InvalidInputError(
                "Lexical threshold must be within [0, 100]",
                {"lexical_threshold": lexical_threshold},
            )
        if not -1 <= semantic_threshold <= 1:
            raise InvalidInputError(
                "Semantic threshold must be within [-1, 1]",
                {"semantic_threshold": semantic_threshold},
            )

        self.lexical_threshold = float(lexical_threshold)
        self.semantic_threshold = float(semantic_threshold)

    def threshold_for(self, algorithm: ScoringAlgorithm) -> float:
        if ScoringAlgorithm(algorithm).is_semantic:
            return self.semantic_threshold
        return self.lexical_threshold

    def decide(self, algorithm: ScoringAlgorithm, score: float) -> bool:
        return score >= self.threshold_for(algorithm)

    def evaluate(self, algorithm: ScoringAlgorithm, score: float) -> Decision:
        threshold = self.threshold_for(algorithm)
        return Decision(is_correct=score >= threshold, score=score, threshold=threshold)
