"""Critique, refinement and verification of generated responses."""

from hybrid_agent.refinement.critique import Critique, CritiqueGenerator, CritiqueIssue
from hybrid_agent.refinement.loop import ImprovementResult, QualityLoop
from hybrid_agent.refinement.refiner import RefinedResponse, ResponseRefiner
from hybrid_agent.refinement.verification import ResponseVerifier, VerificationResult

__all__ = [
    "Critique",
    "CritiqueGenerator",
    "CritiqueIssue",
    "ImprovementResult",
    "QualityLoop",
    "RefinedResponse",
    "ResponseRefiner",
    "ResponseVerifier",
    "VerificationResult",
]
