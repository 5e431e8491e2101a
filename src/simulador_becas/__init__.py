"""Scholarship eligibility and discount-stacking engine for tuition simulations."""

from simulador_becas.rank.policy import EngineConfig, PercentageBasis, ReasonPolicy, StackingPolicy
from simulador_becas.rank.simulation import simulate
from simulador_becas.rank.stage1_eligibility import evaluate, evaluate_catalog
from simulador_becas.rank.stage2_prelation import resolve

__all__ = [
    "EngineConfig",
    "PercentageBasis",
    "ReasonPolicy",
    "StackingPolicy",
    "evaluate",
    "evaluate_catalog",
    "resolve",
    "simulate",
]
