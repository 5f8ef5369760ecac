"""Synthesis of collector, rule evaluator and rule file configuration."""
from .outcome import Outcome, SynthesisResult
from .render import render_yaml
from .secrets import SecretAggregator, SecretRef, collect_references, referenced_secrets
from .snapshot import InvalidResource, Snapshot
from .synthesizer import ConfigSynthesizer

__all__ = [
    "Outcome",
    "SynthesisResult",
    "render_yaml",
    "SecretAggregator",
    "SecretRef",
    "collect_references",
    "referenced_secrets",
    "InvalidResource",
    "Snapshot",
    "ConfigSynthesizer",
]
