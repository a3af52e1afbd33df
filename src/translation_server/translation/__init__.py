"""
Translation side of the server: the bridge that parks connections while a
job runs, the channel the engine watches, the engine runner thread, and
the capabilities that do the actual translating.
"""

from .bridge import (
    AdmissionPolicy,
    BridgeBusyError,
    BridgeState,
    TranslationBridge,
    TranslationJob,
)
from .channel import JobChannel, JobSpec
from .engines import (
    EchoCapability,
    FunctionCapability,
    LibreTranslateCapability,
    TranslationCapability,
    TranslationError,
    TranslationOutcome,
    create_capability,
)
from .runner import EngineRunner

__all__ = [
    "AdmissionPolicy",
    "BridgeBusyError",
    "BridgeState",
    "TranslationBridge",
    "TranslationJob",
    "JobChannel",
    "JobSpec",
    "EchoCapability",
    "FunctionCapability",
    "LibreTranslateCapability",
    "TranslationCapability",
    "TranslationError",
    "TranslationOutcome",
    "create_capability",
    "EngineRunner",
]
