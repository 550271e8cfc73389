"""Browser-driven round-trip checks for natural strategy setup."""
from .compat_probe import CompatibilityProbe
from .config import ProbeConfig, SessionConfig
from .errors import ConfigError, ProbeError
from .generator_probe import StrategyGeneratorProbe
from .models import Deployment, RenderedStrategy
from .session import DriverSession
from .verifier import StrategyVerifier, build_verifier

__all__ = [
    "CompatibilityProbe",
    "ConfigError",
    "Deployment",
    "DriverSession",
    "ProbeConfig",
    "ProbeError",
    "RenderedStrategy",
    "SessionConfig",
    "StrategyGeneratorProbe",
    "StrategyVerifier",
    "build_verifier",
]
