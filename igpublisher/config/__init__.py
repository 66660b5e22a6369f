from .loader import load_config
from .logging import configure_logging
from .models import (
    OutputConfig,
    PipelineConfig,
    PublisherConfig,
    TerminologyConfig,
    WatchConfig,
)

__all__ = [
    "OutputConfig",
    "PipelineConfig",
    "PublisherConfig",
    "TerminologyConfig",
    "WatchConfig",
    "configure_logging",
    "load_config",
]
