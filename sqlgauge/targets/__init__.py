from sqlgauge.targets.registry import (
    DatabaseTarget,
    ExporterConfig,
    PoolLimits,
    ProbeDefinition,
    TargetRegistry,
    parse_config,
)

__all__ = [
    "DatabaseTarget",
    "ExporterConfig",
    "PoolLimits",
    "ProbeDefinition",
    "TargetRegistry",
    "parse_config",
]
