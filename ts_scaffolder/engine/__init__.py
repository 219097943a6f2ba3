"""Bundling engines the build executor can drive.

Quick usage::

    from ts_scaffolder.engine import RollupEngine

    engine = RollupEngine(cwd=project_dir)
    result = await engine.bundle(pipeline)
    await result.write()
"""

from ts_scaffolder.engine.base import (
    Artifact,
    ArtifactBundle,
    BundleEngine,
    BundleResult,
    EngineError,
    WatchSession,
)
from ts_scaffolder.engine.rollup import RollupEngine, RollupWatchSession

__all__ = [
    "Artifact",
    "ArtifactBundle",
    "BundleEngine",
    "BundleResult",
    "EngineError",
    "RollupEngine",
    "RollupWatchSession",
    "WatchSession",
]
