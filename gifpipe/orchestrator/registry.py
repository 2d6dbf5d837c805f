"""Stage registry: the static, linear pipeline topology.

Maps each stage name to the processor that runs it and the stage it hands
off to. The default pipeline is:

    download -> extract-frames -> encode -> finalize

finalize has no successor, so completing it makes a job available.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from gifpipe.errors import UnknownStageError
from gifpipe.pipeline.base import StageProcessor

if TYPE_CHECKING:
    from gifpipe.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stage:
    """One pipeline step. successor is empty for the terminal stage."""

    name: str
    processor: StageProcessor
    successor: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.successor == ""


class StageRegistry:
    """Ordered, read-only stage table.

    Construction checks that the stages form a single chain: every
    successor is registered, exactly one stage is terminal, and every stage
    is reachable from the first one.
    """

    def __init__(self, stages: Iterable[Stage]):
        self._stages: dict[str, Stage] = {}
        for stage in stages:
            if stage.name in self._stages:
                raise ValueError(f"duplicate stage: {stage.name}")
            self._stages[stage.name] = stage

        if not self._stages:
            raise ValueError("registry needs at least one stage")

        for stage in self._stages.values():
            if stage.successor and stage.successor not in self._stages:
                raise UnknownStageError(
                    f"stage {stage.name} hands off to unknown stage {stage.successor}"
                )

        successors = {stage.successor for stage in self._stages.values()}
        entries = [name for name in self._stages if name not in successors]
        if len(entries) != 1:
            raise ValueError("stages do not form a single linear pipeline")

        self._order = self._walk(entries[0])
        if len(self._order) != len(self._stages):
            raise ValueError("stages do not form a single linear pipeline")

    def _walk(self, first: str) -> list[str]:
        order = []
        name = first
        while name:
            if name in order:
                raise ValueError(f"stage cycle at {name}")
            order.append(name)
            name = self._stages[name].successor
        return order

    @property
    def first(self) -> str:
        """Entry stage, where submissions are published."""
        return self._order[0]

    def names(self) -> list[str]:
        """Stage names in pipeline order."""
        return list(self._order)

    def get(self, name: str) -> Stage:
        """Look up a stage.

        Raises:
            UnknownStageError: If name is not registered.
        """
        try:
            return self._stages[name]
        except KeyError:
            raise UnknownStageError(
                f"unknown stage {name!r}; expected one of: {', '.join(self._order)}"
            ) from None

    def __contains__(self, name: str) -> bool:
        return name in self._stages


def build_registry(settings: "Settings") -> StageRegistry:
    """Build the default download -> extract-frames -> encode -> finalize table."""
    from gifpipe.pipeline.download import DownloadProcessor
    from gifpipe.pipeline.encode import EncodeProcessor
    from gifpipe.pipeline.extract_frames import ExtractFramesProcessor
    from gifpipe.pipeline.finalize import FinalizeProcessor

    registry = StageRegistry([
        Stage("download", DownloadProcessor(settings.tools), "extract-frames"),
        Stage("extract-frames", ExtractFramesProcessor(settings.tools), "encode"),
        Stage("encode", EncodeProcessor(settings.tools), "finalize"),
        Stage("finalize", FinalizeProcessor(settings.site.gif_dir, settings.worker.dir)),
    ])
    logger.debug(f"Stage registry: {' -> '.join(registry.names())}")
    return registry
