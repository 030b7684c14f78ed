"""
Sweep axes for the evaluation experiments.

A sweep turns one experiment definition into an ordered list of
:class:`SweepPoint` objects. Each point carries the values that identify it
(topology file, problem size ``n``, the pair ``(r, v)``, or a run name) and
the key of the argument template to use for it. Enumeration is deterministic:
topologies in sorted order, integers in list order, nested sweeps outer-major.

Four shapes are used by the catalog:

- ``TopologySweep``: every file in the topology zoo minus an exclusion set.
  Exclusions are applied here, before any invocation is built.
- ``ThresholdSweep``: an explicit integer list split into bands; the band a
  value falls in selects the template (broad search for small sizes only).
- ``NestedSweep``: outer range x inner range.
- ``FixedSweep``: a fixed list of named runs, each with its own template.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

from .errors import DirectoryError
from .utils import list_topologies

DEFAULT_TEMPLATE = "default"


@dataclass(frozen=True)
class SweepPoint:
    """One parameter combination of a sweep."""
    values: Tuple[Tuple[str, Any], ...]
    template: str = DEFAULT_TEMPLATE

    @property
    def params(self) -> Dict[str, Any]:
        return dict(self.values)

    @property
    def label(self) -> str:
        return ", ".join(f"{k}={v}" for k, v in self.values)


@dataclass(frozen=True)
class TopologySweep:
    exclude: FrozenSet[str] = frozenset()
    template: str = DEFAULT_TEMPLATE

    def points(self, topology_dir: Optional[Path] = None) -> List[SweepPoint]:
        if topology_dir is None or not Path(topology_dir).is_dir():
            raise DirectoryError(f"Topology directory not found: {topology_dir}")
        return [
            SweepPoint(values=(("topo", name),), template=self.template)
            for name in list_topologies(topology_dir)
            if name not in self.exclude
        ]


@dataclass(frozen=True)
class ThresholdSweep:
    """
    Integer sweep whose template switches at fixed thresholds.

    ``bands`` is a sequence of ``(min_inclusive, template)`` pairs in ascending
    order; a value uses the template of the last band whose minimum it reaches.
    """
    values: Tuple[int, ...]
    bands: Tuple[Tuple[int, str], ...]
    name: str = "n"

    def __post_init__(self):
        minimums = [low for low, _ in self.bands]
        if not minimums or minimums != sorted(set(minimums)):
            raise ValueError(f"Threshold bands must be non-empty and strictly ascending: {self.bands}")

    def select_template(self, value: int) -> str:
        selected = None
        for low, template in self.bands:
            if value >= low:
                selected = template
        if selected is None:
            raise ValueError(f"{self.name}={value} is below the first threshold band {self.bands[0][0]}")
        return selected

    def points(self, topology_dir: Optional[Path] = None) -> List[SweepPoint]:
        return [
            SweepPoint(values=((self.name, value),), template=self.select_template(value))
            for value in self.values
        ]


@dataclass(frozen=True)
class NestedSweep:
    outer_name: str
    outer: Tuple[int, ...]
    inner_name: str
    inner: Tuple[int, ...]
    template: str = DEFAULT_TEMPLATE

    def points(self, topology_dir: Optional[Path] = None) -> List[SweepPoint]:
        return [
            SweepPoint(values=((self.outer_name, o), (self.inner_name, i)), template=self.template)
            for o in self.outer
            for i in self.inner
        ]


@dataclass(frozen=True)
class FixedSweep:
    """Named runs; each name is also the key of its template unless ``templates`` maps it."""
    names: Tuple[str, ...]
    templates: Dict[str, str] = field(default_factory=dict, hash=False, compare=False)

    def points(self, topology_dir: Optional[Path] = None) -> List[SweepPoint]:
        return [
            SweepPoint(values=(("name", name),), template=self.templates.get(name, name))
            for name in self.names
        ]


def int_range(start: int, stop: int, step: int = 1) -> Tuple[int, ...]:
    """Inclusive integer range as a tuple, like ``seq start step stop``."""
    return tuple(range(start, stop + 1, step))


def concat(*parts: Sequence[int]) -> Tuple[int, ...]:
    out: List[int] = []
    for part in parts:
        out.extend(part)
    return tuple(out)
