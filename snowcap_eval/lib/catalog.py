"""
The eleven experiments of the Snowcap SIGCOMM 2021 evaluation.

This module is data: each :class:`ExperimentDefinition` fixes the sweep, the
argument templates, the artifact names and the plotting command of one
experiment. Given an :class:`~snowcap_eval.lib.config.EvalConfig`, a
definition determines exactly which invocations run.

    ==  ========================================  ===========================
    id  what                                      sweep
    ==  ========================================  ===========================
    1   problem probability (FM2RR)               zoo minus PionierL3.gml
    2   cost of NetAcq                            zoo
    3   chain gadget                              n = 1..9 | 10..20, 30..100
    4   repeated difficult gadget                 n = 1..5 | 6..16 | 17..20
    5   variable Abilene network                  r = 1,3..13 x v = 0..66
    6   optimizer on IGPx2                        zoo minus GtsCe.gml
    7   optimizer on LPx2                         zoo minus GtsCe.gml
    8   optimizer on NetAcq                       zoo minus GtsCe.gml
    9   strategy vs optimizer vs random (FM2RR)   zoo minus GtsCe.gml
    10  transient behaviour on SwitchL3.gml       single run
    11  live run on HiberniaIreland.gml (GNS3)    random, snowcap
    ==  ========================================  ===========================
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .errors import PlanError
from .invocation import ArgumentTemplate
from .service import GNS3_SERVICE, ServiceSpec
from .sweep import (
    DEFAULT_TEMPLATE, FixedSweep, NestedSweep, SweepPoint, ThresholdSweep,
    TopologySweep, concat, int_range,
)
from .utils import BINARY_ANALYSIS, BINARY_SYNTHESIS

Sweep = Union[TopologySweep, ThresholdSweep, NestedSweep, FixedSweep]


@dataclass(frozen=True)
class PostProcessCommand:
    """A plotting / table script under ``eval_sigcomm2021/scripts``.

    ``args`` may use ``{exp_id}`` and ``{result_dir}``.
    """
    script: str
    args: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ExperimentDefinition:
    id: int
    title: str
    sweep: Sweep
    templates: Dict[str, Tuple[ArgumentTemplate, ...]] = field(hash=False, compare=False)
    postprocess: PostProcessCommand
    service: Optional[ServiceSpec] = None

    def templates_for(self, point: SweepPoint) -> Tuple[ArgumentTemplate, ...]:
        try:
            return self.templates[point.template]
        except KeyError:
            raise PlanError(
                f"Experiment {self.id} has no argument template '{point.template}' "
                f"(point {point.label})"
            ) from None


# =============================================================================
# Template helpers
# =============================================================================

def _synthesis(*args: str, output: str, budget: Optional[str] = None,
               variant: str = "", rust_log: Optional[str] = None,
               capture_stdout: bool = False) -> ArgumentTemplate:
    return ArgumentTemplate(
        binary=BINARY_SYNTHESIS, args=tuple(args), output=output, budget=budget,
        variant=variant, rust_log=rust_log, capture_stdout=capture_stdout,
    )


def _analysis(*args: str, output: str, budget: str) -> ArgumentTemplate:
    return ArgumentTemplate(binary=BINARY_ANALYSIS, args=tuple(args), output=output, budget=budget)


def _gadget_strategy(gadget: str, *search_flags: str) -> ArgumentTemplate:
    return _synthesis(
        "bench", "{threads_sm}", "strategy", *search_flags,
        "--json", "{output}", "-i", "{iters}",
        "example", gadget, "-r", "{n}",
        output="n{n}.json", budget="medium",
    )


def _zoo_optimizer(scenario: str) -> ArgumentTemplate:
    return _synthesis(
        "bench", "{threads_sm}", "optimizer", "--main", "--mif", "--mil", "--random",
        "-i", "{iters}", "--json", "{output}",
        "topology-zoo", "-m", "{topo_path}", scenario,
        output="{topo}.json", budget="large",
    )


def _optimizer_experiment(exp_id: int, scenario: str) -> ExperimentDefinition:
    return ExperimentDefinition(
        id=exp_id,
        title=f"Optimizer benchmark on the topology zoo ({scenario})",
        sweep=TopologySweep(exclude=frozenset({"GtsCe.gml"})),
        templates={DEFAULT_TEMPLATE: (_zoo_optimizer(scenario),)},
        postprocess=PostProcessCommand("plot_6-8.py", ("{exp_id}",)),
    )


# =============================================================================
# Catalog
# =============================================================================

EXPERIMENTS: Tuple[ExperimentDefinition, ...] = (
    ExperimentDefinition(
        id=1,
        title="Problem probability (FM2RR)",
        sweep=TopologySweep(exclude=frozenset({"PionierL3.gml"})),
        templates={DEFAULT_TEMPLATE: (
            _analysis(
                "{threads_pp}", "-i", "{iters}", "-n", "10", "-s", "FM2RR", "--many-prefixes",
                "{topo_path}", "probability", "-s", "-o", "{output}",
                output="{topo}.json", budget="large",
            ),
        )},
        postprocess=PostProcessCommand("plot_1.py"),
    ),
    ExperimentDefinition(
        id=2,
        title="Cost analysis (NetAcq)",
        sweep=TopologySweep(),
        templates={DEFAULT_TEMPLATE: (
            _analysis(
                "{threads_pp}", "-i", "{iters}", "-n", "1", "-s", "NetAcq", "--many-prefixes",
                "--seed", "10", "{topo_path}", "cost", "-a", "-f", "100", "-o", "{output}",
                output="{topo}.json", budget="large",
            ),
        )},
        postprocess=PostProcessCommand("plot_2.py"),
    ),
    ExperimentDefinition(
        id=3,
        title="Chain gadget",
        sweep=ThresholdSweep(
            values=concat(int_range(1, 20), int_range(30, 100, 10)),
            bands=((1, "broad"), (10, "narrow")),
        ),
        templates={
            "broad": (_gadget_strategy("chain-gadget", "--random", "--tree", "--main"),),
            "narrow": (_gadget_strategy("chain-gadget", "--tree", "--main"),),
        },
        postprocess=PostProcessCommand("plot_3.py"),
    ),
    ExperimentDefinition(
        id=4,
        title="Repeated difficult gadget",
        sweep=ThresholdSweep(
            values=int_range(1, 20),
            bands=((1, "tree"), (6, "random"), (17, "main")),
        ),
        templates={
            "tree": (_gadget_strategy("difficult-gadget-repeated", "--random", "--tree", "--main"),),
            "random": (_gadget_strategy("difficult-gadget-repeated", "--random", "--main"),),
            "main": (_gadget_strategy("difficult-gadget-repeated", "--main"),),
        },
        postprocess=PostProcessCommand("plot_4.py"),
    ),
    ExperimentDefinition(
        id=5,
        title="Variable Abilene network",
        sweep=NestedSweep("r", int_range(1, 13, 2), "v", int_range(0, 66)),
        templates={DEFAULT_TEMPLATE: (
            _synthesis(
                "bench", "{threads_sm}", "strategy", "--main", "-i", "{iters}",
                "--json", "{output}", "example", "variable-abilene-network",
                "-i", "{v}", "-r", "{r}",
                output="r{r}_v{v}.json", budget="exp5",
            ),
        )},
        postprocess=PostProcessCommand("plot_5.py"),
    ),
    _optimizer_experiment(6, "IGPx2"),
    _optimizer_experiment(7, "LPx2"),
    _optimizer_experiment(8, "NetAcq"),
    ExperimentDefinition(
        id=9,
        title="Strategy vs optimizer vs random permutations (FM2RR)",
        sweep=TopologySweep(exclude=frozenset({"GtsCe.gml"})),
        templates={DEFAULT_TEMPLATE: (
            _synthesis(
                "bench", "{threads_sm}", "strategy", "--main", "-i", "{iters}", "-t", "100000",
                "--json", "{output}", "topology-zoo", "-m", "{topo_path}", "FM2RR",
                output="{topo}.strat.json", budget="exp9", variant="strat",
            ),
            _synthesis(
                "bench", "{threads_sm}", "optimizer", "--main", "-i", "{iters}", "-t", "100000",
                "--json", "{output}", "topology-zoo", "-m", "{topo_path}", "FM2RR",
                output="{topo}.optim.json", budget="exp9", variant="optim",
            ),
            _synthesis(
                "bench", "{threads_sm}", "strategy", "--random", "-i", "{iters}",
                "--json", "{output}", "topology-zoo", "-m", "{topo_path}", "FM2RR",
                output="{topo}.rand.json", budget="large", variant="rand",
            ),
        )},
        postprocess=PostProcessCommand("plot_9.py"),
    ),
    ExperimentDefinition(
        id=10,
        title="Transient behaviour check (SwitchL3)",
        sweep=FixedSweep(("raw_output",), templates={"raw_output": DEFAULT_TEMPLATE}),
        templates={DEFAULT_TEMPLATE: (
            _synthesis(
                "transient", "{threads_pp}", "{zoo}/SwitchL3.gml", "-i", "{iters}", "-r",
                output="raw_output", budget="exp10", rust_log="none", capture_stdout=True,
            ),
        )},
        postprocess=PostProcessCommand("table_10.py"),
    ),
    ExperimentDefinition(
        id=11,
        title="Live run on GNS3 (HiberniaIreland)",
        sweep=FixedSweep(("random", "snowcap")),
        templates={
            "random": (
                _synthesis(
                    "run", "-r", "-s", "3", "-a", "--json", "{output}",
                    "topology-zoo", "{zoo}/HiberniaIreland.gml", "FM2RR", "-s", "10",
                    output="random.json", rust_log="info",
                ),
            ),
            "snowcap": (
                _synthesis(
                    "run", "--json", "{output}",
                    "topology-zoo", "{zoo}/HiberniaIreland.gml", "FM2RR", "-s", "10",
                    output="snowcap.json", rust_log="info",
                ),
            ),
        },
        postprocess=PostProcessCommand("table_11.py"),
        service=GNS3_SERVICE,
    ),
)

EXPERIMENT_IDS = tuple(d.id for d in EXPERIMENTS)
if EXPERIMENT_IDS != tuple(sorted(set(EXPERIMENT_IDS))):
    raise ValueError(f"Experiment ids must be unique and ascending, got {EXPERIMENT_IDS}")


def get_experiment(experiment_id: int) -> ExperimentDefinition:
    for definition in EXPERIMENTS:
        if definition.id == experiment_id:
            return definition
    raise KeyError(f"Unknown experiment id {experiment_id}; valid ids are {list(EXPERIMENT_IDS)}")


def select_experiments(ids: Optional[Iterable[int]] = None) -> List[ExperimentDefinition]:
    """Definitions for ``ids`` (all when None), always in ascending id order."""
    if ids is None:
        return list(EXPERIMENTS)
    return [get_experiment(i) for i in sorted(set(ids))]
