#!/usr/bin/env python3
"""
Tests for sweep enumeration, the experiment catalog and command building.

Usage:
    pytest snowcap_eval/test/test_sweeps.py -v
"""

from pathlib import Path

import pytest

from snowcap_eval.lib.catalog import EXPERIMENT_IDS, EXPERIMENTS, get_experiment, select_experiments
from snowcap_eval.lib.errors import DirectoryError, InvocationFailure, PlanError
from snowcap_eval.lib.invocation import ArgumentTemplate, build_invocation
from snowcap_eval.lib.results import ResultSink
from snowcap_eval.lib.sweep import (
    FixedSweep, NestedSweep, SweepPoint, ThresholdSweep, TopologySweep, concat, int_range,
)
from snowcap_eval.test.fakes import make_checkout, make_config


def _templates(definition, value):
    point = next(p for p in definition.sweep.points() if p.params["n"] == value)
    return definition.templates_for(point)


# ============================================================================
# Sweep shapes
# ============================================================================

def test_topology_sweep_applies_exclusions(tmp_path):
    for name in ("C.gml", "A.gml", "B.gml"):
        (tmp_path / name).write_text("")
    points = TopologySweep(exclude=frozenset({"B.gml"})).points(tmp_path)
    assert [p.params["topo"] for p in points] == ["A.gml", "C.gml"]


def test_topology_sweep_needs_directory(tmp_path):
    with pytest.raises(DirectoryError):
        TopologySweep().points(tmp_path / "missing")


def test_int_range_is_inclusive():
    assert int_range(1, 13, 2) == (1, 3, 5, 7, 9, 11, 13)
    assert concat(int_range(1, 3), (30, 40)) == (1, 2, 3, 30, 40)


def test_threshold_bands():
    sweep = ThresholdSweep(values=(1, 5, 6, 17), bands=((1, "a"), (6, "b"), (17, "c")))
    assert [p.template for p in sweep.points()] == ["a", "a", "b", "c"]
    with pytest.raises(ValueError):
        sweep.select_template(0)


def test_threshold_bands_must_ascend():
    with pytest.raises(ValueError):
        ThresholdSweep(values=(1,), bands=((10, "a"), (1, "b")))


def test_nested_sweep_is_outer_major():
    points = NestedSweep("r", (1, 3), "v", (0, 1)).points()
    assert [p.label for p in points] == ["r=1, v=0", "r=1, v=1", "r=3, v=0", "r=3, v=1"]


def test_fixed_sweep_template_mapping():
    points = FixedSweep(("random", "snowcap"), templates={"random": "x"}).points()
    assert [(p.params["name"], p.template) for p in points] == [("random", "x"), ("snowcap", "snowcap")]


# ============================================================================
# Catalog
# ============================================================================

def test_catalog_has_eleven_ascending_experiments():
    assert EXPERIMENT_IDS == tuple(range(1, 12))
    assert [d.id for d in select_experiments([9, 3, 3])] == [3, 9]
    with pytest.raises(KeyError):
        get_experiment(12)


def test_chain_gadget_switches_to_narrow_search_at_ten():
    exp3 = get_experiment(3)
    assert len(exp3.sweep.points()) == 28
    assert "--random" in _templates(exp3, 9)[0].args
    assert "--random" not in _templates(exp3, 10)[0].args
    assert "--tree" in _templates(exp3, 100)[0].args


@pytest.mark.parametrize("n, random, tree", [(5, True, True), (6, True, False), (16, True, False), (17, False, False)])
def test_difficult_gadget_bands(n, random, tree):
    args = _templates(get_experiment(4), n)[0].args
    assert ("--random" in args) == random
    assert ("--tree" in args) == tree
    assert "--main" in args


def test_variable_abilene_grid():
    points = get_experiment(5).sweep.points()
    assert len(points) == 7 * 67 == 469
    assert points[0].params == {"r": 1, "v": 0}
    assert points[-1].params == {"r": 13, "v": 66}


def test_optimizer_experiments_share_shape():
    for exp_id, scenario in ((6, "IGPx2"), (7, "LPx2"), (8, "NetAcq")):
        definition = get_experiment(exp_id)
        assert definition.sweep.exclude == frozenset({"GtsCe.gml"})
        assert definition.templates["default"][0].args[-1] == scenario
        assert definition.postprocess.script == "plot_6-8.py"
        assert definition.postprocess.args == ("{exp_id}",)


def test_only_live_run_needs_a_service():
    assert [d.id for d in EXPERIMENTS if d.service is not None] == [11]


# ============================================================================
# Planning and command building
# ============================================================================

def test_exp9_three_artifacts_per_topology(tmp_path):
    root = make_checkout(tmp_path, topologies=("A.gml", "GtsCe.gml", "B.gml"))
    config = make_config(root, speedup=1000)
    sink = ResultSink(config.results_root)
    definition = get_experiment(9)

    artifacts = []
    for point in definition.sweep.points(config.topology_dir):
        for template in definition.templates_for(point):
            artifacts.append(sink.artifact_path(9, point, template.output).name)
    assert artifacts == [
        "A.gml.strat.json", "A.gml.optim.json", "A.gml.rand.json",
        "B.gml.strat.json", "B.gml.optim.json", "B.gml.rand.json",
    ]


def test_exp1_command_line(tmp_path):
    root = make_checkout(tmp_path)
    config = make_config(root, speedup=100, threads_pp="-t 4")
    definition = get_experiment(1)
    point = SweepPoint(values=(("topo", "Abilene.gml"),))
    artifact = ResultSink(config.results_root).artifact_path(1, point, "{topo}.json")

    inv = build_invocation(1, definition.templates_for(point)[0], point, config, artifact)
    assert inv.argv == (
        str(config.binary("analysis")), "-t", "4", "-i", "100", "-n", "10", "-s", "FM2RR",
        "--many-prefixes", str(config.topology_dir / "Abilene.gml"), "probability", "-s",
        "-o", str(artifact),
    )
    assert dict(inv.env) == {"RUST_LOG": "none"}
    inv.validate()


def test_exp10_uses_analysis_threads_and_floor(tmp_path):
    root = make_checkout(tmp_path)
    config = make_config(root, speedup=10 ** 6, threads_pp="-t 2", threads_sm="-t 9")
    definition = get_experiment(10)
    point = definition.sweep.points()[0]
    template = definition.templates_for(point)[0]
    inv = build_invocation(10, template, point, config, Path("raw_output"))
    assert inv.argv[1:4] == ("transient", "-t", "2")
    assert inv.iterations == 100
    assert inv.capture_stdout


def test_live_run_logs_at_info(tmp_path):
    root = make_checkout(tmp_path)
    config = make_config(root)
    definition = get_experiment(11)
    for point in definition.sweep.points():
        inv = build_invocation(11, definition.templates_for(point)[0], point, config, Path("x.json"))
        assert dict(inv.env)["RUST_LOG"] == "info"


def test_zero_budget_fails_validation(tmp_path):
    root = make_checkout(tmp_path)
    config = make_config(root, speedup=20000)
    point = SweepPoint(values=(("n", 1),), template="broad")
    template = get_experiment(3).templates_for(point)[0]
    inv = build_invocation(3, template, point, config, tmp_path / "n1.json")
    with pytest.raises(InvocationFailure, match="Iteration budget is 0"):
        inv.validate()


def test_missing_binary_fails_validation(tmp_path):
    config = make_config(tmp_path)
    point = SweepPoint(values=(("n", 1),))
    template = ArgumentTemplate(binary="synthesis", args=("bench",), output="n{n}.json")
    inv = build_invocation(3, template, point, config, tmp_path / "n1.json")
    with pytest.raises(InvocationFailure, match="not found"):
        inv.validate()
    inv.validate(check_binary=False)


def test_unknown_placeholder_is_a_plan_error(tmp_path):
    config = make_config(tmp_path)
    point = SweepPoint(values=(("n", 1),))
    template = ArgumentTemplate(binary="synthesis", args=("-r", "{size}"), output="n{n}.json")
    with pytest.raises(PlanError, match="size"):
        build_invocation(3, template, point, config, tmp_path / "n1.json")


def test_unknown_binary_role_rejected():
    with pytest.raises(ValueError):
        ArgumentTemplate(binary="compiler", args=(), output="x")
