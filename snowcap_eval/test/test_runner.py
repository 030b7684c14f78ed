#!/usr/bin/env python3
"""
Sweep execution tests against fake binaries.

Each test builds a throw-away checkout under ``tmp_path`` (see fakes.py), so
no Snowcap build is needed.

Usage:
    pytest snowcap_eval/test/test_runner.py -v
"""

import json
import os
import signal
import subprocess
import time

import pytest

from snowcap_eval.lib.catalog import ExperimentDefinition, PostProcessCommand, get_experiment
from snowcap_eval.lib.errors import DirectoryError, PlanError, ServiceStartupError, SweepInterrupted
from snowcap_eval.lib.invocation import ArgumentTemplate, run_invocation
from snowcap_eval.lib.report import CANCELLED, FAILED, NOT_RUN, OK, PARTIAL, SKIPPED, SUCCESS
from snowcap_eval.lib.results import ResultSink
from snowcap_eval.lib.runner import CancelToken, ExperimentRunner
from snowcap_eval.lib.sweep import FixedSweep
from snowcap_eval.test.fakes import make_checkout, make_config


class RecordingService:
    """Stands in for BackgroundService; records start / stop."""

    instances = []

    def __init__(self, spec, ready_url=None, timeout=None, fail=False):
        self.spec = spec
        self.fail = fail
        self.started = False
        self.stopped = False
        RecordingService.instances.append(self)

    def __enter__(self):
        self.started = True
        if self.fail:
            self.stopped = True
            raise ServiceStartupError("not ready")
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stopped = True


@pytest.fixture(autouse=True)
def reset_services():
    RecordingService.instances = []


def _runner(root, **options):
    config = make_config(root, **options)
    return ExperimentRunner(config, ResultSink(config.results_root))


def _by_label(outcome):
    return {r.label: r for r in outcome.invocations}


# ============================================================================
# Normal runs and failure isolation
# ============================================================================

def test_topology_sweep_writes_one_artifact_per_topology(checkout):
    outcome = _runner(checkout).run(get_experiment(1))

    result_dir = checkout / "eval_sigcomm2021" / "result_1"
    assert sorted(p.name for p in result_dir.iterdir()) == ["Abilene.gml.json", "Bics.gml.json"]
    assert outcome.status == SUCCESS
    assert outcome.succeeded == 2
    data = json.loads((result_dir / "Abilene.gml.json").read_text())
    assert data["rust_log"] == "none"
    assert data["argv"][:2] == ["-i", "10"]


def test_failing_point_does_not_stop_the_sweep(checkout, monkeypatch):
    monkeypatch.setenv("FAKE_FAIL", "Abilene")
    outcome = _runner(checkout).run(get_experiment(2))

    results = _by_label(outcome)
    assert results["topo=Abilene.gml"].status == FAILED
    assert results["topo=Abilene.gml"].returncode == 3
    assert "simulated failure" in results["topo=Abilene.gml"].error
    assert results["topo=Bics.gml"].status == OK
    assert results["topo=PionierL3.gml"].status == OK
    assert (checkout / "eval_sigcomm2021" / "result_2" / "Bics.gml.json").exists()
    assert outcome.status == PARTIAL
    assert [f.label for f in outcome.failures] == ["topo=Abilene.gml"]


def test_existing_result_directory_is_reused(checkout):
    result_dir = checkout / "eval_sigcomm2021" / "result_1"
    result_dir.mkdir(parents=True)
    (result_dir / "old.txt").write_text("keep")
    outcome = _runner(checkout).run(get_experiment(1))
    assert outcome.status == SUCCESS
    assert (result_dir / "old.txt").read_text() == "keep"


def test_skip_existing_leaves_artifact_untouched(checkout):
    result_dir = checkout / "eval_sigcomm2021" / "result_1"
    result_dir.mkdir(parents=True)
    (result_dir / "Abilene.gml.json").write_text("precious")

    outcome = _runner(checkout, skip_existing=True).run(get_experiment(1))
    results = _by_label(outcome)
    assert results["topo=Abilene.gml"].status == SKIPPED
    assert results["topo=Bics.gml"].status == OK
    assert (result_dir / "Abilene.gml.json").read_text() == "precious"


def test_dry_run_spawns_nothing(checkout):
    runner = _runner(checkout, dry_run=True)
    runner.service_factory = RecordingService
    outcome = runner.run(get_experiment(11))
    assert [r.status for r in outcome.invocations] == [SKIPPED, SKIPPED]
    assert list((checkout / "eval_sigcomm2021" / "result_11").iterdir()) == []
    assert RecordingService.instances == []


def test_transient_output_is_captured(checkout):
    outcome = _runner(checkout, threads_pp="-t 2").run(get_experiment(10))
    raw = (checkout / "eval_sigcomm2021" / "result_10" / "raw_output").read_text()
    assert outcome.status == SUCCESS
    assert "transient -t 2 " in raw
    assert "SwitchL3.gml -i 100 -r" in raw


def test_failed_transient_check_keeps_its_output(checkout, monkeypatch):
    monkeypatch.setenv("FAKE_FAIL", "SwitchL3")
    outcome = _runner(checkout).run(get_experiment(10))
    (result,) = outcome.invocations
    assert result.status == FAILED
    assert result.returncode == 3
    raw = (checkout / "eval_sigcomm2021" / "result_10" / "raw_output").read_text()
    assert raw.startswith("partial transient ")


def test_undecodable_output_is_replaced(tmp_path):
    root = make_checkout(tmp_path, noisy=True)
    outcome = _runner(root).run(get_experiment(10))
    assert outcome.status == SUCCESS
    raw = (root / "eval_sigcomm2021" / "result_10" / "raw_output").read_text(encoding="utf-8")
    assert "\ufffd" in raw
    assert "transient " in raw


def test_undecodable_output_of_failing_point_is_recorded(tmp_path, monkeypatch):
    root = make_checkout(tmp_path, noisy=True)
    monkeypatch.setenv("FAKE_FAIL", "Bics")
    results = _by_label(_runner(root).run(get_experiment(1)))
    assert results["topo=Bics.gml"].status == FAILED
    assert "simulated failure" in results["topo=Bics.gml"].error
    assert results["topo=Abilene.gml"].status == OK


def test_zero_exit_without_artifact_is_a_failure(checkout):
    runner = _runner(checkout)
    runner.executor = lambda inv, timeout=None, cwd=None: subprocess.CompletedProcess(inv.argv, 0, "", "")
    outcome = runner.run(get_experiment(1))
    assert all(r.status == FAILED for r in outcome.invocations)
    assert "no artifact" in outcome.invocations[0].error


def test_zero_budget_is_rejected_before_spawning(checkout):
    calls = []
    runner = _runner(checkout, speedup=20000)
    runner.executor = lambda inv, **kw: calls.append(inv)
    outcome = runner.run(get_experiment(1))
    assert calls == []
    assert all(r.status == FAILED for r in outcome.invocations)


def test_missing_topology_directory_aborts(tmp_path):
    root = make_checkout(tmp_path)
    (root / "eval_sigcomm2021" / "topology_zoo").rename(root / "elsewhere")
    with pytest.raises(DirectoryError):
        _runner(root).run(get_experiment(1))


def test_colliding_artifacts_are_a_plan_error(checkout):
    template = ArgumentTemplate(binary="synthesis", args=("run", "--json", "{output}"), output="same.json")
    definition = ExperimentDefinition(
        id=99,
        title="collision",
        sweep=FixedSweep(("a", "b"), templates={"a": "default", "b": "default"}),
        templates={"default": (template,)},
        postprocess=PostProcessCommand("plot_1.py"),
    )
    with pytest.raises(PlanError, match="both write"):
        _runner(checkout).plan(definition)


# ============================================================================
# Cancellation
# ============================================================================

def test_cancel_stops_before_next_invocation(checkout):
    config = make_config(checkout)
    token = CancelToken()

    def executor(invocation, timeout=None, cwd=None):
        result = run_invocation(invocation, timeout=timeout, cwd=cwd)
        token.cancel("test")
        return result

    runner = ExperimentRunner(config, ResultSink(config.results_root), cancel_token=token, executor=executor)
    outcome = runner.run(get_experiment(2))

    statuses = [r.status for r in outcome.invocations]
    assert statuses == [OK, NOT_RUN, NOT_RUN]
    assert outcome.cancelled
    assert outcome.status == CANCELLED
    assert (checkout / "eval_sigcomm2021" / "result_2" / "Abilene.gml.json").exists()


# ============================================================================
# Background service
# ============================================================================

def test_service_wraps_live_run_and_is_stopped_on_failure(checkout, monkeypatch):
    monkeypatch.setenv("FAKE_FAIL", "HiberniaIreland")
    runner = _runner(checkout)
    runner.service_factory = RecordingService
    outcome = runner.run(get_experiment(11))

    assert [r.status for r in outcome.invocations] == [FAILED, FAILED]
    (service,) = RecordingService.instances
    assert service.spec.name == "gns3server"
    assert service.started and service.stopped


def test_service_startup_failure_aborts_without_invoking(checkout):
    calls = []
    runner = _runner(checkout)
    runner.service_factory = lambda spec, **kw: RecordingService(spec, fail=True, **kw)
    runner.executor = lambda inv, **kw: calls.append(inv)
    with pytest.raises(ServiceStartupError):
        runner.run(get_experiment(11))
    assert calls == []


def test_interrupt_keeps_finished_points(checkout):
    config = make_config(checkout)
    token = CancelToken()
    calls = []

    def executor(invocation, timeout=None, cwd=None):
        calls.append(invocation)
        if len(calls) == 2:
            raise KeyboardInterrupt
        return run_invocation(invocation, timeout=timeout, cwd=cwd)

    runner = ExperimentRunner(config, ResultSink(config.results_root), cancel_token=token, executor=executor)
    with pytest.raises(SweepInterrupted) as info:
        runner.run(get_experiment(2))

    outcome = info.value.outcome
    assert [r.status for r in outcome.invocations] == [OK, NOT_RUN, NOT_RUN]
    assert outcome.invocations[1].error == "interrupted"
    assert outcome.status == CANCELLED
    assert token.cancelled


def _send(signum, until=lambda: False, wait=5.0):
    """Signal this process, then spin until ``until()`` or the handler raises."""
    os.kill(os.getpid(), signum)
    deadline = time.time() + wait
    while not until() and time.time() < deadline:
        time.sleep(0.001)


def test_sigterm_sets_the_token_and_handlers_are_restored():
    before = signal.getsignal(signal.SIGTERM), signal.getsignal(signal.SIGINT)
    token = CancelToken()
    restore = token.install_signal_handlers()
    try:
        _send(signal.SIGTERM, until=lambda: token.cancelled)
        assert token.cancelled
        assert token.reason == f"signal {int(signal.SIGTERM)}"
    finally:
        restore()
    assert (signal.getsignal(signal.SIGTERM), signal.getsignal(signal.SIGINT)) == before


def test_second_sigint_raises_keyboard_interrupt():
    token = CancelToken()
    restore = token.install_signal_handlers()
    try:
        _send(signal.SIGINT, until=lambda: token.cancelled)
        assert token.cancelled
        with pytest.raises(KeyboardInterrupt):
            _send(signal.SIGINT)
    finally:
        restore()
