"""
Snowcap Evaluation Test Suite

Test modules:
- test_config: SPEEDUP parsing and iteration budgets
- test_sweeps: sweep shapes, experiment catalog and command building
- test_results: result directories and artifact naming
- test_runner: sweep execution against fake binaries
- test_service: background service readiness and teardown
- test_orchestrator: end-to-end runs, post-processing and exit codes

Usage:
    pytest snowcap_eval/test -v
    pytest snowcap_eval/test/test_runner.py -v
"""
