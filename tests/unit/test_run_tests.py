"""
Unit tests for the test-suite runner's pytest command.
"""

import argparse
import sys

import run_tests


def options(**overrides):
    values = dict(suite="default", slow=False, coverage=False, verbose=False, failfast=False)
    values.update(overrides)
    return argparse.Namespace(**values)


class TestBuildCommand:

    def test_default_suite(self):
        cmd = run_tests.build_command(options())
        assert cmd[:3] == [sys.executable, "-m", "pytest"]
        assert "tests/unit" in cmd and "tests/integration" in cmd
        assert "--run-slow" not in cmd
        assert "-q" in cmd

    def test_e2e_enables_slow(self):
        cmd = run_tests.build_command(options(suite="e2e"))
        assert "tests/e2e" in cmd
        assert "--run-slow" in cmd

    def test_coverage_and_flags(self):
        cmd = run_tests.build_command(options(suite="all", coverage=True, verbose=True, failfast=True))
        assert "tests" in cmd
        assert "--cov=views" in cmd
        assert "-v" in cmd and "-x" in cmd
