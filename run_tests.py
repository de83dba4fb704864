#!/usr/bin/env python3
"""
Test runner with shortcuts for the tradedesk test suites.

Usage: python run_tests.py <command>
"""

import subprocess
import sys
from pathlib import Path

PYTEST = [sys.executable, "-m", "pytest"]

COMMANDS = {
    "all": (
        PYTEST + ["tests/", "--cov=src/tradedesk", "--cov-report=html", "-v"],
        "Run all tests with coverage",
    ),
    "core": (PYTEST + ["tests/test_core/", "-v"], "Money, quotes and events"),
    "ormdb": (PYTEST + ["tests/test_ormdb/", "-v"], "Ledger store and repositories"),
    "services": (
        PYTEST + ["tests/test_services/", "-v"],
        "Order execution, closing, portfolio and wallets",
    ),
    "api": (PYTEST + ["tests/test_webapi/", "-v"], "HTTP API"),
    "fast": (PYTEST + ["tests/", "-q", "-x"], "All tests, stop on first failure"),
    "coverage": (
        PYTEST
        + ["tests/", "--cov=src/tradedesk", "--cov-report=html", "--cov-report=term"],
        "Generate coverage report",
    ),
}

ARTIFACTS = [".coverage", "htmlcov", ".pytest_cache", "__pycache__"]


def run_command(cmd, description):
    """Run a command and print the description."""
    print(f"\n🧪 {description}")
    print("=" * 50)
    print(f"Running: {' '.join(cmd)}")
    print()

    result = subprocess.run(cmd, cwd=Path(__file__).parent)
    return result.returncode == 0


def clean():
    print("\n🧹 Cleaning test artifacts...")
    for name in ARTIFACTS:
        subprocess.run(
            ["find", ".", "-name", name, "-prune", "-exec", "rm", "-rf", "{}", "+"],
            cwd=Path(__file__).parent,
            capture_output=True,
        )
    print("✅ Test artifacts cleaned!")


def main():
    """Main test runner."""
    if len(sys.argv) < 2:
        print("Usage: python run_tests.py <command>")
        print("\nAvailable commands:")
        for name, (_, description) in COMMANDS.items():
            print(f"  {name:<10} - {description}")
        print(f"  {'clean':<10} - Clean test artifacts")
        return

    command = sys.argv[1].lower()
    if command == "clean":
        clean()
        return
    if command not in COMMANDS:
        print(f"❌ Unknown command: {command}")
        sys.exit(2)

    cmd, description = COMMANDS[command]
    if not run_command(cmd, description):
        print(f"\n❌ {command} tests failed!")
        sys.exit(1)

    print(f"\n✅ {command} tests completed successfully!")
    if command == "coverage":
        print("   - HTML report: htmlcov/index.html")


if __name__ == "__main__":
    main()
