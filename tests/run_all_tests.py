#!/usr/bin/env python3
"""
Test runner for Quiz Master.
Runs all unit tests and prints a summary report.
"""
import unittest
import sys
import time
from pathlib import Path

# Project root on the path so 'quizmaster' and 'tests' import
sys.path.insert(0, str(Path(__file__).parent.parent))

TEST_MODULES = {
    'data': 'tests.test_data_manager',
    'config': 'tests.test_config_manager',
    'engine': 'tests.test_quiz_engine',
    'controller': 'tests.test_quiz_controller',
    'timer': 'tests.test_timer_lifecycle',
    'bot': 'tests.test_bot',
}


def load_suite(module_names):
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()

    for module_name in module_names:
        try:
            suite.addTest(loader.loadTestsFromName(module_name))
            print(f"✓ Loaded tests from {module_name}")
        except Exception as e:
            print(f"✗ Failed to load {module_name}: {e}")

    return suite


def run_test_suite(module_names):
    """Run the given test modules and print a summary report."""
    print("=" * 70)
    print("Quiz Master - Test Suite")
    print("=" * 70)

    suite = load_suite(module_names)

    runner = unittest.TextTestRunner(verbosity=2, stream=sys.stdout, buffer=True)

    start_time = time.time()
    result = runner.run(suite)
    end_time = time.time()

    print("\n" + "=" * 70)
    print("Test Summary Report")
    print("=" * 70)

    total_tests = result.testsRun
    failures = len(result.failures)
    errors = len(result.errors)
    skipped = len(result.skipped)
    passed = total_tests - failures - errors - skipped

    print(f"Total Tests Run: {total_tests}")
    print(f"Passed: {passed}")
    print(f"Failed: {failures}")
    print(f"Errors: {errors}")
    print(f"Skipped: {skipped}")
    print(f"Success Rate: {(passed/total_tests)*100:.1f}%" if total_tests > 0 else "N/A")
    print(f"Execution Time: {end_time - start_time:.2f} seconds")

    return failures == 0 and errors == 0


if __name__ == '__main__':
    if len(sys.argv) > 1:
        category = sys.argv[1]
        if category not in TEST_MODULES:
            print(f"Unknown category: {category}")
            print(f"Available categories: {', '.join(TEST_MODULES)}")
            sys.exit(1)
        success = run_test_suite([TEST_MODULES[category]])
    else:
        success = run_test_suite(list(TEST_MODULES.values()))

    sys.exit(0 if success else 1)
