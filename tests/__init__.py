"""
feedharness Test Suite
======================

Test organization mirrors the source code structure:
    tests/
    ├── test_core/           → Tests for feedharness.core (config, models, exceptions)
    ├── test_infrastructure/ → Tests for locator, workspace, repository, metadata
    ├── test_integrations/   → Tests for the process runner and dotnet adapter
    ├── test_integration/    → End-to-end scenarios (scripted dotnet, real SDK)
    ├── test_scenario.py     → PackageScenario state machine
    ├── fakes/               → Scripted dotnet stand-in
    └── conftest.py          → Shared pytest fixtures

Running Tests:
    pytest                          # Run all tests
    pytest tests/test_core/         # Run only core tests
    pytest -m integration           # Run only end-to-end scenarios
    pytest -m dotnet                # Run against the real .NET SDK
"""
