"""
Root pytest configuration.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line(
        "markers",
        "critical: Tests that must never fail - core functionality",
    )
    config.addinivalue_line(
        "markers",
        "slow: Tests that take >1 second",
    )
    config.addinivalue_line(
        "markers",
        "property: Property-based tests (may be slow)",
    )


@pytest.fixture(autouse=True)
def reset_diagnostics_cache() -> Generator[None, None, None]:
    """Reset the diagnostics module before and after each test.

    The diagnostics module caches the `internal_logging_enabled` setting at
    first access and tests may swap its writer.
    """
    import loggly_sink.core.diagnostics as diag

    diag._reset_for_tests()
    yield
    diag._reset_for_tests()


@pytest.fixture
def diagnostics_records() -> Generator[list[dict[str, object]], None, None]:
    """Capture every diagnostic record emitted during the test."""
    import loggly_sink.core.diagnostics as diag

    records: list[dict[str, object]] = []
    diag._internal_logging_enabled = True
    diag.set_writer_for_tests(records.append)
    yield records
