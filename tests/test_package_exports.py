"""Tests for top-level package lazy exports."""

from __future__ import annotations

import unittest

import askpane


class PackageExportTests(unittest.TestCase):
    """Ensure __getattr__ and exported symbols behave as expected."""

    def test_lazy_exports_resolve_known_symbols(self) -> None:
        self.assertTrue(callable(askpane.load_config))
        self.assertTrue(callable(askpane.ensure_config_dir))
        for name in askpane.__all__:
            self.assertIsNotNone(getattr(askpane, name), name)

    def test_exports_are_the_defining_objects(self) -> None:
        from askpane.orchestrator import AskOrchestrator
        from askpane.state import RequestState

        self.assertIs(askpane.AskOrchestrator, AskOrchestrator)
        self.assertIs(askpane.RequestState, RequestState)

    def test_unknown_symbol_raises_attribute_error(self) -> None:
        with self.assertRaises(AttributeError):
            getattr(askpane, "THIS_DOES_NOT_EXIST")


if __name__ == "__main__":
    unittest.main()
