"""Regression tests for importing the data layer and CLI without the web stack."""

from __future__ import annotations

import importlib
import sys
import types
import unittest
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class CLIImportTests(unittest.TestCase):
    def setUp(self) -> None:
        self._saved = {
            name: module
            for name, module in sys.modules.items()
            if name in ("app", "main") or name.startswith("app.")
        }

    def tearDown(self) -> None:
        self._clear_modules()
        sys.modules.update(self._saved)

    @staticmethod
    def _clear_modules() -> None:
        for name in [m for m in list(sys.modules.keys()) if m in ("app", "main") or m.startswith("app.")]:
            sys.modules.pop(name, None)

    def test_import_cli_without_fastapi(self) -> None:
        """The admin console and init-db only need the data layer."""

        self._clear_modules()

        fastapi_module: types.ModuleType | None = sys.modules.pop("fastapi", None)
        sys.modules["fastapi"] = None
        try:
            database_module = importlib.import_module("app.database")
            self.assertTrue(hasattr(database_module, "Database"))

            main_module = importlib.import_module("main")
            self.assertTrue(callable(main_module.main))

            app_module = sys.modules.get("app")
            self.assertIsNotNone(app_module)
            self.assertTrue(hasattr(app_module, "Database"))
        finally:
            sys.modules.pop("fastapi", None)
            if fastapi_module is not None:
                sys.modules["fastapi"] = fastapi_module


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
