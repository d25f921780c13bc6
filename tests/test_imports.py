# test_imports.py
import importlib

import pytest


@pytest.mark.parametrize("module", [
    "quota_guardian",
    "quota_guardian.cli.main",
    "quota_guardian.client",
    "quota_guardian.config.loader",
    "quota_guardian.core.scheduler",
    "quota_guardian.core.usage_chart",
    "quota_guardian.storage.buffer",
    "quota_guardian.storage.history",
])
def test_module_imports(module):
    assert importlib.import_module(module) is not None
