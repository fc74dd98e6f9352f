from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
MODULES = sorted((ROOT / "finch").rglob("*.py"))


@pytest.mark.parametrize("module", MODULES, ids=lambda p: p.relative_to(ROOT).as_posix())
def test_module_starts_with_its_path(module):
    first_line = module.read_text(encoding="utf-8").splitlines()[0]
    assert first_line == f"# {module.relative_to(ROOT).as_posix()}"
