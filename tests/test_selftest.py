from __future__ import annotations

from stackvm import run_tests


def test_builtin_table_passes(capsys):
    passed, total = run_tests()
    assert total > 0
    assert passed == total, capsys.readouterr().out
