from __future__ import annotations

from pathlib import Path

from pforge.core.result import Err, Ok
from pforge.core.secrets import SecretRef, resolve_secret


def test_file_wins_over_env_and_inline(tmp_path: Path) -> None:
    secret_file = tmp_path / "key.txt"
    secret_file.write_text("  from-file \n", encoding="utf-8")
    ref = SecretRef(inline="from-inline", file_path=secret_file, env_name="KEY")

    result = resolve_secret(ref, environ={"KEY": "from-env"})

    assert result == Ok("from-file")


def test_env_wins_over_inline() -> None:
    ref = SecretRef(inline="from-inline", env_name="KEY")

    assert resolve_secret(ref, environ={"KEY": "\tfrom-env  "}) == Ok("from-env")


def test_blank_sources_fall_through(tmp_path: Path) -> None:
    blank = tmp_path / "blank.txt"
    blank.write_text("   \n", encoding="utf-8")
    ref = SecretRef(inline="  inline  ", file_path=blank, env_name="KEY")

    assert resolve_secret(ref, environ={"KEY": "   "}) == Ok("inline")


def test_nothing_supplied_is_none() -> None:
    ref = SecretRef()

    assert ref.is_empty
    assert resolve_secret(ref, environ={}) == Ok(None)


def test_missing_env_var_is_none() -> None:
    assert resolve_secret(SecretRef(env_name="NOPE"), environ={}) == Ok(None)


def test_unreadable_file_is_an_error(tmp_path: Path) -> None:
    missing = tmp_path / "missing.txt"

    result = resolve_secret(SecretRef(inline="x", file_path=missing), environ={})

    assert isinstance(result, Err)
    assert result.error.path == missing
