"""``dotnet`` CLI collaborator: pack, push, and locating produced packages."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from pforge.core.result import Err, Ok, Result
from pforge.platform.process import ProcessError
from pforge.platform.process import run as run_process
from pforge.services.release.errors import ReleaseError, ReleaseErrorKind
from pforge.services.release.timeouts import (
    DOTNET_PACK_TIMEOUT_SECONDS,
    DOTNET_PUSH_TIMEOUT_SECONDS,
)

CommandRunner = Callable[..., Result[str, ProcessError]]


def process_failure(error: ProcessError, *, kind: ReleaseErrorKind, what: str) -> ReleaseError:
    if error.timed_out:
        return ReleaseError(kind="timeout", message=f"{what} timed out", hint=error.stderr.strip())
    if error.returncode == -1:
        # The executable could not be started at all.
        return ReleaseError(
            kind="tool_unavailable",
            message=f"{what} could not run: {error.stderr.strip()}",
            hint="install the .NET SDK and make sure dotnet is on PATH",
        )
    return ReleaseError(kind=kind, message=f"{what} failed (exit {error.returncode})", hint=error.detail)


def package_search_dir(csproj: Path, configuration: str, output: Path | None) -> Path:
    return output if output is not None else csproj.parent / "bin" / configuration


def find_packages(
    csproj: Path,
    *,
    name: str,
    version: str,
    configuration: str,
    output: Path | None,
) -> list[Path]:
    """``<name>.<version>.nupkg`` files produced for one project, symbols excluded."""
    search = package_search_dir(csproj, configuration, output)
    if not search.is_dir():
        return []
    wanted = f"{name}.{version}.nupkg".casefold()
    found = [
        p
        for p in search.rglob("*.nupkg")
        if not p.name.casefold().endswith(".symbols.nupkg") and p.name.casefold() == wanted
    ]
    return sorted(found, key=lambda p: str(p).casefold())


def planned_package(
    csproj: Path, *, name: str, version: str, configuration: str, output: Path | None
) -> Path:
    return package_search_dir(csproj, configuration, output) / f"{name}.{version}.nupkg"


@dataclass
class DotNetCli:
    runner: CommandRunner = run_process
    executable: str = "dotnet"

    def pack(
        self, csproj: Path, *, configuration: str, output: Path | None
    ) -> Result[None, ReleaseError]:
        cmd = [self.executable, "pack", str(csproj), "--configuration", configuration, "--nologo"]
        if output is not None:
            cmd += ["-o", str(output)]
        result = self.runner(cmd, cwd=csproj.parent, timeout=DOTNET_PACK_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return Err(process_failure(result.error, kind="pack_failed", what=f"dotnet pack {csproj.name}"))
        return Ok(None)

    def push(
        self,
        package: Path,
        *,
        source: str,
        api_key: str,
        skip_duplicate: bool,
    ) -> Result[None, ReleaseError]:
        cmd = [
            self.executable,
            "nuget",
            "push",
            str(package),
            "--api-key",
            api_key,
            "--source",
            source,
        ]
        if skip_duplicate:
            cmd.append("--skip-duplicate")
        result = self.runner(cmd, cwd=package.parent, timeout=DOTNET_PUSH_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return Err(
                process_failure(result.error, kind="publish_failed", what=f"push {package.name}")
            )
        return Ok(None)
