from __future__ import annotations

import shutil
import zipfile
from pathlib import Path

from pforge.core.result import Err, Ok, Result
from pforge.output.console import MockConsole
from pforge.platform.detection import Platform
from pforge.platform.http import MockHttpClient
from pforge.platform.process import ProcessError
from pforge.services.release.dotnet import DotNetCli
from pforge.services.release.model import (
    GitHubReleaseOptions,
    ProjectReleaseOutcome,
    ProjectStatus,
    PublishOptions,
    ReleaseSpec,
    RepositoryReleaseResult,
    SigningOptions,
)
from pforge.services.release.orchestrator import RepositoryReleaseService, run_release
from pforge.services.release.scanner import csproj_version
from pforge.services.release.signing import PackageSigner
from pforge.services.release.version_map import parse_version_map


def _project(
    root: Path,
    name: str,
    version: str = "1.0.0",
    *,
    packable: bool = True,
    references: tuple[str, ...] = (),
    folder: str = "src",
) -> Path:
    csproj = root / folder / name / f"{name}.csproj"
    csproj.parent.mkdir(parents=True, exist_ok=True)
    refs = "".join(f'<ProjectReference Include="..\\{r}\\{r}.csproj" />' for r in references)
    packable_tag = "" if packable else "<IsPackable>false</IsPackable>"
    csproj.write_text(
        '<Project Sdk="Microsoft.NET.Sdk">\n'
        f"  <PropertyGroup><Version>{version}</Version>{packable_tag}</PropertyGroup>\n"
        f"  <ItemGroup>{refs}</ItemGroup>\n"
        "</Project>\n",
        encoding="utf-8",
    )
    return csproj


class FakeDotNet:
    """Stands in for the dotnet executable: pack writes a nupkg, push copies it."""

    def __init__(self, *, fail_pack: tuple[str, ...] = (), fail_push: tuple[str, ...] = ()) -> None:
        self.calls: list[list[str]] = []
        self.fail_pack = fail_pack
        self.fail_push = fail_push

    def __call__(self, cmd: list[str], cwd: Path, *, timeout: float | None = None) -> Result[str, ProcessError]:
        self.calls.append(cmd)
        if cmd[1] == "pack":
            csproj = Path(cmd[2])
            if csproj.stem in self.fail_pack:
                return Err(ProcessError(tuple(cmd), 1, "", "error CS1002: ; expected"))
            # the SDK packs 1.0.0 when the project declares no version
            version = csproj_version(csproj.read_text(encoding="utf-8")) or "1.0.0"
            out = csproj.parent / "bin" / cmd[4]
            out.mkdir(parents=True, exist_ok=True)
            (out / f"{csproj.stem}.{version}.nupkg").write_bytes(b"nupkg")
            return Ok("")
        if cmd[1:3] == ["nuget", "push"]:
            package = Path(cmd[3])
            if package.name.split(".")[0] in self.fail_push:
                return Err(ProcessError(tuple(cmd), 1, "", "403 Forbidden"))
            target = Path(cmd[cmd.index("--source") + 1])
            if target.is_dir():
                shutil.copy(package, target / package.name)
            return Ok("")
        return Ok("")

    def commands(self, verb: str) -> list[str]:
        return [Path(c[2] if c[1] == "pack" else c[3]).name for c in self.calls if verb in c[1:3]]


def _service(
    runner: FakeDotNet, console: MockConsole | None = None, http: MockHttpClient | None = None, **kwargs: object
) -> RepositoryReleaseService:
    return RepositoryReleaseService(
        console=console or MockConsole(),
        http=http or MockHttpClient(),
        dotnet=DotNetCli(runner=runner),
        platform=Platform.LINUX,
        **kwargs,  # type: ignore[arg-type]
    )


def _by_name(result: RepositoryReleaseResult) -> dict[str, ProjectReleaseOutcome]:
    return {p.name: p for p in result.projects}


def _feed(tmp_path: Path, *packages: str) -> Path:
    feed = tmp_path / "feed"
    feed.mkdir(exist_ok=True)
    for package in packages:
        (feed / f"{package}.nupkg").write_bytes(b"")
    return feed


def test_what_if_plans_without_touching_anything(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    a = _project(repo, "A")
    before = a.read_bytes()
    runner = FakeDotNet()

    result = _service(runner).execute(ReleaseSpec(root=repo, expected_version="2.0.0", what_if=True))

    assert result.success
    assert result.what_if
    assert result.resolved_version == "2.0.0"
    project = result.projects[0]
    assert project.status == ProjectStatus.PLANNED
    assert project.old_version == "1.0.0"
    assert project.new_version == "2.0.0"
    assert project.packages == (a.parent / "bin" / "Release" / "A.2.0.0.nupkg",)
    assert a.read_bytes() == before
    assert runner.calls == []


def test_release_writes_version_and_packs(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    a = _project(repo, "A")
    runner = FakeDotNet()

    result = _service(runner).execute(ReleaseSpec(root=repo, expected_version="1.1.0"))

    assert result.success
    assert result.projects[0].status == ProjectStatus.RELEASED
    assert "<Version>1.1.0</Version>" in a.read_text(encoding="utf-8")
    assert result.projects[0].packages == (a.parent / "bin" / "Release" / "A.1.1.0.nupkg",)


def test_pattern_steps_above_published_version(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    _project(repo, "A")
    _project(repo, "B")
    feed = _feed(tmp_path, "A.1.0.4", "B.1.0.2")

    result = _service(FakeDotNet()).execute(
        ReleaseSpec(root=repo, expected_version="1.0.X", sources=(str(feed),), what_if=True)
    )

    assert [p.new_version for p in result.projects] == ["1.0.5", "1.0.5"]
    assert result.resolved_version == "1.0.5"


def test_failure_in_one_project_does_not_stop_others(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    for name in ("A", "B", "C"):
        _project(repo, name)
    runner = FakeDotNet(fail_pack=("B",))

    result = _service(runner).execute(ReleaseSpec(root=repo, expected_version="1.0.1"))

    statuses = {p.name: p.status for p in result.projects}
    assert statuses == {"A": ProjectStatus.RELEASED, "B": ProjectStatus.FAILED, "C": ProjectStatus.RELEASED}
    assert not result.success
    assert result.error_message == "One or more projects failed: B"
    assert result.error_kind == "pack_failed"
    assert result.resolved_version == "1.0.1"
    failed = result.failed_projects[0]
    assert failed.error_kind == "pack_failed"
    assert "CS1002" in (failed.error or "")


def test_fail_fast_skips_remaining_projects(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    for name in ("A", "B", "C"):
        _project(repo, name)
    publish = tmp_path / "publish"
    publish.mkdir()
    runner = FakeDotNet(fail_pack=("B",))

    result = _service(runner).execute(
        ReleaseSpec(
            root=repo,
            expected_version="1.0.1",
            publish=PublishOptions(source=str(publish), api_key="key", fail_fast=True),
        )
    )

    statuses = {p.name: p.status for p in result.projects}
    assert statuses == {"A": ProjectStatus.SKIPPED, "B": ProjectStatus.FAILED, "C": ProjectStatus.SKIPPED}
    assert runner.commands("pack") == ["A.csproj", "B.csproj"]
    assert runner.commands("push") == []
    assert result.published_packages == ()
    skipped = _by_name(result)["C"]
    assert "not processed: stopped after an earlier failure" in skipped.warnings


def test_duplicate_project_names_fail_both(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    _project(repo, "Dup", folder="x")
    _project(repo, "Dup", folder="y")
    _project(repo, "Other")

    result = _service(FakeDotNet()).execute(ReleaseSpec(root=repo, expected_version="1.0.1", what_if=True))

    dups = [p for p in result.projects if p.name == "Dup"]
    assert len(dups) == 2
    assert all(p.status == ProjectStatus.FAILED and p.error_kind == "duplicate_project" for p in dups)
    assert "x" in (dups[0].error or "") and "y" in (dups[0].error or "")
    assert _by_name(result)["Other"].status == ProjectStatus.PLANNED
    assert result.error_kind == "duplicate_project"


def test_non_packable_projects_are_skipped(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    _project(repo, "Lib")
    _project(repo, "Tests", packable=False)
    runner = FakeDotNet()

    result = _service(runner).execute(ReleaseSpec(root=repo, expected_version="1.0.1"))

    tests = _by_name(result)["Tests"]
    assert tests.status == ProjectStatus.SKIPPED
    assert tests.packable is False
    assert runner.commands("pack") == ["Lib.csproj"]
    assert result.success


def test_map_as_include_limits_selection(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    _project(repo, "Contoso.Core")
    _project(repo, "Contoso.Web")
    _project(repo, "Tools")
    console = MockConsole()
    vmap = parse_version_map([("Contoso.*", "3.0.0"), ("Missing", "1.0.0")], as_include=True, use_wildcards=True)
    assert isinstance(vmap, Ok)

    result = _service(FakeDotNet(), console).execute(ReleaseSpec(root=repo, version_map=vmap.value, what_if=True))

    assert [p.name for p in result.projects] == ["Contoso.Core", "Contoso.Web"]
    assert result.resolved_version == "3.0.0"
    assert console.find("matches no project: Missing")
    assert console.find("excluded by expected version map: Tools")


def test_publish_pushes_in_dependency_order(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    _project(repo, "App", references=("Zeta",))
    _project(repo, "Zeta")
    publish = tmp_path / "publish"
    publish.mkdir()
    runner = FakeDotNet()

    result = _service(runner).execute(
        ReleaseSpec(
            root=repo,
            expected_version="2.0.0",
            publish=PublishOptions(source=str(publish), api_key="key"),
        )
    )

    assert result.success
    assert runner.commands("pack") == ["App.csproj", "Zeta.csproj"]
    assert runner.commands("push") == ["Zeta.2.0.0.nupkg", "App.2.0.0.nupkg"]
    assert result.published_packages == ("Zeta.2.0.0.nupkg", "App.2.0.0.nupkg")
    assert _by_name(result)["App"].dependencies == ("Zeta",)


def test_pack_dependencies_adds_referenced_projects(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    _project(repo, "App", references=("Core",))
    _project(repo, "Core")
    _project(repo, "Unrelated")

    result = _service(FakeDotNet()).execute(
        ReleaseSpec(
            root=repo,
            expected_version="1.0.1",
            include_projects=("App",),
            pack_dependencies=True,
            what_if=True,
        )
    )

    assert [p.name for p in result.projects] == ["App", "Core"]


def test_publish_preflight_rejects_already_published_version(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    _project(repo, "A")
    publish = _feed(tmp_path, "A.1.0.0")
    runner = FakeDotNet()

    result = _service(runner).execute(
        ReleaseSpec(root=repo, publish=PublishOptions(source=str(publish), api_key="key"))
    )

    project = result.projects[0]
    assert project.status == ProjectStatus.FAILED
    assert project.error_kind == "publish_failed"
    assert runner.commands("push") == []

    allowed = _service(FakeDotNet()).execute(
        ReleaseSpec(root=repo, publish=PublishOptions(source=str(publish), api_key="key", skip_duplicate=True))
    )
    assert allowed.projects[0].status == ProjectStatus.RELEASED


def test_push_failure_is_recorded(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    _project(repo, "A")
    _project(repo, "B")
    publish = tmp_path / "publish"
    publish.mkdir()

    result = _service(FakeDotNet(fail_push=("A",))).execute(
        ReleaseSpec(root=repo, expected_version="1.0.1", publish=PublishOptions(source=str(publish), api_key="k"))
    )

    assert _by_name(result)["A"].status == ProjectStatus.FAILED
    assert _by_name(result)["B"].status == ProjectStatus.RELEASED
    assert result.published_packages == ("B.1.0.1.nupkg",)
    assert result.error_kind == "publish_failed"


def test_publish_without_api_key_fails_before_discovery(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    _project(repo, "A")
    runner = FakeDotNet()

    result = _service(runner).execute(
        ReleaseSpec(root=repo, publish=PublishOptions(source="https://feed", api_key=""))
    )

    assert not result.success
    assert result.projects == ()
    assert result.error_kind == "invalid_input"
    assert result.error_message == "PublishApiKey is required when publishing."
    assert runner.calls == []


def test_missing_root(tmp_path: Path) -> None:
    result = _service(FakeDotNet()).execute(ReleaseSpec(root=tmp_path / "nope"))

    assert not result.success
    assert result.error_kind == "invalid_input"


def test_signing_without_dotnet_warns(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    _project(repo, "A")

    result = _service(
        FakeDotNet(),
        signer_factory=lambda options: PackageSigner(options, executable="pforge-no-such-dotnet"),
    ).execute(ReleaseSpec(root=repo, signing=SigningOptions(pfx_base64="eA==")))

    project = result.projects[0]
    assert project.status == ProjectStatus.RELEASED
    assert "signing skipped: dotnet not found" in project.warnings


def test_thumbprint_signing_rejected_off_windows(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    _project(repo, "A")

    result = _service(FakeDotNet()).execute(ReleaseSpec(root=repo, signing=SigningOptions(thumbprint="AB")))

    assert not result.success
    assert result.projects == ()


def test_declined_version_write_skips_project(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    a = _project(repo, "A")
    runner = FakeDotNet()

    result = _service(runner, confirm=lambda path, action: False).execute(
        ReleaseSpec(root=repo, expected_version="9.0.0")
    )

    assert result.projects[0].status == ProjectStatus.SKIPPED
    assert "<Version>1.0.0</Version>" in a.read_text(encoding="utf-8")
    assert runner.calls == []


def test_release_zip_leaves_packages_out(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    a = _project(repo, "A")
    out = a.parent / "bin" / "Release"
    out.mkdir(parents=True)
    (out / "A.dll").write_bytes(b"dll")

    result = _service(FakeDotNet()).execute(ReleaseSpec(root=repo, create_release_zip=True))

    zip_path = result.projects[0].release_zip
    assert zip_path == out / "A.1.0.0.zip"
    with zipfile.ZipFile(zip_path) as archive:
        assert archive.namelist() == ["A.dll"]


def test_github_release_after_publish(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    _project(repo, "A")
    publish = tmp_path / "publish"
    publish.mkdir()
    http = MockHttpClient()
    releases = "https://api.github.com/repos/o/r/releases"
    upload = "https://uploads.github.com/repos/o/r/releases/1/assets"
    http.add_json(
        "POST",
        releases,
        {"html_url": "https://github.com/o/r/releases/tag/A-v1.0.0", "upload_url": upload + "{?name,label}"},
        status=201,
    )
    http.add_json("POST", f"{upload}?name=A.1.0.0.nupkg", {}, status=201)

    result = _service(FakeDotNet(), http=http).execute(
        ReleaseSpec(
            root=repo,
            publish=PublishOptions(source=str(publish), api_key="k"),
            github=GitHubReleaseOptions(owner="o", repo="r", token="t"),
        )
    )

    assert result.success
    assert result.projects[0].github_release_url == "https://github.com/o/r/releases/tag/A-v1.0.0"
    assert http.calls_to("GET", f"{releases}/tags/A-v1.0.0")


def test_run_release_returns_plan_when_declined(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    a = _project(repo, "A")
    before = a.read_bytes()
    runner = FakeDotNet()
    seen: list[RepositoryReleaseResult] = []

    def decline(plan: RepositoryReleaseResult) -> bool:
        seen.append(plan)
        return False

    result = run_release(_service(runner), ReleaseSpec(root=repo, expected_version="2.0.0"), confirm_run=decline)

    assert result.what_if
    assert len(seen) == 1
    assert a.read_bytes() == before
    assert runner.calls == []


def test_run_release_executes_after_confirmation(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    _project(repo, "A")
    runner = FakeDotNet()

    result = run_release(
        _service(runner), ReleaseSpec(root=repo, expected_version="2.0.0"), confirm_run=lambda plan: True
    )

    assert not result.what_if
    assert result.projects[0].status == ProjectStatus.RELEASED
    assert runner.commands("pack") == ["A.csproj"]


def test_run_release_skips_confirmation_without_projects(tmp_path: Path) -> None:
    asked: list[bool] = []

    result = run_release(
        _service(FakeDotNet()),
        ReleaseSpec(root=tmp_path),
        confirm_run=lambda plan: asked.append(True) or True,
    )

    assert result.projects == ()
    assert asked == []


def test_release_inserts_version_prefix_when_csproj_has_none(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    a = repo / "src" / "A" / "A.csproj"
    a.parent.mkdir(parents=True)
    a.write_text(
        '<Project Sdk="Microsoft.NET.Sdk">\n'
        "  <PropertyGroup>\n"
        "    <TargetFramework>net8.0</TargetFramework>\n"
        "  </PropertyGroup>\n"
        "</Project>\n",
        encoding="utf-8",
    )

    result = _service(FakeDotNet()).execute(ReleaseSpec(root=repo, expected_version="2.0.0"))

    assert result.success
    project = result.projects[0]
    assert project.status == ProjectStatus.RELEASED
    assert project.packages == (a.parent / "bin" / "Release" / "A.2.0.0.nupkg",)
    assert "  <PropertyGroup>\n    <VersionPrefix>2.0.0</VersionPrefix>\n" in a.read_text(encoding="utf-8")


def test_release_zip_failure_fails_project_and_stops_fail_fast(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    _project(repo, "A")
    _project(repo, "B")
    out = tmp_path / "out"
    out.mkdir()
    for name in ("A", "B"):
        (out / f"{name}.1.0.0.nupkg").write_bytes(b"nupkg")
    publish = tmp_path / "publish"
    publish.mkdir()
    runner = FakeDotNet()

    result = _service(runner).execute(
        ReleaseSpec(
            root=repo,
            output_path=out,
            skip_pack=True,
            create_release_zip=True,
            publish=PublishOptions(source=str(publish), api_key="key", fail_fast=True),
        )
    )

    statuses = {p.name: p.status for p in result.projects}
    assert statuses == {"A": ProjectStatus.FAILED, "B": ProjectStatus.SKIPPED}
    assert result.error_kind == "io_error"
    assert "release path not found" in (_by_name(result)["A"].error or "")
    assert runner.commands("push") == []
