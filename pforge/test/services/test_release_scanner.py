from __future__ import annotations

from pathlib import Path

from pforge.services.release.model import DiscoveredFile, SourceKind
from pforge.services.release.scanner import (
    classify,
    csproj_version,
    discover,
    exclude_directory_names,
    filter_by_module,
    find_current_version,
    is_packable,
    looks_like_build_script,
    module_version,
    project_references,
)


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def _csproj(version: str | None = "1.0.0", extra: str = "") -> str:
    version_tag = f"<Version>{version}</Version>" if version else ""
    return (
        '<Project Sdk="Microsoft.NET.Sdk">\n'
        f"  <PropertyGroup>{version_tag}{extra}</PropertyGroup>\n"
        "</Project>\n"
    )


def test_csproj_version_prefers_version_tag() -> None:
    text = "<VersionPrefix>2.0.0</VersionPrefix><Version>1.5.0</Version>"
    assert csproj_version(text) == "1.5.0"
    assert csproj_version("<PackageVersion>3.0.0</PackageVersion>") == "3.0.0"
    assert csproj_version("<AssemblyVersion>3.0.0</AssemblyVersion>") is None


def test_module_version_quotes_optional() -> None:
    assert module_version("ModuleVersion = '1.2.3'") == "1.2.3"
    assert module_version('moduleversion="4.5"') == "4.5"
    assert module_version("ModuleVersion = 7.0.1") == "7.0.1"
    assert module_version("Version = '1.0'") is None


def test_build_script_heuristic() -> None:
    assert looks_like_build_script("Invoke-ModuleBuild -ModuleName X")
    assert looks_like_build_script("Build-Module -Settings {}")
    assert looks_like_build_script("$ModuleVersion = '1.0.0'")
    assert not looks_like_build_script("Write-Host 'hello'")


def test_classify(tmp_path: Path) -> None:
    csproj = _write(tmp_path / "Lib.csproj", _csproj("2.1.0"))
    manifest = _write(tmp_path / "Mod.psd1", "@{ ModuleVersion = '0.9.0' }")
    script = _write(tmp_path / "Build.ps1", "Invoke-ModuleBuild -ModuleVersion '0.9.0'")
    plain = _write(tmp_path / "Other.ps1", "Get-ChildItem")

    assert classify(csproj) == DiscoveredFile(csproj, SourceKind.CSPROJ, "2.1.0")
    assert classify(manifest) == DiscoveredFile(manifest, SourceKind.POWERSHELL_MODULE, "0.9.0")
    found = classify(script)
    assert found is not None and found.kind == SourceKind.BUILD_SCRIPT
    assert classify(plain) is None
    assert classify(_write(tmp_path / "readme.md", "x")) is None


def test_discover_prunes_excluded_directories(tmp_path: Path) -> None:
    _write(tmp_path / "src" / "Lib" / "Lib.csproj", _csproj())
    _write(tmp_path / "src" / "Lib" / "obj" / "Lib.csproj", _csproj())
    _write(tmp_path / "Bin" / "Copy.csproj", _csproj())
    _write(tmp_path / "samples" / "Sample.csproj", _csproj())

    names = [f.name for f in discover(tmp_path, ["samples"])]

    assert names == ["Lib"]


def test_discover_is_sorted_case_insensitively(tmp_path: Path) -> None:
    _write(tmp_path / "b" / "Beta.csproj", _csproj())
    _write(tmp_path / "A" / "Alpha.csproj", _csproj())
    _write(tmp_path / "c" / "Gamma.psd1", "@{ ModuleVersion = '1.0.0' }")

    found = discover(tmp_path)

    assert [f.name for f in found] == ["Alpha", "Beta", "Gamma"]
    only_csproj = discover(tmp_path, kinds=frozenset({SourceKind.CSPROJ}))
    assert [f.name for f in only_csproj] == ["Alpha", "Beta"]


def test_exclude_directory_names_merges_defaults() -> None:
    names = exclude_directory_names([' "Samples" ', ""])
    assert {"bin", "obj", ".git", "samples"} <= names


def test_filter_by_module_keeps_build_scripts(tmp_path: Path) -> None:
    files = [
        DiscoveredFile(tmp_path / "Mod.psd1", SourceKind.POWERSHELL_MODULE, "1.0.0"),
        DiscoveredFile(tmp_path / "Other.psd1", SourceKind.POWERSHELL_MODULE, "1.0.0"),
        DiscoveredFile(tmp_path / "Build.ps1", SourceKind.BUILD_SCRIPT, None),
    ]

    kept = filter_by_module(files, "mod")

    assert [f.name for f in kept] == ["Mod", "Build"]
    assert filter_by_module(files, None) == files


def test_find_current_version_prefers_csproj(tmp_path: Path) -> None:
    files = [
        DiscoveredFile(tmp_path / "Mod.psd1", SourceKind.POWERSHELL_MODULE, "2.0.0"),
        DiscoveredFile(tmp_path / "NoVersion.csproj", SourceKind.CSPROJ, None),
        DiscoveredFile(tmp_path / "Lib.csproj", SourceKind.CSPROJ, "1.0.0"),
    ]

    assert find_current_version(files) == "1.0.0"
    assert find_current_version(files[:1]) == "2.0.0"
    assert find_current_version([]) is None


def test_is_packable(tmp_path: Path) -> None:
    packable = _write(tmp_path / "A.csproj", _csproj())
    tests = _write(tmp_path / "B.csproj", _csproj(extra="<IsPackable>False</IsPackable>"))
    broken = _write(tmp_path / "C.csproj", "<Project>")

    assert is_packable(packable)
    assert not is_packable(tests)
    assert is_packable(broken)


def test_project_references_handle_windows_separators(tmp_path: Path) -> None:
    core = _write(tmp_path / "src" / "Core" / "Core.csproj", _csproj())
    web = _write(
        tmp_path / "src" / "Web" / "Web.csproj",
        '<Project Sdk="Microsoft.NET.Sdk"><ItemGroup>'
        '<ProjectReference Include="..\\Core\\Core.csproj" />'
        "</ItemGroup></Project>",
    )

    refs = project_references(web)

    assert [r.resolve() for r in refs] == [core.resolve()]


def test_csproj_version_ignores_padded_tag_the_writer_cannot_rewrite() -> None:
    assert csproj_version("<Version> 1.2.3 </Version>") is None


NESTED_MANIFEST = """@{
    RootModule      = 'Mod.psm1'
    RequiredModules = @(
        @{ ModuleName = 'Dep'; ModuleVersion = '0.1.0' }
        @{
            ModuleName    = 'Other'
            ModuleVersion = '0.2.0'
        }
    )
    # ModuleVersion in a comment (2.0) does not count
    ModuleVersion   = '3.4.5'
}
"""


def test_manifest_version_reads_top_level_key_only(tmp_path: Path) -> None:
    assert module_version(NESTED_MANIFEST, top_level=True) == "3.4.5"
    assert module_version(NESTED_MANIFEST) == "0.1.0"

    manifest = _write(tmp_path / "Mod.psd1", NESTED_MANIFEST)
    found = classify(manifest)

    assert found is not None
    assert found.version == "3.4.5"
