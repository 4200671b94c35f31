from __future__ import annotations

import base64
from pathlib import Path

from pforge.core.result import Err, Ok
from pforge.output.console import MockConsole
from pforge.platform.http import HttpError, MockHttpClient
from pforge.services.release.model import PackageCredential
from pforge.services.release.nuget import (
    PackageVersionSource,
    credential_headers,
    is_local_source,
    versions_in_folder,
)
from pforge.services.release.version import NumericVersion

INDEX = "https://feed.example/v3/index.json"
BASE = "https://feed.example/v3-flatcontainer"


def _source(http: MockHttpClient, base_dir: Path | None = None) -> PackageVersionSource:
    if base_dir is None:
        return PackageVersionSource(http=http, console=MockConsole())
    return PackageVersionSource(http=http, console=MockConsole(), base_dir=base_dir)


def _feed(http: MockHttpClient, versions: list[str], package: str = "contoso.core") -> None:
    http.add_json(
        "GET",
        INDEX,
        {"resources": [{"@id": BASE + "/", "@type": "PackageBaseAddress/3.0.0"}]},
    )
    http.add_json("GET", f"{BASE}/{package}/index.json", {"versions": versions})


def test_is_local_source() -> None:
    assert is_local_source("./artifacts")
    assert is_local_source("file:///tmp/feed")
    assert is_local_source(str(Path("/tmp/feed").resolve()))
    assert not is_local_source(INDEX)


def test_credential_headers() -> None:
    assert credential_headers(None) == {}
    assert credential_headers(PackageCredential(secret="k")) == {"X-NuGet-ApiKey": "k"}
    basic = credential_headers(PackageCredential(username="u", secret="p"))
    assert basic == {"Authorization": "Basic " + base64.b64encode(b"u:p").decode("ascii")}


def test_highest_stable_version_from_feed() -> None:
    http = MockHttpClient()
    _feed(http, ["1.0.0", "1.2.10", "1.2.9", "2.0.0-beta.1"])

    result = _source(http).latest("Contoso.Core", sources=(INDEX,))

    assert result == Ok(NumericVersion((1, 2, 10)))


def test_prerelease_counts_when_requested() -> None:
    http = MockHttpClient()
    _feed(http, ["1.0.0", "2.0.0-beta.1"])

    result = _source(http).latest("Contoso.Core", sources=(INDEX,), include_prerelease=True)

    assert result == Ok(NumericVersion((2, 0, 0)))


def test_unknown_package_is_none() -> None:
    http = MockHttpClient()
    http.add_json(
        "GET", INDEX, {"resources": [{"@id": BASE, "@type": ["PackageBaseAddress/3.0.0"]}]}
    )

    assert _source(http).latest("Nope", sources=(INDEX,)) == Ok(None)


def test_service_index_is_fetched_once() -> None:
    http = MockHttpClient()
    _feed(http, ["1.0.0"])
    source = _source(http)

    source.latest("Contoso.Core", sources=(INDEX,))
    source.latest("Contoso.Core", sources=(INDEX,))

    assert len(http.calls_to("GET", INDEX)) == 1


def test_credentials_are_sent() -> None:
    http = MockHttpClient()
    _feed(http, ["1.0.0"])

    _source(http).latest("Contoso.Core", sources=(INDEX,), credential=PackageCredential(secret="k"))

    assert all(c.headers.get("X-NuGet-ApiKey") == "k" for c in http.calls)


def test_highest_across_feed_and_folder(tmp_path: Path) -> None:
    (tmp_path / "Contoso.Core.1.5.0.nupkg").write_bytes(b"")
    (tmp_path / "Contoso.Core.1.5.0.symbols.nupkg").write_bytes(b"")
    (tmp_path / "Contoso.Core.Tests.9.0.0.nupkg").write_bytes(b"")
    http = MockHttpClient()
    _feed(http, ["1.2.0"])

    result = _source(http).latest("Contoso.Core", sources=(INDEX, str(tmp_path)))

    assert result == Ok(NumericVersion((1, 5, 0)))


def test_relative_folder_resolves_against_base_dir(tmp_path: Path) -> None:
    feed = tmp_path / "artifacts"
    feed.mkdir()
    (feed / "Lib.3.1.0.nupkg").write_bytes(b"")

    result = _source(MockHttpClient(), tmp_path).latest("Lib", sources=("./artifacts",))

    assert result == Ok(NumericVersion((3, 1, 0)))


def test_unreachable_source_is_skipped_when_another_answers(tmp_path: Path) -> None:
    http = MockHttpClient()
    http.add("GET", INDEX, HttpError(url=INDEX, kind="network", message="refused"))
    (tmp_path / "Lib.1.0.0.nupkg").write_bytes(b"")

    result = _source(http).latest("Lib", sources=(INDEX, str(tmp_path)))

    assert result == Ok(NumericVersion((1, 0, 0)))


def test_all_sources_unreachable_is_an_error() -> None:
    http = MockHttpClient()
    http.add("GET", INDEX, HttpError(url=INDEX, kind="network", message="refused"))

    result = _source(http).latest("Lib", sources=(INDEX,))

    assert isinstance(result, Err)
    assert result.error.kind == "version_source_unavailable"


def test_all_sources_timing_out_is_a_timeout() -> None:
    http = MockHttpClient()
    http.add("GET", INDEX, HttpError(url=INDEX, kind="timeout", message="timed out"))

    result = _source(http).latest("Lib", sources=(INDEX,))

    assert isinstance(result, Err)
    assert result.error.kind == "timeout"


def test_versions_in_folder_ignores_other_ids(tmp_path: Path) -> None:
    (tmp_path / "nested").mkdir()
    (tmp_path / "nested" / "lib.2.0.0.nupkg").write_bytes(b"")
    (tmp_path / "Library.9.0.0.nupkg").write_bytes(b"")

    found = versions_in_folder("Lib", tmp_path, include_prerelease=False)

    assert found == [NumericVersion((2, 0, 0))]
