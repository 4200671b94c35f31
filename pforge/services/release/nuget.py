"""Latest published version lookup across NuGet feeds and local folders."""

from __future__ import annotations

import base64
import urllib.parse
from dataclasses import dataclass, field
from pathlib import Path

from pforge.core.config import DEFAULT_NUGET_SOURCE
from pforge.core.result import Err, Ok, Result
from pforge.core.structured import as_obj_list, as_str_dict, get_list, get_str
from pforge.output.console import ConsoleProtocol
from pforge.platform.http import HttpClient
from pforge.services.release.errors import ReleaseError
from pforge.services.release.model import PackageCredential
from pforge.services.release.version import NumericVersion, parse_numeric_version


@dataclass(frozen=True, slots=True)
class _SourceFailure:
    source: str
    reason: str
    timed_out: bool = False


def is_local_source(source: str) -> bool:
    if source.lower().startswith("file://"):
        return True
    if "://" in source:
        return False
    return Path(source).is_absolute() or source.startswith(".")


def credential_headers(credential: PackageCredential | None) -> dict[str, str]:
    """Basic auth for username+secret; a bare secret goes in X-NuGet-ApiKey."""
    if credential is None or not credential.secret:
        return {}
    if credential.username:
        token = f"{credential.username}:{credential.secret}".encode("utf-8")
        return {"Authorization": "Basic " + base64.b64encode(token).decode("ascii")}
    return {"X-NuGet-ApiKey": credential.secret}


def versions_in_folder(
    package_id: str, folder: Path, *, include_prerelease: bool
) -> list[NumericVersion]:
    """Versions of ``package_id`` among ``*.nupkg`` files under ``folder``."""
    prefix = f"{package_id}.".casefold()
    found: list[NumericVersion] = []
    for nupkg in folder.rglob("*.nupkg"):
        stem = nupkg.stem
        if not stem.casefold().startswith(prefix):
            continue
        text = stem[len(prefix) :]
        if text.casefold().endswith(".symbols"):
            text = text[: -len(".symbols")]
        parsed = parse_numeric_version(text, include_prerelease=include_prerelease)
        if parsed is not None:
            found.append(parsed)
    return found


def _package_base_from_index(payload: object) -> str | None:
    data = as_str_dict(payload)
    if data is None:
        return None
    for item in get_list(data, "resources") or []:
        resource = as_str_dict(item)
        if resource is None:
            continue
        raw_type = resource.get("@type")
        types = [raw_type] if isinstance(raw_type, str) else (as_obj_list(raw_type) or [])
        if any(isinstance(t, str) and "packagebaseaddress" in t.lower() for t in types):
            return get_str(resource, "@id")
    return None


@dataclass
class PackageVersionSource:
    """Answers "what is the highest published version of this package?".

    Sources are v3 service indexes (``.../index.json``), flat-container base
    URLs or local folders of ``.nupkg`` files. The result is the highest
    version across every reachable source. A source that answers 404 for the
    package is reachable but empty. If no source can be reached at all the
    lookup fails.
    """

    http: HttpClient
    console: ConsoleProtocol
    base_dir: Path = field(default_factory=Path.cwd)
    _base_cache: dict[str, str | None] = field(default_factory=dict)

    def latest(
        self,
        package_id: str,
        *,
        sources: tuple[str, ...] = (),
        credential: PackageCredential | None = None,
        include_prerelease: bool = False,
    ) -> Result[NumericVersion | None, ReleaseError]:
        normalized: list[str] = []
        for s in sources:
            s = s.strip().strip('"')
            if s and s.casefold() not in {n.casefold() for n in normalized}:
                normalized.append(s)
        if not normalized:
            normalized = [DEFAULT_NUGET_SOURCE]

        best: NumericVersion | None = None
        reachable = 0
        failures: list[_SourceFailure] = []

        for source in normalized:
            if is_local_source(source):
                result = self._from_folder(package_id, source, include_prerelease)
            else:
                result = self._from_feed(package_id, source, credential, include_prerelease)

            if isinstance(result, Err):
                failures.append(result.error)
                self.console.debug(f"version lookup: {source}: {result.error.reason}")
                continue

            reachable += 1
            for v in result.value:
                if best is None or v > best:
                    best = v

        if reachable == 0:
            detail = "; ".join(f"{f.source}: {f.reason}" for f in failures)
            timed_out = all(f.timed_out for f in failures)
            return Err(
                ReleaseError(
                    kind="timeout" if timed_out else "version_source_unavailable",
                    message=f"no package source reachable for {package_id}",
                    hint=detail or None,
                )
            )

        self.console.debug(f"version lookup: {package_id} latest={best}")
        return Ok(best)

    def _from_folder(
        self, package_id: str, source: str, include_prerelease: bool
    ) -> Result[list[NumericVersion], _SourceFailure]:
        if source.lower().startswith("file://"):
            folder = Path(urllib.parse.unquote(urllib.parse.urlparse(source).path))
        else:
            folder = Path(source)
        if not folder.is_absolute():
            folder = self.base_dir / folder
        if not folder.is_dir():
            return Err(_SourceFailure(source, f"local path not found: {folder}"))
        try:
            return Ok(versions_in_folder(package_id, folder, include_prerelease=include_prerelease))
        except OSError as e:
            return Err(_SourceFailure(source, str(e)))

    def _resolve_base(
        self, source: str, headers: dict[str, str]
    ) -> Result[str, _SourceFailure]:
        key = source.casefold()
        if key in self._base_cache:
            cached = self._base_cache[key]
            if cached is None:
                return Err(_SourceFailure(source, "service index has no PackageBaseAddress"))
            return Ok(cached)

        if not source.lower().endswith("index.json"):
            self._base_cache[key] = source.rstrip("/")
            return Ok(source.rstrip("/"))

        sent = self.http.send("GET", source, headers=headers)
        if isinstance(sent, Err):
            return Err(_SourceFailure(source, sent.error.message, sent.error.kind == "timeout"))
        response = sent.value
        if not response.ok:
            return Err(_SourceFailure(source, f"service index returned {response.status}"))

        base = _package_base_from_index(response.json())
        self._base_cache[key] = base.rstrip("/") if base else None
        if base is None:
            return Err(_SourceFailure(source, "service index has no PackageBaseAddress"))
        return Ok(base.rstrip("/"))

    def _from_feed(
        self,
        package_id: str,
        source: str,
        credential: PackageCredential | None,
        include_prerelease: bool,
    ) -> Result[list[NumericVersion], _SourceFailure]:
        headers = credential_headers(credential)
        base = self._resolve_base(source, headers)
        if isinstance(base, Err):
            return base

        url = f"{base.value}/{package_id.lower()}/index.json"
        sent = self.http.send("GET", url, headers=headers)
        if isinstance(sent, Err):
            return Err(_SourceFailure(source, sent.error.message, sent.error.kind == "timeout"))

        response = sent.value
        if response.status == 404:
            return Ok([])
        if not response.ok:
            return Err(_SourceFailure(source, f"{url} returned {response.status} {response.reason}"))

        data = as_str_dict(response.json())
        if data is None:
            return Err(_SourceFailure(source, f"{url} did not return a JSON object"))

        versions: list[NumericVersion] = []
        for item in get_list(data, "versions") or []:
            if not isinstance(item, str):
                continue
            parsed = parse_numeric_version(item, include_prerelease=include_prerelease)
            if parsed is not None:
                versions.append(parsed)
        return Ok(versions)
