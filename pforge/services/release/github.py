"""GitHub release creation and asset upload over the REST API.

Both steps are safe to repeat. When the tag already has a release, the
existing one is fetched and reused. When an asset with the same name is
already attached, the upload is skipped.
"""

from __future__ import annotations

import json
import urllib.parse
from dataclasses import dataclass
from pathlib import Path

from pforge import __version__
from pforge.core.result import Err, Ok, Result
from pforge.core.structured import as_str_dict, get_list, get_str
from pforge.output.console import ConsoleProtocol
from pforge.platform.http import HttpClient, HttpResponse
from pforge.services.release.errors import ReleaseError
from pforge.services.release.model import GitHubReleaseRequest, GitHubReleaseResult

GITHUB_API = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"
MAX_ERROR_BODY_CHARS = 4000


def trim_for_message(text: str) -> str:
    t = text.strip()
    if len(t) > MAX_ERROR_BODY_CHARS:
        return t[:MAX_ERROR_BODY_CHARS] + "..."
    return t


def strip_upload_template(upload_url: str) -> str:
    """``.../assets{?name,label}`` -> ``.../assets``."""
    idx = upload_url.find("{")
    return upload_url[:idx] if idx >= 0 else upload_url


def is_already_exists(response: HttpResponse, field: str) -> bool:
    """True for a 422 whose error list reports ``already_exists`` on ``field``."""
    if response.status != 422:
        return False
    data = as_str_dict(response.json())
    if data is None:
        return False
    for item in get_list(data, "errors") or []:
        error = as_str_dict(item)
        if error is None:
            continue
        if get_str(error, "code") == "already_exists" and get_str(error, "field") == field:
            return True
    return False


def validate_request(request: GitHubReleaseRequest, token: str | None) -> Result[list[Path], ReleaseError]:
    """Input checks done before any network call; returns resolved asset paths."""
    for label, value in (("owner", request.owner), ("repo", request.repo), ("tag", request.tag)):
        if not value or not value.strip():
            return Err(ReleaseError(kind="invalid_input", message=f"GitHub {label} is required"))
    if not token:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message="GitHub token is required",
                hint="pass --token, --token-file or --token-env",
            )
        )
    if request.generate_notes and request.notes and request.notes.strip():
        return Err(
            ReleaseError(
                kind="invalid_input",
                message="release notes cannot be given when generated notes are enabled",
            )
        )

    assets: list[Path] = []
    for asset in request.assets:
        resolved = asset.expanduser().resolve()
        if not resolved.is_file():
            return Err(ReleaseError(kind="asset_missing", message=f"GitHub asset not found: {resolved}"))
        assets.append(resolved)
    return Ok(assets)


@dataclass(frozen=True, slots=True)
class _Release:
    html_url: str
    upload_url: str


@dataclass
class GitHubReleasePublisher:
    http: HttpClient
    console: ConsoleProtocol
    api_base: str = GITHUB_API

    def _headers(self, token: str, content_type: str | None = None) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "Authorization": f"Bearer {token}",
            "User-Agent": f"pforge/{__version__}",
        }
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    def publish(
        self, request: GitHubReleaseRequest, token: str | None
    ) -> Result[GitHubReleaseResult, ReleaseError]:
        """Create or reuse the release for ``request.tag`` and upload its assets.

        ``Err`` is only returned for invalid input, before any request is
        sent. Runtime failures come back as a result with
        ``release_created`` or ``all_assets_uploaded`` set to False.
        """
        validated = validate_request(request, token)
        if isinstance(validated, Err):
            return validated
        assert token is not None
        assets = validated.value

        created = self._create_or_reuse(request, token)
        if isinstance(created, Err):
            return Ok(
                GitHubReleaseResult(
                    release_created=False,
                    all_assets_uploaded=False if assets else None,
                    error_message=created.error.message,
                    error_kind=created.error.kind,
                )
            )
        release, reused = created.value

        if not assets:
            return Ok(
                GitHubReleaseResult(
                    release_created=True,
                    all_assets_uploaded=None,
                    release_url=release.html_url,
                    upload_url=release.upload_url,
                    reused_existing=reused,
                )
            )

        upload_base = strip_upload_template(release.upload_url)
        uploaded: list[str] = []
        skipped: list[str] = []
        failures: list[ReleaseError] = []
        for asset in assets:
            outcome = self._upload(upload_base, asset, token)
            if isinstance(outcome, Err):
                failures.append(outcome.error)
                self.console.error(outcome.error.message)
            elif outcome.value:
                uploaded.append(asset.name)
            else:
                skipped.append(asset.name)

        return Ok(
            GitHubReleaseResult(
                release_created=True,
                all_assets_uploaded=not failures,
                release_url=release.html_url,
                upload_url=release.upload_url,
                reused_existing=reused,
                uploaded=tuple(uploaded),
                skipped=tuple(skipped),
                error_message="; ".join(f.message for f in failures) or None,
                error_kind=failures[0].kind if failures else None,
            )
        )

    def _create_or_reuse(
        self, request: GitHubReleaseRequest, token: str
    ) -> Result[tuple[_Release, bool], ReleaseError]:
        owner = urllib.parse.quote(request.owner.strip(), safe="")
        repo = urllib.parse.quote(request.repo.strip(), safe="")
        url = f"{self.api_base}/repos/{owner}/{repo}/releases"

        payload: dict[str, object] = {
            "tag_name": request.tag,
            "name": request.name.strip() if request.name and request.name.strip() else request.tag,
            "generate_release_notes": request.generate_notes,
            "draft": request.draft,
            "prerelease": request.prerelease,
        }
        if request.commitish and request.commitish.strip():
            payload["target_commitish"] = request.commitish.strip()
        if request.notes and request.notes.strip() and not request.generate_notes:
            payload["body"] = request.notes

        if request.reuse_existing:
            found = self._find_by_tag(url, request.tag, token)
            if isinstance(found, Err):
                return found
            if found.value is not None:
                self.console.warning(f"release for tag {request.tag} already exists; reusing it")
                return Ok((found.value, True))

        sent = self.http.send(
            "POST",
            url,
            headers=self._headers(token, "application/json"),
            data=json.dumps(payload).encode("utf-8"),
        )
        if isinstance(sent, Err):
            return Err(
                ReleaseError(
                    kind="timeout" if sent.error.kind == "timeout" else "release_creation_failed",
                    message=f"GitHub release creation failed: {sent.error.message}",
                )
            )

        response = sent.value
        if response.ok:
            return self._parse_release(response).map(lambda r: (r, False))

        if request.reuse_existing and is_already_exists(response, "tag_name"):
            # Created concurrently, or a draft the tag lookup could not see.
            self.console.warning(f"release for tag {request.tag} already exists; reusing it")
            found = self._find_by_tag(url, request.tag, token)
            if isinstance(found, Err):
                return found
            if found.value is None:
                return Err(_creation_failure(response, what="creation"))
            return Ok((found.value, True))

        return Err(_creation_failure(response, what="creation"))

    def _find_by_tag(
        self, releases_url: str, tag: str, token: str
    ) -> Result[_Release | None, ReleaseError]:
        """The release for ``tag``, or None when GitHub has none."""
        quoted = urllib.parse.quote(tag, safe="")
        sent = self.http.send("GET", f"{releases_url}/tags/{quoted}", headers=self._headers(token))
        if isinstance(sent, Err):
            return Err(
                ReleaseError(
                    kind="timeout" if sent.error.kind == "timeout" else "release_creation_failed",
                    message=f"GitHub release lookup failed: {sent.error.message}",
                )
            )
        if sent.value.status == 404:
            return Ok(None)
        if not sent.value.ok:
            return Err(_creation_failure(sent.value, what="lookup"))
        parsed = self._parse_release(sent.value)
        if isinstance(parsed, Err):
            return parsed
        return Ok(parsed.value)

    def _parse_release(self, response: HttpResponse) -> Result[_Release, ReleaseError]:
        data = as_str_dict(response.json())
        upload_url = get_str(data, "upload_url") if data is not None else None
        if data is None or upload_url is None:
            return Err(
                ReleaseError(
                    kind="release_creation_failed",
                    message="GitHub release response has no upload_url",
                )
            )
        return Ok(_Release(html_url=get_str(data, "html_url") or "", upload_url=upload_url))

    def _upload(self, upload_base: str, asset: Path, token: str) -> Result[bool, ReleaseError]:
        """Ok(True) when uploaded, Ok(False) when the asset was already there."""
        try:
            content = asset.read_bytes()
        except OSError as e:
            return Err(ReleaseError(kind="io_error", message=f"cannot read asset {asset}: {e}"))

        target = f"{upload_base}?name={urllib.parse.quote(asset.name, safe='')}"
        self.console.info(f"uploading GitHub release asset: {asset.name}")
        sent = self.http.send(
            "POST",
            target,
            headers=self._headers(token, "application/octet-stream"),
            data=content,
        )
        if isinstance(sent, Err):
            return Err(
                ReleaseError(
                    kind="timeout" if sent.error.kind == "timeout" else "asset_upload_failed",
                    message=f"GitHub asset upload failed for '{asset.name}': {sent.error.message}",
                )
            )

        response = sent.value
        if response.ok:
            return Ok(True)
        if is_already_exists(response, "name"):
            self.console.warning(f"asset {asset.name} already uploaded; skipping")
            return Ok(False)
        return Err(
            ReleaseError(
                kind="asset_upload_failed",
                message=(
                    f"GitHub asset upload failed for '{asset.name}' "
                    f"({response.status} {response.reason}). {trim_for_message(response.text)}"
                ).strip(),
            )
        )


def _creation_failure(response: HttpResponse, *, what: str) -> ReleaseError:
    return ReleaseError(
        kind="release_creation_failed",
        message=(
            f"GitHub release {what} failed ({response.status} {response.reason}). "
            f"{trim_for_message(response.text)}"
        ).strip(),
    )
