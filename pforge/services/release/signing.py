"""Package signing through ``dotnet nuget sign``.

Windows signs with a certificate from the user or machine store, looked up
by thumbprint. Other systems need the certificate as a PFX file, given by
path or as Base64 text.
"""

from __future__ import annotations

import base64
import binascii
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from pforge.core.result import Err, Ok, Result
from pforge.platform.detection import Platform, detect_platform
from pforge.platform.process import run as run_process
from pforge.platform.process import which
from pforge.services.release.dotnet import CommandRunner, process_failure
from pforge.services.release.errors import ReleaseError
from pforge.services.release.model import SigningOptions
from pforge.services.release.timeouts import DOTNET_SIGN_TIMEOUT_SECONDS


def validate_signing(options: SigningOptions, platform: Platform) -> Result[None, ReleaseError]:
    """Check the certificate inputs fit this platform; no I/O beyond a file check."""
    has_pfx = options.pfx_path is not None or bool(options.pfx_base64)
    if options.pfx_path is not None and options.pfx_base64:
        return Err(
            ReleaseError(kind="invalid_input", message="give either a PFX path or Base64, not both")
        )
    if options.pfx_path is not None and not options.pfx_path.is_file():
        return Err(
            ReleaseError(kind="invalid_input", message=f"PFX file not found: {options.pfx_path}")
        )
    if has_pfx:
        return Ok(None)
    if options.thumbprint:
        if platform.has_certificate_store:
            return Ok(None)
        return Err(
            ReleaseError(
                kind="invalid_input",
                message=f"certificate thumbprints need a certificate store ({platform} has none)",
                hint="pass --certificate-pfx or --certificate-pfx-base64",
            )
        )
    return Err(ReleaseError(kind="invalid_input", message="signing needs a certificate"))


@dataclass
class PackageSigner:
    options: SigningOptions
    runner: CommandRunner = run_process
    executable: str = "dotnet"
    platform: Platform = field(default_factory=detect_platform)

    def available(self) -> bool:
        return which(self.executable) is not None

    def _base_cmd(self, package: Path) -> list[str]:
        return [self.executable, "nuget", "sign", str(package)]

    def _tail(self) -> list[str]:
        return ["--timestamper", self.options.timestamp_server, "--overwrite"]

    def sign(self, package: Path) -> Result[None, ReleaseError]:
        if self.options.pfx_path is not None:
            return self._sign_with_pfx(package, self.options.pfx_path)
        if self.options.pfx_base64:
            return self._sign_with_inline_pfx(package, self.options.pfx_base64)

        cmd = self._base_cmd(package) + [
            "--certificate-fingerprint",
            self.options.thumbprint or "",
            "--certificate-store-location",
            self.options.store_location,
            "--certificate-store-name",
            "My",
        ]
        return self._run(cmd + self._tail(), package)

    def _sign_with_pfx(self, package: Path, pfx: Path) -> Result[None, ReleaseError]:
        cmd = self._base_cmd(package) + ["--certificate-path", str(pfx)]
        if self.options.pfx_password:
            cmd += ["--certificate-password", self.options.pfx_password]
        return self._run(cmd + self._tail(), package)

    def _sign_with_inline_pfx(self, package: Path, encoded: str) -> Result[None, ReleaseError]:
        try:
            raw = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            return Err(ReleaseError(kind="invalid_input", message=f"invalid PFX Base64: {e}"))

        fd, tmp_name = tempfile.mkstemp(prefix="pforge-", suffix=".pfx")
        tmp = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(raw)
            return self._sign_with_pfx(package, tmp)
        finally:
            tmp.unlink(missing_ok=True)

    def _run(self, cmd: list[str], package: Path) -> Result[None, ReleaseError]:
        result = self.runner(cmd, cwd=package.parent, timeout=DOTNET_SIGN_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return Err(process_failure(result.error, kind="sign_failed", what=f"sign {package.name}"))
        return Ok(None)
