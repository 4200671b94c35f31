from __future__ import annotations

# Registry and GitHub REST calls
HTTP_TIMEOUT_SECONDS = 100.0

# dotnet pack of one project (restore included)
DOTNET_PACK_TIMEOUT_SECONDS = 20 * 60.0

# dotnet nuget sign / push of one package
DOTNET_SIGN_TIMEOUT_SECONDS = 5 * 60.0
DOTNET_PUSH_TIMEOUT_SECONDS = 10 * 60.0
