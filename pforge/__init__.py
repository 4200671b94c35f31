"""pforge: repository release toolkit for .NET and PowerShell projects."""

__version__ = "0.3.0"
