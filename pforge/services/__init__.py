"""Application services for pforge.

Services hold the release logic and coordinate between the core layer
(results, config, secrets) and the platform layer (processes, HTTP, files).
"""
