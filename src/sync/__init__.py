"""Offline cache gap analysis and download.

- models.py: data model and SyncOptions
- metadata_cache.py: per-run packument memo with request coalescing
- resolver.py: layered BFS dependency resolver
- siblings.py: sibling version completion
- downloader.py: bounded concurrent tarball downloader
- platform.py: platform-binary detection and planning
- service.py: resolve/download entry points

Submodules are imported directly (``from sync.resolver import ...``); this
package module stays import-free so registry and store modules can depend on
``sync.models`` without cycles.
"""
