"""npm-script: discover, run and validate npm scripts across project folders.

Core modules:
    - workspace: Workspace roots and directory set resolution
    - manifest: package.json reading
    - catalog: Command catalogs per command family
    - selection: Choice sets and command execution
    - processes: Process tracking and command running
    - ranges: Tolerant JSON parsing with token spans
    - reporter: Installed-module reports (npm ls)
    - validator: Dependency diagnostics
    - session: Session context shared by all entry points
    - commands: User-facing entry points
"""

__version__ = "0.4.0"
