"""npm-script CLI module.

This module provides the `npms` command-line interface, enabling users to:
    - List scripts with `npms list`
    - Run scripts with `npms run` and fixed commands like `npms install`
    - Check dependencies with `npms validate`
    - Serve the engine over MCP with `npms serve`
"""
