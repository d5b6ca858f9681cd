"""CLI commands for npm-script.

This package contains the implementation of CLI commands:
    - list: List declared scripts
    - run: Run a script or a fixed npm subcommand
    - validate: Check installed modules against package.json
    - serve: Run the MCP server
    - version: Show version information
"""
