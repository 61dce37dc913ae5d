#!/usr/bin/env python3
"""
GraphNexus - Entry Point

Persists code knowledge graphs into per-repository Kuzu stores and serves
hybrid retrieval over them through a CLI, an HTTP API and an MCP server.
"""

import sys

from graphnexus.cli import main


if __name__ == "__main__":
    sys.exit(main())
