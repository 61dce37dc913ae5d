"""GraphNexus command line interface."""

import argparse
import os
import sys

from .config import settings
from .utils.logger import app_logger, configure_from_settings


def _components():
    from .embedding.embedding_service import EmbeddingService
    from .graph.connection_pool import ConnectionPool
    from .search.hybrid_search import create_fusion_strategy
    from .storage.repo_manager import RepoManager

    return RepoManager(), ConnectionPool(), EmbeddingService(), create_fusion_strategy()


def _backend():
    from .server.backend import RepoBackend

    repo_manager, pool, embedding_service, strategy = _components()
    return RepoBackend(repo_manager, pool, embedding_service, strategy)


def cmd_index(args) -> int:
    from .ingestion.graph_loader import GraphLoader, read_graph_export

    repo_manager, pool, embedding_service, _ = _components()
    nodes, relationships = read_graph_export(args.export)
    app_logger.info(f"Read {len(nodes)} nodes and {len(relationships)} relationships from {args.export}")
    loader = GraphLoader(repo_manager, pool, embedding_service)
    try:
        meta = loader.load(args.repo, nodes, relationships,
                           last_commit=args.commit, embeddings=args.embeddings)
    finally:
        pool.close_all()
    stats = meta.stats
    print(f"Indexed {meta.repo_path}")
    print(f"  Files: {stats.get('files', 0)}  Nodes: {stats.get('nodes', 0)}  Edges: {stats.get('edges', 0)}")
    print(f"  Communities: {stats.get('communities', 0)}  Processes: {stats.get('processes', 0)}")
    return 0


def cmd_list(args) -> int:
    from .storage.repo_manager import RepoManager

    entries = RepoManager().list_registered_repos()
    if not entries:
        print("No indexed repositories.")
        return 0
    for entry in entries:
        print(f"{entry.name}\t{entry.path}\t{entry.indexed_at}\t{entry.stats.get('nodes', 0)} nodes")
    return 0


def cmd_unregister(args) -> int:
    from .storage.repo_manager import RepoManager

    if RepoManager().unregister_repo(args.repo):
        print(f"Unregistered {args.repo}")
        return 0
    print(f"Not registered: {args.repo}", file=sys.stderr)
    return 1


def cmd_serve(args) -> int:
    import uvicorn

    from .mcp.server import GraphNexusMCP
    from .server.api import create_app
    from .server.mcp_http import MCPSessionManager

    backend = _backend()
    mcp_server = GraphNexusMCP(backend)
    session_manager = MCPSessionManager(mcp_server.get_protocol_server())
    app = create_app(backend, session_manager)

    app_logger.info(f"Serving GraphNexus API on {args.host}:{args.port}")
    try:
        uvicorn.run(app, host=args.host, port=args.port, log_level=settings.log_level.lower())
    finally:
        backend.pool.close_all()
    return 0


def cmd_mcp(args) -> int:
    from .mcp.server import GraphNexusMCP

    backend = _backend()
    server = GraphNexusMCP(backend).get_server()
    try:
        if args.http:
            app_logger.info(f"Using HTTP transport on {args.host}:{args.port}")
            server.run(transport="http", host=args.host, port=args.port)
        else:
            app_logger.info("Using stdio transport")
            server.run(transport="stdio")
    finally:
        backend.pool.close_all()
    return 0


def cmd_augment(args) -> int:
    from .augmentation.engine import AugmentationEngine
    from .graph.connection_pool import ConnectionPool
    from .storage.repo_manager import RepoManager

    pool = ConnectionPool()
    try:
        context = AugmentationEngine(RepoManager(), pool).augment(args.pattern, args.cwd or os.getcwd())
    finally:
        pool.close_all()
    if context:
        print(context, file=sys.stderr)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="graphnexus", description="GraphNexus - code knowledge graph store and retrieval")
    parser.add_argument("--log-level", default=None, help="Log level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    index = subparsers.add_parser("index", help="Load a graph export into a repository index")
    index.add_argument("export", help="Path to the graph export JSON")
    index.add_argument("--repo", required=True, help="Repository root the export was built from")
    index.add_argument("--commit", default=None, help="Commit hash to record (defaults to git HEAD)")
    index.add_argument("--embeddings", action="store_true", help="Embed symbols for semantic search")
    index.set_defaults(func=cmd_index)

    list_cmd = subparsers.add_parser("list", help="List indexed repositories")
    list_cmd.set_defaults(func=cmd_list)

    unregister = subparsers.add_parser("unregister", help="Remove a repository from the registry")
    unregister.add_argument("repo", help="Repository root path")
    unregister.set_defaults(func=cmd_unregister)

    serve = subparsers.add_parser("serve", help="Run the HTTP API with the MCP endpoint")
    serve.add_argument("--host", default=settings.api_host, help="Host to bind")
    serve.add_argument("--port", type=int, default=settings.api_port, help="Port to bind")
    serve.set_defaults(func=cmd_serve)

    mcp = subparsers.add_parser("mcp", help="Run the MCP server")
    mcp.add_argument("--http", action="store_true", help="Use HTTP transport instead of stdio")
    mcp.add_argument("--host", default=settings.mcp_host, help="Host for HTTP transport")
    mcp.add_argument("--port", type=int, default=settings.mcp_port, help="Port for HTTP transport")
    mcp.set_defaults(func=cmd_mcp)

    augment = subparsers.add_parser("augment", help="Print graph context for a search pattern to stderr")
    augment.add_argument("pattern", help="Search pattern")
    augment.add_argument("--cwd", default=None, help="Working directory used to find the repository")
    augment.set_defaults(func=cmd_augment)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.log_level:
        settings.log_level = args.log_level.upper()
    configure_from_settings()

    try:
        return args.func(args)
    except KeyboardInterrupt:
        app_logger.info("Shutting down...")
        return 0
    except Exception as e:
        if args.command == "augment":
            return 0
        app_logger.error(f"Error running {args.command}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
