from __future__ import annotations

import argparse
import json
import logging
import sys

import requests

from . import db
from .api import StatusServer, create_app
from .errors import ClientConfigError
from .kube import build_client, validate_name
from .reconciler import Reconciler
from .runtime import RuntimeState
from .settings import Settings, settings
from .shutdown import ShutdownCoordinator

EXIT_CONFIG_ERROR = 2

COMMANDS = {"run", "peers", "events"}


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="epr", description="Endpoint Peer Reconciler")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_run = sub.add_parser("run", help="Watch endpoints and keep the nodes file in sync (default)")
    s_run.add_argument("--namespace", default=settings.namespace, help="The namespace that Typesense is installed within")
    s_run.add_argument("--service", default=settings.service, help="The name of the Typesense service to use the endpoints of")
    s_run.add_argument("--nodes-file", default=settings.nodes_file, help="The location of the file to write node information to")
    s_run.add_argument("--peer-port", type=int, default=settings.peer_port, help="Port on which Typesense peering service listens")
    s_run.add_argument("--api-port", type=int, default=settings.api_port, help="Port on which Typesense API service listens")
    s_run.add_argument("--verbose", action="store_true", default=settings.verbose, help="Enable verbose logging")
    s_run.add_argument("--kubeconfig", default=settings.kubeconfig, help="kubeconfig path (default: ~/.kube/config, else in-cluster)")
    s_run.add_argument("--watch-timeout", type=int, default=settings.watch_timeout_s, help="Server-side watch timeout in seconds")
    s_run.add_argument("--resubscribe-attempts", type=int, default=settings.resubscribe_attempts)
    s_run.add_argument("--db-path", default=settings.db_path, help="sqlite event journal (empty disables)")
    s_run.add_argument("--status-host", default=settings.status_host)
    s_run.add_argument("--status-port", type=int, default=settings.status_port, help="Status API port (0 disables)")

    s_peers = sub.add_parser("peers", help="Show the peer list of a running sidecar")
    s_peers.add_argument("--api", default="http://localhost:8080", help="Status API base URL")

    s_ev = sub.add_parser("events", help="Show recent events of a running sidecar")
    s_ev.add_argument("--api", default="http://localhost:8080", help="Status API base URL")
    s_ev.add_argument("--limit", type=int, default=20)

    return p


def settings_from_args(args: argparse.Namespace) -> Settings:
    return Settings(
        namespace=args.namespace,
        service=args.service,
        peer_port=args.peer_port,
        api_port=args.api_port,
        nodes_file=args.nodes_file,
        verbose=args.verbose,
        kubeconfig=args.kubeconfig,
        watch_timeout_s=args.watch_timeout,
        resubscribe_attempts=args.resubscribe_attempts,
        db_path=args.db_path,
        status_host=args.status_host,
        status_port=args.status_port,
    )


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run(cfg: Settings) -> int:
    try:
        cfg.validate()
        validate_name("namespace", cfg.namespace)
        validate_name("service", cfg.service)
    except ValueError as e:
        db.log_event("ERROR", f"Invalid configuration: {e}")
        return EXIT_CONFIG_ERROR

    db.configure(cfg.db_path)

    try:
        endpoints = build_client(cfg.kubeconfig, watch_timeout_s=cfg.watch_timeout_s)
    except ClientConfigError as e:
        db.log_event("ERROR", str(e))
        return EXIT_CONFIG_ERROR

    runtime = RuntimeState()
    reconciler = Reconciler(endpoints, cfg, runtime)
    coordinator = ShutdownCoordinator(reconciler)
    coordinator.install()

    status = None
    if cfg.status_port:
        status = StatusServer(create_app(runtime, cfg), cfg.status_host, cfg.status_port)
        status.start()

    try:
        return reconciler.run()
    finally:
        coordinator.uninstall()
        if status:
            status.stop()


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    # Without a subcommand the flags belong to "run".
    if not argv or (argv[0] not in COMMANDS and argv[0] not in {"-h", "--help"}):
        argv.insert(0, "run")

    args = build_parser().parse_args(argv)

    if args.cmd == "run":
        configure_logging(args.verbose)
        return run(settings_from_args(args))

    base = args.api.rstrip("/")

    if args.cmd == "peers":
        r = requests.get(f"{base}/peers", timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "events":
        r = requests.get(f"{base}/events", params={"limit": args.limit}, timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
