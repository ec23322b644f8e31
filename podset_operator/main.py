"""
Command line entrypoint for the PodSet operator.
"""

import argparse
import logging
import sys
from typing import List, Optional

import kopf
import yaml
from kubernetes import client

from .config import Config, setup_logging
from .crd import crd_manager, podset_crd_manifest
from .store import load_kube_config

LOG = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="podset-operator", description="PodSet operator")
    p.add_argument("--log-level", default=Config.LOG_LEVEL, help="Logging level")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_run = sub.add_parser("run", help="Run the operator")
    s_run.add_argument("--namespace", default=Config.WATCH_NAMESPACE,
                       help="Namespace to watch (default: all namespaces)")
    s_run.add_argument("--workers", type=int, default=Config.WORKERS, help="Reconcile worker threads")
    s_run.add_argument("--metrics-port", type=int, default=Config.METRICS_PORT)
    s_run.add_argument("--liveness", default=f"http://0.0.0.0:{Config.LIVENESS_PORT}/healthz",
                       help="Liveness endpoint served by kopf")
    s_run.add_argument("--install-crd", action="store_true", default=Config.INSTALL_CRD,
                       help="Install the PodSet CRD on startup if missing")
    s_run.add_argument("--orphan-sweep", action="store_true", default=Config.ORPHAN_SWEEP_ENABLED,
                       help="Delete orphaned pods when a PodSet is deleted")

    s_crd = sub.add_parser("crd", help="Print or install the PodSet CRD")
    s_crd.add_argument("--install", action="store_true", help="Install into the current cluster")
    return p


def run(args: argparse.Namespace) -> int:
    if args.workers < 1:
        LOG.error("--workers must be at least 1")
        return 2

    Config.WORKERS = args.workers
    Config.METRICS_PORT = args.metrics_port
    Config.INSTALL_CRD = args.install_crd
    Config.ORPHAN_SWEEP_ENABLED = args.orphan_sweep

    # Registers the handlers with kopf's default registry
    from . import controller  # noqa: F401

    namespaces = [args.namespace] if args.namespace else []
    LOG.info(f"Watching {'namespace ' + args.namespace if args.namespace else 'all namespaces'}")
    kopf.run(
        standalone=True,
        clusterwide=not namespaces,
        namespaces=namespaces,
        liveness_endpoint=args.liveness,
    )
    return 0


def crd(args: argparse.Namespace) -> int:
    if not args.install:
        print(yaml.safe_dump(podset_crd_manifest(), sort_keys=False), end="")
        return 0
    load_kube_config()
    crd_manager.initialize(client.ApiClient())
    return 0 if crd_manager.install_crds() else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    logging.getLogger().setLevel(args.log_level.upper())

    if args.cmd == "run":
        return run(args)
    if args.cmd == "crd":
        return crd(args)
    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
