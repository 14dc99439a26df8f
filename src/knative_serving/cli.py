from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import yaml
from dotenv import load_dotenv
from kubernetes.config import ConfigException

from .common.config import DeployerConfig
from .runtime.errors import ServingError, StatusTimeout
from .service import KnativeServing

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_STATUS_UNKNOWN = 3

INPUT_FLAGS = {
    "name": "name",
    "namespace": "namespace",
    "registry_address": "registryAddress",
    "repository": "repository",
    "tag": "tag",
    "digest": "digest",
    "pull_policy": "pullPolicy",
    "knative_group": "knativeGroup",
    "knative_version": "knativeVersion",
}


def configure_logging(verbose: bool) -> None:
    """Configure root logging based on verbosity level."""
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(levelname)s %(message)s",
    )


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(description="Deploy, remove or inspect a Knative service.")
    parser.add_argument("command", choices=["deploy", "remove", "info"], help="Operation to run.")
    parser.add_argument(
        "-f",
        "--file",
        dest="inputs_file",
        help="YAML file with service inputs (name, repository, tag, autoscaler, ...).",
    )
    parser.add_argument("--name", help="Service name (omit with 'info' to list the namespace).")
    parser.add_argument("--namespace", help="Target namespace (default: default).")
    parser.add_argument("--registry-address", dest="registry_address", help="Registry host (default: docker.io).")
    parser.add_argument("--repository", help="Image repository, e.g. acme/api.")
    parser.add_argument("--tag", help="Image tag.")
    parser.add_argument("--digest", help="Image digest; wins over --tag.")
    parser.add_argument("--pull-policy", dest="pull_policy", help="Container imagePullPolicy.")
    parser.add_argument("--knative-group", dest="knative_group", help="API group of the Service resource.")
    parser.add_argument("--knative-version", dest="knative_version", help="API version of the Service resource.")
    parser.add_argument(
        "--autoscaler",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Autoscaler annotation, e.g. minScale=1. Can be provided multiple times.",
    )
    parser.add_argument("--kubeconfig", help="Path to the kubeconfig file (default: $KUBECONFIG).")
    parser.add_argument("--context", help="Kubeconfig context to use.")
    parser.add_argument("--timeout", type=float, help="Seconds to wait for the service URL.")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser.parse_args(argv)


def _parse_scalar(raw: str) -> Any:
    value = yaml.safe_load(raw)
    if isinstance(value, (dict, list)):
        return raw
    return value


def build_inputs(args: argparse.Namespace) -> Dict[str, Any]:
    """Combine the inputs file with command line flags; flags win."""
    inputs: Dict[str, Any] = {}
    if args.inputs_file:
        content = yaml.safe_load(Path(args.inputs_file).read_text()) or {}
        if not isinstance(content, dict):
            raise ValueError(f"{args.inputs_file} must contain a mapping of inputs")
        inputs.update(content)

    for attribute, key in INPUT_FLAGS.items():
        value = getattr(args, attribute)
        if value is not None:
            inputs[key] = value

    if args.autoscaler:
        autoscaler = dict(inputs.get("autoscaler") or {})
        for item in args.autoscaler:
            if "=" not in item:
                raise ValueError(f"Invalid autoscaler setting '{item}', expected KEY=VALUE")
            key, raw = item.split("=", 1)
            autoscaler[key.strip()] = _parse_scalar(raw.strip())
        inputs["autoscaler"] = autoscaler

    return inputs


def run(args: argparse.Namespace, serving: Optional[KnativeServing] = None) -> Dict[str, Any]:
    """Execute the requested operation and return its result."""
    if serving is None:
        overrides = {key: value for key, value in (("kubeconfig_path", args.kubeconfig), ("context", args.context)) if value}
        serving = KnativeServing(DeployerConfig(**overrides))

    inputs = build_inputs(args)
    if args.command == "deploy":
        return serving.deploy(inputs, timeout=args.timeout)
    if args.command == "remove":
        return serving.remove(inputs)
    return serving.info(inputs, timeout=args.timeout)


def main(argv: Sequence[str] | None = None, serving: Optional[KnativeServing] = None) -> int:
    """Entry point for the knative-serving command."""
    load_dotenv()
    args = parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.verbose)

    try:
        result = run(args, serving)
    except StatusTimeout as exc:
        if exc.write_applied:
            logger.error("Service was written but its status is unknown: %s", exc)
            return EXIT_STATUS_UNKNOWN
        logger.error("%s", exc)
        return EXIT_FAILED
    except (ServingError, ConfigException, yaml.YAMLError, ValueError, OSError) as exc:
        logger.error("%s", exc)
        return EXIT_FAILED

    print(json.dumps(result, indent=2, sort_keys=True))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
