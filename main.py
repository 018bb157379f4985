#!/usr/bin/env python3
"""
nodeguard - node role label admission webhooks.
Serves the validating webhooks, prints their registration manifest, or reviews a
single AdmissionReview offline.
"""

import argparse
import json
import logging
import sys
from typing import Optional

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

#
# NOTE: Keep nodeguard imports lazy (inside functions) so a config error surfaces
# as a clean CLI error rather than an import traceback.
#


def print_registration(service_name: str, namespace: str, port: int, ca_bundle_file: Optional[str] = None) -> None:
    from nodeguard.webhooks.manifest import dump_yaml, render_validating_webhook_configuration
    from nodeguard.webhooks.registry import build_registry

    ca_bundle = None
    if ca_bundle_file:
        with open(ca_bundle_file, "rb") as f:
            ca_bundle = f.read()

    manifest = render_validating_webhook_configuration(
        build_registry(),
        service_name=service_name,
        namespace=namespace,
        port=port,
        ca_bundle=ca_bundle,
    )
    sys.stdout.write(dump_yaml(manifest))


def review_file(path: str, webhook_name: Optional[str] = None) -> int:
    """Run one AdmissionReview through a webhook and print the response. Returns a process exit code."""
    from nodeguard.webhooks.registry import build_registry

    registry = build_registry()
    webhook = registry.get(webhook_name) if webhook_name else (registry.webhooks[0] if registry.webhooks else None)
    if webhook is None:
        print(f"Unknown webhook {webhook_name!r} (enabled: {', '.join(registry.names())})", file=sys.stderr)
        return 2

    if path == "-":
        body = sys.stdin.buffer.read()
    else:
        with open(path, "rb") as f:
            body = f.read()

    resp = webhook.handle_request(body)
    print(json.dumps({"httpStatus": resp.status_code, **resp.body}, indent=2, sort_keys=False))
    return 0 if not resp.is_error else 1


def main():
    """CLI entry point."""
    from nodeguard.policy.config import load_service_settings

    try:
        settings = load_service_settings()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    parser = argparse.ArgumentParser(
        description="Node role label admission webhooks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve all enabled webhooks
  python main.py --serve --port 8443 --tls-cert /certs/tls.crt --tls-key /certs/tls.key

  # Print the ValidatingWebhookConfiguration for the enabled webhooks
  python main.py --print-registration --namespace nodeguard

  # Review a captured AdmissionReview with one webhook
  python main.py --review-file review.json --webhook node-validation
        """,
    )

    parser.add_argument("--serve", action="store_true", help="Run the admission webhook HTTP server")
    parser.add_argument(
        "--print-registration",
        action="store_true",
        help="Print the ValidatingWebhookConfiguration YAML for the enabled webhooks",
    )
    parser.add_argument(
        "--review-file",
        metavar="PATH",
        help="Review an AdmissionReview JSON file ('-' for stdin) and print the response",
    )
    parser.add_argument("--webhook", help="Webhook name for --review-file (default: first enabled webhook)")
    parser.add_argument("--host", default=settings.host, help=f"Server bind host (default: {settings.host})")
    parser.add_argument("--port", type=int, default=settings.port, help=f"Server listen port (default: {settings.port})")
    parser.add_argument("--tls-cert", help="TLS certificate file for --serve")
    parser.add_argument("--tls-key", help="TLS private key file for --serve")
    parser.add_argument(
        "--service-name", default=settings.service_name, help="Service name used in --print-registration"
    )
    parser.add_argument(
        "--namespace", default=settings.service_namespace, help="Service namespace used in --print-registration"
    )
    parser.add_argument("--service-port", type=int, default=443, help="Service port used in --print-registration")
    parser.add_argument("--ca-bundle-file", help="PEM CA bundle to embed in --print-registration")

    args = parser.parse_args()

    if args.serve:
        from nodeguard.api.server import run

        run(
            host=args.host,
            port=args.port,
            ssl_certfile=args.tls_cert,
            ssl_keyfile=args.tls_key,
            log_level=settings.log_level,
        )
        return

    if args.print_registration:
        print_registration(args.service_name, args.namespace, args.service_port, args.ca_bundle_file)
        return

    if args.review_file:
        sys.exit(review_file(args.review_file, args.webhook))

    parser.print_help()


if __name__ == "__main__":
    main()
