"""Console entry point for the VM Fleet Reconciler CLI."""

from __future__ import annotations

import argparse
import logging
from typing import List

from azure.core.exceptions import ClientAuthenticationError

from catalog import DEFAULT_CATALOG
from clients import ArmRestClient
from config import ReconcilerConfig
from discovery import discover_targets
from engine import ReconciliationEngine
from errors import ProviderError, ReconcilerError
from log_utils import log_file_for, setup_logging
from models import ActionKind
from report import export_results_json, print_report, write_export_artifacts

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_TARGET_ERRORS = 1
EXIT_FATAL = 2


def build_parser() -> argparse.ArgumentParser:
    """Build and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description=(
            "VM Fleet Reconciler\n\n"
            "Brings Azure VMs and network resources to a requested state: install\n"
            "monitoring agents, start/stop VMs, export network resource templates,\n"
            "and scan application credential expirations."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  # Preview Dependency agent installs on tagged VMs\n"
            "  fleet-reconcile --subscription SUB --action install-agent --agent Dependency \\\n"
            "      --tag monitoring=enabled --dry-run\n\n"
            "  # Stop every VM tagged shutdown=nightly in a resource group\n"
            "  fleet-reconcile --subscription SUB --action stop --resource-group rg-dev \\\n"
            "      --tag shutdown=nightly\n\n"
            "  # Export NSG templates, 5 at a time\n"
            "  fleet-reconcile --subscription SUB --action export --resource-kind nsg \\\n"
            "      --resource-group rg-net --max-parallel 5 --output-dir exports\n\n"
            "  # Report secrets expiring within 45 days\n"
            "  fleet-reconcile --subscription SUB --action scan-credentials --warn-days 45"
        ),
    )

    required = parser.add_argument_group("required arguments")
    required.add_argument(
        "--subscription",
        required=True,
        metavar="SUBSCRIPTION_ID",
        help="Azure subscription ID",
    )
    required.add_argument(
        "--action",
        required=True,
        choices=[k.value for k in ActionKind],
        help="Action to reconcile across the selected targets",
    )

    selection = parser.add_argument_group("target selection")
    selection.add_argument(
        "--resource-group",
        metavar="NAME",
        help="Limit targets to one resource group (required with --target)",
    )
    selection.add_argument(
        "--tag",
        metavar="KEY[=VALUE]",
        help="Only targets carrying this tag",
    )
    selection.add_argument(
        "--target",
        action="append",
        metavar="NAME",
        help=(
            "Explicit target name (repeatable). VM or resource name, or the "
            "application object ID for scan-credentials."
        ),
    )
    selection.add_argument(
        "--variant",
        choices=["windows", "linux"],
        help="Override the OS kind of explicitly named VMs",
    )

    params = parser.add_argument_group("action parameters")
    params.add_argument(
        "--agent",
        metavar="KIND",
        help=f"Agent kind for install-agent ({', '.join(DEFAULT_CATALOG.agent_names())})",
    )
    params.add_argument("--workspace-id", help="Log Analytics workspace ID (MMA)")
    params.add_argument(
        "--workspace-key",
        help="Log Analytics workspace key (MMA); defaults to $LOG_ANALYTICS_WORKSPACE_KEY",
    )
    params.add_argument(
        "--resource-kind",
        metavar="KIND",
        help=f"Resource kind for export ({', '.join(DEFAULT_CATALOG.resource_kind_names())})",
    )
    params.add_argument(
        "--warn-days",
        type=int,
        default=30,
        metavar="DAYS",
        help="Flag credentials expiring within this many days (default: 30)",
    )

    safety = parser.add_argument_group("safety and control")
    safety.add_argument(
        "--dry-run",
        action="store_true",
        help="Probe and decide only; report what would change (RECOMMENDED first)",
    )
    safety.add_argument(
        "--max-parallel",
        type=int,
        default=None,
        metavar="N",
        help=(
            "Maximum targets processed concurrently. Default: all at once for "
            "small fleets, 5 otherwise."
        ),
    )
    safety.add_argument(
        "--stagger-delay",
        type=float,
        default=0.0,
        metavar="SECONDS",
        help="Delay between dispatching targets to avoid API throttling (default: 0)",
    )

    timeouts = parser.add_argument_group("timeouts")
    timeouts.add_argument(
        "--timeout",
        type=int,
        default=600,
        metavar="SECONDS",
        help="Maximum wait for long-running provider operations (default: 600)",
    )
    timeouts.add_argument(
        "--poll-interval",
        type=int,
        default=10,
        metavar="SECONDS",
        help="Time between long-running operation polls (default: 10)",
    )

    output = parser.add_argument_group("logging and output")
    output.add_argument(
        "--output-dir",
        default=".",
        metavar="DIR",
        help="Directory for the JSON report and exported templates (default: .)",
    )
    output.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    return parser


def main(argv: List[str] | None = None) -> int:
    """CLI main for console_scripts entry point."""
    parser = build_parser()
    args = parser.parse_args(args=argv)

    setup_logging(verbose=args.verbose, log_file=log_file_for(args.action))

    config = ReconcilerConfig.from_args(args)

    try:
        action = config.to_requested_action()
        DEFAULT_CATALOG.validate(action)

        client = ArmRestClient(
            subscription_id=config.subscription_id,
            poll_interval=config.poll_interval,
            operation_timeout=config.timeout,
        )
        client.verify_credentials()

        targets = discover_targets(client, config)
        engine = ReconciliationEngine(
            client,
            max_parallel=config.max_parallel,
            stagger_delay=config.stagger_delay,
            dry_run=config.dry_run,
        )
        summary = engine.run(targets, action)
    except ClientAuthenticationError as e:
        logger.error(f"Authentication failed: {e}")
        return EXIT_FATAL
    except (ReconcilerError, ProviderError, ValueError) as e:
        logger.error(f"Run aborted: {e}")
        return EXIT_FATAL

    print_report(summary)
    export_results_json(summary, config.output_dir)
    if action.kind is ActionKind.EXPORT:
        write_export_artifacts(summary, config.output_dir)

    return EXIT_TARGET_ERRORS if summary.errors > 0 else EXIT_OK
