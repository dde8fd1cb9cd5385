"""
Configuration management for the VM Fleet Reconciler.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from models import ActionKind, RequestedAction

WORKSPACE_KEY_ENV = "LOG_ANALYTICS_WORKSPACE_KEY"


@dataclass
class ReconcilerConfig:
    """Configuration for fleet reconciliation runs."""

    subscription_id: str
    action: str
    agent: Optional[str] = None
    resource_group: Optional[str] = None
    tag: Optional[str] = None
    targets: List[str] = field(default_factory=list)
    variant: Optional[str] = None
    resource_kind: Optional[str] = None
    dry_run: bool = False
    max_parallel: Optional[int] = None
    stagger_delay: float = 0.0
    timeout: int = 600
    poll_interval: int = 10
    warn_days: int = 30
    workspace_id: Optional[str] = None
    workspace_key: Optional[str] = None
    output_dir: str = "."
    verbose: bool = False

    @classmethod
    def from_args(cls, args) -> "ReconcilerConfig":
        """
        Create configuration from command-line arguments.

        The workspace key falls back to the LOG_ANALYTICS_WORKSPACE_KEY
        environment variable so it need not appear on the command line.

        Args:
            args: Parsed argparse arguments

        Returns:
            ReconcilerConfig instance
        """
        return cls(
            subscription_id=args.subscription,
            action=args.action,
            agent=args.agent,
            resource_group=args.resource_group,
            tag=args.tag,
            targets=list(args.target or []),
            variant=args.variant,
            resource_kind=args.resource_kind,
            dry_run=args.dry_run,
            max_parallel=args.max_parallel,
            stagger_delay=args.stagger_delay,
            timeout=args.timeout,
            poll_interval=args.poll_interval,
            warn_days=args.warn_days,
            workspace_id=args.workspace_id,
            workspace_key=args.workspace_key or os.environ.get(WORKSPACE_KEY_ENV),
            output_dir=args.output_dir,
            verbose=args.verbose,
        )

    @property
    def action_kind(self) -> ActionKind:
        return ActionKind(self.action)

    def to_requested_action(self) -> RequestedAction:
        """Build the RequestedAction shared by all workers."""
        kind = self.action_kind
        params = {}
        if kind is ActionKind.INSTALL_AGENT:
            if self.workspace_id:
                params["workspace_id"] = self.workspace_id
            if self.workspace_key:
                params["workspace_key"] = self.workspace_key
        elif kind is ActionKind.EXPORT and self.resource_kind:
            params["resource_kind"] = self.resource_kind
        elif kind is ActionKind.SCAN_CREDENTIALS:
            params["warn_days"] = self.warn_days
        agent = self.agent if kind is ActionKind.INSTALL_AGENT else None
        return RequestedAction(kind=kind, agent=agent, params=params)
