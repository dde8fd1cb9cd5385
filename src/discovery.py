"""
Target discovery: turns CLI selection (names, resource group, tag) into
TargetDescriptors for the engine.
"""

import logging
from typing import List

from catalog import DEFAULT_CATALOG, ActionCatalog
from config import ReconcilerConfig
from errors import ConfigurationError, ProviderError
from models import ActionKind, TargetDescriptor

logger = logging.getLogger(__name__)


def _lookup_vm(client, name: str, resource_group: str, variant=None):
    named = TargetDescriptor(name=name, resource_group=resource_group, variant=variant or "")
    try:
        data = client.get_virtual_machine(named)
    except ProviderError as e:
        if e.not_found:
            # Returned unresolved; its probe fails as not found
            logger.error(f"VM '{name}' not found in resource group {resource_group}")
            return named
        raise
    os_type = (
        data.get("properties", {}).get("storageProfile", {}).get("osDisk", {}).get("osType", "")
    )
    return TargetDescriptor(
        name=name,
        resource_group=resource_group,
        variant=(variant or str(os_type)).lower(),
        location=data.get("location"),
        resource_id=data.get("id"),
    )


def discover_targets(
    client, config: ReconcilerConfig, catalog: ActionCatalog = DEFAULT_CATALOG
) -> List[TargetDescriptor]:
    """
    Discover targets for the configured action.

    Args:
        client: ArmRestClient
        config: Run configuration
        catalog: Action catalog (resource kinds for export)

    Returns:
        List of target descriptors (may contain duplicates; the engine drops them)

    Raises:
        ConfigurationError: Selection is incomplete for the action
        ProviderError: Listing failed
    """
    kind = config.action_kind

    if kind is ActionKind.SCAN_CREDENTIALS:
        if config.targets:
            return [
                TargetDescriptor(
                    name=object_id, resource_group="", variant="application", resource_id=object_id
                )
                for object_id in config.targets
            ]
        logger.info("Listing application registrations")
        return client.list_applications()

    if config.targets and not config.resource_group:
        raise ConfigurationError("--resource-group is required with --target")

    if kind is ActionKind.EXPORT:
        resource_kind = catalog.resource_kind(config.resource_kind)
        if resource_kind is None:
            raise ConfigurationError(
                f"--resource-kind must be one of: {', '.join(catalog.resource_kind_names())}"
            )
        if config.targets:
            return [
                TargetDescriptor(
                    name=name, resource_group=config.resource_group, variant=resource_kind.name
                )
                for name in config.targets
            ]
        logger.info(
            f"Listing {resource_kind.resource_type} in {config.resource_group or 'subscription'}"
            + (f" with tag {config.tag}" if config.tag else "")
        )
        found = client.list_resources(
            resource_kind.resource_type,
            resource_kind.name,
            resource_group=config.resource_group,
            tag=config.tag,
        )
        logger.info(f"Found {len(found)} resource(s)")
        return found

    if config.targets:
        found = []
        for name in config.targets:
            target = _lookup_vm(client, name, config.resource_group, config.variant)
            if target.resource_id:
                logger.info(f"Found VM '{name}' ({target.variant})")
            found.append(target)
        return found

    logger.info(
        f"Listing VMs in {config.resource_group or 'subscription'}"
        + (f" with tag {config.tag}" if config.tag else "")
    )
    found = client.list_virtual_machines(resource_group=config.resource_group, tag=config.tag)
    logger.info(f"Found {len(found)} VM(s)")
    return found
