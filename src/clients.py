"""
REST API client for Azure Resource Manager and Microsoft Graph.
"""

import logging
import time
from typing import Dict, Iterable, List, Optional, Tuple

import requests
from azure.identity import DefaultAzureCredential

from errors import ProviderError
from models import TargetDescriptor

logger = logging.getLogger(__name__)

API_BASE = "https://management.azure.com"
GRAPH_BASE = "https://graph.microsoft.com/v1.0"
ARM_SCOPE = "https://management.azure.com/.default"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"

COMPUTE_API_VERSION = "2023-09-01"
RESOURCES_API_VERSION = "2021-04-01"


def _parse_tag(tag: Optional[str]) -> Optional[Tuple[str, Optional[str]]]:
    if not tag:
        return None
    key, sep, value = tag.partition("=")
    return key, (value if sep else None)


def _matches_tag(item: Dict, tag: Optional[Tuple[str, Optional[str]]]) -> bool:
    if tag is None:
        return True
    key, value = tag
    tags = {k.lower(): v for k, v in (item.get("tags") or {}).items()}
    if key.lower() not in tags:
        return False
    return value is None or tags[key.lower()] == value


def _resource_group_from_id(resource_id: str) -> str:
    parts = resource_id.split("/")
    for i, part in enumerate(parts):
        if part.lower() == "resourcegroups" and i + 1 < len(parts):
            return parts[i + 1]
    return ""


class ArmRestClient:
    """REST client for the ARM compute, network and resources APIs."""

    RETRYABLE_STATUS_CODES = {409, 429, 500, 502, 503, 504}

    def __init__(
        self,
        subscription_id: str,
        timeout_s: int = 60,
        max_retries: int = 5,
        base_delay: float = 5.0,
        poll_interval: float = 10.0,
        operation_timeout: int = 600,
        credential=None,
    ):
        """
        Initialize the ARM REST client.

        Args:
            subscription_id: Azure subscription ID
            timeout_s: Request timeout in seconds
            max_retries: Maximum number of retries for transient errors
            base_delay: Base delay for exponential backoff
            poll_interval: Interval between long-running operation polls
            operation_timeout: Maximum wait for a long-running operation
            credential: Token credential; DefaultAzureCredential if omitted
        """
        self.subscription_id = subscription_id
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.poll_interval = poll_interval
        self.operation_timeout = operation_timeout

        self.credential = credential or DefaultAzureCredential()
        self.session = requests.Session()

    def verify_credentials(self) -> None:
        """Acquire a management token; raises ClientAuthenticationError on failure."""
        self.credential.get_token(ARM_SCOPE)

    def _url(self, path: str) -> str:
        """Construct full ARM URL from path."""
        return f"{API_BASE}/{path.lstrip('/')}"

    def _headers(self, scope: str) -> Dict[str, str]:
        token = self.credential.get_token(scope)
        return {"Authorization": f"Bearer {token.token}"}

    def _request_with_retry(
        self, method: str, url: str, scope: str = ARM_SCOPE, **kwargs
    ) -> dict:
        """
        Execute HTTP request with exponential backoff retry for transient errors.

        Args:
            method: HTTP method (GET, PUT, POST)
            url: Request URL
            scope: OAuth scope for the bearer token
            **kwargs: Additional request parameters

        Returns:
            Dictionary with 'response' and 'status_code' keys

        Raises:
            ProviderError: If max retries exceeded
        """
        last_error = None

        for attempt in range(self.max_retries + 1):
            try:
                resp = self.session.request(
                    method.upper(),
                    url,
                    headers=self._headers(scope),
                    timeout=self.timeout_s,
                    **kwargs,
                )

                if resp.status_code in self.RETRYABLE_STATUS_CODES:
                    delay = self._calculate_delay(attempt, resp)
                    error_info = self._error_message(resp)
                    logger.warning(
                        f"Retryable error {resp.status_code} ({error_info}), attempt {attempt + 1}/{self.max_retries + 1}, waiting {delay:.1f}s..."
                    )
                    last_error = f"HTTP {resp.status_code}: {error_info}"
                    time.sleep(delay)
                    continue

                return {"response": resp, "status_code": resp.status_code}

            except requests.RequestException as e:
                delay = self._calculate_delay(attempt)
                logger.warning(
                    f"Request error: {e}, attempt {attempt + 1}/{self.max_retries + 1}, waiting {delay:.1f}s..."
                )
                last_error = str(e)
                time.sleep(delay)

        raise ProviderError(f"Max retries exceeded. Last error: {last_error}")

    def _calculate_delay(self, attempt: int, resp=None) -> float:
        """
        Calculate delay with exponential backoff and jitter.

        Args:
            attempt: Current attempt number
            resp: Optional response object (to check Retry-After header)

        Returns:
            Delay in seconds
        """
        if resp is not None and "Retry-After" in resp.headers:
            try:
                return float(resp.headers["Retry-After"])
            except ValueError:
                pass

        # 409 usually means another operation holds the resource
        base = self.base_delay
        if resp is not None and resp.status_code == 409:
            base = 15.0

        delay = base * (2**attempt)
        jitter = delay * 0.2 * (0.5 - time.time() % 1)
        return min(delay + jitter, 180.0)

    @staticmethod
    def _error_message(resp) -> str:
        """Extract the provider's error message from a response."""
        try:
            data = resp.json()
        except ValueError:
            return resp.text[:200]
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        return resp.text[:200]

    def _check(self, resp, what: str, ok: Iterable[int] = (200,)) -> None:
        if resp.status_code not in ok:
            raise ProviderError(
                f"{what} failed ({resp.status_code}): {self._error_message(resp)}",
                status_code=resp.status_code,
            )

    def _get_paged(self, url: str, params: Dict, what: str) -> List[Dict]:
        items: List[Dict] = []
        next_url: Optional[str] = url

        while next_url:
            result = self._request_with_retry("GET", next_url, params=params)
            resp = result["response"]
            self._check(resp, what)
            data = resp.json()
            items.extend(data.get("value", []))
            next_url = data.get("nextLink")
            # nextLink already carries the query string
            params = {}

        return items

    def _vm_path(self, target: TargetDescriptor) -> str:
        return (
            f"subscriptions/{self.subscription_id}/resourceGroups/{target.resource_group}"
            f"/providers/Microsoft.Compute/virtualMachines/{target.name}"
        )

    def resource_id_for(self, target: TargetDescriptor, resource_type: str) -> str:
        if target.resource_id:
            return target.resource_id
        return (
            f"/subscriptions/{self.subscription_id}/resourceGroups/{target.resource_group}"
            f"/providers/{resource_type}/{target.name}"
        )

    # Discovery

    def list_virtual_machines(
        self, resource_group: Optional[str] = None, tag: Optional[str] = None
    ) -> List[TargetDescriptor]:
        """
        List virtual machines, optionally scoped to a resource group and tag.

        Args:
            resource_group: Resource group name, or None for the subscription
            tag: Tag filter as 'key' or 'key=value'

        Returns:
            List of TargetDescriptor objects with the OS kind as variant
        """
        scope = f"subscriptions/{self.subscription_id}"
        if resource_group:
            scope += f"/resourceGroups/{resource_group}"
        url = self._url(f"{scope}/providers/Microsoft.Compute/virtualMachines")
        wanted = _parse_tag(tag)

        targets: List[TargetDescriptor] = []
        for item in self._get_paged(
            url, {"api-version": COMPUTE_API_VERSION}, "List virtual machines"
        ):
            if not _matches_tag(item, wanted):
                continue
            os_type = (
                item.get("properties", {})
                .get("storageProfile", {})
                .get("osDisk", {})
                .get("osType", "")
            )
            targets.append(
                TargetDescriptor(
                    name=item["name"],
                    resource_group=_resource_group_from_id(item["id"]),
                    variant=str(os_type).lower(),
                    location=item.get("location"),
                    resource_id=item["id"],
                )
            )
        return targets

    def list_resources(
        self,
        resource_type: str,
        variant: str,
        resource_group: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> List[TargetDescriptor]:
        """List generic resources of one ARM type, filtered by tag client-side."""
        scope = f"subscriptions/{self.subscription_id}"
        if resource_group:
            scope += f"/resourceGroups/{resource_group}"
        url = self._url(f"{scope}/resources")
        params = {
            "api-version": RESOURCES_API_VERSION,
            "$filter": f"resourceType eq '{resource_type}'",
        }
        wanted = _parse_tag(tag)

        return [
            TargetDescriptor(
                name=item["name"],
                resource_group=_resource_group_from_id(item["id"]),
                variant=variant,
                location=item.get("location"),
                resource_id=item["id"],
            )
            for item in self._get_paged(url, params, "List resources")
            if _matches_tag(item, wanted)
        ]

    # Virtual machines

    def get_virtual_machine(self, target: TargetDescriptor) -> Dict:
        url = self._url(self._vm_path(target))
        result = self._request_with_retry(
            "GET", url, params={"api-version": COMPUTE_API_VERSION}
        )
        resp = result["response"]
        self._check(resp, f"Get virtual machine {target.name}")
        return resp.json()

    def list_extensions(self, target: TargetDescriptor) -> List[Dict]:
        """
        List extensions attached to a VM.

        Raises:
            ProviderError: If API call fails (404 if the VM does not exist)
        """
        url = self._url(f"{self._vm_path(target)}/extensions")
        result = self._request_with_retry(
            "GET", url, params={"api-version": COMPUTE_API_VERSION}
        )
        resp = result["response"]
        self._check(resp, f"List extensions for {target.name}")
        return resp.json().get("value", [])

    def get_power_status(self, target: TargetDescriptor) -> str:
        """
        Return the VM's PowerState status code (e.g. 'PowerState/running').

        Returns an empty string when the instance view reports no power state.
        """
        url = self._url(f"{self._vm_path(target)}/instanceView")
        result = self._request_with_retry(
            "GET", url, params={"api-version": COMPUTE_API_VERSION}
        )
        resp = result["response"]
        self._check(resp, f"Get instance view for {target.name}")
        for status in resp.json().get("statuses", []):
            code = status.get("code", "")
            if code.startswith("PowerState/"):
                return code
        return ""

    def put_extension(
        self,
        target: TargetDescriptor,
        extension_name: str,
        publisher: str,
        type_name: str,
        version: str,
        settings: Optional[Dict] = None,
        protected_settings: Optional[Dict] = None,
    ) -> int:
        """
        Create or update a VM extension.

        Returns:
            HTTP status code reported by the provider

        Raises:
            ProviderError: If API call fails
        """
        location = target.location or self.get_virtual_machine(target)["location"]
        properties = {
            "publisher": publisher,
            "type": type_name,
            "typeHandlerVersion": version,
            "autoUpgradeMinorVersion": True,
        }
        if settings:
            properties["settings"] = settings
        if protected_settings:
            properties["protectedSettings"] = protected_settings

        url = self._url(f"{self._vm_path(target)}/extensions/{extension_name}")
        result = self._request_with_retry(
            "PUT",
            url,
            params={"api-version": COMPUTE_API_VERSION},
            json={"location": location, "properties": properties},
        )
        resp = result["response"]
        self._check(resp, f"Install extension {type_name} on {target.name}", (200, 201, 202))
        return resp.status_code

    def power_action(self, target: TargetDescriptor, verb: str) -> int:
        """
        Invoke a VM power action ('start', 'deallocate', ...).

        Returns:
            HTTP status code reported by the provider
        """
        url = self._url(f"{self._vm_path(target)}/{verb}")
        result = self._request_with_retry(
            "POST", url, params={"api-version": COMPUTE_API_VERSION}
        )
        resp = result["response"]
        self._check(resp, f"{verb} {target.name}", (200, 202))
        return resp.status_code

    # Network resources

    def get_resource(self, resource_id: str, api_version: str) -> Dict:
        url = self._url(resource_id)
        result = self._request_with_retry("GET", url, params={"api-version": api_version})
        resp = result["response"]
        self._check(resp, f"Get resource {resource_id.split('/')[-1]}")
        return resp.json()

    def export_template(
        self, resource_group: str, resource_ids: List[str]
    ) -> Tuple[int, Dict]:
        """
        Export an ARM template for resources in a resource group.

        Polls the long-running operation when the provider answers 202.

        Returns:
            Tuple of (status code of the export request, exported template)

        Raises:
            ProviderError: If the export fails or times out
        """
        url = self._url(
            f"subscriptions/{self.subscription_id}/resourcegroups/{resource_group}/exportTemplate"
        )
        result = self._request_with_retry(
            "POST",
            url,
            params={"api-version": RESOURCES_API_VERSION},
            json={"resources": resource_ids, "options": "IncludeParameterDefaultValue"},
        )
        resp = result["response"]
        self._check(resp, "exportTemplate", (200, 202))
        status_code = resp.status_code

        start = time.time()
        while resp.status_code == 202:
            location = resp.headers.get("Location")
            if not location:
                raise ProviderError("exportTemplate returned 202 without Location")
            if time.time() - start > self.operation_timeout:
                raise ProviderError(
                    f"exportTemplate timed out after {self.operation_timeout}s"
                )
            time.sleep(self.poll_interval)
            resp = self._request_with_retry("GET", location)["response"]
            self._check(resp, "exportTemplate poll", (200, 202))

        data = resp.json()
        if "template" not in data:
            raise ProviderError(f"exportTemplate returned unexpected response: {data}")
        return status_code, data["template"]

    # Applications (Microsoft Graph)

    def get_application(self, object_id: str) -> Dict:
        """Fetch an app registration with its password and key credentials."""
        url = f"{GRAPH_BASE}/applications/{object_id}"
        result = self._request_with_retry(
            "GET",
            url,
            scope=GRAPH_SCOPE,
            params={"$select": "id,appId,displayName,passwordCredentials,keyCredentials"},
        )
        resp = result["response"]
        self._check(resp, f"Get application {object_id}")
        return resp.json()

    def list_applications(self) -> List[TargetDescriptor]:
        """List app registrations as credential-scan targets."""
        targets: List[TargetDescriptor] = []
        next_url: Optional[str] = f"{GRAPH_BASE}/applications"
        params = {"$select": "id,displayName"}

        while next_url:
            result = self._request_with_retry(
                "GET", next_url, scope=GRAPH_SCOPE, params=params
            )
            resp = result["response"]
            self._check(resp, "List applications")
            data = resp.json()
            for item in data.get("value", []):
                targets.append(
                    TargetDescriptor(
                        name=item.get("displayName") or item["id"],
                        resource_group="",
                        variant="application",
                        resource_id=item["id"],
                    )
                )
            next_url = data.get("@odata.nextLink")
            params = {}

        return targets
