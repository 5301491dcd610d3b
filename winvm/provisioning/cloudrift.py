"""CloudRift provider: create/delete Windows VMs via the CloudRift REST API."""

import json
import logging
import os
import time

import httpx

from winvm.errors import ProvisioningError
from winvm.provisioning.cloud import CloudProvider
from winvm.provisioning.types import Credentials

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.cloudrift.ai"
API_VERSION = "~upcoming"
# WinRM over HTTPS and SSH must be reachable from the test host
DEFAULT_PORTS = [22, 5986]


# ── API helpers ───────────────────────────────────────────────────


def _api_request(client, method, path, data, api_key, api_url=DEFAULT_API_URL, dry_run=False):
    """Make an authenticated CloudRift API request.

    Wraps *data* in the versioned envelope ``{"version": ..., "data": ...}``.

    Returns:
        Parsed JSON response ``data`` dict, or ``None`` in dry-run mode.
    """
    url = f"{api_url}{path}"
    payload = {"version": API_VERSION, "data": data}

    if dry_run:
        logger.info(f"[dry-run] {method} {url}")
        logger.info(f"[dry-run] payload: {json.dumps(payload, indent=2)}")
        return None

    headers = {"X-API-Key": api_key, "Content-Type": "application/json"}
    resp = client.request(method, url, json=payload, headers=headers, timeout=60)
    resp.raise_for_status()
    body = resp.json()
    return body.get("data", body)


def _rent_instance(client, api_key, instance_type, image_url, ssh_public_keys, ports=None, api_url=DEFAULT_API_URL, dry_run=False):
    """Rent a new CloudRift VM instance.

    POST /api/v1/instances/rent
    """
    data = {
        "selector": {
            "ByInstanceTypeAndLocation": {
                "instance_type": instance_type,
            },
        },
        "config": {
            "VirtualMachine": {
                "ssh_key": {"PublicKeys": ssh_public_keys},
                "image_url": image_url,
            },
        },
        "with_public_ip": True,
    }
    if ports:
        data["ports"] = [str(p) for p in ports]
    return _api_request(client, "POST", "/api/v1/instances/rent", data, api_key, api_url, dry_run)


def _terminate_instance(client, api_key, instance_id, api_url=DEFAULT_API_URL, dry_run=False):
    """Terminate a CloudRift instance.

    POST /api/v1/instances/terminate with ById selector.
    """
    data = {"selector": {"ById": [instance_id]}}
    return _api_request(client, "POST", "/api/v1/instances/terminate", data, api_key, api_url, dry_run)


def _get_instance_info(client, api_key, instance_id, api_url=DEFAULT_API_URL):
    """Get info for a single instance by ID, or None if it is not listed."""
    data = {"selector": {"ById": [instance_id]}}
    result = _api_request(client, "POST", "/api/v1/instances/list", data, api_key, api_url)
    instances = result.get("instances", [])
    return instances[0] if instances else None


def _extract_credentials(instance, instance_id):
    """Build Credentials from an instance dict.

    VMs provide login credentials in virtual_machines[].login_info.
    Port mappings are [internal_port, external_port] pairs.
    """
    host = instance.get("host_address", "")
    password = ""
    vms = instance.get("virtual_machines", [])
    if vms:
        login_info = vms[0].get("login_info", {})
        password = login_info.get("UsernameAndPassword", {}).get("password", "")

    port_mappings = {int(m[0]): int(m[1]) for m in instance.get("port_mappings", [])}
    return Credentials(
        ip_address=host,
        password=password,
        instance_id=instance_id,
        port_mappings=port_mappings,
    )


def _read_public_key(ssh_key_path):
    if not ssh_key_path:
        return []
    with open(os.path.expanduser(ssh_key_path)) as f:
        return [f.read().strip()]


# ── Provider ───────────────────────────────────────────────────────


class CloudRiftProvider(CloudProvider):
    """Windows VMs rented from CloudRift.

    Every instance created is remembered so destroy_windows_vms() can
    terminate all of them.
    """

    def __init__(
        self,
        image_id,
        instance_type,
        api_key=None,
        api_url=DEFAULT_API_URL,
        ssh_key_path=None,
        ports=None,
        timeout=600,
        interval=10,
        fail_statuses=("Inactive",),
        dry_run=False,
        instance_ids=None,
        client=None,
    ):
        self.image_id = image_id
        self.instance_type = instance_type
        self.api_key = api_key or os.environ.get("CLOUDRIFT_API_KEY", "")
        if not self.api_key and not dry_run:
            raise ProvisioningError("CLOUDRIFT_API_KEY env var or api_key option required for CloudRift provisioning")
        self.api_url = api_url
        self.ssh_key_path = ssh_key_path
        self.ports = list(ports) if ports else list(DEFAULT_PORTS)
        self.timeout = timeout
        self.interval = interval
        self.fail_statuses = set(fail_statuses or ())
        self.dry_run = dry_run
        self.instance_ids: list[str] = list(instance_ids or [])
        self._client = client or httpx.Client()

    def wait_for_status(self, instance_id, target_status):
        """Poll instance status until it matches *target_status*.

        Returns:
            The instance dict if target status reached, None on timeout or fail status.
        """
        elapsed = 0
        status = None
        while elapsed < self.timeout:
            info = _get_instance_info(self._client, self.api_key, instance_id, self.api_url)
            if info is None:
                logger.warning(f"Warning: instance {instance_id} not found.")
            else:
                status = info.get("status")
                if status == target_status:
                    return info
                if status in self.fail_statuses:
                    logger.error(f"Instance {instance_id} reached fail status '{status}'")
                    return None
            time.sleep(self.interval)
            elapsed += self.interval

        logger.error(f"Timeout after {self.timeout}s waiting for status '{target_status}' (last: '{status}')")
        return None

    def create_windows_vm(self) -> Credentials:
        logger.info(f"Creating CloudRift instance (type={self.instance_type})...")
        try:
            result = _rent_instance(
                self._client,
                self.api_key,
                self.instance_type,
                self.image_id,
                _read_public_key(self.ssh_key_path),
                ports=self.ports,
                api_url=self.api_url,
                dry_run=self.dry_run,
            )
        except (httpx.HTTPError, OSError, ValueError) as e:
            raise ProvisioningError(f"failed to rent CloudRift instance: {e}") from e

        if self.dry_run:
            logger.info("[dry-run] Would wait for Active status, then return credentials.")
            return Credentials(ip_address="dry-run-host", password="dry-run-password", instance_id="dry-run-id")

        instance_ids = result.get("instance_ids", [])
        if not instance_ids:
            raise ProvisioningError("no instance ID returned from rent API")
        instance_id = instance_ids[0]
        self.instance_ids.append(instance_id)
        logger.info(f"Instance rented (id={instance_id}). Waiting for Active status (timeout: {self.timeout}s)...")

        try:
            credentials = self._await_credentials(instance_id)
        except ProvisioningError:
            # Nobody else holds this instance id yet
            self._release(instance_id)
            raise
        logger.info(f"Instance is Active at {credentials.ip_address}.")
        return credentials

    def _await_credentials(self, instance_id):
        try:
            info = self.wait_for_status(instance_id, "Active")
        except (httpx.HTTPError, ValueError) as e:
            raise ProvisioningError(f"failed to poll instance {instance_id}: {e}") from e
        if info is None:
            raise ProvisioningError(f"instance {instance_id} did not become Active")

        credentials = _extract_credentials(info, instance_id)
        if not credentials.is_complete:
            raise ProvisioningError(f"instance {instance_id} reported no address or password")
        return credentials

    def _release(self, instance_id):
        """Best-effort terminate of an instance that never became usable."""
        logger.info(f"Terminating CloudRift instance '{instance_id}' after failed creation...")
        try:
            _terminate_instance(self._client, self.api_key, instance_id, self.api_url, self.dry_run)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to terminate instance {instance_id}, it is still recorded: {e}")
            return
        self.instance_ids.remove(instance_id)

    def adopt(self, credentials: Credentials) -> None:
        if credentials.instance_id and credentials.instance_id not in self.instance_ids:
            self.instance_ids.append(credentials.instance_id)

    def destroy_windows_vms(self) -> None:
        errors = []
        for instance_id in list(self.instance_ids):
            logger.info(f"Terminating CloudRift instance '{instance_id}'...")
            try:
                _terminate_instance(self._client, self.api_key, instance_id, self.api_url, self.dry_run)
            except (httpx.HTTPError, ValueError) as e:
                logger.error(f"Failed to terminate instance {instance_id}: {e}")
                errors.append(instance_id)
                continue
            self.instance_ids.remove(instance_id)
        if errors:
            raise ProvisioningError(f"failed to terminate instance(s): {', '.join(errors)}")
