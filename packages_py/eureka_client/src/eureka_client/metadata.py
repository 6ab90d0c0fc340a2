"""
AWS instance metadata used to fill in the instance descriptor before registration.
"""
import asyncio
import json
import logging
import re
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

EC2_METADATA_HOST = "169.254.169.254"
ECS_METADATA_HOST = "169.254.170.2"

# result key -> metadata path
EC2_METADATA_KEYS = {
    "ami-id": "ami-id",
    "instance-id": "instance-id",
    "instance-type": "instance-type",
    "local-ipv4": "local-ipv4",
    "local-hostname": "local-hostname",
    "availability-zone": "placement/availability-zone",
    "public-hostname": "public-hostname",
    "public-ipv4": "public-ipv4",
    "mac": "mac",
}

_TASK_ARN = re.compile(r"arn:aws:ecs:(\w+-\w+-\d+):(\d+):")


class AwsMetadataClient:
    """
    Reads EC2 (or ECS task) metadata into a flat key -> value map.

    Lookups never raise: a key that cannot be read is left out of the result.
    """

    def __init__(
        self,
        ecs: bool = False,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
    ):
        self.ecs = ecs
        self.host = ECS_METADATA_HOST if ecs else EC2_METADATA_HOST
        self._client = http_client
        self._timeout = timeout

    async def fetch_metadata(self) -> Dict[str, str]:
        if self._client is not None:
            return await self._fetch(self._client)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await self._fetch(client)

    async def _fetch(self, client: httpx.AsyncClient) -> Dict[str, str]:
        if self.ecs:
            return await self.fetch_ecs_metadata(client)
        return await self.fetch_ec2_metadata(client)

    async def fetch_ec2_metadata(self, client: httpx.AsyncClient) -> Dict[str, str]:
        keys = list(EC2_METADATA_KEYS)
        values = await asyncio.gather(
            *(self.lookup_metadata_key(client, EC2_METADATA_KEYS[key]) for key in keys),
            self.lookup_instance_identity(client),
        )
        results: Dict[str, Any] = dict(zip(keys, values[:-1]))
        identity = values[-1]
        results["accountId"] = identity.get("accountId") if identity else None

        # vpc-id needs the mac first
        if results.get("mac"):
            results["vpc-id"] = await self.lookup_metadata_key(
                client, f"network/interfaces/macs/{results['mac']}/vpc-id"
            )
        logger.debug(f"Found Instance AWS Metadata: {results}")
        return {key: value for key, value in results.items() if value}

    async def fetch_ecs_metadata(self, client: httpx.AsyncClient) -> Dict[str, str]:
        body = await self.lookup_metadata_key(client, "")
        try:
            document = json.loads(body or "")
            container = next(
                c for c in document["Containers"] if c.get("Type") == "NORMAL"
            )
            private_ip = container["Networks"][0]["IPv4Addresses"][0]
            match = _TASK_ARN.search(container["Labels"]["com.amazonaws.ecs.task-arn"])
            zone, account_id = match.group(1), match.group(2)
        except (ValueError, KeyError, IndexError, StopIteration, AttributeError, TypeError) as e:
            logger.error(f"Unable to read ECS task metadata: {e!r}")
            return {}

        logger.debug(f"Found Task DockerId({container.get('DockerId')}) IP({private_ip}) AZ({zone})")
        results = {
            "accountId": account_id,
            "instance-id": container.get("DockerId"),
            "instance-type": container.get("DockerName"),
            "image-id": container.get("ImageID"),
            "private-ipv4": private_ip,
            "private-hostname": private_ip,
            "availability-zone": zone,
            # Task networking is private; public keys mirror it for URL templating.
            "public-ipv4": private_ip,
            "public-hostname": private_ip,
        }
        return {key: value for key, value in results.items() if value}

    async def lookup_metadata_key(self, client: httpx.AsyncClient, key: str) -> Optional[str]:
        if self.ecs:
            url = f"http://{self.host}/v2/metadata/{key}"
        else:
            url = f"http://{self.host}/latest/meta-data/{key}"
        try:
            response = await client.get(url)
        except httpx.RequestError as e:
            logger.error(f"Error requesting metadata key {key}: {e}")
            return None
        return response.text if response.status_code == 200 else None

    async def lookup_instance_identity(self, client: httpx.AsyncClient) -> Optional[Dict[str, Any]]:
        url = f"http://{self.host}/latest/dynamic/instance-identity/document"
        try:
            response = await client.get(url)
        except httpx.RequestError as e:
            logger.error(f"Error requesting instance identity document: {e}")
            return None
        if response.status_code != 200:
            return None
        try:
            return response.json()
        except ValueError:
            logger.error("Instance identity document is not valid JSON")
            return None
