"""
Tests for AWS instance metadata lookups.
"""

import httpx
import pytest

from eureka_client.metadata import EC2_METADATA_HOST, ECS_METADATA_HOST, AwsMetadataClient


EC2_VALUES = {
    "/latest/meta-data/ami-id": "ami-123",
    "/latest/meta-data/instance-id": "i-123",
    "/latest/meta-data/instance-type": "t3.micro",
    "/latest/meta-data/local-ipv4": "10.0.0.5",
    "/latest/meta-data/local-hostname": "ip-10-0-0-5.internal",
    "/latest/meta-data/placement/availability-zone": "us-east-1c",
    "/latest/meta-data/public-hostname": "ec2-1-2-3-4.compute.amazonaws.com",
    "/latest/meta-data/public-ipv4": "1.2.3.4",
    "/latest/meta-data/mac": "0a:bb",
    "/latest/meta-data/network/interfaces/macs/0a:bb/vpc-id": "vpc-9",
}

ECS_TASK = {
    "Containers": [
        {"Type": "CNI_PAUSE", "DockerId": "pause"},
        {
            "Type": "NORMAL",
            "DockerId": "abc123",
            "DockerName": "ecs-service",
            "ImageID": "sha256:feed",
            "Labels": {"com.amazonaws.ecs.task-arn": "arn:aws:ecs:us-west-2:111122223333:task/xyz"},
            "Networks": [{"IPv4Addresses": ["172.16.0.9"]}],
        },
    ],
}


def ec2_handler(request):
    if request.url.host != EC2_METADATA_HOST:
        return httpx.Response(500)
    if request.url.path == "/latest/dynamic/instance-identity/document":
        return httpx.Response(200, json={"accountId": "111122223333"})
    value = EC2_VALUES.get(request.url.path)
    return httpx.Response(200, text=value) if value else httpx.Response(404)


def client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestAwsMetadataClient:
    """Tests for AwsMetadataClient."""

    class TestEc2:
        """Tests for EC2 metadata."""

        @pytest.mark.asyncio
        async def test_collects_metadata(self):
            """Should collect metadata keys, account id and vpc id."""
            metadata = await AwsMetadataClient(http_client=client(ec2_handler)).fetch_metadata()

            assert metadata["instance-id"] == "i-123"
            assert metadata["availability-zone"] == "us-east-1c"
            assert metadata["public-hostname"] == "ec2-1-2-3-4.compute.amazonaws.com"
            assert metadata["accountId"] == "111122223333"
            assert metadata["vpc-id"] == "vpc-9"

        @pytest.mark.asyncio
        async def test_drops_unreadable_keys(self):
            """Should leave out keys that cannot be read."""
            def handler(request):
                if request.url.path == "/latest/meta-data/instance-id":
                    return httpx.Response(200, text="i-1")
                if request.url.path == "/latest/meta-data/public-ipv4":
                    raise httpx.ConnectError("timeout", request=request)
                return httpx.Response(404)

            metadata = await AwsMetadataClient(http_client=client(handler)).fetch_metadata()

            assert metadata == {"instance-id": "i-1"}

    class TestEcs:
        """Tests for ECS task metadata."""

        @pytest.mark.asyncio
        async def test_reads_task_document(self):
            """Should read the NORMAL container of the task."""
            def handler(request):
                assert request.url.host == ECS_METADATA_HOST
                assert request.url.path == "/v2/metadata/"
                return httpx.Response(200, json=ECS_TASK)

            metadata = await AwsMetadataClient(ecs=True, http_client=client(handler)).fetch_metadata()

            assert metadata["instance-id"] == "abc123"
            assert metadata["accountId"] == "111122223333"
            assert metadata["availability-zone"] == "us-west-2"
            assert metadata["private-ipv4"] == "172.16.0.9"
            assert metadata["public-hostname"] == "172.16.0.9"

        @pytest.mark.asyncio
        async def test_malformed_document_returns_empty(self):
            """Should return no metadata for an unreadable task document."""
            metadata = await AwsMetadataClient(
                ecs=True, http_client=client(lambda r: httpx.Response(200, text="not json"))
            ).fetch_metadata()

            assert metadata == {}
