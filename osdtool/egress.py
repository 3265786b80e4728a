"""Assembling egress verification input for AWS clusters."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, Sequence

log = logging.getLogger(__name__)

NON_BYOVPC_PRIVATE_SUBNET_TAG_KEY = "kubernetes.io/role/internal-elb"
DEFAULT_INSTANCE_TYPE = "t3.micro"
DEFAULT_TIMEOUT_SECONDS = 2.0
SUPPORTED_PRODUCTS = frozenset({"rosa", "osd", "osdtrial"})

_SUPPORTED_REGIONS = frozenset(
    {
        "af-south-1",
        "ap-east-1",
        "ap-northeast-1",
        "ap-northeast-2",
        "ap-northeast-3",
        "ap-south-1",
        "ap-southeast-1",
        "ap-southeast-2",
        "ap-southeast-3",
        "ca-central-1",
        "eu-central-1",
        "eu-north-1",
        "eu-south-1",
        "eu-west-1",
        "eu-west-2",
        "eu-west-3",
        "me-south-1",
        "sa-east-1",
        "us-east-1",
        "us-east-2",
        "us-west-1",
        "us-west-2",
    }
)


class EgressError(Exception):
    """Egress verification input could not be determined."""


class EgressAwsClient(Protocol):
    """The AWS queries egress verification needs; each returns identifiers."""

    def describe_subnets(self, filters: list[dict[str, Any]]) -> Sequence[str]: ...

    def describe_security_groups(self, filters: list[dict[str, Any]]) -> Sequence[str]: ...


@dataclass
class AwsSettings:
    """AWS specific settings for the egress check."""

    security_group_id: str = ""


@dataclass
class ProxyConfig:
    """Cluster-wide proxy settings used by the egress check."""

    http_proxy: str = ""
    https_proxy: str = ""
    cacert: str = ""
    no_tls: bool = False


@dataclass
class Cluster:
    """The cluster facts egress verification relies on."""

    id: str = ""
    infra_id: str = ""
    cloud_provider: str = ""
    product: str = ""
    region: str = ""
    subnet_ids: list[str] = field(default_factory=list)
    private_link: bool = False
    http_proxy: str = ""
    https_proxy: str = ""
    no_proxy: str = ""
    additional_trust_bundle: str = ""

    @property
    def has_proxy(self) -> bool:
        """Tell whether a cluster-wide proxy is configured."""
        return bool(self.http_proxy or self.https_proxy or self.no_proxy)


@dataclass
class ValidateEgressInput:
    """Everything the egress check needs to run."""

    region: str
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    subnet_id: str = ""
    instance_type: str = DEFAULT_INSTANCE_TYPE
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    tags: dict[str, str] = field(default_factory=dict)
    aws: AwsSettings = field(default_factory=AwsSettings)


def is_supported_region(region: str) -> bool:
    """Tell whether the egress check can run in ``region``."""
    return region in _SUPPORTED_REGIONS


def default_validate_egress_input(region: str) -> ValidateEgressInput:
    """An opinionated default input for ``region``."""
    if not is_supported_region(region):
        raise EgressError(f"unsupported region: {region}")
    return ValidateEgressInput(
        region=region,
        tags={
            "osd-network-verifier": "owned",
            "red-hat-managed": "true",
            "Name": "osd-network-verifier",
        },
    )


def _tag_filter(name: str, *values: str) -> dict[str, Any]:
    return {"Name": name, "Values": list(values)}


@dataclass
class EgressVerification:
    """Settings for verifying a cluster's egress, mostly detected from the cluster."""

    cluster_id: str = ""
    region: str = ""
    subnet_id: str = ""
    security_group_id: str = ""
    debug: bool = False
    ca_cert: str = ""
    no_tls: bool = False
    cluster: Cluster | None = None
    aws_client: EgressAwsClient | None = None
    cluster_lookup: Callable[[str], Cluster] | None = None
    aws_client_factory: Callable[[Cluster], EgressAwsClient] | None = None

    def setup(self) -> str:
        """Resolve the cluster and AWS client; return the AWS region to use."""
        if self.debug:
            log.setLevel(logging.DEBUG)

        if self.cluster_id:
            if self.region:
                raise EgressError("--cluster-id and --region cannot be used together")
            if self.cluster_lookup is None or self.aws_client_factory is None:
                raise EgressError("no cluster lookup or AWS client factory configured")
            log.debug("searching for cluster: %s", self.cluster_id)
            try:
                cluster = self.cluster_lookup(self.cluster_id)
            except Exception as exc:
                raise EgressError(
                    f"failed to get OCM cluster info for {self.cluster_id}: {exc}"
                ) from exc
            log.debug("cluster %s found: %s", self.cluster_id, cluster.id)
            self.cluster = cluster
            log.info("getting AWS credentials for cluster %s", cluster.id)
            self.aws_client = self.aws_client_factory(cluster)
            return cluster.region

        if not self.subnet_id or not self.security_group_id:
            raise EgressError(
                "--subnet-id and --security-group are required when --cluster-id is not specified"
            )

        log.info(
            "[WARNING] no cluster-id specified, there is reduced validation around the "
            "security group, subnet, and proxy, causing inaccurate results"
        )
        log.info("using whatever default AWS credentials are locally available")
        region = os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION", "")
        if self.region:
            log.info("overriding region with %s", self.region)
            region = self.region
        return region

    def generate_validate_egress_input(self, region: str) -> ValidateEgressInput:
        """Build the egress check input, checking the cluster and detecting settings."""
        cluster = self.cluster
        if cluster is not None:
            if cluster.cloud_provider != "aws":
                raise EgressError(f"only supports aws, got {cluster.cloud_provider}")
            if cluster.product not in SUPPORTED_PRODUCTS:
                raise EgressError(
                    f"only supports rosa, osd, and osdtrial, got {cluster.product}"
                )

        try:
            egress_input = default_validate_egress_input(region)
        except EgressError as exc:
            raise EgressError(f"failed to assemble validate egress input: {exc}") from exc

        egress_input.proxy.no_tls = self.no_tls
        if self.ca_cert:
            with open(self.ca_cert, encoding="utf-8") as handle:
                egress_input.proxy.cacert = handle.read()

        if cluster is not None and cluster.has_proxy:
            egress_input.proxy.http_proxy = cluster.http_proxy
            egress_input.proxy.https_proxy = cluster.https_proxy
            if cluster.additional_trust_bundle and not self.ca_cert:
                raise EgressError(
                    f"{self.cluster_id} has an additional trust bundle configured, "
                    "but no --cacert supplied"
                )

        egress_input.subnet_id = self.get_subnet_id()
        egress_input.aws.security_group_id = self.get_security_group_id()
        return egress_input

    def _require_cluster(self) -> Cluster:
        if self.cluster is None:
            raise EgressError("no cluster available to detect settings from")
        return self.cluster

    def _require_client(self) -> EgressAwsClient:
        if self.aws_client is None:
            raise EgressError("no AWS client available")
        return self.aws_client

    def get_subnet_id(self) -> str:
        """Return a private subnet id, the override if one was given."""
        if self.subnet_id:
            log.info("using manually specified subnet-id: %s", self.subnet_id)
            return self.subnet_id

        cluster = self._require_cluster()
        infra_id = cluster.infra_id

        if not cluster.subnet_ids:
            log.info(
                "searching for subnets by tags: kubernetes.io/cluster/%s=owned and %s=",
                infra_id,
                NON_BYOVPC_PRIVATE_SUBNET_TAG_KEY,
            )
            client = self._require_client()
            try:
                subnets = list(
                    client.describe_subnets(
                        [
                            _tag_filter(f"tag:kubernetes.io/cluster/{infra_id}", "owned"),
                            _tag_filter("tag-key", NON_BYOVPC_PRIVATE_SUBNET_TAG_KEY),
                        ]
                    )
                )
            except Exception as exc:
                raise EgressError(f"failed to find private subnets for {infra_id}: {exc}") from exc
            if not subnets:
                raise EgressError(
                    f"found 0 subnets with kubernetes.io/cluster/{infra_id}=owned and "
                    f"{infra_id}, consider the --subnet-id flag"
                )
            log.info("using subnet-id: %s", subnets[0])
            return subnets[0]

        if cluster.private_link:
            log.info(
                "detected BYOVPC PrivateLink cluster, using first subnet: %s",
                cluster.subnet_ids[0],
            )
            return cluster.subnet_ids[0]

        raise EgressError(
            "unable to determine which non-PrivateLink BYOVPC subnets are private yet, "
            "please check manually and provide the --subnet-id flag"
        )

    def get_security_group_id(self) -> str:
        """Return the master security group id, the override if one was given."""
        if self.security_group_id:
            log.info("using manually specified security-group-id: %s", self.security_group_id)
            return self.security_group_id

        infra_id = self.cluster.infra_id if self.cluster is not None else ""
        log.info(
            "searching for security group by tags: kubernetes.io/cluster/%s=owned and "
            "Name=%s-master-sg",
            infra_id,
            infra_id,
        )
        client = self._require_client()
        try:
            groups = list(
                client.describe_security_groups(
                    [
                        _tag_filter("tag:Name", f"{infra_id}-master-sg"),
                        _tag_filter(f"tag:kubernetes.io/cluster/{infra_id}", "owned"),
                    ]
                )
            )
        except Exception as exc:
            raise EgressError(
                f"failed to find master security group for {infra_id}: {exc}"
            ) from exc
        if not groups:
            raise EgressError(
                "failed to find any master security groups by tag: "
                f"kubernetes.io/cluster/{infra_id}=owned and Name=={infra_id}-master-sg"
            )
        log.info("using security-group-id: %s", groups[0])
        return groups[0]