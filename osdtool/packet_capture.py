"""Running a packet capture on cluster nodes and collecting the results."""

from __future__ import annotations

import copy
import logging
import os
import subprocess
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Protocol, Sequence

log = logging.getLogger(__name__)

PACKET_CAPTURE_IMAGE = "quay.io/app-sre/srep-network-toolbox:latest"
PACKET_CAPTURE_NAME = "sre-packet-capture"
PACKET_CAPTURE_NAMESPACE = "default"
OUTPUT_DIR = "capture-output"
NODE_LABEL_KEY = "node-role.kubernetes.io/worker"
NODE_LABEL_VALUE = ""
PACKET_CAPTURE_DURATION_SEC = 60

OVN_INTERFACE = "genev_sys_6081"
SDN_INTERFACE = "vxlan_sys_4789"
CAPTURE_MOUNT_PATH = "/tmp/capture-output"
CAPTURE_FILE = f"{CAPTURE_MOUNT_PATH}/capture.pcap"
_VOLUME_NAME = "capture-output"
_POLL_INTERVAL = 10.0
_POLL_TIMEOUT = 600.0


class NotFoundError(Exception):
    """The requested cluster object does not exist."""


class PacketCaptureError(Exception):
    """A packet capture step failed."""


class KubeClient(Protocol):
    """The cluster operations a packet capture needs; objects are manifests."""

    def get(self, kind: str, namespace: str, name: str) -> dict[str, Any]: ...

    def create(self, obj: Mapping[str, Any]) -> None: ...

    def delete(self, obj: Mapping[str, Any]) -> None: ...

    def list(
        self, kind: str, namespace: str, labels: Mapping[str, str]
    ) -> Sequence[dict[str, Any]]: ...


Runner = Callable[[list[str]], "subprocess.CompletedProcess[str]"]


def _run_command(args: list[str]) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        args, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True, check=False
    )


def capture_command(duration: int, interface: str) -> list[str]:
    """The init container command that records ``duration`` seconds of traffic."""
    return [
        "/bin/bash",
        "-c",
        f"tcpdump -G {duration} -W 1 -w {CAPTURE_FILE} -i {interface} -nn -s0; sync",
    ]


def poll_until(
    condition: Callable[[], bool], interval: float, timeout: float
) -> None:
    """Call ``condition`` now and every ``interval`` seconds until it holds."""
    deadline = time.monotonic() + timeout
    while True:
        if condition():
            return
        if time.monotonic() + interval > deadline:
            raise PacketCaptureError("timed out waiting for the condition")
        time.sleep(interval)


def _volume_mounts() -> list[dict[str, Any]]:
    return [{"name": _VOLUME_NAME, "mountPath": CAPTURE_MOUNT_PATH, "readOnly": False}]


def _pod_spec(options: PacketCaptureOptions) -> dict[str, Any]:
    return {
        "nodeSelector": {options.node_label_key: options.node_label_value},
        "tolerations": [
            {"effect": "NoSchedule", "key": options.node_label_key, "operator": "Exists"}
        ],
        "volumes": [{"name": _VOLUME_NAME, "emptyDir": {}}],
        "hostNetwork": True,
        "initContainers": [
            {
                "name": "init-capture",
                "image": PACKET_CAPTURE_IMAGE,
                "imagePullPolicy": "IfNotPresent",
                "command": capture_command(options.duration, options.capture_interface),
                "securityContext": {"privileged": True},
                "volumeMounts": _volume_mounts(),
            }
        ],
        "containers": [
            {
                "name": "copy",
                "image": PACKET_CAPTURE_IMAGE,
                "imagePullPolicy": "IfNotPresent",
                "command": ["/bin/bash", "-c", "trap : TERM INT; sleep infinity & wait"],
                "securityContext": {"privileged": True},
                "volumeMounts": _volume_mounts(),
            }
        ],
    }


def desired_daemonset(options: PacketCaptureOptions) -> dict[str, Any]:
    """The daemonset that runs a capture on every matching node."""
    labels = {"app": options.name}
    return {
        "apiVersion": "apps/v1",
        "kind": "DaemonSet",
        "metadata": {"name": options.name, "namespace": options.namespace},
        "spec": {
            "selector": {"matchLabels": dict(labels)},
            "template": {
                "metadata": {"labels": dict(labels)},
                "spec": _pod_spec(options),
            },
        },
    }


def desired_pod(options: PacketCaptureOptions) -> dict[str, Any]:
    """The single pod that runs a capture on one matching node."""
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {
            "name": options.name,
            "namespace": options.namespace,
            "labels": {"app": options.name},
        },
        "spec": _pod_spec(options),
    }


def _meta(obj: Mapping[str, Any]) -> tuple[str, str]:
    metadata = obj.get("metadata") or {}
    return metadata.get("namespace", ""), metadata.get("name", "")


def _status(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    return obj.get("status") or {}


@dataclass
class PacketCaptureOptions:
    """Settings and steps of a packet capture run."""

    client: KubeClient | None = None
    name: str = PACKET_CAPTURE_NAME
    namespace: str = PACKET_CAPTURE_NAMESPACE
    node_label_key: str = NODE_LABEL_KEY
    node_label_value: str = NODE_LABEL_VALUE
    duration: int = PACKET_CAPTURE_DURATION_SEC
    single_pod: bool = False
    capture_interface: str = ""
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    output_dir: str = OUTPUT_DIR
    poll_interval: float = _POLL_INTERVAL
    poll_timeout: float = _POLL_TIMEOUT
    runner: Runner = _run_command

    def complete(self) -> None:
        """Finish option processing; nothing needs completing."""
        return None

    def _client(self) -> KubeClient:
        if self.client is None:
            raise PacketCaptureError("no cluster client configured")
        return self.client

    def run(self) -> None:
        """Run the capture with a single pod or a daemonset."""
        if self.single_pod:
            self._run_pod()
        else:
            self._run_daemonset()

    def _run_daemonset(self) -> None:
        log.info("Confirming the interface for capturing")
        self.set_capture_interface()
        log.info("Ensuring Packet Capture Daemonset")
        daemonset = self.ensure_daemonset()
        log.info("Waiting For Packet Capture Daemonset")
        self.wait_for_daemonset(daemonset)
        log.info("Copying Files From Packet Capture Pods")
        self.copy_files_from_pods()
        log.info("Deleting Packet Capture Daemonset")
        self._delete(daemonset, "daemonset")

    def _run_pod(self) -> None:
        log.info("Confirming the interface for capturing")
        self.set_capture_interface()
        log.info("Ensuring Packet Capture Pod")
        pod = self.ensure_pod()
        log.info("Waiting For Packet Capture Pod")
        self.wait_for_pod(pod)
        log.info("Copying Files From Packet Capture Pods")
        self.copy_files_from_pods()
        log.info("Deleting Packet Capture Pod")
        self._delete(pod, "Pod")

    def set_capture_interface(self) -> str:
        """Pick the tunnel interface from the cluster's network type."""
        try:
            daemonset = self._client().get(
                "DaemonSet", "openshift-ovn-kubernetes", "ovnkube-master"
            )
        except NotFoundError:
            daemonset = {}
        except Exception as exc:
            raise PacketCaptureError(f"failed to determine the network type: {exc}") from exc

        if _status(daemonset).get("desiredNumberScheduled", 0) > 0:
            self.capture_interface = OVN_INTERFACE
        else:
            self.capture_interface = SDN_INTERFACE
        return self.capture_interface

    def _exists(self, kind: str) -> bool:
        try:
            self._client().get(kind, self.namespace, self.name)
        except NotFoundError:
            return False
        return True

    def _create(self, obj: dict[str, Any], label: str) -> None:
        try:
            self._client().create(obj)
        except Exception as exc:
            namespace, name = _meta(obj)
            raise PacketCaptureError(
                f"failed to create {label} {namespace}/{name}: {exc}"
            ) from exc

    def _delete(self, obj: Mapping[str, Any], label: str) -> None:
        try:
            self._client().delete(obj)
        except Exception as exc:
            namespace, name = _meta(obj)
            raise PacketCaptureError(
                f"failed to delete {label} {namespace}/{name}: {exc}"
            ) from exc

    def ensure_daemonset(self) -> dict[str, Any]:
        """Create the capture daemonset; fail if one already exists."""
        desired = desired_daemonset(self)
        if self._exists("DaemonSet"):
            log.info("Already have packet-capture daemonset")
            raise PacketCaptureError(
                f"{self.name} daemonset already exists in the {self.namespace} namespace"
            )
        self._create(desired, "daemonset")
        log.info("Successfully ensured packet capture daemonset")
        return desired

    def ensure_pod(self) -> dict[str, Any]:
        """Create the capture pod; fail if one already exists."""
        desired = desired_pod(self)
        if self._exists("Pod"):
            log.info("Already have packet-capture Pod")
            raise PacketCaptureError(
                f"{self.name} Pod already exists in the {self.namespace} namespace"
            )
        self._create(desired, "Pod")
        log.info("Successfully ensured packet capture Pod")
        return desired

    def _poll(self, check: Callable[[], bool]) -> None:
        poll_until(check, self.poll_interval, self.poll_timeout)

    def wait_for_daemonset(self, daemonset: Mapping[str, Any]) -> None:
        """Wait until every scheduled capture pod is ready and available."""
        namespace, name = _meta(daemonset)

        def ready() -> bool:
            status = _status(self._client().get("DaemonSet", namespace, name))
            number_ready = status.get("numberReady", 0)
            return (
                number_ready > 0
                and status.get("numberAvailable", 0) == number_ready
                and number_ready == status.get("desiredNumberScheduled", 0)
            )

        self._poll(ready)

    def wait_for_pod(self, pod: Mapping[str, Any]) -> None:
        """Wait until the capture pod is running."""
        namespace, name = _meta(pod)
        self._poll(
            lambda: _status(self._client().get("Pod", namespace, name)).get("phase")
            == "Running"
        )

    def _wait_for_container_running(self, pod: Mapping[str, Any]) -> None:
        namespace, name = _meta(pod)

        def running() -> bool:
            statuses = _status(self._client().get("Pod", namespace, name)).get(
                "containerStatuses"
            ) or []
            if not statuses:
                return False
            return (statuses[0].get("state") or {}).get("running") is not None

        self._poll(running)

    def capture_file_name(self, node_name: str) -> str:
        """The local file name for a node's capture."""
        stamp = self.start_time.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%S")
        return f"{node_name}-{stamp}.pcap"

    def _copy_files_from_pod(self, pod: Mapping[str, Any]) -> str:
        os.makedirs(self.output_dir, mode=0o750, exist_ok=True)
        namespace, name = _meta(pod)
        node_name = (pod.get("spec") or {}).get("nodeName", "")
        destination = f"{self.output_dir}/{self.capture_file_name(node_name)}"
        args = ["oc", "cp", f"{namespace}/{name}:{CAPTURE_FILE}", destination]
        try:
            result = self.runner(args)
        except OSError as exc:
            raise PacketCaptureError(f"cannot run oc: {exc}") from exc
        output = result.stdout or ""
        if output:
            print(output, end="")
        if result.returncode != 0:
            log.error("%s", output)
            raise PacketCaptureError(f"oc cp exited with status {result.returncode}")
        return destination

    def copy_files_from_pods(self) -> list[str]:
        """Copy the capture from every started pod; return the local paths."""
        pods = self._client().list("Pod", self.namespace, {"app": self.name})
        copied: list[str] = []
        for pod in pods:
            if not _status(pod).get("containerStatuses"):
                continue
            self._wait_for_container_running(pod)
            log.info("Copying files from %s", _meta(pod)[1])
            copied.append(self._copy_files_from_pod(pod))
        return copied


def _clone(obj: Mapping[str, Any]) -> dict[str, Any]:
    return copy.deepcopy(dict(obj))