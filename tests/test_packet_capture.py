import copy
import subprocess
from datetime import datetime, timezone

import pytest

from osdtool.packet_capture import (
    NotFoundError,
    PacketCaptureError,
    PacketCaptureOptions,
    capture_command,
    desired_daemonset,
    desired_pod,
    poll_until,
)

READY_DS = {"numberReady": 2, "numberAvailable": 2, "desiredNumberScheduled": 2}
RUNNING_POD = {
    "phase": "Running",
    "containerStatuses": [{"state": {"running": {"startedAt": "now"}}}],
}


class FakeClient:
    def __init__(self, create_status=None, get_error=None):
        self.objects = {}
        self.create_status = create_status or {}
        self.get_error = get_error
        self.deleted = []
        self.created = []

    def add(self, obj):
        meta = obj["metadata"]
        self.objects[(obj["kind"], meta.get("namespace", ""), meta["name"])] = obj

    def get(self, kind, namespace, name):
        if self.get_error is not None:
            raise self.get_error
        try:
            return copy.deepcopy(self.objects[(kind, namespace, name)])
        except KeyError:
            raise NotFoundError(f"{kind} {namespace}/{name} not found") from None

    def create(self, obj):
        stored = copy.deepcopy(obj)
        if obj["kind"] in self.create_status:
            stored["status"] = copy.deepcopy(self.create_status[obj["kind"]])
        self.created.append(obj["metadata"]["name"])
        self.add(stored)

    def delete(self, obj):
        meta = obj["metadata"]
        del self.objects[(obj["kind"], meta["namespace"], meta["name"])]
        self.deleted.append((obj["kind"], meta["name"]))

    def list(self, kind, namespace, labels):
        result = []
        for (k, ns, _), obj in self.objects.items():
            obj_labels = obj["metadata"].get("labels") or {}
            if k == kind and ns == namespace and all(
                obj_labels.get(key) == value for key, value in labels.items()
            ):
                result.append(copy.deepcopy(obj))
        return result


class FailingCreateClient(FakeClient):
    def create(self, obj):
        raise RuntimeError("forbidden")


class FakeRunner:
    def __init__(self, returncode=0):
        self.calls = []
        self.returncode = returncode

    def __call__(self, args):
        self.calls.append(args)
        return subprocess.CompletedProcess(args, self.returncode, stdout="copied\n")


START = datetime(2023, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def make_options(client, tmp_path, **kwargs):
    return PacketCaptureOptions(
        client=client,
        start_time=START,
        output_dir=str(tmp_path / "out"),
        poll_interval=0.0,
        poll_timeout=0.5,
        **kwargs,
    )


def test_complete_succeeds_and_leaves_defaults():
    options = PacketCaptureOptions()
    assert options.complete() is None
    assert options.name == "sre-packet-capture"
    assert options.namespace == "default"
    assert options.duration == 60
    assert options.node_label_key == "node-role.kubernetes.io/worker"
    assert options.single_pod is False


def test_capture_command():
    assert capture_command(30, "eth0") == [
        "/bin/bash",
        "-c",
        "tcpdump -G 30 -W 1 -w /tmp/capture-output/capture.pcap -i eth0 -nn -s0; sync",
    ]


def test_desired_daemonset_structure():
    options = PacketCaptureOptions(name="cap", namespace="ns", capture_interface="eth1")
    ds = desired_daemonset(options)
    assert ds["kind"] == "DaemonSet"
    assert ds["metadata"] == {"name": "cap", "namespace": "ns"}
    assert ds["spec"]["selector"]["matchLabels"] == {"app": "cap"}
    assert ds["spec"]["template"]["metadata"]["labels"] == {"app": "cap"}
    spec = ds["spec"]["template"]["spec"]
    assert spec["nodeSelector"] == {"node-role.kubernetes.io/worker": ""}
    assert spec["hostNetwork"] is True
    assert spec["tolerations"] == [
        {"effect": "NoSchedule", "key": "node-role.kubernetes.io/worker", "operator": "Exists"}
    ]
    assert spec["initContainers"][0]["command"] == capture_command(60, "eth1")
    assert spec["containers"][0]["command"][2] == "trap : TERM INT; sleep infinity & wait"
    assert spec["volumes"] == [{"name": "capture-output", "emptyDir": {}}]


def test_desired_pod_labels_and_spec():
    options = PacketCaptureOptions(name="cap", namespace="ns", duration=5, capture_interface="x")
    pod = desired_pod(options)
    assert pod["kind"] == "Pod"
    assert pod["metadata"]["labels"] == {"app": "cap"}
    assert pod["spec"]["initContainers"][0]["command"][2].startswith("tcpdump -G 5 ")
    assert pod["spec"]["containers"][0]["securityContext"] == {"privileged": True}


def test_set_capture_interface_ovn(tmp_path):
    client = FakeClient()
    client.add(
        {
            "kind": "DaemonSet",
            "metadata": {"name": "ovnkube-master", "namespace": "openshift-ovn-kubernetes"},
            "status": {"desiredNumberScheduled": 3},
        }
    )
    options = make_options(client, tmp_path)
    assert options.set_capture_interface() == "genev_sys_6081"
    assert options.capture_interface == "genev_sys_6081"


def test_set_capture_interface_sdn_when_missing(tmp_path):
    options = make_options(FakeClient(), tmp_path)
    assert options.set_capture_interface() == "vxlan_sys_4789"


def test_set_capture_interface_sdn_when_nothing_scheduled(tmp_path):
    client = FakeClient()
    client.add(
        {
            "kind": "DaemonSet",
            "metadata": {"name": "ovnkube-master", "namespace": "openshift-ovn-kubernetes"},
            "status": {"desiredNumberScheduled": 0},
        }
    )
    assert make_options(client, tmp_path).set_capture_interface() == "vxlan_sys_4789"


def test_set_capture_interface_other_error(tmp_path):
    options = make_options(FakeClient(get_error=RuntimeError("boom")), tmp_path)
    with pytest.raises(PacketCaptureError, match="failed to determine the network type"):
        options.set_capture_interface()


def test_ensure_daemonset_creates(tmp_path):
    client = FakeClient()
    options = make_options(client, tmp_path)
    ds = options.ensure_daemonset()
    assert ds["metadata"]["name"] == "sre-packet-capture"
    assert client.created == ["sre-packet-capture"]


def test_ensure_daemonset_existing(tmp_path):
    client = FakeClient()
    options = make_options(client, tmp_path)
    client.add(desired_daemonset(options))
    with pytest.raises(
        PacketCaptureError,
        match="sre-packet-capture daemonset already exists in the default namespace",
    ):
        options.ensure_daemonset()


def test_ensure_pod_existing(tmp_path):
    client = FakeClient()
    options = make_options(client, tmp_path)
    client.add(desired_pod(options))
    with pytest.raises(PacketCaptureError, match="Pod already exists in the default namespace"):
        options.ensure_pod()


def test_ensure_pod_create_failure(tmp_path):
    options = make_options(FailingCreateClient(), tmp_path)
    with pytest.raises(
        PacketCaptureError, match="failed to create Pod default/sre-packet-capture: forbidden"
    ):
        options.ensure_pod()


def test_poll_until_immediate():
    calls = []

    def condition():
        calls.append(1)
        return True

    result = poll_until(condition, 10.0, 1.0)
    assert result is None
    assert calls == [1]


def test_poll_until_eventually():
    results = iter([False, False, True])
    seen = []

    def condition():
        value = next(results)
        seen.append(value)
        return value

    result = poll_until(condition, 0.0, 1.0)
    assert result is None
    assert seen == [False, False, True]


def test_poll_until_timeout():
    with pytest.raises(PacketCaptureError, match="timed out"):
        poll_until(lambda: False, 0.01, 0.05)


def test_poll_until_propagates_error():
    def condition():
        raise ValueError("bad")

    with pytest.raises(ValueError, match="bad"):
        poll_until(condition, 0.0, 1.0)


def test_wait_for_daemonset_times_out_when_not_ready(tmp_path):
    client = FakeClient(
        create_status={
            "DaemonSet": {"numberReady": 1, "numberAvailable": 0, "desiredNumberScheduled": 1}
        }
    )
    options = make_options(client, tmp_path, poll_timeout=0.05)
    ds = options.ensure_daemonset()
    with pytest.raises(PacketCaptureError, match="timed out"):
        options.wait_for_daemonset(ds)


def test_wait_for_pod_times_out_when_pending(tmp_path):
    client = FakeClient(create_status={"Pod": {"phase": "Pending"}})
    options = make_options(client, tmp_path, poll_timeout=0.05)
    pod = options.ensure_pod()
    with pytest.raises(PacketCaptureError, match="timed out"):
        options.wait_for_pod(pod)


def test_capture_file_name(tmp_path):
    options = make_options(FakeClient(), tmp_path)
    assert options.capture_file_name("node-a") == "node-a-20230102T030405.pcap"


def test_copy_files_from_pods_skips_unstarted(tmp_path):
    client = FakeClient()
    runner = FakeRunner()
    options = make_options(client, tmp_path, runner=runner)
    started = {
        "kind": "Pod",
        "metadata": {"name": "p1", "namespace": "default", "labels": {"app": options.name}},
        "spec": {"nodeName": "node-a"},
        "status": RUNNING_POD,
    }
    unstarted = {
        "kind": "Pod",
        "metadata": {"name": "p2", "namespace": "default", "labels": {"app": options.name}},
        "spec": {"nodeName": "node-b"},
        "status": {},
    }
    client.add(started)
    client.add(unstarted)
    destination = f"{tmp_path / 'out'}/node-a-20230102T030405.pcap"
    assert options.copy_files_from_pods() == [destination]
    assert runner.calls == [
        ["oc", "cp", "default/p1:/tmp/capture-output/capture.pcap", destination]
    ]
    assert (tmp_path / "out").is_dir()


def test_copy_files_failure_raises(tmp_path):
    client = FakeClient()
    options = make_options(client, tmp_path, runner=FakeRunner(returncode=1))
    client.add(
        {
            "kind": "Pod",
            "metadata": {"name": "p1", "namespace": "default", "labels": {"app": options.name}},
            "spec": {"nodeName": "node-a"},
            "status": RUNNING_POD,
        }
    )
    with pytest.raises(PacketCaptureError, match="status 1"):
        options.copy_files_from_pods()


def test_run_daemonset_flow(tmp_path):
    client = FakeClient(create_status={"DaemonSet": READY_DS})
    runner = FakeRunner()
    options = make_options(client, tmp_path, runner=runner)
    client.add(
        {
            "kind": "Pod",
            "metadata": {"name": "ds-pod", "namespace": "default", "labels": {"app": options.name}},
            "spec": {"nodeName": "node-a"},
            "status": RUNNING_POD,
        }
    )
    options.run()
    assert options.capture_interface == "vxlan_sys_4789"
    assert client.deleted == [("DaemonSet", "sre-packet-capture")]
    assert len(runner.calls) == 1
    assert runner.calls[0][2] == "default/ds-pod:/tmp/capture-output/capture.pcap"


def test_run_single_pod_flow(tmp_path):
    client = FakeClient(create_status={"Pod": {**RUNNING_POD}})
    runner = FakeRunner()
    options = make_options(client, tmp_path, runner=runner, single_pod=True)
    options.run()
    assert client.deleted == [("Pod", "sre-packet-capture")]
    assert runner.calls[0][2] == "default/sre-packet-capture:/tmp/capture-output/capture.pcap"
    assert ("Pod", "default", "sre-packet-capture") not in client.objects