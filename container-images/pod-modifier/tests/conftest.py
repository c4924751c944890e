import json
import pytest

import mutate
import policy

from models import MutationConfig, Pod


@pytest.fixture()
def make_overrides():
    def _make_overrides(pod_name, containers):
        """Build a pod definition annotation value. `containers` maps
        container names to the resources that should be applied to them."""

        return json.dumps(
            {
                "Pods": [
                    {
                        "metadata": {"name": pod_name},
                        "spec": {
                            "containers": [
                                {"name": name, "resources": resources}
                                for name, resources in containers.items()
                            ]
                        },
                    }
                ]
            }
        )

    return _make_overrides


@pytest.fixture()
def app():
    app = mutate.create_app(TESTING=True)
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def config():
    return MutationConfig(
        annotation_key=mutate.DEFAULTS.ANNOTATION_KEY,
        excluded_namespaces=policy.IGNORED_NAMESPACES,
    )


@pytest.fixture()
def make_pod_object():
    def _make_pod_object(
        name="test-run-solace-2",
        namespace="default",
        annotation=None,
        containers=None,
    ):
        if containers is None:
            containers = [
                {
                    "name": "solace",
                    "image": "solace/solace-pubsub-standard:latest",
                    "resources": {
                        "requests": {"cpu": "1", "memory": "2Gi"},
                    },
                }
            ]

        metadata = {"name": name, "labels": {"app": "solace"}}
        if namespace is not None:
            metadata["namespace"] = namespace
        if annotation is not None:
            metadata["annotations"] = {mutate.DEFAULTS.ANNOTATION_KEY: annotation}

        return {
            "apiVersion": "v1",
            "kind": "Pod",
            "metadata": metadata,
            "spec": {"containers": containers, "restartPolicy": "Always"},
        }

    return _make_pod_object


@pytest.fixture()
def make_pod(make_pod_object):
    def _make_pod(**kwargs):
        return Pod.model_validate(make_pod_object(**kwargs))

    return _make_pod


@pytest.fixture()
def make_review():
    def _make_review(obj, uid="1234", namespace="default", operation="CREATE"):
        return {
            "apiVersion": "admission.k8s.io/v1",
            "kind": "AdmissionReview",
            "request": {
                "uid": uid,
                "kind": {"group": "", "version": "v1", "kind": "Pod"},
                "resource": {"group": "", "version": "v1", "resource": "pods"},
                "namespace": namespace,
                "operation": operation,
                "userInfo": {
                    "username": "system:serviceaccount:kube-system:replicaset-controller",
                    "groups": ["system:serviceaccounts"],
                },
                "object": obj,
            },
        }

    return _make_review
