import jsonpatch
import pytest

from unittest import mock

from exc import DiffEncodingFailure
from patching import create_patch


ORIGINAL = {
    "metadata": {
        "name": "mypod",
        "annotations": {"example.com/owner": "alice"},
    },
    "spec": {
        "containers": [
            {
                "name": "app",
                "resources": {
                    "limits": {"cpu": "2"},
                    "requests": {"cpu": "1", "memory": "2Gi"},
                },
            },
            {"name": "sidecar"},
        ]
    },
}


def dump(patch):
    return patch.model_dump(mode="json", by_alias=True, exclude_unset=True)


def test_no_difference():
    assert create_patch(ORIGINAL, ORIGINAL).root == []


def test_patch_transforms_original():
    modified = {
        "metadata": {
            "name": "mypod",
            "annotations": {"example.com/owner": "bob"},
        },
        "spec": {
            "containers": [
                {
                    "name": "app",
                    "resources": {"requests": {"cpu": "500m", "memory": "2Gi"}},
                },
                {"name": "sidecar", "resources": {"requests": {"cpu": "100m"}}},
            ]
        },
    }

    patch = create_patch(ORIGINAL, modified)

    assert jsonpatch.apply_patch(ORIGINAL, dump(patch), in_place=False) == modified


def test_only_changed_fields_appear():
    modified = {
        "metadata": ORIGINAL["metadata"],
        "spec": {
            "containers": [
                {
                    "name": "app",
                    "resources": {
                        "limits": {"cpu": "2"},
                        "requests": {"cpu": "500m", "memory": "2Gi"},
                    },
                },
                {"name": "sidecar"},
            ]
        },
    }

    assert dump(create_patch(ORIGINAL, modified)) == [
        {
            "op": "replace",
            "path": "/spec/containers/0/resources/requests/cpu",
            "value": "500m",
        }
    ]


def test_paths_are_escaped():
    modified = {
        "metadata": {
            "name": "mypod",
            "annotations": {"example.com/owner": "bob"},
        },
        "spec": ORIGINAL["spec"],
    }

    assert dump(create_patch(ORIGINAL, modified)) == [
        {
            "op": "replace",
            "path": "/metadata/annotations/example.com~1owner",
            "value": "bob",
        }
    ]


def test_remove_has_no_value():
    modified = {"metadata": {"name": "mypod"}, "spec": ORIGINAL["spec"]}

    assert dump(create_patch(ORIGINAL, modified)) == [
        {"op": "remove", "path": "/metadata/annotations"}
    ]


def test_patch_is_deterministic():
    modified = {"metadata": {"name": "otherpod"}, "spec": {"containers": []}}

    assert dump(create_patch(ORIGINAL, modified)) == dump(
        create_patch(ORIGINAL, modified)
    )


def test_diff_failure():
    with mock.patch(
        "patching.jsonpatch.JsonPatch.from_diff",
        side_effect=jsonpatch.JsonPatchException("test exception"),
    ):
        with pytest.raises(DiffEncodingFailure) as exc_info:
            create_patch(ORIGINAL, {})

    assert "test exception" in str(exc_info.value)
