import base64
from typing import Annotated, Any, Literal
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    RootModel,
    model_validator,
    field_validator,
)
from enum import StrEnum


class ApiVersion(StrEnum):
    V1 = "admission.k8s.io/v1"
    V1BETA1 = "admission.k8s.io/v1beta1"


class Operation(StrEnum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    CONNECT = "CONNECT"


class PatchType(StrEnum):
    JSONPatch = "JSONPatch"


class PatchOp(StrEnum):
    REPLACE = "replace"
    ADD = "add"
    REMOVE = "remove"
    MOVE = "move"


class PatchAction(BaseModel):
    op: PatchOp
    path: str
    value: Any = None
    from_: str | None = Field(default=None, alias="from")


# https://jsonpatch.com/
Patch = RootModel[list[PatchAction]]


# https://kubernetes.io/docs/reference/generated/kubernetes-api/v1.30/#status-v1-meta
class AdmissionReviewStatus(BaseModel):
    message: str


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionResponse
class AdmissionResponse(BaseModel):
    allowed: bool
    status: AdmissionReviewStatus | None = None
    uid: str
    patchType: PatchType | None = None
    patch: str | None = None

    @field_validator("patch", mode="before")
    @classmethod
    def validate_patch(cls, val):
        if isinstance(val, Patch):
            val = base64.b64encode(
                val.model_dump_json(by_alias=True, exclude_unset=True).encode()
            ).decode()
        elif isinstance(val, (str, bytes)):
            # Make sure the base64 string contains valid data.
            Patch.model_validate_json(base64.b64decode(val))
            if isinstance(val, bytes):
                val = val.decode()
        return val

    @model_validator(mode="after")
    def validate_model(self):
        if self.patch and not self.patchType:
            raise ValueError("missing patchType field")
        if self.patchType and not self.patch:
            raise ValueError(f"patchType is {self.patchType} but there is no patch")

        return self


class GroupVersionKind(BaseModel):
    group: str = ""
    version: str = ""
    kind: str = ""


class GroupVersionResource(BaseModel):
    group: str = ""
    version: str = ""
    resource: str = ""


# https://kubernetes.io/docs/reference/generated/kubernetes-api/v1.30/#userinfo-v1-authentication-k8s-io
class UserInfo(BaseModel):
    username: str | None = None
    uid: str | None = None
    groups: list[str] = []
    extra: dict[str, list[str]] = {}


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionRequest
class AdmissionRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    uid: str
    kind: GroupVersionKind | None = None
    resource: GroupVersionResource | None = None
    namespace: str | None = None
    name: str | None = None
    operation: Operation = Operation.CREATE
    userInfo: UserInfo = UserInfo()
    object: dict[str, Any] | None = None


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionReview
class AdmissionReview(BaseModel):
    apiVersion: ApiVersion = ApiVersion.V1
    kind: Literal["AdmissionReview"] = "AdmissionReview"
    request: AdmissionRequest | None = None
    response: AdmissionResponse | None = None

    @model_validator(mode="after")
    def validate_model(self):
        if not (self.request or self.response):
            raise ValueError("must contain a request or a response")

        return self


def coerce_quantity(val):
    """Kubernetes serializes quantities as strings, but accepts bare numbers
    on input (e.g. `"cpu": 1`)."""

    if isinstance(val, bool):
        raise ValueError("quantity must be a string or a number")
    if isinstance(val, (int, float)):
        return str(val)
    return val


Quantity = Annotated[str, BeforeValidator(coerce_quantity)]


def none_as_empty(factory):
    """Go decodes a JSON null into an empty map or slice; do the same."""

    def _validate(val):
        return factory() if val is None else val

    return BeforeValidator(_validate)


# https://kubernetes.io/docs/reference/generated/kubernetes-api/v1.30/#resourcerequirements-v1-core
class ResourceRequirements(BaseModel):
    model_config = ConfigDict(extra="allow")

    limits: dict[str, Quantity] | None = None
    requests: dict[str, Quantity] | None = None


class Container(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)


class PodSpec(BaseModel):
    model_config = ConfigDict(extra="allow")

    containers: Annotated[list[Container], none_as_empty(list)] = []


class Metadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str | None = None
    namespace: str | None = None
    annotations: Annotated[dict[str, str], none_as_empty(dict)] = {}


class Pod(BaseModel):
    model_config = ConfigDict(extra="allow")

    metadata: Metadata = Field(default_factory=Metadata)
    spec: PodSpec = Field(default_factory=PodSpec)

    def to_object(self) -> dict[str, Any]:
        """Return the JSON form of the pod, limited to the fields that were
        present when it was decoded (plus any that have been assigned since)."""

        return self.model_dump(mode="json", exclude_unset=True)


class OverrideContainer(BaseModel):
    name: str
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)


class OverridePodSpec(BaseModel):
    containers: Annotated[list[OverrideContainer], none_as_empty(list)] = []


class OverridePod(BaseModel):
    metadata: Metadata = Field(default_factory=Metadata)
    spec: OverridePodSpec = Field(default_factory=OverridePodSpec)


class OverrideSpec(BaseModel):
    """The document stored in the pod definition annotation, e.g.:

        {"Pods": [{"metadata": {"name": "mypod"},
                   "spec": {"containers": [{"name": "app",
                                            "resources": {"requests": {"cpu": "500m"}}}]}}]}
    """

    pods: list[OverridePod] = Field(default_factory=list, alias="Pods")

    def find_pod(self, name: str | None) -> OverridePod | None:
        """Return the first override entry for the named pod."""
        return next((pod for pod in self.pods if pod.metadata.name == name), None)


class MutationConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    annotation_key: str
    excluded_namespaces: frozenset[str]
