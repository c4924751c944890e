import argparse
import functools
import json
import logging
import sys
import pydantic

from flask import Flask, request, jsonify, current_app

from models import (
    BaseModel,
    AdmissionReview,
    AdmissionResponse,
    AdmissionReviewStatus,
    ApiVersion,
    MutationConfig,
    OverridePod,
    Patch,
    PatchType,
    Pod,
)

from exc import (
    AnnotationMalformed,
    ApplicationError,
    DecodeError,
    EmptyBody,
    EnvelopeDecodeFailure,
    MutationError,
    ObjectDecodeFailure,
    RequestError,
    ResponseEncodingFailure,
    UnsupportedContentType,
)
from overrides import parse_overrides
from patching import create_patch
from policy import IGNORED_NAMESPACES, is_eligible

LOG = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)


class DEFAULTS:
    ANNOTATION_KEY = "pod-modifier.solace.com/modify.podDefinition"


def jsonresponse():
    """Transforms the response from a view function into a JSON object."""

    def _outer(func):
        @functools.wraps(func)
        def _inner(*args, **kwargs):
            res = func(*args, **kwargs)
            if isinstance(res, BaseModel):
                return jsonify(res.model_dump(mode="json", exclude_none=True))
            else:
                return jsonify(res)

        return _inner

    return _outer


def apply_overrides(pod: Pod, override: OverridePod) -> bool:
    """Replace the resources of every container in `pod` named in `override`.

    Container names are not assumed to be unique; every container with a
    matching name is modified. Returns True if at least one container matched.
    """

    found = False
    for override_container in override.spec.containers:
        for container in pod.spec.containers:
            if container.name == override_container.name:
                container.resources = override_container.resources.model_copy(deep=True)
                found = True

    return found


def compute_mutation(
    pod: Pod, config: MutationConfig, namespace: str | None = None
) -> Patch | None:
    """Return the patch to apply to `pod`, or None if it should be admitted
    unmodified.

    `namespace` is the namespace of the admission request. It takes precedence
    over the pod's own namespace, which most pods do not carry at creation
    time.
    """

    namespace = namespace or pod.metadata.namespace
    if not is_eligible(namespace, config.excluded_namespaces):
        return None

    overrides = parse_overrides(pod.metadata.annotations, config.annotation_key)
    if overrides is None:
        return None

    override = overrides.find_pod(pod.metadata.name)
    if override is None:
        LOG.info("pod name %s does not match annotation; skipping pod", pod.metadata.name)
        return None

    modified = pod.model_copy(deep=True)
    if not apply_overrides(modified, override):
        LOG.info("no container name in %s matches annotation; skipping pod", pod.metadata.name)
        return None

    LOG.info("creating patch for pod %s/%s", namespace, pod.metadata.name)
    return create_patch(pod, modified)


def peek_uid(body: bytes) -> str:
    """Recover the request uid from a body that could not be decoded."""

    try:
        uid = json.loads(body)["request"]["uid"]
    except (ValueError, KeyError, TypeError):
        return ""

    return uid if isinstance(uid, str) else ""


def decode_review(req) -> AdmissionReview:
    body = req.get_data()
    if not body:
        LOG.error("empty body")
        raise EmptyBody("empty body")

    if req.mimetype != "application/json":
        LOG.error("Content-Type=%s, expected application/json", req.content_type)
        raise UnsupportedContentType("invalid Content-Type, expected application/json")

    try:
        review = AdmissionReview.model_validate_json(body)
    except pydantic.ValidationError as err:
        LOG.error("can't decode body: %s", err)
        raise EnvelopeDecodeFailure(
            f"invalid admission review: {err}", uid=peek_uid(body)
        ) from err

    if review.request is None:
        LOG.error("admission review contains no request")
        raise EnvelopeDecodeFailure(
            "admission review contains no request", api_version=review.apiVersion
        )

    return review


def decode_pod(review: AdmissionReview) -> Pod:
    req = review.request
    if req.object is None:
        raise ObjectDecodeFailure(
            "admission request contains no object",
            uid=req.uid,
            api_version=review.apiVersion,
        )

    try:
        return Pod.model_validate(req.object)
    except pydantic.ValidationError as err:
        LOG.error("could not decode pod: %s", err)
        raise ObjectDecodeFailure(
            f"invalid pod: {err}", uid=req.uid, api_version=review.apiVersion
        ) from err


def admission_response(
    api_version: ApiVersion,
    uid: str,
    allowed: bool,
    message: str | None = None,
    patch: Patch | None = None,
) -> AdmissionReview:
    if patch is not None and not patch.root:
        patch = None

    try:
        return AdmissionReview(
            apiVersion=api_version,
            response=AdmissionResponse(
                uid=uid,
                allowed=allowed,
                status=AdmissionReviewStatus(message=message) if message else None,
                patchType=PatchType.JSONPatch if patch else None,
                patch=patch,
            ),
        )
    except pydantic.ValidationError as err:
        LOG.error("can't encode response: %s", err)
        raise ResponseEncodingFailure(f"could not encode response: {err}") from err


@jsonresponse()
def mutate_pod():
    review = decode_review(request)
    req = review.request

    LOG.info(
        "AdmissionReview for kind=%s resource=%s namespace=%s name=%s uid=%s operation=%s userInfo=%s",
        req.kind.kind if req.kind else None,
        req.resource.resource if req.resource else None,
        req.namespace,
        req.name,
        req.uid,
        req.operation,
        req.userInfo.model_dump(exclude_defaults=True),
    )

    pod = decode_pod(review)

    try:
        patch = compute_mutation(pod, current_app.mutation_config, namespace=req.namespace)
    except AnnotationMalformed as err:
        # The pod is admitted as-is; the reason is reported to the caller.
        return admission_response(review.apiVersion, req.uid, True, message=str(err))
    except MutationError as err:
        return admission_response(review.apiVersion, req.uid, False, message=str(err))

    if patch is not None:
        LOG.info("AdmissionResponse: patch=%s", patch.model_dump_json(by_alias=True, exclude_unset=True))

    return admission_response(review.apiVersion, req.uid, True, patch=patch)


def handle_requesterror(err):
    return str(err), err.status_code, {"content-type": "text/plain"}


@jsonresponse()
def handle_decodeerror(err):
    return admission_response(
        err.api_version or ApiVersion.V1, err.uid, False, message=str(err)
    )


def handle_applicationerror(err):
    return str(err), 500, {"content-type": "text/plain"}


def health():
    return "OK", 200, {"content-type": "text/plain"}


def create_app(**config) -> Flask:
    """Use an application factory [1] to create the Flask app.

    This makes it much easier to write tests for the application, since we can
    set up the test environment before instantiating the app. This is difficult
    to do if the app is created at `import` time.

    [1]: https://flask.palletsprojects.com/en/3.0.x/patterns/appfactories/
    """

    app = Flask(__name__)
    app.config.from_object(DEFAULTS)
    app.config.from_prefixed_env("PODMOD")
    if config:
        app.config.update(config)

    if not app.config.get("ANNOTATION_KEY"):
        LOG.error("Missing annotation key configuration")
        sys.exit(1)

    app.mutation_config = MutationConfig(
        annotation_key=app.config["ANNOTATION_KEY"],
        excluded_namespaces=IGNORED_NAMESPACES,
    )

    app.errorhandler(RequestError)(handle_requesterror)
    app.errorhandler(DecodeError)(handle_decodeerror)
    app.errorhandler(ApplicationError)(handle_applicationerror)
    app.add_url_rule("/healthz", view_func=health)
    app.add_url_rule("/mutate", view_func=mutate_pod, methods=["POST"])

    return app


def main(argv=None):
    parser = argparse.ArgumentParser(description="Pod resource modifier webhook")
    parser.add_argument("--port", type=int, default=443, help="Webhook server port")
    parser.add_argument(
        "--tlsCertFile",
        default="/etc/webhook/certs/cert.pem",
        help="File containing the x509 certificate for HTTPS",
    )
    parser.add_argument(
        "--tlsKeyFile",
        default="/etc/webhook/certs/key.pem",
        help="File containing the x509 private key matching --tlsCertFile",
    )
    parser.add_argument(
        "--annotation",
        help="Full annotation key holding the pod definition overrides "
        "(default: pod-modifier.solace.com/modify.podDefinition). This is not a "
        "prefix; '.podDefinition' is not appended",
    )
    args = parser.parse_args(argv)

    config = {}
    if args.annotation:
        config["ANNOTATION_KEY"] = args.annotation

    app = create_app(**config)
    app.run(
        host="0.0.0.0",
        port=args.port,
        ssl_context=(args.tlsCertFile, args.tlsKeyFile),
    )


if __name__ == "__main__":
    main()
