import logging
import pydantic

from models import OverrideSpec
from exc import AnnotationMalformed

LOG = logging.getLogger(__name__)


def parse_overrides(annotations: dict[str, str], annotation_key: str) -> OverrideSpec | None:
    """Decode the resource overrides stored in the `annotation_key` annotation.

    Returns None if the annotation is not present. Raises AnnotationMalformed
    if the annotation does not contain a valid override document.
    """

    value = annotations.get(annotation_key)
    if value is None:
        LOG.info("required annotation %s missing; skipping pod", annotation_key)
        return None

    try:
        return OverrideSpec.model_validate_json(value)
    except pydantic.ValidationError as err:
        LOG.error("failed to parse annotation %s: %s", annotation_key, err)
        raise AnnotationMalformed(f"invalid {annotation_key} annotation: {err}") from err
