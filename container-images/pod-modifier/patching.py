import logging
import jsonpatch
import pydantic

from typing import Any

from models import BaseModel, Patch
from exc import DiffEncodingFailure

LOG = logging.getLogger(__name__)


def as_object(obj: BaseModel | dict[str, Any]) -> dict[str, Any]:
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json", exclude_unset=True)
    return obj


def create_patch(original, modified) -> Patch:
    """Generate the JSON patch that transforms `original` into `modified`.

    Both arguments may be either pydantic models or plain JSON-compatible
    objects. Unchanged fields produce no operations.
    """

    try:
        diff = jsonpatch.JsonPatch.from_diff(as_object(original), as_object(modified))
        return Patch.model_validate(diff.patch)
    except (jsonpatch.JsonPatchException, pydantic.ValidationError, TypeError) as err:
        LOG.error("failed to generate patch: %s", err)
        raise DiffEncodingFailure(f"failed to generate patch: {err}") from err
