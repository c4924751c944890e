class ApplicationError(Exception):
    pass


class RequestError(ApplicationError):
    """The request was rejected before an admission review could be decoded."""

    status_code = 400


class EmptyBody(RequestError):
    pass


class UnsupportedContentType(RequestError):
    status_code = 415


class DecodeError(ApplicationError):
    """Failed to decode the admission review or the object it carries.

    The uid and apiVersion of the review are kept (where they could be
    recovered) so that the error can still be reported in a response
    envelope.
    """

    def __init__(self, message, uid="", api_version=None):
        super().__init__(message)
        self.uid = uid
        self.api_version = api_version


class EnvelopeDecodeFailure(DecodeError):
    pass


class ObjectDecodeFailure(DecodeError):
    pass


class MutationError(ApplicationError):
    pass


class AnnotationMalformed(MutationError):
    pass


class DiffEncodingFailure(MutationError):
    pass


class ResponseEncodingFailure(ApplicationError):
    pass
