from typing import Any, Type, cast, get_type_hints

from fastapi import HTTPException
from pydantic import BaseModel, Field, create_model

from sherpa.annotation_helpers import SherpaUnsetValue

# Keys that are used to initialize the HTTPException model
HTTPExceptionKeys = ["status_code", "detail", "headers"]


class APIExceptionInternalModelBase(BaseModel):
    """
    Superclass used for our synthetic internal errors. This class sets
    the required parameters and default model configuration for use in
    validating user inputs to APIException(**kwargs)

    """

    status_code: int
    detail: str
    headers: dict[str, str]

    model_config = {"extra": "forbid"}


class InternalModelMeta(type):
    """
    Introspect APIException class definitions where they're defined to convert
    their class-based typehints into an internal Pydantic BaseModel that can validate
    individual instances.

    """

    def __new__(mcs, name, bases, namespace):
        cls = super().__new__(mcs, name, bases, namespace)
        cls._create_internal_model()
        return cls

    def _create_internal_model(cls):
        type_hints = get_type_hints(cls)

        fields = {
            key: (
                key_type,
                getattr(cls, key, cls._build_default_field(key, key_type)),
            )
            for key, key_type in type_hints.items()
            if key not in ["InternalModel", "internal_model"]
        }
        cls.InternalModel = create_model(
            # Mirror the class name so error payloads are labeled as the user specifies
            # for their exception class
            cls.__name__,
            __base__=APIExceptionInternalModelBase,
            **cast(Any, fields),
        )
        cls.InternalModel.__module__ = cls.__module__

    def _build_default_field(cls, key, key_type):
        default_value = getattr(cls, key, SherpaUnsetValue())

        if isinstance(default_value, SherpaUnsetValue):
            return Field()
        else:
            return Field(default_factory=lambda: default_value)

    def __call__(cls, *args, **kwargs):
        # Errors can declare a detail template that is filled with their own
        # field values, so call sites only need to pass the diagnostic fields
        detail_template = getattr(cls, "detail_template", None)
        if "detail" not in kwargs and detail_template:
            try:
                kwargs["detail"] = detail_template.format(**kwargs)
            except KeyError:
                # Missing fields are reported by the model validation below
                pass

        # Use the internal model for validation and instantiation
        internal_model = cls.InternalModel(**kwargs)
        instance = super().__call__(
            **{
                key: value
                for key, value in internal_model.model_dump().items()
                if key in HTTPExceptionKeys
            }
        )
        setattr(instance, "internal_model", internal_model)

        # Mirror the diagnostic fields onto the exception itself so handlers
        # can read `exc.identifier` instead of digging through the model
        for key, value in internal_model:
            if key not in HTTPExceptionKeys:
                setattr(instance, key, value)
        return instance


class APIException(HTTPException, metaclass=InternalModelMeta):
    """
    Base class for errors that are raised while serving a page and should be
    converted into a response with a specific status code. Subclasses declare
    their diagnostic fields as class typehints:

    ```python
    class TenantMissing(APIException):
        status_code: int = 404
        detail: str = "The tenant was not found"
        tenant_id: str
    ```

    """

    status_code: int = 500
    detail: str = "A server error occurred"
    headers: dict[str, str] = Field(default_factory=dict)

    # Set by the metaclass to provide internal validation for runtime values assigned
    # to our marked up typehints
    InternalModel: Type[APIExceptionInternalModelBase]

    # Set on the instance of the exception with the user values
    internal_model: APIExceptionInternalModelBase

    # Any issues with the input constructor will raise a runtime error
    # versus being statically checked
    def __init__(self, **kwargs: Any):
        super().__init__(**kwargs)


class ViewNotFoundError(APIException):
    """
    No registry entry exists for the requested logical view path. Surfaces as
    a not-found response and is raised before any rendering is attempted.

    """

    status_code: int = 404
    detail: str = "View not found"
    view_path: str

    detail_template = "No view registered for path '{view_path}'"


class ContextEnrichmentError(APIException):
    """
    One of the host-provided context enrichers failed. Fatal for the request.

    """

    status_code: int = 500
    detail: str = "Render context enrichment failed"
    enricher: str
    reason: str

    detail_template = "Context enricher '{enricher}' failed: {reason}"


class RenderError(APIException):
    """
    A layout or page raised while rendering. Carries the identifier of the
    component that failed so it can be found in the logs.

    """

    status_code: int = 500
    detail: str = "Rendering failed"
    identifier: str
    reason: str

    detail_template = "Rendering '{identifier}' failed: {reason}"


class SerializationError(APIException):
    """
    Props or context can't be encoded into the hydration payload. Caught at
    render time so the browser never receives a partial payload.

    """

    status_code: int = 500
    detail: str = "Hydration payload is not serializable"
    identifier: str
    reason: str

    detail_template = "Payload for '{identifier}' is not JSON serializable: {reason}"


class DuplicateViewError(ValueError):
    """
    Two registry entries resolve to the same logical path. Raised at startup.

    """

    def __init__(self, view_path: str):
        super().__init__(f"View path '{view_path}' is already registered")
        self.view_path = view_path


class LayoutConfigurationError(ValueError):
    """
    The declared layouts can't produce an unambiguous chain: identifiers that
    collide with each other or with view paths, or two layouts sharing a scope.

    """


class ComponentNotRegistered(Exception):
    """
    The browser side received an identifier it can't resolve to a component,
    which means the server and client were built from different registries.

    """

    def __init__(self, identifier: str):
        super().__init__(f"No client component registered for '{identifier}'")
        self.identifier = identifier


class NavigationFailed(Exception):
    """
    A segment navigation could not be completed (transport failure, non-2xx
    status, or a response the client can't graft).

    """

    def __init__(self, url: str, reason: str):
        super().__init__(f"Navigation to {url} failed: {reason}")
        self.url = url
        self.reason = reason
