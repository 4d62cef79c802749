from enum import Enum
from typing import Any, Optional, Union


class ScimErrorType(str, Enum):
    INVALID_FILTER = "invalidFilter"
    TOO_MANY = "tooMany"
    UNIQUENESS = "uniqueness"
    MUTABILITY = "mutability"
    INVALID_SYNTAX = "invalidSyntax"
    INVALID_PATH = "invalidPath"
    NO_TARGET = "noTarget"
    INVALID_VALUE = "invalidValue"
    INVALID_VERS = "invalidVers"
    SENSITIVE = "sensitive"


_DEFAULT_DETAIL = {
    ScimErrorType.INVALID_FILTER: (
        "The specified filter syntax is invalid, "
        "or the specified attribute and filter comparison combination is not supported."
    ),
    ScimErrorType.TOO_MANY: (
        "The specified filter yields many more results than the server is willing to calculate "
        "or process."
    ),
    ScimErrorType.UNIQUENESS: (
        "One or more of the attribute values are already in use or are reserved."
    ),
    ScimErrorType.MUTABILITY: (
        "The attempted modification is not compatible with the target attribute's mutability "
        "or current state."
    ),
    ScimErrorType.INVALID_SYNTAX: (
        "The request body message structure was invalid or did not conform to the request schema."
    ),
    ScimErrorType.INVALID_PATH: "The 'path' attribute was invalid or malformed.",
    ScimErrorType.NO_TARGET: (
        "The specified 'path' did not yield an attribute or attribute value "
        "that could be operated on."
    ),
    ScimErrorType.INVALID_VALUE: (
        "A required value was missing, or the value specified was not compatible "
        "with the operation or attribute type, or resource schema."
    ),
    ScimErrorType.INVALID_VERS: "The specified SCIM protocol version is not supported.",
    ScimErrorType.SENSITIVE: (
        "The specified request cannot be completed, "
        "due to the passing of sensitive information in a request URI."
    ),
}


class ScimError(Exception):
    """
    Protocol error, raised for any runtime violation of SCIM semantics. Carries HTTP status,
    optional `scimType`, and a human-readable detail message, as specified in
    [RFC-7644, section 3.12](https://www.rfc-editor.org/rfc/rfc7644#section-3.12).

    Args:
        status: HTTP status code of the error.
        scim_type: SCIM error type. Can be `None` for errors that have no `scimType`.
        detail: Detailed error message. If not provided, the default message for the
            `scim_type` is used.
    """

    def __init__(
        self,
        status: int,
        scim_type: Optional[Union[str, ScimErrorType]] = None,
        detail: Optional[str] = None,
    ):
        self._status = int(status)
        self._scim_type = ScimErrorType(scim_type) if scim_type is not None else None
        if detail is None:
            detail = _DEFAULT_DETAIL.get(self._scim_type, "") if self._scim_type else ""
        self._detail = detail
        super().__init__(detail)

    @property
    def status(self) -> int:
        """HTTP status code of the error."""
        return self._status

    @property
    def scim_type(self) -> Optional[ScimErrorType]:
        """SCIM error type, if any."""
        return self._scim_type

    @property
    def detail(self) -> str:
        """Detailed error message."""
        return self._detail

    message = detail

    def __str__(self) -> str:
        return self._detail

    def __repr__(self) -> str:
        scim_type = self._scim_type.value if self._scim_type else None
        return f"ScimError({self._status}, {scim_type!r}, {self._detail!r})"

    def with_suffix(self, suffix: str) -> "ScimError":
        """
        Appends the provided context to the detail message and returns the error.
        """
        self._detail += suffix
        self.args = (self._detail,)
        return self

    def with_detail(self, detail: str) -> "ScimError":
        """
        Replaces the detail message and returns the error.
        """
        self._detail = detail
        self.args = (self._detail,)
        return self

    def to_dict(self) -> dict[str, Any]:
        """
        Converts the error to SCIM error response body.
        """
        output: dict[str, Any] = {
            "schemas": ["urn:ietf:params:scim:api:messages:2.0:Error"],
            "status": str(self._status),
        }
        if self._scim_type is not None:
            output["scimType"] = self._scim_type.value
        output["detail"] = self._detail
        return output


class ValidationError(TypeError):
    """
    Raised when a value can not be coerced to the attribute's specification. Uniquely identified
    by the error code.

    Pre-formatted messages stored in `message_by_code` can be modified, as long as embedded
    string parameters stay the same.
    """

    message_by_code = {
        1: "Required attribute '{attr}' is missing",
        2: "Attribute '{attr}' expected to be a collection",
        3: "Attribute '{attr}' is not multi-valued and must not be a collection",
        4: "Attribute '{attr}' contains non-canonical value",
        5: "Attribute '{attr}' does not include canonical value '{value}'",
        6: "Attribute '{attr}' expected value type '{expected}' but found type '{actual}'",
        7: "Attribute '{attr}' expected single value of type '{expected}'",
        8: "Attribute '{attr}' expected value to be a valid date",
        9: (
            "Attribute '{attr}' expected value type 'binary' to be base64 encoded string "
            "or binary octet stream"
        ),
        10: "Attribute '{attr}' with type 'reference' does not specify any referenceTypes",
        11: "Attribute '{attr}' expected value type 'reference' to refer to one of: {expected}",
        12: "Complex attribute '{attr}' does not declare subAttribute '{sub_attr}'",
        13: "Complex attribute '{attr}' expected complex value but received '{value}'",
        14: "Schema definition '{schema}' does not declare attribute '{attr}'",
        15: "Attribute '{attr}' value '{value}' is not valid: {reason}",
    }

    def __init__(self, code: int, message: Optional[str] = None, **context: Any):
        """
        Args:
            code: The error code. Can be one of built-in error codes (see `message_by_code`
                attribute) or custom. If custom, it must be greater than 1000.
            message: Error message. Can replace built-in message or be specified for custom
                validation error.
            **context: Parameters passed to pre-formatted messages.
        """
        if code not in self.message_by_code and code <= 1000:
            raise ValueError("error code for custom validation error must be greater than 1000")
        self.code = code
        if message is None:
            message = "" if code > 1000 else self.message_by_code[code].format(**context)
        self.message = message
        self.context = context
        super().__init__(message)

    def __str__(self) -> str:
        return self.message

    def add_context(self, suffix: str) -> "ValidationError":
        """
        Appends the provided context (e.g. name of the parent attribute) to the message.
        """
        self.message += suffix
        self.args = (self.message,)
        return self

    @classmethod
    def missing_required(cls, attr: str):
        return cls(code=1, attr=attr)

    @classmethod
    def expected_collection(cls, attr: str):
        return cls(code=2, attr=attr)

    @classmethod
    def unexpected_collection(cls, attr: str):
        return cls(code=3, attr=attr)

    @classmethod
    def non_canonical(cls, attr: str):
        return cls(code=4, attr=attr)

    @classmethod
    def not_canonical_value(cls, attr: str, value: Any):
        return cls(code=5, attr=attr, value=value)

    @classmethod
    def bad_type(cls, attr: str, expected: str, actual: str):
        return cls(code=6, attr=attr, expected=expected, actual=actual)

    @classmethod
    def single_value_expected(cls, attr: str, expected: str):
        return cls(code=7, attr=attr, expected=expected)

    @classmethod
    def invalid_date(cls, attr: str):
        return cls(code=8, attr=attr)

    @classmethod
    def bad_binary(cls, attr: str):
        return cls(code=9, attr=attr)

    @classmethod
    def no_reference_types(cls, attr: str):
        return cls(code=10, attr=attr)

    @classmethod
    def bad_reference(cls, attr: str, reference_types: list[str]):
        return cls(code=11, attr=attr, expected=", ".join(f"'{t}'" for t in reference_types))

    @classmethod
    def undeclared_sub_attribute(cls, attr: str, sub_attr: str):
        return cls(code=12, attr=attr, sub_attr=sub_attr)

    @classmethod
    def expected_complex(cls, attr: str, value: Any):
        return cls(code=13, attr=attr, value=value)

    @classmethod
    def undeclared_attribute(cls, schema: str, attr: str):
        return cls(code=14, schema=schema, attr=attr)

    @classmethod
    def bad_value(cls, attr: str, value: Any, reason: str):
        return cls(code=15, attr=attr, value=value, reason=reason)
