from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

SERVICE_PROVIDER_CONFIG_SCHEMA = "urn:ietf:params:scim:schemas:core:2.0:ServiceProviderConfig"


@dataclass
class _GenericOption:
    supported: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"supported": self.supported}


@dataclass
class _BulkOption(_GenericOption):
    max_operations: Optional[int] = None
    max_payload_size: Optional[int] = None
    supported: bool = False

    def __post_init__(self):
        if self.supported and not all([self.max_payload_size, self.max_operations]):
            raise ValueError(
                "'max_payload_size' and 'max_operations' must be specified "
                "if bulk operations are supported"
            )

    def to_dict(self) -> dict[str, Any]:
        output = super().to_dict()
        if self.max_operations is not None:
            output["maxOperations"] = self.max_operations
        if self.max_payload_size is not None:
            output["maxPayloadSize"] = self.max_payload_size
        return output


@dataclass
class _FilterOption(_GenericOption):
    max_results: Optional[int] = None
    supported: bool = False

    def __post_init__(self):
        if self.supported and not self.max_results:
            raise ValueError("'max_results' must be specified if filtering is supported")

    def limit(self, values: list[Any]) -> list[Any]:
        """
        Cuts the values down to `max_results`, if the limit is set.
        """
        if self.max_results:
            return values[: self.max_results]
        return values

    def to_dict(self) -> dict[str, Any]:
        output = super().to_dict()
        if self.max_results is not None:
            output["maxResults"] = self.max_results
        return output


@dataclass
class _AuthenticationScheme:
    name: str
    description: str
    spec_uri: str
    documentation_uri: str
    type: str
    primary: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "name": self.name,
            "description": self.description,
            "specUri": self.spec_uri,
            "documentationUri": self.documentation_uri,
            "primary": self.primary,
        }


@dataclass(frozen=True)
class ServiceProviderConfig:
    """
    Service provider configuration. Available fields as defined in
     [RFC-7643](https://www.rfc-editor.org/rfc/rfc7643#section-5).

    PATCH support gates `PatchOp` construction, and `filter.max_results` caps the number
    of resources returned by `Filter.match` when it is called with `capped=True`.
    """

    documentation_uri: str
    patch: _GenericOption
    bulk: _BulkOption
    filter: _FilterOption
    change_password: _GenericOption
    sort: _GenericOption
    etag: _GenericOption
    authentication_schemes: list[_AuthenticationScheme]

    @classmethod
    def create(
        cls,
        documentation_uri: str = "",
        patch: Optional[dict[str, Any]] = None,
        bulk: Optional[dict[str, Any]] = None,
        filter_: Optional[dict[str, Any]] = None,
        change_password: Optional[dict[str, Any]] = None,
        sort: Optional[dict[str, Any]] = None,
        etag: Optional[dict[str, Any]] = None,
        authentication_schemes: Optional[list[dict[str, Any]]] = None,
    ):
        """
        Creates `ServiceProviderConfig` with all values defaulted, so operations are not supported
        by default.
        """
        return cls(
            documentation_uri=documentation_uri,
            patch=_GenericOption(**(patch or {})),
            bulk=_BulkOption(**(bulk or {})),
            filter=_FilterOption(**(filter_ or {})),
            change_password=_GenericOption(**(change_password or {})),
            sort=_GenericOption(**(sort or {})),
            etag=_GenericOption(**(etag or {})),
            authentication_schemes=[
                _AuthenticationScheme(**item) for item in authentication_schemes or []
            ],
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ServiceProviderConfig":
        """
        Creates `ServiceProviderConfig` from the `ServiceProviderConfig` resource, e.g. loaded
        from a JSON document. Missing options are not supported.
        """

        def option(key: str, **fields: str) -> dict[str, Any]:
            value = data.get(key) or {}
            output = {"supported": bool(value.get("supported", False))}
            for field_name, key_name in fields.items():
                if value.get(key_name) is not None:
                    output[field_name] = value[key_name]
            return output

        return cls.create(
            documentation_uri=data.get("documentationUri", ""),
            patch=option("patch"),
            bulk=option("bulk", max_operations="maxOperations", max_payload_size="maxPayloadSize"),
            filter_=option("filter", max_results="maxResults"),
            change_password=option("changePassword"),
            sort=option("sort"),
            etag=option("etag"),
            authentication_schemes=[
                {
                    "type": item.get("type"),
                    "name": item.get("name"),
                    "description": item.get("description", ""),
                    "spec_uri": item.get("specUri", ""),
                    "documentation_uri": item.get("documentationUri", ""),
                    "primary": bool(item.get("primary", False)),
                }
                for item in data.get("authenticationSchemes", [])
            ],
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Returns the `ServiceProviderConfig` resource, as specified in RFC-7643, section 5.
        """
        output: dict[str, Any] = {"schemas": [SERVICE_PROVIDER_CONFIG_SCHEMA]}
        if self.documentation_uri:
            output["documentationUri"] = self.documentation_uri
        output.update(
            {
                "patch": self.patch.to_dict(),
                "bulk": self.bulk.to_dict(),
                "filter": self.filter.to_dict(),
                "changePassword": self.change_password.to_dict(),
                "sort": self.sort.to_dict(),
                "etag": self.etag.to_dict(),
                "authenticationSchemes": [
                    scheme.to_dict() for scheme in self.authentication_schemes
                ],
            }
        )
        return output


service_provider_config: ServiceProviderConfig = ServiceProviderConfig.create(
    patch={"supported": True},
    filter_={"supported": True, "max_results": 200},
)


def set_service_provider_config(config: ServiceProviderConfig) -> None:
    """
    Sets global service provider configuration.
    """
    global service_provider_config
    service_provider_config = config
