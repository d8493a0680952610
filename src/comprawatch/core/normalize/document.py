"""
Validation boundary for upstream release packages.

Release documents are fetched as loosely-shaped JSON. They are validated here
into explicit pydantic models before anything downstream touches them;
packages that fail validation are rejected with DocumentValidationError and
counted as skips by the writer.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class DocumentValidationError(ValueError):
    """An upstream document does not have the expected release shape."""

    def __init__(self, message: str, release_id: str | None = None, details: str | None = None):
        super().__init__(message)
        self.release_id = release_id
        self.details = details


def _coerce_id(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return str(int(value)) if float(value).is_integer() else str(value)
    if isinstance(value, str):
        return value.strip()
    return value


class OcdsParty(BaseModel):
    """An organization referenced by the release."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    name: str | None = None
    roles: list[str] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return _coerce_id(v)

    @field_validator("roles", mode="before")
    @classmethod
    def roles_list(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    def has_role(self, role: str) -> bool:
        return role in self.roles


class OcdsRelease(BaseModel):
    """One OCDS release.

    Only the fields the pipeline reads are typed; everything else is kept
    as-is through ``extra="allow"``.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(min_length=1)
    ocid: str | None = None
    date: str | None = None
    tag: list[str] = Field(default_factory=list)
    initiation_type: str | None = Field(default=None, alias="initiationType")
    parties: list[OcdsParty] = Field(default_factory=list)
    buyer: dict[str, Any] | None = None
    tender: dict[str, Any] | None = None
    awards: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("id", "ocid", mode="before")
    @classmethod
    def coerce_ids(cls, v: Any) -> Any:
        return _coerce_id(v)

    @field_validator("tag", mode="before")
    @classmethod
    def tag_list(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    @field_validator("parties", "awards", mode="before")
    @classmethod
    def none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    def party_with_role(self, role: str) -> OcdsParty | None:
        """First party carrying ``role``, in document order."""
        for party in self.parties:
            if party.has_role(role):
                return party
        return None

    def parties_as_dicts(self) -> list[dict[str, Any]]:
        return [party.model_dump(exclude_none=True) for party in self.parties]


class OcdsReleasePackage(BaseModel):
    """Release package as served at each feed entry's link."""

    model_config = ConfigDict(extra="allow")

    uri: str | None = None
    published_date: str | None = Field(default=None, alias="publishedDate")
    releases: list[OcdsRelease] = Field(min_length=1)


def parse_release_package(payload: Any, descriptor_id: str | None = None) -> OcdsRelease:
    """Validate a fetched document and return its first release.

    Args:
        payload: Decoded JSON document
        descriptor_id: Id the document was discovered under (for messages)

    Returns:
        The validated OcdsRelease

    Raises:
        DocumentValidationError: If the document is not a release package
            or its first release has no id
    """
    if not isinstance(payload, dict):
        raise DocumentValidationError(
            f"Document for {descriptor_id} is not a JSON object",
            release_id=descriptor_id,
        )

    releases = payload.get("releases")
    if not isinstance(releases, list) or not releases:
        raise DocumentValidationError(
            f"No OCDS release data found for {descriptor_id}",
            release_id=descriptor_id,
        )

    try:
        package = OcdsReleasePackage.model_validate({**payload, "releases": releases[:1]})
    except ValidationError as e:
        raise DocumentValidationError(
            f"Invalid release document for {descriptor_id}",
            release_id=descriptor_id,
            details=str(e),
        ) from e

    return package.releases[0]
