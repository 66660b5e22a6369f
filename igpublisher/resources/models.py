"""Typed models for the conformance resources the publisher loads."""

from __future__ import annotations

from typing import Any, get_origin

from pydantic import BaseModel, ConfigDict, Field, model_validator

from igpublisher.resources.element import Element, to_json_object


class FhirModel(BaseModel):
    """Base for FHIR structures; unknown elements are kept as extras.

    XML carries no array markers, so a repeating element that occurs once
    arrives as a single object. Declared list fields accept that shape.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _wrap_single_values(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        fixed = dict(data)
        for name, info in cls.model_fields.items():
            if get_origin(info.annotation) is list and name in fixed:
                value = fixed[name]
                if value is not None and not isinstance(value, list):
                    fixed[name] = [value]
        return fixed


class Narrative(FhirModel):
    status: str = "generated"
    div: str = ""


class Coding(FhirModel):
    system: str | None = None
    version: str | None = None
    code: str | None = None
    display: str | None = None


class Resource(FhirModel):
    resourceType: str
    id: str | None = None
    text: Narrative | None = None


class ConformanceResource(Resource):
    url: str | None = None
    version: str | None = None
    name: str | None = None
    title: str | None = None
    status: str | None = None
    description: str | None = None


# -- NamingSystem -------------------------------------------------------------


class NamingSystemUniqueId(FhirModel):
    type: str | None = None
    value: str | None = None
    preferred: bool | str | None = None


class NamingSystem(ConformanceResource):
    kind: str | None = None
    uniqueId: list[NamingSystemUniqueId] = Field(default_factory=list)


# -- CodeSystem ---------------------------------------------------------------


class CodeSystemConcept(FhirModel):
    code: str
    display: str | None = None
    definition: str | None = None
    concept: list[CodeSystemConcept] = Field(default_factory=list)


class CodeSystem(ConformanceResource):
    identifier: dict[str, Any] | None = None
    content: str | None = None
    valueSet: str | None = None
    concept: list[CodeSystemConcept] = Field(default_factory=list)

    def all_concepts(self) -> list[CodeSystemConcept]:
        """Depth-first flattening of the concept hierarchy."""
        out: list[CodeSystemConcept] = []
        stack = list(reversed(self.concept))
        while stack:
            concept = stack.pop()
            out.append(concept)
            stack.extend(reversed(concept.concept))
        return out


# -- ValueSet -----------------------------------------------------------------


class ConceptReference(FhirModel):
    code: str
    display: str | None = None


class ConceptSetFilter(FhirModel):
    property: str | None = None
    op: str | None = None
    value: str | None = None


class ConceptSet(FhirModel):
    system: str | None = None
    version: str | None = None
    concept: list[ConceptReference] = Field(default_factory=list)
    filter: list[ConceptSetFilter] = Field(default_factory=list)
    valueSet: list[str] = Field(default_factory=list)


class ValueSetCompose(FhirModel):
    include: list[ConceptSet] = Field(default_factory=list)
    exclude: list[ConceptSet] = Field(default_factory=list)


class ExpansionContains(FhirModel):
    system: str | None = None
    version: str | None = None
    code: str | None = None
    display: str | None = None
    contains: list[ExpansionContains] = Field(default_factory=list)


class ValueSetExpansion(FhirModel):
    identifier: str | None = None
    timestamp: str | None = None
    total: int | None = None
    contains: list[ExpansionContains] = Field(default_factory=list)


class ValueSet(ConformanceResource):
    compose: ValueSetCompose | None = None
    expansion: ValueSetExpansion | None = None


# -- StructureDefinition ------------------------------------------------------


class ElementDefinitionType(FhirModel):
    code: str | None = None
    profile: str | None = None
    targetProfile: str | None = None


class ElementDefinition(FhirModel):
    path: str
    min: int | str | None = None
    max: str | None = None
    short: str | None = None
    code: list[Coding] = Field(default_factory=list)
    type: list[ElementDefinitionType] = Field(default_factory=list)


class ElementList(FhirModel):
    element: list[ElementDefinition] = Field(default_factory=list)


class StructureDefinition(ConformanceResource):
    kind: str | None = None
    type: str | None = None
    baseDefinition: str | None = None
    derivation: str | None = None
    context: list[str] = Field(default_factory=list)
    snapshot: ElementList | None = None
    differential: ElementList | None = None


# -- the rest of the load order -----------------------------------------------


class DataElement(ConformanceResource):
    element: list[ElementDefinition] = Field(default_factory=list)


class ConceptMap(ConformanceResource):
    identifier: dict[str, Any] | None = None


class StructureMap(ConformanceResource):
    pass


# -- ImplementationGuide ------------------------------------------------------


class Reference(FhirModel):
    reference: str | None = None
    display: str | None = None


class GuideResource(FhirModel):
    name: str | None = None
    description: str | None = None
    sourceUri: str | None = None
    sourceReference: Reference | None = None
    example: bool | None = None
    extension: list[dict[str, Any]] = Field(default_factory=list)


class GuidePackage(FhirModel):
    name: str | None = None
    resource: list[GuideResource] = Field(default_factory=list)


class ImplementationGuide(ConformanceResource):
    package: list[GuidePackage] = Field(default_factory=list)


RESOURCE_MODELS: dict[str, type[Resource]] = {
    "NamingSystem": NamingSystem,
    "CodeSystem": CodeSystem,
    "ValueSet": ValueSet,
    "DataElement": DataElement,
    "StructureDefinition": StructureDefinition,
    "ConceptMap": ConceptMap,
    "StructureMap": StructureMap,
    "ImplementationGuide": ImplementationGuide,
}


def parse_resource(element: Element) -> Resource:
    """Build the typed model for an element tree.

    Raises KeyError for resource types without a typed model and
    pydantic.ValidationError when the content does not fit the model.
    """
    model = RESOURCE_MODELS[element.fhir_type]
    return model.model_validate(to_json_object(element))


def canonical_url(resource: Resource) -> str | None:
    """The URL other resources use to reference this one."""
    if isinstance(resource, NamingSystem):
        if resource.url:
            return resource.url
        for uid in resource.uniqueId:
            if uid.type == "uri" and uid.value:
                return uid.value
        return None
    return getattr(resource, "url", None)
