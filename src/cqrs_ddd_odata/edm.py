"""
Entity Data Model description.

The model is used to validate query options against declared names and to
find the entity set behind a navigation property. It does not render the
``$metadata`` document.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class EdmBase(BaseModel):
    """Immutable EDM element; accepts snake_case and camelCase keys."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )


class EdmProperty(EdmBase):
    name: str
    type: str = "Edm.String"
    nullable: bool = True


class EdmNavigationProperty(EdmBase):
    name: str
    target: str = Field(..., description="Target entity type name")
    collection: bool = False


class EdmEntityType(EdmBase):
    """An entity type with its key, structural and navigation properties."""

    name: str
    key: list[str] = Field(default_factory=lambda: ["id"])
    properties: list[EdmProperty] = Field(default_factory=list)
    navigation: list[EdmNavigationProperty] = Field(default_factory=list)

    @property
    def property_names(self) -> list[str]:
        return [p.name for p in self.properties]

    @property
    def navigation_names(self) -> list[str]:
        return [n.name for n in self.navigation]

    def get_property(self, name: str) -> EdmProperty | None:
        return next((p for p in self.properties if p.name == name), None)

    def get_navigation(self, name: str) -> EdmNavigationProperty | None:
        return next((n for n in self.navigation if n.name == name), None)


class EdmEntitySet(EdmBase):
    name: str
    entity_type: str
    title: str | None = None


class EdmComplexType(EdmBase):
    name: str
    properties: list[EdmProperty] = Field(default_factory=list)


class EdmEnumMember(EdmBase):
    name: str
    value: int


class EdmEnumType(EdmBase):
    name: str
    underlying_type: str = "Edm.Int32"
    members: list[EdmEnumMember] = Field(default_factory=list)


class EdmSingleton(EdmBase):
    name: str
    entity_type: str
    title: str | None = None


class EdmModel(EdmBase):
    """
    A service's entity model.

    Type references may be bare (``Product``) or namespace-qualified
    (``Test.Product``); lookups accept both.

    Example:
        ```python
        model = EdmModel.model_validate({
            "namespace": "Test",
            "entityTypes": [{"name": "Product", "properties": [...]}],
            "entitySets": [{"name": "Products", "entityType": "Product"}],
        })
        model.entity_type_for_set("Products").property_names
        ```
    """

    namespace: str
    entity_types: list[EdmEntityType] = Field(default_factory=list)
    entity_sets: list[EdmEntitySet] = Field(default_factory=list)
    complex_types: list[EdmComplexType] = Field(default_factory=list)
    enum_types: list[EdmEnumType] = Field(default_factory=list)
    singletons: list[EdmSingleton] = Field(default_factory=list)
    container_name: str = "Container"

    def _local(self, type_name: str) -> str:
        prefix = f"{self.namespace}."
        return type_name[len(prefix) :] if type_name.startswith(prefix) else type_name

    def entity_type(self, name: str) -> EdmEntityType | None:
        local = self._local(name)
        return next((t for t in self.entity_types if t.name == local), None)

    def entity_set(self, name: str) -> EdmEntitySet | None:
        return next((s for s in self.entity_sets if s.name == name), None)

    def entity_type_for_set(self, entity_set: str) -> EdmEntityType | None:
        found = self.entity_set(entity_set)
        return self.entity_type(found.entity_type) if found else None

    def entity_set_for_type(self, type_name: str) -> EdmEntitySet | None:
        local = self._local(type_name)
        return next(
            (s for s in self.entity_sets if self._local(s.entity_type) == local),
            None,
        )

    def navigation_target(
        self, entity_set: str, navigation: str
    ) -> EdmEntitySet | None:
        """The entity set a navigation property of *entity_set* points into."""
        source = self.entity_type_for_set(entity_set)
        nav = source.get_navigation(navigation) if source else None
        return self.entity_set_for_type(nav.target) if nav else None
