"""Known platform metadata types keyed by their source directory name."""

from __future__ import annotations

from dataclasses import dataclass

META_XML_SUFFIX = "-meta.xml"


@dataclass(frozen=True)
class MetadataType:
    """Metadata type as laid out in a retrieved source directory."""

    xml_name: str
    directory: str
    display_name: str
    suffix: str | None = None
    bundle: bool = False


METADATA_TYPES: tuple[MetadataType, ...] = (
    MetadataType("ApexClass", "classes", "Apex Classes", ".cls"),
    MetadataType("ApexTrigger", "triggers", "Apex Triggers", ".trigger"),
    MetadataType("ApexPage", "pages", "Visualforce Pages", ".page"),
    MetadataType("ApexComponent", "components", "Visualforce Components", ".component"),
    MetadataType("ApexTestSuite", "testSuites", "Apex Test Suites", ".testSuite"),
    MetadataType("LightningComponentBundle", "lwc", "Lightning Web Components", bundle=True),
    MetadataType("AuraDefinitionBundle", "aura", "Aura Components", bundle=True),
    MetadataType("CustomObject", "objects", "Custom Objects", ".object", bundle=True),
    MetadataType("Flow", "flows", "Flows", ".flow"),
    MetadataType("Layout", "layouts", "Layouts", ".layout"),
    MetadataType("PermissionSet", "permissionsets", "Permission Sets", ".permissionset"),
    MetadataType("Profile", "profiles", "Profiles", ".profile"),
    MetadataType("StaticResource", "staticresources", "Static Resources", ".resource"),
)

_BY_DIRECTORY = {item.directory: item for item in METADATA_TYPES}


def metadata_type_for_directory(directory_name: str) -> MetadataType | None:
    return _BY_DIRECTORY.get(directory_name)


def known_type_names() -> tuple[str, ...]:
    return tuple(item.xml_name for item in METADATA_TYPES)


def member_name(relative_parts: tuple[str, ...], metadata_type: MetadataType | None) -> str:
    """Return the platform member name for a file below its type directory.

    Bundle members (``lwc/widget/widget.js``) are named after their bundle
    directory; flat members drop the ``-meta.xml`` companion suffix and the
    type suffix (``classes/Foo.cls-meta.xml`` is ``Foo``).
    """
    if not relative_parts:
        return ""
    if len(relative_parts) > 1 and (metadata_type is None or metadata_type.bundle):
        return relative_parts[0]

    name = relative_parts[-1]
    if name.endswith(META_XML_SUFFIX):
        name = name[: -len(META_XML_SUFFIX)]
    if metadata_type is not None and metadata_type.suffix and name.endswith(metadata_type.suffix):
        name = name[: -len(metadata_type.suffix)]
    elif "." in name:
        name = name.rsplit(".", 1)[0]
    return name


__all__ = [
    "META_XML_SUFFIX",
    "MetadataType",
    "METADATA_TYPES",
    "metadata_type_for_directory",
    "known_type_names",
    "member_name",
]
