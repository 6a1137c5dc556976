import logging
from dataclasses import dataclass
from enum import Enum

from pyVmomi import vim, vmodl

from vmomi_exporter.traversal import traverse_child, traverse_parent

log = logging.getLogger(__name__)

ROOT_FOLDER_NAME = ""


class ManagedEntityType(str, Enum):
    CLUSTER_COMPUTE_RESOURCE = "ClusterComputeResource"
    COMPUTE_RESOURCE = "ComputeResource"
    DATACENTER = "Datacenter"
    DATASTORE = "Datastore"
    DISTRIBUTED_VIRTUAL_PORTGROUP = "DistributedVirtualPortgroup"
    DISTRIBUTED_VIRTUAL_SWITCH = "DistributedVirtualSwitch"
    FOLDER = "Folder"
    HOST_SYSTEM = "HostSystem"
    NETWORK = "Network"
    OPAQUE_NETWORK = "OpaqueNetwork"
    RESOURCE_POOL = "ResourcePool"
    STORAGE_POD = "StoragePod"
    VIRTUAL_APP = "VirtualApp"
    VIRTUAL_MACHINE = "VirtualMachine"
    VMWARE_DISTRIBUTED_VIRTUAL_SWITCH = "VmwareDistributedVirtualSwitch"

    def __str__(self):
        return self.value

    @property
    def vim_type(self):
        return _VIM_TYPES[self]


_VIM_TYPES = {
    ManagedEntityType.CLUSTER_COMPUTE_RESOURCE: vim.ClusterComputeResource,
    ManagedEntityType.COMPUTE_RESOURCE: vim.ComputeResource,
    ManagedEntityType.DATACENTER: vim.Datacenter,
    ManagedEntityType.DATASTORE: vim.Datastore,
    ManagedEntityType.DISTRIBUTED_VIRTUAL_PORTGROUP: vim.dvs.DistributedVirtualPortgroup,
    ManagedEntityType.DISTRIBUTED_VIRTUAL_SWITCH: vim.DistributedVirtualSwitch,
    ManagedEntityType.FOLDER: vim.Folder,
    ManagedEntityType.HOST_SYSTEM: vim.HostSystem,
    ManagedEntityType.NETWORK: vim.Network,
    ManagedEntityType.OPAQUE_NETWORK: vim.OpaqueNetwork,
    ManagedEntityType.RESOURCE_POOL: vim.ResourcePool,
    ManagedEntityType.STORAGE_POD: vim.StoragePod,
    ManagedEntityType.VIRTUAL_APP: vim.VirtualApp,
    ManagedEntityType.VIRTUAL_MACHINE: vim.VirtualMachine,
    ManagedEntityType.VMWARE_DISTRIBUTED_VIRTUAL_SWITCH: vim.dvs.VmwareDistributedVirtualSwitch,
}

# Network-like entities carry their display name on the network summary.
NETWORK_TYPES = (
    ManagedEntityType.DISTRIBUTED_VIRTUAL_PORTGROUP,
    ManagedEntityType.NETWORK,
    ManagedEntityType.OPAQUE_NETWORK,
)

NAME_PROPERTY = "name"
NETWORK_NAME_PROPERTY = "summary.name"


@dataclass(frozen=True)
class Entity:
    id: str
    name: str
    type: ManagedEntityType

    @property
    def key(self):
        return self.type, self.id


def to_entity(content):
    obj = content.obj
    entity_type = ManagedEntityType(obj._wsdlName)
    props = {p.name: p.val for p in (content.propSet or [])}

    name = props.get(NAME_PROPERTY) or ""
    if entity_type in NETWORK_TYPES and props.get(NETWORK_NAME_PROPERTY):
        name = props[NETWORK_NAME_PROPERTY]

    return Entity(id=obj._moId, name=name, type=entity_type)


def property_paths(entity_type):
    if entity_type in NETWORK_TYPES:
        return [NAME_PROPERTY, NETWORK_NAME_PROPERTY]
    return [NAME_PROPERTY]


async def retrieve(session, filter_spec):
    pc = session.content.propertyCollector
    options = vmodl.query.PropertyCollector.RetrieveOptions()

    result = await session.call(pc.RetrievePropertiesEx, specSet=[filter_spec], options=options)

    objects = []
    while result is not None:
        objects.extend(result.objects or [])
        if not result.token:
            break
        result = await session.call(pc.ContinueRetrievePropertiesEx, token=result.token)

    return objects


async def retrieve_entities(session, objs, types, with_obj=False, ancestors=False):
    traverse = traverse_parent if ancestors else traverse_child

    filter_spec = vmodl.query.PropertyCollector.FilterSpec(
        objectSet=[traverse(obj, with_obj) for obj in objs],
        propSet=[vmodl.query.PropertyCollector.PropertySpec(type=t.vim_type,
                                                            pathSet=property_paths(t),
                                                            all=False)
                 for t in types])

    entities = []
    seen = set()
    for content in await retrieve(session, filter_spec):
        try:
            entity = to_entity(content)
        except ValueError:
            log.warning(f"Skipping unsupported entity type {content.obj._wsdlName}({content.obj._moId})")
            continue

        if entity.key in seen:
            continue

        seen.add(entity.key)
        entities.append(entity)

    if not entities:
        log.info(f"No entities found for types {[str(t) for t in types]}")

    return entities


async def resolve_entities(session, roots, types, include_roots=False, ancestors=False):
    if not roots or not types:
        log.info("Nothing to resolve, no roots or types given")
        return []

    objs = [session.managed_object(root) for root in roots]
    return await retrieve_entities(session, objs, types, with_obj=include_roots, ancestors=ancestors)


async def resolve_from_root(session, types):
    if not types:
        return []

    return await retrieve_entities(session, [session.content.rootFolder], types)


def is_root_folder(root):
    return root.type == ManagedEntityType.FOLDER and root.name == ROOT_FOLDER_NAME


def root_types(roots):
    """Entity types to look the configured roots up with.

    Returns None when no roots are configured or a root is the inventory
    root folder, which means everything is discovered without filtering.
    """
    if not roots:
        return None

    types = []
    for root in roots:
        if is_root_folder(root):
            return None

        if root.type not in types:
            types.append(root.type)

    return types


def filter_entities(entities, roots):
    wanted = {(root.type, root.name) for root in roots}
    return [e for e in entities if (e.type, e.name) in wanted]


async def entities_from_roots(session, roots):
    types = root_types(roots)
    if types is None:
        return None

    entities = await resolve_from_root(session, types)

    selected = filter_entities(entities, roots)
    if not selected:
        log.warning(f"Not found root {[(str(r.type), r.name) for r in roots]}")

    return selected


def find_entity(entities, entity_type, entity_id):
    for entity in entities:
        if entity.type == entity_type and entity.id == entity_id:
            return entity

    return None
