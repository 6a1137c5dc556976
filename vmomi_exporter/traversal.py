"""
Traversal specifications for the vSphere PropertyCollector.

Each managed entity type has a fixed set of reference properties worth
following. The inventory graph is cyclic (a Folder contains Folders, a
ResourcePool contains ResourcePools), so every TraversalSpec is registered
under its name ``<Type>Spec<path>`` before its select set is expanded and any
later request for the same edge is answered with a SelectionSpec that refers
to it by name.
"""

from pyVmomi import vim, vmodl

PropertyCollector = vmodl.query.PropertyCollector

COMPUTE_RESOURCE = "ComputeResource"
DATACENTER = "Datacenter"
DATASTORE = "Datastore"
DISTRIBUTED_VIRTUAL_PORTGROUP = "DistributedVirtualPortgroup"
DISTRIBUTED_VIRTUAL_SWITCH = "DistributedVirtualSwitch"
FOLDER = "Folder"
HOST_SYSTEM = "HostSystem"
MANAGED_ENTITY = "ManagedEntity"
NETWORK = "Network"
RESOURCE_POOL = "ResourcePool"
VIRTUAL_MACHINE = "VirtualMachine"

DATASTORE_PROPERTY = "datastore"
HOST_PROPERTY = "host"
NETWORK_PROPERTY = "network"
RESOURCE_POOL_PROPERTY = "resourcePool"
VM_PROPERTY = "vm"

_SPEC_TYPES = {
    COMPUTE_RESOURCE: vim.ComputeResource,
    DATACENTER: vim.Datacenter,
    DATASTORE: vim.Datastore,
    DISTRIBUTED_VIRTUAL_PORTGROUP: vim.dvs.DistributedVirtualPortgroup,
    DISTRIBUTED_VIRTUAL_SWITCH: vim.DistributedVirtualSwitch,
    FOLDER: vim.Folder,
    HOST_SYSTEM: vim.HostSystem,
    MANAGED_ENTITY: vim.ManagedEntity,
    NETWORK: vim.Network,
    RESOURCE_POOL: vim.ResourcePool,
    VIRTUAL_MACHINE: vim.VirtualMachine,
}


class UnsupportedEntityTypeError(ValueError):
    pass


def spec_name(mo_type, path):
    return f"{mo_type}Spec{path}"


class TraversalBuilder:

    def __init__(self):
        self.arena = {}

    def spec(self, mo_type, path, expand=None):
        name = spec_name(mo_type, path)
        if name in self.arena:
            return PropertyCollector.SelectionSpec(name=name)

        spec = PropertyCollector.TraversalSpec(name=name,
                                               type=_SPEC_TYPES[mo_type],
                                               path=path,
                                               skip=False)
        self.arena[name] = spec

        if expand is not None:
            spec.selectSet = expand()

        return spec

    def lower(self, mo_type):
        try:
            expand = self._lower_edges[mo_type]
        except KeyError:
            raise UnsupportedEntityTypeError(f"Descendant traversal is not supported for {mo_type}") from None
        return expand(self)

    def upper(self, mo_type):
        try:
            expand = self._upper_edges[mo_type]
        except KeyError:
            raise UnsupportedEntityTypeError(f"Ancestor traversal is not supported for {mo_type}") from None
        return expand(self)

    def compute_resource_lower(self):
        return [
            self.spec(COMPUTE_RESOURCE, DATASTORE_PROPERTY, self.datastore_lower),
            self.spec(COMPUTE_RESOURCE, HOST_PROPERTY, self.host_system_lower),
            self.spec(COMPUTE_RESOURCE, NETWORK_PROPERTY, self.network_lower),
            self.spec(COMPUTE_RESOURCE, RESOURCE_POOL_PROPERTY, self.resource_pool_lower),
        ]

    def datacenter_lower(self):
        return [
            self.spec(DATACENTER, "datastoreFolder", self.folder_lower),
            self.spec(DATACENTER, "hostFolder", self.folder_lower),
            self.spec(DATACENTER, "networkFolder", self.folder_lower),
            self.spec(DATACENTER, "vmFolder", self.folder_lower),
        ]

    def datastore_lower(self):
        return [self.spec(DATASTORE, VM_PROPERTY)]

    def distributed_virtual_switch_lower(self):
        return [self.spec(DISTRIBUTED_VIRTUAL_SWITCH, "portgroup", self.network_lower)]

    def folder_lower(self):
        return [self.spec(FOLDER, "childEntity", self.folder_children)]

    def folder_children(self):
        return (self.folder_lower()
                + self.compute_resource_lower()
                + self.datacenter_lower()
                + self.datastore_lower()
                + self.distributed_virtual_switch_lower()
                + self.network_lower())

    def host_system_lower(self):
        return [
            self.spec(HOST_SYSTEM, DATASTORE_PROPERTY, self.datastore_lower),
            self.spec(HOST_SYSTEM, NETWORK_PROPERTY, self.network_lower),
            self.spec(HOST_SYSTEM, VM_PROPERTY),
        ]

    def network_lower(self):
        return [self.spec(NETWORK, VM_PROPERTY)]

    def resource_pool_lower(self):
        return [
            self.spec(RESOURCE_POOL, RESOURCE_POOL_PROPERTY, self.resource_pool_lower),
            self.spec(RESOURCE_POOL, VM_PROPERTY),
        ]

    def virtual_machine_lower(self):
        return []

    def managed_entity_upper(self):
        return [self.spec(MANAGED_ENTITY, "parent", self.managed_entity_upper)]

    def datastore_upper(self):
        return [self.spec(DATASTORE, HOST_PROPERTY)]

    def network_upper(self):
        return [
            self.spec(NETWORK, HOST_PROPERTY),
            self.spec(DISTRIBUTED_VIRTUAL_PORTGROUP, "config.distributedVirtualSwitch"),
        ]

    def virtual_machine_upper(self):
        return [
            self.spec(VIRTUAL_MACHINE, DATASTORE_PROPERTY, self.datastore_upper),
            self.spec(VIRTUAL_MACHINE, NETWORK_PROPERTY, self.network_upper),
            self.spec(VIRTUAL_MACHINE, "parentVApp"),
            self.spec(VIRTUAL_MACHINE, RESOURCE_POOL_PROPERTY),
            self.spec(VIRTUAL_MACHINE, "runtime.host"),
        ]

    # Subtypes share the edges of the type their properties are declared on.
    _lower_edges = {
        "ClusterComputeResource": compute_resource_lower,
        "ComputeResource": compute_resource_lower,
        "Datacenter": datacenter_lower,
        "Datastore": datastore_lower,
        "DistributedVirtualPortgroup": network_lower,
        "DistributedVirtualSwitch": distributed_virtual_switch_lower,
        "Folder": folder_lower,
        "HostSystem": host_system_lower,
        "Network": network_lower,
        "OpaqueNetwork": network_lower,
        "ResourcePool": resource_pool_lower,
        "StoragePod": folder_lower,
        "VirtualApp": resource_pool_lower,
        "VirtualMachine": virtual_machine_lower,
        "VmwareDistributedVirtualSwitch": distributed_virtual_switch_lower,
    }

    _upper_edges = {
        "ClusterComputeResource": managed_entity_upper,
        "ComputeResource": managed_entity_upper,
        "Datacenter": managed_entity_upper,
        "Datastore": lambda self: self.managed_entity_upper() + self.datastore_upper(),
        "DistributedVirtualPortgroup": lambda self: self.managed_entity_upper() + self.network_upper(),
        "DistributedVirtualSwitch": managed_entity_upper,
        "Folder": managed_entity_upper,
        "HostSystem": managed_entity_upper,
        "Network": lambda self: self.managed_entity_upper() + self.network_upper(),
        "OpaqueNetwork": lambda self: self.managed_entity_upper() + self.network_upper(),
        "ResourcePool": managed_entity_upper,
        "StoragePod": managed_entity_upper,
        "VirtualApp": managed_entity_upper,
        "VirtualMachine": lambda self: self.managed_entity_upper() + self.virtual_machine_upper(),
        "VmwareDistributedVirtualSwitch": managed_entity_upper,
    }


def traverse_child(obj, with_obj=False):
    return PropertyCollector.ObjectSpec(obj=obj,
                                        selectSet=TraversalBuilder().lower(obj._wsdlName),
                                        skip=not with_obj)


def traverse_parent(obj, with_obj=False):
    return PropertyCollector.ObjectSpec(obj=obj,
                                        selectSet=TraversalBuilder().upper(obj._wsdlName),
                                        skip=not with_obj)
