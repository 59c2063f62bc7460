#!/usr/bin/env python3
#
# msivm/azure_tool.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Azure management operations for the MSI VM tool.
Manager wraps the SDK clients. Decorated methods are also usable from
the command line:
  python -m msivm.azure_tool resource_list --resource_group some-rg
'''
import datetime
import os
import sys
import threading
import uuid

from tabulate import tabulate

import azure.core.exceptions
import azure.identity
from azure.mgmt.authorization import AuthorizationManagementClient
from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.network import NetworkManagementClient
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.storage import StorageManagementClient

import msivm
from msivm.azresourceid import (AzRGResourceId,
                                AzResourceId,
                                AzSubResourceId,
                                AzSubscriptionProviderResourceId,
                                azrid_normalize,
                               )
import msivm.base_defaults
from msivm.btypes import AzCred
import msivm.clouds
from msivm.command import Command
import msivm.common
from msivm.exceptions import (ApplicationException,
                              ApplicationExit,
                              ResourceGroupMayNotBeDeleted,
                             )
import msivm.msapicall
from msivm.msapicall import (lro_wait,
                             msapicall,
                            )
from msivm.output import output_redact
from msivm.util import (ArgExplicit,
                        expand_item_pformat,
                        getframe,
                        uuid_normalize,
                       )
import msivm.vm_params

# Tag that forbids resource group deletion when set to any non-empty value
RG_KEEP_TAG_KEY = 'keep'

command = Command()

class _CachedClient():
    '''
    Manager attribute that returns a management client of client_class,
    building it with Manager._az_client_gen_do() on first access.
    An attribute named _az_<x>_client caches in _az_<x>_cachedclient.
    '''
    def __init__(self, client_class):
        self.client_class = client_class
        self.cache_name = None

    def __set_name__(self, owner, name):
        assert name.endswith('_client')
        self.cache_name = name[:-len('client')] + 'cachedclient'

    def __get__(self, obj, objtype=None):
        if obj is None:
            return self
        with obj._az_client_gen_lock: # pylint: disable=protected-access
            ret = getattr(obj, self.cache_name, None)
            if ret is None:
                ret = obj._az_client_gen_do(self.cache_name, self.client_class) # pylint: disable=protected-access
                setattr(obj, self.cache_name, ret)
            return ret

class Manager(msivm.common.ApplicationWithResourceGroup):
    '''
    Provide a stable API for interacting with Azure and handling authentication.
    Every resource operation is addressed by typed resource ID within
    this subscription. Operations raise on failure; get-style operations
    return None when the resource does not exist.
    '''
    def __init__(self,
                 credential='',
                 location='',
                 role_name='',
                 storage_account='',
                 vm_name='',
                 **kwargs):
        super().__init__(**kwargs)
        self.location = location or msivm.scfg.get('location_default', '') or msivm.base_defaults.LOCATION_DEFAULT
        self.credential = AzCred.coerce(credential, exc_value=self.exc_value, prefix='credential') if credential else None
        self.role_name = role_name or msivm.base_defaults.ROLE_NAME_DEFAULT
        self.storage_account_name = storage_account or ''
        self.vm_name = vm_name or ''

        # Filled on demand by the _az_*_client attributes
        self._az_client_gen_lock = threading.RLock()
        self._az_authorization_cachedclient = None
        self._az_compute_cachedclient = None
        self._az_network_cachedclient = None
        self._az_resource_cachedclient = None
        self._az_storage_cachedclient = None

        self._azure_credential = None

    def __repr__(self):
        return "<%s,subscription_id=%r>" % (type(self).__name__, self.subscription_id)

    RESOURCE_GROUP_DEFAULT = msivm.base_defaults.RESOURCE_GROUP_DEFAULT
    RESOURCE_GROUP_HELP = 'resource group for resource group operations and default resource group for other operations'

    ######################################################################
    # call wrapping
    #
    # msapicall() logs and re-raises. Getters here return None for a
    # missing resource instead.

    def _cw_get(self, call, *args, **kwargs):
        '''
        Return call(*args, **kwargs), or None if Azure reports the resource missing
        '''
        try:
            return msapicall(self.logger, call, *args, **kwargs)
        except Exception as exc:
            caught = msivm.msapicall.Caught(exc)
            if caught.is_missing():
                return None
            raise

    def _cw_lro(self, desc, call, *args, **kwargs):
        '''
        Begin a long-running operation, wait for it, and return its result.
        '''
        op = msapicall(self.logger, call, *args, **kwargs)
        lro_wait(op, desc, self.logger)
        return op.result()

    ######################################################################
    # tags helpers

    def tags_get(self, *args, **kwargs):
        '''
        Return tags for a new resource: owner, then each dict in args, then kwargs.
        Azure tag values are strings.
        '''
        ret = {'owner' : self.username}
        for extra in filter(None, args):
            ret.update(extra)
        ret.update(kwargs)
        bad = sorted(k for k, v in ret.items() if not isinstance(v, str))
        if bad:
            raise TypeError("tag values must be str (%s)" % ', '.join(bad))
        return ret

    ######################################################################
    # resource group mgmt

    def resource_group_azrid(self, resource_group=None) -> AzRGResourceId:
        '''
        Return AzRGResourceId for resource_group (default self.resource_group)
        '''
        resource_group = self.resource_group_effective(resource_group, exc_value=ApplicationExit)
        return AzRGResourceId(self.subscription_id, resource_group)

    @command.printable
    def resource_group_get(self, resource_group=None):
        '''
        Return azure.mgmt.resource.resources.models.ResourceGroup or None
        '''
        azrid = self.resource_group_azrid(resource_group)
        return self._cw_get(self._az_resource_client.resource_groups.get, azrid.resource_group_name)

    @command.printable
    def resource_group_create(self, resource_group=None, location=None, tags=None):
        '''
        Create or update resource_group. Return azure.mgmt.resource.resources.models.ResourceGroup.
        '''
        azrid = self.resource_group_azrid(resource_group)
        location = location or self.location
        tags = self.tags_get(tags)
        tags.setdefault('time_create', datetime.datetime.utcnow().isoformat(sep=' '))
        parameters = msivm.vm_params.resource_group_params(location, tags=tags)
        self.logger.info("create resource_group %s with parameters:\n%s", azrid, expand_item_pformat(parameters))
        res = msapicall(self.logger, self._az_resource_client.resource_groups.create_or_update, azrid.resource_group_name, parameters)
        self.logger.debug("resource_group %s create result:\n%s", azrid, expand_item_pformat(res))
        return res

    def resource_group_delete_check(self, azrid, rg=None):
        '''
        Raise ResourceGroupMayNotBeDeleted if policy forbids deleting azrid.
        rg is the ResourceGroup object if the caller has it; it supplies tags.
        '''
        rgl = azrid.resource_group_name.lower()
        if rgl.endswith('-infra') or ('-infra-' in rgl) or any(rgl == x.lower() for x in msivm.scfg.tget('resource_groups_keep', tuple)):
            raise ResourceGroupMayNotBeDeleted(f"policy forbids deleting resource_group {azrid.resource_group_name!r}")
        if rg is not None and rg.tags and rg.tags.get(RG_KEEP_TAG_KEY, ''):
            raise ResourceGroupMayNotBeDeleted(f"tag {RG_KEEP_TAG_KEY!r} forbids deleting resource_group {azrid}")

    @command.wait
    def resource_group_delete(self, resource_group=None, wait=False, verbose=True):
        '''
        Issue resource group delete and return the op. Returns None
        if the resource_group does not exist.
        '''
        azrid = self.resource_group_azrid(resource_group)
        self.resource_group_delete_check(azrid)
        rg = self.resource_group_get(resource_group=azrid.resource_group_name)
        if not rg:
            if verbose:
                self.logger.info("no need to delete resource group %s", azrid)
            return None
        self.resource_group_delete_check(azrid, rg=rg)
        if verbose:
            self.logger.info("delete resource group %s", azrid)
        try:
            op = msapicall(self.logger, self._az_resource_client.resource_groups.begin_delete, azrid.resource_group_name)
            # Do the wait in this block to get the logging
            if wait:
                self.resource_group_delete_op_wait(azrid, op, verbose=verbose)
        except Exception as exc:
            caught = msivm.msapicall.Caught(exc)
            if caught.is_missing():
                if verbose:
                    self.logger.info("resource group %s does not exist", azrid)
                return None
            self.logger.warning("cannot delete resource group %s [%s]: %r", azrid, caught.reason(), exc)
            raise
        return op

    def resource_group_delete_op_wait(self, azrid, op, verbose=True):
        '''
        Wait for a resource_group_delete operation to complete
        '''
        if verbose:
            self.logger.info("wait for resource group %s delete", azrid)
        lro_wait(op, 'resource.resource_groups.delete', self.logger)
        if verbose:
            self.logger.info("resource group %s deleted", azrid)

    @command.printable
    def resource_group_export_template(self, resource_group=None):
        '''
        Export the ARM template for every resource in resource_group.
        Returns the template (dict).
        '''
        azrid = self.resource_group_azrid(resource_group)
        res = self._cw_lro('resource.resource_groups.export_template',
                           self._az_resource_client.resource_groups.begin_export_template,
                           azrid.resource_group_name,
                           msivm.vm_params.export_template_request())
        if res.error:
            self.logger.warning("export of %s template reports error:\n%s", azrid, expand_item_pformat(res.error))
        return res.template

    ######################################################################
    # generic resources

    @command.printable
    def resource_list(self, resource_group=None):
        '''
        Return a list of azure.mgmt.resource.resources.models.GenericResourceExpanded
        for every resource in resource_group.
        '''
        azrid = self.resource_group_azrid(resource_group)
        return list(msapicall(self.logger, self._az_resource_client.resources.list_by_resource_group, azrid.resource_group_name))

    @command.simple
    def resource_list_print(self, resource_group=None):
        '''
        Show resources in resource_group as a table
        '''
        resources = self.resource_list(resource_group=resource_group)
        vals = sorted([[x.name, x.type, x.location] for x in resources], key=lambda v: (v[1].lower(), v[0].lower()))
        print(tabulate(vals, headers=['name', 'type', 'location'], tablefmt='plain', numalign='left', stralign='left'))

    ######################################################################
    # storage account mgmt

    STORAGE_ACCOUNT_AZRID_VALUES = {'provider_name' : 'Microsoft.Storage',
                                    'resource_type' : 'storageAccounts',
                                   }

    @classmethod
    def storage_account_azrid_build(cls, subscription_id, resource_group, resource_name) -> AzResourceId:
        '''
        Build azrid
        '''
        return AzResourceId.build(subscription_id, resource_group, resource_name, values=cls.STORAGE_ACCOUNT_AZRID_VALUES)

    @command.printable
    def storage_account_get(self, storage_account_name=None, resource_group=None):
        '''
        Return azure.mgmt.storage.models.StorageAccount or None
        '''
        storage_account_name = storage_account_name or self.storage_account_name
        if not storage_account_name:
            raise ApplicationExit("'storage_account' not specified")
        azrid = self.storage_account_azrid_build(self.subscription_id, self.resource_group_effective(resource_group), storage_account_name)
        return self._cw_get(self._az_storage_client.storage_accounts.get_properties, azrid.resource_group_name, azrid.resource_name)

    def storage_account_create(self, storage_account_name, parameters, resource_group=None):
        '''
        Create storage account. parameters is azure.mgmt.storage.models.StorageAccountCreateParameters.
        Return azure.mgmt.storage.models.StorageAccount.
        '''
        azrid = self.storage_account_azrid_build(self.subscription_id, self.resource_group_effective(resource_group), storage_account_name)
        self.logger.debug("create storage account %s", azrid)
        return self._cw_lro('storage.storage_accounts.create',
                            self._az_storage_client.storage_accounts.begin_create,
                            azrid.resource_group_name, azrid.resource_name, parameters)

    ######################################################################
    # network mgmt

    VNET_AZRID_VALUES = {'provider_name' : 'Microsoft.Network',
                         'resource_type' : 'virtualNetworks',
                        }

    SUBNET_AZRID_VALUES = {'provider_name' : 'Microsoft.Network',
                           'resource_type' : 'virtualNetworks',
                           'subresource_type' : 'subnets',
                          }

    PUBLIC_IP_AZRID_VALUES = {'provider_name' : 'Microsoft.Network',
                              'resource_type' : 'publicIPAddresses',
                             }

    NIC_AZRID_VALUES = {'provider_name' : 'Microsoft.Network',
                        'resource_type' : 'networkInterfaces',
                       }

    @classmethod
    def vnet_azrid_build(cls, subscription_id, resource_group, resource_name) -> AzResourceId:
        '''
        Build azrid
        '''
        return AzResourceId.build(subscription_id, resource_group, resource_name, values=cls.VNET_AZRID_VALUES)

    @classmethod
    def subnet_azrid(cls, resource_id) -> AzSubResourceId:
        '''
        Return resource_id in AzSubResourceId form.
        '''
        return azrid_normalize(resource_id, AzSubResourceId, cls.SUBNET_AZRID_VALUES)

    @classmethod
    def public_ip_azrid(cls, resource_id) -> AzResourceId:
        '''
        Return resource_id in AzResourceId form.
        '''
        return azrid_normalize(resource_id, AzResourceId, cls.PUBLIC_IP_AZRID_VALUES)

    @classmethod
    def public_ip_azrid_build(cls, subscription_id, resource_group, resource_name) -> AzResourceId:
        '''
        Build azrid
        '''
        return AzResourceId.build(subscription_id, resource_group, resource_name, values=cls.PUBLIC_IP_AZRID_VALUES)

    @classmethod
    def nic_azrid(cls, resource_id) -> AzResourceId:
        '''
        Return resource_id in AzResourceId form.
        '''
        return azrid_normalize(resource_id, AzResourceId, cls.NIC_AZRID_VALUES)

    @classmethod
    def nic_azrid_build(cls, subscription_id, resource_group, resource_name) -> AzResourceId:
        '''
        Build azrid
        '''
        return AzResourceId.build(subscription_id, resource_group, resource_name, values=cls.NIC_AZRID_VALUES)

    def vnet_create_or_update(self, vnet_name, parameters, resource_group=None):
        '''
        Create or update a virtual network. parameters is azure.mgmt.network.models.VirtualNetwork.
        Return azure.mgmt.network.models.VirtualNetwork.
        '''
        azrid = self.vnet_azrid_build(self.subscription_id, self.resource_group_effective(resource_group), vnet_name)
        self.logger.debug("create_or_update vnet %s", azrid)
        return self._cw_lro('network.virtual_networks.create_or_update',
                            self._az_network_client.virtual_networks.begin_create_or_update,
                            azrid.resource_group_name, azrid.resource_name, parameters)

    def public_ip_create_or_update(self, public_ip_name, parameters, resource_group=None):
        '''
        Create or update a public IP. parameters is azure.mgmt.network.models.PublicIPAddress.
        Return azure.mgmt.network.models.PublicIPAddress.
        '''
        azrid = self.public_ip_azrid_build(self.subscription_id, self.resource_group_effective(resource_group), public_ip_name)
        self.logger.debug("create_or_update public IP %s", azrid)
        return self._cw_lro('network.public_ip_addresses.create_or_update',
                            self._az_network_client.public_ip_addresses.begin_create_or_update,
                            azrid.resource_group_name, azrid.resource_name, parameters)

    def nic_create_or_update(self, nic_name, parameters, resource_group=None):
        '''
        Create or update a NIC. parameters is azure.mgmt.network.models.NetworkInterface.
        The subnet and public IP referenced by parameters must be in this subscription.
        Return azure.mgmt.network.models.NetworkInterface.
        '''
        azrid = self.nic_azrid_build(self.subscription_id, self.resource_group_effective(resource_group), nic_name)
        for ip_config in parameters.ip_configurations or list():
            if ip_config.subnet is not None:
                self.subnet_azrid(ip_config.subnet.id).values_check(ip_config.subnet.id, exc_value=self.exc_value, subscription_id=self.subscription_id)
            if ip_config.public_ip_address is not None:
                self.public_ip_azrid(ip_config.public_ip_address.id).values_check(ip_config.public_ip_address.id, exc_value=self.exc_value, subscription_id=self.subscription_id)
        self.logger.debug("create_or_update NIC %s", azrid)
        return self._cw_lro('network.network_interfaces.create_or_update',
                            self._az_network_client.network_interfaces.begin_create_or_update,
                            azrid.resource_group_name, azrid.resource_name, parameters)

    ######################################################################
    # VM mgmt

    VM_AZRID_VALUES = {'provider_name' : 'Microsoft.Compute',
                       'resource_type' : 'virtualMachines',
                      }

    VM_EXTENSION_AZRID_VALUES = {'provider_name' : 'Microsoft.Compute',
                                 'resource_type' : 'virtualMachines',
                                 'subresource_type' : 'extensions',
                                }

    @classmethod
    def vm_azrid(cls, resource_id) -> AzResourceId:
        '''
        Return resource_id in AzResourceId form.
        '''
        return azrid_normalize(resource_id, AzResourceId, cls.VM_AZRID_VALUES)

    @classmethod
    def vm_azrid_build(cls, subscription_id, resource_group, resource_name) -> AzResourceId:
        '''
        Build azrid
        '''
        return AzResourceId.build(subscription_id, resource_group, resource_name, values=cls.VM_AZRID_VALUES)

    @classmethod
    def vm_extension_azrid_build(cls, subscription_id, resource_group, vm_name, extension_name) -> AzSubResourceId:
        '''
        Build azrid
        '''
        return AzSubResourceId.build(subscription_id, resource_group, vm_name, extension_name, values=cls.VM_EXTENSION_AZRID_VALUES)

    @command.printable
    def vm_get(self, vm_name=None, resource_group=None):
        '''
        Return azure.mgmt.compute.models.VirtualMachine or None
        '''
        vm_name = vm_name or self.vm_name
        if not vm_name:
            raise ApplicationExit("'vm_name' not specified")
        azrid = self.vm_azrid_build(self.subscription_id, self.resource_group_effective(resource_group), vm_name)
        return self._cw_get(self._az_compute_client.virtual_machines.get, azrid.resource_group_name, azrid.resource_name)

    def vm_create_or_update(self, vm_name, parameters, resource_group=None):
        '''
        Create or update a VM. parameters is azure.mgmt.compute.models.VirtualMachine.
        Return azure.mgmt.compute.models.VirtualMachine.
        '''
        azrid = self.vm_azrid_build(self.subscription_id, self.resource_group_effective(resource_group), vm_name)
        for nic_ref in parameters.network_profile.network_interfaces:
            self.nic_azrid(nic_ref.id).values_check(nic_ref.id, exc_value=self.exc_value, subscription_id=self.subscription_id)
        self.logger.debug("create_or_update VM %s", azrid)
        return self._cw_lro('compute.virtual_machines.create_or_update',
                            self._az_compute_client.virtual_machines.begin_create_or_update,
                            azrid.resource_group_name, azrid.resource_name, parameters)

    def vm_extension_create_or_update(self, vm_name, extension_name, parameters, resource_group=None):
        '''
        Attach or update an extension on a VM. parameters is azure.mgmt.compute.models.VirtualMachineExtension.
        Return azure.mgmt.compute.models.VirtualMachineExtension.
        '''
        azrid = self.vm_extension_azrid_build(self.subscription_id, self.resource_group_effective(resource_group), vm_name, extension_name)
        self.logger.debug("create_or_update VM extension %s", azrid)
        return self._cw_lro('compute.virtual_machine_extensions.create_or_update',
                            self._az_compute_client.virtual_machine_extensions.begin_create_or_update,
                            azrid.resource_group_name, azrid.resource_name, azrid.subresource_name, parameters)

    ######################################################################
    # RBAC

    ROLE_DEFINITION_AZRID_VALUES = {'provider_name' : 'Microsoft.Authorization',
                                    'resource_type' : 'roleDefinitions',
                                   }

    @classmethod
    def rbac_role_definition_azrid(cls, resource_id) -> AzSubscriptionProviderResourceId:
        '''
        Return resource_id in AzSubscriptionProviderResourceId form.
        '''
        return azrid_normalize(resource_id, AzSubscriptionProviderResourceId, cls.ROLE_DEFINITION_AZRID_VALUES)

    @command.printable
    def rbac_role_definition_get_by_name(self, role_name=None, scope=None):
        '''
        Return azure.mgmt.authorization.models.RoleDefinition for
        role_name (default self.role_name) visible at scope
        (default: the resource group). Returns None if there is no match.
        '''
        role_name = role_name or self.role_name
        scope = str(scope or self.resource_group_azrid())
        filt = "roleName eq '%s'" % role_name
        roles = list(msapicall(self.logger, self._az_authorization_client.role_definitions.list, scope, filter=filt))
        if not roles:
            self.logger.debug("%s no role definition %r at scope %s", getframe(0), role_name, scope)
            return None
        if len(roles) > 1:
            self.logger.warning("%s found %d role definitions named %r at scope %s; using %s", getframe(0), len(roles), role_name, scope, roles[0].id)
        return roles[0]

    def rbac_role_assignment_create(self, scope, role_definition_id, principal_id, assignment_name=None):
        '''
        Assign role_definition_id to the service principal principal_id at scope.
        assignment_name defaults to a fresh uuid4.
        Return azure.mgmt.authorization.models.RoleAssignment, or None if
        an identical assignment already exists.
        '''
        scope = str(scope)
        role_definition_id = str(self.rbac_role_definition_azrid(str(role_definition_id)))
        principal_id = uuid_normalize(principal_id, key='principal_id', exc_value=self.exc_value)
        assignment_name = assignment_name or str(uuid.uuid4())
        parameters = msivm.vm_params.role_assignment_params(role_definition_id, principal_id)
        self.logger.debug("create role assignment %s scope=%s role=%s principal=%s", assignment_name, scope, role_definition_id, principal_id)
        try:
            return msapicall(self.logger, self._az_authorization_client.role_assignments.create, scope, assignment_name, parameters)
        except azure.core.exceptions.ResourceExistsError as exc:
            caught = msivm.msapicall.Caught(exc)
            if caught.any_code_matches('RoleAssignmentExists'):
                self.logger.info("role assignment for principal %s at scope %s already exists", principal_id, scope)
                return None
            raise

    ######################################################################
    # SDK clients. Each is built on first use and kept in the
    # matching _az_*_cachedclient attribute.

    _az_authorization_client = _CachedClient(AuthorizationManagementClient)
    _az_compute_client = _CachedClient(ComputeManagementClient)
    _az_network_client = _CachedClient(NetworkManagementClient)
    _az_resource_client = _CachedClient(ResourceManagementClient)
    _az_storage_client = _CachedClient(StorageManagementClient)

    def _az_client_gen_do(self, name, client_class):
        '''
        Return a new client_class for this subscription and cloud.
        name is the cache attribute, for logging.
        '''
        if self.debug > 1:
            self.logger.debug("%s build %s for %s", self.mth(), client_class.__name__, name)
        return client_class(self.azure_credential,
                            self.subscription_id,
                            base_url=self.cloud.endpoints.resource_manager,
                            credential_scopes=msivm.clouds.cloud_arm_scopes(self.cloud))

    ######################################################################
    # credentials

    @staticmethod
    def service_principal_env():
        '''
        Return (client_id, client_secret) from the environment.
        Either may be empty.
        '''
        return (os.environ.get('AZURE_CLIENT_ID', ''), os.environ.get('AZURE_CLIENT_SECRET', ''))

    def credential_source(self):
        '''
        Return the effective AzCred. Without an explicit choice,
        a complete service principal in the environment wins over az login.
        '''
        if self.credential is not None:
            return self.credential
        client_id, client_secret = self.service_principal_env()
        if client_id and client_secret and self.tenant_id:
            return AzCred.SERVICE_PRINCIPAL
        return AzCred.LOGIN

    @property
    def azure_credential(self):
        '''
        Getter: credential used by all clients, generated on the first call and then cached
        '''
        with self._az_client_gen_lock:
            if self._azure_credential is None:
                self._azure_credential = self.azure_credential_generate()
            return self._azure_credential

    def azure_credential_generate(self):
        '''
        Generate and return an appropriate azure.identity credential object.
        '''
        source = self.credential_source()
        if source == AzCred.SERVICE_PRINCIPAL:
            client_id, client_secret = self.service_principal_env()
            if not (client_id and client_secret and self.tenant_id):
                raise ApplicationException("service-principal credentials require AZURE_CLIENT_ID, AZURE_CLIENT_SECRET, and a tenant_id")
            output_redact('AZURE_CLIENT_SECRET', client_secret)
            self.logger.debug("%s using service principal %s in tenant %s", self.mth(), client_id, self.tenant_id)
            return azure.identity.ClientSecretCredential(self.tenant_id, client_id, client_secret,
                                                         authority=msivm.clouds.cloud_authority(self.cloud))
        self.logger.debug("%s using az login credentials", self.mth())
        return azure.identity.AzureCliCredential(tenant_id=self.tenant_id or None)

    ######################################################################
    # main stuff below here

    @classmethod
    def main_add_parser_args(cls, ap_parser):
        '''
        See msivm.common.Application.main_add_parser_args()
        '''
        super().main_add_parser_args(ap_parser)

        at_group = ap_parser.get_argument_group('azure_tool')

        # Unknown actions are reported by main_execute, not argparse.
        ap_parser.add_argument('action', type=str,
                               help='what to do (one of: %s)' % ', '.join(command.actions))

        cls.main_add_parser_args_manager(at_group)

    @classmethod
    def main_add_parser_args_manager(cls, group):
        '''
        Add arguments consumed by Manager.__init__ to group.
        '''
        group.add_argument('--credential', type=str, default='', choices=[''] + AzCred.values(),
                           action=ArgExplicit,
                           help='credential source (default: service-principal when AZURE_CLIENT_ID and AZURE_CLIENT_SECRET are set, otherwise login)')
        group.add_argument('--location', type=str, default='',
                           action=ArgExplicit,
                           help="Azure location (default: config location_default if set, otherwise %s)" % msivm.base_defaults.LOCATION_DEFAULT)
        group.add_argument('--role_name', type=str, default=msivm.base_defaults.ROLE_NAME_DEFAULT,
                           action=ArgExplicit,
                           help='built-in role granted to the VM identity (default %(default)s)')
        group.add_argument('--storage_account', type=str, default='',
                           action=ArgExplicit,
                           help='name of storage account')
        group.add_argument('--vm_name', type=str, default='',
                           action=ArgExplicit,
                           help='VM name')

    ARGS_SAVE = ('action',
                )

    command = None

    def main_execute(self):
        '''
        See msivm.common.Application.main_execute()
        '''
        action = self._args_saved['action']
        # a default or environment-derived resource group is never deleted from here
        if (action == 'resource_group_delete') and ('resource_group' not in self.args_explicit):
            self.logger.error("%s requires --resource_group", action)
            raise ApplicationExit(1)
        handled = self.command.handle(action, ('printable', 'simple'), self) \
          or self.command.handle(action, 'wait', self, wait=True)
        if not handled:
            self.logger.error("unknown action %r (choose from %s)", action, ', '.join(self.command.actions))
            raise ApplicationExit(1)
        raise ApplicationExit(0)

Manager.command = command

def main():
    '''
    Console entry point
    '''
    Manager.main_with_args(sys.argv[1:])

Manager.main(__name__)
